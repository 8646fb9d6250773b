"""
Casos de uso de la aplicación.
"""
from .sync_pipeline import SyncPipeline
from .batch_coordinator import BatchCoordinator, SubmitResult
from .resync_use_case import ResyncUseCase

__all__ = ["SyncPipeline", "BatchCoordinator", "SubmitResult", "ResyncUseCase"]
