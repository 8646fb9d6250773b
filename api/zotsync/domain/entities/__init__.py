"""
Entidades del dominio.
"""
from zotsync.domain.entities.sync_result import (
    BroadcastOutcome,
    CollectionReference,
    ItemOutcome,
    ReconciliationRecord,
    SyncReport,
)

__all__ = [
    "BroadcastOutcome",
    "CollectionReference",
    "ItemOutcome",
    "ReconciliationRecord",
    "SyncReport",
]
