"""
Data Transfer Objects (DTOs) para la capa de aplicación.
"""
from .video_dto import VideoRecord, WebhookResponseDTO, ResyncRequestDTO

__all__ = [
    "VideoRecord",
    "WebhookResponseDTO",
    "ResyncRequestDTO",
]
