"""
Servicios de aplicación.

Contiene la lógica de negocio reutilizable que no pertenece
a un caso de uso específico.
"""
from zotsync.application.services.item_transformer import ItemTransformer, CollectionCache
from zotsync.application.services.broadcast_dispatcher import BroadcastDispatcher, BroadcastItem

__all__ = [
    # Transformación Airtable -> Zotero
    "ItemTransformer",
    "CollectionCache",
    # Difusión
    "BroadcastDispatcher",
    "BroadcastItem",
]
