"""
Constantes del espejo Airtable -> Zotero.
Define operaciones, canales de difusión y estados de entrega.
"""
from enum import Enum


class SyncOperation(str, Enum):
    """Tipo de operación que llega por webhook desde Airtable."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ItemStatus(str, Enum):
    """Clasificación final de cada item dentro de una corrida."""
    SUCCESSFUL = "successful"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class BroadcastChannel(str, Enum):
    """Canales externos donde se anuncian items nuevos."""
    DISCORD = "discord"
    TELEGRAM = "telegram"
    TWITTER = "twitter"


class BroadcastAction(str, Enum):
    """Tipo de anuncio: un item individual o un lote agregado."""
    NEW_ITEM = "new_item"
    NEW_ITEMS = "new_items"


class DeliveryStatus(str, Enum):
    """Resultado explícito de un intento de difusión."""
    DELIVERED = "delivered"
    SUPPRESSED_ERROR = "suppressed_error"


# Zotero acepta como máximo 50 objetos por escritura
ZOTERO_MAX_WRITE = 50
# Airtable acepta como máximo 10 registros por update
AIRTABLE_MAX_WRITE = 10
# Creador de reemplazo cuando el registro no trae presentadores
PLACEHOLDER_CREATOR_NAME = "Unknown"
