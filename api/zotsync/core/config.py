"""
Configuración central de la aplicación.
Gestiona variables de entorno y configuraciones globales del espejo
Airtable -> Zotero (batching, rate limits, canales de difusión).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuración de la aplicación.
    Lee variables de entorno y proporciona valores por defecto.

    Backend de batches:
    - BATCH_BACKEND='redis': estado compartido entre procesos del cluster
    - BATCH_BACKEND='memory': solo para un proceso (desarrollo / tests)
    """

    # Configuración de la aplicación
    APP_NAME: str = Field(default="Zotsync - Espejo Airtable/Zotero")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuración del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)

    # Seguridad de webhooks (vacío = sin verificación)
    WEBHOOK_TOKEN: str = Field(default="")

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/app.log")
    FAILURE_LOG_FILE: str = Field(default="logs/failed.jsonl")

    # Batches compartidos
    BATCH_BACKEND: str = Field(default="redis")
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    BATCH_KEY_PREFIX: str = Field(default="batch")
    BATCH_QUIESCENCE_SECONDS: float = Field(default=10.0)

    # Airtable (fuente upstream)
    AIRTABLE_TOKEN: str = Field(default="")
    AIRTABLE_BASE_ID: str = Field(default="")
    AIRTABLE_VIDEOS_TABLE: str = Field(default="Videos")
    AIRTABLE_SERIES_TABLE: str = Field(default="Series")
    AIRTABLE_LAST_MOD_FIELD: str = Field(default="Modified")
    AIRTABLE_RECORD_URL: str = Field(default="https://airtable.com/tbl3WP689vHdmg7P2/viwD9Tpr6JAAr97CW/")
    # ~5 req/s publicados por Airtable
    AIRTABLE_MIN_INTERVAL_S: float = Field(default=0.201)
    AIRTABLE_CHUNK_SIZE: int = Field(default=10)
    AIRTABLE_CHUNK_DELAY_S: float = Field(default=0.0)

    # Zotero (biblioteca downstream)
    ZOTERO_API_KEY: str = Field(default="")
    ZOTERO_USER: str = Field(default="")
    ZOTERO_ITEM_TYPE: str = Field(default="videoRecording")
    ZOTERO_PARENT_COLLECTION: str = Field(default="7J7AJ2BH")
    ZOTERO_ARCHIVE_NAME: str = Field(default="Earth Science Online Video Database")
    ZOTERO_MIN_INTERVAL_S: float = Field(default=1.0)
    ZOTERO_CHUNK_SIZE: int = Field(default=50)
    ZOTERO_CHUNK_DELAY_S: float = Field(default=10.0)

    # Difusión (Discord / Telegram / Twitter)
    BROADCAST_ENABLED: bool = Field(default=True)
    DISCORD_WEBHOOK_NEW_ITEM: str = Field(default="")
    DISCORD_WEBHOOK_NEW_ITEMS: str = Field(default="")
    TELEGRAM_BOT_TOKEN: str = Field(default="")
    TELEGRAM_CHAT_ID: str = Field(default="")
    # Access token OAuth 2.0 de usuario con scope tweet.write
    TWITTER_ACCESS_TOKEN: str = Field(default="")
    # JSON {"<topic>": {"color": "fee2d5", "channelId": "..."}}
    TOPIC_METADATA_FILE: str = Field(default="")

    @computed_field
    @property
    def is_development(self) -> bool:
        """Indica si el entorno es de desarrollo."""
        return self.ENVIRONMENT.lower() == "development"

    class Config:
        """Configuración de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuración de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        # Si no es JSON válido, retornar como lista simple
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuración
settings = Settings()
