"""
DTOs de los webhooks de Airtable.

Los automations de Airtable envian un objeto (o un array de objetos) por
registro, con claves camelCase. Los campos que en Airtable son lookups
pueden llegar como lista de un elemento; se normalizan a escalar.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class VideoRecord(BaseModel):
    """Registro de la tabla Videos tal como llega por webhook."""

    record_id: str = Field(..., alias="recordId", min_length=1, description="ID del registro en Airtable (rec...)")
    zotero_key: Optional[str] = Field(None, alias="zoteroKey", description="Key del item en Zotero")
    zotero_version: Optional[int] = Field(None, alias="zoteroVersion", description="Version del item en Zotero")
    series_id: Optional[str] = Field(None, alias="seriesId", description="ID del registro de la serie en Airtable")
    series_zotero_key: Optional[str] = Field(None, alias="seriesZoteroKey", description="Key de la colección de la serie")

    title: str = Field("", description="Título del video")
    url: str = Field("", description="URL del video")
    year: Optional[int] = Field(None, description="Año de publicación")
    desc: str = Field("", description="Descripción")
    running_time: Optional[Union[int, str]] = Field(None, alias="runningTime", description="Duración en segundos")
    format: str = Field("", description="Formato del video")
    topic: str = Field("", description="Tópico ESOVDB")
    tags: List[str] = Field(default_factory=list, description="Tags")
    learn_more: Optional[str] = Field(None, alias="learnMore", description="Link de 'Learn More'")
    series: str = Field("", description="Nombre de la serie")
    series_count: Optional[int] = Field(None, alias="seriesCount", description="Cantidad de videos de la serie")
    vol: Optional[Union[int, str]] = Field(None, description="Volumen")
    no: Optional[Union[int, str]] = Field(None, description="Número dentro del volumen")
    publisher: str = Field("", description="Publicador")
    presenters_first_name: List[str] = Field(default_factory=list, alias="presentersFirstName")
    presenters_last_name: List[str] = Field(default_factory=list, alias="presentersLastName")
    language: str = Field("", description="Código de idioma")
    location: str = Field("", description="Ubicación")
    plus_code: str = Field("", alias="plusCode", description="Plus Code de la ubicación")
    provider: str = Field("", description="Proveedor del video")
    catalog_id: Optional[Union[int, str]] = Field(None, alias="catalogId", description="ESOVDBID")
    access_date: Optional[str] = Field(None, alias="accessDate", description="Fecha ISO de alta en Airtable")
    featured: bool = Field(False, description="Video destacado")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("series", "publisher", "topic", mode="before")
    @classmethod
    def unwrap_lookup(cls, v: Any) -> Any:
        v = _first(v)
        return "" if v is None else v

    @field_validator(
        "zotero_key", "zotero_version", "series_id", "series_zotero_key", "year", "running_time", "series_count",
        "vol", "no", "catalog_id", "access_date", "learn_more",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        v = _first(v)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("tags", "presenters_first_name", "presenters_last_name", mode="before")
    @classmethod
    def ensure_list(cls, v: Any) -> List[Any]:
        if v is None or v == "":
            return []
        if isinstance(v, str):
            return [s.strip() for s in v.split(",")] if v.strip() else []
        return list(v)

    @field_validator("featured", mode="before")
    @classmethod
    def coerce_featured(cls, v: Any) -> bool:
        return bool(_first(v))

    @property
    def has_downstream(self) -> bool:
        """True si el registro ya tiene contraparte en Zotero."""
        return bool(self.zotero_key) and self.zotero_version is not None

    def to_payload(self) -> Dict[str, Any]:
        """Serializa con los nombres del webhook (para el store de batches)."""
        return self.model_dump(by_alias=True)


class WebhookResponseDTO(BaseModel):
    """Respuesta de un webhook procesado o acumulado."""

    status: str = Field(..., description="processed | accepted")
    operation: str = Field(..., description="create | update | delete")
    batch_size: int = Field(0, description="Eventos en el batch en curso")
    items: List[Dict[str, Any]] = Field(default_factory=list, description="Items reconciliados o batch acumulado")
    report: Optional[Dict[str, Any]] = Field(None, description="Resumen de la corrida")


class ResyncRequestDTO(BaseModel):
    """Request de re-sincronización manual desde Airtable."""

    modified_since: str = Field(..., description="Fecha ISO-8601: se re-sincronizan los registros modificados desde entonces")
    max_pages: Optional[int] = Field(None, ge=1, le=1000, description="Máximo de páginas de 100 registros")
