"""
Transformación VideoRecord (Airtable) -> item de Zotero (videoRecording).

Reglas:
- Escalares 1:1 sobre el template de Zotero
- Nombres/apellidos de presentadores -> lista de creadores ('Unknown' si vacía)
- Metadata opcional empaquetada en `extra` como líneas "Etiqueta: valor"
  (el camino de difusión la vuelve a parsear)
- Con key/version de Zotero el item es un update; sin ellos, un create
- Una serie sin colección conocida se crea en Zotero dentro de la
  transformación de ese registro; si falla, falla solo ese registro
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from zotsync.application.dto.video_dto import VideoRecord
from zotsync.domain.entities.sync_result import CollectionReference
from zotsync.shared.exceptions.sync import TransformException
from zotsync.shared.utils.formatting import format_date, format_duration, package_creators

# El record id de Airtable queda al final de archiveLocation
UPSTREAM_ID_PATTERN = re.compile(r"rec\w{14}$")

EXTRA_LABELS = ("Topic", "Tags", "Location", "Plus Code", "Learn More")

CreateCollection = Callable[[str], Awaitable[str]]


def upstream_id_from_item(item: Dict[str, Any]) -> Optional[str]:
    """Recupera el record id de Airtable desde un item (o su `data`) de Zotero."""
    data = item.get("data", item)
    match = UPSTREAM_ID_PATTERN.search(data.get("archiveLocation") or "")
    return match.group(0) if match else None


def parse_extra(extra: Optional[str]) -> Dict[str, str]:
    """Parsea las líneas 'Etiqueta: valor' del campo extra."""
    values: Dict[str, str] = {}
    for line in (extra or "").splitlines():
        label, sep, value = line.partition(":")
        if sep and label.strip() in EXTRA_LABELS:
            values[label.strip()] = value.strip()
    return values


@dataclass
class CollectionCache:
    """
    Cache nombre de serie -> key de colección, con alcance de una corrida.
    Garantiza a lo sumo una creación por nombre mientras las
    transformaciones sean secuenciales.
    """

    keys: Dict[str, str] = field(default_factory=dict)
    created: List[CollectionReference] = field(default_factory=list)

    def get(self, name: str) -> Optional[str]:
        return self.keys.get(name)

    def remember(self, name: str, key: str) -> None:
        self.keys.setdefault(name, key)


@dataclass
class TransformResult:
    item: Dict[str, Any]
    record: VideoRecord
    created_collection: Optional[CollectionReference] = None

    @property
    def is_update(self) -> bool:
        return "key" in self.item


class ItemTransformer:
    """Construye items de Zotero a partir de registros de la tabla Videos."""

    def __init__(
        self,
        *,
        item_type: str,
        parent_collection: str,
        archive_name: str,
        record_url: str,
        create_collection: CreateCollection,
    ):
        self.item_type = item_type
        self.parent_collection = parent_collection
        self.archive_name = archive_name
        self.record_url = record_url
        self._create_collection = create_collection

    async def transform(
        self,
        record: VideoRecord,
        template: Dict[str, Any],
        cache: CollectionCache,
    ) -> TransformResult:
        """
        Transforma un registro. Lanza TransformException si no es posible.
        """
        try:
            collection_key, created = await self._resolve_series(record, cache)
            item = self._build_item(record, template, collection_key)
        except TransformException:
            raise
        except Exception as e:
            raise TransformException(record.record_id, str(e)) from e
        return TransformResult(item=item, record=record, created_collection=created)

    async def _resolve_series(
        self, record: VideoRecord, cache: CollectionCache
    ) -> tuple[Optional[str], Optional[CollectionReference]]:
        if record.series_zotero_key:
            if record.series:
                cache.remember(record.series, record.series_zotero_key)
            return record.series_zotero_key, None
        if not record.series:
            return None, None

        cached = cache.get(record.series)
        if cached:
            return cached, None

        logger.info(f"Serie '{record.series}' sin colección en Zotero; creando...")
        try:
            key = await self._create_collection(record.series)
        except Exception as e:
            raise TransformException(
                record.record_id, f"no se pudo crear la colección '{record.series}': {e}"
            ) from e

        cache.remember(record.series, key)
        created = CollectionReference(name=record.series, key=key, upstream_id=record.series_id)
        cache.created.append(created)
        return key, created

    def _build_item(
        self,
        record: VideoRecord,
        template: Dict[str, Any],
        collection_key: Optional[str],
    ) -> Dict[str, Any]:
        item = copy.deepcopy(template)
        collections = [self.parent_collection] if self.parent_collection else []
        if collection_key:
            collections.append(collection_key)

        item.update({
            "itemType": self.item_type,
            "title": record.title,
            "creators": package_creators(record.presenters_first_name, record.presenters_last_name),
            "abstractNote": record.desc,
            "videoRecordingFormat": record.format,
            "seriesTitle": record.series,
            "volume": self._volume(record),
            "numberOfVolumes": str(record.series_count) if record.series_count and record.series_count > 1 else "",
            "place": record.provider,
            "studio": record.publisher,
            "date": str(record.year) if record.year else "",
            "runningTime": self._running_time(record.running_time),
            "language": record.language,
            "url": record.url,
            "accessDate": format_date(record.access_date) or "",
            "archive": self.archive_name,
            "archiveLocation": f"{self.record_url}{record.record_id}",
            "callNumber": str(record.catalog_id) if record.catalog_id is not None else "",
            "extra": self._extra(record),
            "tags": [{"tag": tag} for tag in record.tags if tag],
            "collections": collections,
            "relations": {},
        })

        if record.has_downstream:
            item["key"] = record.zotero_key
            item["version"] = record.zotero_version
        else:
            item.pop("key", None)
            item.pop("version", None)
        return item

    @staticmethod
    def _volume(record: VideoRecord) -> str:
        if record.vol not in (None, ""):
            return f"{record.vol}:{record.no if record.no is not None else ''}"
        return str(record.no) if record.no is not None else ""

    @staticmethod
    def _running_time(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, int):
            return format_duration(value)
        if isinstance(value, str) and value.strip().isdigit():
            return format_duration(int(value))
        return str(value)

    @staticmethod
    def _extra(record: VideoRecord) -> str:
        values = {
            "Topic": record.topic,
            "Tags": ", ".join(t for t in record.tags if t),
            "Location": record.location,
            "Plus Code": record.plus_code,
            "Learn More": record.learn_more or "",
        }
        return "\n".join(f"{label}: {values[label]}" for label in EXTRA_LABELS if values[label])
