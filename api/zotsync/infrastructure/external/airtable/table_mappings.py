"""
Mapeos Airtable -> VideoRecord.

El webhook de Airtable ya envía claves camelCase; el camino de resync lee
la API REST y necesita traducir los nombres de fields de Airtable a esas
mismas claves. Este es el punto único donde se define esa traducción.
"""

from __future__ import annotations

from typing import Any

from .types import AirtableRecord, FieldMapping


class MappingError(RuntimeError):
    """Un registro de Airtable no cumple el mapeo esperado."""


def _first_link(value: Any) -> Any:
    # Los links a otras tablas llegan como lista de record ids
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _to_int(value: Any) -> Any:
    if value in (None, ""):
        return None
    return int(value)


VIDEO_FIELD_MAPPINGS: list[FieldMapping] = [
    FieldMapping("Record ID", "recordId", required=True),
    FieldMapping("Zotero Key", "zoteroKey"),
    FieldMapping("Zotero Version", "zoteroVersion", transform=_to_int),
    FieldMapping("Series", "seriesId", transform=_first_link),
    FieldMapping("Series Zotero Key", "seriesZoteroKey", transform=_first_link),
    FieldMapping("Title", "title"),
    FieldMapping("URL", "url"),
    FieldMapping("Year", "year", transform=_to_int),
    FieldMapping("Description", "desc"),
    FieldMapping("Running Time", "runningTime"),
    FieldMapping("Format", "format"),
    FieldMapping("Topic", "topic"),
    FieldMapping("Tags", "tags"),
    FieldMapping("Learn More", "learnMore"),
    FieldMapping("Series Text", "series"),
    FieldMapping("Series Count Text", "seriesCount", transform=_to_int),
    FieldMapping("Vol.", "vol"),
    FieldMapping("No.", "no"),
    FieldMapping("Publisher Text", "publisher"),
    FieldMapping("Presenter First Name", "presentersFirstName"),
    FieldMapping("Presenter Last Name", "presentersLastName"),
    FieldMapping("Language Code", "language"),
    FieldMapping("Location", "location"),
    FieldMapping("Plus Code", "plusCode"),
    FieldMapping("Video Provider", "provider"),
    FieldMapping("ESOVDBID", "catalogId"),
    FieldMapping("ISO Added", "accessDate"),
    FieldMapping("Featured", "featured", transform=bool),
]


def video_fields() -> list[str]:
    """Lista de fields a pedir a Airtable (fields[])."""
    return [m.airtable_field for m in VIDEO_FIELD_MAPPINGS]


def map_airtable_record(
    record: AirtableRecord,
    mappings: list[FieldMapping] = VIDEO_FIELD_MAPPINGS,
) -> dict[str, Any]:
    """
    Mapea un AirtableRecord al payload camelCase del webhook.

    Reglas:
    - Si 'Record ID' no viene como field, se usa el id del registro
    - Cada FieldMapping decide como mapear y transformar el valor
    """
    fields = dict(record.fields)
    fields.setdefault("Record ID", record.record_id)
    payload: dict[str, Any] = {}

    for m in mappings:
        if m.airtable_field not in fields:
            if m.required:
                raise MappingError(
                    f"Record {record.record_id} no contiene field requerido '{m.airtable_field}'"
                )
            continue

        raw = fields.get(m.airtable_field)
        try:
            payload[m.record_field] = m.transform(raw) if m.transform else raw
        except (TypeError, ValueError) as e:
            raise MappingError(
                f"Record {record.record_id}: valor inválido en '{m.airtable_field}': {raw!r}"
            ) from e

    return payload
