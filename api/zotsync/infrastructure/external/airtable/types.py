"""
Tipos y utilidades puras para el lado Airtable del espejo.

Se mantienen libres de I/O para poder testearlos facilmente.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Airtable suele devolver ISO8601 con zona; aun así, normalizamos para
    comparar de forma consistente.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class AirtableRecord:
    """Registro Airtable mínimo."""

    record_id: str
    fields: dict[str, Any]


Transform = Callable[[Any], Any]


@dataclass(frozen=True)
class FieldMapping:
    """
    Define el mapeo de un field Airtable a un campo de VideoRecord.

    - airtable_field: nombre del field en Airtable
    - record_field: nombre (camelCase) del campo en el payload del webhook
    - transform: función opcional para transformar el valor
    - required: si True, el valor debe existir (si falta se levanta error)
    """

    airtable_field: str
    record_field: str
    transform: Optional[Transform] = None
    required: bool = False
