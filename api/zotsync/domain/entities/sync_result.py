"""
Entidades del resultado de una corrida de sincronización.

Son estructuras puras (sin I/O) que el pipeline va llenando y que la API
serializa como respuesta.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from zotsync.shared.constants.sync_constants import (
    BroadcastAction,
    BroadcastChannel,
    DeliveryStatus,
    ItemStatus,
    SyncOperation,
)


@dataclass(frozen=True)
class ReconciliationRecord:
    """Identificadores de Zotero que se escriben de vuelta en Airtable."""

    upstream_id: str
    downstream_key: str
    downstream_version: int

    def to_airtable_update(self) -> Dict[str, Any]:
        """Formato de update de Airtable: {id, fields}."""
        return {
            "id": self.upstream_id,
            "fields": {
                "Zotero Key": self.downstream_key,
                "Zotero Version": self.downstream_version,
            },
        }


@dataclass(frozen=True)
class CollectionReference:
    """Colección (serie) creada en Zotero durante la transformación."""

    name: str
    key: str
    upstream_id: Optional[str] = None

    def to_airtable_update(self) -> Dict[str, Any]:
        return {"id": self.upstream_id, "fields": {"Zotero Key": self.key}}


@dataclass
class ItemOutcome:
    """Resultado de un item concreto dentro de la corrida."""

    upstream_id: Optional[str]
    status: ItemStatus
    stage: str
    key: Optional[str] = None
    version: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upstream_id": self.upstream_id,
            "status": self.status.value,
            "stage": self.stage,
            "key": self.key,
            "version": self.version,
            "error": self.error,
        }


@dataclass(frozen=True)
class BroadcastOutcome:
    """Intento de difusión en un canal. Nunca lanza: el error queda aquí."""

    channel: BroadcastChannel
    action: BroadcastAction
    status: DeliveryStatus
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED


@dataclass
class SyncReport:
    """
    Resumen completo de una corrida del pipeline.

    - reconciled: items cuyo key/version quedó sincronizado en Airtable
      (escritos en esta corrida o que ya coincidían)
    - outcomes: clasificación de todos los items de entrada
    """

    operation: SyncOperation
    total: int = 0
    successful: List[Dict[str, Any]] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: List[ItemOutcome] = field(default_factory=list)
    reconciled: List[ReconciliationRecord] = field(default_factory=list)
    reconciliation_unchanged: List[ReconciliationRecord] = field(default_factory=list)
    collections_created: List[CollectionReference] = field(default_factory=list)
    broadcasts: List[BroadcastOutcome] = field(default_factory=list)

    @property
    def synced(self) -> List[ReconciliationRecord]:
        """Todos los items que terminan sincronizados en ambos lados."""
        return [*self.reconciled, *self.reconciliation_unchanged]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "total": self.total,
            "successful": len(self.successful),
            "unchanged": len(self.unchanged),
            "failed": [f.to_dict() for f in self.failed],
            "reconciled": [
                {"id": r.upstream_id, "zoteroKey": r.downstream_key, "zoteroVersion": r.downstream_version}
                for r in self.synced
            ],
            "broadcasts": [
                {"channel": b.channel.value, "action": b.action.value, "status": b.status.value}
                for b in self.broadcasts
            ],
        }
