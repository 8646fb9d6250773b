"""
FailureLog - Registro durable de items que fallaron en una corrida.

Cada fallo se escribe como una línea JSON en un archivo dedicado
(por defecto logs/failed.jsonl) para reprocesarlo manualmente después.
No hay reintento automático.

Uso:
    failures = FailureLog("logs/failed.jsonl")
    failures.record("write", item, "Zotero devolvió 412")
"""
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

from loguru import logger


class FailureLog:
    """Sink JSON-lines de fallos de transformación, escritura y reconciliación."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Cada instancia filtra solo sus propios registros
        self._sink_id = uuid4().hex
        self._logger = logger.bind(failure_sink=self._sink_id)
        self._handler_id = logger.add(
            str(self.path),
            format="{message}",
            filter=lambda record, sid=self._sink_id: record["extra"].get("failure_sink") == sid,
            level="DEBUG",
        )

    def record(
        self,
        stage: str,
        item: Any,
        error: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Registra un fallo.

        Args:
            stage: Etapa donde falló (transform, write, reconcile, series)
            item: Payload que no se pudo procesar
            error: Descripción del error
            operation: Tipo de operación de la corrida
        """
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "stage": stage,
            "operation": operation,
            "error": error,
            "item": item,
        }
        self._logger.info(json.dumps(entry, default=str, ensure_ascii=False))
        logger.warning(f"Item fallido en etapa '{stage}': {error}")
        return entry

    def close(self) -> None:
        """Libera el handler de loguru asociado al archivo."""
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None
