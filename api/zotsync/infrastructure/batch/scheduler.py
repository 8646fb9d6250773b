"""
Scheduler de quietud para batches.

Máquina de estados por operación:
    IDLE -> (evento) -> WAITING -> (evento antes de vencer) -> WAITING [reset]
         -> (vence sin eventos nuevos) -> FIRE -> IDLE

FIRE ejecuta una corrida sobre el contenido actual del store y después
quita del store los eventos procesados.

Los timers son por proceso (tareas asyncio). Al vencer, se compara la marca
de modificación del store con la que se vio al armar: si otro proceso agregó
eventos después, este proceso no dispara (el timer del otro lo hará).

Las corridas de una misma operación se serializan con un lock por
operación: un timer que vence mientras otra corrida sigue en curso espera a
que esa corrida limpie el store antes de leerlo.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from loguru import logger

from zotsync.infrastructure.batch.store import BatchStore
from zotsync.shared.constants.sync_constants import SyncOperation

FireCallback = Callable[[SyncOperation, List[Dict[str, Any]]], Awaitable[Any]]


class QuiescenceScheduler:
    """Difiere el procesamiento de un batch hasta que deja de recibir eventos."""

    def __init__(
        self,
        store: BatchStore,
        window_seconds: float,
        on_fire: FireCallback,
    ):
        self._store = store
        self._window = window_seconds
        self._on_fire = on_fire
        self._waiting: Dict[SyncOperation, asyncio.Task] = {}
        self._markers: Dict[SyncOperation, Optional[float]] = {}
        self._running: Set[asyncio.Task] = set()
        self._locks: Dict[SyncOperation, asyncio.Lock] = {}

    @property
    def window(self) -> float:
        return self._window

    def lock(self, op: SyncOperation) -> asyncio.Lock:
        """Lock de corrida de `op`; a lo sumo un batch en proceso por operación."""
        return self._locks.setdefault(op, asyncio.Lock())

    def is_waiting(self, op: SyncOperation) -> bool:
        task = self._waiting.get(op)
        return task is not None and not task.done()

    async def notify(self, op: SyncOperation) -> None:
        """
        Registra un evento para `op`: arma el timer o lo reinicia.
        Debe llamarse después de agregar el evento al store.
        """
        self._markers[op] = await self._store.last_modified(op)

        previous = self._waiting.pop(op, None)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug(f"Timer de '{op.value}' reiniciado ({self._window}s)")
        else:
            logger.debug(f"Timer de '{op.value}' armado ({self._window}s)")

        self._waiting[op] = asyncio.create_task(self._wait_and_fire(op))

    async def _wait_and_fire(self, op: SyncOperation) -> None:
        await asyncio.sleep(self._window)

        # Desde aquí la corrida ya no se cancela con notify()
        current = asyncio.current_task()
        if self._waiting.get(op) is current:
            del self._waiting[op]
        self._running.add(current)
        marker = self._markers.pop(op, None)
        try:
            async with self.lock(op):
                await self._fire(op, marker)
        finally:
            self._running.discard(current)

    async def _fire(self, op: SyncOperation, marker: Optional[float]) -> None:
        latest = await self._store.last_modified(op)
        if latest is not None and marker is not None and latest > marker:
            logger.info(
                f"Batch '{op.value}' modificado después de armar el timer; se cede el disparo"
            )
            return

        batch = await self._store.get(op)
        if not batch:
            logger.debug(f"Batch '{op.value}' vacío al vencer el timer")
            return

        logger.info(f"Batch '{op.value}' quieto por {self._window}s: procesando {len(batch)} evento(s)")
        try:
            await self._on_fire(op, batch)
        except Exception as e:
            # Los items fallidos ya quedaron en el log de fallos
            logger.exception(f"Error procesando batch '{op.value}': {e}")
        finally:
            await self._store.clear(op, count=len(batch))

    async def stop(self) -> None:
        """Cancela los timers pendientes y espera las corridas en curso."""
        for task in self._waiting.values():
            task.cancel()
        pending = [*self._waiting.values(), *self._running]
        self._waiting.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("QuiescenceScheduler detenido")
