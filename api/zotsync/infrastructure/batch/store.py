"""
Store compartido de batches pendientes, indexado por tipo de operación.

Contrato (BatchStore):
- append(op, events) -> contenido completo tras agregar
- get(op)            -> contenido actual
- size(op)           -> cantidad de eventos
- clear(op, count)   -> vacía el batch (o solo los primeros `count`)
- last_modified(op)  -> epoch del último append (None si vacío)

RedisBatchStore es la implementación para cluster: todos los procesos ven el
mismo batch (lista `batch:{op}` + clave `batch:{op}:modified`).
InMemoryBatchStore cumple el mismo contrato para un solo proceso y tests.
"""
import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from loguru import logger

from zotsync.shared.constants.sync_constants import SyncOperation


class BatchStore(Protocol):
    """Interfaz del estado compartido de batches."""

    async def append(self, op: SyncOperation, events: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    async def get(self, op: SyncOperation) -> List[Dict[str, Any]]:
        ...

    async def size(self, op: SyncOperation) -> int:
        ...

    async def clear(self, op: SyncOperation, count: Optional[int] = None) -> None:
        ...

    async def last_modified(self, op: SyncOperation) -> Optional[float]:
        ...


def _op_value(op: SyncOperation | str) -> str:
    return op.value if isinstance(op, SyncOperation) else str(op)


class InMemoryBatchStore:
    """Batch en memoria del proceso. No comparte estado entre procesos."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = asyncio.Lock()
        self._content: Dict[str, List[Dict[str, Any]]] = {}
        self._modified: Dict[str, float] = {}

    async def append(self, op, events):
        key = _op_value(op)
        async with self._lock:
            bucket = self._content.setdefault(key, [])
            bucket.extend(dict(e) for e in events)
            self._modified[key] = self._clock()
            return list(bucket)

    async def get(self, op):
        async with self._lock:
            return list(self._content.get(_op_value(op), []))

    async def size(self, op):
        async with self._lock:
            return len(self._content.get(_op_value(op), []))

    async def clear(self, op, count: Optional[int] = None):
        key = _op_value(op)
        async with self._lock:
            if count is not None and len(self._content.get(key, [])) > count:
                # Conserva lo que llegó durante la corrida
                self._content[key] = self._content[key][count:]
            else:
                self._content.pop(key, None)
                self._modified.pop(key, None)
        logger.debug(f"Batch '{key}' limpiado (memoria)")

    async def last_modified(self, op):
        async with self._lock:
            return self._modified.get(_op_value(op))


class RedisBatchStore:
    """
    Batch compartido en Redis.

    Se usa una lista (RPUSH/LRANGE) para preservar el orden de llegada y
    admitir payloads repetidos. Cada append actualiza la marca de
    modificación en la misma transacción.
    """

    def __init__(
        self,
        client,
        *,
        key_prefix: str = "batch",
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            client: Cliente `redis.asyncio.Redis`
            key_prefix: Prefijo de las claves (batch:{op})
            clock: Fuente de tiempo epoch para la marca de modificación
        """
        self._redis = client
        self._prefix = key_prefix
        self._clock = clock

    def _key(self, op) -> str:
        return f"{self._prefix}:{_op_value(op)}"

    def _modified_key(self, op) -> str:
        return f"{self._key(op)}:modified"

    @staticmethod
    def _decode(raw: Sequence[Any]) -> List[Dict[str, Any]]:
        return [json.loads(item) for item in raw]

    async def append(self, op, events):
        payloads = [json.dumps(e, default=str) for e in events]
        pipe = self._redis.pipeline(transaction=True)
        if payloads:
            pipe.rpush(self._key(op), *payloads)
        pipe.set(self._modified_key(op), repr(self._clock()))
        pipe.lrange(self._key(op), 0, -1)
        results = await pipe.execute()
        content = self._decode(results[-1])
        logger.debug(f"Batch '{_op_value(op)}': {len(content)} evento(s) tras append")
        return content

    async def get(self, op):
        raw = await self._redis.lrange(self._key(op), 0, -1)
        return self._decode(raw)

    async def size(self, op):
        return int(await self._redis.llen(self._key(op)))

    async def clear(self, op, count: Optional[int] = None):
        if count is None:
            await self._redis.delete(self._key(op), self._modified_key(op))
        else:
            # Quita solo los eventos procesados; lo agregado durante la corrida queda
            pipe = self._redis.pipeline(transaction=True)
            pipe.ltrim(self._key(op), count, -1)
            pipe.llen(self._key(op))
            results = await pipe.execute()
            if int(results[-1]) == 0:
                # Batch vacío: sin marca, igual que el store en memoria
                await self._redis.delete(self._modified_key(op))
        logger.debug(f"Batch '{_op_value(op)}' limpiado (redis)")

    async def last_modified(self, op):
        raw = await self._redis.get(self._modified_key(op))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return float(raw)
