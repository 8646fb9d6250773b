"""
Throttling de llamadas a APIs externas.

- RateLimiter: espaciado mínimo entre inicios de llamadas; encola en lugar
  de rechazar, toda llamada termina ejecutandose.
- ChunkedWriter: parte una lista de escrituras en chunks de tamano fijo,
  los envía en orden por el RateLimiter y espera un delay extra entre chunks.

Los clientes HTTP son síncronos (requests); el limiter los ejecuta en un
hilo con asyncio.to_thread para no bloquear el event loop.
"""
import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterator, List, Optional, Sequence, TypeVar

from loguru import logger

T = TypeVar("T")


class RateLimiter:
    """
    Limitador de espaciado mínimo por API.

    Una instancia por API externa, compartida por todas las corridas del
    proceso (equivalente a minTime de un limiter por proceso).
    """

    def __init__(
        self,
        min_interval_s: float,
        *,
        name: str = "api",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval_s = max(0.0, float(min_interval_s))
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def acquire(self) -> None:
        """Bloquea hasta que haya pasado el intervalo desde la última llamada."""
        async with self._lock:
            if self._last_start is not None:
                wait = self._last_start + self.min_interval_s - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_start = self._clock()

    async def run(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Ejecuta `fn` respetando el espaciado. Acepta funciones sync o async."""
        await self.acquire()
        if inspect.iscoroutinefunction(fn):
            return await fn(*args, **kwargs)
        return await asyncio.to_thread(fn, *args, **kwargs)


@dataclass
class ChunkResult(Generic[T]):
    """Resultado de un chunk: la respuesta o el error que lo hizo fallar."""

    index: int
    offset: int
    items: List[T]
    result: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def iter_chunks(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Parte `items` en listas de a lo sumo `size` elementos, en orden."""
    if size <= 0:
        raise ValueError("chunk size debe ser > 0")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class ChunkedWriter:
    """Escritor secuencial por chunks sobre un RateLimiter."""

    def __init__(
        self,
        limiter: RateLimiter,
        chunk_size: int,
        *,
        chunk_delay_s: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size debe ser > 0")
        self.limiter = limiter
        self.chunk_size = chunk_size
        self.chunk_delay_s = chunk_delay_s
        self._sleep = sleep

    async def write(
        self,
        items: Sequence[T],
        fn: Callable[[List[T]], Any],
        *,
        raise_on_error: bool = False,
    ) -> List[ChunkResult[T]]:
        """
        Envía `items` en chunks por `fn` y devuelve un ChunkResult por chunk,
        en el orden de entrada.

        Un chunk que falla queda con `error` y la escritura sigue con el
        siguiente, salvo raise_on_error=True.
        """
        chunks = list(iter_chunks(items, self.chunk_size))
        results: List[ChunkResult[T]] = []

        for i, chunk in enumerate(chunks):
            offset = i * self.chunk_size
            logger.debug(
                f"[{self.limiter.name}] chunk {i + 1}/{len(chunks)} ({len(chunk)} items)"
            )
            try:
                response = await self.limiter.run(fn, chunk)
                results.append(ChunkResult(index=i, offset=offset, items=chunk, result=response))
            except Exception as e:
                if raise_on_error:
                    raise
                logger.error(f"[{self.limiter.name}] chunk {i + 1}/{len(chunks)} falló: {e}")
                results.append(ChunkResult(index=i, offset=offset, items=chunk, error=e))

            if i < len(chunks) - 1 and self.chunk_delay_s > 0:
                await self._sleep(self.chunk_delay_s)

        return results
