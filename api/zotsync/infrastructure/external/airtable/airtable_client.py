"""
Cliente mínimo de Airtable REST API (sin SDKs externos).

Requisitos cubiertos:
- requests
- paginación por offset, expuesta como generador lazy de páginas
- rate-limit/backoff (429, 5xx)
- update no destructivo (PATCH) de a lo sumo 10 registros por llamada
- fetch incremental usando un campo "Last Modified Time"
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Optional

import requests
from loguru import logger

from .types import AirtableRecord, ensure_utc

# Límite de Airtable por llamada de update/create
MAX_RECORDS_PER_WRITE = 10


@dataclass(frozen=True)
class AirtableCredentials:
    token: str
    base_id: str


class AirtableApiError(RuntimeError):
    """Error de integración con Airtable."""


def _isoformat_z(dt: datetime) -> str:
    """
    Serializa datetime a ISO8601 con 'Z' (UTC) para formulas Airtable.
    """
    dt_utc = ensure_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_incremental_filter_formula(last_modified_field: str, cursor: datetime) -> str:
    """
    Construye una formula Airtable para traer registros incrementales:

    - Incluye igualdad (>=) para ser tolerante a cortes a mitad de página.
      La idempotencia queda asegurada por la reconciliación key/version.

    Nota: Airtable no soporta operador >= directo en formulas con fechas.
    Se usa OR(IS_AFTER(...), IS_SAME(...)).
    """
    cursor_str = _isoformat_z(cursor)
    field_ref = "{" + last_modified_field + "}"
    return (
        f"OR("
        f"IS_AFTER({field_ref}, DATETIME_PARSE('{cursor_str}')), "
        f"IS_SAME({field_ref}, DATETIME_PARSE('{cursor_str}'))"
        f")"
    )


class AirtableClient:
    """
    Cliente HTTP de Airtable.

    Importante:
    - Es síncrono; el pipeline lo ejecuta vía RateLimiter (asyncio.to_thread).
    - No hace cast de tipos de campos: eso se decide en el mapeo a VideoRecord.
    """

    def __init__(
        self,
        credentials: AirtableCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.airtable.com/v0",
        timeout_s: int = 30,
        max_retries: int = 6,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._session = session or requests.Session()

    def _table_url(self, table: str) -> str:
        return f"{self._base_url}/{self._creds.base_id}/{table}"

    def iter_pages(
        self,
        table: str,
        *,
        formula: Optional[str] = None,
        fields: Optional[list[str]] = None,
        page_size: int = 100,
        sort_field: Optional[str] = None,
    ) -> Iterator[list[AirtableRecord]]:
        """
        Generador lazy de páginas. Cada iteración hace a lo sumo un request.

        Es reiniciable (cada llamada empieza desde la primera página) y el
        consumidor puede cortar en cualquier momento sin pedir más páginas.
        """
        url = self._table_url(table)
        offset: Optional[str] = None
        page_size = max(1, min(int(page_size), 100))

        while True:
            query: list[tuple[str, Any]] = [("pageSize", page_size)]
            if formula:
                query.append(("filterByFormula", formula))
            if offset:
                query.append(("offset", offset))
            # Serialización manual de sort para evitar "sort=field&sort=direction"
            if sort_field:
                query.append(("sort[0][field]", sort_field))
                query.append(("sort[0][direction]", "asc"))
            for f in fields or []:
                query.append(("fields[]", f))

            payload = self._request_json("GET", url, query=query)
            page = [self._to_record(rec) for rec in payload.get("records") or []]
            yield page

            offset = payload.get("offset")
            if not offset:
                break

    def update(self, items: list[dict[str, Any]], table: str) -> list[dict[str, Any]]:
        """
        Update no destructivo (PATCH) de registros [{id, fields}].
        El llamador parte la lista en chunks de a lo sumo 10.
        """
        if len(items) > MAX_RECORDS_PER_WRITE:
            raise AirtableApiError(
                f"Airtable acepta a lo sumo {MAX_RECORDS_PER_WRITE} registros por update ({len(items)} recibidos)"
            )
        if not items:
            return []

        logger.debug(f"Airtable PATCH {len(items)} registro(s) en '{table}'")
        payload = self._request_json(
            "PATCH", self._table_url(table), query=[], body={"records": items}
        )
        return payload.get("records") or []

    @staticmethod
    def _to_record(rec: dict[str, Any]) -> AirtableRecord:
        rec_id = rec.get("id")
        if not rec_id:
            # Caso raro; preferimos fallar temprano y visible.
            raise AirtableApiError("Airtable devolvió un record sin 'id'")
        return AirtableRecord(record_id=rec_id, fields=rec.get("fields") or {})

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        query: list[tuple[str, Any]],
        body: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Request HTTP con backoff para 429/5xx.

        Estrategia:
        - 429: respeta Retry-After si existe, si no exponencial con jitter simple.
        - 5xx: exponencial con jitter.
        - 4xx (no 429): error inmediato (config/auth mal).
        """
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Content-Type": "application/json",
        }

        for attempt in range(self._max_retries + 1):
            resp = self._session.request(
                method=method,
                url=url,
                params=query,
                json=body,
                headers=headers,
                timeout=self._timeout_s,
            )

            if 200 <= resp.status_code < 300:
                return resp.json()

            # Errores recuperables
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise AirtableApiError(
                        f"Airtable error {resp.status_code} tras {attempt} reintentos: {resp.text}"
                    )

                retry_after = resp.headers.get("Retry-After")
                if retry_after:
                    try:
                        sleep_s = float(retry_after)
                    except ValueError:
                        sleep_s = self._min_backoff_s
                else:
                    # Exponencial simple + jitter proporcional
                    base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
                    sleep_s = base + (0.15 * base)

                logger.warning(f"Airtable {resp.status_code}; reintento en {sleep_s:.2f}s")
                time.sleep(sleep_s)
                continue

            # Errores no recuperables
            raise AirtableApiError(
                f"Airtable request falló {resp.status_code}: {resp.text}"
            )

        raise AirtableApiError("Airtable request sin respuesta")
