"""
Cliente mínimo de Zotero Web API v3.

Cubre solo lo que necesita el espejo:
- template de item nuevo (items/new)
- escritura múltiple de items (a lo sumo 50 por llamada)
- creación de colecciones (series)
- borrado de items por key

Igual que el cliente de Airtable: requests síncrono con backoff para
429/5xx respetando Retry-After / Backoff.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import requests
from loguru import logger

# Límite de Zotero por request de escritura / borrado
MAX_ITEMS_PER_WRITE = 50


@dataclass(frozen=True)
class ZoteroCredentials:
    api_key: str
    user_id: str


class ZoteroApiError(RuntimeError):
    """Error de integración con Zotero."""


@dataclass
class ZoteroWriteResponse:
    """
    Respuesta de una escritura múltiple, indexada por posición en el request.

    - successful: {índice: objeto completo con key/version/data}
    - unchanged: {índice: key}
    - failed: {índice: {code, message}}
    """

    successful: dict[int, dict[str, Any]] = field(default_factory=dict)
    unchanged: dict[int, str] = field(default_factory=dict)
    failed: dict[int, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "ZoteroWriteResponse":
        return cls(
            successful={int(k): v for k, v in (payload.get("successful") or {}).items()},
            unchanged={int(k): v for k, v in (payload.get("unchanged") or {}).items()},
            failed={int(k): v for k, v in (payload.get("failed") or {}).items()},
        )


class ZoteroClient:
    """Cliente HTTP de Zotero para una biblioteca de usuario."""

    def __init__(
        self,
        credentials: ZoteroCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.zotero.org",
        timeout_s: int = 30,
        max_retries: int = 4,
        min_backoff_s: float = 1.0,
        max_backoff_s: float = 30.0,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._session = session or requests.Session()

    @property
    def _library_url(self) -> str:
        return f"{self._base_url}/users/{self._creds.user_id}"

    def get_template(self, item_type: str = "videoRecording") -> dict[str, Any]:
        """Template vacío de Zotero para el tipo de item."""
        logger.info(f"Obteniendo template '{item_type}' de Zotero...")
        resp = self._request("GET", f"{self._base_url}/items/new", params={"itemType": item_type})
        template = resp.json()
        if not isinstance(template, dict):
            raise ZoteroApiError(f"Template inválido para '{item_type}'")
        return template

    def post_items(self, items: list[dict[str, Any]]) -> ZoteroWriteResponse:
        """
        Crea o actualiza items. Los que traen key/version se actualizan
        (Zotero valida la versión); los demás se crean.
        """
        if len(items) > MAX_ITEMS_PER_WRITE:
            raise ZoteroApiError(
                f"Zotero acepta a lo sumo {MAX_ITEMS_PER_WRITE} items por escritura ({len(items)} recibidos)"
            )
        resp = self._request("POST", f"{self._library_url}/items", json=items)
        result = ZoteroWriteResponse.from_json(resp.json())
        logger.info(
            f"Zotero: {len(result.successful)} ok, {len(result.unchanged)} sin cambios, "
            f"{len(result.failed)} fallidos"
        )
        return result

    def create_collection(self, name: str, parent: Optional[str] = None) -> str:
        """Crea una colección y devuelve su key. Lanza ZoteroApiError si falla."""
        body: dict[str, Any] = {"name": name}
        if parent:
            body["parentCollection"] = parent
        resp = self._request("POST", f"{self._library_url}/collections", json=[body])
        result = ZoteroWriteResponse.from_json(resp.json())

        created = result.successful.get(0)
        if not created or not created.get("key"):
            failure = result.failed.get(0) or {}
            raise ZoteroApiError(
                f"No se pudo crear la colección '{name}': {failure.get('message', 'sin detalle')}"
            )
        logger.info(f"Colección '{name}' creada en Zotero ({created['key']})")
        return created["key"]

    def get_library_version(self) -> int:
        """Version actual de la biblioteca (header Last-Modified-Version)."""
        resp = self._request("GET", f"{self._library_url}/items", params={"limit": 1, "format": "keys"})
        version = resp.headers.get("Last-Modified-Version")
        if version is None:
            raise ZoteroApiError("Zotero no devolvió Last-Modified-Version")
        return int(version)

    def delete_items(self, keys: list[str], version: Optional[int] = None) -> list[str]:
        """
        Borra items por key (a lo sumo 50). Si no se pasa `version` se usa la
        version actual de la biblioteca.
        """
        if len(keys) > MAX_ITEMS_PER_WRITE:
            raise ZoteroApiError(
                f"Zotero acepta a lo sumo {MAX_ITEMS_PER_WRITE} keys por borrado ({len(keys)} recibidas)"
            )
        if not keys:
            return []
        if version is None:
            version = self.get_library_version()
        self._request(
            "DELETE",
            f"{self._library_url}/items",
            params={"itemKey": ",".join(keys)},
            headers={"If-Unmodified-Since-Version": str(version)},
        )
        logger.info(f"Zotero: {len(keys)} item(s) borrados")
        return list(keys)

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """
        Request HTTP con backoff para 429/5xx.

        - 429 / 503: respeta Retry-After o Backoff si existen
        - 5xx: backoff exponencial
        - 4xx (no 429): error inmediato
        """
        all_headers = {
            "Authorization": f"Bearer {self._creds.api_key}",
            "Zotero-API-Version": "3",
            "Content-Type": "application/json",
        }
        all_headers.update(headers or {})

        for attempt in range(self._max_retries + 1):
            resp = self._session.request(
                method=method,
                url=url,
                params=params,
                json=json,
                headers=all_headers,
                timeout=self._timeout_s,
            )

            if 200 <= resp.status_code < 300:
                return resp

            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise ZoteroApiError(
                        f"Zotero error {resp.status_code} tras {attempt} reintentos: {resp.text}"
                    )

                retry_after = resp.headers.get("Retry-After") or resp.headers.get("Backoff")
                if retry_after:
                    try:
                        sleep_s = float(retry_after)
                    except ValueError:
                        sleep_s = self._min_backoff_s
                else:
                    base = min(self._max_backoff_s, self._min_backoff_s * (2**attempt))
                    sleep_s = base + (0.15 * base)

                logger.warning(f"Zotero {resp.status_code}; reintento en {sleep_s:.2f}s")
                time.sleep(sleep_s)
                continue

            raise ZoteroApiError(f"Zotero request falló {resp.status_code}: {resp.text}")

        raise ZoteroApiError("Zotero request sin respuesta")
