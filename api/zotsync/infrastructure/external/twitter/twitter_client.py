"""
Cliente para publicar tweets vía la API v2 de Twitter.
"""
from typing import Any, Dict

import httpx
from loguru import logger

from zotsync.shared.exceptions.sync import BroadcastException


class TwitterClient:
    """
    Publica tweets con un access token OAuth 2.0 de contexto de usuario
    (scope tweet.write). Lanza BroadcastException ante cualquier fallo.

    Uso:
        client = TwitterClient("token")
        await client.send({"text": "..."})
    """

    TWEETS_URL = "https://api.twitter.com/2/tweets"

    def __init__(self, access_token: str, *, timeout: float = 10.0):
        self.access_token = access_token
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.access_token)

    async def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """
        Publica `{"text": ...}`.

        Returns:
            El `data` del tweet creado ({id, text}).
        """
        if not self.access_token:
            raise BroadcastException("twitter", "Access token no configurado")

        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.TWEETS_URL, json=message, headers=headers)
                response.raise_for_status()
                data = response.json().get("data") or {}
        except httpx.HTTPError as e:
            logger.error(f"Error al publicar tweet: {e}")
            raise BroadcastException("twitter", str(e)) from e

        # Sin id no se publicó nada
        if not data.get("id"):
            raise BroadcastException("twitter", "La respuesta no trae el id del tweet")
        logger.info(f"Tweet publicado (id {data['id']})")
        return data
