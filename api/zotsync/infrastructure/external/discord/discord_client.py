"""
Cliente de webhooks de Discord.
"""
from typing import Any, Dict

import httpx
from loguru import logger

from zotsync.shared.constants.sync_constants import BroadcastAction
from zotsync.shared.exceptions.sync import BroadcastException


class DiscordWebhookClient:
    """
    Ejecuta webhooks de Discord, un endpoint por tipo de anuncio.

    Uso:
        client = DiscordWebhookClient({BroadcastAction.NEW_ITEM: "https://discord.com/api/webhooks/..."})
        await client.send(BroadcastAction.NEW_ITEM, {"content": "..."})
    """

    def __init__(self, endpoints: Dict[BroadcastAction, str], *, timeout: float = 10.0):
        self.endpoints = {action: url for action, url in endpoints.items() if url}
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.endpoints)

    async def send(self, action: BroadcastAction, message: Dict[str, Any]) -> None:
        url = self.endpoints.get(action)
        if not url:
            raise BroadcastException("discord", f"Sin webhook configurado para '{action.value}'")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=message)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error al ejecutar webhook de Discord ({action.value}): {e}")
            raise BroadcastException("discord", str(e)) from e

        logger.info(f"Webhook de Discord ejecutado ({action.value})")
