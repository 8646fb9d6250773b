"""
Cliente para interactuar con la API de Telegram.
"""
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from zotsync.shared.exceptions.sync import BroadcastException


class TelegramClient:
    """
    Cliente simple para enviar mensajes vía Telegram Bot API.
    Lanza BroadcastException ante cualquier fallo; el dispatcher decide.
    """

    def __init__(self, bot_token: str, chat_id: str, *, timeout: float = 10.0):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.base_url = f"https://api.telegram.org/bot{self.bot_token}"

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def send(self, message: Dict[str, Any], chat_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Envía un mensaje ya formateado ({text, parse_mode, ...}).

        Returns:
            El `result` de Telegram (mensaje enviado).
        """
        target = chat_id or self.chat_id
        if not self.bot_token or not target:
            raise BroadcastException("telegram", "Bot token o chat id no configurados")

        payload = {"chat_id": target, "parse_mode": "HTML", **message}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/sendMessage", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Error al enviar mensaje de Telegram: {e}")
            raise BroadcastException("telegram", str(e)) from e

        if not data.get("ok"):
            raise BroadcastException("telegram", data.get("description", "respuesta no ok"))
        return data.get("result", {})
