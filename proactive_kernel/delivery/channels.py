"""Output channels — where a delivered interruption is rendered."""

import logging
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from proactive_kernel.models.interruption import InterruptionPriority

logger = logging.getLogger(__name__)


class SpeechTone(BaseModel):
    """How an utterance is voiced."""

    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 0.9
    cancel_in_flight: bool = True
    earcon: Optional[str] = None            # "error" | "thinking"


def tone_for_priority(priority: InterruptionPriority) -> SpeechTone:
    """
    Critical speaks slower and lower, cutting off anything in flight.
    Low speaks quieter.
    """
    if priority == InterruptionPriority.CRITICAL:
        return SpeechTone(rate=0.9, pitch=0.95, volume=0.9, earcon="error")
    if priority == InterruptionPriority.HIGH:
        return SpeechTone(earcon="thinking")
    if priority == InterruptionPriority.LOW:
        return SpeechTone(volume=0.7)
    return SpeechTone()


class OutputChannel(Protocol):
    """Protocol for delivery backends — speech, push, ..."""

    async def interrupt(self, message: str, tone: SpeechTone) -> None: ...

    async def speak(self, message: str) -> None: ...


class LoggingChannel:
    """Renders utterances to the log. Stand-in for text-to-speech on headless hosts."""

    def __init__(self, name: str = "speech"):
        self._logger = logging.getLogger(f"{__name__}.{name}")

    async def interrupt(self, message: str, tone: SpeechTone) -> None:
        self._logger.info(
            "[interrupt rate=%.2f pitch=%.2f volume=%.2f earcon=%s] %s",
            tone.rate, tone.pitch, tone.volume, tone.earcon, message,
        )

    async def speak(self, message: str) -> None:
        self._logger.info("[speak] %s", message)


class TelegramChannel:
    """
    Push delivery through the Telegram Bot API.

    Tone has no meaning for a text message; critical interruptions are
    prefixed so they stand out in the chat.
    """

    API_BASE = "https://api.telegram.org"

    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.transport = transport

    async def interrupt(self, message: str, tone: SpeechTone) -> None:
        text = f"⚠️ {message}" if tone.earcon == "error" else message
        await self._send(text)

    async def speak(self, message: str) -> None:
        await self._send(message)

    async def _send(self, text: str) -> None:
        url = f"{self.API_BASE}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        logger.debug("Telegram message sent to chat %s", self.chat_id)
