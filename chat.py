from __future__ import annotations
import asyncio
import logging
from typing import Dict, List, Optional, Protocol

import requests

from models import ChatMessage, ChatRole
from openrouter_client import OpenRouterClient
from prompts import COMPANION_SYSTEM_PROMPT, GREETING

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(self, for_user: Optional[str] = None, for_ai: Optional[str] = None) -> None:
        ...

    async def send_context(self, text: str) -> None:
        ...

    def reset(self) -> None:
        ...


class ChatCompanion:
    """
    The chat side-channel. Keeps two views of the conversation:
    - `messages`: what the player sees (greeting, game events, replies, errors),
    - `_history`: what the model sees (system prompt, events, context updates).
    """
    def __init__(self, client: OpenRouterClient, temperature: float = 0.7):
        self.client = client
        self.temperature = temperature
        self._lock = asyncio.Lock()
        self._generation = 0
        self._pending = 0
        self.messages: List[ChatMessage] = []
        self._history: List[Dict[str, str]] = []
        self.reset()

    @property
    def busy(self) -> bool:
        return self._pending > 0

    def reset(self) -> None:
        # Replies still in flight belong to the old conversation and are dropped
        self._generation += 1
        self.messages = [ChatMessage(ChatRole.MODEL, GREETING)]
        self._history = [
            {"role": "system", "content": COMPANION_SYSTEM_PROMPT},
            {"role": "assistant", "content": GREETING},
        ]

    async def notify(self, for_user: Optional[str] = None, for_ai: Optional[str] = None) -> None:
        if for_user:
            self.messages.append(ChatMessage(ChatRole.GAME_EVENT, for_user))
        if for_ai:
            await self._send(for_ai)

    async def send_context(self, text: str) -> None:
        generation = self._generation
        async with self._lock:
            if generation == self._generation:
                self._history.append({"role": "user", "content": text})

    async def send_user_message(self, text: str) -> None:
        text = text.strip()
        if not text:
            raise ValueError("Message must not be empty")
        self.messages.append(ChatMessage(ChatRole.USER, text))
        await self._send(text)

    async def _send(self, text: str) -> None:
        generation = self._generation
        self._pending += 1
        try:
            # One model call at a time so replies keep event order
            async with self._lock:
                if generation != self._generation:
                    return
                self._history.append({"role": "user", "content": text})
                try:
                    reply = await asyncio.to_thread(
                        self.client.chat, messages=list(self._history), temperature=self.temperature,
                    )
                except (RuntimeError, requests.RequestException) as e:
                    logger.warning("Chat companion call failed: %s", e)
                    if generation == self._generation:
                        self.messages.append(ChatMessage(ChatRole.SYSTEM, str(e) or "Sorry, I encountered an error."))
                    return
                if generation != self._generation:
                    return
                reply = reply.strip()
                if reply:
                    self._history.append({"role": "assistant", "content": reply})
                    self.messages.append(ChatMessage(ChatRole.MODEL, reply))
        finally:
            self._pending -= 1
