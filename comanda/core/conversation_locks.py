from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class ConversationLockService(ABC):
    @abstractmethod
    def hold(self, *, restaurant_id: int, customer_phone: str):
        """Context manager assíncrono que serializa o processamento de um par restaurante+cliente."""


class InMemoryConversationLockService(ConversationLockService):
    """Um asyncio.Lock por (restaurante, cliente), removido quando ninguém mais espera.

    Serializa apenas dentro do processo; entre instâncias quem protege é a
    coluna de versão do conversation_state.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[int, str], _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, *, restaurant_id: int, customer_phone: str) -> AsyncIterator[None]:
        key = (restaurant_id, customer_phone)
        entry = self._entries.setdefault(key, _LockEntry())
        entry.waiters += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.waiters -= 1
            if entry.waiters == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def active_keys(self) -> list[tuple[int, str]]:
        return list(self._entries.keys())
