from __future__ import annotations

from typing import Protocol

from comanda.ai.schema import ProviderRequest, ProviderReply


class ReasoningProvider(Protocol):
    name: str

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        ...
