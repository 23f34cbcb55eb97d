from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class SendResult:
    status: str
    provider_message_id: str | None = None
    error: str | None = None


class MessageChannel(Protocol):
    """Entrega da resposta ao cliente. Retentativas e estado de transporte ficam com o canal."""

    async def send(self, restaurant_id: int, customer_phone: str, text: str) -> SendResult:
        ...
