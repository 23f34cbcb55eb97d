from __future__ import annotations

from comanda.whatsapp.base import MessageChannel
from comanda.whatsapp.mock_provider import LoggingChannel

_channel: MessageChannel | None = None


def get_channel() -> MessageChannel:
    global _channel
    if _channel is None:
        _channel = LoggingChannel()
    return _channel


def set_channel(channel: MessageChannel | None) -> None:
    """Troca o canal de saída (relay externo em produção, fakes nos testes)."""
    global _channel
    _channel = channel
