from __future__ import annotations

import logging
import uuid

from comanda.core.logging_setup import mask_phone
from comanda.whatsapp.base import MessageChannel, SendResult

logger = logging.getLogger(__name__)


class LoggingChannel(MessageChannel):
    """Canal padrão: só registra no log. O relay real do WhatsApp fica fora deste serviço."""

    async def send(self, restaurant_id: int, customer_phone: str, text: str) -> SendResult:
        provider_message_id = f"mock-{uuid.uuid4().hex[:10]}"
        logger.info(
            "Resposta enviada (mock) para %s: %s",
            mask_phone(customer_phone),
            text,
            extra={"restaurant_id": restaurant_id},
        )
        return SendResult(status="sent", provider_message_id=provider_message_id)
