import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, ValidationError

from comanda.ai.pipeline import ConversationPipeline

router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])
logger = logging.getLogger(__name__)

_pipeline: ConversationPipeline | None = None


class InboundPayload(BaseModel):
    """Mensagem já normalizada pelo relay (telefone formatado, texto extraído)."""

    customer_phone: str = Field(..., min_length=3)
    message_text: str = ""
    message_id: Optional[str] = None
    contact_name: Optional[str] = None


def get_pipeline() -> ConversationPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = ConversationPipeline()
    return _pipeline


@router.post("/{restaurant_id}/inbound")
async def inbound_message(
    restaurant_id: int,
    request: Request,
    pipeline: ConversationPipeline = Depends(get_pipeline),
):
    # sempre 200: erro interno não pode virar retentativa do relay
    try:
        payload = InboundPayload.model_validate(await request.json())
    except (ValidationError, ValueError):
        logger.warning("Payload inválido no webhook (restaurant=%s)", restaurant_id)
        return {"status": "ignored", "reason": "invalid_payload"}

    try:
        result = await pipeline.handle_inbound(
            restaurant_id,
            payload.customer_phone,
            payload.message_text,
            message_id=payload.message_id,
            contact_name=payload.contact_name,
        )
    except Exception:
        logger.exception("Erro inesperado processando mensagem (restaurant=%s)", restaurant_id)
        return {"status": "error"}

    return {"status": result.status, "state": result.state, "order_id": result.order_id}
