from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from comanda.models.agent_config import AgentConfig
from comanda.models.conversation_mode import MODE_AI, MODE_MANUAL, MODES, ConversationMode

logger = logging.getLogger(__name__)


def get_conversation_mode(db: Session, restaurant_id: int, customer_phone: str) -> str:
    row = (
        db.query(ConversationMode)
        .filter(ConversationMode.restaurant_id == restaurant_id, ConversationMode.user_phone == customer_phone)
        .first()
    )
    if row is None or row.mode not in MODES:
        return MODE_AI
    return row.mode


def set_conversation_mode(
    db: Session,
    restaurant_id: int,
    customer_phone: str,
    mode: str,
    *,
    taken_over_by: str | None = None,
    handoff_reason: str | None = None,
) -> ConversationMode:
    """Troca feita pela equipe; vale a partir da próxima mensagem recebida."""
    if mode not in MODES:
        raise ValueError(f"Modo inválido: {mode}")

    row = (
        db.query(ConversationMode)
        .filter(ConversationMode.restaurant_id == restaurant_id, ConversationMode.user_phone == customer_phone)
        .first()
    )
    if row is None:
        row = ConversationMode(restaurant_id=restaurant_id, user_phone=customer_phone)
        db.add(row)

    row.mode = mode
    if mode == MODE_MANUAL:
        row.taken_over_by = taken_over_by
        row.taken_over_at = datetime.now(timezone.utc)
        row.handoff_reason = handoff_reason
    else:
        row.taken_over_by = None
        row.taken_over_at = None
        row.handoff_reason = None

    db.commit()
    db.refresh(row)
    logger.info("Modo da conversa alterado: restaurant=%s mode=%s", restaurant_id, mode)
    return row


def is_automation_enabled(db: Session, restaurant_id: int, customer_phone: str) -> bool:
    config = db.query(AgentConfig).filter(AgentConfig.restaurant_id == restaurant_id).first()
    if config is not None and not config.enabled:
        return False
    return get_conversation_mode(db, restaurant_id, customer_phone) == MODE_AI
