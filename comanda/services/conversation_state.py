from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from comanda.core.config import LAST_SHOWN_LIMIT
from comanda.fsm import states
from comanda.models.conversation_state import ConversationState

logger = logging.getLogger(__name__)


def get_or_create_conversation_state(
    db: Session,
    restaurant_id: int,
    customer_phone: str,
    cart_id: int | None = None,
) -> ConversationState:
    conversation = (
        db.query(ConversationState)
        .filter(
            ConversationState.restaurant_id == restaurant_id,
            ConversationState.user_phone == customer_phone,
        )
        .first()
    )
    if conversation is None:
        conversation = ConversationState(
            restaurant_id=restaurant_id,
            user_phone=customer_phone,
            state=states.INITIAL_STATE,
            cart_id=cart_id,
            last_shown_products=[],
            state_metadata={},
        )
        db.add(conversation)
        db.flush()
        return conversation

    healed = states.coerce_state(conversation.state)
    if healed != conversation.state:
        logger.warning(
            "Estado persistido inválido '%s' tratado como %s (conversation_id=%s)",
            conversation.state,
            healed,
            conversation.id,
        )
        conversation.state = healed
    return conversation


def read_last_shown_products(conversation: ConversationState) -> list[dict[str, Any]]:
    shown = []
    for entry in conversation.last_shown_products or []:
        if isinstance(entry, dict) and entry.get("id") is not None and entry.get("name"):
            shown.append({"id": entry["id"], "name": str(entry["name"])})
    return shown


def remember_shown_products(conversation: ConversationState, products: list[dict[str, Any]]) -> None:
    # atribui lista nova para o SQLAlchemy detectar a mudança no JSON
    conversation.last_shown_products = [
        {"id": product["id"], "name": product["name"]} for product in products[:LAST_SHOWN_LIMIT]
    ]
