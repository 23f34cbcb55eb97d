from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from comanda.core.config import AGENT_HISTORY_LIMIT
from comanda.models.message import Message


@dataclass(frozen=True)
class HistoryEntry:
    role: str  # user / assistant
    content: str


def load_conversation_history(
    db: Session,
    restaurant_id: int,
    customer_phone: str,
    limit: int = AGENT_HISTORY_LIMIT,
    exclude_message_id: int | None = None,
) -> list[HistoryEntry]:
    """Últimas ``limit`` mensagens, da mais antiga para a mais recente."""
    query = db.query(Message).filter(
        Message.restaurant_id == restaurant_id,
        Message.customer_phone == customer_phone,
    )
    if exclude_message_id is not None:
        query = query.filter(Message.id != exclude_message_id)

    rows = query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit).all()

    history = []
    for row in reversed(rows):
        body = (row.body or "").strip()
        if not body:
            continue
        role = "user" if row.direction == "inbound" else "assistant"
        history.append(HistoryEntry(role=role, content=body))
    return history
