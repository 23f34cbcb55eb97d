from __future__ import annotations

from sqlalchemy.orm import Session

from comanda.models.message import Message
from comanda.models.processed_message import ProcessedMessage


def is_duplicate_delivery(db: Session, message_id: str | None) -> bool:
    if not message_id:
        return False
    return db.query(ProcessedMessage).filter_by(message_id=message_id).first() is not None


def record_inbound(
    db: Session,
    *,
    restaurant_id: int,
    customer_phone: str,
    body: str,
    restaurant_phone: str | None = None,
    message_id: str | None = None,
) -> Message:
    if message_id:
        db.add(ProcessedMessage(message_id=message_id))
    message = Message(
        restaurant_id=restaurant_id,
        customer_phone=customer_phone,
        from_number=customer_phone,
        to_number=restaurant_phone,
        body=body or "",
        direction="inbound",
        provider_message_id=message_id,
    )
    db.add(message)
    db.flush()
    return message


def record_outbound(
    db: Session,
    *,
    restaurant_id: int,
    customer_phone: str,
    body: str,
    restaurant_phone: str | None = None,
) -> Message:
    message = Message(
        restaurant_id=restaurant_id,
        customer_phone=customer_phone,
        from_number=restaurant_phone,
        to_number=customer_phone,
        body=body,
        direction="outbound",
    )
    db.add(message)
    db.flush()
    return message
