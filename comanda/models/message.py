from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from comanda.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    customer_phone = Column(String(30), nullable=False)
    from_number = Column(String(30), nullable=True)
    to_number = Column(String(30), nullable=True)
    body = Column(Text, nullable=False, default="")
    direction = Column(String(10), nullable=False)  # inbound / outbound
    provider_message_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


Index("ix_messages_restaurant_customer_created", Message.restaurant_id, Message.customer_phone, Message.created_at)
