from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func

from comanda.core.database import Base


MODE_AI = "ai"
MODE_MANUAL = "manual"
MODES = (MODE_AI, MODE_MANUAL)


class ConversationMode(Base):
    __tablename__ = "conversation_modes"
    __table_args__ = (UniqueConstraint("restaurant_id", "user_phone", name="uq_conversation_modes_pair"),)

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False)
    user_phone = Column(String(30), nullable=False)
    mode = Column(String(10), default=MODE_AI, nullable=False)
    taken_over_by = Column(String, nullable=True)
    taken_over_at = Column(DateTime(timezone=True), nullable=True)
    handoff_reason = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
