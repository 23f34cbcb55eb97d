from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from comanda.core.database import Base


TONES = ("friendly", "formal", "playful", "professional")
UPSELL_LEVELS = ("low", "medium", "high")


class RestaurantAISettings(Base):
    __tablename__ = "restaurant_ai_settings"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False, unique=True)
    tone = Column(String(20), default="friendly", nullable=False)
    greeting_message = Column(Text, nullable=True)
    closing_message = Column(Text, nullable=True)
    upsell_aggressiveness = Column(String(10), default="medium", nullable=False)
    max_additional_questions_before_checkout = Column(Integer, default=2, nullable=False)
    language = Column(String(10), default="pt-PT", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
