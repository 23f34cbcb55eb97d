from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from comanda.core.database import Base


class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    # número do WhatsApp do restaurante (remetente das respostas)
    phone = Column(String(30), nullable=True, index=True)
    delivery_fee_cents = Column(Integer, default=0, nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    categories = relationship("MenuCategory", back_populates="restaurant", order_by="MenuCategory.sort_order")
