import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Float, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from comanda.core.database import Base


class CustomerInsights(Base):
    __tablename__ = "customer_insights"

    id = Column(Integer, primary_key=True)
    # chave só pelo telefone (agregado entre restaurantes)
    phone = Column(String(30), unique=True, index=True, nullable=False)
    order_count = Column(Integer, default=0, nullable=False)
    average_ticket_cents = Column(Float, default=0.0, nullable=False)
    preferred_items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    preferred_addons = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    order_frequency_days = Column(Integer, nullable=True)
    last_order_id = Column(Integer, nullable=True)
    last_interaction_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
