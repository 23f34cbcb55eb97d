import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from comanda.core.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("restaurant_id", "phone", name="uq_customers_restaurant_phone"),)

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False, index=True)
    phone = Column(String(30), nullable=False, index=True)
    name = Column(String(120), nullable=True)
    default_address = Column(Text, nullable=True)
    default_payment_method = Column(String(30), nullable=True)
    profile_metadata = Column("metadata", JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
