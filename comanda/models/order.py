from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func

from comanda.core.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)

    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), index=True, nullable=False)
    user_phone = Column(String(30), index=True, nullable=False)

    # 1:1 com o carrinho que gerou o pedido
    cart_id = Column(Integer, ForeignKey("carts.id"), unique=True, nullable=False)

    delivery_address = Column(Text, default="", nullable=False)
    payment_method = Column(String(30), default="", nullable=False)

    # sempre calculados a partir do carrinho persistido, em centavos
    subtotal_cents = Column(Integer, default=0, nullable=False)
    delivery_fee_cents = Column(Integer, default=0, nullable=False)
    total_cents = Column(Integer, default=0, nullable=False)

    status = Column(String, default="new", nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
