from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship

from comanda.core.database import Base


CART_ACTIVE = "active"
CART_COMPLETED = "completed"


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False)
    user_phone = Column(String(30), nullable=False)
    status = Column(String(20), default=CART_ACTIVE, nullable=False)  # active / completed
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id")


Index("ix_carts_restaurant_phone_status", Cart.restaurant_id, Cart.user_phone, Cart.status)


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")
    addons = relationship("CartItemAddon", back_populates="cart_item", cascade="all, delete-orphan")


class CartItemAddon(Base):
    __tablename__ = "cart_item_addons"

    id = Column(Integer, primary_key=True)
    cart_item_id = Column(Integer, ForeignKey("cart_items.id"), index=True, nullable=False)
    addon_id = Column(Integer, ForeignKey("addons.id"), nullable=False)

    cart_item = relationship("CartItem", back_populates="addons")
    addon = relationship("Addon")
