from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session, selectinload

from comanda.models.cart import CART_ACTIVE, Cart, CartItem, CartItemAddon


@dataclass(frozen=True)
class CartLineAddon:
    id: int
    name: str
    price_cents: int


@dataclass(frozen=True)
class CartLine:
    item_id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    notes: str | None = None
    addons: tuple[CartLineAddon, ...] = ()

    @property
    def addons_total_cents(self) -> int:
        return sum(addon.price_cents for addon in self.addons)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * (self.unit_price_cents + self.addons_total_cents)


@dataclass
class CartAggregate:
    cart_id: int | None = None
    lines: list[CartLine] = field(default_factory=list)

    @property
    def subtotal_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)


def get_active_cart(db: Session, restaurant_id: int, customer_phone: str) -> Cart | None:
    return (
        db.query(Cart)
        .filter(
            Cart.restaurant_id == restaurant_id,
            Cart.user_phone == customer_phone,
            Cart.status == CART_ACTIVE,
        )
        .order_by(Cart.created_at.desc(), Cart.id.desc())
        .first()
    )


def ensure_active_cart(db: Session, restaurant_id: int, customer_phone: str) -> Cart:
    cart = get_active_cart(db, restaurant_id, customer_phone)
    if cart:
        return cart

    cart = Cart(restaurant_id=restaurant_id, user_phone=customer_phone, status=CART_ACTIVE)
    db.add(cart)
    db.flush()
    return cart


def build_cart_aggregate(db: Session, cart: Cart | None) -> CartAggregate:
    if cart is None:
        return CartAggregate()

    items = (
        db.query(CartItem)
        .options(
            selectinload(CartItem.product),
            selectinload(CartItem.addons).selectinload(CartItemAddon.addon),
        )
        .filter(CartItem.cart_id == cart.id)
        .order_by(CartItem.id.asc())
        .all()
    )

    lines = []
    for item in items:
        # item órfão (produto apagado) não entra no total
        if item.product is None:
            continue
        addons = tuple(
            CartLineAddon(id=link.addon.id, name=link.addon.name, price_cents=int(link.addon.price_cents or 0))
            for link in item.addons
            if link.addon is not None
        )
        lines.append(
            CartLine(
                item_id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                quantity=int(item.quantity or 0),
                unit_price_cents=int(item.product.price_cents or 0),
                notes=item.notes,
                addons=addons,
            )
        )
    return CartAggregate(cart_id=cart.id, lines=lines)


def load_cart_aggregate(db: Session, restaurant_id: int, customer_phone: str) -> CartAggregate:
    return build_cart_aggregate(db, get_active_cart(db, restaurant_id, customer_phone))
