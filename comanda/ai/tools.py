from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from comanda.ai.schema import (
    ADD_TO_CART,
    FINALIZE_ORDER,
    REMOVE_FROM_CART,
    SEARCH_MENU,
    AddToCart,
    FinalizeOrder,
    RawToolCall,
    RemoveFromCart,
    parse_tool_call,
)
from comanda.core.errors import PersistenceError, ToolValidationError
from comanda.fsm import states
from comanda.fsm.engine import normalize_payment_method
from comanda.models.addon import Addon
from comanda.models.cart import CART_COMPLETED, CartItem, CartItemAddon
from comanda.models.conversation_state import ConversationState
from comanda.models.order import Order
from comanda.models.product import Product
from comanda.models.restaurant import Restaurant
from comanda.services.carts import build_cart_aggregate, ensure_active_cart, get_active_cart
from comanda.services.customers import get_or_create_customer, remember_checkout_defaults

logger = logging.getLogger(__name__)


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": ADD_TO_CART,
        "description": "Adiciona um produto do cardápio ao carrinho do cliente.",
        "parameters": {
            "type": "object",
            "properties": {
                "product_id": {"type": "integer"},
                "quantity": {"type": "integer", "minimum": 1},
                "addon_ids": {"type": "array", "items": {"type": "integer"}},
                "notes": {"type": "string"},
            },
            "required": ["product_id"],
        },
    },
    {
        "name": REMOVE_FROM_CART,
        "description": "Remove do carrinho todos os itens de um produto.",
        "parameters": {
            "type": "object",
            "properties": {"product_id": {"type": "integer"}},
            "required": ["product_id"],
        },
    },
    {
        "name": FINALIZE_ORDER,
        "description": "Fecha o pedido com o carrinho atual. O total é calculado pelo sistema.",
        "parameters": {
            "type": "object",
            "properties": {
                "delivery_address": {"type": "string"},
                "payment_method": {"type": "string", "enum": ["cash", "card", "mbway", "pix"]},
            },
        },
    },
    {
        "name": SEARCH_MENU,
        "description": "Busca produtos no cardápio completo (ids, preços e extras). Não altera nada.",
        "parameters": {
            "type": "object",
            "properties": {"query": {"type": "string"}},
            "required": ["query"],
        },
    },
]


@dataclass
class ToolOutcome:
    name: str
    ok: bool
    message: str = ""
    order_id: int | None = None
    # pedido fechado: total e itens, usados nos insights depois do commit
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolContext:
    db: Session
    restaurant: Restaurant
    customer_phone: str
    conversation: ConversationState
    metadata: dict[str, Any] = field(default_factory=dict)


def format_money(cents: int | None, currency: str = "EUR") -> str:
    value = (int(cents or 0)) / 100
    formatted = f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    if (currency or "").upper() == "BRL":
        return f"R$ {formatted}"
    return f"{formatted} €"


def _add_to_cart(ctx: ToolContext, call: AddToCart) -> ToolOutcome:
    db = ctx.db
    product = (
        db.query(Product)
        .filter(Product.id == call.product_id, Product.restaurant_id == ctx.restaurant.id)
        .first()
    )
    if product is None:
        raise ToolValidationError(call.name, "Não encontrei esse item no cardápio. Quer ver as opções?")
    if not product.is_available:
        raise ToolValidationError(call.name, f"{product.name} não está disponível no momento.")

    addon_ids = list(dict.fromkeys(call.addon_ids))
    addons: list[Addon] = []
    if addon_ids:
        addons = db.query(Addon).filter(Addon.id.in_(addon_ids)).order_by(Addon.id.asc()).all()
        found = {addon.id: addon for addon in addons}
        for addon_id in addon_ids:
            addon = found.get(addon_id)
            if addon is None or addon.product_id != product.id:
                raise ToolValidationError(call.name, f"Esse extra não existe para {product.name}.")
            if not addon.is_available:
                raise ToolValidationError(call.name, f"O extra {addon.name} não está disponível no momento.")

    cart = ensure_active_cart(db, ctx.restaurant.id, ctx.customer_phone)
    ctx.conversation.cart_id = cart.id

    item = CartItem(
        cart_id=cart.id,
        product_id=product.id,
        quantity=call.quantity,
        notes=(call.notes or "").strip() or None,
    )
    item.addons = [CartItemAddon(addon_id=addon.id) for addon in addons]
    db.add(item)
    db.flush()

    suffix = f" (com {', '.join(addon.name for addon in addons)})" if addons else ""
    return ToolOutcome(
        name=call.name,
        ok=True,
        message=f"Adicionei {call.quantity}x {product.name}{suffix} ao carrinho.",
    )


def _remove_from_cart(ctx: ToolContext, call: RemoveFromCart) -> ToolOutcome:
    db = ctx.db
    cart = get_active_cart(db, ctx.restaurant.id, ctx.customer_phone)
    if cart is None:
        return ToolOutcome(name=call.name, ok=True, message="Seu carrinho já está vazio.")

    items = db.query(CartItem).filter(CartItem.cart_id == cart.id, CartItem.product_id == call.product_id).all()
    if not items:
        return ToolOutcome(name=call.name, ok=True, message="Esse item não estava no carrinho.")

    for item in items:
        db.delete(item)
    db.flush()
    return ToolOutcome(name=call.name, ok=True, message="Item removido do carrinho.")


def _finalize_order(ctx: ToolContext, call: FinalizeOrder) -> ToolOutcome:
    db = ctx.db
    cart = get_active_cart(db, ctx.restaurant.id, ctx.customer_phone)
    aggregate = build_cart_aggregate(db, cart)
    if cart is None or aggregate.is_empty:
        raise ToolValidationError(call.name, "Seu carrinho está vazio. O que vai querer pedir?")

    customer = get_or_create_customer(db, ctx.restaurant.id, ctx.customer_phone)

    address = (
        (call.delivery_address or "").strip()
        or (ctx.metadata.get("delivery_address") or "").strip()
        or (customer.default_address or "").strip()
    )
    payment_raw = call.payment_method or ctx.metadata.get("payment_method") or customer.default_payment_method
    payment = normalize_payment_method(payment_raw) or (payment_raw or "").strip()
    if not address:
        raise ToolValidationError(call.name, "Qual é a morada para entrega?")
    if not payment:
        raise ToolValidationError(call.name, "Como prefere pagar? Dinheiro, cartão, MB Way ou Pix.")

    # total só a partir das linhas gravadas, nunca do valor sugerido pelo modelo
    subtotal_cents = aggregate.subtotal_cents
    delivery_fee_cents = int(ctx.restaurant.delivery_fee_cents or 0)
    total_cents = subtotal_cents + delivery_fee_cents

    order = Order(
        restaurant_id=ctx.restaurant.id,
        user_phone=ctx.customer_phone,
        cart_id=cart.id,
        delivery_address=address,
        payment_method=payment,
        subtotal_cents=subtotal_cents,
        delivery_fee_cents=delivery_fee_cents,
        total_cents=total_cents,
        status="new",
    )
    db.add(order)
    cart.status = CART_COMPLETED

    conversation = ctx.conversation
    conversation.cart_id = None
    conversation.state = states.ORDER_COMPLETED

    remember_checkout_defaults(customer, address, payment)
    db.flush()

    ctx.metadata["last_order_id"] = order.id
    ctx.metadata["delivery_address"] = address
    ctx.metadata["payment_method"] = payment

    logger.info(
        "Pedido criado: order_id=%s cart_id=%s total_cents=%s",
        order.id,
        cart.id,
        total_cents,
        extra={"restaurant_id": ctx.restaurant.id, "customer_phone": ctx.customer_phone},
    )
    items = [
        {
            "product_id": line.product_id,
            "product_name": line.product_name,
            "addons": [{"addon_id": addon.id, "addon_name": addon.name} for addon in line.addons],
        }
        for line in aggregate.lines
    ]
    return ToolOutcome(
        name=call.name,
        ok=True,
        message=f"Pedido #{order.id} confirmado! Total: {format_money(total_cents, ctx.restaurant.currency)}.",
        order_id=order.id,
        details={"total_cents": total_cents, "items": items},
    )


_HANDLERS = {
    ADD_TO_CART: _add_to_cart,
    REMOVE_FROM_CART: _remove_from_cart,
    FINALIZE_ORDER: _finalize_order,
}


def execute_tool_calls(ctx: ToolContext, calls: list[RawToolCall]) -> list[ToolOutcome]:
    """Executa as chamadas em ordem dentro da transação do chamador (sem commit).

    Depois de uma chamada rejeitada as seguintes não rodam: o pedido não pode
    ser fechado em cima de um carrinho que o cliente não confirmou. Depois de
    ``finalize_order`` também não, o carrinho já virou pedido.
    """
    outcomes: list[ToolOutcome] = []
    for raw in calls:
        if outcomes and (not outcomes[-1].ok or outcomes[-1].name == FINALIZE_ORDER):
            outcomes.append(ToolOutcome(name=raw.name, ok=False))
            continue
        try:
            call = parse_tool_call(raw)
            outcome = _HANDLERS[call.name](ctx, call)
        except ToolValidationError as exc:
            logger.info("Tool rejeitada: %s (%s)", exc.tool_name, exc.user_message)
            outcome = ToolOutcome(name=raw.name, ok=False, message=exc.user_message)
        except StaleDataError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceError(raw.name, str(exc)) from exc
        outcomes.append(outcome)
    return outcomes
