from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from comanda.ai.tools import format_money
from comanda.core.config import (
    AGENT_HISTORY_LIMIT,
    MENU_SEARCH_LIMIT,
    RAG_CUSTOMER_MAX_CHARS,
    RAG_MENU_MAX_CHARS,
)
from comanda.core.errors import PersistenceError, RestaurantNotFoundError
from comanda.models.agent_config import AgentConfig
from comanda.models.conversation_state import ConversationState
from comanda.models.customer import Customer
from comanda.models.restaurant import Restaurant
from comanda.models.restaurant_ai_settings import TONES, UPSELL_LEVELS, RestaurantAISettings
from comanda.services.carts import CartAggregate, load_cart_aggregate
from comanda.services.conversation_state import get_or_create_conversation_state, read_last_shown_products
from comanda.services.customer_insights import InsightsSummary, get_customer_insights
from comanda.services.customers import get_or_create_customer
from comanda.services.history import HistoryEntry, load_conversation_history
from comanda.services.menu import MenuProduct, MenuSnapshot, load_menu_snapshot
from comanda.services.menu_search import search_in_candidates

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AISettings:
    tone: str = "friendly"
    greeting_message: str | None = None
    closing_message: str | None = None
    upsell_aggressiveness: str = "medium"
    max_additional_questions_before_checkout: int = 2
    language: str = "pt-PT"


@dataclass
class ConversationContext:
    restaurant: Restaurant
    message: str
    settings: AISettings = field(default_factory=AISettings)
    agent_config: AgentConfig | None = None
    menu: MenuSnapshot = field(default_factory=MenuSnapshot)
    history: list[HistoryEntry] = field(default_factory=list)
    cart: CartAggregate = field(default_factory=CartAggregate)
    customer: Customer | None = None
    insights: InsightsSummary | None = None
    conversation: ConversationState | None = None
    last_shown: list[dict[str, Any]] = field(default_factory=list)
    formatted: dict[str, str] = field(default_factory=dict)

    @property
    def currency(self) -> str:
        return self.restaurant.currency or "EUR"

    @property
    def has_cart(self) -> bool:
        return not self.cart.is_empty

    def search_menu(self, query: str, limit: int = MENU_SEARCH_LIMIT) -> list[MenuProduct]:
        return [product for product, _ in search_in_candidates(self.menu.products, query, limit=limit)]

    def lookup_payload(self, products: list[MenuProduct]) -> list[dict[str, Any]]:
        return [
            {
                "id": product.id,
                "name": product.name,
                "price": format_money(product.price_cents, self.currency),
                "price_cents": product.price_cents,
                "category": product.category,
                "description": product.description,
                "addons": [
                    {
                        "id": addon.id,
                        "name": addon.name,
                        "price": format_money(addon.price_cents, self.currency),
                        "price_cents": addon.price_cents,
                    }
                    for addon in product.addons
                ],
            }
            for product in products
        ]


def _resolve_settings(row: RestaurantAISettings | None) -> AISettings:
    if row is None:
        return AISettings()
    defaults = AISettings()
    return AISettings(
        tone=row.tone if row.tone in TONES else defaults.tone,
        greeting_message=(row.greeting_message or "").strip() or None,
        closing_message=(row.closing_message or "").strip() or None,
        upsell_aggressiveness=(
            row.upsell_aggressiveness if row.upsell_aggressiveness in UPSELL_LEVELS else defaults.upsell_aggressiveness
        ),
        max_additional_questions_before_checkout=max(int(row.max_additional_questions_before_checkout or 0), 0),
        language=row.language or defaults.language,
    )


def _degrade(label: str, loader: Callable[[], T], default: T) -> T:
    try:
        return loader()
    except SQLAlchemyError:
        logger.warning("Falha ao carregar %s para o contexto; seguindo sem", label, exc_info=True)
        return default


def build_conversation_context(
    db: Session,
    restaurant_id: int,
    customer_phone: str,
    message: str,
    exclude_message_id: int | None = None,
) -> ConversationContext:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if restaurant is None:
        raise RestaurantNotFoundError(restaurant_id)

    settings_row = _degrade(
        "ai_settings",
        lambda: db.query(RestaurantAISettings).filter(RestaurantAISettings.restaurant_id == restaurant_id).first(),
        None,
    )
    agent_config = _degrade(
        "agent_config",
        lambda: db.query(AgentConfig).filter(AgentConfig.restaurant_id == restaurant_id).first(),
        None,
    )
    menu = _degrade("menu", lambda: load_menu_snapshot(db, restaurant_id), MenuSnapshot())
    history = _degrade(
        "history",
        lambda: load_conversation_history(
            db, restaurant_id, customer_phone, limit=AGENT_HISTORY_LIMIT, exclude_message_id=exclude_message_id
        ),
        [],
    )
    cart = _degrade("cart", lambda: load_cart_aggregate(db, restaurant_id, customer_phone), CartAggregate())
    customer = _degrade("customer", lambda: get_or_create_customer(db, restaurant_id, customer_phone), None)
    insights = _degrade("insights", lambda: get_customer_insights(db, customer_phone), None)

    # sem o estado não há como seguir a conversa
    try:
        conversation = get_or_create_conversation_state(db, restaurant_id, customer_phone, cart_id=cart.cart_id)
    except SQLAlchemyError as exc:
        raise PersistenceError("load_conversation_state", str(exc)) from exc

    context = ConversationContext(
        restaurant=restaurant,
        message=message or "",
        settings=_resolve_settings(settings_row),
        agent_config=agent_config,
        menu=menu,
        history=history,
        cart=cart,
        customer=customer,
        insights=insights,
        conversation=conversation,
        last_shown=read_last_shown_products(conversation),
    )
    context.formatted = {
        "menu": format_menu_compact(menu, context.currency),
        "menu_full": format_menu_full(menu, context.currency),
        "cart": format_cart(cart, context.currency),
        "customer": format_customer_compact(customer, insights, context.currency),
        "customer_full": format_customer_full(customer, insights, context.currency),
        "history": format_history(history),
        "last_shown": format_last_shown(context.last_shown),
    }
    return context


# ---------------------------------------------------------------------------
# blocos de texto


def format_menu_full(menu: MenuSnapshot, currency: str = "EUR") -> str:
    if menu.is_empty:
        return "Cardápio vazio."
    lines = []
    for category in menu.categories:
        lines.append(f"{category.name}:")
        for product in category.products:
            line = f"- #{product.id} {product.name} | {format_money(product.price_cents, currency)}"
            if product.description:
                line += f" | {product.description}"
            if product.addons:
                extras = ", ".join(
                    f"#{addon.id} {addon.name} (+{format_money(addon.price_cents, currency)})"
                    for addon in product.addons
                )
                line += f" | extras: {extras}"
            lines.append(line)
    return "\n".join(lines)


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3].rstrip() + "..."


def _menu_names_only(menu: MenuSnapshot) -> str:
    return "Categorias: " + ", ".join(category.name for category in menu.categories)


def format_menu_compact(menu: MenuSnapshot, currency: str = "EUR") -> str:
    """Resumo por categoria. Detalhes de produto só via search_menu.

    Se passar do limite (ou não ficar menor que metade do completo) cai para
    a lista só com os nomes das categorias. Num cardápio minúsculo essa lista
    ainda é cortada em metade do completo.
    """
    if menu.is_empty:
        return "Cardápio vazio."

    lines = []
    for category in menu.categories:
        prices = [product.price_cents for product in category.products]
        low, high = min(prices), max(prices)
        price_range = format_money(low, currency)
        if high != low:
            price_range = f"{price_range} a {format_money(high, currency)}"
        lines.append(f"{category.name} ({len(prices)} itens, {price_range})")
    compact = "\n".join(lines)

    full_size = len(format_menu_full(menu, currency))
    if len(compact) > RAG_MENU_MAX_CHARS or len(compact) * 2 > full_size:
        return _clip(_menu_names_only(menu), full_size // 2)
    return compact


def format_cart(cart: CartAggregate, currency: str = "EUR") -> str:
    if cart.is_empty:
        return "Carrinho vazio."
    lines = []
    for index, line in enumerate(cart.lines, start=1):
        text = f"{index}. {line.quantity}x {line.product_name} (#{line.product_id})"
        if line.addons:
            text += " + " + ", ".join(addon.name for addon in line.addons)
        if line.notes:
            text += f" [{line.notes}]"
        text += f" = {format_money(line.line_total_cents, currency)}"
        lines.append(text)
    lines.append(f"Subtotal: {format_money(cart.subtotal_cents, currency)}")
    return "\n".join(lines)


def format_customer_compact(
    customer: Customer | None,
    insights: InsightsSummary | None,
    currency: str = "EUR",
) -> str:
    parts = []
    if customer is not None and customer.name:
        parts.append(f"Cliente: {customer.name}")
    if insights is None or not insights.order_count:
        parts.append("primeiro pedido")
    else:
        parts.append(f"{insights.order_count} pedidos")
        if insights.average_ticket_cents:
            parts.append(f"ticket médio {format_money(round(insights.average_ticket_cents), currency)}")
        if insights.order_frequency_days is not None:
            parts.append(f"pede a cada ~{insights.order_frequency_days} dias")
    text = " | ".join(parts)
    limit = min(RAG_CUSTOMER_MAX_CHARS, len(format_customer_full(customer, insights, currency)) // 2)
    return _clip(text, limit)


def format_customer_full(
    customer: Customer | None,
    insights: InsightsSummary | None,
    currency: str = "EUR",
) -> str:
    lines = []
    if customer is not None:
        lines.append(f"Nome: {customer.name or '-'}")
        lines.append(f"Morada padrão: {customer.default_address or '-'}")
        lines.append(f"Pagamento padrão: {customer.default_payment_method or '-'}")
    if insights is None:
        lines.append("Sem histórico de pedidos.")
        return "\n".join(lines)

    lines.append(f"Pedidos: {insights.order_count}")
    if insights.average_ticket_cents:
        lines.append(f"Ticket médio: {format_money(round(insights.average_ticket_cents), currency)}")
    if insights.order_frequency_days is not None:
        lines.append(f"Frequência: a cada {insights.order_frequency_days} dias")
    if insights.last_order_id:
        lines.append(f"Último pedido: #{insights.last_order_id}")
    if insights.last_interaction_at:
        lines.append(f"Última interação: {insights.last_interaction_at.isoformat()}")
    if insights.preferred_items:
        items = ", ".join(f"{entry.get('name')} ({entry.get('count')}x)" for entry in insights.preferred_items)
        lines.append(f"Itens preferidos: {items}")
    if insights.preferred_addons:
        addons = ", ".join(f"{entry.get('name')} ({entry.get('count')}x)" for entry in insights.preferred_addons)
        lines.append(f"Extras preferidos: {addons}")
    return "\n".join(lines)


def format_history(history: list[HistoryEntry]) -> str:
    if not history:
        return "(sem mensagens anteriores)"
    labels = {"user": "Cliente", "assistant": "Atendente"}
    return "\n".join(f"{labels.get(entry.role, entry.role)}: {entry.content}" for entry in history)


def format_last_shown(products: list[dict[str, Any]]) -> str:
    if not products:
        return ""
    return "\n".join(f"{index}. {entry['name']} (#{entry['id']})" for index, entry in enumerate(products, start=1))
