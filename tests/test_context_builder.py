from datetime import datetime, timedelta, timezone

import pytest

from comanda.ai import context as context_module
from comanda.ai.context import (
    build_conversation_context,
    format_customer_compact,
    format_customer_full,
    format_menu_compact,
    format_menu_full,
)
from comanda.core.errors import RestaurantNotFoundError
from comanda.fsm import states
from comanda.models.cart import Cart, CartItem, CartItemAddon
from comanda.models.conversation_state import ConversationState
from comanda.models.customer import Customer
from comanda.models.customer_insights import CustomerInsights
from comanda.models.message import Message
from comanda.models.restaurant_ai_settings import RestaurantAISettings
from comanda.services.customer_insights import InsightsSummary
from comanda.services.menu import MenuCategorySnapshot, MenuProduct, MenuSnapshot, load_menu_snapshot
from tests.fixtures_data import (
    CALABRESA_ID,
    CUSTOMER_PHONE,
    EXTRA_CHEESE_ID,
    MARGHERITA_ID,
    QUATRO_QUEIJOS_ID,
    RESTAURANT_ID,
    build_session_factory,
    seed_large_menu,
    seed_restaurant,
)


@pytest.fixture
def db():
    session_factory = build_session_factory()
    session = session_factory()
    seed_restaurant(session)
    yield session
    session.close()


def test_new_customer_gets_valid_context(db):
    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    assert context.history == []
    assert context.cart.is_empty
    assert context.insights is None
    assert context.customer is not None
    assert context.customer.phone == CUSTOMER_PHONE
    assert context.customer.profile_metadata["source"] == "whatsapp"
    assert context.conversation.state == states.IDLE
    assert context.last_shown == []
    assert context.settings.tone == "friendly"
    assert context.formatted["cart"] == "Carrinho vazio."
    assert "primeiro pedido" in context.formatted["customer"]


def test_missing_restaurant_is_fatal(db):
    with pytest.raises(RestaurantNotFoundError):
        build_conversation_context(db, 999, CUSTOMER_PHONE, "oi")


def test_menu_snapshot_only_lists_available_items(db):
    menu = load_menu_snapshot(db, RESTAURANT_ID)
    product_ids = {product.id for product in menu.products}

    assert MARGHERITA_ID in product_ids
    assert QUATRO_QUEIJOS_ID not in product_ids
    margherita = menu.find_product(MARGHERITA_ID)
    assert [addon.id for addon in margherita.addons] == [EXTRA_CHEESE_ID]
    assert [category.name for category in menu.categories] == ["Pizzas", "Bebidas"]


def test_history_is_oldest_first_and_excludes_current_message(db):
    base = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    for index in range(12):
        db.add(
            Message(
                restaurant_id=RESTAURANT_ID,
                customer_phone=CUSTOMER_PHONE,
                body=f"msg {index}",
                direction="inbound" if index % 2 == 0 else "outbound",
                created_at=base + timedelta(minutes=index),
            )
        )
    current = Message(
        restaurant_id=RESTAURANT_ID,
        customer_phone=CUSTOMER_PHONE,
        body="mensagem atual",
        direction="inbound",
        created_at=base + timedelta(hours=1),
    )
    db.add(current)
    db.commit()

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "mensagem atual", exclude_message_id=current.id)

    assert len(context.history) == 10
    assert context.history[0].content == "msg 2"
    assert context.history[-1].content == "msg 11"
    assert context.history[-1].role == "assistant"
    assert context.history[0].role == "user"
    assert all(entry.content != "mensagem atual" for entry in context.history)


def test_cart_subtotal_includes_addons(db):
    cart = Cart(restaurant_id=RESTAURANT_ID, user_phone=CUSTOMER_PHONE, status="active")
    db.add(cart)
    db.flush()
    item = CartItem(cart_id=cart.id, product_id=MARGHERITA_ID, quantity=2)
    item.addons = [CartItemAddon(addon_id=EXTRA_CHEESE_ID)]
    db.add(item)
    db.add(CartItem(cart_id=cart.id, product_id=CALABRESA_ID, quantity=1))
    db.commit()

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    assert context.cart.subtotal_cents == (1000 + 100) * 2 + 1200
    assert context.has_cart
    assert context.conversation.cart_id == cart.id
    assert "Subtotal: 34,00 €" in context.formatted["cart"]
    assert "Queijo extra" in context.formatted["cart"]


def test_compact_menu_is_less_than_half_of_full_menu_for_200_products(db):
    seed_large_menu(db)

    menu = load_menu_snapshot(db, RESTAURANT_ID)
    compact = format_menu_compact(menu)
    full = format_menu_full(menu)

    assert len(menu.products) >= 200
    assert len(compact) * 2 < len(full)
    for category in menu.categories:
        assert category.name in compact


def test_compact_menu_falls_back_to_category_names_when_over_cap(db, monkeypatch):
    seed_large_menu(db)
    monkeypatch.setattr(context_module, "RAG_MENU_MAX_CHARS", 40)

    compact = format_menu_compact(load_menu_snapshot(db, RESTAURANT_ID))

    assert compact.startswith("Categorias: ")
    assert "Categoria 8" in compact
    assert "Pizzas" in compact


def test_compact_blocks_stay_under_half_for_tiny_inputs():
    category = "Sobremesas caseiras da avó"
    menu = MenuSnapshot(
        categories=[
            MenuCategorySnapshot(
                id=1,
                name=category,
                products=(MenuProduct(id=1, name="Pudim", price_cents=350, category_id=1, category=category),),
            )
        ]
    )
    assert len(format_menu_compact(menu)) * 2 <= len(format_menu_full(menu))

    customer = Customer(phone=CUSTOMER_PHONE, name="Maria " + "da Conceição " * 20)
    insights = InsightsSummary(order_count=2, average_ticket_cents=1500.0)
    compact = format_customer_compact(customer, insights)
    assert len(compact) * 2 <= len(format_customer_full(customer, insights))
    assert compact.endswith("...")

def test_customer_blocks_are_bounded(db):
    db.add(
        Customer(
            restaurant_id=RESTAURANT_ID,
            phone=CUSTOMER_PHONE,
            name="Ana",
            default_address="Rua do Carmo 7",
            default_payment_method="card",
            profile_metadata={},
        )
    )
    db.add(
        CustomerInsights(
            phone=CUSTOMER_PHONE,
            order_count=6,
            average_ticket_cents=1840.0,
            order_frequency_days=7,
            preferred_items=[{"id": MARGHERITA_ID, "name": "Pizza Margherita", "count": 5}]
            + [{"id": 1000 + index, "name": f"Prato {index}", "count": 1} for index in range(30)],
            preferred_addons=[{"id": EXTRA_CHEESE_ID, "name": "Queijo extra", "count": 4}],
            last_order_id=12,
        )
    )
    db.commit()

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")
    compact = context.formatted["customer"]
    full = context.formatted["customer_full"]

    assert "6 pedidos" in compact
    assert "18,40 €" in compact
    assert "Pizza Margherita" not in compact
    assert "Pizza Margherita (5x)" in full
    assert len(compact) * 2 < len(full)
    assert len(compact) <= context_module.RAG_CUSTOMER_MAX_CHARS


def test_settings_defaults_and_overrides(db):
    db.add(
        RestaurantAISettings(
            restaurant_id=RESTAURANT_ID,
            tone="formal",
            greeting_message="Bem-vindo à Cantina!",
            upsell_aggressiveness="extremo",
            max_additional_questions_before_checkout=1,
        )
    )
    db.commit()

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    assert context.settings.tone == "formal"
    assert context.settings.greeting_message == "Bem-vindo à Cantina!"
    assert context.settings.upsell_aggressiveness == "medium"
    assert context.settings.max_additional_questions_before_checkout == 1


def test_corrupt_state_loads_as_idle_and_keeps_last_shown(db):
    db.add(
        ConversationState(
            restaurant_id=RESTAURANT_ID,
            user_phone=CUSTOMER_PHONE,
            state="estado_fantasma",
            last_shown_products=[{"id": CALABRESA_ID, "name": "Pizza Calabresa"}, {"lixo": True}],
            state_metadata={},
        )
    )
    db.commit()

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    assert context.conversation.state == states.IDLE
    assert context.last_shown == [{"id": CALABRESA_ID, "name": "Pizza Calabresa"}]
    assert "1. Pizza Calabresa" in context.formatted["last_shown"]


def test_search_menu_ranks_matching_products(db):
    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    results = context.search_menu("quero uma calabresa")
    assert results[0].id == CALABRESA_ID

    payload = context.lookup_payload(results[:1])
    assert payload[0]["price"] == "12,00 €"
    assert payload[0]["addons"][0]["name"] == "Cebola"

    assert all(product.id != QUATRO_QUEIJOS_ID for product in context.search_menu("quatro queijos"))


def test_sub_load_failure_degrades_gracefully(db, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def _broken(*_args, **_kwargs):
        raise OperationalError("SELECT", {}, Exception("tabela sumiu"))

    monkeypatch.setattr(context_module, "get_customer_insights", _broken)
    monkeypatch.setattr(context_module, "load_menu_snapshot", _broken)

    context = build_conversation_context(db, RESTAURANT_ID, CUSTOMER_PHONE, "oi")

    assert context.insights is None
    assert context.menu.is_empty
    assert context.formatted["menu"] == "Cardápio vazio."
