"""Dados e fábricas reutilizáveis para os cenários de teste."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from comanda.core.database import Base
import comanda.models  # noqa: F401
from comanda.models.addon import Addon
from comanda.models.menu_category import MenuCategory
from comanda.models.product import Product
from comanda.models.restaurant import Restaurant

RESTAURANT_ID = 1
OTHER_RESTAURANT_ID = 2
CUSTOMER_PHONE = "351912345678"

PIZZAS_CATEGORY_ID = 10
DRINKS_CATEGORY_ID = 11

MARGHERITA_ID = 100
CALABRESA_ID = 101
QUATRO_QUEIJOS_ID = 102  # indisponível
COCA_ID = 110
FOREIGN_PRODUCT_ID = 200  # de outro restaurante

EXTRA_CHEESE_ID = 500
BACON_ID = 501  # indisponível
CALABRESA_ONION_ID = 510

DELIVERY_FEE_CENTS = 300


def build_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_restaurant(db, *, delivery_fee_cents: int = DELIVERY_FEE_CENTS, currency: str = "EUR") -> Restaurant:
    restaurant = Restaurant(
        id=RESTAURANT_ID,
        name="Cantina da Praça",
        phone="351210000000",
        delivery_fee_cents=delivery_fee_cents,
        currency=currency,
    )
    db.add(restaurant)
    db.add(MenuCategory(id=PIZZAS_CATEGORY_ID, restaurant_id=RESTAURANT_ID, name="Pizzas", sort_order=1))
    db.add(MenuCategory(id=DRINKS_CATEGORY_ID, restaurant_id=RESTAURANT_ID, name="Bebidas", sort_order=2))
    db.add(
        Product(
            id=MARGHERITA_ID,
            restaurant_id=RESTAURANT_ID,
            category_id=PIZZAS_CATEGORY_ID,
            name="Pizza Margherita",
            description="Tomate, mozzarella e manjericão",
            price_cents=1000,
        )
    )
    db.add(
        Product(
            id=CALABRESA_ID,
            restaurant_id=RESTAURANT_ID,
            category_id=PIZZAS_CATEGORY_ID,
            name="Pizza Calabresa",
            price_cents=1200,
        )
    )
    db.add(
        Product(
            id=QUATRO_QUEIJOS_ID,
            restaurant_id=RESTAURANT_ID,
            category_id=PIZZAS_CATEGORY_ID,
            name="Pizza Quatro Queijos",
            price_cents=1300,
            is_available=False,
        )
    )
    db.add(
        Product(
            id=COCA_ID,
            restaurant_id=RESTAURANT_ID,
            category_id=DRINKS_CATEGORY_ID,
            name="Coca Cola",
            price_cents=250,
        )
    )
    db.add(Addon(id=EXTRA_CHEESE_ID, product_id=MARGHERITA_ID, name="Queijo extra", price_cents=100))
    db.add(Addon(id=BACON_ID, product_id=MARGHERITA_ID, name="Bacon", price_cents=150, is_available=False))
    db.add(Addon(id=CALABRESA_ONION_ID, product_id=CALABRESA_ID, name="Cebola", price_cents=50))

    db.add(Restaurant(id=OTHER_RESTAURANT_ID, name="Outro Lugar", delivery_fee_cents=0))
    db.add(MenuCategory(id=20, restaurant_id=OTHER_RESTAURANT_ID, name="Massas", sort_order=1))
    db.add(
        Product(
            id=FOREIGN_PRODUCT_ID,
            restaurant_id=OTHER_RESTAURANT_ID,
            category_id=20,
            name="Lasanha",
            price_cents=1500,
        )
    )
    db.commit()
    return restaurant


def seed_large_menu(db, *, restaurant_id: int = RESTAURANT_ID, categories: int = 8, products: int = 200) -> None:
    """Cardápio grande para medir o tamanho dos blocos de contexto."""
    per_category = products // categories
    next_id = 1000
    for index in range(categories):
        category_id = 100 + index
        db.add(
            MenuCategory(
                id=category_id,
                restaurant_id=restaurant_id,
                name=f"Categoria {index + 1}",
                sort_order=10 + index,
            )
        )
        for position in range(per_category):
            db.add(
                Product(
                    id=next_id,
                    restaurant_id=restaurant_id,
                    category_id=category_id,
                    name=f"Prato {index + 1}.{position + 1}",
                    description="Receita da casa com ingredientes frescos",
                    price_cents=800 + position * 25,
                )
            )
            next_id += 1
    db.commit()
