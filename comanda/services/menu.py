from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session, selectinload

from comanda.models.menu_category import MenuCategory
from comanda.models.product import Product


@dataclass(frozen=True)
class MenuAddon:
    id: int
    name: str
    price_cents: int


@dataclass(frozen=True)
class MenuProduct:
    id: int
    name: str
    price_cents: int
    category_id: int
    category: str
    description: str = ""
    addons: tuple[MenuAddon, ...] = ()

    def find_addon(self, addon_id: int) -> MenuAddon | None:
        return next((addon for addon in self.addons if addon.id == addon_id), None)


@dataclass(frozen=True)
class MenuCategorySnapshot:
    id: int
    name: str
    products: tuple[MenuProduct, ...] = ()


@dataclass
class MenuSnapshot:
    categories: list[MenuCategorySnapshot] = field(default_factory=list)

    @property
    def products(self) -> list[MenuProduct]:
        return [product for category in self.categories for product in category.products]

    @property
    def is_empty(self) -> bool:
        return not any(category.products for category in self.categories)

    def find_product(self, product_id: int | None) -> MenuProduct | None:
        if product_id is None:
            return None
        return next((product for product in self.products if product.id == product_id), None)


def load_menu_snapshot(db: Session, restaurant_id: int) -> MenuSnapshot:
    """Categorias -> produtos disponíveis -> addons disponíveis, sempre lido do banco."""
    categories = (
        db.query(MenuCategory)
        .options(selectinload(MenuCategory.products).selectinload(Product.addons))
        .filter(MenuCategory.restaurant_id == restaurant_id)
        .order_by(MenuCategory.sort_order.asc(), MenuCategory.id.asc())
        .all()
    )

    snapshot = MenuSnapshot()
    for category in categories:
        products = []
        for product in category.products:
            if not product.is_available or product.restaurant_id != restaurant_id:
                continue
            addons = tuple(
                MenuAddon(id=addon.id, name=addon.name, price_cents=int(addon.price_cents or 0))
                for addon in product.addons
                if addon.is_available
            )
            products.append(
                MenuProduct(
                    id=product.id,
                    name=product.name,
                    price_cents=int(product.price_cents or 0),
                    category_id=category.id,
                    category=category.name,
                    description=(product.description or "").strip(),
                    addons=addons,
                )
            )
        # categoria sem produto disponível não aparece no cardápio
        if products:
            snapshot.categories.append(
                MenuCategorySnapshot(id=category.id, name=category.name, products=tuple(products))
            )
    return snapshot
