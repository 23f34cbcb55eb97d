from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from comanda.models.customer import Customer

logger = logging.getLogger(__name__)


def get_or_create_customer(
    db: Session,
    restaurant_id: int,
    phone: str,
    name: str | None = None,
) -> Customer:
    customer = (
        db.query(Customer)
        .filter(Customer.restaurant_id == restaurant_id, Customer.phone == phone)
        .first()
    )
    if customer:
        if name and not customer.name:
            customer.name = name
        return customer

    customer = Customer(
        restaurant_id=restaurant_id,
        phone=phone,
        name=name,
        profile_metadata={
            "source": "whatsapp",
            "first_contact_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    db.add(customer)
    db.flush()
    logger.info("Cliente novo criado: restaurant=%s customer_id=%s", restaurant_id, customer.id)
    return customer


def remember_checkout_defaults(customer: Customer, delivery_address: str, payment_method: str) -> None:
    """Guarda morada e pagamento do primeiro pedido como padrão do cliente."""
    if delivery_address and not customer.default_address:
        customer.default_address = delivery_address
    if payment_method and not customer.default_payment_method:
        customer.default_payment_method = payment_method
