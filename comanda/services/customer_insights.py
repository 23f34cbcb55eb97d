from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from comanda.models.customer_insights import CustomerInsights

logger = logging.getLogger(__name__)

INSIGHT_STATUSES = {"created", "confirmed", "canceled"}


@dataclass
class InsightsSummary:
    order_count: int = 0
    average_ticket_cents: float | None = None
    order_frequency_days: int | None = None
    preferred_items: list[dict[str, Any]] = field(default_factory=list)
    preferred_addons: list[dict[str, Any]] = field(default_factory=list)
    last_order_id: int | None = None
    last_interaction_at: datetime | None = None


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def get_customer_insights(db: Session, phone: str) -> InsightsSummary | None:
    if not phone:
        return None
    insights = db.query(CustomerInsights).filter(CustomerInsights.phone == phone).first()
    if insights is None:
        return None
    return InsightsSummary(
        order_count=int(insights.order_count or 0),
        average_ticket_cents=(
            round(float(insights.average_ticket_cents), 2) if insights.average_ticket_cents else None
        ),
        order_frequency_days=insights.order_frequency_days,
        preferred_items=list(insights.preferred_items or []),
        preferred_addons=list(insights.preferred_addons or []),
        last_order_id=insights.last_order_id,
        last_interaction_at=_as_utc(insights.last_interaction_at),
    )


def _bump_frequency(entries: list[dict[str, Any]], entry_id: Any, name: str) -> None:
    for entry in entries:
        if entry.get("id") == entry_id:
            entry["count"] = int(entry.get("count", 0) or 0) + 1
            return
    entries.append({"id": entry_id, "name": name, "count": 1})


def update_customer_insights_after_order(
    db: Session,
    *,
    phone: str,
    order_id: int,
    total_cents: int,
    items: list[dict[str, Any]],
    status: str = "created",
    now: datetime | None = None,
) -> CustomerInsights:
    """Atualiza o agregado do cliente num pedido criado, confirmado ou cancelado.

    ``items`` segue o formato ``{"product_id", "product_name", "addons": [{"addon_id", "addon_name"}]}``.
    Leitura-modificação-escrita simples: em corrida, a última escrita vence.
    """
    if status not in INSIGHT_STATUSES:
        raise ValueError(f"status inválido para insights: {status}")

    now = _as_utc(now) or datetime.now(timezone.utc)
    insights = db.query(CustomerInsights).filter(CustomerInsights.phone == phone).first()
    if insights is None:
        insights = CustomerInsights(
            phone=phone,
            order_count=0,
            average_ticket_cents=0.0,
            preferred_items=[],
            preferred_addons=[],
        )
        db.add(insights)

    order_count = int(insights.order_count or 0)
    average_ticket = float(insights.average_ticket_cents or 0.0)
    preferred_items = [dict(entry) for entry in (insights.preferred_items or [])]
    preferred_addons = [dict(entry) for entry in (insights.preferred_addons or [])]
    frequency_days = insights.order_frequency_days
    previous_interaction = _as_utc(insights.last_interaction_at)

    if status in {"created", "confirmed"}:
        order_count += 1
        if order_count == 1:
            average_ticket = float(total_cents)
        else:
            average_ticket = ((average_ticket * (order_count - 1)) + total_cents) / order_count

        for item in items:
            _bump_frequency(preferred_items, item.get("product_id"), item.get("product_name") or "")
            for addon in item.get("addons") or []:
                _bump_frequency(preferred_addons, addon.get("addon_id"), addon.get("addon_name") or "")

        preferred_items.sort(key=lambda entry: entry["count"], reverse=True)
        preferred_addons.sort(key=lambda entry: entry["count"], reverse=True)

        if previous_interaction is not None and order_count > 1:
            days_since_last = int((now - previous_interaction).total_seconds() // 86400)
            if frequency_days is None:
                frequency_days = days_since_last
            else:
                frequency_days = round(
                    (frequency_days * (order_count - 2) + days_since_last) / (order_count - 1)
                )

    insights.order_count = order_count
    insights.average_ticket_cents = round(average_ticket, 2)
    insights.preferred_items = preferred_items
    insights.preferred_addons = preferred_addons
    insights.order_frequency_days = frequency_days
    insights.last_order_id = order_id
    insights.last_interaction_at = now

    logger.info(
        "Insights atualizados: order_id=%s status=%s pedidos=%s ticket_medio=%.2f",
        order_id,
        status,
        order_count,
        average_ticket,
    )
    return insights
