from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from comanda.fsm import intents, states
from comanda.fsm.intents import IntentClassifier, classify_intents
from comanda.services.menu_search import normalize

logger = logging.getLogger(__name__)


PAYMENT_ALIASES = {
    "cash": ("dinheiro", "cash", "numerario"),
    "card": ("cartao", "card", "multibanco", "credito", "debito"),
    "mbway": ("mbway", "mb way"),
    "pix": ("pix",),
}

# chaves esperadas no metadata ao entrar em cada estado
REQUIRED_METADATA = {
    states.COLLECTING_PAYMENT: ("delivery_address",),
    states.CONFIRMING_ORDER: ("delivery_address", "payment_method"),
}


class StateMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    delivery_address: Optional[str] = None
    payment_method: Optional[str] = None
    last_order_id: Optional[int] = None
    last_error: Optional[str] = None


def next_state(
    current: str,
    text: str | None,
    has_cart: bool,
    classifier: IntentClassifier = classify_intents,
) -> str:
    state = states.coerce_state(current)
    found = classifier(text or "")

    if state == states.IDLE:
        return states.BROWSING_MENU

    if state == states.BROWSING_MENU:
        if intents.ADD_ITEM in found:
            return states.ADDING_ITEM
        if has_cart and intents.CHECKOUT in found:
            return states.COLLECTING_ADDRESS
        return states.BROWSING_MENU

    if state == states.ADDING_ITEM:
        if intents.EXTRAS in found:
            return states.CHOOSING_ADDONS
        return states.CONFIRMING_ITEM

    if state == states.CHOOSING_ADDONS:
        return states.CONFIRMING_ITEM

    if state == states.CONFIRMING_ITEM:
        if intents.MORE_ITEMS in found:
            return states.BROWSING_MENU
        if has_cart and intents.CHECKOUT in found:
            return states.COLLECTING_ADDRESS
        return states.BROWSING_MENU

    if state == states.COLLECTING_ADDRESS:
        return states.COLLECTING_PAYMENT

    if state == states.COLLECTING_PAYMENT:
        return states.CONFIRMING_ORDER

    if state == states.CONFIRMING_ORDER:
        if intents.AFFIRM in found:
            return states.ORDER_COMPLETED
        return states.BROWSING_MENU

    # ORDER_COMPLETED
    return states.IDLE


def settle(current: str) -> str:
    """Resolve os estados de passagem (order_completed -> idle -> browsing_menu)."""
    state = states.coerce_state(current)
    while state in states.TRANSIENT_STATES:
        state = next_state(state, "", False)
    return state


def advance(
    current: str,
    text: str | None,
    has_cart: bool,
    classifier: IntentClassifier = classify_intents,
) -> str:
    return next_state(settle(current), text, has_cart, classifier=classifier)


def resolve_transition(current: str, proposed: str, outcomes: Iterable[Any]) -> str:
    """Aplica o resultado das tools sobre a transição proposta pelo texto.

    ``outcomes`` são objetos com ``name`` e ``ok``.
    """
    settled = settle(current)
    outcomes = list(outcomes)

    # pedido gravado: o carrinho já foi fechado
    if any(outcome.ok and outcome.name == "finalize_order" for outcome in outcomes):
        return states.ORDER_COMPLETED

    if any(not outcome.ok for outcome in outcomes):
        return settled

    if proposed == states.ORDER_COMPLETED:
        return states.CONFIRMING_ORDER if settled == states.CONFIRMING_ORDER else settled

    added = any(outcome.ok and outcome.name == "add_to_cart" for outcome in outcomes)
    if added and proposed in states.SHOPPING_STATES:
        return states.CONFIRMING_ITEM

    return states.coerce_state(proposed)


def normalize_payment_method(text: str | None) -> str | None:
    normalized = normalize(text or "")
    if not normalized:
        return None
    for method, aliases in PAYMENT_ALIASES.items():
        if any(alias in normalized for alias in aliases):
            return method
    return None


def capture_metadata(settled_state: str, text: str | None, metadata: dict[str, Any]) -> dict[str, Any]:
    """Guarda morada/pagamento ditos pelo cliente nos estados de coleta."""
    updated = dict(metadata or {})
    value = (text or "").strip()
    if not value:
        return updated
    if settled_state == states.COLLECTING_ADDRESS:
        updated["delivery_address"] = value
    elif settled_state == states.COLLECTING_PAYMENT:
        updated["payment_method"] = normalize_payment_method(value) or value
    return updated


def validate_metadata(state: str, metadata: Any) -> tuple[dict[str, Any], list[str]]:
    """Valida o metadata na entrada do estado. Devolve (metadata limpo, chaves faltando)."""
    state = states.coerce_state(state)
    if state == states.IDLE:
        return {}, []

    raw = metadata if isinstance(metadata, dict) else {}
    try:
        parsed = StateMetadata.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Metadata inválido descartado: state=%s erro=%s", state, exc)
        parsed = StateMetadata()

    cleaned = parsed.model_dump(exclude_none=True)
    missing = [key for key in REQUIRED_METADATA.get(state, ()) if not cleaned.get(key)]
    return cleaned, missing
