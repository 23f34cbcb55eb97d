"""Detecção de intenção por palavras-chave.

Substring simples sobre o texto normalizado: "não quero mais" também casa
com "quero". Um classificador estruturado pode substituir
``classify_intents`` desde que devolva o mesmo conjunto de intenções.
"""
from __future__ import annotations

from typing import Callable

from comanda.services.menu_search import normalize

ADD_ITEM = "add_item"
CHECKOUT = "checkout"
EXTRAS = "extras"
MORE_ITEMS = "more_items"
AFFIRM = "affirm"

INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    ADD_ITEM: ("quero", "add"),
    CHECKOUT: ("finalizar", "pedir"),
    EXTRAS: ("extra", "adicional"),
    MORE_ITEMS: ("mais", "outro"),
    AFFIRM: ("sim", "confirmar"),
}

IntentClassifier = Callable[[str], frozenset]


def classify_intents(text: str | None) -> frozenset:
    normalized = normalize(text or "")
    if not normalized:
        return frozenset()
    found = set()
    for intent, keywords in INTENT_KEYWORDS.items():
        if any(keyword in normalized for keyword in keywords):
            found.add(intent)
    return frozenset(found)
