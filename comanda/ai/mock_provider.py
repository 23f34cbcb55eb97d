from __future__ import annotations

from typing import Any

from comanda.ai.schema import (
    ADD_TO_CART,
    FINALIZE_ORDER,
    REMOVE_FROM_CART,
    MenuLookup,
    ProviderReply,
    ProviderRequest,
    RawToolCall,
)
from comanda.fsm import intents, states
from comanda.fsm.intents import classify_intents
from comanda.services.menu_search import normalize, parse_quantity, strip_filler


_ORDINALS = {
    "primeiro": 1,
    "primeira": 1,
    "segundo": 2,
    "segunda": 2,
    "terceiro": 3,
    "terceira": 3,
    "quarto": 4,
    "quarta": 4,
    "quinto": 5,
    "quinta": 5,
    "ultimo": -1,
    "ultima": -1,
}

_MENU_WORDS = {"cardapio", "menu", "tem", "opcoes"}
_REMOVE_WORDS = {"remove", "remover", "tira", "tirar"}

_STATE_REPLIES = {
    states.COLLECTING_ADDRESS: "Perfeito! Qual é a morada para entrega?",
    states.COLLECTING_PAYMENT: "Anotado. Como prefere pagar? Dinheiro, cartão, MB Way ou Pix.",
    states.CONFIRMING_ORDER: "Tudo certo. Posso confirmar o pedido? Responda 'sim' para fechar.",
    states.CONFIRMING_ITEM: "Quer mais alguma coisa ou posso finalizar?",
}
_FALLBACK_REPLY = "Posso mostrar o cardápio ou anotar o seu pedido. O que vai querer?"


def _pick_ordinal(normalized_text: str, last_shown: list[dict[str, Any]]) -> dict[str, Any] | None:
    if not last_shown:
        return None
    for token in normalized_text.split():
        position = _ORDINALS.get(token)
        if position is None:
            continue
        index = len(last_shown) - 1 if position == -1 else position - 1
        if 0 <= index < len(last_shown):
            return last_shown[index]
    return None


def _match_addons(normalized_text: str, product: dict[str, Any]) -> list[dict[str, Any]]:
    matches = []
    for addon in product.get("addons") or []:
        name = normalize(str(addon.get("name") or ""))
        if name and name in normalized_text:
            matches.append(addon)
    return matches


class MockProvider:
    """Provedor determinístico por palavras-chave, usado em dev e nos testes.

    Fluxo de adicionar: primeiro pede um search_menu, depois chama
    add_to_cart com o melhor resultado.
    """

    name = "mock"

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        hints = request.hints or {}
        text = request.last_user_message
        normalized_text = normalize(text)
        found = classify_intents(text)
        state = hints.get("state")
        next_state = hints.get("next_state")
        has_cart = int(hints.get("cart_items") or 0) > 0

        if state == states.CONFIRMING_ORDER and intents.AFFIRM in found:
            metadata = hints.get("metadata") or {}
            return ProviderReply(
                reply_text="Fechando o seu pedido...",
                tool_calls=[
                    RawToolCall(
                        name=FINALIZE_ORDER,
                        arguments={
                            "delivery_address": metadata.get("delivery_address"),
                            "payment_method": metadata.get("payment_method"),
                        },
                    )
                ],
            )

        if state in (states.COLLECTING_ADDRESS, states.COLLECTING_PAYMENT) or (
            has_cart and intents.CHECKOUT in found
        ):
            return ProviderReply(reply_text=_STATE_REPLIES.get(next_state, _FALLBACK_REPLY))

        tokens = set(normalized_text.split())
        wants_remove = bool(tokens & _REMOVE_WORDS)
        wants_add = intents.ADD_ITEM in found and not wants_remove

        shown = _pick_ordinal(normalized_text, hints.get("last_shown") or [])
        if shown is not None and wants_add:
            qty = parse_quantity(text)
            return ProviderReply(
                reply_text=f"Beleza! Adicionei {qty}x {shown['name']}. Quer mais alguma coisa?",
                tool_calls=[RawToolCall(name=ADD_TO_CART, arguments={"product_id": shown["id"], "quantity": qty})],
            )

        if not request.lookup_results and hints.get("lookup_rounds"):
            return ProviderReply(reply_text="Não encontrei esse item no cardápio. Quer ver as opções?")

        if not request.lookup_results:
            query = " ".join(token for token in strip_filler(normalized_text).split() if token not in _MENU_WORDS)
            if query and (wants_add or wants_remove or tokens & _MENU_WORDS):
                return ProviderReply(lookups=[MenuLookup(query=query)])
            return ProviderReply(reply_text=_STATE_REPLIES.get(next_state, _FALLBACK_REPLY))

        best = request.lookup_results[0]
        if wants_remove:
            return ProviderReply(
                reply_text=f"Tirei {best['name']} do carrinho.",
                tool_calls=[RawToolCall(name=REMOVE_FROM_CART, arguments={"product_id": best["id"]})],
            )

        if wants_add:
            qty = parse_quantity(text)
            addons = _match_addons(normalized_text, best)
            arguments: dict[str, Any] = {"product_id": best["id"], "quantity": qty}
            suffix = ""
            if addons:
                arguments["addon_ids"] = [addon["id"] for addon in addons]
                suffix = " com " + ", ".join(addon["name"] for addon in addons)
            return ProviderReply(
                reply_text=f"Beleza! Adicionei {qty}x {best['name']}{suffix}. Quer mais alguma coisa?",
                tool_calls=[RawToolCall(name=ADD_TO_CART, arguments=arguments)],
            )

        lines = [f"{index}. {item['name']} - {item['price']}" for index, item in enumerate(request.lookup_results, start=1)]
        return ProviderReply(reply_text="Encontrei estas opções:\n" + "\n".join(lines))
