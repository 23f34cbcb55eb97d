from __future__ import annotations

IDLE = "idle"
BROWSING_MENU = "browsing_menu"
ADDING_ITEM = "adding_item"
CHOOSING_ADDONS = "choosing_addons"
CONFIRMING_ITEM = "confirming_item"
COLLECTING_ADDRESS = "collecting_address"
COLLECTING_PAYMENT = "collecting_payment"
CONFIRMING_ORDER = "confirming_order"
ORDER_COMPLETED = "order_completed"

ALL_STATES = (
    IDLE,
    BROWSING_MENU,
    ADDING_ITEM,
    CHOOSING_ADDONS,
    CONFIRMING_ITEM,
    COLLECTING_ADDRESS,
    COLLECTING_PAYMENT,
    CONFIRMING_ORDER,
    ORDER_COMPLETED,
)

INITIAL_STATE = IDLE

# estados de passagem: resolvidos antes de aplicar a mensagem
TRANSIENT_STATES = frozenset({ORDER_COMPLETED, IDLE})

# onde o cliente ainda está montando o carrinho
SHOPPING_STATES = frozenset({BROWSING_MENU, ADDING_ITEM, CHOOSING_ADDONS, CONFIRMING_ITEM})

LABELS = {
    IDLE: "Inativo",
    BROWSING_MENU: "Vendo menu",
    ADDING_ITEM: "Escolhendo item",
    CHOOSING_ADDONS: "Escolhendo extras",
    CONFIRMING_ITEM: "Confirmando item",
    COLLECTING_ADDRESS: "Definindo morada",
    COLLECTING_PAYMENT: "Definindo pagamento",
    CONFIRMING_ORDER: "Confirmando pedido",
    ORDER_COMPLETED: "Pedido realizado",
}


def is_valid_state(value) -> bool:
    return isinstance(value, str) and value in ALL_STATES


def coerce_state(value) -> str:
    """Estado persistido desconhecido ou corrompido volta para idle."""
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if cleaned in ALL_STATES:
            return cleaned
    return INITIAL_STATE
