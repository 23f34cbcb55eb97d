from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from comanda.core.errors import ToolValidationError

ADD_TO_CART = "add_to_cart"
REMOVE_FROM_CART = "remove_from_cart"
FINALIZE_ORDER = "finalize_order"
SEARCH_MENU = "search_menu"

MUTATION_TOOLS = (ADD_TO_CART, REMOVE_FROM_CART, FINALIZE_ORDER)


class _ToolArgs(BaseModel):
    # argumentos extras (ex: total sugerido pelo modelo) são ignorados
    model_config = ConfigDict(extra="ignore")


class AddToCart(_ToolArgs):
    name: Literal["add_to_cart"] = ADD_TO_CART
    product_id: int
    quantity: int = Field(1, ge=1)
    addon_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None


class RemoveFromCart(_ToolArgs):
    name: Literal["remove_from_cart"] = REMOVE_FROM_CART
    product_id: int


class FinalizeOrder(_ToolArgs):
    name: Literal["finalize_order"] = FINALIZE_ORDER
    delivery_address: Optional[str] = None
    payment_method: Optional[str] = None


ToolCall = Annotated[Union[AddToCart, RemoveFromCart, FinalizeOrder], Field(discriminator="name")]

_TOOL_CALL_ADAPTER = TypeAdapter(ToolCall)


class RawToolCall(BaseModel):
    """Chamada como veio do provedor, antes da validação."""

    name: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class MenuLookup(BaseModel):
    query: str = Field(..., min_length=1)


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str


class ProviderRequest(BaseModel):
    system_prompt: str
    messages: List[ChatMessage] = Field(default_factory=list)
    tools: List[dict[str, Any]] = Field(default_factory=list)
    lookup_results: List[dict[str, Any]] = Field(default_factory=list)
    hints: dict[str, Any] = Field(default_factory=dict)

    @property
    def last_user_message(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""


class ProviderReply(BaseModel):
    reply_text: str = ""
    tool_calls: List[RawToolCall] = Field(default_factory=list)
    lookups: List[MenuLookup] = Field(default_factory=list)


def parse_tool_call(raw: RawToolCall) -> Union[AddToCart, RemoveFromCart, FinalizeOrder]:
    if raw.name not in MUTATION_TOOLS:
        raise ToolValidationError(raw.name, "Não consegui realizar essa ação. Pode repetir o pedido?")

    payload = dict(raw.arguments or {})
    payload["name"] = raw.name
    try:
        return _TOOL_CALL_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ToolValidationError(raw.name, _validation_message(raw.name, exc)) from exc


def _validation_message(tool_name: str, exc: ValidationError) -> str:
    fields = {str(error["loc"][-1]) for error in exc.errors() if error.get("loc")}
    if "quantity" in fields:
        return "A quantidade precisa ser pelo menos 1."
    if "product_id" in fields:
        return "Não identifiquei qual produto você quer. Pode dizer o nome do item?"
    if tool_name == FINALIZE_ORDER:
        return "Preciso da morada e da forma de pagamento para fechar o pedido."
    return "Não consegui entender esse pedido. Pode repetir?"
