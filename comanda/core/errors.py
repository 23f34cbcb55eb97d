from __future__ import annotations


class AgentError(RuntimeError):
    """Base para falhas do atendimento automatizado."""


class ToolValidationError(AgentError):
    def __init__(self, tool_name: str, user_message: str):
        super().__init__(f"{tool_name}: {user_message}")
        self.tool_name = tool_name
        self.user_message = user_message


class ProviderError(AgentError):
    def __init__(self, provider: str, detail: str, *, timeout: bool = False):
        super().__init__(f"Erro no provedor {provider}: {detail}")
        self.provider = provider
        self.detail = detail
        self.timeout = timeout


class PersistenceError(AgentError):
    def __init__(self, operation: str, detail: str):
        super().__init__(f"Falha ao gravar ({operation}): {detail}")
        self.operation = operation
        self.detail = detail


class RestaurantNotFoundError(AgentError):
    def __init__(self, restaurant_id: int):
        super().__init__(f"Restaurante {restaurant_id} não encontrado")
        self.restaurant_id = restaurant_id
