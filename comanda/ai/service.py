from __future__ import annotations

import logging

from comanda.ai.base import ReasoningProvider
from comanda.ai.mock_provider import MockProvider
from comanda.ai.openai_provider import OpenAIProvider
from comanda.core.config import AGENT_PROVIDER, OPENAI_API_KEY
from comanda.models.agent_config import AgentConfig

logger = logging.getLogger(__name__)


def get_provider(config: AgentConfig | None = None) -> ReasoningProvider:
    """Escolhe o provedor pelo agent_config do restaurante, com AGENT_PROVIDER como padrão."""
    provider = ((config.provider if config else None) or AGENT_PROVIDER or "mock").strip().lower()
    if provider == "openai":
        if not OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY ausente; usando provedor mock")
            return MockProvider()
        return OpenAIProvider(
            api_key=OPENAI_API_KEY,
            model=(config.model if config else None) or None,
            temperature=config.temperature if config else None,
        )
    return MockProvider()
