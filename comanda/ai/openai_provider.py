from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from comanda.ai.schema import SEARCH_MENU, MenuLookup, ProviderReply, ProviderRequest, RawToolCall
from comanda.core.config import (
    AGENT_PROVIDER_TIMEOUT_SECONDS,
    OPENAI_API_KEY,
    OPENAI_BASE_URL,
    OPENAI_MODEL,
)
from comanda.core.errors import ProviderError

logger = logging.getLogger(__name__)


def _should_retry(status_code: int) -> bool:
    # limite de taxa e instabilidade
    return status_code == 429 or status_code in (500, 502, 503, 504)


def _backoff_seconds(attempt: int) -> float:
    # 0.5s, 1s, 2s... (máx 4s)
    sec = 0.5 * (2 ** max(0, attempt - 1))
    return min(sec, 4.0)


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("Argumentos de tool_call inválidos descartados")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class OpenAIProvider:
    """Chat completions com function calling. Qualquer falha vira ProviderError."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        timeout: float = AGENT_PROVIDER_TIMEOUT_SECONDS,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or OPENAI_API_KEY
        self.base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self.model = model or OPENAI_MODEL
        self.temperature = 0.3 if temperature is None else temperature
        self.timeout = timeout
        self.retries = max(retries, 1)
        self._transport = transport

    def _build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        system = request.system_prompt
        if request.hints:
            system += "\n\nDados da conversa (JSON):\n" + json.dumps(request.hints, ensure_ascii=False, default=str)

        messages: list[dict[str, Any]] = [{"role": "system", "content": system}]
        messages.extend({"role": message.role, "content": message.content} for message in request.messages)
        if request.lookup_results:
            messages.append(
                {
                    "role": "system",
                    "content": "Resultado do search_menu:\n" + json.dumps(request.lookup_results, ensure_ascii=False),
                }
            )

        return {
            "model": self.model,
            "temperature": self.temperature,
            "messages": messages,
            "tools": [{"type": "function", "function": tool} for tool in request.tools],
            "tool_choice": "auto",
        }

    def _parse_reply(self, data: dict[str, Any]) -> ProviderReply:
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, "resposta sem choices")
        message = choices[0].get("message") or {}

        tool_calls: list[RawToolCall] = []
        lookups: list[MenuLookup] = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            name = str(function.get("name") or "").strip()
            if not name:
                continue
            arguments = _decode_arguments(function.get("arguments"))
            if name == SEARCH_MENU:
                query = str(arguments.get("query") or "").strip()
                if query:
                    lookups.append(MenuLookup(query=query))
                continue
            tool_calls.append(RawToolCall(name=name, arguments=arguments))

        return ProviderReply(reply_text=(message.get("content") or "").strip(), tool_calls=tool_calls, lookups=lookups)

    async def complete(self, request: ProviderRequest) -> ProviderReply:
        if not self.api_key:
            raise ProviderError(self.name, "OPENAI_API_KEY não configurada")

        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = self._build_payload(request)

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(1, self.retries + 1):
                try:
                    r = await client.post(url, headers=headers, json=payload)
                except httpx.TimeoutException as exc:
                    raise ProviderError(self.name, "timeout", timeout=True) from exc
                except httpx.HTTPError as exc:
                    if attempt < self.retries:
                        await asyncio.sleep(_backoff_seconds(attempt))
                        continue
                    raise ProviderError(self.name, str(exc)) from exc

                if 200 <= r.status_code < 300:
                    try:
                        return self._parse_reply(r.json())
                    except ValueError as exc:
                        raise ProviderError(self.name, f"resposta inválida: {exc}") from exc

                if _should_retry(r.status_code) and attempt < self.retries:
                    await asyncio.sleep(_backoff_seconds(attempt))
                    continue

                raise ProviderError(self.name, f"HTTP {r.status_code}: {r.text[:200]}")

        raise ProviderError(self.name, "falha desconhecida")
