import asyncio
import json

import httpx
import pytest

from comanda.ai import openai_provider as openai_module
from comanda.ai.openai_provider import OpenAIProvider
from comanda.ai.schema import ChatMessage, ProviderRequest
from comanda.ai.tools import TOOL_DEFINITIONS
from comanda.core.errors import ProviderError


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    monkeypatch.setattr(openai_module, "_backoff_seconds", lambda _attempt: 0)


def _request(**overrides):
    values = {
        "system_prompt": "Você é o atendente.",
        "messages": [ChatMessage(role="user", content="quero uma pizza")],
        "tools": TOOL_DEFINITIONS,
        "hints": {"state": "browsing_menu"},
    }
    values.update(overrides)
    return ProviderRequest(**values)


def _completion(content="", tool_calls=None):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "message": message}]}


def _provider(handler, **kwargs):
    return OpenAIProvider(
        api_key="sk-test",
        base_url="https://llm.local/v1",
        model="gpt-test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_parses_tool_calls_and_lookups():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=_completion(
                content="Vou adicionar.",
                tool_calls=[
                    {"id": "1", "type": "function", "function": {"name": "search_menu", "arguments": '{"query": "pizza"}'}},
                    {
                        "id": "2",
                        "type": "function",
                        "function": {"name": "add_to_cart", "arguments": '{"product_id": 100, "quantity": 2}'},
                    },
                    {"id": "3", "type": "function", "function": {"name": "finalize_order", "arguments": "{quebrado"}},
                ],
            ),
        )

    reply = asyncio.run(_provider(handler).complete(_request(lookup_results=[{"id": 100, "name": "Pizza"}])))

    assert seen["url"] == "https://llm.local/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-test"
    assert seen["body"]["tool_choice"] == "auto"
    assert [tool["function"]["name"] for tool in seen["body"]["tools"]] == [
        "add_to_cart",
        "remove_from_cart",
        "finalize_order",
        "search_menu",
    ]
    assert "browsing_menu" in seen["body"]["messages"][0]["content"]
    assert "search_menu" in seen["body"]["messages"][-1]["content"]

    assert reply.reply_text == "Vou adicionar."
    assert [lookup.query for lookup in reply.lookups] == ["pizza"]
    assert [(call.name, call.arguments) for call in reply.tool_calls] == [
        ("add_to_cart", {"product_id": 100, "quantity": 2}),
        ("finalize_order", {}),
    ]


def test_retries_rate_limit_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, json={"error": "rate limited"})
        return httpx.Response(200, json=_completion(content="Olá!"))

    reply = asyncio.run(_provider(handler, retries=3).complete(_request()))

    assert len(calls) == 2
    assert reply.reply_text == "Olá!"


def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad request"})

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(_provider(handler, retries=3).complete(_request()))

    assert len(calls) == 1
    assert "HTTP 400" in str(exc_info.value)


def test_server_errors_exhaust_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="indisponível")

    with pytest.raises(ProviderError):
        asyncio.run(_provider(handler, retries=2).complete(_request()))

    assert len(calls) == 2


def test_timeout_is_flagged():
    def handler(request):
        raise httpx.ReadTimeout("lento", request=request)

    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(_provider(handler).complete(_request()))

    assert exc_info.value.timeout is True


def test_missing_api_key_fails_fast(monkeypatch):
    monkeypatch.setattr(openai_module, "OPENAI_API_KEY", "")
    provider = OpenAIProvider(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    with pytest.raises(ProviderError):
        asyncio.run(provider.complete(_request()))


def test_response_without_choices_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(ProviderError):
        asyncio.run(_provider(handler).complete(_request()))
