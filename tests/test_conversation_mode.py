import pytest

from comanda.ai import service as service_module
from comanda.ai.mock_provider import MockProvider
from comanda.ai.openai_provider import OpenAIProvider
from comanda.ai.service import get_provider
from comanda.models.agent_config import AgentConfig
from comanda.models.conversation_mode import ConversationMode
from comanda.services.conversation_mode import get_conversation_mode, is_automation_enabled, set_conversation_mode
from tests.fixtures_data import CUSTOMER_PHONE, RESTAURANT_ID, build_session_factory, seed_restaurant


@pytest.fixture
def db():
    session = build_session_factory()()
    seed_restaurant(session)
    yield session
    session.close()


def test_default_mode_is_ai(db):
    assert get_conversation_mode(db, RESTAURANT_ID, CUSTOMER_PHONE) == "ai"
    assert is_automation_enabled(db, RESTAURANT_ID, CUSTOMER_PHONE)


def test_manual_takeover_and_release(db):
    row = set_conversation_mode(
        db, RESTAURANT_ID, CUSTOMER_PHONE, "manual", taken_over_by="joana", handoff_reason="reclamação"
    )
    assert row.taken_over_by == "joana"
    assert row.taken_over_at is not None
    assert not is_automation_enabled(db, RESTAURANT_ID, CUSTOMER_PHONE)

    row = set_conversation_mode(db, RESTAURANT_ID, CUSTOMER_PHONE, "ai")
    assert row.taken_over_by is None
    assert row.handoff_reason is None
    assert is_automation_enabled(db, RESTAURANT_ID, CUSTOMER_PHONE)
    assert db.query(ConversationMode).count() == 1


def test_invalid_mode_is_rejected(db):
    with pytest.raises(ValueError):
        set_conversation_mode(db, RESTAURANT_ID, CUSTOMER_PHONE, "robo")


def test_unknown_stored_mode_falls_back_to_ai(db):
    db.add(ConversationMode(restaurant_id=RESTAURANT_ID, user_phone=CUSTOMER_PHONE, mode="pausado"))
    db.commit()

    assert get_conversation_mode(db, RESTAURANT_ID, CUSTOMER_PHONE) == "ai"


def test_agent_disabled_overrides_mode(db):
    db.add(AgentConfig(restaurant_id=RESTAURANT_ID, provider="mock", enabled=False))
    db.commit()

    assert not is_automation_enabled(db, RESTAURANT_ID, CUSTOMER_PHONE)


def test_provider_selection(monkeypatch):
    monkeypatch.setattr(service_module, "AGENT_PROVIDER", "mock")
    assert isinstance(get_provider(None), MockProvider)

    monkeypatch.setattr(service_module, "OPENAI_API_KEY", "")
    assert isinstance(get_provider(AgentConfig(provider="openai")), MockProvider)

    monkeypatch.setattr(service_module, "OPENAI_API_KEY", "sk-test")
    provider = get_provider(AgentConfig(provider="openai", model="gpt-x", temperature=0.1))
    assert isinstance(provider, OpenAIProvider)
    assert provider.model == "gpt-x"
    assert provider.temperature == 0.1
