import pytest
from fastapi.testclient import TestClient

from comanda.ai.mock_provider import MockProvider
from comanda.ai.pipeline import ConversationPipeline
from comanda.core.metrics import InMemoryPipelineMetrics, pipeline_metrics, request_metrics
from comanda.main import app
from comanda.models.message import Message
from comanda.routers.webhook import get_pipeline
from comanda.whatsapp.base import SendResult
from tests.fixtures_data import CUSTOMER_PHONE, RESTAURANT_ID, build_session_factory, seed_restaurant


class _Channel:
    def __init__(self):
        self.sent = []

    async def send(self, restaurant_id, customer_phone, text):
        self.sent.append(text)
        return SendResult(status="sent")


@pytest.fixture
def session_factory():
    factory = build_session_factory()
    with factory() as session:
        seed_restaurant(session)
    return factory


@pytest.fixture
def channel():
    return _Channel()


@pytest.fixture
def client(session_factory, channel):
    pipeline = ConversationPipeline(
        session_factory=session_factory,
        provider_factory=lambda _config: MockProvider(),
        channel=channel,
        metrics=InMemoryPipelineMetrics(),
    )
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_inbound_message_returns_state(client, session_factory, channel):
    response = client.post(
        f"/api/whatsapp/{RESTAURANT_ID}/inbound",
        json={"customer_phone": CUSTOMER_PHONE, "message_text": "quero uma coca", "message_id": "wamid.w1"},
        headers={"X-Request-ID": "req-123"},
    )

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "state": "confirming_item", "order_id": None}
    assert response.headers["X-Request-ID"] == "req-123"
    assert "Coca Cola" in channel.sent[0]
    with session_factory() as session:
        assert session.query(Message).count() == 2


def test_invalid_payload_is_acknowledged(client):
    response = client.post(f"/api/whatsapp/{RESTAURANT_ID}/inbound", json={"message_text": "sem telefone"})

    assert response.status_code == 200
    assert response.json() == {"status": "ignored", "reason": "invalid_payload"}

    response = client.post(f"/api/whatsapp/{RESTAURANT_ID}/inbound", content=b"isto nao e json")
    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_unknown_restaurant_is_acknowledged(client):
    response = client.post(
        "/api/whatsapp/999/inbound",
        json={"customer_phone": CUSTOMER_PHONE, "message_text": "oi"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "restaurant_not_found"


def test_unexpected_error_still_returns_200():
    class _Exploding:
        async def handle_inbound(self, *args, **kwargs):
            raise RuntimeError("boom")

    app.dependency_overrides[get_pipeline] = lambda: _Exploding()
    try:
        response = TestClient(app).post(
            f"/api/whatsapp/{RESTAURANT_ID}/inbound",
            json={"customer_phone": CUSTOMER_PHONE, "message_text": "oi"},
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"status": "error"}


def test_metrics_endpoint_and_health(client):
    request_metrics.reset()
    pipeline_metrics.reset()
    pipeline_metrics.observe("ok", 12.5, str(RESTAURANT_ID))

    assert client.get("/health").json() == {"status": "ok"}
    data = client.get("/internal/metrics/pipeline").json()

    assert data["outcomes"]["ok"]["total"] == 1
    assert data["restaurants"] == {str(RESTAURANT_ID): {"ok": 1}}
    assert data["requests"]["GET /health"]["total_requests"] == 1
