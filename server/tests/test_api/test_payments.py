# Payment webhook and processor client tests

import hashlib
import hmac
import httpx
import pytest

from api.main import app
from api.payments.processor_service import PaymentProcessorService
from api.payments.routes import get_payment_processor
from ordering.errors import ConfigurationError, ProcessorError
from utils.config import load_config


@pytest.fixture
def pending_order(client, guest_payload):
    return client.post("/api/orders", json=guest_payload()).json()["data"]["order"]


class TestPaymentWebhook:
    """Processor events in mock mode (no webhook secret)"""

    def test_payment_succeeded_recorded_once(self, client, admin_headers, pending_order):
        event = {"type": "payment.succeeded", "data": {
            "order_id": pending_order["order_id"], "amount_cents": 3600, "processor_reference": "ch_evt_1",
        }}
        first = client.post("/api/payments/webhook", json=event)
        assert first.status_code == 200
        assert first.json()["data"] == {"handled": True, "duplicate": False, "payment_status": "PAID"}

        second = client.post("/api/payments/webhook", json=event)
        assert second.json()["data"]["duplicate"] is True

        detail = client.get(f"/api/admin/orders/{pending_order['order_id']}", headers=admin_headers).json()["data"]
        assert len(detail["payments"]) == 1
        assert detail["status"] == "CONFIRMED"

    def test_payment_failed(self, client, pending_order):
        response = client.post("/api/payments/webhook", json={
            "type": "payment.failed", "data": {"order_id": pending_order["order_id"], "reason": "expired card"},
        })
        assert response.json()["data"]["payment_status"] == "FAILED"

    def test_other_events_ignored(self, client):
        response = client.post("/api/payments/webhook", json={"type": "customer.created", "data": {}})
        assert response.status_code == 200
        assert response.json()["data"]["handled"] is False

    def test_incomplete_event_rejected(self, client, pending_order):
        response = client.post("/api/payments/webhook", json={
            "type": "payment.succeeded", "data": {"order_id": pending_order["order_id"]},
        })
        assert response.status_code == 400

    def test_invalid_json(self, client):
        response = client.post("/api/payments/webhook", content=b"not json",
                               headers={"Content-Type": "application/json"})
        assert response.status_code == 400


def _live_service(handler, **overrides):
    payments_config = {
        "base_url": "http://payments.test/v1",
        "api_key": "sk_test",
        "mock_mode": False,
        "webhook_secret": "whsec",
    }
    payments_config.update(overrides)
    return PaymentProcessorService(payments_config, transport=httpx.MockTransport(handler))


def _charge(service):
    return service.charge(amount_cents=3600, currency="usd", order_id=1, order_number="LL-2025-000001",
                          idempotency_key="charge-1", payment_token="tok_visa")


class TestProcessorService:
    """HTTP client against a mocked processor"""

    def test_charge_success(self):
        seen = {}

        def handler(request):
            seen["key"] = request.headers["Idempotency-Key"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"id": "ch_live_1", "status": "succeeded"})

        assert _charge(_live_service(handler)) == {"success": True, "processor_reference": "ch_live_1"}
        assert seen == {"key": "charge-1", "auth": "Bearer sk_test"}

    def test_decline(self):
        def handler(request):
            return httpx.Response(402, json={"error": {"message": "Insufficient funds"}})

        assert _charge(_live_service(handler)) == {"success": False, "reason": "Insufficient funds"}

    def test_server_error_is_processor_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": {"message": "boom"}})

        with pytest.raises(ProcessorError):
            _charge(_live_service(handler))

    def test_unreachable_is_processor_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProcessorError):
            _charge(_live_service(handler))

    def test_promo_lookup(self):
        def handler(request):
            assert request.url.params["code"] == "SPRING"
            return httpx.Response(200, json={"data": [{"coupon": {"amount_off": 500}}]})

        assert _live_service(handler).lookup_promo_code("SPRING") == {"amount_off": 5}

    def test_webhook_signature(self):
        service = _live_service(lambda request: httpx.Response(200, json={}))
        payload = b'{"type": "payment.succeeded"}'
        signature = hmac.new(b"whsec", payload, hashlib.sha256).hexdigest()
        assert service.verify_webhook_signature(payload, signature) is True
        assert service.verify_webhook_signature(payload, "bad") is False
        assert service.verify_webhook_signature(payload, None) is False

    def test_mock_mode_declines_02_cents(self):
        service = PaymentProcessorService({"mock_mode": True})
        result = service.charge(amount_cents=3702, currency="usd", order_id=1, order_number="LL-2025-000001",
                                idempotency_key="k")
        assert result["success"] is False


class TestLiveModeWithoutKey:
    """mock_mode off with an unresolved API key"""

    @pytest.fixture
    def unconfigured(self):
        return PaymentProcessorService({
            "base_url": "http://payments.test/v1", "api_key": "${PAYMENTS_API_KEY}", "mock_mode": False,
        })

    def test_stays_live(self, unconfigured):
        assert unconfigured.mock_mode is False

    def test_charge_is_configuration_error(self, unconfigured):
        with pytest.raises(ConfigurationError):
            _charge(unconfigured)

    def test_promo_lookup_is_configuration_error(self, unconfigured):
        with pytest.raises(ConfigurationError):
            unconfigured.lookup_promo_code("WELCOME10")

    def test_unsigned_webhook_rejected(self, unconfigured):
        assert unconfigured.verify_webhook_signature(b'{"type": "payment.succeeded"}', None) is False

    def test_pay_leaves_order_unpaid(self, client, admin_headers, pending_order, unconfigured):
        app.dependency_overrides[get_payment_processor] = lambda: unconfigured
        response = client.post(f"/api/orders/{pending_order['order_id']}/pay",
                               json={"checkout_session_id": "checkout-0001", "payment_token": "tok_visa"})
        assert response.status_code == 500
        assert response.json()["error"] == "Something went wrong, please try again"

        detail = client.get(f"/api/admin/orders/{pending_order['order_id']}", headers=admin_headers).json()["data"]
        assert detail["payment_status"] == "PENDING"
        assert detail["payments"] == []

    def test_webhook_rejected(self, client, pending_order, unconfigured):
        app.dependency_overrides[get_payment_processor] = lambda: unconfigured
        response = client.post("/api/payments/webhook", json={"type": "payment.succeeded", "data": {
            "order_id": pending_order["order_id"], "amount_cents": 3600, "processor_reference": "ch_forged",
        }})
        assert response.status_code == 400


class TestProductionPaymentsConfig:
    def test_webhook_secret_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("PAYMENTS_API_KEY", "sk_live_test")
        monkeypatch.setenv("PAYMENTS_WEBHOOK_SECRET", "whsec_prod")
        service = PaymentProcessorService(load_config("production")["payments"])

        payload = b'{"type": "payment.succeeded"}'
        signature = hmac.new(b"whsec_prod", payload, hashlib.sha256).hexdigest()
        assert service.mock_mode is False
        assert service.verify_webhook_signature(payload, signature) is True
        assert service.verify_webhook_signature(payload, None) is False
