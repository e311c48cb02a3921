"""
API tests for host, guest, public, billing and WebSocket endpoints
"""

import hashlib
import hmac
import json
import time

import pytest
from starlette.websockets import WebSocketDisconnect

from app.core.config import settings
from app.models import Party, Subscription
from app.services.billing_service import billing_service
from app.services.notifier import sms_notifier

SLUG = "joes-grill"

def add_walk_in(client, host_headers, name="Rivera", size=2, slug=SLUG, **extra):
    response = client.post(
        f"/host/{slug}/parties",
        json={"name": name, "size": size, **extra},
        headers=host_headers,
    )
    assert response.status_code == 201
    return response.json()["data"]["party"]

def set_status(client, host_headers, party_id, status, slug=SLUG):
    return client.post(
        f"/host/{slug}/parties/{party_id}/status",
        json={"status": status},
        headers=host_headers,
    )

class TestPublicEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_device_modes(self, client):
        response = client.get(f"/restaurants/{SLUG}/modes")

        data = response.json()["data"]
        assert data["restaurant_name"] == "Joes Grill"
        assert [m["url"] for m in data["modes"]] == [f"/host/{SLUG}", f"/join/{SLUG}"]

    def test_join_qr_code(self, client):
        response = client.get(f"/restaurants/{SLUG}/qr.png")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

class TestHostAuth:
    def test_missing_token(self, client):
        response = client.get(f"/host/{SLUG}/parties")

        assert response.status_code in (401, 403)

    def test_wrong_token(self, client):
        response = client.get(f"/host/{SLUG}/parties", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

class TestHostQueue:
    def test_walk_in_is_listed(self, client, host_headers):
        party = add_walk_in(client, host_headers, name="Rivera", size=4)

        response = client.get(f"/host/{SLUG}/parties", headers=host_headers)

        assert response.status_code == 200
        queue = response.json()["data"]
        assert queue["waiting_count"] == 1
        assert queue["average_wait_minutes"] == 10
        entry = queue["parties"][0]
        assert entry["id"] == party["id"]
        assert entry["position"] == 1
        assert entry["estimated_wait_minutes"] == 10
        assert entry["actions"] == ["ready", "no_show", "edit", "remove"]

    def test_blank_name_creates_nothing(self, client, host_headers, db_session):
        response = client.post(f"/host/{SLUG}/parties", json={"name": "   ", "size": 2}, headers=host_headers)

        assert response.status_code == 400
        assert response.json()["error_code"] == "ValidationError"
        assert db_session.query(Party).count() == 0

    def test_zero_size_rejected(self, client, host_headers, db_session):
        response = client.post(f"/host/{SLUG}/parties", json={"name": "Rivera", "size": 0}, headers=host_headers)

        assert response.status_code == 400
        assert db_session.query(Party).count() == 0

    def test_mark_ready_sends_table_ready_text(self, client, host_headers, fake_notifier):
        party = add_walk_in(client, host_headers, phone="+15550001111")

        response = set_status(client, host_headers, party["id"], "ready")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["party"]["status"] == "ready"
        assert data["party"]["ready_at"] is not None
        assert data["position"] is None
        assert fake_notifier.sent[-1] == (
            "+15550001111",
            "Your table at Joes Grill is ready! Please proceed to the host stand.",
        )

    def test_notification_failure_does_not_fail_transition(self, client, host_headers, fake_notifier):
        party = add_walk_in(client, host_headers, phone="+15550001111")
        fake_notifier.raise_error = True

        response = set_status(client, host_headers, party["id"], "ready")

        assert response.status_code == 200
        assert response.json()["data"]["party"]["status"] == "ready"

    def test_repeated_transition_is_idempotent(self, client, host_headers, fake_notifier):
        party = add_walk_in(client, host_headers, phone="+15550001111")
        set_status(client, host_headers, party["id"], "ready")

        response = set_status(client, host_headers, party["id"], "ready")

        assert response.status_code == 200
        ready_texts = [m for _, m in fake_notifier.sent if "proceed to the host stand" in m]
        assert len(ready_texts) == 1

    def test_illegal_transition_is_conflict(self, client, host_headers):
        party = add_walk_in(client, host_headers)

        response = set_status(client, host_headers, party["id"], "seated")

        assert response.status_code == 409
        assert response.json()["error_code"] == "InvalidTransition"

    def test_unknown_status_value_is_rejected(self, client, host_headers):
        party = add_walk_in(client, host_headers)

        response = set_status(client, host_headers, party["id"], "dancing")

        assert response.status_code == 422

    def test_missing_party(self, client, host_headers):
        response = set_status(client, host_headers, "does-not-exist", "ready")

        assert response.status_code == 404
        assert response.json()["error_code"] == "PartyNotFound"

    def test_edit_and_remove(self, client, host_headers):
        first = add_walk_in(client, host_headers, name="A")
        second = add_walk_in(client, host_headers, name="B")

        response = client.patch(
            f"/host/{SLUG}/parties/{second['id']}",
            json={"size": 6, "notes": "birthday"},
            headers=host_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["party"]["size"] == 6

        response = client.delete(f"/host/{SLUG}/parties/{first['id']}", headers=host_headers)
        assert response.status_code == 200
        queue = response.json()["data"]["queue"]
        assert [(p["name"], p["position"]) for p in queue["parties"]] == [("B", 1)]

    def test_patch_keeps_notes_not_sent(self, client, host_headers):
        party = add_walk_in(client, host_headers, notes="window")

        response = client.patch(f"/host/{SLUG}/parties/{party['id']}", json={"size": 3}, headers=host_headers)

        assert response.status_code == 200
        assert response.json()["data"]["party"]["notes"] == "window"
        assert response.json()["data"]["party"]["size"] == 3

    def test_seated_party_cannot_be_edited(self, client, host_headers):
        party = add_walk_in(client, host_headers)
        set_status(client, host_headers, party["id"], "ready")
        set_status(client, host_headers, party["id"], "seated")

        response = client.patch(f"/host/{SLUG}/parties/{party['id']}", json={"size": 9}, headers=host_headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "PartyClosed"
        listing = client.get(f"/host/{SLUG}/parties", headers=host_headers).json()["data"]
        assert listing["parties"][0]["size"] == 2
        assert listing["parties"][0]["actions"] == ["remove"]

    def test_other_restaurant_cannot_touch_party(self, client, host_headers):
        party = add_walk_in(client, host_headers)

        response = set_status(client, host_headers, party["id"], "ready", slug="other-place")
        assert response.status_code == 404

        listing = client.get("/host/other-place/parties", headers=host_headers).json()["data"]
        assert listing["parties"] == []

    def test_analytics_shape(self, client, host_headers):
        add_walk_in(client, host_headers, size=3)

        response = client.get(f"/host/{SLUG}/analytics", headers=host_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert len(data["busiest_days"]) == 7
        assert len(data["peak_hours"]) == 12
        assert len(data["party_size_distribution"]) == 4
        assert 0 <= data["no_show_rate"] <= 100

class TestGuestJoin:
    def test_join_sends_confirmation_with_position(self, client, host_headers, fake_notifier):
        add_walk_in(client, host_headers, name="Walk-in")

        response = client.post(
            f"/join/{SLUG}",
            json={"name": "Kim", "size": 2, "phone": "+15550002222"},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["position"] == 2
        assert data["estimated_wait_minutes"] == 20
        assert data["status_url"] == f"/join/{SLUG}/status/{data['party_id']}"
        phone, message = fake_notifier.sent[-1]
        assert phone == "+15550002222"
        assert "You're #2 in line" in message

    def test_join_without_phone_sends_nothing(self, client, fake_notifier):
        response = client.post(f"/join/{SLUG}", json={"name": "Kim", "size": 2})

        assert response.status_code == 201
        assert fake_notifier.sent == []

    def test_status_page(self, client, host_headers):
        add_walk_in(client, host_headers, name="Ahead", phone="+15550009999")
        joined = client.post(f"/join/{SLUG}", json={"name": "Kim", "size": 3}).json()["data"]

        response = client.get(f"/join/{SLUG}/status/{joined['party_id']}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["party"]["name"] == "Kim"
        assert data["position"] == 2
        assert data["waiting_count"] == 2
        assert "Ahead" not in response.text
        assert "+15550009999" not in response.text

    def test_status_page_other_restaurant(self, client):
        joined = client.post(f"/join/{SLUG}", json={"name": "Kim", "size": 3}).json()["data"]

        response = client.get(f"/join/other-place/status/{joined['party_id']}")

        assert response.status_code == 404

    def test_summary(self, client):
        client.post(f"/join/{SLUG}", json={"name": "Kim", "size": 3})

        response = client.get(f"/join/{SLUG}/summary")

        data = response.json()["data"]
        assert data["waiting_count"] == 1
        assert data["estimated_wait_minutes"] == 20

    def test_rate_limit(self, client, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 3)

        codes = [client.get(f"/join/{SLUG}/summary").status_code for _ in range(4)]

        assert codes == [200, 200, 200, 429]

class TestBilling:
    def test_checkout_unknown_plan(self, client, db_session):
        response = client.post(
            "/checkout",
            json={"planType": "gold", "billingPeriod": "monthly", "restaurantId": "rest_1"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid plan or billing period"
        assert db_session.query(Subscription).count() == 0

    def test_checkout_missing_restaurant(self, client):
        response = client.post("/checkout", json={"planType": "starter", "billingPeriod": "monthly"})

        assert response.status_code == 400
        assert response.json()["message"] == "Restaurant ID is required"

    def test_send_sms_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(sms_notifier, "account_sid", None)

        response = client.post("/send-sms", json={"phone": "+15550001111", "message": "hi"})

        assert response.status_code == 500
        assert response.json()["message"] == "SMS service not configured"

    def test_send_sms_missing_fields(self, client, monkeypatch):
        monkeypatch.setattr(sms_notifier, "account_sid", "AC123")
        monkeypatch.setattr(sms_notifier, "auth_token", "secret")
        monkeypatch.setattr(sms_notifier, "messaging_service_sid", "MG456")

        response = client.post("/send-sms", json={"phone": "+15550001111"})

        assert response.status_code == 400

class TestPaymentsWebhook:
    secret = "whsec_api_test"

    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(billing_service, "webhook_secret", self.secret)

    def signed_post(self, client, event):
        payload = json.dumps(event)
        timestamp = int(time.time())
        signature = hmac.new(
            self.secret.encode("utf-8"),
            f"{timestamp}.{payload}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return client.post(
            "/webhooks/payments",
            content=payload,
            headers={"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"},
        )

    def test_missing_signature(self, client):
        response = client.post("/webhooks/payments", content="{}")

        assert response.status_code == 400
        assert response.json()["message"] == "Missing signature or webhook secret"

    def test_bad_signature(self, client):
        response = client.post(
            "/webhooks/payments",
            content="{}",
            headers={"Stripe-Signature": f"t={int(time.time())},v1=deadbeef"},
        )

        assert response.status_code == 400

    def test_subscription_created(self, client, db_session):
        event = {
            "id": "evt_1",
            "type": "customer.subscription.created",
            "data": {"object": {
                "id": "sub_123",
                "customer": "cus_1",
                "status": "active",
                "metadata": {"restaurant_id": "rest_1", "plan_type": "starter", "billing_period": "monthly"},
                "current_period_start": 1760000000,
                "current_period_end": 1762592000,
            }},
        }

        response = self.signed_post(client, event)

        assert response.status_code == 200
        assert response.json()["data"] == {"received": True, "handled": True}
        record = db_session.query(Subscription).one()
        assert record.status == "active"

    def test_unknown_event_type_acknowledged(self, client):
        response = self.signed_post(client, {"id": "evt_2", "type": "charge.refunded", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json()["data"] == {"received": True, "handled": False}

class TestWebSockets:
    def test_host_receives_snapshot_and_changes(self, client, host_headers):
        add_walk_in(client, host_headers, name="Existing")

        with client.websocket_connect(f"/ws/restaurants/{SLUG}?token={settings.HOST_TOKEN}") as websocket:
            snapshot = websocket.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [p["name"] for p in snapshot["queue"]["parties"]] == ["Existing"]

            party = add_walk_in(client, host_headers, name="Newcomer")
            message = websocket.receive_json()

            assert message["type"] == "party_change"
            assert message["op"] == "insert"
            assert message["party"]["id"] == party["id"]
            assert message["queue"]["waiting_count"] == 2

            websocket.send_json({"type": "ping", "timestamp": 123})
            assert websocket.receive_json() == {"type": "pong", "timestamp": 123}

    def test_host_socket_requires_token(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/ws/restaurants/{SLUG}?token=wrong") as websocket:
                websocket.receive_json()

    def test_guest_receives_own_status(self, client, host_headers):
        party = add_walk_in(client, host_headers, name="Kim", phone="+15550001111")
        other = add_walk_in(client, host_headers, name="Lee")

        with client.websocket_connect(f"/ws/restaurants/{SLUG}/parties/{party['id']}") as websocket:
            snapshot = websocket.receive_json()
            assert snapshot["status"]["position"] == 1
            assert "queue" not in snapshot

            set_status(client, host_headers, party["id"], "ready")
            message = websocket.receive_json()

            assert message["type"] == "party_change"
            assert message["status"]["party"]["status"] == "ready"
            assert message["status"]["position"] is None
            assert other["id"] not in json.dumps(message)

    def test_guest_socket_unknown_party(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/ws/restaurants/{SLUG}/parties/missing") as websocket:
                websocket.receive_json()
