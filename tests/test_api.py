"""
API tests through the FastAPI routers

Tests cover:
1. Submit -> approve -> send end to end
2. Error to status code mapping
3. Admin API key enforcement
4. Telegram callback buttons
"""

import pytest
from decimal import Decimal

from smsledger.services.telegram import telegram_notifier

ALICE = "alice@example.com"
ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}


def submit_payment(client, amount="20", txid="tx-001", email=ALICE):
    response = client.post("/api/payments", json={"email": email, "amount": amount, "txid": txid})
    assert response.status_code == 200, response.text
    return response.json()


def approve(client, payment_id, **extra):
    return client.post(
        "/api/admin/payments/approve",
        json={"payment_id": payment_id, **extra},
        headers=ADMIN_HEADERS
    )


def send(client, email=ALICE, phone="+15557654321", message="Your order has shipped."):
    return client.post("/api/sms/send", json={
        "user_email": email,
        "recipient_phone": phone,
        "recipient_name": "Bob",
        "message": message
    })


class TestEndToEnd:
    """Full purchase and send flow."""

    def test_submit_approve_send(self, client, fake_gateway):
        payment = submit_payment(client, amount="20")
        assert payment["status"] == "pending"
        assert payment["credits"] == 20

        response = approve(client, payment["id"])
        assert response.status_code == 200
        body = response.json()
        assert body["credits_added"] == 20
        assert body["sms_credits"] == 20
        assert body["payment"]["status"] == "approved"

        credits = client.get(f"/api/sms/credits/{ALICE}").json()
        assert credits["sms_credits"] == 20
        assert credits["subscription_status"] == "active"

        response = send(client, phone="+1 555 765 4321")
        assert response.status_code == 200
        result = response.json()
        assert result["success"] is True
        assert result["credits_remaining"] == 19
        assert result["credit_deducted"] is True
        assert result["provider"] == "twilio"
        assert fake_gateway.sent == [("+15557654321", "Your order has shipped.")]

        user = client.get(f"/api/users/{ALICE}").json()
        assert user["sms_credits"] == 19
        assert user["total_sent"] == 1
        assert user["this_month_sent"] == 1
        assert user["recent_activity"][0]["recipient"] == "+15557654321"
        assert user["recent_activity"][0]["status"] == "sent"

    def test_user_payments_listed(self, client):
        submit_payment(client, amount="5", txid="tx-a")
        submit_payment(client, amount="7.5", txid="tx-b")

        payments = client.get(f"/api/users/{ALICE}/payments").json()

        assert {p["txid"] for p in payments} == {"tx-a", "tx-b"}
        assert {Decimal(p["amount"]) for p in payments} == {Decimal("5"), Decimal("7.5")}


class TestSendSms:

    def test_no_credits_is_402_and_nothing_sent(self, client, fake_gateway):
        response = send(client)

        assert response.status_code == 402
        assert "0 remaining" in response.json()["detail"]
        assert fake_gateway.sent == []

    def test_provider_failure_keeps_credit(self, client, fake_gateway):
        payment = submit_payment(client, amount="2")
        approve(client, payment["id"])
        fake_gateway.success = False

        response = send(client)

        assert response.status_code == 502
        assert client.get(f"/api/sms/credits/{ALICE}").json()["sms_credits"] == 2

    def test_invalid_phone_is_400(self, client):
        payment = submit_payment(client, amount="2")
        approve(client, payment["id"])

        assert send(client, phone="not-a-phone").status_code == 400

    def test_blank_message_is_400(self, client):
        payment = submit_payment(client, amount="2")
        approve(client, payment["id"])

        assert send(client, message="   ").status_code == 400

    def test_credits_run_out(self, client):
        payment = submit_payment(client, amount="1.99")
        approve(client, payment["id"])

        assert send(client).status_code == 200
        assert send(client).status_code == 402


class TestPublicErrors:

    def test_invalid_amount_is_400(self, client):
        response = client.post("/api/payments", json={"email": ALICE, "amount": "-3", "txid": "tx-1"})

        assert response.status_code == 400

    @pytest.mark.parametrize("amount", ["1e400", "10000000000"])
    def test_oversized_amount_is_400_and_not_stored(self, client, amount):
        response = client.post("/api/payments", json={"email": ALICE, "amount": amount, "txid": "tx-big"})

        assert response.status_code == 400
        listing = client.get(f"/api/users/{ALICE}/payments")
        assert listing.status_code == 200
        assert listing.json() == []

    def test_duplicate_txid_is_409(self, client):
        submit_payment(client, txid="tx-dup")

        response = client.post("/api/payments", json={"email": ALICE, "amount": "5", "txid": "tx-dup"})

        assert response.status_code == 409

    def test_unknown_user_is_404(self, client):
        assert client.get("/api/users/ghost@example.com").status_code == 404

    def test_credits_for_unknown_user(self, client):
        body = client.get("/api/sms/credits/ghost@example.com").json()

        assert body["sms_credits"] == 0
        assert body["has_credits"] is False

    def test_register_and_validate(self, client):
        response = client.post("/api/users/register", json={"email": ALICE, "first_name": "Alice"})
        assert response.status_code == 200
        assert response.json()["sms_credits"] == 0

        assert client.post("/api/users/validate", json={"email": ALICE}).json()["exists"] is True
        assert client.post("/api/users/validate", json={"email": "bob@example.com"}).json()["exists"] is False

    def test_validate_bad_email_is_400(self, client):
        assert client.post("/api/users/validate", json={"email": "nope"}).status_code == 400


class TestAdminApi:

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/admin/payments/pending"),
        ("get", "/api/admin/users"),
        ("get", "/api/admin/stats"),
    ])
    def test_bad_api_key_is_401(self, client, method, path):
        response = getattr(client, method)(path, headers={"X-API-Key": "wrong"})

        assert response.status_code == 401

    def test_approve_without_key_is_rejected(self, client):
        payment = submit_payment(client)

        response = client.post("/api/admin/payments/approve", json={"payment_id": payment["id"]})

        assert response.status_code in (401, 422)

    def test_double_approval_is_409(self, client):
        payment = submit_payment(client)
        approve(client, payment["id"])

        response = approve(client, payment["id"])

        assert response.status_code == 409
        assert client.get(f"/api/sms/credits/{ALICE}").json()["sms_credits"] == 20

    def test_approve_missing_is_404(self, client):
        assert approve(client, "missing").status_code == 404

    def test_reject_then_approve_is_409(self, client):
        payment = submit_payment(client)
        response = client.post(
            "/api/admin/payments/reject",
            json={"payment_id": payment["id"], "admin_email": "ops@example.com"},
            headers=ADMIN_HEADERS
        )
        assert response.status_code == 200
        assert response.json()["rejected_by"] == "ops@example.com"

        assert approve(client, payment["id"]).status_code == 409

    def test_pending_list(self, client):
        first = submit_payment(client, txid="tx-a")
        submit_payment(client, txid="tx-b")
        approve(client, first["id"])

        pending = client.get("/api/admin/payments/pending", headers=ADMIN_HEADERS).json()

        assert [p["txid"] for p in pending] == ["tx-b"]

    def test_delete_payment_keeps_credits(self, client):
        payment = submit_payment(client)
        approve(client, payment["id"])

        response = client.post(
            "/api/admin/payments/delete",
            json={"payment_id": payment["id"]},
            headers=ADMIN_HEADERS
        )

        assert response.status_code == 200
        assert client.get(f"/api/users/{ALICE}/payments").json() == []
        assert client.get(f"/api/sms/credits/{ALICE}").json()["sms_credits"] == 20

    def test_users_and_delete_user(self, client):
        client.post("/api/users/register", json={"email": ALICE})

        users = client.get("/api/admin/users", headers=ADMIN_HEADERS).json()
        assert [u["email"] for u in users] == [ALICE]

        response = client.post("/api/admin/users/delete", json={"email": ALICE}, headers=ADMIN_HEADERS)
        assert response.status_code == 200
        assert client.get(f"/api/users/{ALICE}").status_code == 404

    def test_stats(self, client):
        payment = submit_payment(client, amount="12.5")
        approve(client, payment["id"])

        stats = client.get("/api/admin/stats", headers=ADMIN_HEADERS).json()

        assert stats["total_users"] == 1
        assert stats["approved_payments"] == 1
        assert Decimal(stats["total_revenue"]) == Decimal("12.5")
        assert stats["total_credits"] == 12

    def test_reset_monthly(self, client):
        payment = submit_payment(client, amount="3")
        approve(client, payment["id"])
        send(client)

        response = client.post("/api/admin/sms/reset-monthly", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["users_reset"] == 1
        usage = client.get(f"/api/sms/credits/{ALICE}").json()
        assert usage["this_month_sent"] == 0
        assert usage["total_sent"] == 1


class TestTelegramWebhook:
    """Inline button callbacks from the admin chat."""

    @pytest.fixture
    def answers(self, monkeypatch):
        calls = []

        async def fake_answer(callback_query_id, text):
            calls.append(text)
            return True

        monkeypatch.setattr(telegram_notifier, "admin_chat_id", "424242")
        monkeypatch.setattr(telegram_notifier, "answer_callback_query", fake_answer)
        return calls

    def callback(self, client, data, chat_id=424242, headers=None):
        return client.post("/api/telegram/webhook", json={
            "update_id": 1,
            "callback_query": {
                "id": "cb-1",
                "data": data,
                "message": {"message_id": 7, "chat": {"id": chat_id}}
            }
        }, headers=headers)

    def test_forged_callback_without_secret_is_401(self, client, answers, monkeypatch):
        monkeypatch.setattr(telegram_notifier, "webhook_secret", "hook-secret")
        payment = submit_payment(client)

        response = self.callback(client, f"approve_{payment['id']}")
        wrong = self.callback(
            client, f"approve_{payment['id']}",
            headers={"X-Telegram-Bot-Api-Secret-Token": "guess"}
        )

        assert response.status_code == 401
        assert wrong.status_code == 401
        assert answers == []
        assert client.get(f"/api/users/{ALICE}/payments").json()[0]["status"] == "pending"

    def test_callback_with_secret_is_processed(self, client, answers, monkeypatch):
        monkeypatch.setattr(telegram_notifier, "webhook_secret", "hook-secret")
        payment = submit_payment(client)

        response = self.callback(
            client, f"approve_{payment['id']}",
            headers={"X-Telegram-Bot-Api-Secret-Token": "hook-secret"}
        )

        assert response.status_code == 200
        assert response.json()["result"]["action"] == "approve"

    def test_approve_button(self, client, answers):
        payment = submit_payment(client)

        response = self.callback(client, f"approve_{payment['id']}")

        assert response.status_code == 200
        assert response.json()["result"]["action"] == "approve"
        assert "20 credits" in answers[0]
        payments = client.get(f"/api/users/{ALICE}/payments").json()
        assert payments[0]["approved_by"] == "telegram_admin"

    def test_panel_then_button_grants_once(self, client, answers):
        payment = submit_payment(client)
        approve(client, payment["id"])

        response = self.callback(client, f"approve_{payment['id']}")

        assert response.status_code == 200
        assert response.json()["result"]["error"] == "Payment already approved"
        assert client.get(f"/api/sms/credits/{ALICE}").json()["sms_credits"] == 20

    def test_reject_and_delete_buttons(self, client, answers):
        payment = submit_payment(client)

        self.callback(client, f"reject_{payment['id']}")
        assert client.get(f"/api/users/{ALICE}/payments").json()[0]["status"] == "rejected"

        self.callback(client, f"delete_payment_{payment['id']}")
        assert client.get(f"/api/users/{ALICE}/payments").json() == []

    def test_other_chat_is_ignored(self, client, answers):
        payment = submit_payment(client)

        self.callback(client, f"approve_{payment['id']}", chat_id=999)

        assert answers == ["❌ Unauthorized access"]
        assert client.get(f"/api/users/{ALICE}/payments").json()[0]["status"] == "pending"

    def test_non_callback_update_ignored(self, client):
        response = client.post("/api/telegram/webhook", json={"update_id": 2, "message": {"text": "/start"}})

        assert response.status_code == 200
        assert response.json()["ok"] is True
