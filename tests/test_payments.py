"""
Unit tests for the payment lifecycle

Tests cover:
1. Submission validation and duplicate transaction IDs
2. Approval grants credits exactly once
3. Concurrent approvals from two sessions
4. Rejection and deletion never touch balances
5. User registration merge semantics
6. Stats aggregation
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from smsledger.models import User, Payment, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_INACTIVE
from smsledger.services.errors import (
    ValidationError,
    ConflictError,
    AlreadyApproved,
    AlreadyRejected,
    CannotApproveRejected,
    CannotRejectApproved,
    DuplicateTransaction,
    PaymentNotFound,
    UserNotFound,
)
from smsledger.services.payments import (
    payment_service,
    assert_transition,
    PENDING,
    APPROVED,
    REJECTED,
)
from smsledger.services.ledger import ledger_service
from smsledger.services.users import user_service


def submit(db, amount="20", txid="tx-001", email="alice@example.com"):
    return payment_service.submit(db, email=email, amount=amount, txid=txid)


def balance(db, email="alice@example.com"):
    db.expire_all()
    user = db.get(User, email)
    return user.sms_credits if user else 0


class TestSubmitPayment:
    """Tests for recording pending payments."""

    def test_submit_creates_pending(self, db_session):
        payment = submit(db_session, amount="4.99")

        assert payment.status == PENDING
        assert payment.amount == Decimal("4.99")
        assert payment.currency == "USDT"
        assert payment.approved_at is None
        assert len(payment.id) == 32

    def test_submit_does_not_create_user(self, db_session):
        submit(db_session)

        assert db_session.get(User, "alice@example.com") is None

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", "NaN", ""])
    def test_invalid_amount_rejected_before_write(self, db_session, amount):
        with pytest.raises(ValidationError):
            submit(db_session, amount=amount)

        assert db_session.query(Payment).count() == 0

    def test_missing_txid_rejected(self, db_session):
        with pytest.raises(ValidationError):
            submit(db_session, txid="  ")

    def test_invalid_email_rejected(self, db_session):
        with pytest.raises(ValidationError):
            submit(db_session, email="not-an-email")

    def test_duplicate_txid_rejected(self, db_session):
        submit(db_session, txid="tx-dup")

        with pytest.raises(DuplicateTransaction):
            submit(db_session, txid="tx-dup", email="bob@example.com")

        assert db_session.query(Payment).count() == 1

    def test_duplicate_is_a_conflict(self):
        assert issubclass(DuplicateTransaction, ConflictError)


class TestStateMachine:

    def test_pending_can_move_to_terminal_states(self):
        assert_transition(PENDING, APPROVED)
        assert_transition(PENDING, REJECTED)

    @pytest.mark.parametrize("current,target,error", [
        (APPROVED, APPROVED, AlreadyApproved),
        (APPROVED, REJECTED, CannotRejectApproved),
        (REJECTED, REJECTED, AlreadyRejected),
        (REJECTED, APPROVED, CannotApproveRejected),
    ])
    def test_terminal_states_are_final(self, current, target, error):
        with pytest.raises(error):
            assert_transition(current, target)


class TestApprovePayment:
    """Tests for approval and its credit grant."""

    def test_approve_grants_floor_credits(self, db_session):
        payment = submit(db_session, amount="4.99")

        result = payment_service.approve(db_session, payment.id, admin_email="ops@example.com")

        assert result["credits_added"] == 4
        assert result["sms_credits"] == 4
        assert result["payment"]["status"] == APPROVED
        assert result["payment"]["approved_by"] == "ops@example.com"
        assert result["payment"]["approved_at"] is not None

        user = db_session.get(User, "alice@example.com")
        assert user.subscription_status == SUBSCRIPTION_ACTIVE
        assert user.last_payment_date is not None

    def test_long_fraction_is_never_rounded_up(self, db_session):
        payment = submit(db_session, amount="19.999999999")

        result = payment_service.approve(db_session, payment.id)

        assert result["credits_added"] == 19
        assert balance(db_session) == 19
        db_session.expire_all()
        assert db_session.get(Payment, payment.id).amount < Decimal("20")

    def test_sub_dollar_payment_grants_nothing(self, db_session):
        payment = submit(db_session, amount="0.5")

        result = payment_service.approve(db_session, payment.id)

        assert result["credits_added"] == 0
        assert balance(db_session) == 0

    def test_default_admin(self, db_session):
        payment = submit(db_session)

        result = payment_service.approve(db_session, payment.id)

        assert result["payment"]["approved_by"] == "admin"

    def test_second_approval_conflicts_and_keeps_balance(self, db_session):
        payment = submit(db_session)
        payment_service.approve(db_session, payment.id)

        with pytest.raises(AlreadyApproved):
            payment_service.approve(db_session, payment.id)

        assert balance(db_session) == 20

    def test_approve_missing_payment(self, db_session):
        with pytest.raises(PaymentNotFound):
            payment_service.approve(db_session, "does-not-exist")

    def test_approve_rejected_payment_blocked(self, db_session):
        payment = submit(db_session)
        payment_service.reject(db_session, payment.id)

        with pytest.raises(CannotApproveRejected):
            payment_service.approve(db_session, payment.id)

        assert balance(db_session) == 0

    def test_grants_accumulate_across_payments(self, db_session):
        first = submit(db_session, amount="10", txid="tx-a")
        second = submit(db_session, amount="5.75", txid="tx-b")

        payment_service.approve(db_session, first.id)
        payment_service.approve(db_session, second.id)

        assert balance(db_session) == 15

    def test_approval_keeps_registered_profile(self, db_session):
        user_service.register(db_session, "alice@example.com", first_name="Alice", country="US")
        payment = submit(db_session)

        payment_service.approve(db_session, payment.id)

        user = db_session.get(User, "alice@example.com")
        assert user.first_name == "Alice"
        assert user.country == "US"
        assert user.source == "main_app"
        assert user.sms_credits == 20


class TestConcurrentApproval:
    """Two admins (web panel and Telegram) approving the same payment."""

    def test_stale_session_loses_the_race(self, file_session_factory):
        setup = file_session_factory()
        payment_id = submit(setup).id
        setup.close()

        panel = file_session_factory()
        bot = file_session_factory()
        try:
            # The bot has already read the payment while it was pending
            assert bot.get(Payment, payment_id).status == PENDING

            payment_service.approve(panel, payment_id, admin_email="panel")

            with pytest.raises(AlreadyApproved):
                payment_service.approve(bot, payment_id, admin_email="telegram_admin")
        finally:
            panel.close()
            bot.close()

        check = file_session_factory()
        try:
            payment = check.get(Payment, payment_id)
            assert payment.approved_by == "panel"
            assert check.get(User, "alice@example.com").sms_credits == 20
        finally:
            check.close()

    def test_stale_user_row_is_retried(self, file_session_factory):
        setup = file_session_factory()
        first_id = submit(setup, amount="10", txid="tx-1").id
        second_id = submit(setup, amount="7", txid="tx-2").id
        payment_service.approve(setup, first_id)
        setup.close()

        panel = file_session_factory()
        bot = file_session_factory()
        try:
            # Both sessions hold the same version of the user row
            assert bot.get(User, "alice@example.com").sms_credits == 10
            panel.get(User, "alice@example.com")

            ledger_service.deduct_credit(panel, "alice@example.com")

            result = payment_service.approve(bot, second_id)
            assert result["sms_credits"] == 16
        finally:
            panel.close()
            bot.close()


class TestRejectPayment:

    def test_reject_pending(self, db_session):
        payment = submit(db_session)

        result = payment_service.reject(db_session, payment.id, admin_email="ops@example.com")

        assert result["status"] == REJECTED
        assert result["rejected_by"] == "ops@example.com"
        assert result["rejected_at"] is not None
        assert result["approved_at"] is None
        assert db_session.get(User, "alice@example.com") is None

    def test_reject_approved_fails_and_keeps_state(self, db_session):
        payment = submit(db_session)
        approved_at = payment_service.approve(db_session, payment.id)["payment"]["approved_at"]

        with pytest.raises(CannotRejectApproved):
            payment_service.reject(db_session, payment.id)

        db_session.expire_all()
        stored = db_session.get(Payment, payment.id)
        assert stored.status == APPROVED
        assert stored.approved_at == approved_at
        assert stored.rejected_at is None
        assert balance(db_session) == 20

    def test_reject_twice(self, db_session):
        payment = submit(db_session)
        payment_service.reject(db_session, payment.id)

        with pytest.raises(AlreadyRejected):
            payment_service.reject(db_session, payment.id)


class TestDeletePayment:

    @pytest.mark.parametrize("approve_first", [True, False])
    def test_delete_never_changes_balance(self, db_session, approve_first):
        payment = submit(db_session)
        if approve_first:
            payment_service.approve(db_session, payment.id)
        before = balance(db_session)

        deleted = payment_service.delete(db_session, payment.id)

        assert deleted["id"] == payment.id
        assert db_session.get(Payment, payment.id) is None
        assert balance(db_session) == before

    def test_delete_rejected(self, db_session):
        payment = submit(db_session)
        payment_service.reject(db_session, payment.id)

        assert payment_service.delete(db_session, payment.id)["status"] == REJECTED

    def test_delete_missing(self, db_session):
        with pytest.raises(PaymentNotFound):
            payment_service.delete(db_session, "missing")

    def test_txid_reusable_after_delete(self, db_session):
        payment = submit(db_session, txid="tx-reuse")
        payment_service.delete(db_session, payment.id)

        assert submit(db_session, txid="tx-reuse").status == PENDING


class TestPaymentQueries:

    def test_pending_newest_first(self, db_session):
        older = submit(db_session, txid="tx-old")
        newer = submit(db_session, txid="tx-new")
        older.created_at = datetime.utcnow() - timedelta(hours=1)
        db_session.commit()
        approved = submit(db_session, txid="tx-done")
        payment_service.approve(db_session, approved.id)

        pending = payment_service.list_pending(db_session)

        assert [p.id for p in pending] == [newer.id, older.id]

    def test_list_for_user(self, db_session):
        submit(db_session, txid="tx-a")
        submit(db_session, txid="tx-b", email="bob@example.com")

        payments = payment_service.list_for_user(db_session, "alice@example.com")

        assert [p.txid for p in payments] == ["tx-a"]

    def test_stats(self, db_session):
        first = submit(db_session, amount="20", txid="tx-a")
        submit(db_session, amount="5", txid="tx-b")
        payment_service.approve(db_session, first.id)

        stats = payment_service.get_stats(db_session)

        assert stats["total_users"] == 1
        assert stats["pending_payments"] == 1
        assert stats["approved_payments"] == 1
        assert stats["total_revenue"] == Decimal("20")
        assert stats["total_credits"] == 20

    def test_stats_since(self, db_session):
        payment = submit(db_session, amount="12.5")
        payment_service.approve(db_session, payment.id)

        stats = payment_service.get_stats(db_session, since=datetime.utcnow() - timedelta(days=1))

        assert stats["new_users"] == 1
        assert stats["new_payments"] == 1
        assert stats["revenue_since"] == Decimal("12.5")


class TestUserDirectory:

    def test_register_new_user_defaults(self, db_session):
        user = user_service.register(db_session, "alice@example.com", first_name="Alice")

        assert user.sms_credits == 0
        assert user.subscription_status == SUBSCRIPTION_INACTIVE
        assert user.recent_activity == []
        assert user.source == "main_app"

    def test_register_merges_without_clobbering(self, db_session):
        payment = submit(db_session)
        payment_service.approve(db_session, payment.id)

        user = user_service.register(db_session, "alice@example.com", last_name="Smith")

        assert user.sms_credits == 20
        assert user.subscription_status == SUBSCRIPTION_ACTIVE
        assert user.last_name == "Smith"
        assert user.source == "payment"

    def test_register_ignores_missing_fields(self, db_session):
        user_service.register(db_session, "alice@example.com", first_name="Alice")

        user = user_service.register(db_session, "alice@example.com", first_name=None, country="US")

        assert user.first_name == "Alice"
        assert user.country == "US"

    def test_emails_are_case_sensitive(self, db_session):
        user_service.register(db_session, "alice@example.com")

        assert user_service.exists(db_session, "alice@example.com")
        assert not user_service.exists(db_session, "Alice@example.com")

    def test_delete_user(self, db_session):
        user_service.register(db_session, "alice@example.com")

        user_service.delete_user(db_session, "alice@example.com")

        with pytest.raises(UserNotFound):
            user_service.get_user(db_session, "alice@example.com")
