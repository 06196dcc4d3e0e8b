from datetime import datetime, timedelta, timezone

import pytest

from clubhouse.bookings import service as bookings_service
from clubhouse.bookings.models import CheckoutRequest
from clubhouse.errors import InvalidStateError, NotFoundError, PersistenceError, StateConflictError
from clubhouse.payments import metadata as payments_metadata
from clubhouse.payments import service as payments_service
from tests.helpers import CLUB_ID, DATES, checkout_payload

class _Scheduler:
    def __init__(self):
        self.calls = []

    def __call__(self, func, *args, **kwargs):
        self.calls.append((func.__name__, args))

def _checkout(store, **kw):
    return bookings_service.create_booking(CheckoutRequest(**checkout_payload(**kw)))

def _event(event_type, session):
    return {"id": "evt_1", "type": event_type, "data": {"object": session}}

def test_confirm_payment_marks_paid_and_materializes_days(store, fake_stripe):
    res = _checkout(store)
    fake_stripe.pay(res["session_id"])
    schedule = _Scheduler()

    status, payload = payments_service.confirm_payment(res["booking_id"], schedule=schedule)

    assert status == payments_service.VERIFIED
    assert payload["days"] == 3
    booking = store.bookings[res["booking_id"]]
    assert booking["status"] == "paid"
    assert booking["stripe_payment_intent_id"] == f"pi_{res['session_id']}"
    assert booking["paid_at"]
    assert store.days_for(res["booking_id"]) == DATES[:3]
    assert schedule.calls == [("send_payment_notifications", (res["booking_id"],))]

def test_confirm_payment_is_idempotent(store, fake_stripe):
    res = _checkout(store)
    fake_stripe.pay(res["session_id"])
    payments_service.confirm_payment(res["booking_id"], schedule=_Scheduler())

    schedule = _Scheduler()
    status, payload = payments_service.confirm_payment(res["booking_id"], schedule=schedule)
    assert status == payments_service.ALREADY_PAID
    assert payload["booking_status"] == "paid"
    assert schedule.calls == []
    assert len(store.list_booking_days(res["booking_id"])) == 3

def test_confirm_payment_unpaid_returns_checkout_url(store, fake_stripe):
    res = _checkout(store)
    status, payload = payments_service.confirm_payment(res["booking_id"], schedule=_Scheduler())
    assert status == payments_service.UNPAID
    assert payload["checkout_url"] == res["url"]
    assert store.bookings[res["booking_id"]]["status"] == "pending"
    assert store.list_booking_days(res["booking_id"]) == []

def test_confirm_payment_lost_race(store, fake_stripe, monkeypatch):
    res = _checkout(store)
    fake_stripe.pay(res["session_id"])

    def _concurrent_winner(booking_id, from_status, to_status, extra=None):
        # Un autre appelant a fait la transition juste avant
        store.bookings[booking_id]["status"] = "paid"
        return None

    monkeypatch.setattr("clubhouse.bookings.repository.transition_status", _concurrent_winner)
    schedule = _Scheduler()
    status, _ = payments_service.confirm_payment(res["booking_id"], schedule=schedule)
    assert status == payments_service.ALREADY_PAID
    assert schedule.calls == []

def test_confirm_payment_errors(store, fake_stripe):
    with pytest.raises(NotFoundError):
        payments_service.confirm_payment("missing")

    no_session = store.add_booking()
    with pytest.raises(StateConflictError) as exc:
        payments_service.confirm_payment(no_session["id"])
    assert exc.value.code == "missing_checkout_session"

    cancelled = store.add_booking(status="cancelled", stripe_checkout_session_id="cs_x")
    with pytest.raises(InvalidStateError):
        payments_service.confirm_payment(cancelled["id"])

def test_confirm_payment_rejects_foreign_session(store, fake_stripe):
    res = _checkout(store)
    foreign = {"id": "cs_other", "payment_status": "paid", "metadata": {"booking_id": res["booking_id"]}}
    with pytest.raises(StateConflictError) as exc:
        payments_service.confirm_payment(res["booking_id"], session=foreign)
    assert exc.value.code == "session_mismatch"
    assert store.bookings[res["booking_id"]]["status"] == "pending"

def test_materialize_booking_days_is_idempotent(store):
    booking = store.add_booking()
    assert payments_service.materialize_booking_days(booking) == 3
    assert payments_service.materialize_booking_days(booking) == 3
    assert len(store.list_booking_days(booking["id"])) == 3

def test_materialize_full_week_without_dates(store):
    booking = store.add_booking(booking_option_id="full-week", selected_dates=[])
    assert payments_service.materialize_booking_days(booking) == 5
    assert {r["time_slot"] for r in store.list_booking_days(booking["id"])} == {"full_day"}

def test_handle_completed_event_and_replay(store, fake_stripe):
    res = _checkout(store)
    session = fake_stripe.pay(res["session_id"])
    schedule = _Scheduler()

    first = payments_service.handle_event(_event("checkout.session.completed", session), schedule=schedule)
    replay = payments_service.handle_event(_event("checkout.session.completed", session), schedule=schedule)

    assert first["status"] == "ok"
    assert replay["status"] == "already_paid"
    assert len(schedule.calls) == 1

def test_handle_event_restores_missing_booking(store, fake_stripe):
    lost = {
        "id": "b-lost", "club_id": CLUB_ID, "booking_option_id": "multi-morning",
        "selected_dates": DATES[:2], "parent_name": "Jane Parent", "parent_email": "jane@example.com",
        "parent_phone": "07700900000", "num_children": 1, "subtotal_amount": 4000,
        "discount_amount": 0, "total_amount": 4000, "promo_code_id": None, "fingerprint": "fp",
    }
    session = fake_stripe.create_session(
        line_items=[], success_url="s", cancel_url="c", client_reference_id="b-lost",
        metadata=payments_metadata.build_checkout_metadata(lost, store.clubs[CLUB_ID]),
    )
    session = fake_stripe.pay(session["id"])

    result = payments_service.handle_event(_event("checkout.session.completed", session), schedule=_Scheduler())

    assert result["status"] == "ok"
    restored = store.bookings["b-lost"]
    assert restored["status"] == "paid"
    assert restored["total_amount"] == 4000
    assert restored["fingerprint"] is None
    assert store.days_for("b-lost") == DATES[:2]

def test_handle_event_unrecoverable_booking_is_ignored(store):
    session = {"id": "cs_1", "payment_status": "paid", "metadata": {"booking_id": "ghost"}}
    result = payments_service.handle_event(_event("checkout.session.completed", session))
    assert result["status"] == "ignored"

def test_handle_expired_event_cancels_and_releases(store, fake_stripe):
    res = _checkout(store)
    session = fake_stripe.expire_session(res["session_id"])
    result = payments_service.handle_event(_event("checkout.session.expired", session))
    assert result["status"] == "expired"
    assert store.bookings[res["booking_id"]]["status"] == "cancelled"
    assert store.club_days[f"{CLUB_ID}-{DATES[0]}"]["morning_capacity"] == 10

def test_expired_event_after_payment_is_ignored(store, fake_stripe):
    booking = store.add_booking(status="paid")
    session = {"id": "cs_1", "metadata": {"booking_id": booking["id"]}}
    result = payments_service.handle_event(_event("checkout.session.expired", session))
    assert result["status"] == "ignored"
    assert store.bookings[booking["id"]]["status"] == "paid"

def test_unrelated_event_is_ignored(store):
    result = payments_service.handle_event({"type": "invoice.paid", "data": {"object": {}}})
    assert result == {"status": "ignored", "type": "invoice.paid"}

def test_sweep_confirms_expires_and_skips_recent(store, fake_stripe):
    paid = _checkout(store)
    fake_stripe.pay(paid["session_id"])
    abandoned = _checkout(store, parent={"name": "Other", "email": "other@example.com", "phone": "07700900001"})
    no_session = store.add_booking(parent_email="third@example.com")

    later = datetime.now(timezone.utc) + timedelta(hours=2)
    summary = payments_service.sweep_pending_bookings(now=later)

    assert summary == {"confirmed": 1, "expired": 2, "errors": 0}
    assert store.bookings[paid["booking_id"]]["status"] == "paid"
    assert store.bookings[abandoned["booking_id"]]["status"] == "cancelled"
    assert fake_stripe.sessions[abandoned["session_id"]]["status"] == "expired"
    assert store.bookings[no_session["id"]]["status"] == "cancelled"

def test_sweep_leaves_recent_bookings(store, fake_stripe):
    res = _checkout(store)
    assert payments_service.sweep_pending_bookings() == {"confirmed": 0, "expired": 0, "errors": 0}
    assert store.bookings[res["booking_id"]]["status"] == "pending"

def test_sweep_counts_gateway_errors(store, fake_stripe):
    res = _checkout(store)
    fake_stripe.fail_get = True
    summary = payments_service.sweep_pending_bookings(now=datetime.now(timezone.utc) + timedelta(hours=2))
    assert summary["errors"] == 1
    assert store.bookings[res["booking_id"]]["status"] == "pending"

def test_sweep_continues_after_persistence_error(store, fake_stripe, monkeypatch):
    broken = store.add_booking(parent_email="broken@example.com")
    healthy = store.add_booking(parent_email="healthy@example.com")
    real_transition = store.transition_status

    def _flaky_transition(booking_id, *args, **kwargs):
        if booking_id == broken["id"]:
            raise PersistenceError("Mise à jour du statut impossible")
        return real_transition(booking_id, *args, **kwargs)

    monkeypatch.setattr("clubhouse.bookings.repository.transition_status", _flaky_transition)
    summary = payments_service.sweep_pending_bookings(now=datetime.now(timezone.utc) + timedelta(hours=2))

    assert summary == {"confirmed": 0, "expired": 1, "errors": 1}
    assert store.bookings[broken["id"]]["status"] == "pending"
    assert store.bookings[healthy["id"]]["status"] == "cancelled"

def test_payment_notifications_are_sent(store, fake_stripe, sent_emails, monkeypatch):
    monkeypatch.setattr("clubhouse.config.ADMIN_EMAIL", "admin@example.com")
    res = _checkout(store)
    fake_stripe.pay(res["session_id"])
    payments_service.confirm_payment(res["booking_id"])

    assert [m["to"] for m in sent_emails] == ["jane@example.com", "admin@example.com"]
    assert "Booking Confirmed" in sent_emails[0]["subject"]
    assert "£120.00" in sent_emails[0]["html"]
