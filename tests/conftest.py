import copy
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Compteurs de rate limiting en mémoire (avant import de l'app)
os.environ.setdefault("USE_FAKE_REDIS_FOR_TESTS", "1")

from clubhouse.app import app as fastapi_app
from clubhouse.bookings.models import ensure_transition
from clubhouse.errors import ExternalGatewayError

from tests.helpers import CLUB_ID, DATES, OTHER_CLUB_ID

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        # Les tests de rate limiting le réactivent explicitement
        app.state.rate_limit_enabled = False
        yield c

# Aucun test ne doit atteindre Supabase
@pytest.fixture(scope="function", autouse=True)
def mock_supabase(monkeypatch):
    monkeypatch.setattr("clubhouse.infra.supabase_client.get_service_supabase", lambda: MagicMock())

# Aucun email réel: on capture les envois
@pytest.fixture(autouse=True)
def sent_emails(monkeypatch) -> List[Dict[str, Any]]:
    sent: List[Dict[str, Any]] = []

    def _fake_send(to, subject, html):
        sent.append({"to": to, "subject": subject, "html": html})
        return {"success": True, "id": f"email-{len(sent)}"}

    monkeypatch.setattr("clubhouse.notifications.email.send_email", _fake_send)
    # Alerte admin uniquement quand un test la configure
    monkeypatch.setattr("clubhouse.config.ADMIN_EMAIL", "")
    return sent


class FakeStore:
    """
    Base en mémoire qui remplace les repositories.
    Reproduit les contraintes utiles: empreinte pending unique, (booking_id, club_day_id) unique,
    (booking_id, position) unique, mises à jour conditionnelles et RPC atomiques.
    """

    def __init__(self):
        self.clubs: Dict[str, Dict[str, Any]] = {}
        self.club_days: Dict[str, Dict[str, Any]] = {}
        self.options: Dict[str, Dict[str, Any]] = {}
        self.promos: Dict[str, Dict[str, Any]] = {}
        self.bookings: Dict[str, Dict[str, Any]] = {}
        self.booking_days: Dict[tuple, Dict[str, Any]] = {}
        self.children: List[Dict[str, Any]] = []

    # --- seed ---
    def add_club(self, club_id: str, **kw) -> Dict[str, Any]:
        club = {"id": club_id, "slug": club_id, "name": f"Club {club_id}", "is_active": True, "bookings_open": True}
        club.update(kw)
        self.clubs[club_id] = club
        return club

    def add_club_day(self, club_id: str, day: str, capacity: int = 10, **kw) -> Dict[str, Any]:
        row = {
            "id": f"{club_id}-{day}",
            "club_id": club_id,
            "date": day,
            "morning_capacity": capacity,
            "afternoon_capacity": capacity,
            "is_available": True,
        }
        row.update(kw)
        self.club_days[row["id"]] = row
        return row

    def add_option(self, option_id: str, club_id: str, option_type: str, time_slot: str, price: int, **kw):
        row = {
            "id": option_id,
            "club_id": club_id,
            "name": option_id.replace("-", " ").title(),
            "option_type": option_type,
            "time_slot": time_slot,
            "price_per_child": price,
            "is_active": True,
        }
        row.update(kw)
        self.options[option_id] = row
        return row

    def add_promo(self, code: str, discount_percent: int, **kw) -> Dict[str, Any]:
        row = {
            "id": f"promo-{code.lower()}",
            "code": code.upper(),
            "discount_percent": discount_percent,
            "valid_from": None,
            "valid_until": None,
            "max_uses": None,
            "times_used": 0,
            "club_id": None,
            "is_active": True,
        }
        row.update(kw)
        self.promos[row["id"]] = row
        return row

    def add_booking(self, **kw) -> Dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "club_id": CLUB_ID,
            "booking_option_id": "multi-morning",
            "selected_dates": DATES[:3],
            "parent_name": "Jane Parent",
            "parent_email": "jane@example.com",
            "parent_phone": "07700900000",
            "num_children": 2,
            "subtotal_amount": 12000,
            "discount_amount": 0,
            "total_amount": 12000,
            "promo_code_id": None,
            "status": "pending",
            "fingerprint": None,
            "stripe_checkout_session_id": None,
            "stripe_payment_intent_id": None,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        row.update(kw)
        self.bookings[row["id"]] = row
        return copy.deepcopy(row)

    # --- catalog ---
    def get_club(self, club_id):
        return copy.deepcopy(self.clubs.get(club_id))

    def get_booking_option(self, option_id):
        return copy.deepcopy(self.options.get(option_id))

    def list_club_days(self, club_id):
        days = [d for d in self.club_days.values() if d["club_id"] == club_id]
        return copy.deepcopy(sorted(days, key=lambda d: d["date"]))

    def _slots(self, time_slot):
        return {"morning": ["morning_capacity"], "afternoon": ["afternoon_capacity"],
                "full_day": ["morning_capacity", "afternoon_capacity"]}[time_slot]

    def reserve_capacity(self, club_day_ids, time_slot, seats):
        cols = self._slots(time_slot)
        if any(self.club_days[i][c] < seats for i in club_day_ids for c in cols):
            return False
        for i in club_day_ids:
            for c in cols:
                self.club_days[i][c] -= seats
        return True

    def release_capacity(self, club_day_ids, time_slot, seats):
        for i in club_day_ids:
            for c in self._slots(time_slot):
                self.club_days[i][c] += seats

    # --- promos ---
    def get_promo_by_code(self, code):
        normalized = (code or "").strip().upper()
        for p in self.promos.values():
            if p["code"] == normalized:
                return copy.deepcopy(p)
        return None

    def get_promo_by_id(self, promo_id):
        return copy.deepcopy(self.promos.get(promo_id))

    def claim_promo_use(self, promo_id):
        p = self.promos.get(promo_id)
        if not p or not p["is_active"] or (p["max_uses"] is not None and p["times_used"] >= p["max_uses"]):
            return False
        p["times_used"] += 1
        return True

    def release_promo_use(self, promo_id):
        p = self.promos.get(promo_id)
        if p:
            p["times_used"] = max(p["times_used"] - 1, 0)

    # --- bookings ---
    def insert_booking(self, row):
        fp = row.get("fingerprint")
        if fp and any(b.get("fingerprint") == fp and b["status"] == "pending" for b in self.bookings.values()):
            return None
        if row["id"] in self.bookings:
            return None
        stored = {"created_at": datetime.now(timezone.utc).isoformat(), "stripe_checkout_session_id": None}
        stored.update(copy.deepcopy(row))
        self.bookings[row["id"]] = stored
        return copy.deepcopy(stored)

    def get_booking(self, booking_id):
        return copy.deepcopy(self.bookings.get(booking_id))

    def find_pending_by_fingerprint(self, fingerprint):
        for b in self.bookings.values():
            if b.get("fingerprint") == fingerprint and b["status"] == "pending":
                return copy.deepcopy(b)
        return None

    def set_checkout_session(self, booking_id, session_id):
        self.bookings[booking_id]["stripe_checkout_session_id"] = session_id
        return copy.deepcopy(self.bookings[booking_id])

    def transition_status(self, booking_id, from_status, to_status, extra=None):
        ensure_transition(from_status, to_status)
        b = self.bookings.get(booking_id)
        if not b or b["status"] != from_status:
            return None
        b.update(extra or {})
        b["status"] = to_status
        return copy.deepcopy(b)

    def mark_reminder_sent(self, booking_id):
        self.bookings[booking_id]["reminder_sent_at"] = datetime.now(timezone.utc).isoformat()

    def list_pending_created_before(self, cutoff_iso, limit=50):
        rows = [b for b in self.bookings.values() if b["status"] == "pending" and b["created_at"] < cutoff_iso]
        return copy.deepcopy(rows[:limit])

    def list_paid_awaiting_children(self, cutoff_iso, limit=50):
        rows = [
            b for b in self.bookings.values()
            if b["status"] == "paid" and (b.get("paid_at") or "") < cutoff_iso and not b.get("reminder_sent_at")
        ]
        return copy.deepcopy(rows[:limit])

    def insert_booking_days(self, rows):
        for r in rows:
            self.booking_days.setdefault((r["booking_id"], r["club_day_id"]), dict(r))

    def list_booking_days(self, booking_id):
        return [
            {**r, "club_days": {"date": self.club_days[r["club_day_id"]]["date"]}}
            for (bid, _), r in self.booking_days.items() if bid == booking_id
        ]

    def days_for(self, booking_id) -> List[str]:
        return sorted(r["club_days"]["date"] for r in self.list_booking_days(booking_id))

    # --- children ---
    def count_children(self, booking_id):
        return len([c for c in self.children if c["booking_id"] == booking_id])

    def list_children(self, booking_id):
        return copy.deepcopy(sorted((c for c in self.children if c["booking_id"] == booking_id), key=lambda c: c["position"]))

    def insert_children(self, rows):
        taken = {(c["booking_id"], c["position"]) for c in self.children}
        if any((r["booking_id"], r["position"]) in taken for r in rows):
            return None
        self.children.extend(copy.deepcopy(rows))
        return rows

    def install(self, monkeypatch) -> "FakeStore":
        modules = {
            "clubhouse.catalog.repository": [
                "get_club", "get_booking_option", "list_club_days", "reserve_capacity", "release_capacity",
            ],
            "clubhouse.promos.repository": [
                "get_promo_by_code", "get_promo_by_id", "claim_promo_use", "release_promo_use",
            ],
            "clubhouse.bookings.repository": [
                "insert_booking", "get_booking", "find_pending_by_fingerprint", "set_checkout_session",
                "transition_status", "mark_reminder_sent", "list_pending_created_before",
                "list_paid_awaiting_children", "insert_booking_days", "list_booking_days",
            ],
            "clubhouse.children.repository": ["count_children", "list_children", "insert_children"],
        }
        for module, names in modules.items():
            for name in names:
                monkeypatch.setattr(f"{module}.{name}", getattr(self, name))
        return self


class FakeStripe:
    """Remplace clubhouse.payments.stripe_client (sessions Checkout en mémoire)."""

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []
        self.fail_create = False
        self.fail_get = False

    def create_session(self, **kwargs):
        if self.fail_create:
            raise ExternalGatewayError("Création de la session de paiement impossible")
        session_id = f"cs_test_{len(self.sessions) + 1}"
        session = {
            "id": session_id,
            "url": f"https://checkout.stripe.test/{session_id}",
            "status": "open",
            "payment_status": "unpaid",
            "payment_intent": None,
            "client_reference_id": kwargs.get("client_reference_id"),
            "metadata": dict(kwargs.get("metadata") or {}),
        }
        self.sessions[session_id] = session
        self.created.append(kwargs)
        return copy.deepcopy(session)

    def get_session(self, session_id):
        if self.fail_get:
            raise ExternalGatewayError("Lecture de la session de paiement impossible")
        return copy.deepcopy(self.sessions[session_id])

    def expire_session(self, session_id):
        self.sessions[session_id]["status"] = "expired"
        return copy.deepcopy(self.sessions[session_id])

    def pay(self, session_id: str) -> Dict[str, Any]:
        s = self.sessions[session_id]
        s.update({"status": "complete", "payment_status": "paid", "payment_intent": f"pi_{session_id}"})
        return copy.deepcopy(s)

    def install(self, monkeypatch) -> "FakeStripe":
        for name in ("create_session", "get_session", "expire_session"):
            monkeypatch.setattr(f"clubhouse.payments.stripe_client.{name}", getattr(self, name))
        return self


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    s = FakeStore().install(monkeypatch)
    s.add_club(CLUB_ID, slug="spring-club", name="Spring Holiday Club")
    s.add_club(OTHER_CLUB_ID, slug="summer-club", name="Summer Club")
    for day in DATES:
        s.add_club_day(CLUB_ID, day, capacity=10)
    s.add_option("full-week", CLUB_ID, "full_week", "full_day", 10000)
    s.add_option("multi-morning", CLUB_ID, "multi_day", "morning", 2000)
    s.add_option("single-afternoon", CLUB_ID, "single_day", "afternoon", 2500)
    s.add_option("other-club-option", OTHER_CLUB_ID, "full_week", "full_day", 9000)
    s.add_promo("SUMMER10", 10)
    s.add_promo("EXPIRED", 20, valid_until="2020-01-01T00:00:00Z")
    s.add_promo("MAXED", 15, max_uses=5, times_used=5)
    s.add_promo("SUMMERONLY", 10, club_id=OTHER_CLUB_ID)
    s.add_promo("ONEUSE", 50, max_uses=1)
    return s

@pytest.fixture
def fake_stripe(monkeypatch) -> FakeStripe:
    return FakeStripe().install(monkeypatch)

