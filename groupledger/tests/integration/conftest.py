"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TEST_DATABASE_URL selects the database; the default is in-memory SQLite.
    Point it at a PostgreSQL database to exercise row locks and the ledger
    trigger as well.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order. Ledger rows are
    append-only, so the cleanup runs inside ledger_store.ledger_teardown(),
    the same window delete_group() uses.

There is no member-registration endpoint (identity lives upstream), so
members are seeded directly and tokens are minted with the test secret.

Helper functions (not fixtures):
  - make_member(app, ...)    → member id
  - token_for(app, id)       → signed access token
  - auth_headers(token)      → {"Authorization": "Bearer <token>"}
  - make_group(client, ...)  → group dict
  - add_member(...)          → HTTP response
  - make_expense(...)        → HTTP response
  - make_settlement(...)     → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import delete

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.ledger_entry import LedgerEntry
from groupledger.app.models.member import Member
from groupledger.app.models.membership import Membership
from groupledger.app.models.receipt import Receipt
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.split import ExpenseSplit
from groupledger.app.services import ledger_store

_CLEANUP_ORDER = (
    Receipt,
    LedgerEntry,
    ExpenseSplit,
    Expense,
    Settlement,
    Membership,
    Group,
    Member,
)


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the app in 'testing' mode once and builds the schema."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children first."""
    yield

    with app.app_context():
        session = _db.session
        session.rollback()  # discard any uncommitted state from a failed test
        with ledger_store.ledger_teardown(session):
            for model in _CLEANUP_ORDER:
                session.execute(delete(model))
        session.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def session(app):
    """
    The scoped db.session inside an app context, for tests that call services
    directly. Do not mix with client requests in the same test.
    """
    with app.app_context():
        yield _db.session
        _db.session.rollback()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_member(app, display_name: str = "alice", email: str | None = None) -> int:
    """Inserts a member row and returns its id."""
    with app.app_context():
        member = Member(display_name=display_name, email=email or f"{display_name}@test.com")
        _db.session.add(member)
        _db.session.commit()
        return member.id


def token_for(app, member_id: int, expires_in: timedelta = timedelta(minutes=15)) -> str:
    """Mints an access token the way the identity service would."""
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(member_id), "iat": now, "exp": now + expires_in},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    """Creates a group and returns its data dict. The caller becomes admin."""
    resp = client.post(
        "/api/v1/groups",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, member_id: int, role: str | None = None):
    """Adds a member to a group (admin token required). Returns the HTTP response."""
    payload: dict = {"member_id": member_id}
    if role is not None:
        payload["role"] = role
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=payload,
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    payer_id: int,
    amount: str,
    participants: list[dict],
    description: str = "Test Expense",
    paid_at: str | None = None,
):
    """
    Creates an expense and returns the HTTP response.

    participants: [{"member_id": ..., "share_amount": "..."}] or
                  [{"member_id": ..., "share_percent": "..."}]
    """
    payload: dict = {
        "payer_id": payer_id,
        "amount": amount,
        "description": description,
        "participants": participants,
    }
    if paid_at is not None:
        payload["paid_at"] = paid_at

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def make_settlement(
    client,
    token: str,
    group_id: int,
    payer_id: int,
    receiver_id: int,
    amount: str,
    paid_on: str = "2026-10-01",
):
    """POSTs a settlement and returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={
            "payer_id": payer_id,
            "receiver_id": receiver_id,
            "amount": amount,
            "paid_on": paid_on,
        },
        headers=auth_headers(token),
    )
