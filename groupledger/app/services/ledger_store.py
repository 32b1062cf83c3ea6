"""
services/ledger_store.py — Append-only access to the group ledger.

The expense and settlement services are the only callers of append_entries().
Balance and allocation code read through query_entries() or aggregate the
ledger_entries table directly. Nothing updates a ledger row.

Immutability guard:
  Three layers reject UPDATE/DELETE of ledger rows with LEDGER_IMMUTABLE:

    1. Session events, installed once by install_ledger_guard():
         before_flush    — a dirty or deleted LedgerEntry in the unit of work
         do_orm_execute  — session.execute(update(...)/delete(...)) aimed at
                           the ledger_entries table
    2. An Engine before_cursor_execute event that inspects the final SQL, so
       text() statements and Core statements sent through
       session.connection() are caught on every backend.
    3. On PostgreSQL, the BEFORE UPDATE OR DELETE trigger from migration 002,
       which raises unless the transaction-local setting
       groupledger.ledger_unlocked is 'on'. It covers writers outside this
       process; is_trigger_rejection() recognises its error.

  ledger_teardown() is the only code path that lowers all three, and it is
  used only by group_service.delete_group().

Layer rules:
  - No Flask imports. Receives a SQLAlchemy Session argument.
  - Never commits. Entries are flushed inside the caller's transaction.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from decimal import Decimal

from sqlalchemy import event, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import ORMExecuteState, Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.ledger_entry import Direction, LedgerEntry, Origin

logger = logging.getLogger(__name__)

# Session.info and Connection.info key set while a teardown is in progress.
_DISARMED_FLAG = "ledger_guard_disarmed"

# Name of the transaction-local PostgreSQL setting read by the trigger.
_PG_UNLOCK_SETTING = "groupledger.ledger_unlocked"

# SQLSTATE raised by fn_reject_ledger_mutation() (object_not_in_prerequisite_state).
_PG_IMMUTABLE_SQLSTATE = "55000"

_LEDGER_WRITE_SQL = re.compile(
    r"^\s*(UPDATE|DELETE\s+FROM)\s+(\S+\.)?\"?ledger_entries\"?(\s|$)",
    re.IGNORECASE,
)


# ── Entry constructors ─────────────────────────────────────────────────────

def credit(
        group_id: int,
        member_id: int,
        amount: Decimal,
        *,
        expense_id: int | None = None,
        settlement_id: int | None = None,
) -> LedgerEntry:
    """Builds (does not persist) a Credit entry for one member."""
    return _entry(group_id, member_id, amount, Direction.CREDIT, expense_id, settlement_id)


def debit(
        group_id: int,
        member_id: int,
        amount: Decimal,
        *,
        expense_id: int | None = None,
        settlement_id: int | None = None,
) -> LedgerEntry:
    """Builds (does not persist) a Debit entry for one member."""
    return _entry(group_id, member_id, amount, Direction.DEBIT, expense_id, settlement_id)


def _entry(
        group_id: int,
        member_id: int,
        amount: Decimal,
        direction: Direction,
        expense_id: int | None,
        settlement_id: int | None,
) -> LedgerEntry:
    if (expense_id is None) == (settlement_id is None):
        raise ValueError("A ledger entry references exactly one expense or settlement.")
    return LedgerEntry(
        group_id=group_id,
        member_id=member_id,
        origin=Origin.EXPENSE if expense_id is not None else Origin.SETTLEMENT,
        expense_id=expense_id,
        settlement_id=settlement_id,
        direction=direction,
        amount=amount,
    )


# ── Store operations ───────────────────────────────────────────────────────

def append_entries(session: Session, entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    """
    Adds ledger entries inside the caller's open transaction and flushes.

    Never commits: the expense or settlement row and its entries must land
    (or roll back) together.
    """
    entries = list(entries)
    session.add_all(entries)
    session.flush()
    return entries


def query_entries(
        session: Session,
        group_id: int,
        member_id: int | None = None,
) -> list[LedgerEntry]:
    """Returns a group's ledger entries (optionally one member's), oldest first."""
    stmt = select(LedgerEntry).where(LedgerEntry.group_id == group_id)
    if member_id is not None:
        stmt = stmt.where(LedgerEntry.member_id == member_id)
    stmt = stmt.order_by(LedgerEntry.recorded_at.asc(), LedgerEntry.id.asc())
    return list(session.execute(stmt).scalars().all())


# ── Immutability guard ─────────────────────────────────────────────────────

def is_ledger_guard_armed(session: Session) -> bool:
    return not session.info.get(_DISARMED_FLAG, False)


def _immutable_error(action: str) -> AppError:
    return AppError(
        ErrorCode.LEDGER_IMMUTABLE,
        f"Ledger entries are append-only; {action} is not allowed.",
        500,
    )


def _reject_ledger_changes_in_flush(session: Session, flush_context, instances) -> None:
    if not is_ledger_guard_armed(session):
        return

    for obj in session.deleted:
        if isinstance(obj, LedgerEntry):
            logger.error("Blocked delete of ledger entry %s", obj.id)
            raise _immutable_error("delete")

    for obj in session.dirty:
        if isinstance(obj, LedgerEntry) and session.is_modified(obj):
            logger.error("Blocked update of ledger entry %s", obj.id)
            raise _immutable_error("update")


def _reject_ledger_statements(orm_execute_state: ORMExecuteState) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if not is_ledger_guard_armed(orm_execute_state.session):
        return

    table = getattr(orm_execute_state.statement, "table", None)
    if getattr(table, "name", None) == LedgerEntry.__tablename__:
        action = "update" if orm_execute_state.is_update else "delete"
        logger.error("Blocked bulk %s on %s", action, LedgerEntry.__tablename__)
        raise _immutable_error(action)


def _reject_ledger_sql(conn, cursor, statement, parameters, context, executemany) -> None:
    if not _LEDGER_WRITE_SQL.match(statement):
        return
    if conn.info.get(_DISARMED_FLAG, False):
        return

    action = "delete" if statement.lstrip()[:6].upper() == "DELETE" else "update"
    logger.error("Blocked %s statement on %s", action, LedgerEntry.__tablename__)
    raise _immutable_error(action)


def is_trigger_rejection(error: DBAPIError) -> bool:
    """True when error is fn_reject_ledger_mutation() refusing a ledger write."""
    orig = getattr(error, "orig", None)
    return (
        getattr(orig, "pgcode", None) == _PG_IMMUTABLE_SQLSTATE
        and ErrorCode.LEDGER_IMMUTABLE in str(orig)
    )


def install_ledger_guard() -> None:
    """
    Registers the session-level and engine-level guards on every Session and
    Engine. Safe to call more than once; the app factory calls it on every
    create_app().
    """
    if not event.contains(Session, "before_flush", _reject_ledger_changes_in_flush):
        event.listen(Session, "before_flush", _reject_ledger_changes_in_flush)
    if not event.contains(Session, "do_orm_execute", _reject_ledger_statements):
        event.listen(Session, "do_orm_execute", _reject_ledger_statements)
    if not event.contains(Engine, "before_cursor_execute", _reject_ledger_sql):
        event.listen(Engine, "before_cursor_execute", _reject_ledger_sql)


def _set_pg_unlock(session: Session, value: str) -> None:
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(text(f"SET LOCAL {_PG_UNLOCK_SETTING} = '{value}'"))


def _relock_after_error(session: Session) -> None:
    # An aborted PostgreSQL transaction refuses further statements; its
    # rollback discards the SET LOCAL anyway.
    try:
        _set_pg_unlock(session, "off")
    except SQLAlchemyError as exc:
        logger.warning("Could not re-lock ledger after failed teardown: %s", exc)


@contextmanager
def ledger_teardown(session: Session) -> Iterator[Session]:
    """
    The single privileged window in which ledger rows may be deleted.

        with ledger_teardown(session):
            session.execute(delete(LedgerEntry).where(...))

    Disarming is the first statement and re-arming the last one, on success
    and on failure. The session and connection flags are cleared in `finally`,
    so an exception cannot leave the in-process guards down. The PostgreSQL
    setting is re-locked on the error path too when the transaction still
    accepts statements; otherwise the caller's rollback discards it.
    """
    session.info[_DISARMED_FLAG] = True
    connection_info = session.connection().info
    connection_info[_DISARMED_FLAG] = True
    try:
        _set_pg_unlock(session, "on")
        yield session
    except Exception:
        _relock_after_error(session)
        raise
    else:
        _set_pg_unlock(session, "off")
    finally:
        connection_info.pop(_DISARMED_FLAG, None)
        session.info.pop(_DISARMED_FLAG, None)
