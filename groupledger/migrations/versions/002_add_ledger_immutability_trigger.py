"""Add ledger immutability trigger (database enforcement layer).

Revision: 002_add_ledger_immutability_trigger
Created:  2026-10-19

ledger_entries is append-only. The application rejects UPDATE and DELETE
through SQLAlchemy session and engine events; this trigger rejects them for
every writer outside the application too (psql, ad-hoc scripts).
The app maps the trigger error back to LEDGER_IMMUTABLE.

Trigger design:
  Function : fn_reject_ledger_mutation()
    - Raises EXCEPTION 'LEDGER_IMMUTABLE' (SQLSTATE '55000' —
      object_not_in_prerequisite_state) unless the transaction-local
      setting groupledger.ledger_unlocked is 'on'.
    - current_setting(..., true) returns NULL when the setting was never
      set, so the default is locked.

  Trigger  : trg_ledger_entries_immutable
    - BEFORE UPDATE OR DELETE ON ledger_entries
    - FOR EACH ROW

  The only sanctioned unlock is group deletion, which runs
  SET LOCAL groupledger.ledger_unlocked = 'on' inside its own transaction
  (see services/ledger_store.ledger_teardown). SET LOCAL dies with the
  transaction, so the unlock can never leak into the next request.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a change is needed, create a new corrective migration.
"""

from __future__ import annotations

from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "002_add_ledger_immutability_trigger"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


# ── SQL definitions ────────────────────────────────────────────────────────

_CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION fn_reject_ledger_mutation()
RETURNS TRIGGER
LANGUAGE plpgsql
AS $$
BEGIN
    IF COALESCE(current_setting('groupledger.ledger_unlocked', true), 'off') = 'on' THEN
        IF TG_OP = 'DELETE' THEN
            RETURN OLD;
        END IF;
        RETURN NEW;
    END IF;

    RAISE EXCEPTION
        'LEDGER_IMMUTABLE: % on ledger_entries id=% is not allowed',
        TG_OP, OLD.id
        USING ERRCODE = '55000';
END;
$$;
"""

_CREATE_TRIGGER = """
CREATE TRIGGER trg_ledger_entries_immutable
    BEFORE UPDATE OR DELETE
    ON ledger_entries
    FOR EACH ROW
    EXECUTE FUNCTION fn_reject_ledger_mutation();
"""

_DROP_TRIGGER = "DROP TRIGGER IF EXISTS trg_ledger_entries_immutable ON ledger_entries;"
_DROP_FUNCTION = "DROP FUNCTION IF EXISTS fn_reject_ledger_mutation();"


def upgrade() -> None:
    """Creates the function first; the trigger references it."""
    op.execute(_CREATE_FUNCTION)
    op.execute(_CREATE_TRIGGER)


def downgrade() -> None:
    """
    Removes the trigger, then its backing function.

    After downgrade, immutability is enforced only by the session guard.
    """
    op.execute(_DROP_TRIGGER)
    op.execute(_DROP_FUNCTION)
