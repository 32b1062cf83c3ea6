"""Initial schema — all tables, enums, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before tables that reference them)
  2. Tables in FK dependency order (members → groups → memberships
     → expenses → expense_splits → settlements → ledger_entries → receipts)
  3. Indexes

ON DELETE policies:
  Every FK is RESTRICT. Nothing cascades at the database level; deleting a
  group is an explicit, ordered teardown performed by group_service.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _fk(column: str, target: str, name: str) -> sa.Column:
    return sa.Column(
        column,
        sa.Integer(),
        sa.ForeignKey(target, ondelete="RESTRICT", name=name),
        nullable=False,
    )


def _created_at(column: str = "created_at") -> sa.Column:
    return sa.Column(
        column,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    """
    Apply the full initial schema.

    Enum types are created via op.execute() so the exact SQL is explicit
    and reviewable; the columns reference them with create_type=False.
    """

    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────

    op.execute("CREATE TYPE membership_role_enum AS ENUM ('admin', 'member')")
    op.execute("CREATE TYPE ledger_origin_enum AS ENUM ('expense', 'settlement')")
    op.execute("CREATE TYPE ledger_direction_enum AS ENUM ('D', 'C')")

    # ── Step 2: members ───────────────────────────────────────────────────

    op.create_table(
        "members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("payment_alias", sa.String(100), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_members"),
        sa.UniqueConstraint("email", name="uq_members_email"),
        sa.CheckConstraint(
            "LENGTH(TRIM(display_name)) > 0",
            name="ck_members_display_name_nonempty",
        ),
    )

    # ── Step 3: groups ────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(300), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
    )

    # ── Step 4: memberships ───────────────────────────────────────────────
    # UNIQUE(group_id, member_id): a member joins a group at most once.

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("group_id", "groups.id", "fk_memberships_group"),
        _fk("member_id", "members.id", "fk_memberships_member"),
        sa.Column(
            "role",
            postgresql.ENUM("admin", "member", name="membership_role_enum", create_type=False),
            nullable=False,
            server_default="member",
        ),
        _created_at("joined_at"),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("group_id", "member_id", name="uq_memberships_group_member"),
    )

    # ── Step 5: expenses ──────────────────────────────────────────────────

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("group_id", "groups.id", "fk_expenses_group"),
        _fk("payer_id", "members.id", "fk_expenses_payer"),
        sa.Column("description", sa.String(300), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("location", sa.String(200), nullable=True),
        _created_at("paid_at"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )

    # ── Step 6: expense_splits ────────────────────────────────────────────
    # share_amount keeps 4 dp so percentage shares are stored unrounded.

    op.create_table(
        "expense_splits",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("expense_id", "expenses.id", "fk_expense_splits_expense"),
        _fk("group_id", "groups.id", "fk_expense_splits_group"),
        _fk("member_id", "members.id", "fk_expense_splits_member"),
        sa.Column("share_amount", sa.Numeric(14, 4), nullable=False),
        sa.Column("share_percent", sa.Numeric(7, 4), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expense_splits"),
        sa.UniqueConstraint("expense_id", "member_id", name="uq_expense_splits_expense_member"),
        sa.CheckConstraint("share_amount >= 0", name="ck_expense_splits_share_nonnegative"),
    )

    # ── Step 7: settlements ───────────────────────────────────────────────

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("group_id", "groups.id", "fk_settlements_group"),
        _fk("payer_id", "members.id", "fk_settlements_payer"),
        _fk("receiver_id", "members.id", "fk_settlements_receiver"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_on", sa.Date(), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint(
            "payer_id <> receiver_id",
            name="ck_settlements_distinct_parties",
        ),
    )

    # ── Step 8: ledger_entries ────────────────────────────────────────────
    # Exactly one of expense_id / settlement_id is set, matching origin.

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("group_id", "groups.id", "fk_ledger_entries_group"),
        _fk("member_id", "members.id", "fk_ledger_entries_member"),
        sa.Column(
            "origin",
            postgresql.ENUM("expense", "settlement", name="ledger_origin_enum", create_type=False),
            nullable=False,
        ),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="RESTRICT", name="fk_ledger_entries_expense"),
            nullable=True,
        ),
        sa.Column(
            "settlement_id",
            sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="RESTRICT", name="fk_ledger_entries_settlement"),
            nullable=True,
        ),
        sa.Column(
            "direction",
            postgresql.ENUM("D", "C", name="ledger_direction_enum", create_type=False),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 4), nullable=False),
        _created_at("recorded_at"),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_entries"),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        sa.CheckConstraint(
            "(origin = 'expense' AND expense_id IS NOT NULL AND settlement_id IS NULL) "
            "OR (origin = 'settlement' AND settlement_id IS NOT NULL AND expense_id IS NULL)",
            name="ck_ledger_entries_origin_reference",
        ),
    )

    # ── Step 9: receipts ──────────────────────────────────────────────────

    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer(), nullable=False),
        _fk("group_id", "groups.id", "fk_receipts_group"),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="RESTRICT", name="fk_receipts_expense"),
            nullable=True,
        ),
        sa.Column(
            "settlement_id",
            sa.Integer(),
            sa.ForeignKey("settlements.id", ondelete="RESTRICT", name="fk_receipts_settlement"),
            nullable=True,
        ),
        sa.Column("storage_ref", sa.String(500), nullable=False),
        _fk("attached_by", "members.id", "fk_receipts_attached_by"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_receipts"),
        sa.CheckConstraint(
            "(expense_id IS NULL) <> (settlement_id IS NULL)",
            name="ck_receipts_single_target",
        ),
    )

    # ── Step 10: Indexes ──────────────────────────────────────────────────
    # ix_* names match what the models' index=True columns generate.

    op.create_index("ix_memberships_group_id",    "memberships",    ["group_id"])
    op.create_index("ix_memberships_member_id",   "memberships",    ["member_id"])
    op.create_index("ix_expense_splits_expense_id", "expense_splits", ["expense_id"])
    op.create_index("ix_expense_splits_group_id", "expense_splits", ["group_id"])
    op.create_index("ix_settlements_group_id",    "settlements",    ["group_id"])
    op.create_index("ix_receipts_group_id",       "receipts",       ["group_id"])

    # Expense listing filters by group and paid_at window.
    op.create_index(
        "idx_expenses_group_paid_at",
        "expenses",
        ["group_id", "paid_at"],
    )

    # Every balance read aggregates ledger rows by (group, member).
    op.create_index(
        "idx_ledger_entries_group_member",
        "ledger_entries",
        ["group_id", "member_id"],
    )


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset only.
    """

    op.drop_index("idx_ledger_entries_group_member", table_name="ledger_entries")
    op.drop_index("idx_expenses_group_paid_at",      table_name="expenses")
    op.drop_index("ix_receipts_group_id",            table_name="receipts")
    op.drop_index("ix_settlements_group_id",         table_name="settlements")
    op.drop_index("ix_expense_splits_group_id",      table_name="expense_splits")
    op.drop_index("ix_expense_splits_expense_id",    table_name="expense_splits")
    op.drop_index("ix_memberships_member_id",        table_name="memberships")
    op.drop_index("ix_memberships_group_id",         table_name="memberships")

    op.drop_table("receipts")
    op.drop_table("ledger_entries")
    op.drop_table("settlements")
    op.drop_table("expense_splits")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("members")

    op.execute("DROP TYPE IF EXISTS ledger_direction_enum")
    op.execute("DROP TYPE IF EXISTS ledger_origin_enum")
    op.execute("DROP TYPE IF EXISTS membership_role_enum")
