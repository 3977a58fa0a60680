"""initial till schema

Revision ID: 0001_initial_till_schema
Revises:
Create Date: 2026-10-16 09:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial_till_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "user_locations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "location_id", name="uq_user_location"),
    )
    op.create_index("ix_user_locations_location_id", "user_locations", ["location_id"])

    op.create_table(
        "cash_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("location_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("opened_by", sa.Uuid(), nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("opening_float", sa.BigInteger(), nullable=False),
        sa.Column("opening_notes", sa.Text(), nullable=True),
        sa.Column("closed_by", sa.Uuid(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closing_notes", sa.Text(), nullable=True),
        sa.Column("sum_sales", sa.BigInteger(), nullable=True),
        sa.Column("sum_deposits", sa.BigInteger(), nullable=True),
        sa.Column("sum_withdrawals", sa.BigInteger(), nullable=True),
        sa.Column("expected_close_amount", sa.BigInteger(), nullable=True),
        sa.Column("counted_close_amount", sa.BigInteger(), nullable=True),
        sa.Column("variance", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('OPEN', 'CLOSED')", name="cash_session_status"),
        sa.CheckConstraint("opening_float >= 0", name="ck_cash_sessions_opening_float"),
        sa.CheckConstraint(
            "counted_close_amount IS NULL OR counted_close_amount >= 0",
            name="ck_cash_sessions_counted_close_amount",
        ),
    )
    op.create_index("ix_cash_sessions_location_id", "cash_sessions", ["location_id"])
    op.create_index("ix_cash_sessions_status", "cash_sessions", ["status"])
    op.create_index("ix_cash_sessions_location_opened_at", "cash_sessions", ["location_id", "opened_at"])
    # Una sola caja abierta por ubicación
    op.create_index(
        "uq_cash_sessions_location_open",
        "cash_sessions",
        ["location_id"],
        unique=True,
        postgresql_where=sa.text("status = 'OPEN'"),
        sqlite_where=sa.text("status = 'OPEN'"),
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("cash_sessions.id"), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sale_reference", sa.String(100), nullable=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "kind IN ('SALE_SETTLEMENT', 'DEPOSIT', 'WITHDRAWAL')", name="cash_movement_kind"
        ),
        sa.CheckConstraint("amount > 0", name="ck_cash_movements_amount_positive"),
    )
    op.create_index("ix_cash_movements_session_id", "cash_movements", ["session_id"])
    op.create_index("ix_cash_movements_kind", "cash_movements", ["kind"])
    op.create_index("ix_cash_movements_session_recorded_at", "cash_movements", ["session_id", "recorded_at"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("session_id", sa.Uuid(), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("event_type", sa.String(16), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload_snapshot", sa.JSON(), nullable=False),
        sa.CheckConstraint(
            "event_type IN ('OPEN', 'CLOSE', 'MOVEMENT', 'ERROR')", name="audit_event_type"
        ),
    )
    op.create_index("ix_audit_entries_session_id", "audit_entries", ["session_id"])
    op.create_index("ix_audit_entries_location_id", "audit_entries", ["location_id"])
    op.create_index("ix_audit_entries_event_type", "audit_entries", ["event_type"])
    op.create_index("ix_audit_entries_session_timestamp", "audit_entries", ["session_id", "timestamp"])


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("cash_movements")
    op.drop_index("uq_cash_sessions_location_open", table_name="cash_sessions")
    op.drop_table("cash_sessions")
    op.drop_table("user_locations")
    op.drop_table("users")
