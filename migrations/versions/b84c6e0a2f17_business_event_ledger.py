"""business event ledger and alerts

Revision ID: b84c6e0a2f17
Revises: 7d2e8b1f5c93
Create Date: 2026-09-15 11:45:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "b84c6e0a2f17"
down_revision = "7d2e8b1f5c93"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "business_event",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("operation_id", sa.String(length=120), nullable=False),
        sa.Column("entity_type", sa.String(length=60), nullable=False),
        sa.Column("entity_id", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.Enum("SUCCESS", "FAILED", name="event_status"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_business_event_created_at", "business_event", ["created_at"], unique=False)
    op.create_index("ix_business_event_operation", "business_event", ["operation_id", "created_at"], unique=False)
    op.create_index("ix_business_event_entity", "business_event", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "event_dispatch",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("business_event_id", sa.Integer(), nullable=False),
        sa.Column("handlers_run", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("handlers_ok", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("handlers_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.String(length=10), nullable=False, server_default="INFO"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["business_event_id"], ["business_event.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("event_dispatch", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_event_dispatch_business_event_id"), ["business_event_id"], unique=False)

    op.create_table(
        "alerta",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.String(length=60), nullable=False),
        sa.Column("mensaje", sa.String(length=500), nullable=False),
        sa.Column("entity_type", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("entity_id", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("leida", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade():
    op.drop_table("alerta")
    op.drop_table("event_dispatch")
    op.drop_index("ix_business_event_entity", table_name="business_event")
    op.drop_index("ix_business_event_operation", table_name="business_event")
    op.drop_index("ix_business_event_created_at", table_name="business_event")
    op.drop_table("business_event")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text("DROP TYPE IF EXISTS event_status"))
