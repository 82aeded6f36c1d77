"""purchase invoices as reconciliation candidates

Revision ID: e19a4f7c3d52
Revises: b84c6e0a2f17
Create Date: 2026-10-17 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "e19a4f7c3d52"
down_revision = "b84c6e0a2f17"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "factura_compra",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero", sa.String(length=40), nullable=False),
        sa.Column("proveedor_nombre", sa.String(length=160), nullable=False),
        sa.Column("fecha_emision", sa.Date(), nullable=False),
        sa.Column("monto_total", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "estado",
            sa.Enum("PENDIENTE", "PAGADA", "ANULADA", name="factura_compra_estado"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_factura_compra_estado_fecha", "factura_compra", ["estado", "fecha_emision"])


def downgrade():
    op.drop_index("ix_factura_compra_estado_fecha", table_name="factura_compra")
    op.drop_table("factura_compra")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text("DROP TYPE IF EXISTS factura_compra_estado"))
