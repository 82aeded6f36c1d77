"""bank reconciliation schema

Revision ID: 7d2e8b1f5c93
Revises: 3a9f1c2d4b60
Create Date: 2026-09-09 16:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7d2e8b1f5c93"
down_revision = "3a9f1c2d4b60"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "cuenta_bancaria",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("banco", sa.String(length=120), nullable=False),
        sa.Column("numero_cuenta", sa.String(length=40), nullable=False),
        sa.Column("moneda", sa.String(length=3), nullable=False, server_default="ARS"),
        sa.Column("activa", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("banco", "numero_cuenta", name="uq_cuenta_banco_numero"),
    )
    op.create_table(
        "extracto_bancario",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("cuenta_bancaria_id", sa.Integer(), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("descripcion", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("referencia", sa.String(length=120), nullable=True),
        sa.Column("monto", sa.Numeric(14, 2), nullable=False),
        sa.Column("saldo", sa.Numeric(14, 2), nullable=True),
        sa.Column("conciliado", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("conciliacion_match_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["cuenta_bancaria_id"], ["cuenta_bancaria.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_extracto_cuenta_fecha_conciliado",
        "extracto_bancario",
        ["cuenta_bancaria_id", "fecha", "conciliado"],
        unique=False,
    )

    op.create_table(
        "factura",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero", sa.String(length=40), nullable=False),
        sa.Column("cliente_nombre", sa.String(length=160), nullable=False),
        sa.Column("fecha_emision", sa.Date(), nullable=False),
        sa.Column("monto_total", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "estado",
            sa.Enum("BORRADOR", "EMITIDA", "PAGADA", "ANULADA", name="factura_estado"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("numero"),
    )
    op.create_table(
        "pago",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("referencia_externa", sa.String(length=60), nullable=True),
        sa.Column("monto", sa.Numeric(14, 2), nullable=False),
        sa.Column("fecha_pago", sa.Date(), nullable=False),
        sa.Column(
            "estado",
            sa.Enum("PENDIENTE", "APROBADO", "RECHAZADO", "DEVUELTO", name="pago_estado"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "gasto",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("descripcion", sa.String(length=255), nullable=False),
        sa.Column("categoria", sa.String(length=60), nullable=False, server_default="OTROS"),
        sa.Column("monto", sa.Numeric(14, 2), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False),
        sa.Column("estado", sa.Enum("PENDIENTE", "APROBADO", "RECHAZADO", name="gasto_estado"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "conciliacion",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero", sa.String(length=30), nullable=False),
        sa.Column("cuenta_bancaria_id", sa.Integer(), nullable=False),
        sa.Column("periodo_desde", sa.Date(), nullable=False),
        sa.Column("periodo_hasta", sa.Date(), nullable=False),
        sa.Column("estado", sa.Enum("EN_PROCESO", "COMPLETADA", name="conciliacion_estado"), nullable=False),
        sa.Column("total_extractos", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_conciliados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_no_conciliados", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("diferencia", sa.Numeric(14, 2), nullable=True),
        sa.Column("completada_por", sa.Integer(), nullable=True),
        sa.Column("fecha_completada", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("periodo_hasta >= periodo_desde", name="ck_conciliacion_periodo"),
        sa.ForeignKeyConstraint(["completada_por"], ["user_account.id"]),
        sa.ForeignKeyConstraint(["cuenta_bancaria_id"], ["cuenta_bancaria.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("numero"),
    )
    with op.batch_alter_table("conciliacion", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_conciliacion_cuenta_bancaria_id"), ["cuenta_bancaria_id"], unique=False)

    op.create_table(
        "conciliacion_match",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("conciliacion_id", sa.Integer(), nullable=False),
        sa.Column("extracto_id", sa.Integer(), nullable=False),
        sa.Column("entidad_tipo", sa.String(length=40), nullable=False),
        sa.Column("entidad_id", sa.Integer(), nullable=False),
        sa.Column("entidad_label", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("tipo_match", sa.Enum("EXACTO", "APROXIMADO", "MANUAL", name="match_tipo"), nullable=False),
        sa.Column("confianza", sa.Integer(), nullable=False),
        sa.Column("monto_banco", sa.Numeric(14, 2), nullable=False),
        sa.Column("monto_sistema", sa.Numeric(14, 2), nullable=False),
        sa.Column("diferencia", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column(
            "estado",
            sa.Enum("PROPUESTO", "ACEPTADO", "RECHAZADO", name="match_estado"),
            nullable=False,
        ),
        sa.Column("motivo_rechazo", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("resuelto_por", sa.Integer(), nullable=True),
        sa.Column("fecha_resolucion", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["conciliacion_id"], ["conciliacion.id"]),
        sa.ForeignKeyConstraint(["extracto_id"], ["extracto_bancario.id"]),
        sa.ForeignKeyConstraint(["resuelto_por"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("conciliacion_match", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_conciliacion_match_extracto_id"), ["extracto_id"], unique=False)
    op.create_index(
        "ix_conciliacion_match_batch_estado",
        "conciliacion_match",
        ["conciliacion_id", "estado"],
        unique=False,
    )
    op.create_index(
        "ix_conciliacion_match_entidad",
        "conciliacion_match",
        ["entidad_tipo", "entidad_id"],
        unique=False,
    )


def downgrade():
    op.drop_index("ix_conciliacion_match_entidad", table_name="conciliacion_match")
    op.drop_index("ix_conciliacion_match_batch_estado", table_name="conciliacion_match")
    op.drop_table("conciliacion_match")
    op.drop_table("conciliacion")
    op.drop_table("gasto")
    op.drop_table("pago")
    op.drop_table("factura")
    op.drop_index("ix_extracto_cuenta_fecha_conciliado", table_name="extracto_bancario")
    op.drop_table("extracto_bancario")
    op.drop_table("cuenta_bancaria")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in ("match_estado", "match_tipo", "conciliacion_estado", "gasto_estado", "pago_estado", "factura_estado"):
            op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))
