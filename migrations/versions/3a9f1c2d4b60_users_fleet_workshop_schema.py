"""users, fleet and workshop schema

Revision ID: 3a9f1c2d4b60
Revises:
Create Date: 2026-09-02 10:05:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "3a9f1c2d4b60"
down_revision = None
branch_labels = None
depends_on = None


MOTO_ESTADO_VALUES = (
    "EN_DEPOSITO",
    "EN_PATENTAMIENTO",
    "DISPONIBLE",
    "RESERVADA",
    "ALQUILADA",
    "EN_SERVICE",
    "EN_REPARACION",
    "INMOVILIZADA",
    "RECUPERACION",
    "BAJA_TEMP",
    "BAJA_DEFINITIVA",
    "TRANSFERIDA",
)
OT_ESTADO_VALUES = (
    "SOLICITADA",
    "APROBADA",
    "PROGRAMADA",
    "EN_EJECUCION",
    "EN_ESPERA_REPUESTOS",
    "COMPLETADA",
    "CANCELADA",
)


def _existing_enum(values: tuple[str, ...], name: str) -> sa.Enum:
    # El tipo ya fue creado por una tabla anterior (postgres).
    return postgresql.ENUM(*values, name=name, create_type=False)


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.Enum("ADMIN", "CONTADOR", "OPERADOR", "CONSULTA", name="user_role"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "permission_grant",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("operation_id", sa.String(length=120), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_create", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_execute", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_approve", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "operation_id", name="uq_grant_user_operation"),
    )
    with op.batch_alter_table("permission_grant", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_permission_grant_user_id"), ["user_id"], unique=False)

    op.create_table(
        "moto",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("marca", sa.String(length=60), nullable=False),
        sa.Column("modelo", sa.String(length=60), nullable=False),
        sa.Column("anio", sa.Integer(), nullable=False),
        sa.Column("patente", sa.String(length=20), nullable=True),
        sa.Column("color", sa.String(length=30), nullable=False, server_default=""),
        sa.Column("km", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estado", sa.Enum(*MOTO_ESTADO_VALUES, name="moto_estado"), nullable=False),
        sa.Column("estado_anterior", _existing_enum(MOTO_ESTADO_VALUES, "moto_estado"), nullable=True),
        sa.Column("precio_alquiler_mensual", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("creado_por", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("km >= 0", name="ck_moto_km"),
        sa.ForeignKeyConstraint(["creado_por"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("patente"),
    )
    op.create_table(
        "historial_estado_moto",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("moto_id", sa.Integer(), nullable=False),
        sa.Column("estado_anterior", _existing_enum(MOTO_ESTADO_VALUES, "moto_estado"), nullable=False),
        sa.Column("estado_nuevo", _existing_enum(MOTO_ESTADO_VALUES, "moto_estado"), nullable=False),
        sa.Column("motivo", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["moto_id"], ["moto.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("historial_estado_moto", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_historial_estado_moto_moto_id"), ["moto_id"], unique=False)

    op.create_table(
        "baja_moto",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("moto_id", sa.Integer(), nullable=False),
        sa.Column(
            "tipo",
            sa.Enum("ROBO", "SINIESTRO", "VENTA", "CHATARRA", "DEVOLUCION_FABRICANTE", name="tipo_baja"),
            nullable=False,
        ),
        sa.Column("motivo", sa.String(length=500), nullable=False),
        sa.Column("monto_recuperado", sa.Numeric(12, 2), nullable=True),
        sa.Column("num_denuncia", sa.String(length=60), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["moto_id"], ["moto.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("baja_moto", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_baja_moto_moto_id"), ["moto_id"], unique=False)

    op.create_table(
        "lectura_km",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("moto_id", sa.Integer(), nullable=False),
        sa.Column("km", sa.Integer(), nullable=False),
        sa.Column("fuente", sa.Enum("MANUAL", "GPS", "SERVICE", "INSPECCION", name="fuente_km"), nullable=False),
        sa.Column("notas", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["moto_id"], ["moto.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lectura_km_moto_fecha", "lectura_km", ["moto_id", "created_at"], unique=False)

    op.create_table(
        "orden_trabajo",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero", sa.String(length=30), nullable=False),
        sa.Column("moto_id", sa.Integer(), nullable=False),
        sa.Column("tipo", sa.Enum("PREVENTIVO", "CORRECTIVO", "EMERGENCIA", name="ot_tipo"), nullable=False),
        sa.Column("prioridad", sa.Enum("BAJA", "MEDIA", "ALTA", "URGENTE", name="ot_prioridad"), nullable=False),
        sa.Column("estado", sa.Enum(*OT_ESTADO_VALUES, name="ot_estado"), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False),
        sa.Column("taller_nombre", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("mecanico_nombre", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("fecha_programada", sa.Date(), nullable=True),
        sa.Column("fecha_aprobacion", sa.DateTime(), nullable=True),
        sa.Column("fecha_inicio_real", sa.DateTime(), nullable=True),
        sa.Column("fecha_fin_real", sa.DateTime(), nullable=True),
        sa.Column("km_ingreso", sa.Integer(), nullable=True),
        sa.Column("km_egreso", sa.Integer(), nullable=True),
        sa.Column("observaciones", sa.Text(), nullable=False, server_default=""),
        sa.Column("motivo_cancelacion", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("costo_mano_obra", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("costo_repuestos", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("costo_total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["moto_id"], ["moto.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("numero"),
    )
    op.create_index("ix_orden_trabajo_moto_estado", "orden_trabajo", ["moto_id", "estado"], unique=False)

    op.create_table(
        "repuesto_orden_trabajo",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("orden_trabajo_id", sa.Integer(), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("cantidad", sa.Integer(), nullable=False),
        sa.Column("precio_unitario", sa.Numeric(12, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.ForeignKeyConstraint(["orden_trabajo_id"], ["orden_trabajo.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("repuesto_orden_trabajo", schema=None) as batch_op:
        batch_op.create_index(
            batch_op.f("ix_repuesto_orden_trabajo_orden_trabajo_id"), ["orden_trabajo_id"], unique=False
        )

    op.create_table(
        "historial_ot",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("orden_trabajo_id", sa.Integer(), nullable=False),
        sa.Column("estado_anterior", _existing_enum(OT_ESTADO_VALUES, "ot_estado"), nullable=False),
        sa.Column("estado_nuevo", _existing_enum(OT_ESTADO_VALUES, "ot_estado"), nullable=False),
        sa.Column("descripcion", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["orden_trabajo_id"], ["orden_trabajo.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("historial_ot", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_historial_ot_orden_trabajo_id"), ["orden_trabajo_id"], unique=False)


def downgrade():
    op.drop_table("historial_ot")
    op.drop_table("repuesto_orden_trabajo")
    op.drop_index("ix_orden_trabajo_moto_estado", table_name="orden_trabajo")
    op.drop_table("orden_trabajo")
    op.drop_index("ix_lectura_km_moto_fecha", table_name="lectura_km")
    op.drop_table("lectura_km")
    op.drop_table("baja_moto")
    op.drop_table("historial_estado_moto")
    op.drop_table("moto")
    op.drop_table("permission_grant")
    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in ("ot_estado", "ot_prioridad", "ot_tipo", "fuente_km", "tipo_baja", "moto_estado", "user_role"):
            op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))
