from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from werkzeug.security import generate_password_hash

from motorent.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def _num(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class Role(str, Enum):
    ADMIN = "ADMIN"
    CONTADOR = "CONTADOR"
    OPERADOR = "OPERADOR"
    CONSULTA = "CONSULTA"


class MotoEstado(str, Enum):
    EN_DEPOSITO = "EN_DEPOSITO"
    EN_PATENTAMIENTO = "EN_PATENTAMIENTO"
    DISPONIBLE = "DISPONIBLE"
    RESERVADA = "RESERVADA"
    ALQUILADA = "ALQUILADA"
    EN_SERVICE = "EN_SERVICE"
    EN_REPARACION = "EN_REPARACION"
    INMOVILIZADA = "INMOVILIZADA"
    RECUPERACION = "RECUPERACION"
    BAJA_TEMP = "BAJA_TEMP"
    BAJA_DEFINITIVA = "BAJA_DEFINITIVA"
    TRANSFERIDA = "TRANSFERIDA"


class TipoBaja(str, Enum):
    ROBO = "ROBO"
    SINIESTRO = "SINIESTRO"
    VENTA = "VENTA"
    CHATARRA = "CHATARRA"
    DEVOLUCION_FABRICANTE = "DEVOLUCION_FABRICANTE"


class FuenteKm(str, Enum):
    MANUAL = "MANUAL"
    GPS = "GPS"
    SERVICE = "SERVICE"
    INSPECCION = "INSPECCION"


class OTEstado(str, Enum):
    SOLICITADA = "SOLICITADA"
    APROBADA = "APROBADA"
    PROGRAMADA = "PROGRAMADA"
    EN_EJECUCION = "EN_EJECUCION"
    EN_ESPERA_REPUESTOS = "EN_ESPERA_REPUESTOS"
    COMPLETADA = "COMPLETADA"
    CANCELADA = "CANCELADA"


class OTTipo(str, Enum):
    PREVENTIVO = "PREVENTIVO"
    CORRECTIVO = "CORRECTIVO"
    EMERGENCIA = "EMERGENCIA"


class OTPrioridad(str, Enum):
    BAJA = "BAJA"
    MEDIA = "MEDIA"
    ALTA = "ALTA"
    URGENTE = "URGENTE"


class FacturaEstado(str, Enum):
    BORRADOR = "BORRADOR"
    EMITIDA = "EMITIDA"
    PAGADA = "PAGADA"
    ANULADA = "ANULADA"


class PagoEstado(str, Enum):
    PENDIENTE = "PENDIENTE"
    APROBADO = "APROBADO"
    RECHAZADO = "RECHAZADO"
    DEVUELTO = "DEVUELTO"


class GastoEstado(str, Enum):
    PENDIENTE = "PENDIENTE"
    APROBADO = "APROBADO"
    RECHAZADO = "RECHAZADO"


class FacturaCompraEstado(str, Enum):
    PENDIENTE = "PENDIENTE"
    PAGADA = "PAGADA"
    ANULADA = "ANULADA"


class ConciliacionEstado(str, Enum):
    EN_PROCESO = "EN_PROCESO"
    COMPLETADA = "COMPLETADA"


class MatchEstado(str, Enum):
    PROPUESTO = "PROPUESTO"
    ACEPTADO = "ACEPTADO"
    RECHAZADO = "RECHAZADO"


class MatchTipo(str, Enum):
    EXACTO = "EXACTO"
    APROXIMADO = "APROXIMADO"
    MANUAL = "MANUAL"


class EventStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[Role] = mapped_column(SAEnum(Role, name="user_role"), nullable=False, default=Role.CONSULTA)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    grants = relationship("PermissionGrant", back_populates="user", cascade="all, delete-orphan")


class PermissionGrant(db.Model):
    # Permisos por operacion; admite comodines "fleet.*".
    __tablename__ = "permission_grant"
    __table_args__ = (UniqueConstraint("user_id", "operation_id", name="uq_grant_user_operation"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    operation_id: Mapped[str] = mapped_column(db.String(120), nullable=False)
    can_view: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_create: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_execute: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_approve: Mapped[bool] = mapped_column(nullable=False, default=False)

    user = relationship("User", back_populates="grants")


class Moto(db.Model):
    __tablename__ = "moto"
    __table_args__ = (CheckConstraint("km >= 0", name="ck_moto_km"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    marca: Mapped[str] = mapped_column(db.String(60), nullable=False)
    modelo: Mapped[str] = mapped_column(db.String(60), nullable=False)
    anio: Mapped[int] = mapped_column(nullable=False)
    patente: Mapped[str | None] = mapped_column(db.String(20), unique=True, nullable=True)
    color: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    km: Mapped[int] = mapped_column(nullable=False, default=0)
    estado: Mapped[MotoEstado] = mapped_column(
        SAEnum(MotoEstado, name="moto_estado"),
        nullable=False,
        default=MotoEstado.EN_DEPOSITO,
    )
    estado_anterior: Mapped[MotoEstado | None] = mapped_column(
        SAEnum(MotoEstado, name="moto_estado"),
        nullable=True,
    )
    precio_alquiler_mensual: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    creado_por: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    historial = relationship(
        "HistorialEstadoMoto",
        back_populates="moto",
        cascade="all, delete-orphan",
        order_by="HistorialEstadoMoto.id",
    )
    lecturas_km = relationship("LecturaKm", back_populates="moto", cascade="all, delete-orphan")
    bajas = relationship("BajaMoto", back_populates="moto", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "marca": self.marca,
            "modelo": self.modelo,
            "anio": self.anio,
            "patente": self.patente,
            "color": self.color,
            "km": self.km,
            "estado": self.estado.value,
            "estado_anterior": self.estado_anterior.value if self.estado_anterior else None,
            "precio_alquiler_mensual": _num(self.precio_alquiler_mensual),
        }


class HistorialEstadoMoto(db.Model):
    __tablename__ = "historial_estado_moto"

    id: Mapped[int] = mapped_column(primary_key=True)
    moto_id: Mapped[int] = mapped_column(ForeignKey("moto.id"), nullable=False, index=True)
    estado_anterior: Mapped[MotoEstado] = mapped_column(SAEnum(MotoEstado, name="moto_estado"), nullable=False)
    estado_nuevo: Mapped[MotoEstado] = mapped_column(SAEnum(MotoEstado, name="moto_estado"), nullable=False)
    motivo: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    moto = relationship("Moto", back_populates="historial")


class BajaMoto(db.Model):
    __tablename__ = "baja_moto"

    id: Mapped[int] = mapped_column(primary_key=True)
    moto_id: Mapped[int] = mapped_column(ForeignKey("moto.id"), nullable=False, index=True)
    tipo: Mapped[TipoBaja] = mapped_column(SAEnum(TipoBaja, name="tipo_baja"), nullable=False)
    motivo: Mapped[str] = mapped_column(db.String(500), nullable=False)
    monto_recuperado: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    num_denuncia: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    moto = relationship("Moto", back_populates="bajas")


class LecturaKm(db.Model):
    __tablename__ = "lectura_km"
    __table_args__ = (Index("ix_lectura_km_moto_fecha", "moto_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    moto_id: Mapped[int] = mapped_column(ForeignKey("moto.id"), nullable=False)
    km: Mapped[int] = mapped_column(nullable=False)
    fuente: Mapped[FuenteKm] = mapped_column(SAEnum(FuenteKm, name="fuente_km"), nullable=False)
    notas: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    moto = relationship("Moto", back_populates="lecturas_km")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "moto_id": self.moto_id,
            "km": self.km,
            "fuente": self.fuente.value,
            "notas": self.notas,
            "created_at": _iso(self.created_at),
        }


class OrdenTrabajo(db.Model):
    __tablename__ = "orden_trabajo"
    __table_args__ = (Index("ix_orden_trabajo_moto_estado", "moto_id", "estado"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    numero: Mapped[str] = mapped_column(db.String(30), unique=True, nullable=False)
    moto_id: Mapped[int] = mapped_column(ForeignKey("moto.id"), nullable=False)
    tipo: Mapped[OTTipo] = mapped_column(SAEnum(OTTipo, name="ot_tipo"), nullable=False)
    prioridad: Mapped[OTPrioridad] = mapped_column(
        SAEnum(OTPrioridad, name="ot_prioridad"),
        nullable=False,
        default=OTPrioridad.MEDIA,
    )
    estado: Mapped[OTEstado] = mapped_column(
        SAEnum(OTEstado, name="ot_estado"),
        nullable=False,
        default=OTEstado.SOLICITADA,
    )
    descripcion: Mapped[str] = mapped_column(db.Text, nullable=False)
    taller_nombre: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    mecanico_nombre: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    fecha_programada: Mapped[date | None] = mapped_column(nullable=True)
    fecha_aprobacion: Mapped[datetime | None] = mapped_column(nullable=True)
    fecha_inicio_real: Mapped[datetime | None] = mapped_column(nullable=True)
    fecha_fin_real: Mapped[datetime | None] = mapped_column(nullable=True)
    km_ingreso: Mapped[int | None] = mapped_column(nullable=True)
    km_egreso: Mapped[int | None] = mapped_column(nullable=True)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    motivo_cancelacion: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    costo_mano_obra: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    costo_repuestos: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    costo_total: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    moto = relationship("Moto")
    repuestos = relationship("RepuestoOrdenTrabajo", back_populates="orden", cascade="all, delete-orphan")
    historial = relationship(
        "HistorialOT",
        back_populates="orden",
        cascade="all, delete-orphan",
        order_by="HistorialOT.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "numero": self.numero,
            "moto_id": self.moto_id,
            "tipo": self.tipo.value,
            "prioridad": self.prioridad.value,
            "estado": self.estado.value,
            "descripcion": self.descripcion,
            "taller_nombre": self.taller_nombre,
            "mecanico_nombre": self.mecanico_nombre,
            "fecha_programada": _iso(self.fecha_programada),
            "fecha_aprobacion": _iso(self.fecha_aprobacion),
            "fecha_inicio_real": _iso(self.fecha_inicio_real),
            "fecha_fin_real": _iso(self.fecha_fin_real),
            "km_ingreso": self.km_ingreso,
            "km_egreso": self.km_egreso,
            "motivo_cancelacion": self.motivo_cancelacion,
            "costo_mano_obra": _num(self.costo_mano_obra),
            "costo_repuestos": _num(self.costo_repuestos),
            "costo_total": _num(self.costo_total),
        }


class RepuestoOrdenTrabajo(db.Model):
    __tablename__ = "repuesto_orden_trabajo"

    id: Mapped[int] = mapped_column(primary_key=True)
    orden_trabajo_id: Mapped[int] = mapped_column(ForeignKey("orden_trabajo.id"), nullable=False, index=True)
    nombre: Mapped[str] = mapped_column(db.String(120), nullable=False)
    cantidad: Mapped[int] = mapped_column(nullable=False)
    precio_unitario: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)

    orden = relationship("OrdenTrabajo", back_populates="repuestos")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "orden_trabajo_id": self.orden_trabajo_id,
            "nombre": self.nombre,
            "cantidad": self.cantidad,
            "precio_unitario": _num(self.precio_unitario),
            "subtotal": _num(self.subtotal),
        }


class HistorialOT(db.Model):
    __tablename__ = "historial_ot"

    id: Mapped[int] = mapped_column(primary_key=True)
    orden_trabajo_id: Mapped[int] = mapped_column(ForeignKey("orden_trabajo.id"), nullable=False, index=True)
    estado_anterior: Mapped[OTEstado] = mapped_column(SAEnum(OTEstado, name="ot_estado"), nullable=False)
    estado_nuevo: Mapped[OTEstado] = mapped_column(SAEnum(OTEstado, name="ot_estado"), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    orden = relationship("OrdenTrabajo", back_populates="historial")


class CuentaBancaria(db.Model):
    __tablename__ = "cuenta_bancaria"
    __table_args__ = (UniqueConstraint("banco", "numero_cuenta", name="uq_cuenta_banco_numero"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    nombre: Mapped[str] = mapped_column(db.String(120), nullable=False)
    banco: Mapped[str] = mapped_column(db.String(120), nullable=False)
    numero_cuenta: Mapped[str] = mapped_column(db.String(40), nullable=False)
    moneda: Mapped[str] = mapped_column(db.String(3), nullable=False, default="ARS")
    activa: Mapped[bool] = mapped_column(nullable=False, default=True)

    extractos = relationship("ExtractoBancario", back_populates="cuenta")


class ExtractoBancario(db.Model):
    # Linea importada del extracto; solo cambia `conciliado` al aceptar un match.
    __tablename__ = "extracto_bancario"
    __table_args__ = (
        Index("ix_extracto_cuenta_fecha_conciliado", "cuenta_bancaria_id", "fecha", "conciliado"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    cuenta_bancaria_id: Mapped[int] = mapped_column(ForeignKey("cuenta_bancaria.id"), nullable=False)
    fecha: Mapped[date] = mapped_column(nullable=False)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    referencia: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    monto: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    saldo: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    conciliado: Mapped[bool] = mapped_column(nullable=False, default=False)
    # Sin FK: evita el ciclo extracto <-> match.
    conciliacion_match_id: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    cuenta = relationship("CuentaBancaria", back_populates="extractos")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "cuenta_bancaria_id": self.cuenta_bancaria_id,
            "fecha": _iso(self.fecha),
            "descripcion": self.descripcion,
            "referencia": self.referencia,
            "monto": _num(self.monto),
            "conciliado": self.conciliado,
        }


class Factura(db.Model):
    # Factura de venta (alquiler); EMITIDA = pendiente de cobro.
    __tablename__ = "factura"

    id: Mapped[int] = mapped_column(primary_key=True)
    numero: Mapped[str] = mapped_column(db.String(40), unique=True, nullable=False)
    cliente_nombre: Mapped[str] = mapped_column(db.String(160), nullable=False)
    fecha_emision: Mapped[date] = mapped_column(nullable=False)
    monto_total: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    estado: Mapped[FacturaEstado] = mapped_column(
        SAEnum(FacturaEstado, name="factura_estado"),
        nullable=False,
        default=FacturaEstado.EMITIDA,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Pago(db.Model):
    __tablename__ = "pago"

    id: Mapped[int] = mapped_column(primary_key=True)
    referencia_externa: Mapped[str | None] = mapped_column(db.String(60), nullable=True)
    monto: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    fecha_pago: Mapped[date] = mapped_column(nullable=False)
    estado: Mapped[PagoEstado] = mapped_column(
        SAEnum(PagoEstado, name="pago_estado"),
        nullable=False,
        default=PagoEstado.PENDIENTE,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Gasto(db.Model):
    __tablename__ = "gasto"

    id: Mapped[int] = mapped_column(primary_key=True)
    descripcion: Mapped[str] = mapped_column(db.String(255), nullable=False)
    categoria: Mapped[str] = mapped_column(db.String(60), nullable=False, default="OTROS")
    monto: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    fecha: Mapped[date] = mapped_column(nullable=False)
    estado: Mapped[GastoEstado] = mapped_column(
        SAEnum(GastoEstado, name="gasto_estado"),
        nullable=False,
        default=GastoEstado.PENDIENTE,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class FacturaCompra(db.Model):
    # Factura de proveedor; PAGADA = egreso que debe aparecer en el extracto.
    __tablename__ = "factura_compra"
    __table_args__ = (Index("ix_factura_compra_estado_fecha", "estado", "fecha_emision"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    numero: Mapped[str] = mapped_column(db.String(40), nullable=False)
    proveedor_nombre: Mapped[str] = mapped_column(db.String(160), nullable=False)
    fecha_emision: Mapped[date] = mapped_column(nullable=False)
    monto_total: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    estado: Mapped[FacturaCompraEstado] = mapped_column(
        SAEnum(FacturaCompraEstado, name="factura_compra_estado"),
        nullable=False,
        default=FacturaCompraEstado.PENDIENTE,
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Conciliacion(db.Model):
    __tablename__ = "conciliacion"
    __table_args__ = (CheckConstraint("periodo_hasta >= periodo_desde", name="ck_conciliacion_periodo"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    numero: Mapped[str] = mapped_column(db.String(30), unique=True, nullable=False)
    cuenta_bancaria_id: Mapped[int] = mapped_column(ForeignKey("cuenta_bancaria.id"), nullable=False, index=True)
    periodo_desde: Mapped[date] = mapped_column(nullable=False)
    periodo_hasta: Mapped[date] = mapped_column(nullable=False)
    estado: Mapped[ConciliacionEstado] = mapped_column(
        SAEnum(ConciliacionEstado, name="conciliacion_estado"),
        nullable=False,
        default=ConciliacionEstado.EN_PROCESO,
    )
    total_extractos: Mapped[int] = mapped_column(nullable=False, default=0)
    total_conciliados: Mapped[int] = mapped_column(nullable=False, default=0)
    total_no_conciliados: Mapped[int] = mapped_column(nullable=False, default=0)
    diferencia: Mapped[Decimal | None] = mapped_column(db.Numeric(14, 2), nullable=True)
    completada_por: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    fecha_completada: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    cuenta = relationship("CuentaBancaria")
    matches = relationship(
        "ConciliacionMatch",
        back_populates="conciliacion",
        cascade="all, delete-orphan",
        order_by="ConciliacionMatch.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "numero": self.numero,
            "cuenta_bancaria_id": self.cuenta_bancaria_id,
            "periodo_desde": _iso(self.periodo_desde),
            "periodo_hasta": _iso(self.periodo_hasta),
            "estado": self.estado.value,
            "total_extractos": self.total_extractos,
            "total_conciliados": self.total_conciliados,
            "total_no_conciliados": self.total_no_conciliados,
            "diferencia": _num(self.diferencia),
            "fecha_completada": _iso(self.fecha_completada),
        }


class ConciliacionMatch(db.Model):
    __tablename__ = "conciliacion_match"
    __table_args__ = (
        Index("ix_conciliacion_match_batch_estado", "conciliacion_id", "estado"),
        Index("ix_conciliacion_match_entidad", "entidad_tipo", "entidad_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    conciliacion_id: Mapped[int] = mapped_column(ForeignKey("conciliacion.id"), nullable=False)
    extracto_id: Mapped[int] = mapped_column(ForeignKey("extracto_bancario.id"), nullable=False, index=True)
    entidad_tipo: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entidad_id: Mapped[int] = mapped_column(nullable=False)
    entidad_label: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    tipo_match: Mapped[MatchTipo] = mapped_column(SAEnum(MatchTipo, name="match_tipo"), nullable=False)
    confianza: Mapped[int] = mapped_column(nullable=False)
    monto_banco: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    monto_sistema: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False)
    diferencia: Mapped[Decimal] = mapped_column(db.Numeric(14, 2), nullable=False, default=0)
    estado: Mapped[MatchEstado] = mapped_column(
        SAEnum(MatchEstado, name="match_estado"),
        nullable=False,
        default=MatchEstado.PROPUESTO,
    )
    motivo_rechazo: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    resuelto_por: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    fecha_resolucion: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    conciliacion = relationship("Conciliacion", back_populates="matches")
    extracto = relationship("ExtractoBancario")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "conciliacion_id": self.conciliacion_id,
            "extracto_id": self.extracto_id,
            "entidad_tipo": self.entidad_tipo,
            "entidad_id": self.entidad_id,
            "entidad_label": self.entidad_label,
            "tipo_match": self.tipo_match.value,
            "confianza": self.confianza,
            "monto_banco": _num(self.monto_banco),
            "monto_sistema": _num(self.monto_sistema),
            "diferencia": _num(self.diferencia),
            "estado": self.estado.value,
            "motivo_rechazo": self.motivo_rechazo,
            "fecha_resolucion": _iso(self.fecha_resolucion),
        }


class BusinessEvent(db.Model):
    # Registro append-only; solo la limpieza por retencion borra filas.
    __tablename__ = "business_event"
    __table_args__ = (
        Index("ix_business_event_created_at", "created_at"),
        Index("ix_business_event_operation", "operation_id", "created_at"),
        Index("ix_business_event_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    operation_id: Mapped[str] = mapped_column(db.String(120), nullable=False)
    entity_type: Mapped[str] = mapped_column(db.String(60), nullable=False)
    entity_id: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    payload: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    user_id: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[EventStatus] = mapped_column(SAEnum(EventStatus, name="event_status"), nullable=False)
    error: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    dispatches = relationship("EventDispatch", back_populates="event", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "operation_id": self.operation_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "payload": self.payload,
            "user_id": self.user_id,
            "status": self.status.value,
            "error": self.error,
            "created_at": _iso(self.created_at),
        }


class EventDispatch(db.Model):
    # Resultado del despacho a handlers de un evento (monitor).
    __tablename__ = "event_dispatch"

    id: Mapped[int] = mapped_column(primary_key=True)
    business_event_id: Mapped[int] = mapped_column(ForeignKey("business_event.id"), nullable=False, index=True)
    handlers_run: Mapped[int] = mapped_column(nullable=False, default=0)
    handlers_ok: Mapped[int] = mapped_column(nullable=False, default=0)
    handlers_failed: Mapped[int] = mapped_column(nullable=False, default=0)
    duration_ms: Mapped[int] = mapped_column(nullable=False, default=0)
    level: Mapped[str] = mapped_column(db.String(10), nullable=False, default="INFO")
    error: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    event = relationship("BusinessEvent", back_populates="dispatches")


class Alerta(db.Model):
    __tablename__ = "alerta"

    id: Mapped[int] = mapped_column(primary_key=True)
    tipo: Mapped[str] = mapped_column(db.String(60), nullable=False)
    mensaje: Mapped[str] = mapped_column(db.String(500), nullable=False)
    entity_type: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    entity_id: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    leida: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


def seed_demo_data(session) -> None:
    admin = User(
        email="admin@motorent.local",
        full_name="Admin Motorent",
        password_hash=generate_password_hash("admin123"),
        role=Role.ADMIN,
    )
    contador = User(
        email="contador@motorent.local",
        full_name="Contador Motorent",
        password_hash=generate_password_hash("contador123"),
        role=Role.CONTADOR,
    )
    operador = User(
        email="operador@motorent.local",
        full_name="Operador Motorent",
        password_hash=generate_password_hash("operador123"),
        role=Role.OPERADOR,
    )
    consulta = User(
        email="consulta@motorent.local",
        full_name="Consulta Motorent",
        password_hash=generate_password_hash("consulta123"),
        role=Role.CONSULTA,
    )
    session.add_all([admin, contador, operador, consulta])
    session.flush()

    motos = [
        Moto(
            marca="Honda",
            modelo="CB 190R",
            anio=2024,
            patente="A123BCD",
            color="Rojo",
            km=1200,
            estado=MotoEstado.DISPONIBLE,
            precio_alquiler_mensual=Decimal("95000.00"),
            creado_por=admin.id,
        ),
        Moto(
            marca="Yamaha",
            modelo="FZ 25",
            anio=2023,
            patente="A456EFG",
            color="Azul",
            km=8400,
            estado=MotoEstado.ALQUILADA,
            precio_alquiler_mensual=Decimal("110000.00"),
            creado_por=admin.id,
        ),
        Moto(
            marca="Honda",
            modelo="Wave 110",
            anio=2024,
            patente=None,
            color="Blanco",
            km=0,
            estado=MotoEstado.EN_PATENTAMIENTO,
            precio_alquiler_mensual=Decimal("65000.00"),
            creado_por=admin.id,
        ),
    ]
    session.add_all(motos)

    cuenta = CuentaBancaria(
        nombre="Cuenta corriente operativa",
        banco="Banco Galicia",
        numero_cuenta="0070-12345-6",
    )
    session.add(cuenta)
    session.flush()

    base = date.today().replace(day=1)
    session.add_all(
        [
            ExtractoBancario(
                cuenta_bancaria_id=cuenta.id,
                fecha=base + timedelta(days=9),
                descripcion="TRANSFERENCIA RECIBIDA LOPEZ",
                referencia="TRF-0001",
                monto=Decimal("50000.00"),
            ),
            ExtractoBancario(
                cuenta_bancaria_id=cuenta.id,
                fecha=base + timedelta(days=11),
                descripcion="DEBITO PROVEEDOR REPUESTOS",
                monto=Decimal("-18250.00"),
            ),
            ExtractoBancario(
                cuenta_bancaria_id=cuenta.id,
                fecha=base + timedelta(days=14),
                descripcion="COMISION MANTENIMIENTO CUENTA",
                monto=Decimal("-3100.00"),
            ),
            Factura(
                numero="FA-0001-00000125",
                cliente_nombre="Lopez Juan",
                fecha_emision=base + timedelta(days=8),
                monto_total=Decimal("50000.00"),
                estado=FacturaEstado.EMITIDA,
            ),
            Gasto(
                descripcion="Repuestos frenos",
                categoria="REPUESTOS",
                monto=Decimal("18250.00"),
                fecha=base + timedelta(days=10),
                estado=GastoEstado.APROBADO,
            ),
            Pago(
                referencia_externa="MP-998877",
                monto=Decimal("95000.00"),
                fecha_pago=base + timedelta(days=3),
                estado=PagoEstado.APROBADO,
            ),
        ]
    )
    session.commit()
