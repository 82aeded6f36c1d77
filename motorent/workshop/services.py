from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func

from motorent.core.errors import ConflictError, NotFoundError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import (
    HistorialOT,
    OrdenTrabajo,
    OTEstado,
    OTPrioridad,
    OTTipo,
    RepuestoOrdenTrabajo,
    utcnow,
)
from motorent.core.transitions import OT_TRANSITIONS, is_valid_transition, reachable_states, terminal_states
from motorent.core.utils import (
    clean_text,
    parse_decimal,
    parse_iso_date,
    parse_optional_int,
    parse_positive_int,
    required_text,
)
from motorent.events import operations as ops
from motorent.events.bus import event_bus
from motorent.fleet.services import moto_by_id

TRANSITION_OPERATIONS: dict[OTEstado, str] = {
    OTEstado.APROBADA: ops.MAINTENANCE_WORK_ORDER_APPROVE,
    OTEstado.EN_EJECUCION: ops.MAINTENANCE_WORK_ORDER_START,
    OTEstado.COMPLETADA: ops.MAINTENANCE_WORK_ORDER_COMPLETE,
    OTEstado.CANCELADA: ops.MAINTENANCE_WORK_ORDER_CANCEL,
}


def _parse_enum(enum_cls, value: str | None, message: str, default=None):
    raw = clean_text(value).upper()
    if not raw and default is not None:
        return default
    try:
        return enum_cls(raw)
    except ValueError as exc:
        raise ValidationError(message) from exc


def _next_work_order_number(year: int) -> str:
    prefix = f"OT-{year}-"
    count = (
        db.session.query(func.count(OrdenTrabajo.id))
        .filter(OrdenTrabajo.numero.like(f"{prefix}%"))
        .scalar()
    )
    return f"{prefix}{count + 1:05d}"


def work_order_by_id(ot_id: int) -> OrdenTrabajo:
    orden = db.session.get(OrdenTrabajo, ot_id)
    if not orden:
        raise NotFoundError("OT no encontrada")
    return orden


def create_work_order(payload: dict[str, str], user_id: int | None) -> OrdenTrabajo:
    tipo = _parse_enum(OTTipo, payload.get("tipo"), "Tipo de OT invalido")
    prioridad = _parse_enum(OTPrioridad, payload.get("prioridad"), "Prioridad invalida", default=OTPrioridad.MEDIA)
    moto_id = parse_optional_int(payload.get("moto_id"))
    if not moto_id:
        raise ValidationError("Moto requerida")
    moto = moto_by_id(moto_id)
    descripcion = required_text(payload.get("descripcion"), "Descripcion requerida")
    fecha_programada = None
    if payload.get("fecha_programada"):
        fecha_programada = parse_iso_date(payload.get("fecha_programada"), "fecha_programada")

    orden = OrdenTrabajo(
        numero=_next_work_order_number(date.today().year),
        moto_id=moto.id,
        tipo=tipo,
        prioridad=prioridad,
        estado=OTEstado.SOLICITADA,
        descripcion=descripcion,
        taller_nombre=clean_text(payload.get("taller_nombre")),
        mecanico_nombre=clean_text(payload.get("mecanico_nombre")),
        fecha_programada=fecha_programada,
    )

    def _create() -> OrdenTrabajo:
        db.session.add(orden)
        db.session.flush()
        db.session.add(
            HistorialOT(
                orden_trabajo_id=orden.id,
                estado_anterior=OTEstado.SOLICITADA,
                estado_nuevo=OTEstado.SOLICITADA,
                descripcion="OT creada",
                user_id=user_id,
            )
        )
        return orden

    return event_bus().with_event(ops.MAINTENANCE_WORK_ORDER_CREATE, "OrdenTrabajo", _create, user_id)


def add_work_order_part(ot_id: int, payload: dict[str, str]) -> RepuestoOrdenTrabajo:
    orden = work_order_by_id(ot_id)
    if orden.estado in terminal_states(OT_TRANSITIONS):
        raise ConflictError(f"No se pueden agregar repuestos a una OT {orden.estado.value}")
    nombre = required_text(payload.get("nombre"), "Nombre de repuesto requerido", max_length=120)
    cantidad = parse_positive_int(payload.get("cantidad"), "cantidad")
    precio_unitario = parse_decimal(payload.get("precio_unitario"), "precio_unitario")
    if precio_unitario <= 0:
        raise ValidationError("El precio unitario debe ser positivo")

    repuesto = RepuestoOrdenTrabajo(
        orden_trabajo_id=orden.id,
        nombre=nombre,
        cantidad=cantidad,
        precio_unitario=precio_unitario,
        subtotal=(precio_unitario * cantidad).quantize(Decimal("0.01")),
    )
    db.session.add(repuesto)
    db.session.commit()
    return repuesto


def _parts_cost(ot_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(RepuestoOrdenTrabajo.subtotal), 0))
        .filter(RepuestoOrdenTrabajo.orden_trabajo_id == ot_id)
        .scalar()
    )
    return Decimal(str(total)).quantize(Decimal("0.01"))


def _transition_updates(orden: OrdenTrabajo, target: OTEstado, payload: dict[str, str]) -> dict[str, object]:
    # Reglas especificas por estado destino; valida antes de mutar.
    updates: dict[str, object] = {}
    now = utcnow()
    if target == OTEstado.CANCELADA:
        updates["motivo_cancelacion"] = required_text(
            payload.get("motivo_cancelacion"), "Motivo de cancelacion requerido", max_length=500
        )
    elif target == OTEstado.APROBADA:
        updates["fecha_aprobacion"] = now
    elif target == OTEstado.PROGRAMADA:
        if payload.get("fecha_programada"):
            updates["fecha_programada"] = parse_iso_date(payload.get("fecha_programada"), "fecha_programada")
        for field in ("taller_nombre", "mecanico_nombre"):
            if clean_text(payload.get(field)):
                updates[field] = clean_text(payload.get(field))
    elif target == OTEstado.EN_EJECUCION:
        km_ingreso = parse_optional_int(payload.get("km_ingreso"))
        if orden.estado == OTEstado.PROGRAMADA and not km_ingreso and not orden.km_ingreso:
            raise ValidationError("Km de ingreso requerido para check-in")
        if km_ingreso:
            updates["km_ingreso"] = km_ingreso
        if not orden.fecha_inicio_real:
            updates["fecha_inicio_real"] = now
    elif target == OTEstado.COMPLETADA:
        updates["fecha_fin_real"] = now
        km_egreso = parse_optional_int(payload.get("km_egreso"))
        if km_egreso:
            if orden.km_ingreso and km_egreso < orden.km_ingreso:
                raise ValidationError("El km de egreso no puede ser menor al de ingreso")
            updates["km_egreso"] = km_egreso
        if clean_text(payload.get("observaciones")):
            updates["observaciones"] = clean_text(payload.get("observaciones"))
        mano_obra = orden.costo_mano_obra or Decimal("0.00")
        if payload.get("costo_mano_obra") not in (None, ""):
            mano_obra = parse_decimal(payload.get("costo_mano_obra"), "costo_mano_obra")
            if mano_obra < 0:
                raise ValidationError("El costo de mano de obra no puede ser negativo")
        repuestos = _parts_cost(orden.id)
        updates["costo_mano_obra"] = mano_obra
        updates["costo_repuestos"] = repuestos
        updates["costo_total"] = Decimal(mano_obra) + repuestos
    return updates


def change_work_order_state(ot_id: int, payload: dict[str, str], user_id: int | None) -> OrdenTrabajo:
    orden = work_order_by_id(ot_id)
    raw = clean_text(payload.get("estado")).upper()
    if not raw:
        raise ValidationError("Estado requerido")
    target = _parse_enum(OTEstado, raw, f"Estado de OT invalido: {raw}")

    current = orden.estado
    if not is_valid_transition(OT_TRANSITIONS, current, target):
        raise ConflictError(
            f"Transicion no valida: {current.value} -> {target.value}",
            estados_posibles=sorted(state.value for state in reachable_states(OT_TRANSITIONS, current)),
        )
    updates = _transition_updates(orden, target, payload)
    descripcion = clean_text(payload.get("descripcion")) or updates.get("motivo_cancelacion") or f"Cambio a {target.value}"

    def _apply() -> OrdenTrabajo:
        for field, value in updates.items():
            setattr(orden, field, value)
        orden.estado = target
        db.session.add(orden)
        db.session.add(
            HistorialOT(
                orden_trabajo_id=orden.id,
                estado_anterior=current,
                estado_nuevo=target,
                descripcion=str(descripcion)[:500],
                user_id=user_id,
            )
        )
        return orden

    operation_id = TRANSITION_OPERATIONS.get(target, ops.MAINTENANCE_WORK_ORDER_UPDATE)
    return event_bus().with_event(
        operation_id,
        "OrdenTrabajo",
        _apply,
        user_id,
        {"estado_anterior": current.value, "estado_nuevo": target.value, "moto_id": orden.moto_id},
        entity_id=orden.id,
    )
