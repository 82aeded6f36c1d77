from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from flask import current_app
from sqlalchemy import func, update

from motorent.core.errors import ConflictError, NotFoundError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import (
    Conciliacion,
    ConciliacionEstado,
    ConciliacionMatch,
    CuentaBancaria,
    ExtractoBancario,
    Factura,
    FacturaCompra,
    FacturaCompraEstado,
    FacturaEstado,
    Gasto,
    GastoEstado,
    MatchEstado,
    MatchTipo,
    Pago,
    PagoEstado,
    utcnow,
)
from motorent.core.utils import parse_iso_date, parse_optional_int, required_text
from motorent.events import operations as ops
from motorent.events.bus import event_bus
from motorent.reconciliation.matching import (
    Candidate,
    InternalRecord,
    StatementLine,
    select_matches,
)

logger = logging.getLogger(__name__)

OPEN_MATCH_STATES = (MatchEstado.PROPUESTO, MatchEstado.ACEPTADO)
ENTITY_TYPES = ("Factura", "Pago", "Gasto", "FacturaCompra")


class MatchFailure(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    BATCH_MISMATCH = "BATCH_MISMATCH"
    INVALID_REASON = "INVALID_REASON"
    BATCH_CLOSED = "BATCH_CLOSED"


@dataclass
class MatchOutcome:
    match: ConciliacionMatch | None = None
    failure: MatchFailure | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class ProposalResult:
    matches: list[ConciliacionMatch] = field(default_factory=list)
    created: int = 0
    unmatched: list[ExtractoBancario] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "matches": [match.to_dict() for match in self.matches],
            "created": self.created,
            "unmatched": [line.to_dict() for line in self.unmatched],
        }


def _next_batch_number(year: int) -> str:
    prefix = f"CONC-{year}-"
    count = (
        db.session.query(func.count(Conciliacion.id))
        .filter(Conciliacion.numero.like(f"{prefix}%"))
        .scalar()
    )
    return f"{prefix}{count + 1:05d}"


def batch_by_id(batch_id: int) -> Conciliacion:
    batch = db.session.get(Conciliacion, batch_id)
    if not batch:
        raise NotFoundError("Conciliacion no encontrada")
    return batch


def list_batches(cuenta_id: int | None = None) -> list[Conciliacion]:
    query = Conciliacion.query
    if cuenta_id:
        query = query.filter(Conciliacion.cuenta_bancaria_id == cuenta_id)
    return query.order_by(Conciliacion.created_at.desc(), Conciliacion.id.desc()).all()


def _batch_lines(batch: Conciliacion) -> list[ExtractoBancario]:
    return (
        ExtractoBancario.query.filter(
            ExtractoBancario.cuenta_bancaria_id == batch.cuenta_bancaria_id,
            ExtractoBancario.fecha >= batch.periodo_desde,
            ExtractoBancario.fecha <= batch.periodo_hasta,
        )
        .order_by(ExtractoBancario.fecha, ExtractoBancario.id)
        .all()
    )


def _bound_records() -> set[tuple[str, int]]:
    rows = (
        db.session.query(ConciliacionMatch.entidad_tipo, ConciliacionMatch.entidad_id)
        .filter(ConciliacionMatch.estado.in_(OPEN_MATCH_STATES))
        .all()
    )
    return {(tipo, entidad_id) for tipo, entidad_id in rows}


def _internal_records(desde: date, hasta: date) -> list[InternalRecord]:
    bound = _bound_records()
    records: list[InternalRecord] = []
    for factura in Factura.query.filter(
        Factura.estado == FacturaEstado.EMITIDA,
        Factura.fecha_emision.between(desde, hasta),
    ):
        records.append(
            InternalRecord(
                entidad_tipo="Factura",
                entidad_id=factura.id,
                fecha=factura.fecha_emision,
                monto=factura.monto_total,
                label=f"Factura {factura.numero} - {factura.cliente_nombre}",
                created_at=factura.created_at,
                referencia=factura.numero,
            )
        )
    for pago in Pago.query.filter(Pago.estado == PagoEstado.APROBADO, Pago.fecha_pago.between(desde, hasta)):
        records.append(
            InternalRecord(
                entidad_tipo="Pago",
                entidad_id=pago.id,
                fecha=pago.fecha_pago,
                monto=pago.monto,
                label=f"Pago {pago.referencia_externa or pago.id}",
                created_at=pago.created_at,
                referencia=pago.referencia_externa,
            )
        )
    for gasto in Gasto.query.filter(Gasto.estado == GastoEstado.APROBADO, Gasto.fecha.between(desde, hasta)):
        records.append(
            InternalRecord(
                entidad_tipo="Gasto",
                entidad_id=gasto.id,
                fecha=gasto.fecha,
                monto=-gasto.monto,
                label=f"Gasto {gasto.categoria} - {gasto.descripcion}",
                created_at=gasto.created_at,
            )
        )
    for compra in FacturaCompra.query.filter(
        FacturaCompra.estado == FacturaCompraEstado.PAGADA,
        FacturaCompra.fecha_emision.between(desde, hasta),
    ):
        records.append(
            InternalRecord(
                entidad_tipo="FacturaCompra",
                entidad_id=compra.id,
                fecha=compra.fecha_emision,
                monto=-compra.monto_total,
                label=f"FC {compra.numero} - {compra.proveedor_nombre}",
                created_at=compra.created_at,
                referencia=compra.numero,
            )
        )
    return [record for record in records if (record.entidad_tipo, record.entidad_id) not in bound]


def _open_matches(batch_id: int) -> list[ConciliacionMatch]:
    rows = ConciliacionMatch.query.filter_by(conciliacion_id=batch_id, estado=MatchEstado.PROPUESTO).all()
    rows.sort(key=lambda match: (-match.confianza, match.extracto.fecha, match.extracto_id, match.id))
    return rows


def _refresh_counters(batch: Conciliacion) -> None:
    lines = _batch_lines(batch)
    batch.total_extractos = len(lines)
    batch.total_conciliados = sum(1 for line in lines if line.conciliado)
    batch.total_no_conciliados = batch.total_extractos - batch.total_conciliados


def _match_from_candidate(batch: Conciliacion, candidate: Candidate) -> ConciliacionMatch:
    return ConciliacionMatch(
        conciliacion_id=batch.id,
        extracto_id=candidate.line.id,
        entidad_tipo=candidate.record.entidad_tipo,
        entidad_id=candidate.record.entidad_id,
        entidad_label=candidate.record.label[:255],
        tipo_match=candidate.tipo,
        confianza=candidate.confianza,
        monto_banco=candidate.line.monto,
        monto_sistema=candidate.record.monto,
        diferencia=candidate.diferencia,
        estado=MatchEstado.PROPUESTO,
    )


def propose_matches(batch_id: int, user_id: int | None = None) -> ProposalResult:
    """Propone pares extracto/registro para las lineas abiertas del lote.

    Las lineas conciliadas o con un match PROPUESTO/ACEPTADO se saltean, asi
    que volver a correrlo sin aceptar ni rechazar no crea duplicados. Las
    lineas con matches RECHAZADO vuelven a ser candidatas.
    """
    batch = batch_by_id(batch_id)
    if batch.estado != ConciliacionEstado.EN_PROCESO:
        raise ConflictError("La conciliacion ya esta cerrada")

    settings = current_app.config
    window_days = int(settings["RECONCILIATION_DATE_WINDOW_DAYS"])
    lines = _batch_lines(batch)
    busy_lines = {
        extracto_id
        for (extracto_id,) in db.session.query(ConciliacionMatch.extracto_id)
        .filter(ConciliacionMatch.estado.in_(OPEN_MATCH_STATES))
        .all()
    }
    pending = [line for line in lines if not line.conciliado and line.id not in busy_lines]
    by_id = {line.id: line for line in pending}

    chosen, unmatched = select_matches(
        [StatementLine(id=line.id, fecha=line.fecha, monto=line.monto, referencia=line.referencia) for line in pending],
        _internal_records(
            batch.periodo_desde - timedelta(days=window_days),
            batch.periodo_hasta + timedelta(days=window_days),
        ),
        window_days,
        Decimal(str(settings["RECONCILIATION_AMOUNT_TOLERANCE"])),
        int(settings["RECONCILIATION_MIN_CONFIDENCE"]),
    )

    def _apply() -> Conciliacion:
        # Todos los matches del lote en una sola transaccion.
        for candidate in chosen:
            db.session.add(_match_from_candidate(batch, candidate))
        _refresh_counters(batch)
        return batch

    event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "Conciliacion",
        _apply,
        user_id,
        {"accion": "proponer", "propuestos": len(chosen), "sin_candidato": len(unmatched)},
    )

    logger.info(
        "Conciliacion %s: %s matches propuestos, %s lineas sin candidato",
        batch.numero,
        len(chosen),
        len(unmatched),
    )
    return ProposalResult(
        matches=_open_matches(batch.id),
        created=len(chosen),
        unmatched=[by_id[line.id] for line in unmatched],
    )


def _resolvable(batch_id: int, match_id: int) -> MatchOutcome:
    match = db.session.get(ConciliacionMatch, match_id)
    if match is None:
        return MatchOutcome(failure=MatchFailure.NOT_FOUND, message="Match no encontrado")
    if match.conciliacion_id != batch_id:
        return MatchOutcome(match=match, failure=MatchFailure.BATCH_MISMATCH, message="El match pertenece a otra conciliacion")
    if match.estado != MatchEstado.PROPUESTO:
        return MatchOutcome(match=match, failure=MatchFailure.ALREADY_RESOLVED, message=f"Match ya {match.estado.value}")
    if match.conciliacion.estado != ConciliacionEstado.EN_PROCESO:
        return MatchOutcome(match=match, failure=MatchFailure.BATCH_CLOSED, message="La conciliacion ya esta cerrada")
    return MatchOutcome(match=match)


def _claim(match: ConciliacionMatch, estado: MatchEstado) -> bool:
    """Saca el match de PROPUESTO solo si sigue en ese estado en la base.

    El UPDATE condicional bloquea la fila hasta el commit: un segundo
    escritor concurrente encuentra el estado ya cambiado y no afecta filas.
    """
    result = db.session.execute(
        update(ConciliacionMatch)
        .where(ConciliacionMatch.id == match.id, ConciliacionMatch.estado == MatchEstado.PROPUESTO)
        .values(estado=estado)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.expire(match)
        return False
    return True


def _lost_race(match: ConciliacionMatch) -> MatchOutcome:
    logger.warning("Match %s resuelto por otra operacion concurrente", match.id)
    return MatchOutcome(match=match, failure=MatchFailure.ALREADY_RESOLVED, message=f"Match ya {match.estado.value}")


def _accept(match: ConciliacionMatch, user_id: int | None) -> None:
    match.estado = MatchEstado.ACEPTADO
    match.resuelto_por = user_id
    match.fecha_resolucion = utcnow()
    match.extracto.conciliado = True
    match.extracto.conciliacion_match_id = match.id
    db.session.add(match)


def accept_match(batch_id: int, match_id: int, user_id: int | None) -> MatchOutcome:
    outcome = _resolvable(batch_id, match_id)
    if not outcome.ok:
        return outcome
    match = outcome.match
    if not _claim(match, MatchEstado.ACEPTADO):
        return _lost_race(match)

    def _apply() -> ConciliacionMatch:
        _accept(match, user_id)
        _refresh_counters(match.conciliacion)
        return match

    event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "ConciliacionMatch",
        _apply,
        user_id,
        {"accion": "aceptar", "conciliacion_id": batch_id},
    )
    return MatchOutcome(match=match)


def reject_match(batch_id: int, match_id: int, reason: object, user_id: int | None) -> MatchOutcome:
    motivo = reason.strip() if isinstance(reason, str) else ""
    if not motivo:
        return MatchOutcome(failure=MatchFailure.INVALID_REASON, message="Motivo de rechazo requerido")
    outcome = _resolvable(batch_id, match_id)
    if not outcome.ok:
        return outcome
    match = outcome.match
    if not _claim(match, MatchEstado.RECHAZADO):
        return _lost_race(match)

    def _apply() -> ConciliacionMatch:
        match.estado = MatchEstado.RECHAZADO
        match.motivo_rechazo = motivo[:500]
        match.resuelto_por = user_id
        match.fecha_resolucion = utcnow()
        db.session.add(match)
        return match

    event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "ConciliacionMatch",
        _apply,
        user_id,
        {"accion": "rechazar", "conciliacion_id": batch_id, "motivo": motivo},
    )
    return MatchOutcome(match=match)


def create_batch(payload: dict[str, str], user_id: int | None) -> tuple[Conciliacion, ProposalResult]:
    cuenta_id = parse_optional_int(payload.get("cuenta_bancaria_id"))
    if not cuenta_id:
        raise ValidationError("Cuenta bancaria requerida")
    cuenta = db.session.get(CuentaBancaria, cuenta_id)
    if not cuenta:
        raise NotFoundError("Cuenta bancaria no encontrada")
    desde = parse_iso_date(payload.get("periodo_desde"), "periodo_desde")
    hasta = parse_iso_date(payload.get("periodo_hasta"), "periodo_hasta")
    if desde > hasta:
        raise ValidationError("periodo_desde debe ser anterior o igual a periodo_hasta")

    batch = Conciliacion(
        numero=_next_batch_number(date.today().year),
        cuenta_bancaria_id=cuenta.id,
        periodo_desde=desde,
        periodo_hasta=hasta,
        estado=ConciliacionEstado.EN_PROCESO,
    )

    def _create() -> Conciliacion:
        db.session.add(batch)
        db.session.flush()
        _refresh_counters(batch)
        return batch

    event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "Conciliacion",
        _create,
        user_id,
        {"accion": "crear", "cuenta_bancaria_id": cuenta.id},
    )
    return batch, propose_matches(batch.id, user_id)


def accept_high_confidence(batch_id: int, user_id: int | None) -> list[ConciliacionMatch]:
    batch = batch_by_id(batch_id)
    if batch.estado != ConciliacionEstado.EN_PROCESO:
        raise ConflictError("La conciliacion ya esta cerrada")
    threshold = int(current_app.config["RECONCILIATION_AUTO_APPROVE_CONFIDENCE"])
    candidates = [
        match
        for match in _open_matches(batch.id)
        if match.confianza >= threshold and _claim(match, MatchEstado.ACEPTADO)
    ]

    def _apply() -> list[ConciliacionMatch]:
        for match in candidates:
            _accept(match, user_id)
        _refresh_counters(batch)
        return candidates

    event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "Conciliacion",
        _apply,
        user_id,
        {"accion": "aprobar_exactos", "umbral": threshold, "aceptados": len(candidates)},
        entity_id=batch.id,
    )
    return candidates


def _record_for(entidad_tipo: str, entidad_id: int) -> tuple[Decimal, str]:
    if entidad_tipo == "Factura":
        factura = db.session.get(Factura, entidad_id)
        if factura and factura.estado == FacturaEstado.EMITIDA:
            return factura.monto_total, f"Factura {factura.numero} - {factura.cliente_nombre}"
    elif entidad_tipo == "Pago":
        pago = db.session.get(Pago, entidad_id)
        if pago and pago.estado == PagoEstado.APROBADO:
            return pago.monto, f"Pago {pago.referencia_externa or pago.id}"
    elif entidad_tipo == "Gasto":
        gasto = db.session.get(Gasto, entidad_id)
        if gasto and gasto.estado == GastoEstado.APROBADO:
            return -gasto.monto, f"Gasto {gasto.categoria} - {gasto.descripcion}"
    elif entidad_tipo == "FacturaCompra":
        compra = db.session.get(FacturaCompra, entidad_id)
        if compra and compra.estado == FacturaCompraEstado.PAGADA:
            return -compra.monto_total, f"FC {compra.numero} - {compra.proveedor_nombre}"
    raise NotFoundError(f"{entidad_tipo} {entidad_id} no disponible para conciliar")


def manual_match(batch_id: int, payload: dict[str, str], user_id: int | None) -> ConciliacionMatch:
    batch = batch_by_id(batch_id)
    if batch.estado != ConciliacionEstado.EN_PROCESO:
        raise ConflictError("La conciliacion ya esta cerrada")
    extracto_id = parse_optional_int(payload.get("extracto_id"))
    entidad_id = parse_optional_int(payload.get("entidad_id"))
    entidad_tipo = required_text(payload.get("entidad_tipo"), "Tipo de entidad requerido")
    if entidad_tipo not in ENTITY_TYPES:
        raise ValidationError(f"Tipo de entidad invalido: {entidad_tipo}")
    if not extracto_id or not entidad_id:
        raise ValidationError("extracto_id y entidad_id son obligatorios")

    extracto = db.session.get(ExtractoBancario, extracto_id)
    if not extracto or extracto.cuenta_bancaria_id != batch.cuenta_bancaria_id:
        raise NotFoundError("Linea de extracto no encontrada en la cuenta")
    if not (batch.periodo_desde <= extracto.fecha <= batch.periodo_hasta):
        raise ValidationError("La linea de extracto esta fuera del periodo")
    if extracto.conciliado:
        raise ConflictError("La linea de extracto ya esta conciliada")
    if (entidad_tipo, entidad_id) in _bound_records():
        raise ConflictError("El registro ya esta vinculado a otro match")
    monto_sistema, label = _record_for(entidad_tipo, entidad_id)

    pending = ConciliacionMatch.query.filter_by(extracto_id=extracto.id, estado=MatchEstado.PROPUESTO).all()

    def _apply() -> ConciliacionMatch:
        # Una propuesta abierta sobre la misma linea queda reemplazada.
        for stale in pending:
            if not _claim(stale, MatchEstado.RECHAZADO):
                db.session.refresh(extracto)
                if extracto.conciliado:
                    raise ConflictError("La linea de extracto ya esta conciliada")
                continue
            stale.estado = MatchEstado.RECHAZADO
            stale.motivo_rechazo = "Reemplazado por match manual"
            stale.resuelto_por = user_id
            stale.fecha_resolucion = utcnow()
        match = ConciliacionMatch(
            conciliacion_id=batch.id,
            extracto=extracto,
            entidad_tipo=entidad_tipo,
            entidad_id=entidad_id,
            entidad_label=label[:255],
            tipo_match=MatchTipo.MANUAL,
            confianza=100,
            monto_banco=extracto.monto,
            monto_sistema=monto_sistema,
            diferencia=extracto.monto - monto_sistema,
            estado=MatchEstado.PROPUESTO,
        )
        db.session.add(match)
        db.session.flush()
        _accept(match, user_id)
        _refresh_counters(batch)
        return match

    return event_bus().with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "ConciliacionMatch",
        _apply,
        user_id,
        {"accion": "manual", "conciliacion_id": batch.id},
    )


def complete_batch(batch_id: int, user_id: int | None) -> Conciliacion:
    batch = batch_by_id(batch_id)
    if batch.estado != ConciliacionEstado.EN_PROCESO:
        raise ConflictError("La conciliacion ya esta cerrada")
    pending = ConciliacionMatch.query.filter_by(conciliacion_id=batch.id, estado=MatchEstado.PROPUESTO).count()
    if pending:
        raise ConflictError(f"Quedan {pending} matches propuestos sin resolver", pendientes=pending)

    lines = _batch_lines(batch)
    diferencia = sum((line.monto for line in lines if not line.conciliado), Decimal("0.00"))

    def _apply() -> Conciliacion:
        _refresh_counters(batch)
        batch.diferencia = diferencia
        batch.estado = ConciliacionEstado.COMPLETADA
        batch.completada_por = user_id
        batch.fecha_completada = utcnow()
        db.session.add(batch)
        return batch

    bus = event_bus()
    bus.with_event(
        ops.FINANCE_BANK_RECONCILIATION_MATCH,
        "Conciliacion",
        _apply,
        user_id,
        {"accion": "completar", "numero": batch.numero, "diferencia": diferencia},
    )
    if diferencia != 0:
        bus.emit(
            ops.FINANCE_BANK_RECONCILIATION_APPROVE,
            "Conciliacion",
            batch.id,
            {"numero": batch.numero, "diferencia": diferencia},
            user_id,
        )
    return batch
