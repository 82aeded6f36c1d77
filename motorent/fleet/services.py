from __future__ import annotations

from datetime import date

from motorent.core.errors import ConflictError, NotFoundError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import (
    BajaMoto,
    FuenteKm,
    HistorialEstadoMoto,
    LecturaKm,
    Moto,
    MotoEstado,
    TipoBaja,
)
from motorent.core.transitions import MOTO_TRANSITIONS, is_valid_transition, reachable_states
from motorent.core.utils import clean_text, parse_decimal, parse_positive_int, required_text
from motorent.events import operations as ops
from motorent.events.bus import event_bus

INITIAL_STATES = (MotoEstado.EN_DEPOSITO, MotoEstado.EN_PATENTAMIENTO, MotoEstado.DISPONIBLE)
CLOSED_STATES = (MotoEstado.BAJA_DEFINITIVA, MotoEstado.TRANSFERIDA)
MIN_MODEL_YEAR = 1990


def _parse_moto_estado(value: str | None, field_name: str = "estado") -> MotoEstado:
    raw = clean_text(value).upper()
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return MotoEstado(raw)
    except ValueError as exc:
        raise ValidationError(f"Estado de moto invalido: {raw}") from exc


def moto_by_id(moto_id: int) -> Moto:
    moto = db.session.get(Moto, moto_id)
    if not moto:
        raise NotFoundError("Moto no encontrada")
    return moto


def possible_states(moto_id: int) -> list[str]:
    moto = moto_by_id(moto_id)
    return sorted(state.value for state in reachable_states(MOTO_TRANSITIONS, moto.estado))


def create_moto(payload: dict[str, str], user_id: int | None) -> Moto:
    marca = required_text(payload.get("marca"), "La marca es obligatoria", max_length=60)
    modelo = required_text(payload.get("modelo"), "El modelo es obligatorio", max_length=60)
    anio = parse_positive_int(payload.get("anio"), "anio")
    if anio < MIN_MODEL_YEAR or anio > date.today().year + 1:
        raise ValidationError("Anio de modelo fuera de rango")

    patente = clean_text(payload.get("patente")).upper() or None
    if patente and Moto.query.filter_by(patente=patente).first():
        raise ConflictError("Ya existe una moto con esa patente")

    estado = MotoEstado.EN_DEPOSITO
    if payload.get("estado"):
        estado = _parse_moto_estado(payload.get("estado"))
        if estado not in INITIAL_STATES:
            raise ValidationError("Estado inicial invalido para una moto nueva")

    precio = payload.get("precio_alquiler_mensual")
    moto = Moto(
        marca=marca,
        modelo=modelo,
        anio=anio,
        patente=patente,
        color=clean_text(payload.get("color")),
        km=0,
        estado=estado,
        precio_alquiler_mensual=parse_decimal(precio, "precio_alquiler_mensual") if precio not in (None, "") else 0,
        creado_por=user_id,
    )

    def _create() -> Moto:
        db.session.add(moto)
        db.session.flush()
        return moto

    return event_bus().with_event(ops.FLEET_MOTO_CREATE, "Moto", _create, user_id)


def change_moto_state(moto_id: int, payload: dict[str, str], user_id: int | None) -> Moto:
    moto = moto_by_id(moto_id)
    target = _parse_moto_estado(payload.get("nuevo_estado"), "nuevo_estado")
    motivo = required_text(payload.get("motivo"), "Motivo requerido", max_length=500)

    current = moto.estado
    if not is_valid_transition(MOTO_TRANSITIONS, current, target):
        raise ConflictError(
            f"Transicion no permitida: {current.value} -> {target.value}",
            estados_posibles=sorted(state.value for state in reachable_states(MOTO_TRANSITIONS, current)),
        )

    def _apply() -> Moto:
        db.session.add(
            HistorialEstadoMoto(
                moto_id=moto.id,
                estado_anterior=current,
                estado_nuevo=target,
                motivo=motivo,
                user_id=user_id,
            )
        )
        moto.estado_anterior = current
        moto.estado = target
        db.session.add(moto)
        return moto

    return event_bus().with_event(
        ops.FLEET_MOTO_CHANGE_STATE,
        "Moto",
        _apply,
        user_id,
        {"estado_anterior": current.value, "estado_nuevo": target.value, "motivo": motivo},
        entity_id=moto.id,
    )


def decommission_moto(moto_id: int, payload: dict[str, str], user_id: int | None) -> Moto:
    moto = moto_by_id(moto_id)
    raw_tipo = clean_text(payload.get("tipo")).upper()
    try:
        tipo = TipoBaja(raw_tipo)
    except ValueError as exc:
        raise ValidationError("Tipo de baja invalido") from exc
    motivo = required_text(payload.get("motivo"), "Motivo requerido", max_length=500)
    monto_raw = payload.get("monto_recuperado")
    monto_recuperado = parse_decimal(monto_raw, "monto_recuperado") if monto_raw not in (None, "") else None
    if monto_recuperado is not None and monto_recuperado < 0:
        raise ValidationError("El monto recuperado no puede ser negativo")

    if moto.estado in CLOSED_STATES:
        raise ConflictError("Moto ya dada de baja")

    previous = moto.estado

    def _apply() -> Moto:
        db.session.add(
            BajaMoto(
                moto_id=moto.id,
                tipo=tipo,
                motivo=motivo,
                monto_recuperado=monto_recuperado,
                num_denuncia=clean_text(payload.get("num_denuncia")) or None,
                user_id=user_id,
            )
        )
        db.session.add(
            HistorialEstadoMoto(
                moto_id=moto.id,
                estado_anterior=previous,
                estado_nuevo=MotoEstado.BAJA_DEFINITIVA,
                motivo=f"Baja: {tipo.value} - {motivo}",
                user_id=user_id,
            )
        )
        moto.estado_anterior = previous
        moto.estado = MotoEstado.BAJA_DEFINITIVA
        db.session.add(moto)
        return moto

    return event_bus().with_event(
        ops.FLEET_MOTO_DECOMMISSION,
        "Moto",
        _apply,
        user_id,
        {"tipo_baja": tipo.value},
        entity_id=moto.id,
    )


def record_km_reading(moto_id: int, payload: dict[str, str], user_id: int | None) -> LecturaKm:
    moto = moto_by_id(moto_id)
    km = parse_positive_int(payload.get("km"), "km")
    raw_fuente = (clean_text(payload.get("fuente")) or "MANUAL").upper()
    try:
        fuente = FuenteKm(raw_fuente)
    except ValueError as exc:
        raise ValidationError("Fuente de lectura invalida") from exc
    if km < moto.km:
        raise ConflictError(f"La lectura ({km}) es menor al odometro actual ({moto.km})")

    lectura = LecturaKm(
        moto_id=moto.id,
        km=km,
        fuente=fuente,
        notas=clean_text(payload.get("notas")),
        user_id=user_id,
    )

    def _apply() -> LecturaKm:
        # Lectura y odometro en la misma transaccion.
        db.session.add(lectura)
        moto.km = km
        db.session.add(moto)
        db.session.flush()
        return lectura

    return event_bus().with_event(
        ops.FLEET_MOTO_KM_READING,
        "LecturaKm",
        _apply,
        user_id,
        {"moto_id": moto.id, "km_anterior": moto.km},
    )
