"""Puntaje y seleccion de candidatos para la conciliacion bancaria.

Funciones puras: reciben lineas de extracto y registros internos ya cargados
y devuelven los pares propuestos. La persistencia vive en ``services``.

Puntaje (0-100):

* importe: 60 puntos. Igualdad exacta = 60; dentro de la tolerancia decae
  linealmente hasta 30 en el borde. Fuera de tolerancia no hay candidato.
* fecha: 40 puntos. Mismo dia = 40; decae linealmente con la distancia en
  dias dentro de la ventana. Fuera de la ventana no hay candidato.
* referencia: +10 si la referencia del extracto aparece en el registro.
  El total se limita a 100.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from motorent.core.models import MatchTipo

AMOUNT_WEIGHT = 60
DATE_WEIGHT = 40
REFERENCE_BONUS = 10
MIN_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class StatementLine:
    id: int
    fecha: date
    monto: Decimal
    referencia: str | None = None


@dataclass(frozen=True)
class InternalRecord:
    entidad_tipo: str
    entidad_id: int
    fecha: date
    monto: Decimal
    label: str
    created_at: datetime
    referencia: str | None = None


@dataclass(frozen=True)
class Candidate:
    line: StatementLine
    record: InternalRecord
    confianza: int
    tipo: MatchTipo

    @property
    def diferencia(self) -> Decimal:
        return self.line.monto - self.record.monto


def amount_tolerance(monto: Decimal, ratio: Decimal) -> Decimal:
    return max(MIN_TOLERANCE, abs(monto) * ratio)


def score_candidate(
    line: StatementLine,
    record: InternalRecord,
    window_days: int,
    tolerance_ratio: Decimal,
) -> Candidate | None:
    # Signo distinto (ingreso vs egreso) nunca concilia.
    if (line.monto > 0) != (record.monto > 0):
        return None

    diff = abs(line.monto - record.monto)
    tolerance = amount_tolerance(line.monto, tolerance_ratio)
    if diff > tolerance:
        return None
    days = abs((line.fecha - record.fecha).days)
    if days > window_days:
        return None

    if diff == 0:
        amount_score = Decimal(1)
        tipo = MatchTipo.EXACTO
    else:
        amount_score = 1 - (diff / tolerance) / 2
        tipo = MatchTipo.APROXIMADO
    date_score = Decimal(1) - Decimal(days) / Decimal(window_days + 1)

    confianza = int((AMOUNT_WEIGHT * amount_score + DATE_WEIGHT * date_score).to_integral_value())
    if line.referencia and record.referencia and line.referencia.strip().upper() in record.referencia.upper():
        confianza += REFERENCE_BONUS
    return Candidate(line=line, record=record, confianza=min(confianza, 100), tipo=tipo)


def rank_key(candidate: Candidate) -> tuple:
    return (
        -candidate.confianza,
        candidate.line.fecha,
        candidate.line.id,
        candidate.record.created_at,
        candidate.record.entidad_tipo,
        candidate.record.entidad_id,
    )


def select_matches(
    lines: list[StatementLine],
    records: list[InternalRecord],
    window_days: int,
    tolerance_ratio: Decimal,
    min_confidence: int,
) -> tuple[list[Candidate], list[StatementLine]]:
    """Asignacion greedy uno a uno: cada linea y cada registro se usan una vez.

    Devuelve los candidatos elegidos (orden de ``rank_key``) y las lineas que
    quedaron sin candidato por encima del piso de confianza.
    """
    scored = []
    for line in lines:
        for record in records:
            candidate = score_candidate(line, record, window_days, tolerance_ratio)
            if candidate is not None and candidate.confianza >= min_confidence:
                scored.append(candidate)
    scored.sort(key=rank_key)

    chosen: list[Candidate] = []
    used_lines: set[int] = set()
    used_records: set[tuple[str, int]] = set()
    for candidate in scored:
        record_key = (candidate.record.entidad_tipo, candidate.record.entidad_id)
        if candidate.line.id in used_lines or record_key in used_records:
            continue
        chosen.append(candidate)
        used_lines.add(candidate.line.id)
        used_records.add(record_key)

    unmatched = [line for line in lines if line.id not in used_lines]
    return chosen, unmatched
