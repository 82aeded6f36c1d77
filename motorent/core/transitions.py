"""Tablas de transicion de estado para motos y ordenes de trabajo.

Las tablas son cerradas: un estado sin clave (o con conjunto vacio) es
terminal. Las funciones son puras; quien llama aplica la mutacion solo si la
validacion pasa.
"""
from __future__ import annotations

from collections.abc import Hashable, Mapping
from typing import TypeVar

from motorent.core.models import MotoEstado, OTEstado

S = TypeVar("S", bound=Hashable)


MOTO_TRANSITIONS: dict[MotoEstado, set[MotoEstado]] = {
    MotoEstado.EN_DEPOSITO: {
        MotoEstado.EN_PATENTAMIENTO,
        MotoEstado.DISPONIBLE,
        MotoEstado.BAJA_DEFINITIVA,
    },
    MotoEstado.EN_PATENTAMIENTO: {
        MotoEstado.EN_DEPOSITO,
        MotoEstado.DISPONIBLE,
    },
    MotoEstado.DISPONIBLE: {
        MotoEstado.RESERVADA,
        MotoEstado.ALQUILADA,
        MotoEstado.EN_SERVICE,
        MotoEstado.EN_REPARACION,
        MotoEstado.EN_DEPOSITO,
        MotoEstado.BAJA_TEMP,
        MotoEstado.BAJA_DEFINITIVA,
    },
    MotoEstado.RESERVADA: {
        MotoEstado.DISPONIBLE,
        MotoEstado.ALQUILADA,
    },
    MotoEstado.ALQUILADA: {
        MotoEstado.DISPONIBLE,
        MotoEstado.EN_SERVICE,
        MotoEstado.EN_REPARACION,
        MotoEstado.INMOVILIZADA,
        MotoEstado.RECUPERACION,
        MotoEstado.TRANSFERIDA,
    },
    MotoEstado.EN_SERVICE: {
        MotoEstado.DISPONIBLE,
        MotoEstado.ALQUILADA,
        MotoEstado.EN_REPARACION,
    },
    MotoEstado.EN_REPARACION: {
        MotoEstado.DISPONIBLE,
        MotoEstado.ALQUILADA,
        MotoEstado.EN_SERVICE,
        MotoEstado.BAJA_TEMP,
        MotoEstado.BAJA_DEFINITIVA,
    },
    MotoEstado.INMOVILIZADA: {
        MotoEstado.RECUPERACION,
        MotoEstado.EN_REPARACION,
        MotoEstado.DISPONIBLE,
        MotoEstado.BAJA_DEFINITIVA,
    },
    MotoEstado.RECUPERACION: {
        MotoEstado.EN_DEPOSITO,
        MotoEstado.EN_REPARACION,
        MotoEstado.DISPONIBLE,
        MotoEstado.BAJA_DEFINITIVA,
    },
    MotoEstado.BAJA_TEMP: {
        MotoEstado.EN_DEPOSITO,
        MotoEstado.DISPONIBLE,
        MotoEstado.BAJA_DEFINITIVA,
    },
    # Venta del rezago tras una baja definitiva.
    MotoEstado.BAJA_DEFINITIVA: {MotoEstado.TRANSFERIDA},
    MotoEstado.TRANSFERIDA: set(),
}


OT_TRANSITIONS: dict[OTEstado, set[OTEstado]] = {
    OTEstado.SOLICITADA: {OTEstado.APROBADA, OTEstado.CANCELADA},
    OTEstado.APROBADA: {
        OTEstado.PROGRAMADA,
        OTEstado.EN_EJECUCION,
        OTEstado.CANCELADA,
    },
    OTEstado.PROGRAMADA: {
        OTEstado.APROBADA,
        OTEstado.EN_EJECUCION,
        OTEstado.CANCELADA,
    },
    OTEstado.EN_EJECUCION: {
        OTEstado.EN_ESPERA_REPUESTOS,
        OTEstado.COMPLETADA,
        OTEstado.CANCELADA,
    },
    OTEstado.EN_ESPERA_REPUESTOS: {OTEstado.EN_EJECUCION, OTEstado.CANCELADA},
    OTEstado.COMPLETADA: set(),
    OTEstado.CANCELADA: set(),
}


def _check_table(table: Mapping[S, set[S]]) -> None:
    for state, targets in table.items():
        if state in targets:
            raise ValueError(f"La tabla de transiciones incluye un bucle en {state}")


def reachable_states(table: Mapping[S, set[S]], current: S) -> frozenset[S]:
    return frozenset(table.get(current, ()))


def is_valid_transition(table: Mapping[S, set[S]], current: S, target: S) -> bool:
    if current == target:
        return False
    return target in reachable_states(table, current)


def terminal_states(table: Mapping[S, set[S]]) -> frozenset[S]:
    return frozenset(state for state, targets in table.items() if not targets)


_check_table(MOTO_TRANSITIONS)
_check_table(OT_TRANSITIONS)
