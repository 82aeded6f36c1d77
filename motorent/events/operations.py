"""Identificadores de operacion con formato ``dominio.entidad.accion``.

Toda ruta de escritura usa una constante de este modulo tanto para el
permiso como para el evento de negocio que emite.
"""
from __future__ import annotations

FLEET_MOTO_CREATE = "fleet.moto.create"
FLEET_MOTO_VIEW = "fleet.moto.view"
FLEET_MOTO_CHANGE_STATE = "fleet.moto.changeState"
FLEET_MOTO_DECOMMISSION = "fleet.moto.decommission"
FLEET_MOTO_KM_READING = "fleet.moto.kmReading"

MAINTENANCE_WORK_ORDER_VIEW = "maintenance.workOrder.view"
MAINTENANCE_WORK_ORDER_CREATE = "maintenance.workOrder.create"
MAINTENANCE_WORK_ORDER_UPDATE = "maintenance.workOrder.update"
MAINTENANCE_WORK_ORDER_APPROVE = "maintenance.workOrder.approve"
MAINTENANCE_WORK_ORDER_START = "maintenance.workOrder.start"
MAINTENANCE_WORK_ORDER_COMPLETE = "maintenance.workOrder.complete"
MAINTENANCE_WORK_ORDER_CANCEL = "maintenance.workOrder.cancel"

FINANCE_BANK_RECONCILIATION_VIEW = "finance.bankReconciliation.view"
FINANCE_BANK_RECONCILIATION_MATCH = "finance.bankReconciliation.match"
FINANCE_BANK_RECONCILIATION_APPROVE = "finance.bankReconciliation.approve"

SYSTEM_EVENTS_VIEW = "system.events.view"
SYSTEM_EVENTS_CLEANUP = "system.events.cleanup"

ALL_OPERATIONS: tuple[str, ...] = tuple(
    value for name, value in sorted(globals().items()) if name.isupper() and isinstance(value, str)
)
