from __future__ import annotations

import logging

from motorent.core.extensions import db
from motorent.core.models import Alerta, BusinessEvent
from motorent.core.utils import money
from motorent.events import operations as ops
from motorent.events.bus import EventBus

logger = logging.getLogger(__name__)

WORK_ORDER_MESSAGES = {
    ops.MAINTENANCE_WORK_ORDER_COMPLETE: "OT {numero} completada (costo total {costo})",
    ops.MAINTENANCE_WORK_ORDER_CANCEL: "OT {numero} cancelada",
}


def _result(event: BusinessEvent) -> dict:
    payload = event.payload or {}
    result = payload.get("result")
    return result if isinstance(result, dict) else {}


def notify_work_order(event: BusinessEvent) -> None:
    template = WORK_ORDER_MESSAGES.get(event.operation_id)
    if template is None:
        return
    result = _result(event)
    db.session.add(
        Alerta(
            tipo="OT",
            mensaje=template.format(numero=result.get("numero", event.entity_id), costo=result.get("costo_total")),
            entity_type=event.entity_type,
            entity_id=event.entity_id,
        )
    )


def notify_decommission(event: BusinessEvent) -> None:
    payload = event.payload or {}
    db.session.add(
        Alerta(
            tipo="FLOTA",
            mensaje=f"Moto {event.entity_id} dada de baja ({payload.get('tipo_baja', 'sin tipo')})",
            entity_type=event.entity_type,
            entity_id=event.entity_id,
        )
    )


def notify_reconciliation_difference(event: BusinessEvent) -> None:
    payload = event.payload or {}
    diferencia = money(payload.get("diferencia") or 0)
    db.session.add(
        Alerta(
            tipo="CONCILIACION",
            mensaje=f"Conciliacion {payload.get('numero', event.entity_id)} cerrada con diferencia {diferencia}",
            entity_type=event.entity_type,
            entity_id=event.entity_id,
        )
    )


def log_metrics(event: BusinessEvent) -> None:
    logger.debug("metrics op=%s entity=%s:%s", event.operation_id, event.entity_type, event.entity_id)


def register_default_handlers(bus: EventBus) -> EventBus:
    bus.register("notifications.workOrder", "maintenance.workOrder.*", notify_work_order, priority=200)
    bus.register("notifications.fleet", ops.FLEET_MOTO_DECOMMISSION, notify_decommission, priority=200)
    bus.register(
        "notifications.reconciliation",
        ops.FINANCE_BANK_RECONCILIATION_APPROVE,
        notify_reconciliation_difference,
        priority=200,
    )
    bus.register("metrics", "*", log_metrics, priority=999)
    return bus
