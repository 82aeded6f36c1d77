from __future__ import annotations

from flask import jsonify, request
from flask_login import current_user, login_required

from motorent.core.models import OrdenTrabajo, OTEstado, Role
from motorent.core.permissions import require_permission
from motorent.core.transitions import OT_TRANSITIONS, reachable_states
from motorent.core.utils import clean_text, request_payload
from motorent.events import operations as ops
from motorent.workshop import workshop_bp
from motorent.workshop.services import (
    add_work_order_part,
    change_work_order_state,
    create_work_order,
    work_order_by_id,
)


@workshop_bp.get("")
@login_required
@require_permission(ops.MAINTENANCE_WORK_ORDER_VIEW, "view", [Role.OPERADOR, Role.CONSULTA])
def list_orders():
    query = OrdenTrabajo.query
    estado = clean_text(request.args.get("estado")).upper()
    if estado in OTEstado.__members__:
        query = query.filter(OrdenTrabajo.estado == OTEstado[estado])
    moto_id = request.args.get("moto_id", type=int)
    if moto_id:
        query = query.filter(OrdenTrabajo.moto_id == moto_id)
    rows = query.order_by(OrdenTrabajo.created_at.desc(), OrdenTrabajo.id.desc()).limit(200).all()
    return jsonify({"data": [row.to_dict() for row in rows]})


@workshop_bp.post("")
@login_required
@require_permission(ops.MAINTENANCE_WORK_ORDER_CREATE, "create", [Role.OPERADOR])
def create():
    orden = create_work_order(request_payload(), current_user.id)
    return jsonify({"data": orden.to_dict()}), 201


@workshop_bp.get("/<int:ot_id>")
@login_required
@require_permission(ops.MAINTENANCE_WORK_ORDER_VIEW, "view", [Role.OPERADOR, Role.CONSULTA])
def detail(ot_id: int):
    orden = work_order_by_id(ot_id)
    data = orden.to_dict()
    data["repuestos"] = [item.to_dict() for item in orden.repuestos]
    data["historial"] = [
        {
            "estado_anterior": item.estado_anterior.value,
            "estado_nuevo": item.estado_nuevo.value,
            "descripcion": item.descripcion,
            "created_at": item.created_at.isoformat(),
        }
        for item in orden.historial
    ]
    data["estados_posibles"] = sorted(state.value for state in reachable_states(OT_TRANSITIONS, orden.estado))
    return jsonify({"data": data})


@workshop_bp.post("/<int:ot_id>/repuestos")
@login_required
@require_permission(ops.MAINTENANCE_WORK_ORDER_UPDATE, "execute", [Role.OPERADOR])
def add_part(ot_id: int):
    repuesto = add_work_order_part(ot_id, request_payload())
    return jsonify({"data": repuesto.to_dict()}), 201


@workshop_bp.post("/<int:ot_id>/estado")
@login_required
@require_permission(ops.MAINTENANCE_WORK_ORDER_UPDATE, "execute", [Role.OPERADOR])
def change_state(ot_id: int):
    orden = change_work_order_state(ot_id, request_payload(), current_user.id)
    return jsonify({"data": orden.to_dict()})
