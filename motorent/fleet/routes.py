from __future__ import annotations

from flask import jsonify
from flask_login import current_user, login_required

from motorent.core.models import Role
from motorent.core.permissions import require_permission
from motorent.core.utils import request_payload
from motorent.events import operations as ops
from motorent.fleet import fleet_bp
from motorent.fleet.services import (
    change_moto_state,
    create_moto,
    decommission_moto,
    moto_by_id,
    possible_states,
    record_km_reading,
)


@fleet_bp.post("")
@login_required
@require_permission(ops.FLEET_MOTO_CREATE, "create", [Role.OPERADOR])
def create():
    moto = create_moto(request_payload(), current_user.id)
    return jsonify({"data": moto.to_dict()}), 201


@fleet_bp.get("/<int:moto_id>")
@login_required
@require_permission(ops.FLEET_MOTO_VIEW, "view", [Role.OPERADOR, Role.CONTADOR, Role.CONSULTA])
def detail(moto_id: int):
    moto = moto_by_id(moto_id)
    data = moto.to_dict()
    data["historial"] = [
        {
            "estado_anterior": item.estado_anterior.value,
            "estado_nuevo": item.estado_nuevo.value,
            "motivo": item.motivo,
            "created_at": item.created_at.isoformat(),
        }
        for item in moto.historial
    ]
    return jsonify({"data": data})


@fleet_bp.get("/<int:moto_id>/estados-posibles")
@login_required
@require_permission(ops.FLEET_MOTO_VIEW, "view", [Role.OPERADOR, Role.CONTADOR, Role.CONSULTA])
def reachable(moto_id: int):
    return jsonify({"data": possible_states(moto_id)})


@fleet_bp.post("/<int:moto_id>/estado")
@login_required
@require_permission(ops.FLEET_MOTO_CHANGE_STATE, "execute", [Role.OPERADOR])
def change_state(moto_id: int):
    moto = change_moto_state(moto_id, request_payload(), current_user.id)
    return jsonify({"data": moto.to_dict()})


@fleet_bp.post("/<int:moto_id>/baja")
@login_required
@require_permission(ops.FLEET_MOTO_DECOMMISSION, "approve")
def decommission(moto_id: int):
    moto = decommission_moto(moto_id, request_payload(), current_user.id)
    return jsonify({"data": moto.to_dict()})


@fleet_bp.post("/<int:moto_id>/lecturas-km")
@login_required
@require_permission(ops.FLEET_MOTO_KM_READING, "create", [Role.OPERADOR])
def km_reading(moto_id: int):
    lectura = record_km_reading(moto_id, request_payload(), current_user.id)
    return jsonify({"data": lectura.to_dict()}), 201
