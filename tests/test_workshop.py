from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from motorent.core.errors import ConflictError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import Alerta, BusinessEvent, HistorialOT, Moto, OrdenTrabajo, OTEstado
from motorent.workshop.services import add_work_order_part, change_work_order_state, create_work_order


def _new_order(app) -> int:
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        orden = create_work_order(
            {"moto_id": str(moto.id), "tipo": "CORRECTIVO", "descripcion": "Cambio de pastillas"},
            None,
        )
        return orden.id


def test_create_work_order_numbers_sequentially(app):
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        first = create_work_order({"moto_id": moto.id, "tipo": "PREVENTIVO", "descripcion": "Service 5000"}, None)
        second = create_work_order({"moto_id": moto.id, "tipo": "emergencia", "descripcion": "No arranca"}, None)

        year = date.today().year
        assert first.numero == f"OT-{year}-00001"
        assert second.numero == f"OT-{year}-00002"
        assert first.estado == OTEstado.SOLICITADA
        assert first.prioridad.value == "MEDIA"
        assert BusinessEvent.query.filter_by(operation_id="maintenance.workOrder.create").count() == 2


def test_create_work_order_validations(app):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_work_order({"moto_id": "1", "tipo": "OTRO", "descripcion": "x"}, None)
        with pytest.raises(ValidationError):
            create_work_order({"tipo": "PREVENTIVO", "descripcion": "x"}, None)
        with pytest.raises(ValidationError):
            create_work_order({"moto_id": "1", "tipo": "PREVENTIVO", "descripcion": ""}, None)


def test_full_lifecycle_computes_costs_and_emits_events(app):
    ot_id = _new_order(app)
    with app.app_context():
        change_work_order_state(ot_id, {"estado": "APROBADA"}, None)
        change_work_order_state(ot_id, {"estado": "PROGRAMADA", "taller_nombre": "Taller Norte"}, None)
        with pytest.raises(ValidationError):
            change_work_order_state(ot_id, {"estado": "EN_EJECUCION"}, None)
        change_work_order_state(ot_id, {"estado": "EN_EJECUCION", "km_ingreso": "1250"}, None)
        add_work_order_part(ot_id, {"nombre": "Pastillas", "cantidad": "2", "precio_unitario": "4500.50"})
        add_work_order_part(ot_id, {"nombre": "Liquido de frenos", "cantidad": "1", "precio_unitario": "3000"})
        orden = change_work_order_state(
            ot_id,
            {"estado": "COMPLETADA", "km_egreso": "1262", "costo_mano_obra": "10000"},
            None,
        )

        assert orden.estado == OTEstado.COMPLETADA
        assert orden.taller_nombre == "Taller Norte"
        assert orden.fecha_aprobacion is not None
        assert orden.fecha_inicio_real is not None
        assert orden.fecha_fin_real is not None
        assert orden.costo_repuestos == Decimal("12001.00")
        assert orden.costo_total == Decimal("22001.00")

        operations = [
            event.operation_id
            for event in BusinessEvent.query.filter_by(entity_type="OrdenTrabajo").order_by(BusinessEvent.id)
        ]
        assert operations == [
            "maintenance.workOrder.create",
            "maintenance.workOrder.approve",
            "maintenance.workOrder.update",
            "maintenance.workOrder.start",
            "maintenance.workOrder.complete",
        ]
        assert HistorialOT.query.filter_by(orden_trabajo_id=ot_id).count() == 5
        assert Alerta.query.filter_by(tipo="OT").count() == 1

        with pytest.raises(ConflictError):
            add_work_order_part(ot_id, {"nombre": "Tarde", "cantidad": "1", "precio_unitario": "1"})


def test_invalid_transition_lists_reachable_states(app):
    ot_id = _new_order(app)
    with app.app_context():
        with pytest.raises(ConflictError) as excinfo:
            change_work_order_state(ot_id, {"estado": "COMPLETADA"}, None)
        assert excinfo.value.details["estados_posibles"] == ["APROBADA", "CANCELADA"]
        assert db.session.get(OrdenTrabajo, ot_id).estado == OTEstado.SOLICITADA


def test_cancel_requires_reason_and_is_terminal(app, client, login_operator):
    ot_id = _new_order(app)
    login_operator()

    missing = client.post(f"/api/mantenimientos/ordenes/{ot_id}/estado", json={"estado": "CANCELADA"})
    assert missing.status_code == 400

    cancelled = client.post(
        f"/api/mantenimientos/ordenes/{ot_id}/estado",
        json={"estado": "CANCELADA", "motivo_cancelacion": "Cliente desiste"},
    )
    assert cancelled.status_code == 200
    assert cancelled.get_json()["data"]["motivo_cancelacion"] == "Cliente desiste"

    reopen = client.post(f"/api/mantenimientos/ordenes/{ot_id}/estado", json={"estado": "APROBADA"})
    assert reopen.status_code == 422
    assert reopen.get_json()["estados_posibles"] == []

    detail = client.get(f"/api/mantenimientos/ordenes/{ot_id}").get_json()["data"]
    assert detail["estado"] == "CANCELADA"
    assert [item["estado_nuevo"] for item in detail["historial"]] == ["SOLICITADA", "CANCELADA"]


def test_work_order_routes_create_and_list(app, client, login_operator):
    login_operator()
    with app.app_context():
        moto_id = Moto.query.filter_by(patente="A456EFG").one().id

    created = client.post(
        "/api/mantenimientos/ordenes",
        json={"moto_id": moto_id, "tipo": "PREVENTIVO", "prioridad": "ALTA", "descripcion": "Service 10000"},
    )
    assert created.status_code == 201
    ot_id = created.get_json()["data"]["id"]

    part = client.post(
        f"/api/mantenimientos/ordenes/{ot_id}/repuestos",
        json={"nombre": "Filtro de aceite", "cantidad": 1, "precio_unitario": "2500"},
    )
    assert part.status_code == 201
    assert part.get_json()["data"]["subtotal"] == "2500.00"

    listed = client.get(f"/api/mantenimientos/ordenes?moto_id={moto_id}&estado=SOLICITADA").get_json()["data"]
    assert [item["id"] for item in listed] == [ot_id]
