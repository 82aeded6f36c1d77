from __future__ import annotations

import pytest

from motorent.core.errors import ConflictError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import (
    Alerta,
    BajaMoto,
    BusinessEvent,
    EventStatus,
    HistorialEstadoMoto,
    LecturaKm,
    Moto,
    MotoEstado,
)
from motorent.fleet.services import change_moto_state, create_moto, decommission_moto, record_km_reading


def _moto_id(app, patente: str) -> int:
    with app.app_context():
        return Moto.query.filter_by(patente=patente).one().id


def test_state_change_accepts_reachable_target_and_rejects_others(app, client, login_operator):
    login_operator()
    moto_id = _moto_id(app, "A123BCD")

    ok = client.post(f"/api/motos/{moto_id}/estado", json={"nuevo_estado": "ALQUILADA", "motivo": "Contrato 15"})
    assert ok.status_code == 200
    assert ok.get_json()["data"]["estado"] == "ALQUILADA"
    assert ok.get_json()["data"]["estado_anterior"] == "DISPONIBLE"

    rejected = client.post(
        f"/api/motos/{moto_id}/estado",
        json={"nuevo_estado": "EN_PATENTAMIENTO", "motivo": "Error"},
    )
    assert rejected.status_code == 422
    body = rejected.get_json()
    assert "EN_PATENTAMIENTO" in body["error"]
    assert "DISPONIBLE" in body["estados_posibles"]

    with app.app_context():
        moto = db.session.get(Moto, moto_id)
        assert moto.estado == MotoEstado.ALQUILADA
        assert HistorialEstadoMoto.query.filter_by(moto_id=moto_id).count() == 1
        events = BusinessEvent.query.filter_by(operation_id="fleet.moto.changeState").all()
        assert len(events) == 1
        assert events[0].payload["estado_nuevo"] == "ALQUILADA"


def test_state_change_requires_reason(app):
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        with pytest.raises(ValidationError):
            change_moto_state(moto.id, {"nuevo_estado": "EN_SERVICE", "motivo": "  "}, None)
        assert BusinessEvent.query.count() == 0


def test_reachable_states_endpoint(app, client, login_consulta):
    login_consulta()
    moto_id = _moto_id(app, "A456EFG")
    response = client.get(f"/api/motos/{moto_id}/estados-posibles")
    assert response.status_code == 200
    assert "DISPONIBLE" in response.get_json()["data"]
    assert "EN_PATENTAMIENTO" not in response.get_json()["data"]


def test_create_moto_validations(app):
    with app.app_context():
        moto = create_moto({"marca": "Zanella", "modelo": "ZB 110", "anio": "2024", "patente": "a999zzz"}, None)
        assert moto.patente == "A999ZZZ"
        assert moto.estado == MotoEstado.EN_DEPOSITO

        with pytest.raises(ConflictError):
            create_moto({"marca": "Zanella", "modelo": "ZB 110", "anio": "2024", "patente": "A999ZZZ"}, None)
        with pytest.raises(ValidationError):
            create_moto({"marca": "Zanella", "modelo": "ZB 110", "anio": "1980"}, None)
        with pytest.raises(ValidationError):
            create_moto({"marca": "Zanella", "modelo": "ZB 110", "anio": "2024", "estado": "ALQUILADA"}, None)


def test_consulta_cannot_create_motos(app, client, login_consulta):
    login_consulta()
    response = client.post("/api/motos", json={"marca": "Honda", "modelo": "XR", "anio": 2024})
    assert response.status_code == 403


def test_anonymous_requests_get_401(client):
    assert client.get("/api/motos/1").status_code == 401


def test_decommission_creates_baja_and_alert(app, client, login_admin, login_operator):
    moto_id = _moto_id(app, "A123BCD")

    login_operator()
    denied = client.post(f"/api/motos/{moto_id}/baja", json={"tipo": "ROBO", "motivo": "Denuncia"})
    assert denied.status_code == 403
    client.post("/auth/logout")

    login_admin()
    response = client.post(
        f"/api/motos/{moto_id}/baja",
        json={"tipo": "ROBO", "motivo": "Robada en via publica", "num_denuncia": "D-77"},
    )
    assert response.status_code == 200
    assert response.get_json()["data"]["estado"] == "BAJA_DEFINITIVA"

    again = client.post(f"/api/motos/{moto_id}/baja", json={"tipo": "ROBO", "motivo": "Otra vez"})
    assert again.status_code == 422

    with app.app_context():
        assert BajaMoto.query.filter_by(moto_id=moto_id).one().num_denuncia == "D-77"
        assert Alerta.query.filter_by(tipo="FLOTA").count() == 1


def test_decommission_rejects_unknown_type(app):
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        with pytest.raises(ValidationError):
            decommission_moto(moto.id, {"tipo": "PERDIDA", "motivo": "x"}, None)


def test_km_reading_updates_odometer_atomically(app, client, login_operator):
    login_operator()
    moto_id = _moto_id(app, "A123BCD")

    response = client.post(f"/api/motos/{moto_id}/lecturas-km", json={"km": 1500, "fuente": "GPS"})
    assert response.status_code == 201
    assert response.get_json()["data"]["km"] == 1500

    lower = client.post(f"/api/motos/{moto_id}/lecturas-km", json={"km": 1000})
    assert lower.status_code == 422

    with app.app_context():
        assert db.session.get(Moto, moto_id).km == 1500
        assert LecturaKm.query.filter_by(moto_id=moto_id).count() == 1
        event = BusinessEvent.query.filter_by(operation_id="fleet.moto.kmReading").one()
        assert event.status == EventStatus.SUCCESS
        assert event.payload["km_anterior"] == 1200


def test_km_reading_requires_positive_integer(app):
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        with pytest.raises(ValidationError):
            record_km_reading(moto.id, {"km": "-5"}, None)


def test_create_moto_rejects_malformed_numbers_and_bodies(app, client, login_operator):
    login_operator()
    superscript = client.post("/api/motos", json={"marca": "Honda", "modelo": "Wave", "anio": "²⁰²⁴"})
    assert superscript.status_code == 400
    assert "anio" in superscript.get_json()["error"]

    not_an_object = client.post("/api/motos", json=["Honda", "Wave", 2024])
    assert not_an_object.status_code == 400

    bad_estado = client.post(
        "/api/motos",
        json={"marca": "Honda", "modelo": "Wave", "anio": 2024, "estado": 7},
    )
    assert bad_estado.status_code == 400

    numeric_color = client.post(
        "/api/motos",
        json={"marca": "Honda", "modelo": "Wave", "anio": 2024, "color": 5, "patente": "B111CCC"},
    )
    assert numeric_color.status_code == 201
    assert numeric_color.get_json()["data"]["color"] == "5"


def test_km_reading_rejects_non_ascii_digits(app):
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        with pytest.raises(ValidationError):
            record_km_reading(moto.id, {"km": "¹²³"}, None)
        with pytest.raises(ValidationError):
            record_km_reading(moto.id, {"km": "12.5"}, None)
