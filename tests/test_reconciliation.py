from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from motorent.core.errors import ConflictError, ValidationError
from motorent.core.extensions import db
from motorent.core.models import (
    Alerta,
    BusinessEvent,
    Conciliacion,
    ConciliacionEstado,
    ConciliacionMatch,
    CuentaBancaria,
    ExtractoBancario,
    Factura,
    FacturaCompra,
    FacturaCompraEstado,
    FacturaEstado,
    MatchEstado,
    MatchTipo,
)
from motorent.reconciliation.services import (
    MatchFailure,
    accept_high_confidence,
    accept_match,
    complete_batch,
    create_batch,
    manual_match,
    propose_matches,
    reject_match,
)


@pytest.fixture
def june_account(app):
    """Cuenta aislada con una linea de $50.000 y una factura impaga del dia anterior."""
    with app.app_context():
        cuenta = CuentaBancaria(nombre="Cuenta junio", banco="Banco Nacion", numero_cuenta="111-222")
        db.session.add(cuenta)
        db.session.flush()
        db.session.add_all(
            [
                ExtractoBancario(
                    cuenta_bancaria_id=cuenta.id,
                    fecha=date(2025, 6, 10),
                    descripcion="TRANSFERENCIA GOMEZ",
                    monto=Decimal("50000.00"),
                ),
                ExtractoBancario(
                    cuenta_bancaria_id=cuenta.id,
                    fecha=date(2025, 6, 20),
                    descripcion="DEPOSITO SIN IDENTIFICAR",
                    monto=Decimal("777.00"),
                ),
                Factura(
                    numero="FA-0002-00000001",
                    cliente_nombre="Gomez Ana",
                    fecha_emision=date(2025, 6, 9),
                    monto_total=Decimal("50000.00"),
                    estado=FacturaEstado.EMITIDA,
                ),
            ]
        )
        db.session.commit()
        return cuenta.id


def _june_batch(app, cuenta_id: int) -> int:
    with app.app_context():
        batch, _proposal = create_batch(
            {"cuenta_bancaria_id": str(cuenta_id), "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
            None,
        )
        return batch.id


def test_invoice_scenario_propose_accept_and_double_accept(app, june_account):
    with app.app_context():
        batch, proposal = create_batch(
            {"cuenta_bancaria_id": june_account, "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
            None,
        )
        assert batch.numero == f"CONC-{date.today().year}-00001"
        assert proposal.created == 1
        assert [line.descripcion for line in proposal.unmatched] == ["DEPOSITO SIN IDENTIFICAR"]

        match = proposal.matches[0]
        assert match.estado == MatchEstado.PROPUESTO
        assert match.entidad_tipo == "Factura"
        assert match.tipo_match == MatchTipo.EXACTO
        assert match.confianza >= 90

        outcome = accept_match(batch.id, match.id, None)
        assert outcome.ok
        assert outcome.match.estado == MatchEstado.ACEPTADO
        line = db.session.get(ExtractoBancario, match.extracto_id)
        assert line.conciliado is True
        assert line.conciliacion_match_id == match.id
        assert db.session.get(Conciliacion, batch.id).total_conciliados == 1

        events_before = BusinessEvent.query.count()
        second = accept_match(batch.id, match.id, None)
        assert second.failure == MatchFailure.ALREADY_RESOLVED
        assert BusinessEvent.query.count() == events_before


def test_rerunning_proposal_does_not_duplicate(app, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        first = propose_matches(batch_id)
        second = propose_matches(batch_id)

        assert first.created == 0
        assert second.created == 0
        assert {m.extracto_id: m.id for m in first.matches} == {m.extracto_id: m.id for m in second.matches}
        assert ConciliacionMatch.query.filter_by(conciliacion_id=batch_id).count() == 1


def test_reject_requires_reason_before_any_change(app, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        match = ConciliacionMatch.query.filter_by(conciliacion_id=batch_id).one()

        outcome = reject_match(batch_id, match.id, "   ", None)
        assert outcome.failure == MatchFailure.INVALID_REASON
        assert db.session.get(ConciliacionMatch, match.id).estado == MatchEstado.PROPUESTO

        rejected = reject_match(batch_id, match.id, "No corresponde al cliente", None)
        assert rejected.ok
        assert rejected.match.estado == MatchEstado.RECHAZADO
        assert rejected.match.motivo_rechazo == "No corresponde al cliente"
        assert db.session.get(ExtractoBancario, match.extracto_id).conciliado is False

        assert reject_match(batch_id, match.id, "otra vez", None).failure == MatchFailure.ALREADY_RESOLVED

        # La linea rechazada vuelve a ser candidata.
        again = propose_matches(batch_id)
        assert again.created == 1
        assert again.matches[0].id != match.id


def test_typed_failures_for_unknown_and_foreign_matches(app, june_account, cuenta_id):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        other, _ = create_batch(
            {"cuenta_bancaria_id": cuenta_id, "periodo_desde": "2025-01-01", "periodo_hasta": "2025-01-31"},
            None,
        )
        match = ConciliacionMatch.query.filter_by(conciliacion_id=batch_id).one()

        assert accept_match(batch_id, 9999, None).failure == MatchFailure.NOT_FOUND
        assert accept_match(other.id, match.id, None).failure == MatchFailure.BATCH_MISMATCH
        assert reject_match(other.id, match.id, "x", None).failure == MatchFailure.BATCH_MISMATCH
        assert db.session.get(ConciliacionMatch, match.id).estado == MatchEstado.PROPUESTO


def test_create_batch_validations(app, cuenta_id):
    with app.app_context():
        with pytest.raises(ValidationError):
            create_batch(
                {"cuenta_bancaria_id": cuenta_id, "periodo_desde": "2025-06-30", "periodo_hasta": "2025-06-01"},
                None,
            )
        with pytest.raises(ValidationError):
            create_batch({"periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"}, None)


def test_complete_batch_refuses_pending_then_records_difference(app, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        with pytest.raises(ConflictError):
            complete_batch(batch_id, None)

        accepted = accept_high_confidence(batch_id, None)
        assert len(accepted) == 1

        batch = complete_batch(batch_id, None)
        assert batch.estado == ConciliacionEstado.COMPLETADA
        assert batch.diferencia == Decimal("777.00")
        assert batch.total_extractos == 2
        assert batch.total_no_conciliados == 1
        assert BusinessEvent.query.filter_by(operation_id="finance.bankReconciliation.approve").count() == 1
        alerta = Alerta.query.filter_by(tipo="CONCILIACION").one()
        assert alerta.mensaje.endswith("diferencia $777,00")

        with pytest.raises(ConflictError):
            propose_matches(batch_id)


def test_manual_match_is_accepted_immediately(app, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        line = ExtractoBancario.query.filter_by(descripcion="DEPOSITO SIN IDENTIFICAR").one()
        factura = Factura(
            numero="FA-0002-00000002",
            cliente_nombre="Perez Luis",
            fecha_emision=date(2025, 6, 2),
            monto_total=Decimal("800.00"),
            estado=FacturaEstado.EMITIDA,
        )
        db.session.add(factura)
        db.session.commit()

        match = manual_match(
            batch_id,
            {"extracto_id": str(line.id), "entidad_tipo": "Factura", "entidad_id": str(factura.id)},
            None,
        )
        assert match.tipo_match == MatchTipo.MANUAL
        assert match.estado == MatchEstado.ACEPTADO
        assert match.confianza == 100
        assert match.diferencia == Decimal("-23.00")
        assert db.session.get(ExtractoBancario, line.id).conciliado is True

        with pytest.raises(ConflictError):
            manual_match(
                batch_id,
                {"extracto_id": str(line.id), "entidad_tipo": "Factura", "entidad_id": str(factura.id)},
                None,
            )


def test_seeded_account_matches_invoice_and_expense(app, cuenta_id):
    today = date.today()
    desde = today.replace(day=1)
    hasta = desde.replace(day=28)
    with app.app_context():
        _batch, proposal = create_batch(
            {"cuenta_bancaria_id": cuenta_id, "periodo_desde": desde.isoformat(), "periodo_hasta": hasta.isoformat()},
            None,
        )
        kinds = sorted(match.entidad_tipo for match in proposal.matches)
        assert kinds == ["Factura", "Gasto"]
        assert [line.descripcion for line in proposal.unmatched] == ["COMISION MANTENIMIENTO CUENTA"]
        assert all(match.confianza >= 90 for match in proposal.matches)


def test_reconciliation_api_maps_failures_to_status_codes(app, client, login_contador, june_account):
    login_contador()
    created = client.post(
        "/api/conciliacion",
        json={"cuenta_bancaria_id": june_account, "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
    )
    assert created.status_code == 201
    body = created.get_json()
    batch_id = body["data"]["id"]
    match_id = body["proposal"]["matches"][0]["id"]
    assert body["proposal"]["created"] == 1

    no_reason = client.post(f"/api/conciliacion/{batch_id}/matches/{match_id}/rechazar", json={})
    assert no_reason.status_code == 400
    assert no_reason.get_json()["reason"] == "INVALID_REASON"

    missing = client.post(f"/api/conciliacion/{batch_id}/matches/9999/aceptar")
    assert missing.status_code == 404

    accepted = client.post(f"/api/conciliacion/{batch_id}/matches/{match_id}/aceptar")
    assert accepted.status_code == 200
    assert accepted.get_json()["data"]["estado"] == "ACEPTADO"

    twice = client.post(f"/api/conciliacion/{batch_id}/matches/{match_id}/aceptar")
    assert twice.status_code == 422
    assert twice.get_json()["reason"] == "ALREADY_RESOLVED"

    completed = client.post(f"/api/conciliacion/{batch_id}/completar")
    assert completed.status_code == 200
    assert completed.get_json()["data"]["estado"] == "COMPLETADA"

    detail = client.get(f"/api/conciliacion/{batch_id}").get_json()["data"]
    assert [item["estado"] for item in detail["matches"]] == ["ACEPTADO"]


def test_operator_cannot_reconcile(app, client, login_operator, cuenta_id):
    login_operator()
    response = client.post(
        "/api/conciliacion",
        json={"cuenta_bancaria_id": cuenta_id, "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
    )
    assert response.status_code == 403


def test_second_writer_on_stale_match_gets_already_resolved(app, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        match = ConciliacionMatch.query.filter_by(conciliacion_id=batch_id).one()
        assert match.estado == MatchEstado.PROPUESTO

        # Otra sesion lo rechaza; el objeto cargado en esta sigue viendo PROPUESTO.
        db.session.execute(
            update(ConciliacionMatch)
            .where(ConciliacionMatch.id == match.id)
            .values(estado=MatchEstado.RECHAZADO, motivo_rechazo="Resuelto en paralelo")
            .execution_options(synchronize_session=False)
        )
        events_before = BusinessEvent.query.count()

        outcome = accept_match(batch_id, match.id, None)

        assert outcome.failure == MatchFailure.ALREADY_RESOLVED
        assert outcome.match.estado == MatchEstado.RECHAZADO
        assert db.session.get(ExtractoBancario, match.extracto_id).conciliado is False
        assert BusinessEvent.query.count() == events_before


def test_reject_with_non_text_reason_is_invalid(app, client, login_contador, june_account):
    batch_id = _june_batch(app, june_account)
    with app.app_context():
        match_id = ConciliacionMatch.query.filter_by(conciliacion_id=batch_id).one().id
        assert reject_match(batch_id, match_id, 123, None).failure == MatchFailure.INVALID_REASON

    login_contador()
    numeric = client.post(f"/api/conciliacion/{batch_id}/matches/{match_id}/rechazar", json={"motivo": 123})
    assert numeric.status_code == 400
    assert numeric.get_json()["reason"] == "INVALID_REASON"

    listed = client.post(f"/api/conciliacion/{batch_id}/matches/{match_id}/rechazar", json=["motivo"])
    assert listed.status_code == 400

    with app.app_context():
        assert db.session.get(ConciliacionMatch, match_id).estado == MatchEstado.PROPUESTO


def test_proposal_is_recorded_as_business_event(app, june_account):
    with app.app_context():
        create_batch(
            {"cuenta_bancaria_id": june_account, "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
            7,
        )
        events = (
            BusinessEvent.query.filter_by(operation_id="finance.bankReconciliation.match")
            .order_by(BusinessEvent.id)
            .all()
        )
        actions = [event.payload["accion"] for event in events]
        assert actions == ["crear", "proponer"]
        proposal = events[-1]
        assert proposal.user_id == 7
        assert proposal.payload["propuestos"] == 1
        assert proposal.payload["sin_candidato"] == 1


def test_paid_purchase_invoice_matches_outgoing_line(app, june_account):
    with app.app_context():
        db.session.add_all(
            [
                ExtractoBancario(
                    cuenta_bancaria_id=june_account,
                    fecha=date(2025, 6, 15),
                    descripcion="TRANSFERENCIA REPUESTOS DEL SUR",
                    monto=Decimal("-12500.00"),
                ),
                FacturaCompra(
                    numero="FC-0001-00000420",
                    proveedor_nombre="Repuestos del Sur",
                    fecha_emision=date(2025, 6, 15),
                    monto_total=Decimal("12500.00"),
                    estado=FacturaCompraEstado.PAGADA,
                ),
                FacturaCompra(
                    numero="FC-0001-00000421",
                    proveedor_nombre="Repuestos del Sur",
                    fecha_emision=date(2025, 6, 15),
                    monto_total=Decimal("12500.00"),
                    estado=FacturaCompraEstado.PENDIENTE,
                ),
            ]
        )
        db.session.commit()

        _batch, proposal = create_batch(
            {"cuenta_bancaria_id": june_account, "periodo_desde": "2025-06-01", "periodo_hasta": "2025-06-30"},
            None,
        )
        compra = next(match for match in proposal.matches if match.entidad_tipo == "FacturaCompra")
        assert compra.entidad_label == "FC FC-0001-00000420 - Repuestos del Sur"
        assert compra.monto_sistema == Decimal("-12500.00")
        assert compra.tipo_match == MatchTipo.EXACTO
        assert compra.confianza == 100
