from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from motorent.core.errors import ValidationError
from motorent.core.extensions import db
from motorent.core.models import Alerta, BusinessEvent, EventDispatch, EventStatus, Moto, utcnow
from motorent.core.utils import clean_text, money, parse_decimal, parse_optional_int, parse_positive_int
from motorent.events.bus import EventBus, RetentionPolicy, matches_pattern, sanitize_payload
from motorent.events.operations import ALL_OPERATIONS


def test_pattern_matching():
    assert matches_pattern("*", "fleet.moto.create")
    assert matches_pattern("fleet.*", "fleet.moto.create")
    assert matches_pattern("fleet.moto.*", "fleet.moto.create")
    assert matches_pattern("fleet.moto.create", "fleet.moto.create")
    assert not matches_pattern("fleet.moto.create", "fleet.moto.changeState")
    assert not matches_pattern("finance.*", "fleet.moto.create")


def test_register_orders_by_priority_and_rejects_duplicates():
    bus = EventBus()
    bus.register("late", "*", lambda event: None, priority=500)
    bus.register("first", "*", lambda event: None, priority=10)
    bus.register("second", "fleet.*", lambda event: None, priority=10)

    assert [item["name"] for item in bus.handlers()] == ["first", "second", "late"]
    assert bus.handlers()[1] == {"name": "second", "priority": 10, "pattern": "fleet.*"}
    with pytest.raises(ValueError):
        bus.register("late", "*", lambda event: None)


def test_sanitize_payload_redacts_nested_secrets():
    cleaned = sanitize_payload({"user": {"password": "x", "email": "a@b"}, "CBU": "123", "rows": [{"api_key": 1}]})
    assert cleaned == {
        "user": {"password": "[REDACTED]", "email": "a@b"},
        "CBU": "[REDACTED]",
        "rows": [{"api_key": "[REDACTED]"}],
    }


def test_emit_dispatches_and_continues_after_handler_failure(app):
    calls: list[str] = []
    bus = EventBus()

    @bus.subscribe("broken", "fleet.*", priority=1)
    def broken(event):
        calls.append("broken")
        raise RuntimeError("boom")

    @bus.subscribe("alert", "fleet.moto.*", priority=5)
    def alert(event):
        calls.append("alert")
        db.session.add(Alerta(tipo="TEST", mensaje=f"evento {event.id}"))

    @bus.subscribe("other", "finance.*")
    def other(event):
        calls.append("other")

    with app.app_context():
        event = bus.emit("fleet.moto.create", "Moto", 7, {"patente": "A1", "token": "abc"}, actor_id=1)

        assert calls == ["broken", "alert"]
        stored = db.session.get(BusinessEvent, event.id)
        assert stored.status == EventStatus.SUCCESS
        assert stored.entity_id == "7"
        assert stored.payload == {"patente": "A1", "token": "[REDACTED]"}
        assert Alerta.query.filter_by(tipo="TEST").count() == 1

        dispatch = EventDispatch.query.filter_by(business_event_id=event.id).one()
        assert (dispatch.handlers_run, dispatch.handlers_ok, dispatch.handlers_failed) == (2, 1, 1)
        assert dispatch.level == "ERROR"
        assert "broken: boom" in dispatch.error


def test_failed_events_are_not_dispatched(app):
    calls: list[str] = []
    bus = EventBus()
    bus.register("all", "*", lambda event: calls.append(event.operation_id))

    with app.app_context():
        bus.emit("fleet.moto.create", "Moto", None, status=EventStatus.FAILED, error="fallo")
        assert calls == []
        assert BusinessEvent.query.filter_by(status=EventStatus.FAILED).count() == 1
        assert EventDispatch.query.count() == 0


def test_with_event_success_emits_exactly_one_event(app):
    bus = EventBus()
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()

        def _paint():
            moto.color = "Negro"
            return moto

        result = bus.with_event("fleet.moto.update", "Moto", _paint, actor_id=1, extra_payload={"campo": "color"})

        assert result.color == "Negro"
        events = BusinessEvent.query.filter_by(operation_id="fleet.moto.update").all()
        assert len(events) == 1
        assert events[0].status == EventStatus.SUCCESS
        assert events[0].entity_id == str(moto.id)
        assert events[0].payload["campo"] == "color"
        assert events[0].payload["result"]["color"] == "Negro"


def test_with_event_failure_rolls_back_records_failed_and_reraises(app):
    bus = EventBus()
    with app.app_context():
        moto = Moto.query.filter_by(patente="A123BCD").one()
        moto_id = moto.id

        def _explode():
            moto.color = "Verde"
            raise RuntimeError("disco lleno")

        with pytest.raises(RuntimeError, match="disco lleno"):
            bus.with_event("fleet.moto.update", "Moto", _explode, actor_id=1, entity_id=moto_id)

        events = BusinessEvent.query.filter_by(operation_id="fleet.moto.update").all()
        assert len(events) == 1
        assert events[0].status == EventStatus.FAILED
        assert events[0].error == "disco lleno"
        assert events[0].entity_id == str(moto_id)
        assert db.session.get(Moto, moto_id).color == "Rojo"


def test_cleanup_deletes_only_events_older_than_retention(app):
    bus = EventBus()
    now = utcnow()
    with app.app_context():
        for days in (91, 120, 400):
            db.session.add(
                BusinessEvent(
                    operation_id="fleet.moto.create",
                    entity_type="Moto",
                    status=EventStatus.SUCCESS,
                    created_at=now - timedelta(days=days),
                )
            )
        for days in (0, 10, 89):
            db.session.add(
                BusinessEvent(
                    operation_id="fleet.moto.create",
                    entity_type="Moto",
                    status=EventStatus.SUCCESS,
                    created_at=now - timedelta(days=days),
                )
            )
        db.session.commit()
        old = BusinessEvent.query.order_by(BusinessEvent.created_at.asc()).first()
        db.session.add(EventDispatch(business_event_id=old.id, handlers_run=1, handlers_ok=1))
        db.session.commit()

        deleted = bus.cleanup(RetentionPolicy(days=90), now=now)

        assert deleted == 3
        assert BusinessEvent.query.count() == 3
        assert EventDispatch.query.count() == 0


def test_retention_policy_requires_positive_days():
    with pytest.raises(ValidationError):
        RetentionPolicy(days=0)


def test_events_api_lists_handlers_and_filters(app, client, login_admin, login_operator):
    login_admin()
    handlers = client.get("/api/sistema/eventos/handlers")
    assert handlers.status_code == 200
    names = [item["name"] for item in handlers.get_json()["data"]]
    assert names[-1] == "metrics"
    assert "notifications.workOrder" in names

    with app.app_context():
        bus = app.extensions["event_bus"]
        bus.emit("fleet.moto.create", "Moto", 1, {"a": 1})
        bus.emit("finance.bankReconciliation.match", "Conciliacion", 1, {"a": 2}, status=EventStatus.FAILED)

    fleet_only = client.get("/api/sistema/eventos?operation_id=fleet.*").get_json()["data"]
    assert [item["operation_id"] for item in fleet_only] == ["fleet.moto.create"]
    failed = client.get("/api/sistema/eventos?status=FAILED").get_json()["data"]
    assert [item["entity_type"] for item in failed] == ["Conciliacion"]
    assert client.get("/api/sistema/eventos?status=RARO").status_code == 400

    client.post("/auth/logout")
    login_operator()
    assert client.get("/api/sistema/eventos").status_code == 403
    assert client.post("/api/sistema/eventos/limpieza", json={"days": 30}).status_code == 403


def test_cleanup_endpoint(app, client, login_admin):
    login_admin()
    response = client.post("/api/sistema/eventos/limpieza", json={"days": 30})
    assert response.status_code == 200
    assert response.get_json()["data"] == {"deleted": 0, "retention_days": 30}


def test_operation_ids_follow_domain_entity_action():
    assert "fleet.moto.changeState" in ALL_OPERATIONS
    for operation_id in ALL_OPERATIONS:
        domain, entity, action = operation_id.split(".")
        assert domain in {"fleet", "maintenance", "finance", "system"}
        assert entity and action


def test_money_formats_argentine_pesos():
    assert money(Decimal("1234567.5")) == "$1.234.567,50"
    assert money("-23") == "$-23,00"


def test_cleanup_endpoint_rejects_zero_and_non_numeric_days(app, client, login_admin):
    login_admin()
    zero = client.post("/api/sistema/eventos/limpieza", json={"days": 0})
    assert zero.status_code == 400
    assert "retencion" in zero.get_json()["error"]

    assert client.post("/api/sistema/eventos/limpieza", json={"days": "noventa"}).status_code == 400
    assert client.post("/api/sistema/eventos/limpieza", json={"days": -3}).status_code == 400

    default = client.post("/api/sistema/eventos/limpieza", json={})
    assert default.get_json()["data"]["retention_days"] == app.config["EVENT_RETENTION_DAYS"]


def test_number_parsers_only_accept_plain_integers():
    assert parse_positive_int(" 42 ", "km") == 42
    assert parse_optional_int("²") is None
    assert parse_optional_int(7) == 7
    with pytest.raises(ValidationError):
        parse_positive_int("²⁰²⁴", "anio")
    with pytest.raises(ValidationError):
        parse_decimal("NaN", "monto")
    with pytest.raises(ValidationError):
        parse_decimal("1e40", "monto")
    assert clean_text(None) == ""
    assert clean_text(12) == "12"
