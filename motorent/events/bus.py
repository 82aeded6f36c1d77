"""Registro de eventos de negocio y despacho a handlers.

Flujo: la ruta muta el estado -> ``emit`` persiste un ``BusinessEvent``
(append-only) -> los handlers cuyo patron coincide con la operacion se
ejecutan en orden de prioridad. Un handler que falla se revierte, se registra
en el log y en la fila ``EventDispatch``; el resto sigue ejecutandose.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar

from flask import Flask, current_app
from sqlalchemy import delete, select

from motorent.core.errors import ValidationError
from motorent.core.extensions import db
from motorent.core.models import BusinessEvent, EventDispatch, EventStatus, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")
EventHandler = Callable[[BusinessEvent], None]

SENSITIVE_KEYS = (
    "password",
    "cbu",
    "token",
    "apikey",
    "api_key",
    "secret",
    "clave",
)
REDACTED = "[REDACTED]"


@dataclass(frozen=True)
class HandlerSpec:
    name: str
    pattern: str
    priority: int
    handler: EventHandler

    def describe(self) -> dict[str, object]:
        return {"name": self.name, "priority": self.priority, "pattern": self.pattern}


@dataclass
class DispatchReport:
    handlers_run: int = 0
    handlers_ok: int = 0
    handlers_failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RetentionPolicy:
    days: int

    def __post_init__(self) -> None:
        if self.days < 1:
            raise ValidationError("La retencion debe ser de al menos 1 dia")

    def threshold(self, now: datetime | None = None) -> datetime:
        return (now or utcnow()) - timedelta(days=self.days)


def matches_pattern(pattern: str, operation_id: str) -> bool:
    if pattern == "*":
        return True
    if pattern.endswith(".*"):
        return operation_id.startswith(pattern[:-1])
    return pattern == operation_id


def to_payload(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "to_dict"):
        return to_payload(value.to_dict())
    if isinstance(value, dict):
        return {str(key): to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_payload(item) for item in value]
    return str(value)


def sanitize_payload(payload: Any) -> Any:
    if isinstance(payload, dict):
        cleaned: dict[str, Any] = {}
        for key, value in payload.items():
            lowered = key.lower()
            if any(sensitive in lowered for sensitive in SENSITIVE_KEYS):
                cleaned[key] = REDACTED
            else:
                cleaned[key] = sanitize_payload(value)
        return cleaned
    if isinstance(payload, list):
        return [sanitize_payload(item) for item in payload]
    return payload


def _entity_id_of(result: Any, fallback: str | int | None) -> str | int | None:
    if isinstance(result, dict) and "id" in result:
        return result["id"]
    result_id = getattr(result, "id", None)
    return result_id if result_id is not None else fallback


class EventBus:
    """Registro de handlers mas el ledger de eventos.

    Se construye una instancia por aplicacion (``init_app``); los tests pueden
    crear la suya sin tocar estado global.
    """

    def __init__(self, app: Flask | None = None) -> None:
        self._handlers: list[HandlerSpec] = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions["event_bus"] = self

    def register(self, name: str, pattern: str, handler: EventHandler, priority: int = 100) -> HandlerSpec:
        if any(spec.name == name for spec in self._handlers):
            raise ValueError(f"Handler duplicado: {name}")
        spec = HandlerSpec(name=name, pattern=pattern, priority=priority, handler=handler)
        self._handlers.append(spec)
        # sort estable: a igual prioridad se respeta el orden de registro
        self._handlers.sort(key=lambda item: item.priority)
        return spec

    def subscribe(self, name: str, pattern: str, priority: int = 100) -> Callable[[EventHandler], EventHandler]:
        def decorator(fn: EventHandler) -> EventHandler:
            self.register(name, pattern, fn, priority)
            return fn

        return decorator

    def handlers(self) -> list[dict[str, object]]:
        return [spec.describe() for spec in self._handlers]

    def matching(self, operation_id: str) -> list[HandlerSpec]:
        return [spec for spec in self._handlers if matches_pattern(spec.pattern, operation_id)]

    def emit(
        self,
        operation_id: str,
        entity_type: str,
        entity_id: str | int | None,
        payload: dict[str, Any] | None = None,
        actor_id: int | None = None,
        status: EventStatus = EventStatus.SUCCESS,
        error: str | None = None,
    ) -> BusinessEvent:
        event = BusinessEvent(
            operation_id=operation_id,
            entity_type=entity_type,
            entity_id="" if entity_id is None else str(entity_id),
            payload=sanitize_payload(to_payload(payload)) if payload is not None else None,
            user_id=actor_id,
            status=status,
            error=error,
        )
        db.session.add(event)
        db.session.commit()
        logger.info(
            "Evento %s %s:%s status=%s",
            operation_id,
            entity_type,
            event.entity_id,
            status.value,
        )
        # Los eventos FAILED quedan solo como auditoria.
        if status == EventStatus.SUCCESS:
            self._dispatch(event)
        return event

    def _dispatch(self, event: BusinessEvent) -> DispatchReport:
        report = DispatchReport()
        operation_id = event.operation_id
        event_id = event.id
        started = time.monotonic()
        for spec in self.matching(operation_id):
            report.handlers_run += 1
            try:
                spec.handler(event)
                db.session.commit()
                report.handlers_ok += 1
            except Exception as exc:
                db.session.rollback()
                report.handlers_failed += 1
                report.errors.append(f"{spec.name}: {exc}")
                logger.exception("Handler %s fallo para %s", spec.name, operation_id)

        if report.handlers_run:
            db.session.add(
                EventDispatch(
                    business_event_id=event_id,
                    handlers_run=report.handlers_run,
                    handlers_ok=report.handlers_ok,
                    handlers_failed=report.handlers_failed,
                    duration_ms=int((time.monotonic() - started) * 1000),
                    level="ERROR" if report.handlers_failed else "INFO",
                    error="; ".join(report.errors) or None,
                )
            )
            db.session.commit()
        return report

    def with_event(
        self,
        operation_id: str,
        entity_type: str,
        fn: Callable[[], T],
        actor_id: int | None = None,
        extra_payload: dict[str, Any] | None = None,
        entity_id: str | int | None = None,
    ) -> T:
        """Ejecuta ``fn``, confirma la transaccion y emite un unico evento.

        Si ``fn`` (o el commit) falla, se revierte la sesion, se registra el
        evento como FAILED con el mensaje del error y se relanza la excepcion
        original.
        """
        payload = dict(extra_payload or {})
        try:
            result = fn()
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            self.emit(
                operation_id,
                entity_type,
                entity_id,
                payload,
                actor_id,
                status=EventStatus.FAILED,
                error=str(exc) or exc.__class__.__name__,
            )
            raise
        payload["result"] = to_payload(result)
        self.emit(operation_id, entity_type, _entity_id_of(result, entity_id), payload, actor_id)
        return result

    def cleanup(self, policy: RetentionPolicy, now: datetime | None = None) -> int:
        threshold = policy.threshold(now)
        expired = select(BusinessEvent.id).where(BusinessEvent.created_at < threshold)
        db.session.execute(
            delete(EventDispatch)
            .where(EventDispatch.business_event_id.in_(expired))
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(
            delete(BusinessEvent)
            .where(BusinessEvent.created_at < threshold)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        deleted = result.rowcount or 0
        logger.info("Limpieza de eventos: %s borrados (anteriores a %s)", deleted, threshold.isoformat())
        return deleted


def event_bus() -> EventBus:
    return current_app.extensions["event_bus"]
