from __future__ import annotations

from flask import current_app, jsonify, request
from flask_login import login_required

from motorent.core.errors import ValidationError
from motorent.core.models import BusinessEvent, EventStatus, Role
from motorent.core.permissions import require_permission
from motorent.core.utils import clean_text, parse_int, parse_optional_int, request_payload
from motorent.events import events_bp
from motorent.events import operations as ops
from motorent.events.bus import RetentionPolicy, event_bus

MAX_EVENTS_PAGE = 500


@events_bp.get("")
@login_required
@require_permission(ops.SYSTEM_EVENTS_VIEW, "view", [Role.CONTADOR])
def list_events():
    query = BusinessEvent.query.order_by(BusinessEvent.created_at.desc(), BusinessEvent.id.desc())
    operation_id = clean_text(request.args.get("operation_id"))
    if operation_id:
        if operation_id.endswith(".*"):
            query = query.filter(BusinessEvent.operation_id.like(f"{operation_id[:-1]}%"))
        else:
            query = query.filter(BusinessEvent.operation_id == operation_id)
    status = clean_text(request.args.get("status")).upper()
    if status:
        try:
            query = query.filter(BusinessEvent.status == EventStatus(status))
        except ValueError as exc:
            raise ValidationError("Estado de evento invalido") from exc
    entity_type = clean_text(request.args.get("entity_type"))
    if entity_type:
        query = query.filter(BusinessEvent.entity_type == entity_type)
    limit = min(parse_optional_int(request.args.get("limit")) or 100, MAX_EVENTS_PAGE)
    return jsonify({"data": [event.to_dict() for event in query.limit(limit).all()]})


@events_bp.get("/handlers")
@login_required
@require_permission(ops.SYSTEM_EVENTS_VIEW, "view", [Role.CONTADOR])
def list_handlers():
    return jsonify({"data": event_bus().handlers()})


@events_bp.post("/limpieza")
@login_required
@require_permission(ops.SYSTEM_EVENTS_CLEANUP, "execute")
def cleanup_events():
    raw_days = request_payload().get("days")
    if raw_days is None or raw_days == "":
        days = current_app.config["EVENT_RETENTION_DAYS"]
    else:
        days = parse_int(raw_days, "days")
    deleted = event_bus().cleanup(RetentionPolicy(days=days))
    return jsonify({"data": {"deleted": deleted, "retention_days": days}})
