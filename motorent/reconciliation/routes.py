from __future__ import annotations

from flask import jsonify, request
from flask_login import current_user, login_required

from motorent.core.models import Role
from motorent.core.permissions import require_permission
from motorent.core.utils import request_payload
from motorent.events import operations as ops
from motorent.reconciliation import reconciliation_bp
from motorent.reconciliation.services import (
    MatchFailure,
    MatchOutcome,
    accept_high_confidence,
    accept_match,
    batch_by_id,
    complete_batch,
    create_batch,
    list_batches,
    manual_match,
    propose_matches,
    reject_match,
)

FAILURE_STATUS = {
    MatchFailure.NOT_FOUND: 404,
    MatchFailure.ALREADY_RESOLVED: 422,
    MatchFailure.BATCH_MISMATCH: 422,
    MatchFailure.BATCH_CLOSED: 422,
    MatchFailure.INVALID_REASON: 400,
}


def _outcome_response(outcome: MatchOutcome):
    if outcome.ok:
        return jsonify({"data": outcome.match.to_dict()})
    body = {"error": outcome.message, "reason": outcome.failure.value}
    return jsonify(body), FAILURE_STATUS[outcome.failure]


@reconciliation_bp.get("")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_VIEW, "view", [Role.CONTADOR, Role.CONSULTA])
def index():
    cuenta_id = request.args.get("cuenta_bancaria_id", type=int)
    return jsonify({"data": [batch.to_dict() for batch in list_batches(cuenta_id)]})


@reconciliation_bp.post("")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "create", [Role.CONTADOR])
def create():
    batch, proposal = create_batch(request_payload(), current_user.id)
    return jsonify({"data": batch.to_dict(), "proposal": proposal.to_dict()}), 201


@reconciliation_bp.get("/<int:batch_id>")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_VIEW, "view", [Role.CONTADOR, Role.CONSULTA])
def detail(batch_id: int):
    batch = batch_by_id(batch_id)
    data = batch.to_dict()
    data["matches"] = [match.to_dict() for match in batch.matches]
    return jsonify({"data": data})


@reconciliation_bp.post("/<int:batch_id>/proponer")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "execute", [Role.CONTADOR])
def propose(batch_id: int):
    return jsonify({"data": propose_matches(batch_id, current_user.id).to_dict()})


@reconciliation_bp.post("/<int:batch_id>/matches/<int:match_id>/aceptar")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "execute", [Role.CONTADOR])
def accept(batch_id: int, match_id: int):
    return _outcome_response(accept_match(batch_id, match_id, current_user.id))


@reconciliation_bp.post("/<int:batch_id>/matches/<int:match_id>/rechazar")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "execute", [Role.CONTADOR])
def reject(batch_id: int, match_id: int):
    reason = request_payload().get("motivo")
    return _outcome_response(reject_match(batch_id, match_id, reason, current_user.id))


@reconciliation_bp.post("/<int:batch_id>/aprobar-exactos")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "approve", [Role.CONTADOR])
def accept_exact(batch_id: int):
    accepted = accept_high_confidence(batch_id, current_user.id)
    return jsonify({"data": [match.to_dict() for match in accepted], "aceptados": len(accepted)})


@reconciliation_bp.post("/<int:batch_id>/match-manual")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_MATCH, "execute", [Role.CONTADOR])
def manual(batch_id: int):
    match = manual_match(batch_id, request_payload(), current_user.id)
    return jsonify({"data": match.to_dict()}), 201


@reconciliation_bp.post("/<int:batch_id>/completar")
@login_required
@require_permission(ops.FINANCE_BANK_RECONCILIATION_APPROVE, "approve", [Role.CONTADOR])
def complete(batch_id: int):
    batch = complete_batch(batch_id, current_user.id)
    return jsonify({"data": batch.to_dict()})
