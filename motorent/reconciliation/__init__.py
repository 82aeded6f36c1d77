from flask import Blueprint

reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/conciliacion")

from motorent.reconciliation import routes  # noqa: E402,F401
