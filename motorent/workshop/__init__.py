from flask import Blueprint

workshop_bp = Blueprint("workshop", __name__, url_prefix="/api/mantenimientos/ordenes")

from motorent.workshop import routes  # noqa: E402,F401
