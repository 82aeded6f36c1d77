from flask import Blueprint

fleet_bp = Blueprint("fleet", __name__, url_prefix="/api/motos")

from motorent.fleet import routes  # noqa: E402,F401
