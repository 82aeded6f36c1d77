from flask import Blueprint

events_bp = Blueprint("events", __name__, url_prefix="/api/sistema/eventos")

from motorent.events import routes  # noqa: E402,F401
