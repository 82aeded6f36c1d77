from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from motorent.core.models import User
from motorent.core.utils import clean_text, request_payload

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials() -> tuple[str, str]:
    data = request_payload()
    email = clean_text(data.get("email")).lower()
    password = str(data.get("password") or "")
    return email, password


@auth_bp.post("/login")
def login_post():
    email, password = _credentials()
    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Credenciales invalidas"}), 401
    login_user(user)
    return jsonify({"data": {"id": user.id, "email": user.email, "role": user.role.value}})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"data": {"ok": True}})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        {
            "data": {
                "id": current_user.id,
                "email": current_user.email,
                "full_name": current_user.full_name,
                "role": current_user.role.value,
            }
        }
    )
