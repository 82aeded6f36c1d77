from __future__ import annotations

from collections.abc import Iterable
from functools import wraps

from flask import abort, g
from flask_login import current_user

from motorent.core.models import PermissionGrant, Role, User

CAPABILITIES = ("view", "create", "execute", "approve")


def _user_grants(user_id: int) -> dict[str, set[str]]:
    # Cache por request: se descarta con `g` al terminar.
    cache: dict[int, dict[str, set[str]]] = g.setdefault("permission_cache", {})
    if user_id in cache:
        return cache[user_id]

    grants: dict[str, set[str]] = {}
    for grant in PermissionGrant.query.filter_by(user_id=user_id).all():
        allowed = grants.setdefault(grant.operation_id, set())
        for capability in CAPABILITIES:
            if getattr(grant, f"can_{capability}"):
                allowed.add(capability)
    cache[user_id] = grants
    return grants


def grants_allow(grants: dict[str, set[str]], operation_id: str, capability: str) -> bool:
    if capability in grants.get(operation_id, set()):
        return True
    parts = operation_id.split(".")
    for idx in range(len(parts) - 1, 0, -1):
        wildcard = ".".join(parts[:idx]) + ".*"
        if capability in grants.get(wildcard, set()):
            return True
    return False


def has_permission(
    user: User,
    operation_id: str,
    capability: str,
    fallback_roles: Iterable[Role | str] = (),
) -> bool:
    if capability not in CAPABILITIES:
        raise ValueError(f"Permiso desconocido: {capability}")
    if user.role == Role.ADMIN:
        return True
    if grants_allow(_user_grants(user.id), operation_id, capability):
        return True
    return user.role.value in {Role(role).value for role in fallback_roles}


def require_permission(operation_id: str, capability: str, fallback_roles: Iterable[Role | str] = ()):
    roles = tuple(fallback_roles)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if not has_permission(current_user, operation_id, capability, roles):
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
