from __future__ import annotations


class DomainError(ValueError):
    """Business-rule failure detected by a service.

    Route handlers never catch these: the app factory turns them into a JSON
    body with ``status_code``.
    """

    status_code = 422

    def __init__(self, message: str, **details: object) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, object]:
        body: dict[str, object] = {"error": self.message}
        body.update(self.details)
        return body


class ValidationError(DomainError):
    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    # Estado incompatible: transicion invalida, registro ya resuelto, periodo cerrado.
    status_code = 422
