from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation

from flask import request

from motorent.core.errors import ValidationError


def money(value: Decimal | str | float | int) -> str:
    # Formato es-AR: separador de miles "." y decimales ",".
    raw = f"{Decimal(value):,.2f}"
    return "$" + raw.replace(",", "_").replace(".", ",").replace("_", ".")


def clean_text(value: object) -> str:
    return str(value if value is not None else "").strip()


def parse_iso_date(value: str | None, field_name: str) -> date:
    raw = clean_text(value)
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError(f"Formato de fecha invalido para {field_name}") from exc


def parse_decimal(value: str | int | float | Decimal | None, field_name: str) -> Decimal:
    raw = clean_text(value).replace(",", ".")
    if not raw:
        raise ValidationError(f"Falta {field_name}")
    try:
        amount = Decimal(raw)
        if amount.is_finite():
            return amount.quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise ValidationError(f"Importe invalido en {field_name}") from exc
    raise ValidationError(f"Importe invalido en {field_name}")


def parse_int(value: str | int | None, field_name: str) -> int:
    try:
        return int(clean_text(value))
    except ValueError as exc:
        raise ValidationError(f"{field_name} debe ser un entero") from exc


def parse_positive_int(value: str | int | None, field_name: str) -> int:
    try:
        number = int(clean_text(value))
    except ValueError as exc:
        raise ValidationError(f"{field_name} debe ser un entero positivo") from exc
    if number <= 0:
        raise ValidationError(f"{field_name} debe ser un entero positivo")
    return number


def parse_optional_int(value: str | int | None) -> int | None:
    raw = clean_text(value)
    try:
        number = int(raw)
    except ValueError:
        return None
    return number if number >= 0 else None


def required_text(value: str | None, message: str, max_length: int | None = None) -> str:
    text = clean_text(value)
    if not text:
        raise ValidationError(message)
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{message} (maximo {max_length} caracteres)")
    return text


def request_payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError("El cuerpo debe ser un objeto JSON")
    return data
