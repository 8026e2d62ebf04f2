from __future__ import annotations

from flask import request

from app.dms.errors import ValidationFailed
from app.dms.utils import parse_datetime


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    return data


def arg_datetime(name: str):
    return parse_datetime(request.args.get(name) or None)


def arg_limit(default: int = 200, maximum: int = 1000) -> int:
    raw = (request.args.get("limit") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValidationFailed("limit must be an integer.", field="limit") from e
    return max(1, min(value, maximum))
