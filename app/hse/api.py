"""
Small helpers shared by the JSON blueprints.
"""
from __future__ import annotations

from datetime import date
from typing import Any

from flask import current_app, g, request

from app.hse.errors import ValidationError
from app.hse.models import User
from app.hse.notifier import Notifier, notifier_from_config
from app.hse.storage import Storage, storage_from_config


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        # require_permission runs first, so this only trips on a wiring mistake.
        raise RuntimeError("No current user")
    return u


def json_body() -> dict[str, Any]:
    """Request payload as a dict: JSON body, or form fields for multipart uploads."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError("Request body is not valid JSON.")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object.")
        return data
    return request.form.to_dict()


def require_fields(data: dict[str, Any], *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, "", [])]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", fields=missing)


def as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer.", **{name: value})


def as_int_list(value: Any, name: str) -> list[int]:
    if isinstance(value, (str, int)):
        value = [value]
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list of user ids.")
    return [as_int(v, name) for v in value]


def as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def as_date(value: Any, name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date.", **{name: value})


def notifier() -> Notifier:
    n = current_app.extensions.get("hse_notifier")
    if n is None:
        n = notifier_from_config(current_app.config)
        current_app.extensions["hse_notifier"] = n
    return n


def document_storage() -> Storage:
    st = current_app.extensions.get("hse_storage")
    if st is None:
        st = storage_from_config(current_app.config)
        current_app.extensions["hse_storage"] = st
    return st
