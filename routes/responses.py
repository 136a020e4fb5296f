"""Response envelope shared by the API blueprints."""

from __future__ import annotations

from functools import wraps
from typing import Any, Optional

from flask import jsonify

from common.services.errors import OrderError
from common.services.logging import log_event


def ok(data: Any = None, message: Optional[str] = None, status: int = 200, success: bool = True):
    body = {"success": success, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def fail(message: str, status: int = 400):
    return jsonify({"success": False, "message": message}), status


def service_errors(view):
    """Translate service exceptions into the JSON envelope."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        try:
            return view(*args, **kwargs)
        except OrderError as exc:
            return fail(str(exc), exc.status_code)
        except Exception as exc:
            log_event("error", "api.unhandled", view=view.__name__, error=str(exc))
            return fail(str(exc), 500)

    return wrapper
