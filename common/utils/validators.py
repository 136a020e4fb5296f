from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ..services.errors import ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model_cls: Type[ModelT], payload: Optional[Any]) -> ModelT:
    """Validate a request body, surfacing the first problem as a ValidationError."""
    try:
        return model_cls.model_validate(payload or {})
    except SchemaError as exc:
        raise ValidationError(_first_message(exc)) from exc


def _first_message(exc: SchemaError) -> str:
    errors = exc.errors()
    if not errors:
        return "Data tidak valid"
    first = errors[0]
    ctx_error = (first.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))

