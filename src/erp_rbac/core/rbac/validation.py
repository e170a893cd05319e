"""Translate pydantic validation failures into RBAC errors."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from erp_rbac.core.rbac.errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


def describe_errors(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "payload"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def coerce_record(model: type[ModelT], payload: ModelT | Mapping[str, Any]) -> ModelT:
    """Return ``payload`` as ``model``, raising ``ValidationError`` when malformed."""
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(describe_errors(exc)) from exc
    except TypeError as exc:
        raise ValidationError(f"Expected a mapping for {model.__name__}") from exc


__all__ = ["coerce_record", "describe_errors"]
