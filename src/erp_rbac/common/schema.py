"""Shared Pydantic schema utilities."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base class for report and payload schemas."""

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
        extra="ignore",
    )

    def serializable_dict(
        self,
        *,
        exclude_none: bool = True,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Return a JSON-compatible dict representation."""

        return self.model_dump(mode="json", exclude_none=exclude_none, **kwargs)

    def json_text(self, *, indent: int | None = 2, exclude_none: bool = True) -> str:
        return self.model_dump_json(indent=indent, exclude_none=exclude_none)


__all__ = ["BaseSchema"]
