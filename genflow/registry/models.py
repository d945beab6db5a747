"""Pydantic models describing step-input fields."""

from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FieldSpec(BaseModel):
    """Catalogue entry for one named step-input field.

    ``source`` names the key read from the job's input parameters. A field
    with a ``resolver`` computes its value from the whole step context
    instead, e.g. the owning user id or a result of an earlier step.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    source: Optional[str] = None
    default: Any = None
    resolver: Optional[Callable[[Any], Any]] = None
    description: str = ""
    category: str = "general"

    @field_validator("name")
    @classmethod
    def _ensure_name(cls, v: str) -> str:
        if not v or not v.isidentifier():
            raise ValueError("field name must be a non-empty identifier")
        return v
