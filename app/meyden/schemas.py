from __future__ import annotations

from typing import Any, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.meyden.security import is_valid_email

M = TypeVar("M", bound=BaseModel)


class CamelModel(BaseModel):
    """Request body schema: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def parse_body(model: type[M]) -> M:
    """Validate the JSON body against model; ValidationError maps to 400 in the error layer."""
    data: Any = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    return model.model_validate(data)


def check_email(value: str) -> str:
    value = value.strip().lower()
    if not is_valid_email(value):
        raise ValueError("Invalid email address")
    return value


def check_url(value: str | None) -> str | None:
    if value is None or value == "":
        return None
    if not value.startswith(("http://", "https://")):
        raise ValueError("Must be a valid URL")
    return value
