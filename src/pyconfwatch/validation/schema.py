"""JSON-schema validation of individual config items."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from jsonschema import Draft7Validator, validators
from jsonschema.exceptions import SchemaError

from pyconfwatch.exceptions import ConfWatchConfigError


def _format_path(path: Any) -> str:
    parts = [str(p) for p in path]
    return " -> ".join(parts) if parts else "root"


class SchemaValidator:
    """Validates items against one fixed schema.

    The validator class follows the schema's ``$schema`` keyword and falls
    back to Draft 7 when none is declared. The schema itself is checked
    once, up front.
    """

    def __init__(self, schema: Mapping[str, Any]) -> None:
        cls = validators.validator_for(schema, default=Draft7Validator)
        try:
            cls.check_schema(schema)
        except SchemaError as exc:
            raise ConfWatchConfigError(f"Invalid item schema: {exc.message}") from exc
        self._validator = cls(schema)

    def errors(self, item: Any) -> list[str]:
        """Return every error message for ``item``; empty when valid."""
        found = sorted(self._validator.iter_errors(item), key=lambda e: [str(p) for p in e.absolute_path])
        return [f"{_format_path(error.absolute_path)}: {error.message}" for error in found]

    def is_valid(self, item: Any) -> bool:
        return bool(self._validator.is_valid(item))
