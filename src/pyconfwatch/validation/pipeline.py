"""Per-file validation pipeline: parse, validate every item, check identities."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Generic, TypeVar

from pyconfwatch.exceptions import ConfigValidationError, IdentityError
from pyconfwatch.validation.parse import parse_documents
from pyconfwatch.validation.schema import SchemaValidator

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ValidationPipeline(Generic[T]):
    """All-or-nothing validation of a config file.

    ``validate`` returns the complete ordered item list or raises a single
    :class:`ConfigValidationError` for the file. There is no partial
    acceptance.
    """

    def __init__(
        self,
        schema: Mapping[str, Any] | SchemaValidator,
        identity: Callable[[T], str] | None = None,
    ) -> None:
        self._validator = schema if isinstance(schema, SchemaValidator) else SchemaValidator(schema)
        self._identity = identity

    def validate(self, filename: str, content: str) -> list[T]:
        documents = parse_documents(filename, content)

        for index, document in enumerate(documents):
            errors = self._validator.errors(document)
            if errors:
                for error in errors:
                    _logger.debug("Config file %s document %d: %s", filename, index, error)
                raise ConfigValidationError(
                    f"Config file {filename}: document {index} has {len(errors)} schema error(s)",
                    filename=filename,
                    errors=errors,
                )

        items: list[T] = documents
        if self._identity is not None:
            self._check_identities(filename, items)
        return items

    def _check_identities(self, filename: str, items: list[T]) -> None:
        assert self._identity is not None  # noqa: S101
        for index, item in enumerate(items):
            try:
                item_id = self._identity(item)
            except Exception as exc:
                raise IdentityError(
                    f"Config file {filename}: cannot derive identity of document {index}",
                    filename=filename,
                    errors=[f"{type(exc).__name__}: {exc}"],
                ) from exc
            if not isinstance(item_id, str) or not item_id:
                raise IdentityError(
                    f"Config file {filename}: document {index} has an empty or non-string identity",
                    filename=filename,
                    errors=[repr(item_id)],
                )
