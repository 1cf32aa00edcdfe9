"""Multi-document YAML parsing."""

from __future__ import annotations

from typing import Any

import yaml

from pyconfwatch.exceptions import ConfigValidationError


def parse_documents(filename: str, content: str) -> list[Any]:
    """Parse every YAML document in ``content``, in order.

    Blank content is a valid file with no items. JSON is accepted too since
    it is a subset of YAML.
    """
    if not content or not content.strip():
        return []
    try:
        return list(yaml.safe_load_all(content))
    except yaml.YAMLError as exc:
        raise ConfigValidationError(
            f"Config file {filename}: invalid YAML",
            filename=filename,
            errors=[str(exc)],
        ) from exc
