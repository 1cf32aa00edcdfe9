"""Helpers for safe debug logging.

Watch frames and kubeconfig fragments can carry credentials, and ConfigMap
payloads hold whole config files. Credentials are masked, payload maps keep
their filenames but lose their contents, and long strings are truncated
before anything reaches a DEBUG log.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "password",
        "secret",
        "token",
        "tokenfile",
        "client-key-data",
        "client-certificate-data",
    }
)

# ConfigMap file maps: filename -> content
_PAYLOAD_KEYS: frozenset[str] = frozenset({"data", "binarydata"})

_MAX_DEPTH = 20


def _summarize_payload(value: Any) -> Any:
    if not isinstance(value, Mapping):
        return "<redacted>"
    return {
        str(name): f"<{len(content)} chars>" if isinstance(content, str) else "<redacted>"
        for name, content in value.items()
    }


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"

    if value is None or isinstance(value, (bool, int, float)):
        return value

    if isinstance(value, str):
        if len(value) <= max_string:
            return value
        return f"{value[:max_string]}…<truncated {len(value) - max_string} chars>"

    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _CREDENTIAL_KEYS:
                redacted[key] = "<redacted>"
            elif lowered in _PAYLOAD_KEYS:
                redacted[key] = _summarize_payload(v)
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
