"""HTTP transport for the Kubernetes REST API: plain GETs and streamed watches."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

import aiohttp

from pyconfwatch._constants import AUTH_FAILURE_STATUSES, USER_AGENT
from pyconfwatch._kube import KubeBootstrap
from pyconfwatch._redact import redact_for_log
from pyconfwatch.exceptions import SourceAuthenticationError, SourceConnectivityError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the ConfigMap driver.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`KubeTransport`) concrete.
    """

    async def get_json(self, path: str, params: Mapping[str, str]) -> dict[str, Any]:
        ...

    def watch(self, path: str, params: Mapping[str, str]) -> AsyncIterator[dict[str, Any]]:
        ...


def _raise_for_status(status: int, text: str, endpoint: str) -> None:
    if status == 200:
        return
    if status in AUTH_FAILURE_STATUSES:
        raise SourceAuthenticationError(
            f"HTTP {status} from {endpoint}: {text[:200]}",
            status_code=status,
            endpoint=endpoint,
        )
    raise SourceConnectivityError(
        f"HTTP {status} from {endpoint}: {text[:200]}",
        status_code=status,
        endpoint=endpoint,
    )


class KubeTransport:
    """Authenticated requests against one API server."""

    def __init__(
        self,
        bootstrap: KubeBootstrap,
        http_session: aiohttp.ClientSession,
        *,
        request_timeout: float = 30.0,
    ) -> None:
        self._bootstrap = bootstrap
        self._http = http_session
        self._request_timeout = request_timeout
        self._ssl = bootstrap.ssl_context()

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        token = self._bootstrap.bearer_token()
        if token:
            headers["authorization"] = f"Bearer {token}"
        return headers

    async def get_json(self, path: str, params: Mapping[str, str]) -> dict[str, Any]:
        url = f"{self._bootstrap.server}{path}"
        _logger.debug("GET %s params=%s", url, dict(params))
        try:
            async with self._http.get(
                url,
                params=dict(params),
                headers=self._headers(),
                ssl=self._ssl,
                timeout=aiohttp.ClientTimeout(total=self._request_timeout),
            ) as resp:
                text = await resp.text()
                _raise_for_status(resp.status, text, path)
        except SourceConnectivityError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SourceConnectivityError(f"Request to {path} failed: {exc!r}", endpoint=path) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SourceConnectivityError(f"Invalid JSON from {path}: {text[:200]}", endpoint=path) from exc
        if not isinstance(body, dict):
            raise SourceConnectivityError(f"Unexpected response shape from {path}", endpoint=path)
        return body

    async def watch(self, path: str, params: Mapping[str, str]) -> AsyncIterator[dict[str, Any]]:
        """Yield one decoded JSON frame per line of a watch response.

        Returns normally when the server closes the stream (watch timeout).
        """
        url = f"{self._bootstrap.server}{path}"
        server_timeout = float(params.get("timeoutSeconds", 0) or 0)
        # No total timeout; a silent connection is dropped after the
        # server-side timeout plus slack.
        timeout = aiohttp.ClientTimeout(
            total=None,
            connect=self._request_timeout,
            sock_read=server_timeout + self._request_timeout if server_timeout else None,
        )
        _logger.debug("WATCH %s params=%s", url, dict(params))
        try:
            async with self._http.get(
                url,
                params=dict(params),
                headers=self._headers(),
                ssl=self._ssl,
                timeout=timeout,
            ) as resp:
                if resp.status != 200:
                    _raise_for_status(resp.status, await resp.text(), path)
                buffer = b""
                async for chunk in resp.content.iter_any():
                    buffer += chunk
                    while b"\n" in buffer:
                        line, buffer = buffer.split(b"\n", 1)
                        frame = self._decode_frame(line, path)
                        if frame is not None:
                            yield frame
                frame = self._decode_frame(buffer, path)
                if frame is not None:
                    yield frame
        except SourceConnectivityError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SourceConnectivityError(f"Watch on {path} failed: {exc!r}", endpoint=path) from exc

    @staticmethod
    def _decode_frame(line: bytes, path: str) -> dict[str, Any] | None:
        text = line.strip()
        if not text:
            return None
        try:
            frame = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SourceConnectivityError(f"Invalid watch frame from {path}: {text[:200]!r}", endpoint=path) from exc
        if not isinstance(frame, dict):
            raise SourceConnectivityError(f"Unexpected watch frame shape from {path}", endpoint=path)
        _logger.debug("Watch frame %s", redact_for_log(frame, max_string=128))
        return frame
