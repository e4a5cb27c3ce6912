"""HTTP transport for the record store's REST API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import aiohttp

from deskdrop._constants import USER_AGENT
from deskdrop._redact import redact_for_log
from deskdrop.config import DeskdropConfig
from deskdrop.exceptions import DeskdropApiError, DeskdropTransportError

_logger = logging.getLogger(__name__)

QueryParams = Sequence[tuple[str, str]]


class Transport(Protocol):
    """Structural transport interface used by the collection layer.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: QueryParams = (),
        body: Mapping[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        ...


class RestTransport:
    """Sends PostgREST-style requests and decodes JSON replies."""

    def __init__(self, config: DeskdropConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self, prefer: str | None) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            "apikey": self._config.api_key,
            "authorization": f"Bearer {self._config.api_key}",
        }
        if prefer:
            headers["prefer"] = prefer
        return headers

    def _url(self, table: str) -> str:
        return f"{self._config.base_url.rstrip('/')}/rest/v1/{table}"

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: QueryParams = (),
        body: Mapping[str, Any] | None = None,
        prefer: str | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Empty bodies (``204 No Content``) decode to ``None``.

        Raises
        ------
        DeskdropApiError
            The store answered with an error object.
        DeskdropTransportError
            Network failure, timeout, unexpected status or invalid JSON.
        """
        url = self._url(table)
        endpoint = f"{method} /{table}"
        data = json.dumps(body, separators=(",", ":")) if body is not None else None

        _logger.debug(
            "%s %s params=%s body=%s",
            method,
            url,
            list(params),
            redact_for_log(body),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=list(params),
                data=data,
                headers=self._headers(prefer),
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except TimeoutError as exc:
            raise DeskdropTransportError(f"Request {endpoint} timed out", endpoint=endpoint) from exc
        except aiohttp.ClientError as exc:
            raise DeskdropTransportError(
                f"Request {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        decoded: Any = None
        if text.strip():
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise DeskdropTransportError(
                    f"Invalid JSON from {endpoint}: {text[:200]}",
                    status_code=status,
                    endpoint=endpoint,
                ) from exc

        if status >= 400:
            if isinstance(decoded, dict) and decoded.get("message"):
                raise DeskdropApiError(
                    str(decoded["message"]),
                    code=str(decoded.get("code") or ""),
                    status_code=status,
                    endpoint=endpoint,
                )
            raise DeskdropTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        _logger.debug("%s -> HTTP %s %s", endpoint, status, redact_for_log(decoded))
        return decoded
