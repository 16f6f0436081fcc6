"""
Dispatcher — issues exactly one HTTP attempt and classifies its outcome.

Header precedence (later wins):
    base headers < connector default_headers < auth headers < extra headers
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional

import httpx

from connectors.errors import NetworkError, UpstreamError
from connectors.events import EventSink, LoggingEventSink, safe_emit
from connectors.models import ConnectorConfig, ConnectorEvent, RawResponse

logger = logging.getLogger(__name__)

_DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "name resolution")


def build_url(base_url: str, path: str) -> str:
    if not path:
        return base_url
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def _classify_transport_error(exc: httpx.TransportError) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return "timeout"
    if isinstance(exc, httpx.ConnectError):
        text = str(exc).lower()
        if any(marker in text for marker in _DNS_MARKERS):
            return "dns"
        return "connection"
    return "network"


def _parse_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    if "json" in resp.headers.get("content-type", ""):
        try:
            return resp.json()
        except ValueError:
            return resp.text
    return resp.text


class Dispatcher:
    """Stateless per call; one instance can serve any number of concurrent requests."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        event_sink: Optional[EventSink] = None,
        *,
        default_timeout_ms: int = 30000,
        user_agent: str = "DevSync-Connector/1.0",
    ) -> None:
        self._client = client
        self._sink = event_sink or LoggingEventSink()
        self._default_timeout_ms = default_timeout_ms
        self._base_headers = {
            "Content-Type": "application/json",
            "User-Agent": user_agent,
        }

    def build_headers(
        self,
        config: ConnectorConfig,
        auth_headers: Optional[Mapping[str, str]] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        headers = dict(self._base_headers)
        headers.update(config.default_headers)
        headers.update(auth_headers or {})
        headers.update(extra_headers or {})
        return headers

    async def dispatch(
        self,
        config: ConnectorConfig,
        method: str,
        path: str,
        body: Any = None,
        *,
        auth_headers: Optional[Mapping[str, str]] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
        attempt: int = 1,
    ) -> RawResponse:
        """
        Perform one attempt.

        Raises
        ------
        NetworkError  – no response (kind: timeout | connection | dns | network)
        UpstreamError – any non-2xx response
        """
        method = method.upper()
        url = build_url(config.base_url, path)
        headers = self.build_headers(config, auth_headers, extra_headers)
        timeout = (config.timeout_ms or self._default_timeout_ms) / 1000

        kwargs: Dict[str, Any] = {"headers": headers, "timeout": timeout}
        if isinstance(body, (bytes, str)):
            kwargs["content"] = body
        elif body is not None:
            kwargs["json"] = body

        event = ConnectorEvent(connector_id=config.id, method=method, path=path, attempt=attempt)
        start = time.perf_counter()
        try:
            resp = await asyncio.wait_for(
                self._client.request(method, url, **kwargs), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            event.error_kind = "timeout"
            raise NetworkError("timeout", f"no response within {timeout:.1f}s", config.id) from exc
        except httpx.TransportError as exc:
            event.error_kind = _classify_transport_error(exc)
            raise NetworkError(event.error_kind, str(exc) or type(exc).__name__, config.id) from exc
        finally:
            event.duration_ms = int((time.perf_counter() - start) * 1000)
            if event.error_kind is not None:
                safe_emit(self._sink, event)

        event.status = resp.status_code
        safe_emit(self._sink, event)

        result = RawResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            body=_parse_body(resp),
        )
        if not 200 <= resp.status_code < 300:
            raise UpstreamError(
                resp.status_code, config.id, body=result.body, headers=result.headers
            )
        return result
