"""
Connector error taxonomy.

Every failure below the retry executor is classified exactly once, when the
exception is built: ``retryable`` tells the executor whether another attempt
is allowed.  Nothing else in the pipeline re-inspects status codes.
"""

from __future__ import annotations

from typing import Any, Optional

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class ConnectorError(Exception):
    """Base class for everything the connector layer raises."""

    retryable: bool = False

    def __init__(self, message: str, connector_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.connector_id = connector_id


class InvalidConfigError(ConnectorError):
    """Registration input is missing a required field or fails validation."""


class ConnectorNotFoundError(ConnectorError):
    def __init__(self, connector_id: str):
        super().__init__(f"Connector '{connector_id}' not found", connector_id)


class AuthenticationError(ConnectorError):
    """Missing, invalid or expired credentials.  Caller must re-authenticate."""


class MissingRefreshTokenError(AuthenticationError):
    def __init__(self, connector_id: str):
        super().__init__(
            f"No refresh token available for connector '{connector_id}'",
            connector_id,
        )


class UnsupportedAuthError(ConnectorError, NotImplementedError):
    def __init__(self, auth_type: str, connector_id: Optional[str] = None):
        super().__init__(f"Auth type '{auth_type}' is not supported", connector_id)
        self.auth_type = auth_type


class RateLimitExceededError(ConnectorError):
    def __init__(self, connector_id: str, limit: int, window_seconds: int, count: int):
        super().__init__(
            f"Rate limit exceeded for connector '{connector_id}' "
            f"({count}/{limit} in {window_seconds}s window)",
            connector_id,
        )
        self.limit = limit
        self.window_seconds = window_seconds
        self.count = count


class NetworkError(ConnectorError):
    """No response was received (connection, DNS or timeout failure)."""

    retryable = True

    def __init__(self, kind: str, message: str, connector_id: Optional[str] = None):
        super().__init__(f"{kind}: {message}", connector_id)
        self.kind = kind


class UpstreamError(ConnectorError):
    """The remote service answered with a non-2xx status."""

    def __init__(
        self,
        status: int,
        connector_id: Optional[str] = None,
        body: Any = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(f"Upstream returned HTTP {status}", connector_id)
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.retryable = status in RETRYABLE_STATUSES


class RetryExhaustedError(ConnectorError):
    def __init__(self, last_error: ConnectorError, retry_count: int):
        super().__init__(
            f"All {retry_count + 1} attempts failed; last error: {last_error.message}",
            last_error.connector_id,
        )
        self.last_error = last_error
        self.retry_count = retry_count
