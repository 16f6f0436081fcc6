"""
ConnectorRegistry — owns every ConnectorConfig known to the process.

Built once at startup (``ConnectorRegistry.with_builtins()``) and read-mostly
afterwards.  Callers only ever receive copies, so nothing outside the
registry can mutate a canonical config.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Union

from pydantic import ValidationError

from connectors.errors import ConnectorNotFoundError, InvalidConfigError
from connectors.models import (
    AuthType,
    BackoffStrategy,
    ConnectorConfig,
    ConnectorType,
    RateLimitPolicy,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

_DEFAULT_RETRY = RetryPolicy(max_attempts=3, base_delay_ms=1000, backoff=BackoffStrategy.EXPONENTIAL)


def _builtin(
    connector_id: str,
    name: str,
    ctype: ConnectorType,
    base_url: str,
    auth_type: AuthType,
    max_requests: int,
    window_seconds: int,
) -> ConnectorConfig:
    return ConnectorConfig(
        id=connector_id,
        display_name=name,
        type=ctype,
        base_url=base_url,
        auth_type=auth_type,
        credentials={},
        rate_limit=RateLimitPolicy(max_requests=max_requests, window_seconds=window_seconds),
        retry_policy=_DEFAULT_RETRY.model_copy(),
    )


# ── Built-in connectors (credentials are supplied per call) ──────────────

BUILTIN_CONNECTORS: List[ConnectorConfig] = [
    _builtin("slack", "Slack", ConnectorType.SLACK, "https://slack.com/api", AuthType.BEARER, 100, 60),
    _builtin("jira", "Jira", ConnectorType.JIRA, "https://your-domain.atlassian.net/rest/api/3", AuthType.BASIC, 100, 60),
    _builtin("github", "GitHub", ConnectorType.GITHUB, "https://api.github.com", AuthType.BEARER, 5000, 3600),
    _builtin("google", "Google", ConnectorType.GOOGLE, "https://www.googleapis.com", AuthType.OAUTH2, 100, 60),
    _builtin("stripe", "Stripe", ConnectorType.STRIPE, "https://api.stripe.com/v1", AuthType.BEARER, 100, 1),
    _builtin("twilio", "Twilio", ConnectorType.TWILIO, "https://api.twilio.com/2010-04-01", AuthType.BASIC, 100, 60),
    _builtin("sendgrid", "SendGrid", ConnectorType.SENDGRID, "https://api.sendgrid.com/v3", AuthType.BEARER, 600, 60),
]


class ConnectorRegistry:
    """In-process map of connector id → ConnectorConfig (insertion ordered)."""

    def __init__(self) -> None:
        self._connectors: Dict[str, ConnectorConfig] = {}

    @classmethod
    def with_builtins(cls) -> "ConnectorRegistry":
        registry = cls()
        for conn in BUILTIN_CONNECTORS:
            registry.register(conn)
        return registry

    def register(self, config: Union[ConnectorConfig, Dict[str, Any]]) -> None:
        """
        Insert or overwrite a connector by ``id``.

        Raises
        ------
        InvalidConfigError – ``id``, ``base_url`` or ``auth_type`` missing / invalid
        """
        if isinstance(config, ConnectorConfig):
            data = config.model_dump()
        else:
            data = dict(config)

        for field in ("id", "base_url", "auth_type"):
            if not data.get(field):
                raise InvalidConfigError(
                    f"Connector config is missing required field '{field}'",
                    data.get("id") or None,
                )
        try:
            stored = ConnectorConfig.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigError(
                f"Invalid connector config: {exc}", data.get("id")
            ) from exc

        if not stored.display_name:
            stored.display_name = stored.id
        self._connectors[stored.id] = stored
        logger.info(
            "Connector registered: %s (%s, auth=%s)",
            stored.display_name,
            stored.id,
            stored.auth_type.value,
        )

    def get(self, connector_id: str) -> ConnectorConfig:
        """Return a copy of the config, or raise ConnectorNotFoundError."""
        conn = self._connectors.get(connector_id)
        if conn is None:
            raise ConnectorNotFoundError(connector_id)
        return conn.model_copy(deep=True)

    def has(self, connector_id: str) -> bool:
        return connector_id in self._connectors

    def list(self) -> List[ConnectorConfig]:
        """Snapshot of all configs in registration order."""
        return [c.model_copy(deep=True) for c in self._connectors.values()]

    def __len__(self) -> int:
        return len(self._connectors)
