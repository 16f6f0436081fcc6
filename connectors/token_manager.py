"""
Token manager — get / store per-connector OAuth tokens in the shared store.

Each connector has exactly one record, ``oauth_token:{connector_id}``,
holding the whole OAuthToken (access token and refresh token together) so a
replacement is a single overwrite.  When the token carries a refresh token the
record outlives the access token; reads check ``expires_at`` themselves.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from connectors.encryption import TokenCipher
from connectors.models import OAuthToken
from connectors.store import SharedStore

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN = 3600


def _token_key(connector_id: str) -> str:
    return f"oauth_token:{connector_id}"


def token_from_response(
    payload: Dict[str, Any],
    *,
    now: Optional[float] = None,
    default_expires_in: int = DEFAULT_EXPIRES_IN,
) -> OAuthToken:
    """
    Build an OAuthToken from a token-endpoint JSON body.

    ``default_expires_in`` applies only when ``expires_in`` is absent.
    Raises KeyError if ``access_token`` is absent.
    """
    now = time.time() if now is None else now
    expires_in = payload.get("expires_in")
    if expires_in is None:
        expires_in = default_expires_in
    return OAuthToken(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        expires_at=now + float(expires_in),
        token_type=payload.get("token_type") or "Bearer",
        scope=payload.get("scope"),
    )


class TokenCache:
    """Read / replace the cached OAuthToken for a connector."""

    def __init__(
        self,
        store: SharedStore,
        cipher: Optional[TokenCipher] = None,
        refresh_ttl_seconds: int = 2592000,
    ) -> None:
        self._store = store
        self._cipher = cipher or TokenCipher(None)
        self._refresh_ttl = refresh_ttl_seconds

    async def get(self, connector_id: str) -> Optional[OAuthToken]:
        """Return the cached token, or None if absent or ``now >= expires_at``."""
        token = await self._load(connector_id)
        if token is None:
            return None
        if token.is_expired():
            logger.debug("Cached OAuth token for %s is expired", connector_id)
            return None
        return token

    async def get_refresh_token(self, connector_id: str) -> Optional[str]:
        """Refresh token of the current record, even if its access token expired."""
        token = await self._load(connector_id)
        return token.refresh_token if token is not None else None

    async def save(self, connector_id: str, token: OAuthToken) -> None:
        """
        Replace the cached token in one write (never a merge).

        A token without a refresh token drops any previous one; carrying an
        old refresh token forward is the caller's decision.
        """
        ttl = max(math.ceil(token.expires_at - time.time()), 1)
        if token.refresh_token:
            ttl = max(ttl, self._refresh_ttl)
        await self._store.set_with_expiry(
            _token_key(connector_id), self._cipher.encrypt(token.model_dump_json()), ttl
        )
        logger.info("Cached OAuth token for %s (ttl=%ds)", connector_id, ttl)

    async def clear(self, connector_id: str) -> None:
        await self._store.delete(_token_key(connector_id))

    async def _load(self, connector_id: str) -> Optional[OAuthToken]:
        raw = await self._store.get(_token_key(connector_id))
        if raw is None:
            return None
        text = self._cipher.decrypt(raw)
        if text is None:
            return None
        try:
            return OAuthToken.model_validate(json.loads(text))
        except (ValueError, ValidationError):
            logger.warning("Discarding malformed cached token for %s", connector_id)
            return None
