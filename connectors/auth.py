"""
Auth strategy resolver — turns a connector's auth_type + credentials into
request headers.

Pure with respect to the config: credentials are passed in explicitly, so a
per-call override never touches the registry's copy.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Mapping, Optional

from connectors.errors import AuthenticationError, UnsupportedAuthError
from connectors.models import AuthType, ConnectorConfig
from connectors.token_manager import TokenCache

logger = logging.getLogger(__name__)


def _basic(username: str, password: str) -> str:
    raw = f"{username}:{password}".encode()
    return "Basic " + base64.b64encode(raw).decode()


class AuthResolver:
    """Resolve authentication headers for one request."""

    def __init__(self, token_cache: TokenCache) -> None:
        self._tokens = token_cache

    async def resolve(
        self,
        config: ConnectorConfig,
        credentials: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, str]:
        """
        Return the headers to add for ``config.auth_type``.

        ``credentials`` defaults to ``config.credentials``.  Incomplete static
        credentials are ignored rather than fabricated.

        Raises
        ------
        AuthenticationError   – OAuth2 token missing or expired
        UnsupportedAuthError  – OAuth1
        """
        creds = config.credentials if credentials is None else credentials
        auth_type = config.auth_type

        if auth_type == AuthType.NONE:
            return {}

        if auth_type == AuthType.API_KEY:
            api_key = creds.get("api_key")
            return {"X-API-Key": str(api_key)} if api_key else {}

        if auth_type == AuthType.BASIC:
            username, password = creds.get("username"), creds.get("password")
            if not username or not password:
                logger.debug("Basic auth for %s skipped: incomplete credentials", config.id)
                return {}
            return {"Authorization": _basic(str(username), str(password))}

        if auth_type == AuthType.BEARER:
            token = creds.get("token")
            return {"Authorization": f"Bearer {token}"} if token else {}

        if auth_type == AuthType.OAUTH2:
            oauth_token = await self._tokens.get(config.id)
            if oauth_token is None:
                raise AuthenticationError(
                    f"No valid OAuth2 token for connector '{config.id}'; "
                    "complete the authorization flow or refresh the token",
                    config.id,
                )
            return {"Authorization": f"Bearer {oauth_token.access_token}"}

        if auth_type == AuthType.OAUTH1:
            raise UnsupportedAuthError(auth_type.value, config.id)

        raise UnsupportedAuthError(str(auth_type), config.id)
