"""
OAuth2 authorization-code flow — authorize URL, code exchange, refresh.

These are explicit entry points; per-request auth resolution never triggers
them on its own.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from connectors.errors import AuthenticationError, MissingRefreshTokenError
from connectors.models import OAuthConfig, OAuthToken
from connectors.token_manager import DEFAULT_EXPIRES_IN, TokenCache, token_from_response

logger = logging.getLogger(__name__)


def build_authorization_url(oauth_config: OAuthConfig, state: Optional[str] = None) -> str:
    """Build the provider's authorize URL (deterministic parameter order)."""
    params = {
        "client_id": oauth_config.client_id,
        "redirect_uri": oauth_config.redirect_uri,
        "scope": " ".join(oauth_config.scope),
        "response_type": "code",
    }
    if state:
        params["state"] = state
    sep = "&" if "?" in oauth_config.auth_url else "?"
    return f"{oauth_config.auth_url}{sep}{urlencode(params)}"


class OAuthFlow:
    """Token-endpoint calls plus cache writes for one shared store."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_cache: TokenCache,
        default_expires_in: int = DEFAULT_EXPIRES_IN,
    ) -> None:
        self._client = client
        self._tokens = token_cache
        self._default_expires_in = default_expires_in

    async def exchange_code(
        self, connector_id: str, oauth_config: OAuthConfig, code: str
    ) -> OAuthToken:
        """Exchange an authorization code for a token and cache it."""
        payload = await self._post_token(
            connector_id,
            oauth_config.token_url,
            {
                "client_id": oauth_config.client_id,
                "client_secret": oauth_config.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": oauth_config.redirect_uri,
            },
        )
        token = self._to_token(connector_id, payload)
        await self._tokens.save(connector_id, token)
        logger.info("OAuth code exchanged for connector %s", connector_id)
        return token

    async def refresh(self, connector_id: str, oauth_config: OAuthConfig) -> OAuthToken:
        """
        Use the cached refresh token to obtain a new access token.

        Raises
        ------
        MissingRefreshTokenError – nothing to refresh with
        AuthenticationError      – token endpoint rejected the request
        """
        refresh_token = await self._tokens.get_refresh_token(connector_id)
        if not refresh_token:
            raise MissingRefreshTokenError(connector_id)

        payload = await self._post_token(
            connector_id,
            oauth_config.refresh_url or oauth_config.token_url,
            {
                "client_id": oauth_config.client_id,
                "client_secret": oauth_config.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        token = self._to_token(connector_id, payload)
        # Some providers rotate refresh tokens, others don't
        if not token.refresh_token:
            token = token.model_copy(update={"refresh_token": refresh_token})
        await self._tokens.save(connector_id, token)
        logger.info("Refreshed OAuth token for connector %s", connector_id)
        return token

    async def _post_token(
        self, connector_id: str, url: str, form: Dict[str, str]
    ) -> Dict[str, Any]:
        try:
            resp = await self._client.post(
                url, data=form, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            raise AuthenticationError(
                f"Token endpoint unreachable: {exc}", connector_id
            ) from exc

        if resp.status_code >= 400:
            logger.warning(
                "Token endpoint for %s returned HTTP %d", connector_id, resp.status_code
            )
            raise AuthenticationError(
                f"Token endpoint returned HTTP {resp.status_code}", connector_id
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthenticationError(
                "Token endpoint returned a non-JSON body", connector_id
            ) from exc

        if not isinstance(data, dict):
            raise AuthenticationError("Token endpoint returned an unexpected body", connector_id)
        if "error" in data:
            raise AuthenticationError(
                f"OAuth error: {data.get('error_description', data['error'])}",
                connector_id,
            )
        return data

    def _to_token(self, connector_id: str, payload: Dict[str, Any]) -> OAuthToken:
        try:
            return token_from_response(payload, default_expires_in=self._default_expires_in)
        except KeyError as exc:
            raise AuthenticationError(
                "Token endpoint response has no access_token", connector_id
            ) from exc
