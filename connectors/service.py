"""
ApiConnectorService — the single entry point other services call.

Pipeline for one logical call:

    registry.get → resolve credentials → auth headers → rate limit (once)
        → execute_with_retry(dispatch) → ConnectorResponse

Each stage is a plain call on an injected collaborator; nothing is
registered as a hidden interceptor.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx

from config.settings import Settings
from connectors.auth import AuthResolver
from connectors.dispatcher import Dispatcher
from connectors.encryption import TokenCipher
from connectors.errors import ConnectorError
from connectors.events import EventSink, LoggingEventSink
from connectors.models import (
    ConnectorConfig,
    ConnectorResponse,
    OAuthConfig,
    OAuthToken,
    ResponseMetadata,
)
from connectors.oauth import OAuthFlow, build_authorization_url
from connectors.rate_limiter import RateLimiter
from connectors.registry import ConnectorRegistry
from connectors.retry import execute_with_retry
from connectors.secrets import CredentialsProvider, StaticCredentialsProvider
from connectors.store import InMemoryStore, SharedStore, build_store
from connectors.token_manager import TokenCache

logger = logging.getLogger(__name__)

Credentials = Mapping[str, Any]


class ApiConnectorService:
    def __init__(
        self,
        registry: ConnectorRegistry,
        store: SharedStore,
        client: httpx.AsyncClient,
        *,
        event_sink: Optional[EventSink] = None,
        credentials_provider: Optional[CredentialsProvider] = None,
        token_cache: Optional[TokenCache] = None,
        default_timeout_ms: int = 30000,
        user_agent: str = "DevSync-Connector/1.0",
        oauth_default_expires_in: int = 3600,
        twilio_account_sid: str = "",
        twilio_phone_number: str = "",
        sendgrid_default_from: str = "noreply@devsync.com",
    ) -> None:
        self.registry = registry
        self.store = store
        self._client = client
        self._credentials = credentials_provider
        self._tokens = token_cache or TokenCache(store)
        self._auth = AuthResolver(self._tokens)
        self._limiter = RateLimiter(store)
        self._dispatcher = Dispatcher(
            client,
            event_sink or LoggingEventSink(),
            default_timeout_ms=default_timeout_ms,
            user_agent=user_agent,
        )
        self._oauth = OAuthFlow(client, self._tokens, default_expires_in=oauth_default_expires_in)
        self._twilio_sid = twilio_account_sid
        self._twilio_from = twilio_phone_number
        self._sendgrid_from = sendgrid_default_from

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        store: Optional[SharedStore] = None,
        event_sink: Optional[EventSink] = None,
    ) -> "ApiConnectorService":
        """Wire the default collaborators from application settings."""
        store = store or build_store(settings.redis_url, settings.store_key_prefix)
        cipher = TokenCipher(settings.token_encryption_key)
        cipher.log_status()
        token_cache = TokenCache(
            store,
            cipher,
            refresh_ttl_seconds=settings.oauth_refresh_token_ttl_seconds,
        )
        return cls(
            ConnectorRegistry.with_builtins(),
            store,
            client or httpx.AsyncClient(),
            event_sink=event_sink,
            credentials_provider=StaticCredentialsProvider(settings.connector_credentials),
            token_cache=token_cache,
            default_timeout_ms=settings.default_timeout_ms,
            user_agent=settings.user_agent,
            oauth_default_expires_in=settings.oauth_default_expires_in,
            twilio_account_sid=settings.twilio_account_sid,
            twilio_phone_number=settings.twilio_phone_number,
            sendgrid_default_from=settings.sendgrid_default_from,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
        await self.store.close()

    # ── Registry ────────────────────────────────────────────────────────

    def register_connector(self, config: Union[ConnectorConfig, Dict[str, Any]]) -> None:
        self.registry.register(config)

    def get_connector(self, connector_id: str) -> ConnectorConfig:
        return self.registry.get(connector_id)

    def list_connectors(self) -> List[ConnectorConfig]:
        return self.registry.list()

    # ── Requests ────────────────────────────────────────────────────────

    async def request(
        self,
        connector_id: str,
        method: str,
        path: str,
        body: Any = None,
        credential_override: Optional[Credentials] = None,
        *,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> ConnectorResponse[Any]:
        """
        Perform one logical call and return the normalized response.

        ``credential_override`` applies to this call only; the registry's
        canonical config is never modified.

        Raises a ConnectorError subclass on failure (see connectors.errors).
        """
        start = time.perf_counter()
        config = self.registry.get(connector_id)
        method = method.upper()

        try:
            credentials = await self._resolve_credentials(config, credential_override)
            auth_headers = await self._auth.resolve(config, credentials)
            await self._limiter.admit(connector_id, config.rate_limit)

            async def attempt(n: int):
                return await self._dispatcher.dispatch(
                    config,
                    method,
                    path,
                    body,
                    auth_headers=auth_headers,
                    extra_headers=extra_headers,
                    attempt=n,
                )

            raw, retry_count = await execute_with_retry(
                attempt, config.retry_policy, label=f"{connector_id} {method} {path}"
            )
        except ConnectorError as exc:
            logger.error(
                "Connector request failed: %s %s %s — %s (%dms)",
                connector_id,
                method,
                path,
                exc.message,
                int((time.perf_counter() - start) * 1000),
            )
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Connector request ok: %s %s %s → %d (%dms, %d retries)",
            connector_id,
            method,
            path,
            raw.status,
            duration_ms,
            retry_count,
        )
        return ConnectorResponse[Any](
            data=raw.body,
            status=raw.status,
            headers=raw.headers,
            metadata=ResponseMetadata(
                connector_id=connector_id,
                duration_ms=duration_ms,
                retry_count=retry_count,
            ),
        )

    async def get(self, connector_id: str, path: str, **kwargs: Any) -> ConnectorResponse[Any]:
        return await self.request(connector_id, "GET", path, None, **kwargs)

    async def post(self, connector_id: str, path: str, body: Any = None, **kwargs: Any) -> ConnectorResponse[Any]:
        return await self.request(connector_id, "POST", path, body, **kwargs)

    async def put(self, connector_id: str, path: str, body: Any = None, **kwargs: Any) -> ConnectorResponse[Any]:
        return await self.request(connector_id, "PUT", path, body, **kwargs)

    async def patch(self, connector_id: str, path: str, body: Any = None, **kwargs: Any) -> ConnectorResponse[Any]:
        return await self.request(connector_id, "PATCH", path, body, **kwargs)

    async def delete(self, connector_id: str, path: str, **kwargs: Any) -> ConnectorResponse[Any]:
        return await self.request(connector_id, "DELETE", path, None, **kwargs)

    async def test_connection(
        self, connector_id: str, credential_override: Optional[Credentials] = None
    ) -> bool:
        """GET / against the connector; True on any 2xx."""
        try:
            await self.get(connector_id, "/", credential_override=credential_override)
            return True
        except ConnectorError as exc:
            logger.error("Connection test failed for %s: %s", connector_id, exc.message)
            return False

    async def _resolve_credentials(
        self, config: ConnectorConfig, override: Optional[Credentials]
    ) -> Credentials:
        if override is not None:
            return override
        if self._credentials is not None:
            provided = await self._credentials.get_credentials(config.id)
            if provided is not None:
                return provided
        return config.credentials

    # ── OAuth2 ──────────────────────────────────────────────────────────

    def build_oauth_authorize_url(
        self, connector_id: str, oauth_config: OAuthConfig, state: Optional[str] = None
    ) -> str:
        self.registry.get(connector_id)
        return build_authorization_url(oauth_config, state)

    async def exchange_oauth_code(
        self, connector_id: str, oauth_config: OAuthConfig, code: str
    ) -> OAuthToken:
        self.registry.get(connector_id)
        return await self._oauth.exchange_code(connector_id, oauth_config, code)

    async def refresh_oauth_token(self, connector_id: str, oauth_config: OAuthConfig) -> OAuthToken:
        self.registry.get(connector_id)
        return await self._oauth.refresh(connector_id, oauth_config)

    # ── Built-in operations ─────────────────────────────────────────────

    async def send_slack_message(
        self,
        channel: str,
        text: str,
        credential_override: Optional[Credentials] = None,
        **options: Any,
    ) -> ConnectorResponse[Any]:
        return await self.post(
            "slack",
            "/chat.postMessage",
            {"channel": channel, "text": text, **options},
            credential_override=credential_override,
        )

    async def create_jira_issue(
        self,
        project_key: str,
        issue_type: str,
        summary: str,
        description: Optional[str] = None,
        credential_override: Optional[Credentials] = None,
    ) -> ConnectorResponse[Any]:
        fields: Dict[str, Any] = {
            "project": {"key": project_key},
            "issuetype": {"name": issue_type},
            "summary": summary,
        }
        if description is not None:
            fields["description"] = description
        return await self.post(
            "jira", "/issue", {"fields": fields}, credential_override=credential_override
        )

    async def create_github_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: Optional[str] = None,
        credential_override: Optional[Credentials] = None,
    ) -> ConnectorResponse[Any]:
        payload: Dict[str, Any] = {"title": title}
        if body is not None:
            payload["body"] = body
        return await self.post(
            "github",
            f"/repos/{owner}/{repo}/issues",
            payload,
            credential_override=credential_override,
        )

    async def send_email(
        self,
        to: str,
        subject: str,
        content: str,
        from_email: Optional[str] = None,
        credential_override: Optional[Credentials] = None,
    ) -> ConnectorResponse[Any]:
        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": from_email or self._sendgrid_from},
            "subject": subject,
            "content": [{"type": "text/html", "value": content}],
        }
        return await self.post(
            "sendgrid", "/mail/send", payload, credential_override=credential_override
        )

    async def send_sms(
        self,
        to: str,
        message: str,
        from_number: Optional[str] = None,
        credential_override: Optional[Credentials] = None,
    ) -> ConnectorResponse[Any]:
        account_sid = (credential_override or {}).get("account_sid") or self._twilio_sid
        return await self.post(
            "twilio",
            f"/Accounts/{account_sid}/Messages.json",
            {"To": to, "From": from_number or self._twilio_from, "Body": message},
            credential_override=credential_override,
        )


def build_in_memory_service(client: httpx.AsyncClient, **kwargs: Any) -> ApiConnectorService:
    """Service with built-in connectors and a process-local store."""
    return ApiConnectorService(ConnectorRegistry.with_builtins(), InMemoryStore(), client, **kwargs)
