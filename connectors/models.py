"""
Pydantic models for connector configuration, OAuth tokens and the
normalized response envelope.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# ═══════════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════════


class ConnectorType(str, Enum):
    SLACK = "slack"
    JIRA = "jira"
    GITHUB = "github"
    GOOGLE = "google"
    STRIPE = "stripe"
    TWILIO = "twilio"
    SENDGRID = "sendgrid"
    CUSTOM = "custom"


class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BASIC = "basic"
    BEARER = "bearer"
    OAUTH2 = "oauth2"
    OAUTH1 = "oauth1"


class BackoffStrategy(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


# ═══════════════════════════════════════════════════════════════════════════════
# Connector configuration
# ═══════════════════════════════════════════════════════════════════════════════


class RateLimitPolicy(BaseModel):
    max_requests: int = Field(..., gt=0)
    window_seconds: int = Field(..., gt=0)


class RetryPolicy(BaseModel):
    max_attempts: int = Field(3, ge=1, description="Total attempts, first one included")
    base_delay_ms: int = Field(1000, ge=0)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL


class ConnectorConfig(BaseModel):
    """
    Static description of one remote service.

    ``credentials`` is opaque; which keys matter depends on ``auth_type``
    (``api_key`` / ``username`` + ``password`` / ``token``).
    """

    id: str
    display_name: str = ""
    type: ConnectorType = ConnectorType.CUSTOM
    base_url: str
    auth_type: AuthType
    credentials: Dict[str, Any] = Field(default_factory=dict)
    rate_limit: Optional[RateLimitPolicy] = None
    retry_policy: Optional[RetryPolicy] = None
    timeout_ms: Optional[int] = Field(None, gt=0)
    default_headers: Dict[str, str] = Field(default_factory=dict)

    def public_view(self) -> Dict[str, Any]:
        """Everything except the credentials."""
        return self.model_dump(mode="json", exclude={"credentials"})


# ═══════════════════════════════════════════════════════════════════════════════
# OAuth2
# ═══════════════════════════════════════════════════════════════════════════════


class OAuthConfig(BaseModel):
    client_id: str
    client_secret: str
    redirect_uri: str
    scope: List[str] = Field(default_factory=list)
    auth_url: str
    token_url: str
    refresh_url: Optional[str] = None


class OAuthToken(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: float = Field(..., description="Unix timestamp (seconds)")
    token_type: str = "Bearer"
    scope: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (time.time() if now is None else now) >= self.expires_at


# ═══════════════════════════════════════════════════════════════════════════════
# Dispatch results
# ═══════════════════════════════════════════════════════════════════════════════


class RawResponse(BaseModel):
    """One physical HTTP exchange, as returned by the dispatcher."""

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ResponseMetadata(BaseModel):
    connector_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int = 0
    retry_count: int = 0


class ConnectorResponse(BaseModel, Generic[T]):
    """Normalized envelope, produced once per logical call."""

    data: T
    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    metadata: ResponseMetadata


class ConnectorEvent(BaseModel):
    """Structured outcome of a single attempt, handed to the event sink."""

    connector_id: str
    method: str
    path: str
    status: Optional[int] = None
    error_kind: Optional[str] = None
    duration_ms: int = 0
    attempt: int = 1
