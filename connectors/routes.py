"""
Connector API routes — list/register connectors, proxy single or batched
requests, OAuth2 flow, and the built-in Slack / email helpers.

Route prefix: /api/v1/connectors
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from api.dependencies import get_connector_service
from connectors.errors import ConnectorError
from connectors.models import OAuthConfig
from connectors.service import ApiConnectorService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])

MAX_BATCH_SIZE = 10


# ── Request schemas ────────────────────────────────────────────────────


class ConnectionTestRequest(BaseModel):
    credentials: Dict[str, Any] = Field(default_factory=dict)


class ConnectorRequest(BaseModel):
    method: Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
    endpoint: str = Field(..., min_length=1)
    data: Optional[Any] = None
    credentials: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = Field(default_factory=dict)


class BatchItem(ConnectorRequest):
    connector_id: str = Field(..., min_length=1)


class BatchRequest(BaseModel):
    requests: List[BatchItem] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)


class AuthorizeUrlRequest(BaseModel):
    oauth: OAuthConfig
    state: Optional[str] = None


class ExchangeCodeRequest(BaseModel):
    oauth: OAuthConfig
    code: str = Field(..., min_length=1)


class RefreshTokenRequest(BaseModel):
    oauth: OAuthConfig


class SlackMessageRequest(BaseModel):
    channel: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    credentials: Optional[Dict[str, Any]] = None
    options: Dict[str, Any] = Field(default_factory=dict)


class EmailRequest(BaseModel):
    to: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    from_email: Optional[str] = Field(None, alias="from")
    credentials: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}


def _ok(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


# ── Registry ───────────────────────────────────────────────────────────


@router.get("/")
async def list_connectors(
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    """List all registered connectors (credentials are never returned)."""
    return _ok([c.public_view() for c in service.list_connectors()])


@router.post("/")
async def register_connector(
    payload: Dict[str, Any],
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    service.register_connector(payload)
    return _ok(service.get_connector(payload["id"]).public_view())


# Fixed paths must be declared before /{connector_id}


@router.post("/slack/message")
async def send_slack_message(
    req: SlackMessageRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    logger.info("Sending Slack message to %s", req.channel)
    result = await service.send_slack_message(
        req.channel, req.text, credential_override=req.credentials, **req.options
    )
    return _ok(result.model_dump(mode="json"))


@router.post("/email/send")
async def send_email(
    req: EmailRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    logger.info("Sending email to %s", req.to)
    result = await service.send_email(
        req.to, req.subject, req.content, req.from_email, credential_override=req.credentials
    )
    return _ok(result.model_dump(mode="json"))


@router.post("/batch")
async def batch_request(
    req: BatchRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    """Run up to MAX_BATCH_SIZE requests concurrently; one failure never fails the batch."""
    outcomes = await asyncio.gather(
        *(
            service.request(
                item.connector_id,
                item.method,
                item.endpoint,
                item.data,
                item.credentials,
                extra_headers=item.headers,
            )
            for item in req.requests
        ),
        return_exceptions=True,
    )

    results = []
    for index, outcome in enumerate(outcomes):
        if isinstance(outcome, ConnectorError):
            results.append({"index": index, "success": False, "data": None, "error": outcome.message})
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results.append(
                {"index": index, "success": True, "data": outcome.model_dump(mode="json"), "error": None}
            )

    successful = sum(1 for r in results if r["success"])
    logger.info("Batch of %d requests: %d succeeded", len(results), successful)
    return _ok(
        {
            "results": results,
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@router.get("/{connector_id}")
async def get_connector(
    connector_id: str,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    return _ok(service.get_connector(connector_id).public_view())


# ── Requests ───────────────────────────────────────────────────────────


@router.post("/{connector_id}/test")
async def test_connection(
    connector_id: str,
    req: ConnectionTestRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    """Probe the connector with the given credentials (registry untouched)."""
    service.get_connector(connector_id)
    connected = await service.test_connection(connector_id, req.credentials)
    return _ok(
        {
            "connected": connected,
            "message": "Connection successful" if connected else "Connection failed",
        }
    )


@router.post("/{connector_id}/request")
async def proxy_request(
    connector_id: str,
    req: ConnectorRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    result = await service.request(
        connector_id,
        req.method,
        req.endpoint,
        req.data,
        req.credentials,
        extra_headers=req.headers,
    )
    return _ok(result.model_dump(mode="json"))


# ── OAuth2 ─────────────────────────────────────────────────────────────


@router.post("/{connector_id}/oauth/authorize-url")
async def authorize_url(
    connector_id: str,
    req: AuthorizeUrlRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    url = service.build_oauth_authorize_url(connector_id, req.oauth, req.state)
    return _ok({"auth_url": url, "connector_id": connector_id})


@router.post("/{connector_id}/oauth/exchange")
async def exchange_code(
    connector_id: str,
    req: ExchangeCodeRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    token = await service.exchange_oauth_code(connector_id, req.oauth, req.code)
    return _ok({"connector_id": connector_id, "expires_at": token.expires_at})


@router.post("/{connector_id}/oauth/refresh")
async def refresh_token(
    connector_id: str,
    req: RefreshTokenRequest,
    service: ApiConnectorService = Depends(get_connector_service),
) -> Dict[str, Any]:
    token = await service.refresh_oauth_token(connector_id, req.oauth)
    return _ok({"connector_id": connector_id, "expires_at": token.expires_at})
