"""
FastAPI dependencies (shared across routes).
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from connectors.service import ApiConnectorService


def get_connector_service(request: Request) -> ApiConnectorService:
    """Return the service built at startup (stored on ``app.state``)."""
    service = getattr(request.app.state, "connector_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Connector service not initialised",
        )
    return service
