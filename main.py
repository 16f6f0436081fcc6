"""
Universal API Connector service — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from config.settings import Settings, config
from connectors.routes import router as connectors_router
from connectors.service import ApiConnectorService

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[ApiConnectorService] = None,
) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="Universal API Connector",
        version="1.0.0",
        description="Registry-driven outbound dispatch to third-party APIs.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)

    # Routes
    app.include_router(connectors_router, prefix="/api/v1/connectors")

    if service is not None:
        app.state.connector_service = service

    @app.on_event("startup")
    async def on_startup():
        if getattr(app.state, "connector_service", None) is None:
            logger.info("Building connector service…")
            app.state.connector_service = ApiConnectorService.from_settings(settings)
        connectors = app.state.connector_service.list_connectors()
        logger.info(
            "Application ready: %d connectors (%s)",
            len(connectors),
            ", ".join(c.id for c in connectors),
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        svc = getattr(app.state, "connector_service", None)
        if svc is not None:
            await svc.aclose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
