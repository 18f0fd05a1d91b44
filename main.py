"""
Page Turner server: application entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys

import pathlib

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api.middleware import register_middleware
from api.proxy import build_proxy_router
from api.routes import router as api_router
from config.brand_registry import BrandRegistry
from config.settings import Settings, config
from connectors.location import LocationService
from connectors.mcp_connector import mcp_connector_factory
from connectors.registry import ConnectorRegistry
from core.signin_negotiator import SigninNegotiator
from tools.invoker import ToolInvoker

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s: %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "mcp", "urllib3", "aiohttp"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def _sweep_idle_connectors(registry: ConnectorRegistry, settings: Settings) -> None:
    while True:
        await asyncio.sleep(settings.connector_sweep_interval_seconds)
        try:
            await registry.sweep_idle(settings.connector_idle_ttl_seconds)
        except Exception:
            logger.exception("Idle connector sweep failed")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or config

    app = FastAPI(
        title="Page Turner",
        version="1.0.0",
        description="Links a reading-tracker account through a server-mediated sign-in.",
    )

    # Core objects, built once and shared by every request
    location_service = LocationService.from_settings(settings)
    registry = ConnectorRegistry(mcp_connector_factory(settings), location_service)
    invoker = ToolInvoker(registry)
    brand = BrandRegistry().get_brand_config(settings.brand)

    app.state.settings = settings
    app.state.location_service = location_service
    app.state.registry = registry
    app.state.negotiator = SigninNegotiator(
        invoker,
        brand,
        upstream_url=settings.getgather_url,
        start_timeout=settings.signin_timeout_seconds,
        poll_timeout=settings.poll_timeout_seconds,
    )
    app.state.proxy_client = httpx.AsyncClient(
        base_url=settings.getgather_url,
        follow_redirects=False,
        timeout=httpx.Timeout(settings.signin_timeout_seconds),
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app, settings)

    # Routes: core endpoints first, then the upstream passthroughs
    app.include_router(api_router)
    app.include_router(build_proxy_router(settings.proxy_paths))

    static_dir = pathlib.Path(__file__).resolve().parent / settings.static_dir
    if settings.is_production and static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="frontend")
        logger.info("Serving static files from %s", static_dir)

    @app.on_event("startup")
    async def on_startup():
        app.state.sweeper = asyncio.create_task(_sweep_idle_connectors(registry, settings))
        logger.info("MCP endpoint: %s (brand=%s)", settings.mcp_url, brand.brand_id)
        if not location_service.is_configured:
            logger.warning("Geolocation disabled: MaxMind credentials not set")
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        sweeper = getattr(app.state, "sweeper", None)
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
        await registry.close_all()
        await app.state.proxy_client.aclose()
        logger.info("Connectors closed, shutting down.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        proxy_headers=True,
        log_level="debug" if config.debug else "info",
    )
