"""
Real-time hub server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from live_hub.api import router as hub_router
from live_hub.core.config import Settings, get_settings
from live_hub.core.publisher import Publisher
from live_hub.core.redis import RedisRelay, close_redis
from live_hub.core.registry import TopicRegistry
from live_shared.log import configure_logging

log = structlog.get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the hub application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Marketlive Hub",
        description="Topic-based publish/subscribe over Server-Sent Events.",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "Last-Event-ID"],
    )

    registry = TopicRegistry(queue_size=settings.subscriber_queue_size)
    relay = (
        RedisRelay(registry, settings.redis_url, settings.redis_channel)
        if settings.redis_url
        else None
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.relay = relay
    app.state.publisher = Publisher(registry, relay)

    app.include_router(hub_router, tags=["Hub"])

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness: the Redis relay (when configured) must be listening."""
        if relay is not None and not relay.running:
            return {"status": "starting", "subscribers": registry.subscriber_count}
        return {"status": "ready", "subscribers": registry.subscriber_count}

    @app.on_event("startup")
    async def on_startup():
        log.info("hub.starting", redis=bool(relay))
        if relay is not None:
            await relay.start()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("hub.shutting_down", subscribers=registry.subscriber_count)
        registry.close_all()
        if relay is not None:
            await relay.stop()
            await close_redis()

    return app


def run() -> None:
    """CLI entry point for the hub."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format, service="hub")
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else settings.log_level,
    )


if __name__ == "__main__":
    run()
