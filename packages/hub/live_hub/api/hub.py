"""
Hub endpoints.

- GET  /.well-known/mercure?topic=..&topic=..   Authenticated SSE stream
- POST /.well-known/mercure                      Publish an update to one or more topics
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from live_hub.core.auth import HubClaims, decode_token, extract_token
from live_hub.core.config import Settings
from live_hub.core.errors import InvalidUpdate, Unauthorized
from live_hub.core.events import event_generator
from live_hub.core.publisher import Publisher
from live_hub.core.registry import Subscriber, TopicRegistry
from live_shared.topics import is_valid_topic

router = APIRouter()

HUB_PATH = "/.well-known/mercure"


# --- Schemas ---


class PublishRequest(BaseModel):
    topics: list[str] = Field(min_length=1)
    data: dict[str, Any]
    id: Optional[str] = None
    type: Optional[str] = None


class PublishResponse(BaseModel):
    id: str


# --- Dependencies ---


def get_hub_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> TopicRegistry:
    return request.app.state.registry


def get_publisher(request: Request) -> Publisher:
    return request.app.state.publisher


def _authenticate(request: Request, settings: Settings) -> HubClaims:
    token = extract_token(request)
    if token is None:
        if settings.allow_anonymous:
            return HubClaims.anonymous()
        raise HTTPException(status_code=401, detail="Hub token required")
    try:
        return decode_token(token, settings.jwt_secret, settings.jwt_algorithm)
    except Unauthorized as exc:
        raise HTTPException(status_code=401, detail=str(exc))


# --- SSE Stream ---


async def _release(registry: TopicRegistry, subscriber: Subscriber) -> None:
    # Coroutine so the registry is only touched on the event loop thread
    registry.unsubscribe(subscriber)


@router.get(HUB_PATH)
async def subscribe(
    request: Request,
    topic: list[str] = Query(default=[]),
    settings: Settings = Depends(get_hub_settings),
    registry: TopicRegistry = Depends(get_registry),
):
    """
    Stream updates for the requested topics via SSE.

    Each update is one frame whose data is a JSON object with at least
    ``type`` and ``topic``. Emits heartbeat comments while idle.
    """
    if not topic:
        raise HTTPException(status_code=400, detail="At least one 'topic' parameter is required")
    invalid = [t for t in topic if not is_valid_topic(t)]
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid topic: {invalid[0]!r}")

    claims = _authenticate(request, settings)
    denied = [t for t in topic if not claims.can_subscribe(t)]
    if denied:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not allowed to subscribe to {denied[0]!r}",
        )

    if registry.subscriber_count >= settings.max_subscribers:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many concurrent subscribers.",
        )

    # Register before the response starts so nothing published after the
    # handshake is missed.
    subscriber = registry.subscribe(topic)

    return EventSourceResponse(
        event_generator(
            request,
            registry,
            subscriber,
            heartbeat_interval=settings.heartbeat_interval_seconds,
        ),
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        # Runs even if the client left before the generator was first iterated
        background=BackgroundTask(_release, registry, subscriber),
    )


# --- Publish ---


@router.post(HUB_PATH, response_model=PublishResponse)
async def publish(
    request: Request,
    body: PublishRequest,
    settings: Settings = Depends(get_hub_settings),
    publisher: Publisher = Depends(get_publisher),
):
    """Publish an update; delivered to every current subscriber of its topics."""
    claims = _authenticate(request, settings)
    denied = [t for t in body.topics if not claims.can_publish(t)]
    if denied:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Not allowed to publish to {denied[0]!r}",
        )

    try:
        update = await publisher.publish(body.topics, body.data, body.id, body.type)
    except InvalidUpdate as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return PublishResponse(id=update.id)
