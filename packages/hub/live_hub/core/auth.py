"""
Hub authorization.

Subscribers and publishers present a JWT whose ``mercure`` claim lists the
topic selectors they may use:

    {"mercure": {"subscribe": ["conversation/*"], "publish": ["*"]}}

A selector is ``*``, an exact topic, or an fnmatch pattern.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Iterable, Optional

import jwt
from starlette.requests import Request

from .errors import Unauthorized

AUTH_COOKIE = "mercureAuthorization"


@dataclass
class HubClaims:
    subscribe: list[str] = field(default_factory=list)
    publish: list[str] = field(default_factory=list)

    @classmethod
    def anonymous(cls) -> "HubClaims":
        return cls(subscribe=["*"], publish=[])

    def can_subscribe(self, topic: str) -> bool:
        return _topic_allowed(self.subscribe, topic)

    def can_publish(self, topic: str) -> bool:
        return _topic_allowed(self.publish, topic)


def _topic_allowed(selectors: Iterable[str], topic: str) -> bool:
    for selector in selectors:
        if selector == "*" or selector == topic or fnmatchcase(topic, selector):
            return True
    return False


def create_token(
    secret: str,
    *,
    subscribe: Optional[list[str]] = None,
    publish: Optional[list[str]] = None,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
    subject: str | None = None,
) -> str:
    """Create a signed hub token carrying subscribe/publish selectors."""
    now = datetime.now(timezone.utc)
    mercure: dict[str, list[str]] = {}
    if subscribe is not None:
        mercure["subscribe"] = list(subscribe)
    if publish is not None:
        mercure["publish"] = list(publish)
    payload = {
        "mercure": mercure,
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "jti": str(uuid.uuid4()),
    }
    if subject:
        payload["sub"] = subject
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> HubClaims:
    """Verify a hub token. Raises Unauthorized on any JWT failure."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as exc:
        raise Unauthorized(f"invalid hub token: {exc}") from exc

    mercure = payload.get("mercure")
    if not isinstance(mercure, dict):
        raise Unauthorized("hub token has no 'mercure' claim")

    return HubClaims(
        subscribe=[s for s in mercure.get("subscribe", []) if isinstance(s, str)],
        publish=[s for s in mercure.get("publish", []) if isinstance(s, str)],
    )


def extract_token(request: Request) -> str | None:
    """Bearer header first, then the hub cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(AUTH_COOKIE) or None
