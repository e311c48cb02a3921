"""
Host device authentication and per-client rate limiting for guest endpoints
"""

import secrets
import time
from collections import deque
from typing import Deque, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings

WINDOW_SECONDS = 60


class SlidingWindowRateLimiter:
    """Counts requests per key over the trailing window.

    Keys whose window has emptied are dropped, so memory tracks only
    clients seen in the last minute.
    """

    def __init__(self, window_seconds: float = WINDOW_SECONDS):
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}

    def __len__(self) -> int:
        return len(self._hits)

    def __contains__(self, key: str) -> bool:
        return key in self._hits

    def clear(self):
        self._hits.clear()

    def _prune(self, now: float):
        cutoff = now - self.window_seconds
        for key in list(self._hits):
            hits = self._hits[key]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if not hits:
                del self._hits[key]

    def allow(self, key: str, limit: int, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        self._prune(now)

        hits = self._hits.get(key)
        if hits is not None and len(hits) >= limit:
            return False
        self._hits.setdefault(key, deque()).append(now)
        return True


rate_limiter = SlidingWindowRateLimiter()

bearer_scheme = HTTPBearer()


def verify_host_token(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    """Dependency for host routes: the bearer token must match HOST_TOKEN"""
    if not secrets.compare_digest(credentials.credentials.encode(), settings.HOST_TOKEN.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid host token"
        )
    return credentials.credentials


def rate_limit_check(client_ip: str, limit: Optional[int] = None) -> bool:
    """False once client_ip has used up its requests for the current minute"""
    return rate_limiter.allow(client_ip, limit or settings.RATE_LIMIT_PER_MINUTE)


def get_client_ip(request: Request) -> str:
    # Behind a proxy the first forwarded address is the original client
    for header in ("X-Forwarded-For", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
