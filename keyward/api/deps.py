"""
FastAPI Dependencies for the Keyward API.

Provides:
- Access to the process-scoped resources built at startup (app.state)
- Authentication dependencies
- IP rate limiting for unauthenticated auth endpoints (Redis-backed)
"""
import asyncio
import time
import logging
from typing import Optional, Dict, Tuple

import redis
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.errors import AuthError
from ..auth.service import AuthService
from ..database.auth_db import AuthDB
from ..utils.config import AppConfig

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Redis Client
# ============================================

def connect_redis(config: AppConfig) -> Optional[redis.Redis]:
    """
    Open the Redis connection used for rate limiting.

    Returns None if Redis is not configured or unavailable; callers fall
    back to in-memory counters.
    """
    if not config.redis_host:
        logger.info("Redis not configured. Rate limiting will use in-memory fallback.")
        return None

    try:
        client = redis.Redis(
            host=config.redis_host,
            port=config.redis_port,
            password=config.redis_password,
            db=config.redis_db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        client.ping()
        logger.info(f"Redis connected: {config.redis_host}:{config.redis_port}")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory fallback.")
        return None


# ============================================
# Application Resources
# ============================================

def get_db(request: Request) -> AuthDB:
    """Get the store created at startup."""
    return request.app.state.db


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ============================================
# Authentication Dependencies
# ============================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: AuthService = Depends(get_auth_service),
) -> Dict:
    """
    Validate bearer token and return current user.

    Raises:
        AuthError: If token is missing, malformed, forged or expired.
    """
    if credentials is None:
        raise AuthError("Authentication required", reason="missing bearer token")

    return await asyncio.to_thread(service.authenticate, credentials.credentials)


# ============================================
# Auth Rate Limiting (IP-based for unauthenticated endpoints)
# ============================================

class AuthRateLimiter:
    """
    Rate limiter for authentication endpoints (IP-based).

    Each action has its own (limit, window_seconds). Uses Redis INCR with
    TTL when available and falls back to in-memory timestamps otherwise.
    """

    DEFAULT_LIMITS: Dict[str, Tuple[int, int]] = {
        "register": (5, 3600),       # per hour
        "login": (10, 900),          # per 15 minutes
        "twofa_email": (10, 900),
        "recovery": (5, 900),
    }

    # Fallback store size that triggers a sweep of expired keys
    MEMORY_PRUNE_THRESHOLD = 1000

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        limits: Optional[Dict[str, Tuple[int, int]]] = None,
    ):
        self.redis = redis_client
        self.limits = dict(self.DEFAULT_LIMITS)
        if limits:
            self.limits.update(limits)
        # In-memory fallback storage
        self._memory_store: Dict[str, list] = {}

    def _get_count(self, key: str, window_seconds: int) -> int:
        """Get current count for a key."""
        if self.redis is not None:
            try:
                count = self.redis.get(f"keyward:auth_ratelimit:{key}")
                return int(count) if count else 0
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit check: {e}")

        # In-memory fallback
        now = time.time()
        if key not in self._memory_store:
            return 0
        entries = [
            ts for ts in self._memory_store[key]
            if now - ts < window_seconds
        ]
        if not entries:
            # Expired keys are dropped so the store tracks only active clients
            del self._memory_store[key]
            return 0
        self._memory_store[key] = entries
        return len(entries)

    def _prune_memory_store(self, now: float) -> None:
        """Drop in-memory keys whose window has passed."""
        for key in list(self._memory_store):
            window = self.limits[key.split(":", 1)[0]][1]
            entries = [ts for ts in self._memory_store[key] if now - ts < window]
            if entries:
                self._memory_store[key] = entries
            else:
                del self._memory_store[key]

    def _increment(self, key: str, window_seconds: int) -> int:
        """Increment counter for a key."""
        if self.redis is not None:
            try:
                full_key = f"keyward:auth_ratelimit:{key}"
                pipe = self.redis.pipeline()
                pipe.incr(full_key)
                pipe.expire(full_key, window_seconds)
                results = pipe.execute()
                return results[0]
            except redis.RedisError as e:
                logger.warning(f"Redis error in auth rate limit increment: {e}")

        # In-memory fallback
        now = time.time()
        if len(self._memory_store) >= self.MEMORY_PRUNE_THRESHOLD:
            self._prune_memory_store(now)
        entries = [
            ts for ts in self._memory_store.get(key, [])
            if now - ts < window_seconds
        ]
        entries.append(now)
        self._memory_store[key] = entries
        return len(entries)

    def check(self, action: str, ip: str) -> Tuple[bool, int]:
        """
        Check if IP is within the limit for an action.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        limit, window = self.limits[action]
        remaining = limit - self._get_count(f"{action}:{ip}", window)
        return remaining > 0, max(0, remaining)

    def record(self, action: str, ip: str) -> None:
        """Record an attempt from an IP."""
        _, window = self.limits[action]
        self._increment(f"{action}:{ip}", window)


def rate_limit(action: str):
    """
    Build a dependency enforcing the IP limit for ``action``.

    Raises HTTPException 429 if the limit is exceeded.
    """
    async def _check(request: Request) -> None:
        if not request.app.state.config.rate_limit_enabled:
            return

        limiter: AuthRateLimiter = request.app.state.auth_rate_limiter
        ip = request.client.host if request.client else "unknown"
        _, window = limiter.limits[action]

        allowed, _ = limiter.check(action, ip)
        if not allowed:
            logger.warning(f"Rate limit hit for {action} from {ip}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many attempts. Try again later.",
                headers={
                    "Retry-After": str(window),
                    "X-RateLimit-Remaining": "0",
                },
            )

        limiter.record(action, ip)

    return _check


check_register_rate_limit = rate_limit("register")
check_login_rate_limit = rate_limit("login")
check_twofa_email_rate_limit = rate_limit("twofa_email")
check_recovery_rate_limit = rate_limit("recovery")
