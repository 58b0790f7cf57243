"""Redis-backed rate limiter."""
import logging
import re
import time
from typing import List, Optional, Pattern, Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth import bearer_token, user_id_for_token
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)

# (method, path pattern, route name, requests per minute per user)
ROUTE_LIMITS: List[Tuple[str, Pattern, str, int]] = [
    ("POST", re.compile(r"^/orders$"), "create_order", 10),
    ("POST", re.compile(r"^/wallets/transfer$"), "transfer", 10),
    ("POST", re.compile(r"^/wallets/[^/]+/increase$"), "increase_wallet", 20),
    ("POST", re.compile(r"^/wallets$"), "create_wallet", 5),
    ("DELETE", re.compile(r"^/wallets/[^/]+$"), "delete_wallet", 5),
    ("POST", re.compile(r"^/cart/items$"), "add_to_cart", 50),
]


def route_limit(method: str, path: str) -> Optional[Tuple[str, int]]:
    """Return (route name, per-minute limit) for a rate-limited route, else None."""
    path = path.rstrip("/") or "/"
    for route_method, pattern, name, limit in ROUTE_LIMITS:
        if method == route_method and pattern.match(path):
            return name, limit
    return None


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Rate limiter using Redis for distributed rate limiting.

    Three sliding windows, checked in order:
    - Per IP: high limit, handles shared IPs
    - Per user: overall request budget
    - Per user and route: tight limits on money-moving endpoints
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = 50000,
        requests_per_minute_user: int = 5000,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            requests_per_minute_ip: Max requests per IP per minute
            requests_per_minute_user: Max requests per user per minute
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using Redis sorted set (sliding window).

        Algorithm:
        1. Remove timestamps older than window
        2. Count requests in window
        3. Add current request
        4. Set TTL

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()
            window_start = current_time - window

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count BEFORE adding current request
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            # Fail open
            return True, 0

    def _reject(self, limit_type: str, subject: str, count: int, limit: int) -> JSONResponse:
        rate_limit_exceeded_counter.add(1, {"limit_type": limit_type})
        logger.warning("Rate limit exceeded", extra={
            "limit_type": limit_type,
            "subject": subject,
            "count": count,
            "limit": limit
        })
        return JSONResponse(
            status_code=429,
            content={"detail": f"Rate limit exceeded. Maximum {limit} requests per minute."},
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request with Redis-backed rate limiting.

        Returns:
            Response, or 429 if rate limited
        """
        client_ip = request.client.host if request.client else "unknown"
        if "x-forwarded-for" in request.headers:
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        token = bearer_token(request.headers.get("authorization"))
        user_id = user_id_for_token(token) if token else None

        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}", self.requests_per_minute_ip, self.window_seconds
        )
        if not ip_allowed:
            return self._reject("ip", client_ip, ip_count, self.requests_per_minute_ip)

        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}", self.requests_per_minute_user, self.window_seconds
            )
            if not user_allowed:
                return self._reject("user", user_id, user_count, self.requests_per_minute_user)

            route = route_limit(request.method, request.url.path)
            if route:
                name, limit = route
                route_allowed, route_count = self._check_rate_limit(
                    f"rate:route:{name}:{user_id}", limit, self.window_seconds
                )
                if not route_allowed:
                    return self._reject(name, user_id, route_count, limit)

        response = await call_next(request)

        self._detect_suspicious_activity(response.status_code, client_ip)

        return response

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> None:
        """
        Detect suspicious activity patterns using Redis.

        Patterns:
        - Credential stuffing: 5+ failed auths in 5 minutes
        - Endpoint scanning: 10+ 404s in 5 minutes
        - Abuse: 20+ 4xx errors in 5 minutes
        """
        patterns = []
        if status_code == 401:
            patterns.append(("401", "credential_stuffing", 5))
        if status_code == 404:
            patterns.append(("404", "endpoint_scanning", 10))
        if 400 <= status_code < 500:
            patterns.append(("4xx", "abuse", 20))

        try:
            current_time = time.time()
            window = 300
            for suffix, activity, threshold in patterns:
                key = f"suspicious:{suffix}:{client_ip}"
                self.redis.zadd(key, {str(current_time): current_time})
                self.redis.expire(key, window + 1)

                count = self.redis.zcount(key, current_time - window, current_time)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity})
                    logger.warning("Suspicious activity detected", extra={
                        "type": activity,
                        "client_ip": client_ip,
                        "count": count
                    })
        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
