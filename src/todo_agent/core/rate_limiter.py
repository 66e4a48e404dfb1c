"""Token bucket rate limiting for provider API requests.

Standard rate limits by service:
- gmail: 10 requests per second (well under the per-user quota)
- todoist: 1 request per second, burst of 5
"""

import asyncio
import time

from todo_agent.core.errors import RateLimitExceeded
from todo_agent.core.logging import get_logger

logger = get_logger(__name__)

# Refuse waits longer than this instead of stalling a processing run
MAX_WAIT_SECONDS = 20.0


class TokenBucket:
    """Token bucket rate limiter.

    Tokens are added at a fixed rate and each request consumes one. When the
    bucket is empty the caller sleeps until a token is available.

    Example:
        limiter = TokenBucket(rate=1.0, capacity=1)

        async def make_api_call():
            await limiter.consume()
            ...
    """

    def __init__(self, rate: float = 1.0, capacity: int = 1):
        """Initialize a token bucket rate limiter.

        Args:
            rate: Token refill rate per second
            capacity: Maximum number of tokens in the bucket
        """
        self.rate = rate
        self.capacity = capacity
        self.tokens: float = capacity
        self.last_refill = time.monotonic()
        self.lock = asyncio.Lock()

    async def consume(self, tokens: int = 1) -> None:
        """Consume tokens from the bucket, waiting if needed.

        Raises:
            RateLimitExceeded: If the wait would exceed MAX_WAIT_SECONDS
        """
        if tokens > self.capacity:
            raise RateLimitExceeded(
                f"Requested tokens ({tokens}) exceed bucket capacity ({self.capacity})"
            )

        async with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return

            wait_time = (tokens - self.tokens) / self.rate
            if wait_time > MAX_WAIT_SECONDS:
                raise RateLimitExceeded(f"Rate limit exceeded, would require {wait_time:.2f}s wait")

            logger.debug("rate_limit_wait", wait_time=round(wait_time, 3))
            # Sleep under the lock so waiters are served in order
            await asyncio.sleep(wait_time)
            self._refill()
            self.tokens = max(0.0, self.tokens - tokens)

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now
