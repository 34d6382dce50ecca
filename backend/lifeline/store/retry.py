"""
Bounded retry with exponential backoff for transient store failures.

Only StoreUnavailable is retried. Every other DispatchError is a definite
answer (conflict, invalid transition, ...) and is raised immediately.
"""

from typing import Any, Awaitable, Callable, Optional
import asyncio

from ..errors import StoreUnavailable


class RetryPolicy:
    """
    Retry an async operation on StoreUnavailable

    Usage:
        retry = RetryPolicy(attempts=3)
        doc = await retry.run(lambda: store.get(path), "read case")
    """

    def __init__(
        self,
        attempts: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 2.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep or asyncio.sleep

        self.total_retries = 0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based)"""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[Any]], label: str = "store operation") -> Any:
        """
        Run operation, retrying transient store failures

        Raises:
            StoreUnavailable: after the last attempt fails
        """
        for attempt in range(1, self.attempts + 1):
            try:
                return await operation()
            except StoreUnavailable as e:
                if attempt == self.attempts:
                    print(f"[STORE] {label} failed after {attempt} attempts: {e.message}")
                    raise
                delay = self.delay_for(attempt)
                self.total_retries += 1
                print(f"[STORE] {label} unavailable (attempt {attempt}/{self.attempts}), retrying in {delay:.2f}s")
                await self._sleep(delay)

    @classmethod
    def from_config(cls, cfg, sleep=None) -> "RetryPolicy":
        """Build from the `store.retry` config section"""
        return cls(
            attempts=cfg.get('store.retry.attempts', 3),
            base_delay=cfg.get('store.retry.baseDelay', 0.2),
            max_delay=cfg.get('store.retry.maxDelay', 2.0),
            sleep=sleep,
        )
