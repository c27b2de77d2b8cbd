import asyncio
import time
from typing import Any, Awaitable, Callable, Optional


class CircuitOpenError(RuntimeError):
    pass


class CircuitBreaker:
    """
    Simple async in-memory circuit breaker guarding degradable storefront reads.

    - CLOSED: calls pass through; consecutive failures are counted.
    - OPEN: `before_call()` raises CircuitOpenError until `recovery_timeout` elapses.
    - HALF_OPEN: one probe is let through; success closes, failure reopens.
    """

    def __init__(self, name: str, failure_threshold: int = 3, recovery_timeout: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.failure_threshold = max(1, int(failure_threshold))
        self.recovery_timeout = float(recovery_timeout)
        self._clock = clock
        self._fail_count = 0
        self._state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        return self._state

    def reset(self):
        self._fail_count = 0
        self._state = "CLOSED"
        self._opened_at = None
        self._probe_in_flight = False

    def _maybe_transition(self):
        if self._state == "OPEN" and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False

    async def before_call(self):
        async with self._lock:
            self._maybe_transition()

            if self._state == "OPEN":
                raise CircuitOpenError(f"circuit {self.name} is open")

            if self._state == "HALF_OPEN":
                if self._probe_in_flight:
                    raise CircuitOpenError(f"circuit {self.name} is half-open and probing")
                self._probe_in_flight = True

    async def after_call(self, success: bool):
        async with self._lock:
            self._probe_in_flight = False

            if success:
                self._fail_count = 0
                self._state = "CLOSED"
                self._opened_at = None
                return

            self._fail_count += 1
            # a failing probe re-opens immediately
            if self._fail_count >= self.failure_threshold or self._state == "HALF_OPEN":
                self._state = "OPEN"
                self._opened_at = self._clock()
                self._fail_count = 0

    async def call(self, fn: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        await self.before_call()
        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            async with self._lock:
                self._probe_in_flight = False
            raise
        except Exception:
            await self.after_call(False)
            raise
        await self.after_call(True)
        return result
