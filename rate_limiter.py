"""
Rate Gate for outbound Huntress API calls

The Huntress API allows 60 requests per minute per key. Rather than letting
the upstream reject bursts, the server throttles itself: requests are counted
in a window that starts with the first request and lasts 60 seconds. Once the
ceiling is reached, the next caller is suspended until the window expires,
and counting restarts from a fresh window.

Admission is serialized with an asyncio.Lock so concurrent tool calls on the
same event loop cannot race past the ceiling.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

DEFAULT_MAX_REQUESTS = 60
DEFAULT_WINDOW_MS = 60_000


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


@dataclass
class RateWindow:
    """Current counting window."""
    window_start: int  # ms, from the gate's clock
    request_count: int = 0


class RateGate:
    """
    Fixed-window request ceiling for a single process.

    One gate is owned by each dispatcher and shared by every client it builds.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Optional[Callable[[], int]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the gate.

        Args:
            max_requests: Requests admitted per window without waiting (default 60)
            window_ms: Window length in milliseconds (default 60000)
            clock: Returns the current time in ms; must be monotonic
            sleep: Coroutine function taking seconds (default asyncio.sleep)
        """
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms < 1:
            raise ValueError("window_ms must be at least 1")

        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self.window: Optional[RateWindow] = None

    @property
    def request_count(self) -> int:
        return self.window.request_count if self.window else 0

    @property
    def remaining(self) -> int:
        """Requests left in the current window before the gate starts waiting."""
        if self.window is None or self._clock() - self.window.window_start >= self.window_ms:
            return self.max_requests
        return max(self.max_requests - self.window.request_count, 0)

    def _reset(self, now: int) -> None:
        # Never move the window start backwards
        if self.window is not None and now < self.window.window_start:
            now = self.window.window_start
        self.window = RateWindow(window_start=now)

    async def admit(self) -> None:
        """Wait, if needed, until one more request may be sent, then count it."""
        async with self._lock:
            now = self._clock()

            if self.window is None or now - self.window.window_start >= self.window_ms:
                self._reset(now)
            elif self.window.request_count >= self.max_requests:
                wait_ms = self.window_ms - (now - self.window.window_start)
                logging.warning(
                    f"Rate limit reached ({self.max_requests} requests/{self.window_ms // 1000}s), "
                    f"waiting {wait_ms} ms"
                )
                await self._sleep(wait_ms / 1000)
                self._reset(self._clock())

            self.window.request_count += 1
