"""Rate limit handling shared by the destination clients and the bulk driver.

A single ``BackoffPolicy`` instance carries both behaviours:

- the fixed courtesy pause inserted after every migrated issue, and
- the reactive handling of HTTP 429 responses (exponential backoff, or the
  exact window announced by the ``X-RateLimit-Reset`` header plus a buffer).
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .exceptions import RateLimitError

if TYPE_CHECKING:
    import requests

logger: logging.Logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429


@dataclass
class BackoffPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    reset_buffer: float = 1.0
    max_wait: float = 60.0
    courtesy_delay: float = 0.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    clock: Callable[[], float] = field(default=time.time, repr=False)

    def courtesy_pause(self) -> None:
        if self.courtesy_delay > 0:
            self.sleep(self.courtesy_delay)

    def compute_wait(self, attempt: int, headers: Mapping[str, str]) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        reset = headers.get("X-RateLimit-Reset") or headers.get("x-ratelimit-reset")
        if reset:
            try:
                reset_at = float(reset)
            except ValueError:
                logger.debug(f"Ignoring unparsable X-RateLimit-Reset header: {reset!r}")
            else:
                # Some APIs report milliseconds
                if reset_at > 1e12:
                    reset_at /= 1000
                return max(reset_at - self.clock(), 0.0) + self.reset_buffer

        retry_after = headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after) + self.reset_buffer
            except ValueError:
                logger.debug(f"Ignoring unparsable Retry-After header: {retry_after!r}")

        return self.base_delay * (2**attempt)

    def wait_for_retry(self, attempt: int, headers: Mapping[str, str]) -> None:
        wait = self.compute_wait(attempt, headers)
        if wait > self.max_wait:
            wait_until = dt.datetime.fromtimestamp(self.clock() + wait).astimezone()
            msg = (
                f"Rate limit exceeded and the reset window is {wait:.0f}s away. "
                f"Try again after {wait_until:%Y-%m-%d %H:%M:%S %Z}."
            )
            raise RateLimitError(msg, wait_until=wait_until)

        logger.warning(f"Rate limited (attempt {attempt + 1}/{self.max_retries}), waiting {wait:.1f}s")
        self.sleep(wait)

    def call(self, send: Callable[[], requests.Response]) -> requests.Response:
        """Invoke ``send`` and retry it while the response is a 429."""
        attempt = 0
        while True:
            response = send()
            if response.status_code != HTTP_TOO_MANY_REQUESTS:
                return response
            if attempt >= self.max_retries:
                msg = f"Rate limit still exceeded after {self.max_retries} retries"
                raise RateLimitError(msg)
            self.wait_for_retry(attempt, response.headers)
            attempt += 1
