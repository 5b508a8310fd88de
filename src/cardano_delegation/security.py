"""
Security Utilities

Error-message scrubbing and per-identifier rate limiting for calls that
leave the process (provider lookups, broadcasts).
"""

import re
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

MAX_ERROR_MESSAGE_LENGTH = 200
MAX_BACKOFF_SECONDS = 30 * 60

# Order matters: bech32 identifiers contain hex-looking runs, paths contain
# everything else.
_REDACTIONS = [
    (re.compile(r"\baddr[_\w]*1[a-z0-9]+", re.IGNORECASE), "[REDACTED_ADDRESS]"),
    (re.compile(r"\bstake[_\w]*1[a-z0-9]+", re.IGNORECASE), "[REDACTED_STAKE_ADDRESS]"),
    (re.compile(r"\bpool1[a-z0-9]+", re.IGNORECASE), "[REDACTED_POOL]"),
    # Pure digit runs are amounts, not hashes.
    (re.compile(r"\b(?=\d*[a-fA-F])[a-fA-F0-9]{8,}\b"), "[REDACTED_HASH]"),
    (re.compile(r"\b\d+\.\d+\.\d+\.\d+"), "[REDACTED_IP]"),
    (re.compile(r"\bfile://\S+"), "[REDACTED_PATH]"),
    (re.compile(r"\b[A-Za-z]:\\\S+"), "[REDACTED_PATH]"),
    (re.compile(r"/\S*/\S*"), "[REDACTED_PATH]"),
]


def sanitize_error_message(error: Exception | str, context: str | None = None) -> str:
    """
    Strip addresses, hashes, IPs and file paths from an error message

    Args:
        error: Exception or raw message
        context: Optional label prepended as ``[context]``

    Returns:
        Message safe to show to a user or write to a shared log
    """
    message = error if isinstance(error, str) else str(error)

    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)

    if len(message) > MAX_ERROR_MESSAGE_LENGTH:
        message = message[: MAX_ERROR_MESSAGE_LENGTH - 3] + "..."

    if context:
        message = f"[{context}] {message}"

    return message


def default_request_headers(user_agent: str | None = None) -> dict[str, str]:
    """Headers sent with every provider request"""
    return {
        "User-Agent": user_agent or "cardano-delegation/1.0",
        "Accept": "application/json",
        "Cache-Control": "no-cache",
    }


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate-limit check"""

    allowed: bool
    retry_after: float = 0.0


class RateLimiter:
    """
    Sliding-window rate limiter keyed by identifier

    Each identifier keeps the timestamps of its accepted requests inside the
    window. Once the window is full, further calls are refused and the
    identifier is blocked for an exponentially growing backoff
    (2^excess seconds, capped at 30 minutes).

    Instances are passed explicitly to whatever needs them; there is no
    process-wide limiter.
    """

    def __init__(
        self,
        max_requests: int = 30,
        window_seconds: float = 60.0,
        exponential_backoff: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.exponential_backoff = exponential_backoff
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}
        self._blocked_until: dict[str, float] = {}
        self._excess: dict[str, int] = {}

    def check(self, identifier: str, max_requests: int | None = None) -> RateLimitDecision:
        """
        Record a request for ``identifier`` if it fits in the window

        Args:
            identifier: Counter key, e.g. ``"koios:get_utxos"``
            max_requests: Per-call override of the window capacity

        Returns:
            RateLimitDecision; ``retry_after`` is in seconds when refused
        """
        now = self._clock()
        limit = max_requests or self.max_requests

        blocked_until = self._blocked_until.get(identifier, 0.0)
        if now < blocked_until:
            return RateLimitDecision(allowed=False, retry_after=blocked_until - now)

        window = self._requests.setdefault(identifier, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()

        if len(window) >= limit:
            retry_after = self.window_seconds - (now - window[0])
            if self.exponential_backoff:
                excess = self._excess.get(identifier, 0) + 1
                self._excess[identifier] = excess
                retry_after = max(retry_after, min(2**excess, MAX_BACKOFF_SECONDS))
                self._blocked_until[identifier] = now + retry_after
            return RateLimitDecision(allowed=False, retry_after=retry_after)

        self._excess.pop(identifier, None)
        window.append(now)
        return RateLimitDecision(allowed=True)

    def clear(self, identifier: str) -> None:
        """Forget all state for one identifier"""
        self._requests.pop(identifier, None)
        self._blocked_until.pop(identifier, None)
        self._excess.pop(identifier, None)

    def clear_all(self) -> None:
        self._requests.clear()
        self._blocked_until.clear()
        self._excess.clear()
