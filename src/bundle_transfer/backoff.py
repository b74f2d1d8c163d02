"""Capped exponential back-off for transient RPC failures."""
import asyncio
import logging

import bundle_transfer.constants as C

log = logging.getLogger("bundle_transfer.backoff")


class RetryExhausted(RuntimeError):
    """Raised once a Backoff has used up its attempts."""


class Backoff:
    """Delay doubling from `base` up to `cap`.

    `max_attempts` counts consecutive failures; 0 retries forever. Call `reset()` after a success.
    """

    def __init__(
        self,
        label: str,
        *,
        base: float = C.RETRY_BASE_DELAY,
        cap: float = C.RETRY_MAX_DELAY,
        max_attempts: int = C.RETRY_MAX_ATTEMPTS,
        sleep=asyncio.sleep,
    ):
        self.label = label
        self.base = base
        self.cap = cap
        self.max_attempts = max_attempts
        self.attempts = 0
        self._sleep = sleep

    @classmethod
    def from_settings(cls, label: str, retry, **kwargs) -> "Backoff":
        return cls(label, base=retry.base_delay, cap=retry.max_delay, max_attempts=retry.max_attempts, **kwargs)

    @property
    def delay(self) -> float:
        return min(self.base * 2 ** max(self.attempts - 1, 0), self.cap)

    async def wait(self, err: BaseException | None = None) -> None:
        self.attempts += 1
        if self.max_attempts and self.attempts > self.max_attempts:
            raise RetryExhausted(f"{self.label}: gave up after {self.max_attempts} attempts") from err
        log.info("%s retry %s in %.1fs", self.label, self.attempts, self.delay)
        await self._sleep(self.delay)

    def reset(self) -> None:
        self.attempts = 0
