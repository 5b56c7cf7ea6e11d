"""Abstract base class for the directory and provisioning clients."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

from scripts.sso_sync.config import RetryConfig
from scripts.sso_sync.errors import RateLimitExceeded

logger = logging.getLogger("sso_sync.provider")


class BaseProvider(ABC):
    """Each client declares PROVIDER_NAME and owns its transport."""

    PROVIDER_NAME: str = ""

    def __init__(self, retry: RetryConfig | None = None) -> None:
        self.retry = retry or RetryConfig()

    @abstractmethod
    def close(self) -> None:
        """Release the underlying transport."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Rate-limiting helpers
    # ------------------------------------------------------------------

    def _rate_limit_sleep(self, operation: str, attempt: int) -> None:
        """Fixed-delay sleep before retrying a throttled call.

        Raises RateLimitExceeded once ``attempt`` reaches the retry budget.
        """
        if attempt >= self.retry.max_retries:
            raise RateLimitExceeded(
                f"{self.PROVIDER_NAME} {operation}: still throttled after {attempt} retries"
            )
        logger.debug(
            "Rate limited on %s, sleeping %.2fs (attempt %d)",
            operation, self.retry.delay_s, attempt + 1,
            extra={"provider": self.PROVIDER_NAME},
        )
        time.sleep(self.retry.delay_s)
