"""
Credential/model rotation for rate-limited inference calls.

A small state machine over the (API key x model) pool:

    SELECTING_CREDENTIAL -> CALLING -> done
                              | rate limited
                              v
                          BACKING_OFF -> SELECTING_CREDENTIAL   (pool not yet exhausted)
                          EXHAUSTED   -> long sleep, then SELECTING_CREDENTIAL
                                         (or raise when the caller cannot wait)

On a rate limit the model advances first; wrapping past the last model
advances the key. A call sees the pool as exhausted once it has been rate
limited on as many credentials as the pool holds; the count belongs to that
call, so concurrent calls sharing the rotator do not reset each other. The
work item is simply retried, so callers never lose or double-count progress.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeVar

from codepuzzles.config import settings
from codepuzzles.utils.exceptions import LLMRateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RotatorState(str, Enum):
    SELECTING_CREDENTIAL = "selecting_credential"
    CALLING = "calling"
    BACKING_OFF = "backing_off"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Credential:
    api_key: str
    model: str
    key_number: int


class CredentialRotator:
    def __init__(
        self,
        api_keys: Sequence[str],
        models: Sequence[str],
        backoff_seconds: float = 0.0,
        exhausted_sleep_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_keys:
            raise ValueError("At least one Groq API key is required (GROQ_API_KEY)")
        if not models:
            raise ValueError("At least one model is required")

        self.api_keys = list(api_keys)
        self.models = list(models)
        self.backoff_seconds = backoff_seconds
        self.exhausted_sleep_seconds = (
            exhausted_sleep_seconds
            if exhausted_sleep_seconds is not None
            else settings.pool_exhausted_sleep_seconds
        )
        self._sleep = sleep

        self.key_index = 0
        self.model_index = 0
        self.state = RotatorState.SELECTING_CREDENTIAL

    @property
    def pool_size(self) -> int:
        return len(self.api_keys) * len(self.models)

    @property
    def current(self) -> Credential:
        return Credential(
            api_key=self.api_keys[self.key_index],
            model=self.models[self.model_index],
            key_number=self.key_index + 1,
        )

    def record_success(self) -> None:
        self.state = RotatorState.SELECTING_CREDENTIAL

    def record_rate_limit(self, failures: int) -> RotatorState:
        """
        Advance to the next model (then key) and return the resulting state.

        Args:
            failures: Rate limits the calling run has hit so far, this one included
        """
        previous = self.current

        self.model_index = (self.model_index + 1) % len(self.models)
        if self.model_index == 0:
            self.key_index = (self.key_index + 1) % len(self.api_keys)

        if failures >= self.pool_size:
            self.state = RotatorState.EXHAUSTED
            logger.warning(
                f"⚠️  Groq rate limit on every key/model ({self.pool_size} combinations)"
            )
        else:
            self.state = RotatorState.BACKING_OFF
            current = self.current
            logger.warning(
                f"⚠️  Groq rate limit (key #{previous.key_number}, {previous.model}); "
                f"switching to key #{current.key_number}, {current.model}"
            )
        return self.state

    async def run(
        self,
        call: Callable[[str, str], Awaitable[T]],
        wait_when_exhausted: bool = True,
    ) -> T:
        """
        Run ``call(api_key, model)`` until it completes without a rate limit.

        Args:
            call: The work item; retried as-is after each rotation
            wait_when_exhausted: Sleep and start over when the whole pool is
                rate limited; when False, raise instead

        Raises:
            LLMRateLimitError: pool exhausted and ``wait_when_exhausted`` is False
        """
        failures = 0
        while True:
            self.state = RotatorState.SELECTING_CREDENTIAL
            credential = self.current

            self.state = RotatorState.CALLING
            try:
                result = await call(credential.api_key, credential.model)
            except LLMRateLimitError:
                failures += 1
                state = self.record_rate_limit(failures)
                if state == RotatorState.EXHAUSTED:
                    if not wait_when_exhausted:
                        self.state = RotatorState.SELECTING_CREDENTIAL
                        raise
                    logger.warning(f"😴 All keys cycled. Sleeping {self.exhausted_sleep_seconds}s...")
                    await self._sleep(self.exhausted_sleep_seconds)
                    failures = 0
                elif self.backoff_seconds:
                    await self._sleep(self.backoff_seconds)
                continue

            self.record_success()
            return result


# Lazy singleton instance
_grading_rotator_instance = None


def get_grading_rotator() -> CredentialRotator:
    """Process-wide rotator over the configured keys for the grading model."""
    global _grading_rotator_instance
    if _grading_rotator_instance is None:
        _grading_rotator_instance = CredentialRotator(
            api_keys=settings.groq_api_keys,
            models=[settings.groq_grading_model],
        )
    return _grading_rotator_instance
