"""Retry orchestration for record store reads.

Reads are idempotent, so transient store failures are retried with an
exponential backoff. Writes are never routed through these helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from tenacity import (  # type: ignore[import-not-found]
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import RecordStoreSettings

from .errors import StoreError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for Tenacity retry execution."""

    attempts: int = 3
    initial_delay: float = 0.2
    max_delay: float = 2.0
    backoff_multiplier: float = 2.0
    retry_exceptions: tuple[type[BaseException], ...] = (StoreError,)

    @classmethod
    def from_settings(cls, settings: RecordStoreSettings) -> "RetryPolicy":
        return cls(
            attempts=settings.read_attempts,
            initial_delay=settings.initial_backoff_seconds,
            max_delay=settings.max_backoff_seconds,
        )


def _coerce_exceptions(
    exceptions: Iterable[type[BaseException]] | tuple[type[BaseException], ...]
) -> tuple[type[BaseException], ...]:
    if isinstance(exceptions, tuple):
        return exceptions
    return tuple(exceptions)


async def call_async_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    **kwargs: Any,
) -> T:
    """Execute async ``func`` with Tenacity retry semantics."""

    resolved_policy = policy or RetryPolicy()
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(
            _coerce_exceptions(resolved_policy.retry_exceptions)
        ),
        stop=stop_after_attempt(resolved_policy.attempts),
        wait=wait_exponential(
            multiplier=resolved_policy.initial_delay,
            min=resolved_policy.initial_delay,
            max=resolved_policy.max_delay,
            exp_base=resolved_policy.backoff_multiplier,
        ),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await func(*args, **kwargs)

    raise RuntimeError("Async retry loop terminated without executing the function.")


__all__ = ["RetryPolicy", "call_async_with_retry"]
