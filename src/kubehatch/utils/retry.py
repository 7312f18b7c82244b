"""Deadline-bounded polling for kubehatch."""

import threading
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_any,
    retry_if_exception_type,
    retry_if_result,
    stop_after_delay,
    stop_any,
    wait_fixed,
)

from kubehatch.core.config import PollSettings
from kubehatch.core.exceptions import ProvisioningTimeoutError
from kubehatch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation signal shared by polling loops.

    Sleeping through the token means a cancel wakes the poll immediately.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)


def poll_until(
    attempt: Callable[[], T | None],
    settings: PollSettings,
    description: str,
    cancel: CancellationToken | None = None,
    retry_on: tuple[type[Exception], ...] = (),
    timeout_error: type[ProvisioningTimeoutError] = ProvisioningTimeoutError,
) -> T:
    """Call ``attempt`` at a fixed interval until it returns a value.

    An attempt that returns None, or raises one of ``retry_on``, is retried
    until ``settings.timeout_seconds`` have elapsed since the first attempt.
    Any other exception propagates immediately.

    Args:
        attempt: Zero-argument callable returning a result or None
        settings: Interval and deadline
        description: What is being waited for (used in logs and errors)
        cancel: Optional cancellation token
        retry_on: Exception types treated as "not ready yet"
        timeout_error: Exception type raised when the deadline passes

    Returns:
        The first non-None result

    Raises:
        ProvisioningTimeoutError: If the deadline passes or the token is cancelled
    """
    token = cancel or CancellationToken()

    def stop_when_cancelled(retry_state: RetryCallState) -> bool:
        return token.cancelled

    def before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exception = outcome.exception()
            logger.debug(
                "poll_attempt_failed",
                target=description,
                attempt=retry_state.attempt_number,
                exception=type(exception).__name__,
                message=str(exception),
            )
        else:
            logger.debug(
                "poll_not_ready",
                target=description,
                attempt=retry_state.attempt_number,
                elapsed_seconds=round(retry_state.seconds_since_start or 0.0, 1),
            )

    retrying = Retrying(
        retry=retry_any(
            retry_if_result(lambda result: result is None),
            retry_if_exception_type(retry_on),
        ),
        stop=stop_any(stop_after_delay(settings.timeout_seconds), stop_when_cancelled),
        wait=wait_fixed(settings.interval_seconds),
        sleep=token.wait,
        before_sleep=before_sleep,
    )

    try:
        return retrying(attempt)
    except RetryError as e:
        attempts = e.last_attempt.attempt_number
        if token.cancelled:
            logger.warning("poll_cancelled", target=description, attempts=attempts)
            raise timeout_error(f"Cancelled while waiting for {description}") from e

        logger.warning(
            "poll_timed_out",
            target=description,
            attempts=attempts,
            timeout_seconds=settings.timeout_seconds,
        )
        raise timeout_error(
            f"Timed out after {settings.timeout_seconds:g}s waiting for {description}"
        ) from e
