import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import backoff

from ideaqueue.specs.common.errors import FulfillmentTimeout, JobCancelled, is_retryable

T = TypeVar("T")


class CancellationToken:
    """Per-run cancellation flag that poll loops can wait on."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled(self.run_id)

    def sleep(self, seconds: float) -> None:
        """Suspend for ``seconds`` unless cancelled first."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise JobCancelled(self.run_id)


def poll_until(
    check: Callable[[], Optional[T]],
    *,
    attempts: int,
    interval: float,
    description: str,
    token: Optional[CancellationToken] = None,
) -> T:
    """Call ``check`` until it returns a value, at most ``attempts`` times.

    Raises FulfillmentTimeout once every attempt is used and JobCancelled if the
    token fires between polls.
    """
    for attempt in range(1, attempts + 1):
        if token is not None:
            token.raise_if_cancelled()
        result = check()
        if result is not None:
            return result
        if attempt < attempts:
            if token is not None:
                token.sleep(interval)
            elif interval > 0:
                time.sleep(interval)
    raise FulfillmentTimeout(
        f"{description} timed out",
        details={"attempts": attempts, "intervalSeconds": interval},
    )


def run_with_retries(
    operation: Callable[[], T],
    *,
    max_tries: int,
    factor: float = 1.0,
    max_value: Optional[float] = 60.0,
    on_backoff: Optional[Callable[[Dict[str, Any]], None]] = None,
) -> T:
    """Execute ``operation`` with exponential backoff.

    Only retryable failures are retried (see ``is_retryable``); everything
    else is raised on the first attempt.
    """
    handlers = [on_backoff] if on_backoff else []

    @backoff.on_exception(
        backoff.expo,
        Exception,
        max_tries=max(1, max_tries),
        giveup=lambda exc: not is_retryable(exc),
        factor=factor,
        max_value=max_value,
        on_backoff=handlers,
    )
    def _attempt() -> T:
        return operation()

    return _attempt()
