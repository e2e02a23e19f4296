"""HTTP download with a bounded, fixed-delay retry budget."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from functools import partial
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from pagevault.media.models import FetchResult
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "pagevault/0.1 (media cache)"

DEFAULT_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_TIMEOUT = 30


class _Transient(Exception):
    """A failed attempt that is worth retrying."""

    def __init__(self, reason: str, status: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status = status


class Fetcher:
    """Download remote bytes, retrying transient failures.

    Non-2xx responses, empty bodies, and network errors are all retried
    the same way.  Nothing is written to disk here, so an exhausted retry
    budget never leaves a partial file behind.
    """

    def __init__(
        self,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.attempts = max(1, attempts)
        self.retry_delay = max(0.0, retry_delay)
        self.timeout = timeout
        self._sleep = sleep

    def fetch(self, url: str) -> FetchResult:
        """Fetch ``url`` and return its body, or a failed result."""
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(_Transient),
            sleep=self._sleep,
            after=partial(self._log_failed_attempt, url),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    result = self._attempt(url, attempt.retry_state.attempt_number)
        except _Transient as exc:
            logger.warning("Giving up on %s after %d attempts", url[:80], self.attempts)
            return FetchResult(
                url=url, status=exc.status, attempts=self.attempts, error=exc.reason
            )
        return result

    def _attempt(self, url: str, attempt: int) -> FetchResult:
        """Run one request; raise _Transient for anything retryable."""
        try:
            request = Request(url, headers={"User-Agent": _USER_AGENT})  # noqa: S310
            with urlopen(request, timeout=self.timeout) as response:  # noqa: S310
                status = response.status
                content_type = response.headers.get("Content-Type", "")
                data = response.read()
        except HTTPError as exc:
            raise _Transient(f"HTTP {exc.code}", exc.code) from exc
        except ValueError as exc:
            # Malformed URL: retrying cannot help.
            logger.warning("Cannot fetch %s: %s", url, exc)
            return FetchResult(url=url, attempts=attempt, error=f"Invalid URL: {exc}")
        except (URLError, TimeoutError, OSError, HTTPException) as exc:
            raise _Transient(f"Network error: {exc}") from exc

        if status is not None and not 200 <= status < 300:
            raise _Transient(f"HTTP {status}", status)
        if not data:
            raise _Transient("Empty response body", status)
        return FetchResult(
            url=url,
            data=data,
            status=status,
            content_type=content_type,
            attempts=attempt,
            success=True,
        )

    def _log_failed_attempt(self, url: str, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Download failed for %s (attempt %d/%d): %s",
            url[:80],
            retry_state.attempt_number,
            self.attempts,
            exc,
        )
