"""
Retrying HTTP Transport Module
Performs single HTTP requests with exponential backoff and rate-limit handling.
"""

import math
import time
from typing import Callable, Dict, Optional

import requests

from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000


def is_retryable_status(status_code: int) -> bool:
    """429 and every 5xx are retried."""
    return status_code == 429 or status_code >= 500


def backoff_delay_ms(attempt: int) -> int:
    """Exponential backoff for a 1-based attempt number."""
    return min(BASE_DELAY_MS * (2 ** attempt), MAX_DELAY_MS)


def retry_after_ms(response: requests.Response) -> Optional[int]:
    """
    Retry-After in milliseconds, when present as a non-negative number of seconds.

    Anything else (HTTP dates, negatives, NaN) counts as absent.
    """
    value = response.headers.get('Retry-After')
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return int(seconds * 1000)


class RetryingTransport:
    """
    HTTP transport that retries transient failures.

    Only HTTP 429, 5xx and network-level errors are retried; everything
    else is returned to the caller untouched.
    """

    def __init__(
        self,
        session: requests.Session = None,
        max_attempts: int = MAX_ATTEMPTS,
        timeout: int = 30,
        requests_per_second: float = 0,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.session = session or self._create_session()
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self.requests_per_second = requests_per_second
        self._sleep = sleep
        self._last_request_time = 0.0

    def _create_session(self) -> requests.Session:
        """Create requests session with default headers."""
        session = requests.Session()
        session.headers.update({
            'Accept': 'application/json',
            'Content-Type': 'application/json'
        })
        return session

    def _rate_limit(self) -> None:
        """Apply rate limiting between requests."""
        if not self.requests_per_second or self.requests_per_second <= 0:
            return

        min_interval = 1.0 / self.requests_per_second
        elapsed = time.time() - self._last_request_time

        if elapsed < min_interval:
            self._sleep(min_interval - elapsed)

        self._last_request_time = time.time()

    def request(
        self,
        method: str,
        url: str,
        params: Dict = None,
        json_data=None,
        headers: Dict = None
    ) -> requests.Response:
        """
        Perform one logical request, retrying transient failures.

        Returns:
            The final response (possibly a 429/5xx after exhausting attempts)

        Raises:
            requests.exceptions.RequestException: the last network error
        """
        last_error: Optional[requests.exceptions.RequestException] = None

        for attempt in range(1, self.max_attempts + 1):
            self._rate_limit()

            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    headers=headers,
                    timeout=self.timeout
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay_ms = backoff_delay_ms(attempt)
                    logger.warning(
                        f"Network error on {method} {url}, retrying in {delay_ms}ms "
                        f"(attempt {attempt}/{self.max_attempts}): {e}"
                    )
                    self._sleep(delay_ms / 1000)
                continue

            if not is_retryable_status(response.status_code):
                return response

            if attempt >= self.max_attempts:
                logger.error(
                    f"HTTP {response.status_code} on {method} {url} after {attempt} attempts"
                )
                return response

            delay_ms = retry_after_ms(response)
            if delay_ms is None:
                delay_ms = backoff_delay_ms(attempt)

            logger.warning(
                f"HTTP {response.status_code} on {method} {url}, retrying in {delay_ms}ms "
                f"(attempt {attempt}/{self.max_attempts})"
            )
            self._sleep(delay_ms / 1000)

        logger.error(f"Request failed after {self.max_attempts} attempts: {last_error}")
        raise last_error
