"""HTTP fetcher for remote iCalendar feeds."""
import logging
import time
from urllib.parse import urlsplit

import requests

logger = logging.getLogger(__name__)

WEBCAL_PREFIX = 'webcal://'


class FeedFetchError(Exception):
    """Raised when a calendar feed cannot be retrieved."""


class InvalidFeedUrlError(FeedFetchError):
    """Raised when the feed URL is not an absolute http(s) URL."""


class FeedHTTPError(FeedFetchError):
    """Raised when the feed server answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, body: str):
        super().__init__(f"HTTP error {status_code}: {reason}")
        self.status_code = status_code
        self.reason = reason
        self.body = body


def normalize_feed_url(url: str) -> str:
    """
    Rewrite webcal:// subscription links to https://.

    Args:
        url: Feed URL as supplied by the caller

    Returns:
        URL usable with an HTTP client
    """
    url = url.strip()
    if url.lower().startswith(WEBCAL_PREFIX):
        return 'https://' + url[len(WEBCAL_PREFIX):]
    return url


def validate_feed_url(url: str) -> str:
    """
    Check that a feed URL is an absolute http(s) URL with a host.

    Args:
        url: Feed URL

    Returns:
        The URL unchanged

    Raises:
        InvalidFeedUrlError: If the URL cannot be fetched over HTTP
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError as e:
        raise InvalidFeedUrlError(f"Invalid url parameter: {e}") from e

    if parts.scheme not in ('http', 'https') or not hostname:
        raise InvalidFeedUrlError("Invalid url parameter: expected an http(s) URL")
    return url


class IcsFeedFetcher:
    """Fetcher for ICS feed text over HTTP(S)."""

    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, timeout: int = 30, max_retries: int = MAX_RETRIES):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts before giving up (default: 3)
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)

    def fetch(self, url: str) -> str:
        """
        Fetch feed text with retry logic.

        Connection errors, timeouts and 5xx responses are retried with
        exponential backoff; 4xx responses fail immediately.

        Args:
            url: Absolute http(s) feed URL

        Returns:
            Feed content as string

        Raises:
            FeedHTTPError: If the server answers with a non-2xx status
            requests.RequestException: If all retry attempts fail
        """
        hostname = urlsplit(url).hostname

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                logger.info(
                    f"Fetching calendar feed from {hostname} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    url,
                    timeout=self.timeout,
                    headers={'Accept': 'text/calendar, */*'}
                )
            except requests.RequestException as e:
                if last_attempt:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise
                self._backoff(attempt, e)
                continue

            if response.ok:
                if response.encoding is None or response.encoding.lower() == 'iso-8859-1':
                    response.encoding = 'utf-8'
                return response.text

            error = FeedHTTPError(response.status_code, response.reason or '', response.text)
            if response.status_code < 500 or last_attempt:
                logger.error(f"Calendar feed request failed: {error}")
                raise error
            self._backoff(attempt, error)

    def _backoff(self, attempt: int, error: Exception) -> None:
        delay = self.BASE_DELAY * (2 ** attempt)
        logger.warning(
            f"Request failed (attempt {attempt + 1}/{self.max_retries}): {error}. "
            f"Retrying in {delay} seconds..."
        )
        time.sleep(delay)
