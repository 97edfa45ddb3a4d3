"""Resilient document retrieval.

The fetcher is a small state machine around one ``requests.Session``::

    IDLE -> ATTEMPTING -> SUCCESS
                       -> RETRYABLE -> DELAY -> ATTEMPTING
                       -> FATAL

Transient failures (connection errors, timeouts, 5xx, undersized bodies)
and rate limiting (HTTP 429) draw from two separate budgets with different
delay curves. Redirects re-target the loop without consuming either budget.
"""

import codecs
import gzip
import logging
import random
import time
import zlib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Callable, List, Optional

import requests  # type: ignore[import-untyped]

from productscrape.config import ScraperConfig, RetryPolicy
from productscrape.errors import DEFAULT_MESSAGES, ErrorKind, FetchError
from productscrape.logging_config import get_logger, log_scrape_event
from productscrape.models import Document, FetchAttempt, FetchOutcome
from productscrape.url_utils import absolute_url

__all__ = [
    "Fetcher",
    "FetchState",
    "create_session",
    "rate_limit_delay",
    "parse_retry_after",
    "decode_body",
    "detect_bot_challenge",
]

logger = get_logger("fetcher")


class FetchState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    DELAY = "delay"
    SUCCESS = "success"
    FATAL = "fatal"


@dataclass
class _AttemptResult:
    """What one HTTP round trip produced, before budgets are consulted."""

    outcome: FetchOutcome
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    status_code: Optional[int] = None
    document: Optional[Document] = None
    redirect_to: Optional[str] = None
    retry_after: Optional[float] = None


def create_session(config: Optional[ScraperConfig] = None) -> requests.Session:
    """Create a requests Session with browser-like default headers.

    Redirects are handled by the fetcher itself, so the session is only
    used for transport, cookies and transparent gzip/deflate decoding.
    """
    config = config or ScraperConfig()
    session = requests.Session()
    session.headers.update(dict(config.headers))
    return session


def rate_limit_delay(
    policy: RetryPolicy,
    attempt: int,
    retry_after: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay (seconds) before the ``attempt``-th retry of a rate-limited request.

    A server-suggested ``Retry-After`` wins when the policy respects it.
    Otherwise the delay grows exponentially with up to 10% jitter. Either
    way the result never exceeds ``policy.rate_limit_max_delay``.
    """
    cap = policy.rate_limit_max_delay
    if retry_after is not None and policy.respect_retry_after:
        return min(cap, max(0.0, retry_after))

    rng = rng or random
    backoff = min(
        cap,
        policy.rate_limit_base_delay * policy.rate_limit_multiplier ** (max(attempt, 1) - 1),
    )
    jitter = backoff * rng.uniform(0, 0.1)
    return min(cap, backoff + jitter)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def decode_body(content: bytes, content_encoding: str = "", charset: Optional[str] = None) -> str:
    """Decompress (if still compressed) and decode a response body.

    urllib3 already undoes the transport encoding it understands; this
    catches bodies that still carry gzip or deflate bytes, e.g. when a
    server double-encodes or mislabels the response.
    """
    encoding = (content_encoding or "").lower()
    if content[:2] == b"\x1f\x8b":
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError, zlib.error):
            pass
    elif "deflate" in encoding:
        for wbits in (zlib.MAX_WBITS, -zlib.MAX_WBITS):
            try:
                content = zlib.decompress(content, wbits)
                break
            except zlib.error:
                continue
    if charset:
        try:
            codecs.lookup(charset)
        except LookupError:
            logger.warning(f"Unknown charset {charset!r}, decoding as utf-8")
            charset = None
    return content.decode(charset or "utf-8", errors="replace")


def detect_bot_challenge(html: str, signatures) -> Optional[str]:
    """Return the first bot-challenge signature found in the page, if any."""
    lowered = html.lower()
    for signature in signatures:
        if signature in lowered:
            return signature
    return None


def _declared_charset(response: requests.Response) -> Optional[str]:
    content_type = response.headers.get("Content-Type", "")
    if "charset=" in content_type.lower():
        return response.encoding
    return None


class Fetcher:
    """Fetches one URL at a time under two independent retry budgets.

    Args:
        config: Timing, budget and header configuration.
        session: requests Session used for transport (one per request).
        sleep: Blocking sleep function; injectable for tests.
        rng: Random source for User-Agent rotation and jitter.
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or ScraperConfig()
        self.session = session or create_session(self.config)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.state = FetchState.IDLE

    def fetch(self, url: str) -> Document:
        """GET ``url`` and return the decoded document.

        Raises:
            FetchError: On a fatal outcome, or when the budget for the
                last retryable failure is exhausted.
        """
        policy = self.config.retry
        transient_left = policy.max_retries
        rate_limit_left = policy.rate_limit_max_retries
        rate_limit_retries = 0
        redirects = 0
        attempts: List[FetchAttempt] = []
        current_url = url
        delay = 0.0

        while True:
            if delay > 0:
                self.state = FetchState.DELAY
                self._sleep(delay)

            self.state = FetchState.ATTEMPTING
            result = self._attempt(current_url)
            attempts.append(
                FetchAttempt(
                    attempt_number=len(attempts) + 1,
                    delay_before_ms=int(round(delay * 1000)),
                    outcome=result.outcome,
                    url=current_url,
                    reason=result.reason,
                    status_code=result.status_code,
                )
            )

            if result.redirect_to is not None:
                redirects += 1
                if redirects > self.config.max_redirects:
                    self.state = FetchState.FATAL
                    raise self._error(
                        ErrorKind.UPSTREAM_SERVER_ERROR,
                        f"Too many redirects while fetching {url}",
                        url, attempts,
                    )
                logger.info(f"Following redirect to: {result.redirect_to}")
                current_url = result.redirect_to
                delay = 0.0
                continue

            if result.outcome is FetchOutcome.SUCCESS:
                self.state = FetchState.SUCCESS
                document = result.document
                return Document(
                    url=document.url,
                    html=document.html,
                    status_code=document.status_code,
                    bot_challenge=document.bot_challenge,
                    attempts=tuple(attempts),
                )

            if result.outcome is FetchOutcome.FATAL:
                self.state = FetchState.FATAL
                if result.kind is ErrorKind.INVALID_INPUT and redirects > 0:
                    # Bad Location header from upstream
                    result.kind = ErrorKind.UPSTREAM_SERVER_ERROR
                    result.reason = f"Invalid redirect target: {result.reason}"
                logger.error(f"Fatal fetch failure for {current_url}: {result.reason}")
                raise self._error(result.kind, result.reason, current_url, attempts)

            # Retryable: pick the budget by cause
            if result.kind is ErrorKind.RATE_LIMITED:
                if rate_limit_left <= 0:
                    self.state = FetchState.FATAL
                    logger.error(f"Rate limit budget exhausted for {current_url}")
                    raise self._error(result.kind, result.reason, current_url, attempts)
                rate_limit_left -= 1
                rate_limit_retries += 1
                delay = rate_limit_delay(policy, rate_limit_retries, result.retry_after, self._rng)
                budget_text = f"rate limit retry {rate_limit_retries}/{policy.rate_limit_max_retries}"
            else:
                if transient_left <= 0:
                    self.state = FetchState.FATAL
                    logger.error(f"Retry budget exhausted for {current_url}: {result.reason}")
                    raise self._error(result.kind, result.reason, current_url, attempts)
                transient_left -= 1
                delay = policy.base_delay
                used = policy.max_retries - transient_left
                budget_text = f"retry {used}/{policy.max_retries}"

            logger.warning(f"{result.reason}, backing off {delay:.2f}s ({budget_text}): {current_url}")
            log_scrape_event(
                "fetch_retry",
                {
                    "url": current_url,
                    "kind": result.kind.value,
                    "reason": result.reason,
                    "delay_s": round(delay, 3),
                    "attempt": len(attempts),
                },
                logger_name="fetcher",
            )

    def _attempt(self, url: str) -> _AttemptResult:
        """Perform one GET and classify what came back."""
        headers = {"User-Agent": self._rng.choice(self.config.user_agents)}
        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.config.request_timeout,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            return _AttemptResult(FetchOutcome.RETRYABLE, ErrorKind.TIMEOUT, f"Request timeout: {e}")
        except requests.exceptions.ConnectionError as e:
            return _AttemptResult(
                FetchOutcome.RETRYABLE, ErrorKind.NETWORK_ERROR, f"Connection error: {e}"
            )
        except requests.exceptions.ContentDecodingError as e:
            return _AttemptResult(
                FetchOutcome.RETRYABLE, ErrorKind.NETWORK_ERROR, f"Could not decode response: {e}"
            )
        except requests.exceptions.ChunkedEncodingError as e:
            return _AttemptResult(
                FetchOutcome.RETRYABLE, ErrorKind.NETWORK_ERROR, f"Incomplete response body: {e}"
            )
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            return _AttemptResult(FetchOutcome.FATAL, ErrorKind.INVALID_INPUT, f"Invalid URL: {e}")
        except requests.exceptions.RequestException as e:
            return _AttemptResult(FetchOutcome.FATAL, ErrorKind.NETWORK_ERROR, f"Request failed: {e}")

        status = response.status_code

        if 300 <= status < 400:
            location = response.headers.get("Location")
            if location:
                return _AttemptResult(
                    FetchOutcome.SUCCESS,
                    status_code=status,
                    reason=f"HTTP {status} redirect",
                    redirect_to=absolute_url(url, location),
                )
            return _AttemptResult(
                FetchOutcome.FATAL, ErrorKind.UPSTREAM_SERVER_ERROR,
                f"HTTP {status}: redirect without Location", status,
            )

        if status == 429:
            return _AttemptResult(
                FetchOutcome.RETRYABLE,
                ErrorKind.RATE_LIMITED,
                "HTTP 429: Too Many Requests",
                status,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        if status >= 500:
            return _AttemptResult(
                FetchOutcome.RETRYABLE, ErrorKind.UPSTREAM_SERVER_ERROR,
                f"HTTP {status}: {response.reason}", status,
            )

        if status >= 400:
            return _AttemptResult(
                FetchOutcome.FATAL, ErrorKind.UPSTREAM_SERVER_ERROR,
                f"HTTP {status}: {response.reason}", status,
            )

        content = response.content or b""
        if len(content) < self.config.min_response_bytes:
            return _AttemptResult(
                FetchOutcome.RETRYABLE,
                ErrorKind.NETWORK_ERROR,
                f"Received empty or incomplete response ({len(content)} bytes)",
                status,
            )

        html = decode_body(
            content,
            response.headers.get("Content-Encoding", ""),
            _declared_charset(response),
        )
        logger.info(f"Received HTML response ({len(html)} characters) from {url}")

        signature = detect_bot_challenge(html, self.config.bot_challenge_signatures)
        if signature:
            # Soft fail: challenge pages sometimes still carry cached content
            logger.warning(f"Bot challenge signature '{signature}' in response from {url}")
            log_scrape_event(
                "bot_challenge",
                {"url": url, "signature": signature, "kind": ErrorKind.BOT_CHALLENGE.value},
                level=logging.WARNING,
                logger_name="fetcher",
            )

        return _AttemptResult(
            FetchOutcome.SUCCESS,
            status_code=status,
            document=Document(
                url=url, html=html, status_code=status, bot_challenge=signature is not None
            ),
        )

    @staticmethod
    def _error(kind: ErrorKind, reason: str, url: str, attempts: List[FetchAttempt]) -> FetchError:
        plural = "s" if len(attempts) != 1 else ""
        return FetchError(
            f"{DEFAULT_MESSAGES[kind]} ({reason}; {len(attempts)} attempt{plural})",
            kind=kind,
            url=url,
            attempts=tuple(attempts),
            reason=reason,
        )
