"""Rate-limited, token-refreshing HTTP client for the offers search API."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

import httpx
import structlog

from ..config import ApiConfig, Credentials, RetryConfig
from .errors import AuthenticationError, IntegrityError, RetryExhaustedError, UnexpectedStatusError
from .span import Span


@dataclass(slots=True)
class AuthState:
    """Token, its expiry and the rate gate, all on the client's clock."""

    token: str = ""
    expiry: float = 0.0
    next_allowed: float = 0.0


@dataclass(slots=True)
class SearchPage:
    """Raw page body plus the true match count when the server reported one."""

    body: bytes
    remaining: int

    @property
    def empty(self) -> bool:
        return not self.body


def parse_content_range(value: str | None) -> int:
    """Extract the total from a ``<unit> <first>-<last>/<total>`` header."""

    if not value:
        raise IntegrityError("Partial content response without Content-Range header")
    _, _, total = value.partition("/")
    try:
        count = int(total.strip())
    except ValueError as exc:
        raise IntegrityError(f"Malformed Content-Range header: {value!r}") from exc
    if count < 0:
        raise IntegrityError(f"Negative total in Content-Range header: {value!r}")
    return count


class RateLimitedClient:
    """Funnel every request through one token and one global rate gate.

    ``lock`` guards :class:`AuthState`. Every caller, whether a partition
    probe or a worker page fetch, holds it while waiting for its slot, so
    consecutive requests start at least ``1 / max_requests_per_second``
    apart no matter how many threads share the client.
    """

    def __init__(
        self,
        api: ApiConfig,
        credentials: Credentials,
        retry: RetryConfig | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.api = api
        self.credentials = credentials
        self.retry = retry or RetryConfig()
        self.logger = logger or structlog.get_logger("offerdump.client")
        self.state = AuthState()
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._request_count = 0
        self._client = httpx.Client(timeout=api.timeout, transport=transport)
        try:
            self.authenticate()
        except Exception:
            self._client.close()
            raise

    @property
    def lock(self) -> Lock:
        return self._lock

    @property
    def request_count(self) -> int:
        """Number of search requests issued so far, retries included."""
        return self._request_count

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RateLimitedClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    def authenticate(self) -> None:
        with self._lock:
            self._wait_for_slot()
            self._renew_token()

    def fetch_page(self, span: Span, page_index: int, item_count: int) -> SearchPage:
        per_page = self.api.max_items_per_page
        if not 0 <= page_index < self.api.max_pages:
            raise ValueError(f"page_index must be in [0, {self.api.max_pages}): {page_index}")
        if not 0 < item_count <= per_page:
            raise ValueError(f"item_count must be in (0, {per_page}]: {item_count}")
        first = per_page * page_index
        min_date, max_date = span.search_bounds()
        params = {
            "range": f"{first}-{first + item_count - 1}",
            "sort": "1",
            "minCreationDate": min_date,
            "maxCreationDate": max_date,
        }

        attempt = 0
        while True:
            attempt += 1
            token = self._acquire()
            try:
                response = self._client.get(
                    self.api.search_url, params=params, headers={"Authorization": token}
                )
            except httpx.TransportError as exc:
                self.logger.warning(
                    "transport_error",
                    span=str(span),
                    page=page_index,
                    attempt=attempt,
                    error=str(exc),
                )
                last_error = str(exc)
            else:
                status = response.status_code
                if status == httpx.codes.NO_CONTENT:
                    return SearchPage(b"", 0)
                if status == httpx.codes.OK:
                    return SearchPage(response.content, 0)
                if status == httpx.codes.PARTIAL_CONTENT:
                    total = parse_content_range(response.headers.get("Content-Range"))
                    return SearchPage(response.content, total)
                if status != httpx.codes.TOO_MANY_REQUESTS:
                    raise UnexpectedStatusError(status, response.reason_phrase)
                self.logger.warning(
                    "rate_limited", span=str(span), page=page_index, attempt=attempt
                )
                last_error = f"{status} {response.reason_phrase}"

            if self._exhausted(attempt):
                raise RetryExhaustedError(attempt, last_error)
            self._sleep(self._backoff(attempt))

    # ------------------------------------------------------------------
    def _acquire(self) -> str:
        with self._lock:
            self._wait_for_slot()
            if self._clock() >= self.state.expiry:
                self._renew_token()
            self._request_count += 1
            return self.state.token

    def _wait_for_slot(self) -> None:
        # caller holds self._lock
        now = self._clock()
        delay = self.state.next_allowed - now
        if delay > 0:
            self._sleep(delay)
            now = self._clock()
        self.state.next_allowed = now + self.api.min_request_interval

    def _renew_token(self) -> None:
        # caller holds self._lock
        payload = {
            "grant_type": "client_credentials",
            "scope": self.api.scope,
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret.get_secret_value(),
        }
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._client.post(
                    self.api.auth_url, params={"realm": self.api.auth_realm}, data=payload
                )
                break
            except httpx.TransportError as exc:
                self.logger.warning("auth_transport_error", attempt=attempt, error=str(exc))
                if self._exhausted(attempt):
                    raise RetryExhaustedError(attempt, str(exc)) from exc
                self._sleep(self._backoff(attempt))

        if response.status_code != httpx.codes.OK:
            raise AuthenticationError(
                f"Authentication failed: {response.status_code} {response.reason_phrase}"
            )
        try:
            body = response.json()
            access_token = str(body["access_token"])
            expires_in = float(body["expires_in"])
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthenticationError("Malformed token response") from exc

        self.state.token = f"Bearer {access_token}"
        self.state.expiry = self._clock() + expires_in - self.api.token_margin_seconds
        self.logger.info("token_renewed", expires_in=expires_in)

    def _exhausted(self, attempt: int) -> bool:
        limit = self.retry.max_attempts
        return limit is not None and attempt >= limit

    def _backoff(self, attempt: int) -> float:
        delay = min(self.retry.backoff_max, self.retry.backoff_base * 2 ** (attempt - 1))
        return random.uniform(delay / 2, delay)


__all__ = ["AuthState", "RateLimitedClient", "SearchPage", "parse_content_range"]
