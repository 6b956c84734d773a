"""Pytest configuration providing a simulated search service and shared fixtures."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable
from urllib.parse import parse_qs

import httpx
import pytest

from offerdump.config import (
    ApiConfig,
    ConfigLocator,
    ConfigRepository,
    Credentials,
    ExportConfig,
    RetryConfig,
)
from offerdump.engine import RateLimitedClient, Span
from offerdump.engine.span import SEARCH_DATE_FORMAT

AUTH_URL = "https://auth.test/connexion/oauth2/access_token"
SEARCH_URL = "https://api.test/offres/search"

# 2023-01-01T00:00:00Z .. 2023-12-31T23:59:59Z
YEAR_START = 1672531200
YEAR_END = 1704067199


def _to_seconds(value: str) -> int:
    moment = datetime.strptime(value, SEARCH_DATE_FORMAT).replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


@dataclass
class SearchCall:
    span: Span
    first: int
    last: int

    @property
    def item_count(self) -> int:
        return self.last - self.first + 1


class FakeOfferService:
    """In-memory stand-in for the auth and search endpoints.

    Records are ``(created_at_seconds, record)`` pairs, where ``record`` is a
    dict or a raw JSON object string. Search answers 204 when nothing
    matches, 200 when the requested range covers every match and 206 with a
    ``Content-Range`` total otherwise, like the real API.
    """

    def __init__(self, records: list[tuple[int, dict | str]] | None = None, *, expires_in: int = 1499) -> None:
        self.records = sorted(records or [], key=lambda pair: pair[0])
        self.expires_in = expires_in
        self.auth_calls: list[dict[str, list[str]]] = []
        self.search_calls: list[SearchCall] = []
        self.authorization_headers: list[str] = []
        # queued overrides returned before normal handling: Response or Exception
        self.scripted: list[httpx.Response | Exception] = []
        self._lock = Lock()

    def add(self, created_at: int, **fields: Any) -> dict:
        record = {"id": fields.pop("id", f"offer-{len(self.records)}"), **fields}
        self.records.append((created_at, record))
        self.records.sort(key=lambda pair: pair[0])
        return record

    def add_raw(self, created_at: int, text: str) -> None:
        """Serve ``text`` verbatim as one result entry."""
        self.records.append((created_at, text))
        self.records.sort(key=lambda pair: pair[0])

    @property
    def probes(self) -> list[SearchCall]:
        return [call for call in self.search_calls if call.first == 0 and call.last == 0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            if request.url.path.endswith("access_token"):
                form = parse_qs(request.content.decode())
                self.auth_calls.append(form)
                token = f"token-{len(self.auth_calls)}"
                return httpx.Response(
                    200, json={"access_token": token, "expires_in": self.expires_in}
                )
            self.authorization_headers.append(request.headers.get("Authorization", ""))
            if self.scripted:
                scripted = self.scripted.pop(0)
                if isinstance(scripted, Exception):
                    raise scripted
                return scripted
            params = request.url.params
            first, last = (int(part) for part in params["range"].split("-"))
            span = Span(_to_seconds(params["minCreationDate"]), _to_seconds(params["maxCreationDate"]))
            self.search_calls.append(SearchCall(span, first, last))
            matches = [record for created, record in self.records if span.min <= created <= span.max]
        total = len(matches)
        if total == 0 or first >= total:
            return httpx.Response(204)
        entries = (
            record if isinstance(record, str) else json.dumps(record)
            for record in matches[first : last + 1]
        )
        body = ("{\"resultats\": [" + ", ".join(entries) + "]}").encode()
        if first == 0 and last + 1 >= total:
            return httpx.Response(200, content=body)
        return httpx.Response(
            206,
            content=body,
            headers={"Content-Range": f"offres {first}-{min(last, total - 1)}/{total}"},
        )

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fast_api() -> ApiConfig:
    return ApiConfig(auth_url=AUTH_URL, search_url=SEARCH_URL, max_requests_per_second=1000)


@pytest.fixture
def small_api() -> ApiConfig:
    """Tiny pages so partitioning kicks in with a handful of records."""
    return ApiConfig(
        auth_url=AUTH_URL,
        search_url=SEARCH_URL,
        max_requests_per_second=1000,
        max_items_per_page=5,
        max_pages=3,
    )


@pytest.fixture
def no_backoff() -> RetryConfig:
    return RetryConfig(max_attempts=5, backoff_base=0.0, backoff_max=0.0)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(client_id="client", client_secret="s3cret")


@pytest.fixture
def service() -> FakeOfferService:
    return FakeOfferService()


@pytest.fixture
def make_client(credentials, no_backoff) -> Callable[..., RateLimitedClient]:
    created: list[RateLimitedClient] = []

    def _builder(service: FakeOfferService, api: ApiConfig, **kwargs: Any) -> RateLimitedClient:
        kwargs.setdefault("retry", no_backoff)
        client = RateLimitedClient(api, credentials, transport=service.transport(), **kwargs)
        created.append(client)
        return client

    yield _builder
    for client in created:
        client.close()


@pytest.fixture
def export_config(small_api, no_backoff) -> Callable[..., ExportConfig]:
    def _builder(**overrides: Any) -> ExportConfig:
        base: dict[str, Any] = {"api": small_api, "retry": no_backoff, "workers": 4, "queue_size": 2}
        base.update(overrides)
        return ExportConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("OFFERDUMP_HOME", str(tmp_path))
    repository = ConfigRepository(ConfigLocator(project_root=tmp_path))
    yield repository
