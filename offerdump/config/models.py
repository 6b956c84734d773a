"""Pydantic models used across the offerdump configuration flow."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

LOCAL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class ApiConfig(BaseModel):
    """Remote endpoints and the hard limits they impose."""

    auth_url: str = "https://entreprise.pole-emploi.fr/connexion/oauth2/access_token"
    auth_realm: str = "/partenaire"
    scope: str = "api_offresdemploiv2 o2dsoffre"
    search_url: str = "https://api.pole-emploi.io/partenaire/offresdemploi/v2/offres/search"
    max_items_per_page: int = Field(default=150, gt=0)
    max_pages: int = Field(default=21, gt=0)
    max_requests_per_second: float = Field(default=4.0, gt=0)
    # subtracted from the server-reported token validity
    token_margin_seconds: float = Field(default=10.0, ge=0)
    timeout: float = Field(default=30.0, gt=0)

    @property
    def max_items(self) -> int:
        """Upper bound on matches a single query can ever return."""
        return self.max_items_per_page * self.max_pages

    @property
    def min_request_interval(self) -> float:
        return 1.0 / self.max_requests_per_second


class RetryConfig(BaseModel):
    """Bounded retry policy for transient request failures.

    ``max_attempts = None`` retries forever; the rate gate still spaces the
    attempts out.
    """

    max_attempts: int | None = Field(default=10, ge=1)
    backoff_base: float = Field(default=0.5, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def _validate_backoff(self) -> "RetryConfig":
        if self.backoff_max < self.backoff_base:
            raise ValueError("backoff_max must be >= backoff_base")
        return self


class NormalizerConfig(BaseModel):
    """Text cleanup applied to the free-text fields of every record."""

    mojibake_marker: str = "Ã©"
    noise_characters: str = "*"
    gender_markers: list[str] = Field(
        default_factory=lambda: ["hf", "fh", "hfx", "fhx", "mf", "fm"]
    )
    description_field: str = "description"
    title_field: str = "intitule"
    clean_title: bool = False

    @field_validator("gender_markers", mode="before")
    @classmethod
    def _lower_markers(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            value = [value]
        return [str(item).casefold() for item in value]


class ExportConfig(BaseModel):
    """Everything the export pipeline needs besides credentials and the span."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)
    workers: int = Field(default=8, ge=1)
    queue_size: int = Field(default=16, ge=1)
    id_field: str = "id"
    output_format: Literal["jsonl", "framed"] = "jsonl"
    compression_level: int = Field(default=3, ge=1, le=22)
    on_unsplittable: Literal["warn", "fail"] = "warn"


class Credentials(BaseModel):
    """OAuth client credentials; the secret never shows up in reprs or logs."""

    client_id: str
    client_secret: SecretStr

    @field_validator("client_id")
    @classmethod
    def _require_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("client_id cannot be empty")
        return value.strip()


def _one_year_before(moment: datetime) -> datetime:
    try:
        return moment.replace(year=moment.year - 1)
    except ValueError:
        # 29 February
        return moment.replace(year=moment.year - 1, day=28)


class DateRange(BaseModel):
    """Local-time export window, defaulting to the last year."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse_local(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            try:
                return datetime.strptime(text, LOCAL_DATETIME_FORMAT)
            except ValueError as exc:
                raise ValueError(
                    f"Expected local time as YYYY-MM-DD HH:MM:SS, got {value!r}"
                ) from exc
        return value

    @model_validator(mode="after")
    def _validate_range(self) -> "DateRange":
        if self.start is not None and self.end is not None and self.end < self.start:
            raise ValueError("end must not be earlier than start")
        return self

    def resolve(self, reference_time: datetime | None = None) -> tuple[datetime, datetime]:
        now = reference_time or datetime.now().replace(microsecond=0)
        end = self.end or now
        start = self.start or _one_year_before(end)
        if end < start:
            raise ValueError("end must not be earlier than start")
        return start, end


__all__ = [
    "ApiConfig",
    "Credentials",
    "DateRange",
    "ExportConfig",
    "LOCAL_DATETIME_FORMAT",
    "NormalizerConfig",
    "RetryConfig",
]
