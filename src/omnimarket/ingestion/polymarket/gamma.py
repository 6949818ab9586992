"""Polymarket Gamma API adapter - market listings."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from omnimarket.ingestion.base import FetchResult, SourceAdapter
from omnimarket.ingestion.normalize import (
    clip_text,
    coerce_volume,
    first_present,
    safe_parse_date,
)
from omnimarket.models import QUESTION_MAX_LEN, RULES_MAX_LEN, UNTITLED_QUESTION, MarketRecord

log = structlog.get_logger(__name__)

GAMMA_API_BASE = "https://gamma-api.polymarket.com"
POLYMARKET_HOME = "https://polymarket.com"

_rows = TypeAdapter(list[Any])


class GammaMarket(BaseModel):
    """The subset of a Gamma /markets entry we read. Numeric and date fields stay raw for safe parsing."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | None = None
    ticker: str | None = None
    question: str | None = None
    title: str | None = None
    slug: str | None = None
    description: str | None = None
    active: bool | None = None
    closed: bool | None = None
    volume: Any = None
    volume24hr: Any = None
    volume_24h: Any = None
    volume_24hr_alt: Any = Field(None, alias="24hr_volume")
    start_date: Any = Field(None, alias="startDate")
    end_date: Any = Field(None, alias="endDate")

    @field_validator("id", "ticker", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str | None:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, str)):
            return str(v).strip() or None
        return None

    @field_validator("question", "title", "slug", "description", mode="before")
    @classmethod
    def _text_or_none(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None

    @property
    def external_id(self) -> str | None:
        return self.id or self.ticker

    @property
    def is_open(self) -> bool:
        return bool(self.active) and not self.closed


def to_record(m: GammaMarket) -> MarketRecord:
    """Convert a validated Gamma entry to MarketRecord."""
    question = clip_text(first_present(m.question, m.title), QUESTION_MAX_LEN, UNTITLED_QUESTION)
    url = f"{POLYMARKET_HOME}/event/{m.slug}" if m.slug else POLYMARKET_HOME
    return MarketRecord(
        external_id=m.external_id,
        platform=PolymarketAdapter.platform,
        question=question,
        url=url,
        total_volume=coerce_volume(m.volume),
        volume_24h=coerce_volume(first_present(m.volume24hr, m.volume_24h, m.volume_24hr_alt)),
        start_date=safe_parse_date(m.start_date),
        end_date=safe_parse_date(m.end_date),
        resolution_rules=clip_text(m.description, RULES_MAX_LEN, strip=False),
    )


class PolymarketAdapter(SourceAdapter):
    """Gamma /markets returns a bare JSON array."""

    platform = "polymarket"
    endpoint = "/markets"

    def __init__(self, base_url: str = GAMMA_API_BASE, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)

    def request_params(self) -> dict[str, Any]:
        return {"active": "true", "closed": "false", "limit": self.limit}

    def parse_payload(self, data: Any) -> FetchResult:
        rows = _rows.validate_python(data)
        records: list[MarketRecord] = []
        skipped = 0
        for row in rows:
            try:
                m = GammaMarket.model_validate(row)
            except ValidationError as e:
                skipped += 1
                log.warning("skip_market", platform=self.platform, error=str(e).splitlines()[0])
                continue
            if not m.external_id or not m.is_open:
                skipped += 1
                continue
            records.append(to_record(m))
        return FetchResult(platform=self.platform, records=records, skipped=skipped)
