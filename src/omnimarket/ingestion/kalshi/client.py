"""Kalshi trade API adapter - market listings."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from omnimarket.ingestion.base import FetchResult, SourceAdapter
from omnimarket.ingestion.normalize import (
    clip_text,
    coerce_volume,
    first_present,
    safe_parse_date,
)
from omnimarket.models import QUESTION_MAX_LEN, RULES_MAX_LEN, UNTITLED_QUESTION, MarketRecord

log = structlog.get_logger(__name__)

KALSHI_API_BASE = "https://api.elections.kalshi.com/trade-api/v2"
KALSHI_HOME = "https://kalshi.com"
OPEN_STATUSES = frozenset({"open", "active"})


class KalshiMarketsResponse(BaseModel):
    """Envelope of GET /markets: {"markets": [...], "cursor": "..."}."""

    model_config = ConfigDict(extra="ignore")

    markets: list[Any] | None = None


class KalshiMarket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ticker: str | None = None
    title: str | None = None
    subtitle: str | None = None
    rules_primary: str | None = None
    status: str | None = None
    volume: Any = None
    recent_volume: Any = None
    last_24h_volume: Any = None
    volume_24h: Any = None
    open_time: Any = None
    close_time: Any = None
    open_date: Any = None
    close_date: Any = None

    @field_validator("ticker", mode="before")
    @classmethod
    def _ticker(cls, v: Any) -> str | None:
        if isinstance(v, str):
            return v.strip() or None
        return None

    @field_validator("title", "subtitle", "rules_primary", "status", mode="before")
    @classmethod
    def _text_or_none(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None

    @property
    def is_open(self) -> bool:
        return self.status is None or self.status.lower() in OPEN_STATUSES


def to_record(m: KalshiMarket) -> MarketRecord:
    """Convert a validated Kalshi entry to MarketRecord."""
    return MarketRecord(
        external_id=m.ticker,
        platform=KalshiAdapter.platform,
        question=clip_text(first_present(m.title, m.ticker), QUESTION_MAX_LEN, UNTITLED_QUESTION),
        url=f"{KALSHI_HOME}/markets/{m.ticker}",
        total_volume=coerce_volume(m.volume),
        volume_24h=coerce_volume(first_present(m.recent_volume, m.last_24h_volume, m.volume_24h)),
        start_date=safe_parse_date(first_present(m.open_time, m.open_date)),
        end_date=safe_parse_date(first_present(m.close_time, m.close_date)),
        resolution_rules=clip_text(first_present(m.rules_primary, m.subtitle), RULES_MAX_LEN, strip=False),
    )


class KalshiAdapter(SourceAdapter):
    """Kalshi /markets returns an object with a `markets` array."""

    platform = "kalshi"
    endpoint = "/markets"

    def __init__(self, base_url: str = KALSHI_API_BASE, **kwargs: Any) -> None:
        super().__init__(base_url, **kwargs)

    def request_params(self) -> dict[str, Any]:
        return {"limit": self.limit, "status": "open"}

    def parse_payload(self, data: Any) -> FetchResult:
        envelope = KalshiMarketsResponse.model_validate(data)
        rows = envelope.markets or []
        log.debug("kalshi_raw_count", count=len(rows))
        records: list[MarketRecord] = []
        skipped = 0
        for row in rows:
            try:
                m = KalshiMarket.model_validate(row)
            except ValidationError as e:
                skipped += 1
                log.warning("skip_market", platform=self.platform, error=str(e).splitlines()[0])
                continue
            if not m.ticker or not m.is_open:
                skipped += 1
                continue
            records.append(to_record(m))
        return FetchResult(platform=self.platform, records=records, skipped=skipped)
