"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. store_unavailable")


# --- Market totals (dashboard stats cards) ---
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlatformTotals(_CamelModel):
    platform: str
    market_count: int
    total_volume: str
    volume_24h: str = Field(..., alias="volume24h")


class MarketTotalsResponse(_CamelModel):
    market_count: int
    total_volume: str = Field(..., description="Sum of totalVolume over visible markets")
    volume_24h: str = Field(..., alias="volume24h")
    by_platform: list[PlatformTotals] = Field(default_factory=list)
