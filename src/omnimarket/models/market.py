"""MarketRecord - canonical, platform-agnostic market listing."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

QUESTION_MAX_LEN = 500
RULES_MAX_LEN = 2000
UNTITLED_QUESTION = "Untitled Market"


class MarketRecord(BaseModel):
    """One market from one platform, after normalization.

    Serialized with camelCase aliases (externalId, totalVolume, ...) for the dashboard;
    volume24h is spelled out since to_camel would give volume24H.
    Volumes are plain decimal strings so clients never see float noise.
    last_updated is assigned by the store; values supplied here are ignored on write.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    external_id: str = Field(..., min_length=1)
    platform: str
    question: str = Field(UNTITLED_QUESTION, max_length=QUESTION_MAX_LEN)
    url: str
    total_volume: str = "0"
    volume_24h: str | None = Field(None, alias="volume24h")
    start_date: datetime | None = None
    end_date: datetime | None = None
    resolution_rules: str = Field("", max_length=RULES_MAX_LEN)
    last_updated: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Storage identity: (platform, external_id)."""
        return (self.platform, self.external_id)
