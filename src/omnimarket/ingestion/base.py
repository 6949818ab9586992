"""Source adapter contract for pluggable platforms (Polymarket, Kalshi, ...)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from omnimarket.models import MarketRecord

log = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0


@dataclass
class FetchResult:
    """Outcome of one adapter fetch: records on success, empty records plus a diagnostic on failure."""

    platform: str
    records: list[MarketRecord] = field(default_factory=list)
    error: str | None = None
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, platform: str, error: str) -> FetchResult:
        return cls(platform=platform, records=[], error=error)


class SourceAdapter(ABC):
    """Fetch one platform's listings and normalize them to MarketRecord.

    Subclasses implement request_params/parse_payload; fetch() owns the HTTP call
    and turns every failure into a FetchResult instead of raising.
    """

    platform: str = ""
    endpoint: str = ""

    def __init__(
        self,
        base_url: str,
        limit: int = 100,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self.timeout = timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    @abstractmethod
    def request_params(self) -> dict[str, Any]:
        """Query parameters: result cap and the platform's active/open filter."""
        ...

    @abstractmethod
    def parse_payload(self, data: Any) -> FetchResult:
        """Validate the decoded JSON body and map it to records. May raise ValidationError."""
        ...

    async def fetch(self) -> FetchResult:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.url, params=self.request_params())
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            log.error("source_timeout", platform=self.platform, timeout=self.timeout, error=str(e))
            return FetchResult.failure(self.platform, f"timeout after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.error("source_http_error", platform=self.platform, status=status)
            return FetchResult.failure(self.platform, f"HTTP {status}")
        except httpx.HTTPError as e:
            log.error("source_request_failed", platform=self.platform, error=str(e))
            return FetchResult.failure(self.platform, str(e) or type(e).__name__)
        except ValueError as e:
            log.error("source_bad_json", platform=self.platform, error=str(e))
            return FetchResult.failure(self.platform, "response body is not valid JSON")

        try:
            result = self.parse_payload(data)
        except ValidationError as e:
            log.error("source_unexpected_shape", platform=self.platform, errors=e.error_count())
            return FetchResult.failure(self.platform, "unexpected response shape")
        log.info(
            "source_fetched",
            platform=self.platform,
            count=len(result.records),
            skipped=result.skipped,
        )
        return result
