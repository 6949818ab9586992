"""Canonical schema (Pydantic) - MarketRecord."""

from omnimarket.models.market import (
    QUESTION_MAX_LEN,
    RULES_MAX_LEN,
    UNTITLED_QUESTION,
    MarketRecord,
)

__all__ = [
    "MarketRecord",
    "QUESTION_MAX_LEN",
    "RULES_MAX_LEN",
    "UNTITLED_QUESTION",
]
