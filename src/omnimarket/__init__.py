"""OmniMarket - prediction market listings aggregated across platforms."""

__version__ = "0.1.0"
