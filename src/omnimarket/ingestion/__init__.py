"""Source adapters and the refresh scheduler."""
