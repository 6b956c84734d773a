"""offerdump: complete, deduplicated exports from a result-capped search API."""

__version__ = "0.1.0"
