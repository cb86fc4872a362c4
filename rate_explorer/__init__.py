"""Lease rate explorer: price matrices, overrides, scoring and market position."""

__version__ = "0.1.0"
