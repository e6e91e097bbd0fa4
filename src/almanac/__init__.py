"""Almanac — incremental and reconciled behavioral analytics for journaling data."""

__version__ = "0.1.0"
