"""Utility modules."""

from teleconsulta.utils.time import as_utc, format_seconds, utc_now

__all__ = ["as_utc", "format_seconds", "utc_now"]
