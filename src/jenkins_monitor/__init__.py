"""Jenkins schedule-compliance monitor."""

__version__ = "0.1.0"
