"""ML data windowing: per-user session histories → labeled lookback windows."""

__version__ = "0.1.0"
