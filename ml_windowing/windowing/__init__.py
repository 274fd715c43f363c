"""
Lookback-window core.

Modules
-------
labels     Positive-label instant collection and ``(lo, hi]`` lookup
placement  Fixed and sliding candidate window placement
generator  The per-user walk: ``generate_windows()``
errors     ``SessionContractError`` for per-user input violations
"""

from ml_windowing.windowing.errors import SessionContractError
from ml_windowing.windowing.generator import generate_windows

__all__ = ["SessionContractError", "generate_windows"]
