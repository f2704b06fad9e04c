"""
Presentation-time rounding helpers.

Analyzers keep full precision; values are rounded only when a result row is
turned into a response model.
"""

from __future__ import annotations

from typing import Any

import pandas as pd


def round_or_none(value: Any, digits: int = 0) -> float | None:
    """Round *value* to *digits* places, mapping null / NaN to ``None``."""
    if value is None or pd.isna(value):
        return None
    return round(float(value), digits)


def int_or_zero(value: Any) -> int:
    if value is None or pd.isna(value):
        return 0
    return int(value)


def str_or_none(value: Any) -> str | None:
    if value is None or pd.isna(value):
        return None
    return str(value)


def millions(value: Any, digits: int = 2) -> float | None:
    """Express a USD amount in millions, rounded for display."""
    if value is None or pd.isna(value):
        return None
    return round(float(value) / 1_000_000, digits)


def quarter_label(fiscal_year: Any, fiscal_quarter: Any) -> str:
    """Return a ``YYYY-Qn`` label for a fiscal quarter."""
    return f"{int(fiscal_year)}-Q{int(fiscal_quarter)}"
