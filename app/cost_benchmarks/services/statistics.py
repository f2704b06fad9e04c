"""
Shared aggregation and statistics primitives.

Every analyzer is built from the same handful of operations: multi-key
grouping, null-safe division, continuous quantiles, per-cohort quantile
tiering, and lag-based period deltas.  They operate on pandas DataFrames and
follow SQL NULL semantics: undefined arithmetic yields a null value instead of
raising, and nulls propagate into every derived column that depends on them.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from cost_benchmarks.errors import InputSchemaError, InvalidConfiguration

logger = logging.getLogger(__name__)

# Aggregation name -> SeriesGroupBy reducer
_AGGREGATORS = {
    "sum": lambda g: g.sum(min_count=1),
    "count_distinct": lambda g: g.nunique(),
    "mean": lambda g: g.mean(),
    "avg": lambda g: g.mean(),
    "max": lambda g: g.max(),
    "min": lambda g: g.min(),
    "count": lambda g: g.count(),
    "first": lambda g: g.first(),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def as_frame(rows: pd.DataFrame | Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Return *rows* as a DataFrame, converting a list of mappings if needed."""
    if isinstance(rows, pd.DataFrame):
        return rows
    return pd.DataFrame.from_records(list(rows))


def require_columns(
    frame: pd.DataFrame,
    columns: Iterable[str],
    relation: str = "rows",
) -> None:
    """Raise ``InputSchemaError`` if any of *columns* is absent from *frame*."""
    missing = set(columns) - set(frame.columns)
    if missing:
        raise InputSchemaError(relation, missing)


def _is_vector(value: Any) -> bool:
    return isinstance(value, (pd.Series, np.ndarray))


def _to_float_series(value: Any, index: pd.Index) -> pd.Series:
    if isinstance(value, pd.Series):
        return pd.to_numeric(value, errors="coerce").astype(float)
    if isinstance(value, np.ndarray):
        return pd.Series(value, index=index, dtype=float)
    scalar = np.nan if value is None or pd.isna(value) else float(value)
    return pd.Series(scalar, index=index, dtype=float)


def _validate_q(q: float, name: str = "q") -> None:
    if not 0.0 <= q <= 1.0:
        raise InvalidConfiguration(f"{name} must lie in [0, 1], got {q!r}")


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------
def group_and_aggregate(
    rows: pd.DataFrame | Iterable[Mapping[str, Any]],
    key_fields: Sequence[str],
    aggregations: Mapping[str, tuple[str, str]],
    *,
    relation: str = "rows",
) -> pd.DataFrame:
    """Collapse *rows* to one record per distinct key tuple.

    Parameters
    ----------
    rows:
        Input relation as a DataFrame or an iterable of mappings.
    key_fields:
        Grouping columns.  Rows with a null in any of them are excluded.
    aggregations:
        Output column -> ``(source column, function)``.  Functions:
        ``sum``, ``count_distinct``, ``mean`` / ``avg``, ``max``, ``min``,
        ``count``, ``first``.  ``sum`` over an all-null group is null.
    relation:
        Name used in ``InputSchemaError`` messages.

    Returns
    -------
    DataFrame
        Key columns followed by aggregation columns, groups in order of first
        appearance.
    """
    frame = as_frame(rows)
    key_fields = list(key_fields)

    for output, (_, func) in aggregations.items():
        if func not in _AGGREGATORS:
            raise InvalidConfiguration(
                f"Unknown aggregation '{func}' for column '{output}'"
            )
    require_columns(
        frame,
        key_fields + [source for source, _ in aggregations.values()],
        relation,
    )

    columns = key_fields + list(aggregations)
    keyed = frame.dropna(subset=key_fields)
    dropped = len(frame) - len(keyed)
    if dropped:
        logger.debug("Excluded %d %s row(s) with null grouping keys", dropped, relation)
    if keyed.empty:
        return pd.DataFrame(columns=columns)

    grouped = keyed.groupby(key_fields, sort=False)
    result = pd.DataFrame(
        {
            output: _AGGREGATORS[func](grouped[source])
            for output, (source, func) in aggregations.items()
        }
    )
    return result.reset_index()[columns]


# ---------------------------------------------------------------------------
# Safe division
# ---------------------------------------------------------------------------
def safe_divide(numerator: Any, denominator: Any) -> Any:
    """Divide, yielding null instead of failing on a zero or null denominator.

    Scalars return ``None`` when undefined.  If either argument is a Series
    or array the result is a float Series with ``NaN`` where undefined.
    ``safe_divide(0, 0)`` is undefined, not zero.
    """
    if _is_vector(numerator) or _is_vector(denominator):
        index = next(
            (v.index for v in (numerator, denominator) if isinstance(v, pd.Series)),
            None,
        )
        if index is None:
            size = len(numerator) if _is_vector(numerator) else len(denominator)
            index = pd.RangeIndex(size)
        num = _to_float_series(numerator, index)
        den = _to_float_series(denominator, index)
        return num / den.where(den != 0)

    if numerator is None or denominator is None:
        return None
    if pd.isna(numerator) or pd.isna(denominator) or denominator == 0:
        return None
    return numerator / denominator


# ---------------------------------------------------------------------------
# Quantiles
# ---------------------------------------------------------------------------
def quantile(values: Iterable[Any], q: float) -> float | None:
    """Continuous quantile using linear interpolation between order statistics.

    Equivalent to SQL ``PERCENTILE_CONT``.  Nulls are ignored; an empty input
    returns ``None`` and a single value is returned unchanged.
    """
    _validate_q(q)
    series = values if isinstance(values, pd.Series) else pd.Series(list(values), dtype=object)
    clean = pd.to_numeric(series, errors="coerce").dropna()
    if clean.empty:
        return None
    if len(clean) == 1:
        return float(clean.iloc[0])
    return float(np.quantile(clean.to_numpy(dtype=float), q, method="linear"))


def cohort_quantile_classify(
    rows: pd.DataFrame | Iterable[Mapping[str, Any]],
    value_field: str,
    cohort_field: str,
    lower_q: float = 0.25,
    upper_q: float = 0.75,
    *,
    labels: tuple[str, str, str] = ("High", "Average", "Low"),
    output_field: str = "tier",
) -> pd.DataFrame:
    """Tier each row against the quantiles of its own cohort.

    A row is ``labels[0]`` when its value exceeds the cohort's upper quantile,
    ``labels[2]`` when below the lower quantile, else ``labels[1]``.  Rows
    with a null value or null cohort get a null tier.  The cohort bounds are
    written to ``<output_field>_lower_bound`` / ``<output_field>_upper_bound``.
    """
    _validate_q(lower_q, "lower_q")
    _validate_q(upper_q, "upper_q")
    if lower_q > upper_q:
        raise InvalidConfiguration(
            f"lower_q ({lower_q}) must not exceed upper_q ({upper_q})"
        )

    frame = as_frame(rows).copy()
    require_columns(frame, [value_field, cohort_field])
    high, average, low = labels
    lower_col = f"{output_field}_lower_bound"
    upper_col = f"{output_field}_upper_bound"

    if frame.empty:
        frame[output_field] = pd.Series(dtype=object)
        frame[lower_col] = pd.Series(dtype=float)
        frame[upper_col] = pd.Series(dtype=float)
        return frame

    values = pd.to_numeric(frame[value_field], errors="coerce")
    by_cohort = values.groupby(frame[cohort_field], sort=False)

    def _bound(q: float) -> pd.Series:
        def _cohort_q(s: pd.Series) -> float:
            result = quantile(s, q)
            return np.nan if result is None else result

        return by_cohort.transform(_cohort_q).astype(float)

    lower = _bound(lower_q)
    upper = _bound(upper_q)

    tier = pd.Series(average, index=frame.index, dtype=object)
    tier[values > upper] = high
    tier[values < lower] = low
    tier[values.isna() | lower.isna() | upper.isna()] = None

    frame[output_field] = tier
    frame[lower_col] = lower
    frame[upper_col] = upper
    return frame


# ---------------------------------------------------------------------------
# Period-over-period deltas
# ---------------------------------------------------------------------------
def ordered_period_delta(
    rows: pd.DataFrame | Iterable[Mapping[str, Any]],
    partition_fields: Sequence[str],
    order_fields: Sequence[str],
    value_field: str,
    *,
    output_field: str = "delta_pct",
) -> pd.DataFrame:
    """Percentage change of *value_field* versus the preceding row.

    Rows are stable-sorted by partition then order fields.  Within a
    partition each row is compared to the row immediately before it:
    ``safe_divide(current - previous, previous) * 100``.  The first row of a
    partition, and any row whose own or previous value is null, gets a null
    delta.
    """
    frame = as_frame(rows)
    partition_fields = list(partition_fields)
    order_fields = list(order_fields)
    require_columns(frame, partition_fields + order_fields + [value_field])

    ordered = frame.sort_values(
        partition_fields + order_fields, kind="mergesort"
    ).reset_index(drop=True)
    if ordered.empty:
        ordered[output_field] = pd.Series(dtype=float)
        return ordered

    values = pd.to_numeric(ordered[value_field], errors="coerce").astype(float)
    previous = values.groupby(
        [ordered[f] for f in partition_fields], sort=False
    ).shift(1)
    ordered[output_field] = safe_divide(values - previous, previous) * 100
    return ordered
