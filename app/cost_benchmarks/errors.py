"""
Failure types surfaced by the benchmarking engine.

Only two conditions are reported to callers: a malformed input relation and an
out-of-domain run parameter.  Undefined arithmetic and undersized cohorts are
expected outcomes and never raise.
"""

from __future__ import annotations

from typing import Iterable


class InputSchemaError(ValueError):
    """A relation is missing one or more required columns."""

    def __init__(self, relation: str, missing: Iterable[str]) -> None:
        self.relation = relation
        self.missing = sorted(missing)
        super().__init__(
            f"Relation '{relation}' is missing required column(s): "
            f"{', '.join(self.missing)}"
        )


class InvalidConfiguration(ValueError):
    """A run parameter lies outside its declared domain."""
