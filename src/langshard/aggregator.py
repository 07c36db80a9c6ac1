"""Folds per-partition outcomes into one logical result.

Overall success requires every partition to succeed.  A failure reports
every failing partition, not just the first one.
"""

from __future__ import annotations

from collections.abc import Iterable

from langshard.models import PartitionOutcome, UpdateOutcome


def fold(results: Iterable[PartitionOutcome]) -> UpdateOutcome:
    """Combine *results* into an :class:`UpdateOutcome`.

    A partition failing in more than one step keeps its first error detail.
    An empty input folds to success.
    """
    outcomes = list(results)
    errors: dict[str, str] = {}
    for outcome in outcomes:
        if outcome.succeeded or outcome.partition in errors:
            continue
        errors[outcome.partition] = outcome.error or "unknown error"
    return UpdateOutcome(
        succeeded=not errors,
        per_partition_errors=errors,
        outcomes=outcomes,
    )
