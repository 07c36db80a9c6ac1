"""Groups documents and deletions by target core.

One combined payload is sent per core rather than one request per
document.  Groups are ordered by first appearance and keep the input
order of their members.
"""

from __future__ import annotations

from collections.abc import Sequence

from langshard.errors import EmptyBatchError, ErrorCode
from langshard.models import DocumentRef
from langshard.protocols import IndexDocument
from langshard.registry import CoreRegistry


class WriteBatcher:
    """Resolve each payload's language through the registry and group by core."""

    def __init__(self, registry: CoreRegistry) -> None:
        self._registry = registry

    def batch(self, documents: Sequence[IndexDocument]) -> dict[str, list[IndexDocument]]:
        """Group *documents* by the core their ``language_code`` resolves to.

        Raises
        ------
        EmptyBatchError
            If *documents* is empty.
        """
        if not documents:
            raise EmptyBatchError(
                "Cannot batch an empty document list",
                code=ErrorCode.E_BATCH_EMPTY,
                stage="batch",
            )
        groups: dict[str, list[IndexDocument]] = {}
        for doc in documents:
            core = self._registry.resolve(doc.language_code)
            groups.setdefault(core, []).append(doc)
        return groups

    def batch_deletes(self, refs: Sequence[DocumentRef]) -> dict[str, list[DocumentRef]]:
        """Group delete-by-id references by core, mirroring :meth:`batch`."""
        if not refs:
            raise EmptyBatchError(
                "Cannot batch an empty deletion list",
                code=ErrorCode.E_BATCH_EMPTY,
                stage="batch",
            )
        groups: dict[str, list[DocumentRef]] = {}
        for ref in refs:
            core = self._registry.resolve(ref.language_code)
            groups.setdefault(core, []).append(ref)
        return groups
