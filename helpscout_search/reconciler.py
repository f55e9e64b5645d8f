"""
Result Reconciler - Merges per-status branches into one ordered, limited result
"""

import logging
from datetime import datetime, timezone
from typing import List, Sequence

from helpscout_search.models import (
    CANONICAL_STATUSES,
    Conversation,
    Pagination,
    ReconciledResult,
    StatusBranchResult,
)


logger = logging.getLogger(__name__)

# Conversations without a usable createdAt sort after everything else
OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def canonical_order(branches: Sequence[StatusBranchResult]) -> List[StatusBranchResult]:
    """active, pending, closed first, then any other statuses in requested order"""
    rank = {status: position for position, status in enumerate(CANONICAL_STATUSES)}
    indexed = list(enumerate(branches))
    indexed.sort(key=lambda item: (rank.get(item[1].status, len(rank)), item[0]))
    return [branch for _, branch in indexed]


def build_pagination(branches: Sequence[StatusBranchResult], returned_count: int) -> Pagination:
    """Accounting over successful branches, computed before any limit is applied"""
    succeeded = [branch for branch in branches if branch.succeeded]
    failed = [branch for branch in branches if not branch.succeeded]

    available_by_status = {branch.status: branch.reported_total for branch in succeeded}
    available_total = sum(available_by_status.values())

    filtered = any(branch.filtered_by_created_before for branch in succeeded)
    available_before_filter = None
    if filtered:
        available_before_filter = sum(
            branch.total_before_filter if branch.total_before_filter is not None else branch.reported_total
            for branch in succeeded
        )

    notes = []
    if failed:
        failures = ', '.join(f"{branch.status} ({branch.error.code})" for branch in failed)
        notes.append(
            f"[WARNING] {len(failed)} status(es) failed - results incomplete! "
            f"Failed: {failures}. Totals reflect successful statuses only."
        )
    if filtered:
        notes.append(
            f"Client-side createdBefore filter applied. returnedCount ({returned_count}) and "
            f"availableTotal ({available_total}) reflect filtered results; availableBeforeFilter "
            f"({available_before_filter}) shows the pre-filter API total."
        )
    if not notes:
        notes.append(
            f"Merged results from {len(succeeded)} status(es). "
            f"Returned {returned_count} of {available_total} total conversations."
        )

    return Pagination(
        returned_count=returned_count,
        available_total=available_total,
        available_by_status=available_by_status,
        failed_statuses=[branch.status for branch in failed],
        errors=[branch.error for branch in failed],
        available_before_filter=available_before_filter,
        note=' '.join(notes)
    )


class ResultReconciler:
    """Merge, dedupe, sort, limit and account for branch results"""

    def __init__(self, limit: int):
        self.limit = limit

    def reconcile(self, branches: Sequence[StatusBranchResult]) -> ReconciledResult:
        merged = self._merge(canonical_order(branches))
        ordered = self._sort(merged)
        # Limit only after sorting, or cross-status recency would be wrong
        limited = ordered[:self.limit]

        pagination = build_pagination(branches, len(limited))
        logger.debug(
            f"Reconciled {len(branches)} branches: {len(merged)} unique, returning {len(limited)}"
        )
        return ReconciledResult(conversations=limited, pagination=pagination)

    @staticmethod
    def _merge(branches: Sequence[StatusBranchResult]) -> List[Conversation]:
        seen_ids = set()
        merged = []
        for branch in branches:
            if not branch.succeeded:
                continue
            for conversation in branch.conversations:
                if conversation.id in seen_ids:
                    continue
                seen_ids.add(conversation.id)
                merged.append(conversation)
        return merged

    @staticmethod
    def _sort(conversations: List[Conversation]) -> List[Conversation]:
        # sorted() is stable with reverse=True, so ties keep merge order
        return sorted(
            conversations,
            key=lambda conversation: conversation.created_timestamp or OLDEST,
            reverse=True
        )
