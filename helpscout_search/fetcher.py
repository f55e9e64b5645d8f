"""
Status Fetcher - Fetches conversations across mutually exclusive statuses
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from helpscout_search.errors import ValidationError, is_api_error
from helpscout_search.models import (
    Conversation,
    ErrorInfo,
    FetchConfig,
    StatusBranchResult,
    parse_timestamp,
)
from helpscout_search.query_builder import validate_iso_date


logger = logging.getLogger(__name__)

CONVERSATIONS_PATH = '/conversations'


def parse_created_before(created_before: str) -> datetime:
    """Validate the upper creation bound and parse it as an aware datetime"""
    validate_iso_date(created_before, 'createdBefore')
    before = parse_timestamp(created_before)
    if before is None:
        raise ValidationError(
            f"Invalid createdBefore date: {created_before} is not a real calendar date and time",
            details={'field': 'createdBefore', 'value': created_before}
        )
    return before


def apply_created_before_filter(
    conversations: List[Conversation],
    created_before: str
) -> Tuple[List[Conversation], int]:
    """Keep conversations created strictly before the bound, returns (kept, removed_count)"""
    before = parse_created_before(created_before)

    kept = [
        conversation for conversation in conversations
        if conversation.created_timestamp is not None and conversation.created_timestamp < before
    ]
    return kept, len(conversations) - len(kept)


class StatusFetcher:
    """Dispatches one page fetch per status and waits for every branch to settle"""

    def __init__(
        self,
        client,  # anything with fetch_page(path, params) -> Page
        config: Optional[FetchConfig] = None
    ):
        self.client = client
        self.config = config or FetchConfig()

    # === Main Entry Points ===

    async def fetch(self, statuses: Sequence[str], params: Dict) -> List[StatusBranchResult]:
        """Fetch every status; non-fatal API errors degrade to failed branches"""
        if len(statuses) == 1:
            return [await self.fetch_single(statuses[0], params)]

        outcomes = await asyncio.gather(
            *(self._fetch_branch(status, params) for status in statuses),
            return_exceptions=True
        )

        results = []
        for status, outcome in zip(statuses, outcomes):
            if isinstance(outcome, BaseException):
                results.append(self._record_failure(status, outcome))
            else:
                results.append(outcome)

        failed = [result.status for result in results if not result.succeeded]
        logger.info(
            f"Multi-status fetch completed: {len(results) - len(failed)}/{len(results)} statuses succeeded"
            + (f", failed: {failed}" if failed else "")
        )
        return results

    async def fetch_single(self, status: str, params: Dict) -> StatusBranchResult:
        """Fetch one status; any error propagates to the caller"""
        return await self._fetch_branch(status, params)

    # === Branches ===

    def _base_params(self) -> Dict:
        return {
            'page': 1,
            'size': self.config.page_size,
            'sortField': self.config.sort_field,
            'sortOrder': self.config.sort_order,
        }

    async def _fetch_branch(self, status: str, params: Dict) -> StatusBranchResult:
        query_params = {**self._base_params(), **params, 'status': status}
        page = await asyncio.to_thread(self.client.fetch_page, CONVERSATIONS_PATH, query_params)

        result = StatusBranchResult(
            status=status,
            conversations=[Conversation.from_api(item) for item in page.items],
            reported_total=page.reported_total,
            page=page.metadata,
            next_cursor=page.continuation
        )

        if self.config.created_before:
            self._filter_branch(result)

        return result

    def _filter_branch(self, result: StatusBranchResult) -> None:
        """The API has no upper date bound, so it is applied here per branch"""
        fetched = len(result.conversations)
        kept, removed = apply_created_before_filter(result.conversations, self.config.created_before)
        if not removed:
            return

        logger.warning(
            f"Client-side createdBefore filter applied to status '{result.status}': "
            f"removed {removed} of {fetched} fetched conversations"
        )
        result.total_before_filter = result.reported_total
        result.reported_total = len(kept)
        result.conversations = kept
        result.filtered_by_created_before = True

    # === Failure Classification ===

    def _record_failure(self, status: str, error: BaseException) -> StatusBranchResult:
        """Turn a recoverable branch error into a failed result, re-raise anything else"""
        if not is_api_error(error):
            # Not a structured API error: most likely a defect, never a partial result
            logger.error(f"Unexpected error fetching status '{status}': {error!r}")
            raise error

        if error.aborts_aggregation:
            logger.error(
                f"Critical API error fetching status '{status}' - aborting search "
                f"({error.code.value}: {error.message})"
            )
            raise error

        logger.error(
            f"Status search failed - partial results will be returned "
            f"(status={status}, code={error.code.value}, message={error.message})"
        )
        return StatusBranchResult(
            status=status,
            error=ErrorInfo(status=status, message=error.message, code=error.code.value)
        )
