"""
Tests for ResultReconciler and pagination accounting
"""

from helpscout_search.models import Conversation, ErrorInfo, StatusBranchResult
from helpscout_search.reconciler import ResultReconciler, build_pagination, canonical_order
from tests.conftest import make_conversation


def branch(status, *conversations, total=None, **kwargs):
    """Helper to build a successful branch from (id, createdAt) pairs"""
    records = [
        Conversation.from_api(make_conversation(conversation_id, status, created_at))
        for conversation_id, created_at in conversations
    ]
    return StatusBranchResult(
        status=status,
        conversations=records,
        reported_total=len(records) if total is None else total,
        **kwargs
    )


def failed(status, code='RATE_LIMIT', message='Rate limit exceeded'):
    return StatusBranchResult(status=status, error=ErrorInfo(status=status, message=message, code=code))


class TestCanonicalOrder:
    """Tests for canonical_order"""

    def test_canonical_statuses_first(self):
        """active, pending, closed lead regardless of request order"""
        ordered = canonical_order([branch('closed'), branch('spam'), branch('active'), branch('pending')])
        assert [result.status for result in ordered] == ['active', 'pending', 'closed', 'spam']


class TestReconcile:
    """Tests for ResultReconciler.reconcile"""

    def test_sorted_newest_first_across_statuses(self):
        """Merged results are ordered by creation time, not by status"""
        result = ResultReconciler(10).reconcile([
            branch('active', (1, '2024-01-10T00:00:00Z'), (2, '2024-01-01T00:00:00Z')),
            branch('closed', (3, '2024-01-15T00:00:00Z')),
        ])
        assert [conversation.id for conversation in result.conversations] == [3, 1, 2]

    def test_duplicates_removed_keeping_first_in_canonical_order(self):
        """An id seen in an earlier canonical branch is not added again"""
        result = ResultReconciler(10).reconcile([
            branch('closed', (7, '2024-01-05T00:00:00Z')),
            branch('active', (7, '2024-01-05T00:00:00Z'), (8, '2024-01-01T00:00:00Z')),
        ])
        ids = [conversation.id for conversation in result.conversations]
        assert ids == [7, 8]
        assert result.conversations[0].status == 'active'

    def test_limit_applied_after_sort(self):
        """The newest records overall survive the limit"""
        result = ResultReconciler(2).reconcile([
            branch('active', (1, '2024-01-01T00:00:00Z'), (2, '2024-01-02T00:00:00Z')),
            branch('pending', (3, '2024-01-09T00:00:00Z')),
            branch('closed', (4, '2024-01-08T00:00:00Z')),
        ])
        assert [conversation.id for conversation in result.conversations] == [3, 4]
        assert result.pagination.returned_count == 2

    def test_ties_keep_merge_order(self):
        """Equal timestamps keep canonical merge order"""
        same = '2024-01-01T00:00:00Z'
        result = ResultReconciler(10).reconcile([
            branch('closed', (3, same)),
            branch('active', (1, same)),
            branch('pending', (2, same)),
        ])
        assert [conversation.id for conversation in result.conversations] == [1, 2, 3]

    def test_missing_timestamps_sort_last(self):
        """Records without a createdAt go to the end"""
        result = ResultReconciler(10).reconcile([
            branch('active', (1, None), (2, '2024-01-01T00:00:00Z')),
        ])
        assert [conversation.id for conversation in result.conversations] == [2, 1]

    def test_partial_failure_scenario(self):
        """A rate-limited status is excluded and reported, totals come from the rest"""
        result = ResultReconciler(50).reconcile([
            branch('active', (1, '2024-01-03T00:00:00Z'), (2, '2024-01-01T00:00:00Z'), total=10),
            failed('pending'),
            branch('closed', (3, '2024-01-02T00:00:00Z'), total=5),
        ])
        pagination = result.pagination

        assert pagination.available_total == 15
        assert pagination.available_by_status == {'active': 10, 'closed': 5}
        assert pagination.failed_statuses == ['pending']
        assert {conversation.status for conversation in result.conversations} == {'active', 'closed'}
        assert 'Totals reflect successful statuses only' in pagination.note
        assert 'pending (RATE_LIMIT)' in pagination.note

    def test_result_invariants(self):
        """No duplicates, non-increasing creation time, length within limit"""
        result = ResultReconciler(4).reconcile([
            branch('active', *[(n, f'2024-01-{n:02d}T00:00:00Z') for n in range(1, 6)]),
            branch('pending', *[(n, f'2024-02-{n - 10:02d}T00:00:00Z') for n in range(11, 14)]),
            branch('closed', (3, '2024-01-03T00:00:00Z')),
        ])
        ids = [conversation.id for conversation in result.conversations]
        timestamps = [conversation.created_timestamp for conversation in result.conversations]

        assert len(ids) == len(set(ids))
        assert len(ids) <= 4
        assert timestamps == sorted(timestamps, reverse=True)


class TestBuildPagination:
    """Tests for build_pagination"""

    def test_merge_summary_note(self):
        """Without failures or filtering the note summarizes the merge"""
        pagination = build_pagination([branch('active', total=3), branch('closed', total=4)], 5)
        assert pagination.note == 'Merged results from 2 status(es). Returned 5 of 7 total conversations.'
        assert pagination.to_dict() == {
            'returnedCount': 5,
            'availableTotal': 7,
            'availableByStatus': {'active': 3, 'closed': 4},
            'note': pagination.note,
        }

    def test_filtered_totals_keep_pre_filter_count(self):
        """Client-side filtering reports both the filtered and the API totals"""
        pagination = build_pagination([
            branch('active', total=5, total_before_filter=20, filtered_by_created_before=True),
            branch('closed', total=4),
        ], 9)

        assert pagination.available_total == 9
        assert pagination.available_before_filter == 24
        data = pagination.to_dict()
        assert data['availableBeforeFilter'] == 24
        assert '(24)' in data['note'] and '(9)' in data['note']

    def test_failures_in_dict(self):
        """failedStatuses and errors are rendered only when present"""
        data = build_pagination([branch('active', total=1), failed('closed', 'UPSTREAM_ERROR', 'boom')], 1).to_dict()
        assert data['failedStatuses'] == ['closed']
        assert data['errors'] == [{'status': 'closed', 'message': 'boom', 'code': 'UPSTREAM_ERROR'}]
        assert data['availableTotal'] == 1
