"""
Search Service - Facade for Help Scout tool operations
Scopes requests, delegates to the fetcher and reconciler, and normalizes message bodies
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from helpscout_search.config import Settings
from helpscout_search.fetcher import StatusFetcher, parse_created_before
from helpscout_search.models import (
    CANONICAL_STATUSES,
    FetchConfig,
    InlineImage,
    NormalizerConfig,
    camel_keys,
    parse_timestamp,
)
from helpscout_search.normalizer import ContentNormalizer
from helpscout_search.query_builder import (
    append_created_at_filter,
    build_filter_query,
    build_keyword_query,
)
from helpscout_search.reconciler import OLDEST, ResultReconciler, build_pagination
from helpscout_search.schemas import (
    AdvancedConversationSearchRequest,
    ComprehensiveConversationSearchRequest,
    GetConversationSummaryRequest,
    GetServerTimeRequest,
    GetThreadsRequest,
    ListAllInboxesRequest,
    SearchConversationsRequest,
    SearchInboxesRequest,
    StructuredConversationFilterRequest,
    ToolRequest,
    UNIQUE_SORT_FIELDS,
)
from helpscout_search.session import SessionContext


logger = logging.getLogger(__name__)

REDACTED_BODY = '[Content hidden - set REDACT_MESSAGE_CONTENT=false to view]'
ALL_INBOXES_NOTE = 'Searching ALL inboxes. Set HELPSCOUT_DEFAULT_INBOX_ID for better LLM context.'
INBOX_FIELDS = ('id', 'name', 'email', 'createdAt', 'updatedAt')


def iso_seconds(moment: datetime) -> str:
    """UTC timestamp without fractional seconds"""
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class SearchService:
    """Facade for Help Scout operations - one coroutine per tool"""

    def __init__(self, client, settings: Settings):
        self.client = client  # anything with get(path, params) and fetch_page(path, params)
        self.settings = settings
        self.normalizer = ContentNormalizer(NormalizerConfig(max_body_length=settings.max_body_length))
        self._handlers = {
            'searchInboxes': self.search_inboxes,
            'listAllInboxes': self.list_all_inboxes,
            'searchConversations': self.search_conversations,
            'advancedConversationSearch': self.advanced_conversation_search,
            'comprehensiveConversationSearch': self.comprehensive_conversation_search,
            'structuredConversationFilter': self.structured_conversation_filter,
            'getThreads': self.get_threads,
            'getConversationSummary': self.get_conversation_summary,
            'getServerTime': self.get_server_time,
        }

    async def call_tool(
        self,
        request: ToolRequest,
        session: Optional[SessionContext] = None
    ) -> Tuple[Dict[str, Any], SessionContext]:
        """Run one tool, returning its result and the updated session"""
        session = session or SessionContext()
        logger.debug(f"Calling tool {request.tool}")

        result = await self._handlers[request.tool](request)

        guidance = session.guidance(request.tool, result)
        if guidance:
            result['guidance'] = guidance
        return result, session.record(request.tool)

    # === Scoping ===

    def _inbox_scope(self, explicit_inbox_id: Optional[str]) -> Tuple[Optional[str], str]:
        """explicit inboxId > HELPSCOUT_DEFAULT_INBOX_ID > all inboxes"""
        effective = explicit_inbox_id or self.settings.default_inbox_id
        if not effective:
            return None, 'ALL inboxes'
        if explicit_inbox_id:
            return effective, f'Specific inbox: {effective}'
        return effective, f'Default inbox: {effective}'

    @staticmethod
    def _statuses(status: Optional[str]) -> Tuple[str, ...]:
        if not status or status == 'all':
            return CANONICAL_STATUSES
        return (status,)

    # === Message bodies ===

    def render_body(self, body: Optional[str]) -> Tuple[str, Tuple[InlineImage, ...]]:
        """Redact, normalize or pass through a message body"""
        if self.settings.redact_message_content:
            return REDACTED_BODY, ()
        if not body:
            return '', ()
        if not self.settings.strip_html:
            return body, ()
        normalized = self.normalizer.normalize(body)
        return normalized.text, normalized.images

    def _present_conversation(self, conversation) -> Dict[str, Any]:
        data = conversation.to_dict()
        if 'preview' in data:
            data['preview'], _ = self.render_body(data['preview'])
        return data

    # === Conversation search core ===

    async def _run_search(
        self,
        statuses: Sequence[str],
        params: Dict[str, Any],
        limit: int,
        created_before: Optional[str] = None,
        sort_field: str = 'createdAt',
        sort_order: str = 'desc'
    ) -> Dict[str, Any]:
        """Fetch one or more statuses and reconcile them into results and pagination"""
        if created_before:
            parse_created_before(created_before)

        fetcher = StatusFetcher(self.client, FetchConfig(
            page_size=limit,
            sort_field=sort_field,
            sort_order=sort_order,
            created_before=created_before
        ))
        branches = await fetcher.fetch(list(statuses), params)

        if len(branches) == 1:
            branch = branches[0]
            conversations = branch.conversations[:limit]
            if branch.filtered_by_created_before:
                pagination = build_pagination(branches, len(conversations)).to_dict()
            else:
                # Single-status lookups pass the API page metadata through untouched
                pagination = branch.page
            outcome = {
                'results': [self._present_conversation(conversation) for conversation in conversations],
                'pagination': pagination,
                'statusesSearched': [branch.status],
                'nextCursor': branch.next_cursor,
            }
        else:
            reconciled = ResultReconciler(limit).reconcile(branches)
            outcome = {
                'results': [self._present_conversation(conversation) for conversation in reconciled.conversations],
                'pagination': reconciled.pagination.to_dict(),
                'statusesSearched': [branch.status for branch in branches if branch.succeeded],
            }

        logger.info(
            f"Search completed: {len(outcome['results'])} results from statuses {outcome['statusesSearched']}"
        )
        return outcome

    # === Inboxes ===

    async def _fetch_inboxes(self, limit: int) -> List[Dict[str, Any]]:
        page = await asyncio.to_thread(self.client.fetch_page, '/mailboxes', {'page': 1, 'size': limit})
        return [{key: inbox.get(key) for key in INBOX_FIELDS} for inbox in page.items]

    async def search_inboxes(self, request: SearchInboxesRequest) -> Dict[str, Any]:
        inboxes = await self._fetch_inboxes(request.limit)
        needle = request.query.lower()
        matches = [inbox for inbox in inboxes if needle in (inbox.get('name') or '').lower()]

        return {
            'results': matches,
            'query': request.query,
            'totalFound': len(matches),
            'totalAvailable': len(inboxes),
            'usage': (
                'NEXT STEP: Use the "id" field from these results in comprehensiveConversationSearch '
                'or searchConversations'
                if matches else
                'No inboxes matched your query. Try a different search term or an empty string to list all inboxes.'
            ),
        }

    async def list_all_inboxes(self, request: ListAllInboxesRequest) -> Dict[str, Any]:
        inboxes = await self._fetch_inboxes(request.limit)
        return {
            'inboxes': inboxes,
            'totalInboxes': len(inboxes),
            'usage': 'Use the "id" field from these results in your conversation searches',
        }

    # === Conversation searches ===

    async def search_conversations(self, request: SearchConversationsRequest) -> Dict[str, Any]:
        inbox_id, inbox_scope = self._inbox_scope(request.inbox_id)

        params: Dict[str, Any] = {}
        query = append_created_at_filter(request.query or None, request.created_after)
        if query:
            params['query'] = query
        if inbox_id:
            params['mailbox'] = inbox_id
        if request.tag:
            params['tag'] = request.tag

        outcome = await self._run_search(
            self._statuses(request.status),
            params,
            request.limit,
            created_before=request.created_before,
            sort_field=request.sort,
            sort_order=request.order
        )

        if request.fields:
            outcome['results'] = [
                {field: record[field] for field in request.fields if field in record}
                for record in outcome['results']
            ]

        outcome.update({'searchQuery': query, 'inboxScope': inbox_scope})
        if not inbox_id:
            outcome['note'] = ALL_INBOXES_NOTE
        return outcome

    async def advanced_conversation_search(self, request: AdvancedConversationSearchRequest) -> Dict[str, Any]:
        inbox_id, inbox_scope = self._inbox_scope(request.inbox_id)
        criteria = request.to_criteria(inbox_id=inbox_id)

        # Help Scout has no upper createdAt bound, so only the lower one goes in the query
        query = append_created_at_filter(build_filter_query(criteria), criteria.created_after)
        params: Dict[str, Any] = {}
        if query:
            params['query'] = query
        if criteria.inbox_id:
            params['mailbox'] = criteria.inbox_id

        outcome = await self._run_search(
            criteria.statuses,
            params,
            criteria.limit,
            created_before=criteria.created_before
        )

        outcome.update({
            'searchQuery': query,
            'inboxScope': inbox_scope,
            'searchCriteria': camel_keys({
                'content_terms': list(criteria.content_terms) or None,
                'subject_terms': list(criteria.subject_terms) or None,
                'customer_email': criteria.customer_email,
                'email_domain': criteria.email_domain,
                'tags': list(criteria.tags) or None,
            }),
        })
        if not inbox_id:
            outcome['note'] = ALL_INBOXES_NOTE
        return outcome

    async def comprehensive_conversation_search(
        self,
        request: ComprehensiveConversationSearchRequest
    ) -> Dict[str, Any]:
        inbox_id, inbox_scope = self._inbox_scope(request.inbox_id)
        created_after = request.created_after or iso_seconds(
            datetime.now(timezone.utc) - timedelta(days=request.timeframe_days)
        )
        keyword_query = build_keyword_query(request.search_terms, request.search_in)
        query = append_created_at_filter(keyword_query, created_after)

        params: Dict[str, Any] = {'query': query}
        if inbox_id:
            params['mailbox'] = inbox_id

        statuses = list(dict.fromkeys(request.statuses))
        if request.created_before:
            parse_created_before(request.created_before)

        fetcher = StatusFetcher(self.client, FetchConfig(
            page_size=request.limit_per_status,
            created_before=request.created_before
        ))
        branches = await fetcher.fetch(statuses, params)
        reconciled = ResultReconciler(request.limit_per_status * len(statuses)).reconcile(branches)

        results_by_status = []
        for branch in branches:
            entry = {
                'status': branch.status,
                'totalCount': branch.reported_total,
                'returnedCount': len(branch.conversations),
            }
            if branch.filtered_by_created_before:
                entry['totalCountBeforeFilter'] = branch.total_before_filter
            if branch.error:
                entry['error'] = branch.error.to_dict()
            results_by_status.append(entry)

        logger.info(
            f"Comprehensive search completed: {len(reconciled.conversations)} results "
            f"across {len(statuses)} statuses"
        )
        return {
            'searchTerms': request.search_terms,
            'searchQuery': query,
            'searchIn': request.search_in,
            'inboxScope': inbox_scope,
            'timeframe': camel_keys({
                'created_after': created_after,
                'created_before': request.created_before,
                'days': request.timeframe_days,
            }),
            'results': [self._present_conversation(conversation) for conversation in reconciled.conversations],
            'pagination': reconciled.pagination.to_dict(),
            'resultsByStatus': results_by_status,
        }

    async def structured_conversation_filter(
        self,
        request: StructuredConversationFilterRequest
    ) -> Dict[str, Any]:
        inbox_id, inbox_scope = self._inbox_scope(request.inbox_id)

        params: Dict[str, Any] = {}
        if request.assigned_to is not None:
            params['assigned_to'] = request.assigned_to
        if request.folder_id is not None:
            params['folder'] = request.folder_id
        if request.conversation_number is not None:
            params['number'] = request.conversation_number
        if inbox_id:
            params['mailbox'] = inbox_id
        if request.tag:
            params['tag'] = request.tag
        if request.modified_since:
            params['modifiedSince'] = request.modified_since

        customer_query = None
        if request.customer_ids:
            customer_query = '(' + ' OR '.join(f'customerIds:{customer_id}' for customer_id in request.customer_ids) + ')'
        query = append_created_at_filter(customer_query, request.created_after)
        if query:
            params['query'] = query

        outcome = await self._run_search(
            self._statuses(request.status),
            params,
            request.limit,
            created_before=request.created_before,
            sort_field=request.sort_by,
            sort_order=request.sort_order
        )

        outcome.update({
            'searchQuery': query,
            'inboxScope': inbox_scope,
            'filterApplied': camel_keys({
                'filter_type': 'structural',
                'assigned_to': request.assigned_to,
                'folder_id': request.folder_id,
                'customer_ids': request.customer_ids,
                'conversation_number': request.conversation_number,
                'unique_sorting': request.sort_by if request.sort_by in UNIQUE_SORT_FIELDS else None,
            }),
            'note': 'Structural filtering applied. For content-based search, use comprehensiveConversationSearch.',
        })
        return outcome

    # === Conversations ===

    def _present_thread(self, thread: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(thread)
        # Raw attachment objects are dropped, only their count is reported
        embedded = data.pop('_embedded', None) or {}
        body, images = self.render_body(data.pop('body', None))
        data['body'] = body
        data['attachmentCount'] = len(embedded.get('attachments') or [])
        data['inlineImages'] = [image.to_dict() for image in images]
        return data

    async def _fetch_threads(self, conversation_id: str, limit: int):
        return await asyncio.to_thread(
            self.client.fetch_page,
            f'/conversations/{conversation_id}/threads',
            {'page': 1, 'size': limit}
        )

    async def get_threads(self, request: GetThreadsRequest) -> Dict[str, Any]:
        page = await self._fetch_threads(request.conversation_id, request.limit)
        threads = [self._present_thread(thread) for thread in page.items]
        logger.info(f"Fetched {len(threads)} threads for conversation {request.conversation_id}")

        return {
            'conversationId': request.conversation_id,
            'threads': threads,
            'pagination': page.metadata,
            'nextCursor': page.continuation,
        }

    async def get_conversation_summary(self, request: GetConversationSummaryRequest) -> Dict[str, Any]:
        conversation, page = await asyncio.gather(
            asyncio.to_thread(self.client.get, f'/conversations/{request.conversation_id}'),
            self._fetch_threads(request.conversation_id, 50)
        )

        def created(thread: Dict[str, Any]) -> datetime:
            return parse_timestamp(thread.get('createdAt')) or OLDEST

        customer_threads = [thread for thread in page.items if thread.get('type') == 'customer']
        staff_threads = [
            thread for thread in page.items
            if thread.get('type') == 'message' and thread.get('createdBy')
        ]
        first_customer = min(customer_threads, key=created, default=None)
        latest_staff = max(staff_threads, key=created, default=None)

        summary = {
            'conversation': {
                key: conversation.get(key)
                for key in ('id', 'number', 'subject', 'status', 'createdAt', 'updatedAt', 'customer', 'assignee', 'tags')
            },
            'firstCustomerMessage': None,
            'latestStaffReply': None,
        }
        if first_customer:
            body, _ = self.render_body(first_customer.get('body'))
            summary['firstCustomerMessage'] = {
                'id': first_customer.get('id'),
                'body': body,
                'createdAt': first_customer.get('createdAt'),
                'customer': first_customer.get('customer'),
            }
        if latest_staff:
            body, _ = self.render_body(latest_staff.get('body'))
            summary['latestStaffReply'] = {
                'id': latest_staff.get('id'),
                'body': body,
                'createdAt': latest_staff.get('createdAt'),
                'createdBy': latest_staff.get('createdBy'),
            }
        return summary

    async def get_server_time(self, request: GetServerTimeRequest) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            'isoTime': now.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'unixTime': int(now.timestamp()),
        }
