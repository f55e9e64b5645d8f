"""
Tests for tool request schemas and the session context
"""

import pytest

from helpscout_search.errors import ErrorCode, NotFoundError, ValidationError
from helpscout_search.schemas import (
    AdvancedConversationSearchRequest,
    ComprehensiveConversationSearchRequest,
    GetThreadsRequest,
    TOOL_MODELS,
    parse_tool_request,
    tool_catalog,
)
from helpscout_search.session import SessionContext


class TestParseToolRequest:
    """Tests for parse_tool_request"""

    def test_tagged_by_tool_name(self):
        """The tool name selects the request model"""
        request = parse_tool_request('getThreads', {'conversationId': '123'})
        assert isinstance(request, GetThreadsRequest)
        assert request.conversation_id == '123'
        assert request.limit == 200

    def test_defaults_applied(self):
        """Omitted arguments take their defaults"""
        request = parse_tool_request('comprehensiveConversationSearch', {'searchTerms': ['refund']})
        assert isinstance(request, ComprehensiveConversationSearchRequest)
        assert request.statuses == ['active', 'pending', 'closed']
        assert request.search_in == ['both']
        assert request.timeframe_days == 60
        assert request.limit_per_status == 25

    def test_tool_argument_cannot_override_name(self):
        """The route name wins over a smuggled tool argument"""
        request = parse_tool_request('getServerTime', {'tool': 'getThreads'})
        assert request.tool == 'getServerTime'

    def test_unknown_tool(self):
        """Unknown tools are not found"""
        with pytest.raises(NotFoundError) as excinfo:
            parse_tool_request('deleteEverything', {})
        assert 'getThreads' in excinfo.value.details['available']

    @pytest.mark.parametrize('tool, arguments, field', [
        ('searchConversations', {'status': 'archived'}, 'status'),
        ('searchConversations', {'limit': 0}, 'limit'),
        ('comprehensiveConversationSearch', {'searchTerms': []}, 'searchTerms'),
        ('comprehensiveConversationSearch', {'searchTerms': ['a'], 'timeframeDays': 400}, 'timeframeDays'),
        ('getThreads', {'conversationId': '../users'}, 'conversationId'),
        ('searchInboxes', {}, 'query'),
    ])
    def test_invalid_arguments(self, tool, arguments, field):
        """Bad arguments raise ValidationError naming the field"""
        with pytest.raises(ValidationError) as excinfo:
            parse_tool_request(tool, arguments)
        assert excinfo.value.code == ErrorCode.INVALID_INPUT
        assert field in [problem['field'] for problem in excinfo.value.details['errors']]

    def test_structured_filter_requires_unique_field(self):
        """A structured filter without a unique field is rejected"""
        with pytest.raises(ValidationError) as excinfo:
            parse_tool_request('structuredConversationFilter', {'tag': 'vip'})
        assert 'unique field' in excinfo.value.message

    @pytest.mark.parametrize('arguments', [
        {'assignedTo': -1},
        {'folderId': 0},
        {'customerIds': [1]},
        {'conversationNumber': 12},
        {'sortBy': 'waitingSince'},
    ])
    def test_structured_filter_unique_fields(self, arguments):
        """Any one unique field is enough"""
        assert parse_tool_request('structuredConversationFilter', arguments).tool == 'structuredConversationFilter'

    def test_snake_case_names_accepted(self):
        """Python callers may use attribute names"""
        request = AdvancedConversationSearchRequest(content_terms=['x'], inbox_id='5')
        assert request.inbox_id == '5'

    def test_to_criteria(self):
        """Advanced search arguments become immutable criteria"""
        request = parse_tool_request('advancedConversationSearch', {'tags': ['vip'], 'status': 'closed', 'inboxId': '3'})
        criteria = request.to_criteria()

        assert criteria.tags == ('vip',)
        assert criteria.statuses == ('closed',)
        assert criteria.inbox_id == '3'
        assert request.to_criteria(inbox_id='8').inbox_id == '8'
        assert parse_tool_request('advancedConversationSearch', {}).to_criteria().statuses == ('active', 'pending', 'closed')


class TestToolCatalog:
    """Tests for tool_catalog"""

    def test_every_tool_described(self):
        """Each tool has a description and camelCase argument schema"""
        catalog = {entry['name']: entry for entry in tool_catalog()}

        assert set(catalog) == set(TOOL_MODELS)
        assert all(entry['description'] for entry in catalog.values())
        properties = catalog['comprehensiveConversationSearch']['inputSchema']['properties']
        assert 'searchTerms' in properties
        assert 'tool' not in properties


class TestSessionContext:
    """Tests for SessionContext"""

    def test_round_trip_from_dict(self):
        """Caller session payloads are read and written in camelCase"""
        session = SessionContext.from_dict({'userQuery': 'refunds', 'previousCalls': ['searchInboxes']})
        assert session.to_dict() == {'userQuery': 'refunds', 'previousCalls': ['searchInboxes']}

    def test_empty_payload(self):
        """A missing session starts empty"""
        assert SessionContext.from_dict(None).previous_calls == []

    def test_record_returns_new_context(self):
        """Recording never mutates the caller's context"""
        session = SessionContext()
        updated = session.record('getServerTime')
        assert session.previous_calls == []
        assert updated.previous_calls == ['getServerTime']

    def test_guidance_after_search(self):
        """No ordering hint once a search has run"""
        session = SessionContext(previous_calls=['comprehensiveConversationSearch'])
        assert session.guidance('getThreads', {'threads': []}) == []

    def test_guidance_without_search(self):
        """Conversation tools before any search get a hint"""
        hints = SessionContext().guidance('getThreads', {'threads': []})
        assert len(hints) == 1
        assert 'search first' in hints[0]

    def test_guidance_for_empty_and_partial_results(self):
        """Empty results and failed statuses produce hints"""
        hints = SessionContext().guidance('searchConversations', {
            'results': [],
            'pagination': {'failedStatuses': ['pending']},
        })
        assert any('No conversations matched' in hint for hint in hints)
        assert any('pending' in hint for hint in hints)
