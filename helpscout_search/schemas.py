"""
Tool request schemas - one tagged pydantic model per operation, validated at the boundary
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from caseconverter import camelcase
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from helpscout_search.errors import NotFoundError, ValidationError
from helpscout_search.models import CANONICAL_STATUSES, SearchCriteria


Status = Literal['active', 'pending', 'closed', 'spam']
StatusOrAll = Literal['active', 'pending', 'closed', 'spam', 'all']
SortOrder = Literal['asc', 'desc']
SearchLocation = Literal['body', 'subject', 'both']

# Conversation ids are interpolated into resource paths
CONVERSATION_ID = r'^\d+$'

UNIQUE_SORT_FIELDS = ('waitingSince', 'customerName', 'customerEmail')


class ToolModel(BaseModel):
    """Arguments arrive camelCased; attributes stay snake_cased"""
    model_config = ConfigDict(alias_generator=camelcase, populate_by_name=True)


class SearchInboxesRequest(ToolModel):
    """Find inboxes by name (case-insensitive substring). Use an empty query to list all."""
    tool: Literal['searchInboxes'] = 'searchInboxes'
    query: str
    limit: int = Field(50, ge=1, le=100)


class ListAllInboxesRequest(ToolModel):
    """List every inbox with its id, for scoping conversation searches."""
    tool: Literal['listAllInboxes'] = 'listAllInboxes'
    limit: int = Field(100, ge=1, le=100)


class SearchConversationsRequest(ToolModel):
    """Search conversations with a raw query. Without a status, active, pending and closed are searched and merged."""
    tool: Literal['searchConversations'] = 'searchConversations'
    query: Optional[str] = None
    inbox_id: Optional[str] = None
    tag: Optional[str] = None
    status: Optional[Status] = None
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    limit: int = Field(50, ge=1, le=100)
    sort: Literal['createdAt', 'updatedAt', 'number'] = 'createdAt'
    order: SortOrder = 'desc'
    fields: Optional[List[str]] = None


class AdvancedConversationSearchRequest(ToolModel):
    """Search by content, subject, customer email, email domain and tags."""
    tool: Literal['advancedConversationSearch'] = 'advancedConversationSearch'
    content_terms: List[str] = Field(default_factory=list)
    subject_terms: List[str] = Field(default_factory=list)
    customer_email: Optional[str] = None
    email_domain: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    inbox_id: Optional[str] = None
    status: Optional[Status] = None
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    limit: int = Field(50, ge=1, le=100)

    def to_criteria(self, inbox_id: Optional[str] = None) -> SearchCriteria:
        return SearchCriteria(
            content_terms=tuple(self.content_terms),
            subject_terms=tuple(self.subject_terms),
            tags=tuple(self.tags),
            customer_email=self.customer_email,
            email_domain=self.email_domain,
            inbox_id=inbox_id if inbox_id is not None else self.inbox_id,
            statuses=(self.status,) if self.status else CANONICAL_STATUSES,
            created_after=self.created_after,
            created_before=self.created_before,
            limit=self.limit
        )


class ComprehensiveConversationSearchRequest(ToolModel):
    """Keyword search across several statuses over a recent timeframe, with per-status counts."""
    tool: Literal['comprehensiveConversationSearch'] = 'comprehensiveConversationSearch'
    search_terms: List[str] = Field(..., min_length=1)
    inbox_id: Optional[str] = None
    statuses: List[Status] = Field(default_factory=lambda: list(CANONICAL_STATUSES), min_length=1)
    search_in: List[SearchLocation] = Field(default_factory=lambda: ['both'])
    timeframe_days: int = Field(60, ge=1, le=365)
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    limit_per_status: int = Field(25, ge=1, le=100)


class StructuredConversationFilterRequest(ToolModel):
    """Filter by ids found in earlier searches: assignee, folder, customers or ticket number."""
    tool: Literal['structuredConversationFilter'] = 'structuredConversationFilter'
    assigned_to: Optional[int] = Field(None, ge=-1)
    folder_id: Optional[int] = Field(None, ge=0)
    customer_ids: Optional[List[Annotated[int, Field(ge=0)]]] = Field(None, max_length=100)
    conversation_number: Optional[int] = Field(None, ge=1)
    status: StatusOrAll = 'all'
    inbox_id: Optional[str] = None
    tag: Optional[str] = None
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    modified_since: Optional[str] = None
    sort_by: Literal[
        'createdAt', 'modifiedAt', 'number', 'waitingSince', 'customerName',
        'customerEmail', 'mailboxId', 'status', 'subject'
    ] = 'createdAt'
    sort_order: SortOrder = 'desc'
    limit: int = Field(50, ge=1, le=100)

    @model_validator(mode='after')
    def require_unique_field(self) -> 'StructuredConversationFilterRequest':
        if (
            self.assigned_to is None
            and self.folder_id is None
            and self.customer_ids is None
            and self.conversation_number is None
            and self.sort_by not in UNIQUE_SORT_FIELDS
        ):
            raise ValueError(
                "Must use at least one unique field: assignedTo, folderId, customerIds, "
                "conversationNumber, or unique sorting. For content search, use comprehensiveConversationSearch."
            )
        return self


class GetThreadsRequest(ToolModel):
    """Read all messages of a conversation, with normalized bodies and inline image lists."""
    tool: Literal['getThreads'] = 'getThreads'
    conversation_id: str = Field(..., pattern=CONVERSATION_ID)
    limit: int = Field(200, ge=1, le=200)


class GetConversationSummaryRequest(ToolModel):
    """First customer message and latest staff reply of a conversation."""
    tool: Literal['getConversationSummary'] = 'getConversationSummary'
    conversation_id: str = Field(..., pattern=CONVERSATION_ID)


class GetServerTimeRequest(ToolModel):
    """Current server time, for building relative date ranges."""
    tool: Literal['getServerTime'] = 'getServerTime'


TOOL_REQUEST_MODELS = (
    SearchInboxesRequest,
    ListAllInboxesRequest,
    SearchConversationsRequest,
    AdvancedConversationSearchRequest,
    ComprehensiveConversationSearchRequest,
    StructuredConversationFilterRequest,
    GetThreadsRequest,
    GetConversationSummaryRequest,
    GetServerTimeRequest,
)

ToolRequest = Annotated[Union[TOOL_REQUEST_MODELS], Field(discriminator='tool')]

TOOL_MODELS = {model.model_fields['tool'].default: model for model in TOOL_REQUEST_MODELS}

_tool_request_adapter = TypeAdapter(ToolRequest)


def _describe_errors(error: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {
            'field': '.'.join(str(part) for part in detail['loc'][1:]) or None,
            'message': detail['msg'],
        }
        for detail in error.errors()
    ]


def parse_tool_request(name: str, arguments: Optional[Dict[str, Any]] = None) -> ToolRequest:
    """Validate raw tool arguments into the tagged request for that tool"""
    if name not in TOOL_MODELS:
        raise NotFoundError(f"Unknown tool: {name}", details={'tool': name, 'available': sorted(TOOL_MODELS)})

    try:
        return _tool_request_adapter.validate_python({**(arguments or {}), 'tool': name})
    except PydanticValidationError as error:
        problems = _describe_errors(error)
        summary = '; '.join(
            f"{problem['field']}: {problem['message']}" if problem['field'] else problem['message']
            for problem in problems
        )
        raise ValidationError(f"Invalid arguments for {name}: {summary}", details={'errors': problems}) from error


def tool_catalog() -> List[Dict[str, Any]]:
    """Name, description and argument schema for every tool"""
    catalog = []
    for name, model in TOOL_MODELS.items():
        schema = model.model_json_schema(by_alias=True)
        schema.get('properties', {}).pop('tool', None)
        catalog.append({
            'name': name,
            'description': (model.__doc__ or '').strip(),
            'inputSchema': schema,
        })
    return catalog
