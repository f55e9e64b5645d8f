"""
Shared data models for Help Scout search
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from caseconverter import camelcase


# Order in which branch results are merged
CANONICAL_STATUSES = ('active', 'pending', 'closed')
ALL_STATUSES = ('active', 'pending', 'closed', 'spam')


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, treating naive values as UTC"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def camel_keys(data: Dict[str, Any], keep_none: bool = False) -> Dict[str, Any]:
    """Rename snake_case keys to camelCase, dropping None values unless asked"""
    return {
        camelcase(key): value
        for key, value in data.items()
        if keep_none or value is not None
    }


@dataclass(frozen=True)
class SearchCriteria:
    """Structured filter criteria for one search invocation"""
    content_terms: Tuple[str, ...] = ()
    subject_terms: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    customer_email: Optional[str] = None
    email_domain: Optional[str] = None
    inbox_id: Optional[str] = None
    statuses: Tuple[str, ...] = ()
    created_after: Optional[str] = None
    created_before: Optional[str] = None
    limit: int = 50


@dataclass
class Conversation:
    """A conversation as returned by the list endpoint"""
    id: int
    number: Optional[int]
    subject: str
    status: str
    created_at: Optional[str]
    customer: Optional[Dict] = None
    assignee: Optional[Dict] = None
    tags: List[Dict] = field(default_factory=list)
    preview: Optional[str] = None
    raw: Dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, data: Dict) -> 'Conversation':
        return cls(
            id=data['id'],
            number=data.get('number'),
            subject=data.get('subject') or '',
            status=data.get('status') or '',
            created_at=data.get('createdAt'),
            customer=data.get('primaryCustomer') or data.get('customer'),
            assignee=data.get('assignee'),
            tags=list(data.get('tags') or []),
            preview=data.get('preview'),
            raw=dict(data),
        )

    @property
    def created_timestamp(self) -> Optional[datetime]:
        return parse_timestamp(self.created_at)

    def to_dict(self) -> Dict:
        """Return the API record with the (possibly normalized) preview applied"""
        data = dict(self.raw)
        if self.preview is not None:
            data['preview'] = self.preview
        return data


@dataclass
class ErrorInfo:
    """Why a single status branch failed"""
    status: str
    message: str
    code: str

    def to_dict(self) -> Dict:
        return {'status': self.status, 'message': self.message, 'code': self.code}


@dataclass
class StatusBranchResult:
    """Outcome of one status-scoped fetch"""
    status: str
    conversations: List[Conversation] = field(default_factory=list)
    reported_total: int = 0
    total_before_filter: Optional[int] = None
    filtered_by_created_before: bool = False
    error: Optional[ErrorInfo] = None
    page: Optional[Dict] = None
    next_cursor: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class Pagination:
    """Accounting for a merged or client-side filtered result"""
    returned_count: int
    available_total: int
    available_by_status: Dict[str, int] = field(default_factory=dict)
    failed_statuses: List[str] = field(default_factory=list)
    errors: List[ErrorInfo] = field(default_factory=list)
    available_before_filter: Optional[int] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict:
        data = camel_keys({
            'returned_count': self.returned_count,
            'available_total': self.available_total,
            'available_by_status': dict(self.available_by_status),
            'available_before_filter': self.available_before_filter,
            'note': self.note,
        })
        if self.failed_statuses:
            data['failedStatuses'] = list(self.failed_statuses)
            data['errors'] = [error.to_dict() for error in self.errors]
        return data


@dataclass
class ReconciledResult:
    """Merged, deduplicated, sorted and limited conversations"""
    conversations: List[Conversation]
    pagination: Pagination


@dataclass(frozen=True)
class InlineImage:
    """An image found in a message body, replaced in the text by a placeholder"""
    index: int
    src: str
    alt: str = ''
    width: Optional[int] = None
    height: Optional[int] = None
    is_fetchable: bool = False

    @property
    def placeholder(self) -> str:
        if self.alt:
            return f'[Image {self.index}: {self.alt}]'
        return f'[Image {self.index}]'

    def to_dict(self) -> Dict:
        return camel_keys({
            'index': self.index,
            'src': self.src,
            'alt': self.alt,
            'width': self.width,
            'height': self.height,
            'is_fetchable': self.is_fetchable,
        }, keep_none=True)


@dataclass(frozen=True)
class NormalizedBody:
    """Readable text of a message body plus the images it referenced"""
    text: str
    images: Tuple[InlineImage, ...] = ()


@dataclass
class Page:
    """One page returned by the transport"""
    items: List[Dict]
    reported_total: int
    continuation: Optional[str] = None
    metadata: Dict = field(default_factory=dict)


@dataclass
class FetchConfig:
    """Configuration for a multi-status fetch"""
    page_size: int = 50
    sort_field: str = 'createdAt'
    sort_order: str = 'desc'
    created_before: Optional[str] = None


@dataclass
class NormalizerConfig:
    """Configuration for body normalization"""
    max_body_length: int = 0  # 0 = unlimited
