"""
Shared test fixtures for Help Scout search tests
"""

import pytest
from typing import Dict, List, Optional

from helpscout_search.config import Settings
from helpscout_search.errors import NotFoundError
from helpscout_search.models import Page
from helpscout_search.search_service import SearchService


# === Mock Help Scout transport ===

class MockHelpScoutClient:
    """Mock transport that serves canned pages per status and records every call"""

    def __init__(
        self,
        pages: Dict[str, Page] = None,
        errors: Dict[str, BaseException] = None,
        resources: Dict[str, dict] = None,
        threads: Dict[str, List[dict]] = None,
        inboxes: List[dict] = None
    ):
        self._pages = pages or {}
        self._errors = errors or {}
        self._resources = resources or {}
        self._threads = threads or {}
        self._inboxes = inboxes or []
        self.calls: List[tuple] = []

    def fetch_page(self, path: str, params: Optional[dict] = None) -> Page:
        params = dict(params or {})
        self.calls.append((path, params))

        if path == '/conversations':
            status = params.get('status')
            if status in self._errors:
                raise self._errors[status]
            return self._pages.get(status) or make_page([])

        if path == '/mailboxes':
            return make_page(self._inboxes)

        if path.startswith('/conversations/') and path.endswith('/threads'):
            conversation_id = path.split('/')[2]
            if conversation_id not in self._threads:
                raise NotFoundError(f"Resource not found: conversation {conversation_id}")
            return make_page(self._threads[conversation_id])

        raise NotFoundError(f"Resource not found: {path}")

    def get(self, path: str, params: Optional[dict] = None) -> dict:
        self.calls.append((path, dict(params or {})))
        if path not in self._resources:
            raise NotFoundError(f"Resource not found: {path}")
        return self._resources[path]

    def statuses_requested(self) -> List[str]:
        return [params.get('status') for path, params in self.calls if path == '/conversations']


# === Helpers to create API records ===

def make_page(items: List[dict], total: int = None, next_href: str = None) -> Page:
    """Helper to create a Page matching a Help Scout list response"""
    total = len(items) if total is None else total
    return Page(
        items=list(items),
        reported_total=total,
        continuation=next_href,
        metadata={'size': 50, 'totalElements': total, 'totalPages': max(1, -(-total // 50)), 'number': 1}
    )


def make_conversation(
    conversation_id: int,
    status: str = 'active',
    created_at: Optional[str] = '2024-01-10T12:00:00Z',
    subject: str = None,
    preview: str = None
) -> dict:
    """Helper to create a conversation dict matching the Help Scout API structure"""
    data = {
        'id': conversation_id,
        'number': conversation_id + 1000,
        'subject': subject or f'Conversation {conversation_id}',
        'status': status,
        'createdAt': created_at,
        'primaryCustomer': {'id': 7, 'email': 'customer@example.com'},
        'assignee': None,
        'tags': [],
    }
    if preview is not None:
        data['preview'] = preview
    return data


def make_thread(
    thread_id: int,
    thread_type: str = 'customer',
    body: str = '',
    created_at: str = '2024-01-10T12:00:00Z',
    created_by: dict = None,
    attachment_count: int = 0
) -> dict:
    """Helper to create a thread dict matching the Help Scout API structure"""
    thread = {
        'id': thread_id,
        'type': thread_type,
        'body': body,
        'createdAt': created_at,
        'createdBy': created_by,
        'customer': {'id': 7, 'email': 'customer@example.com'},
    }
    if attachment_count:
        thread['_embedded'] = {
            'attachments': [
                {'id': index, 'filename': f'file{index}.pdf'} for index in range(attachment_count)
            ]
        }
    return thread


# === Fixtures ===

@pytest.fixture
def sample_pages() -> Dict[str, Page]:
    """Returns pages for the three canonical statuses, with one id repeated across statuses"""
    return {
        'active': make_page([
            make_conversation(1, 'active', '2024-01-15T09:00:00Z'),
            make_conversation(2, 'active', '2024-01-12T09:00:00Z'),
        ], total=10),
        'pending': make_page([
            make_conversation(3, 'pending', '2024-01-14T09:00:00Z'),
        ], total=1),
        'closed': make_page([
            make_conversation(4, 'closed', '2024-01-16T09:00:00Z'),
            make_conversation(2, 'closed', '2024-01-12T09:00:00Z'),
        ], total=5),
    }


@pytest.fixture
def mock_client(sample_pages) -> MockHelpScoutClient:
    """Returns a MockHelpScoutClient serving the sample pages"""
    return MockHelpScoutClient(pages=sample_pages)


@pytest.fixture
def default_settings() -> Settings:
    """Settings with credentials, no default inbox and normalization on"""
    return Settings(client_id='app-id', client_secret='app-secret', cache_ttl_seconds=0)


@pytest.fixture
def search_service(mock_client, default_settings) -> SearchService:
    """Returns a SearchService backed by the mock transport"""
    return SearchService(mock_client, default_settings)
