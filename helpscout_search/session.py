"""
Session context threaded through tool calls by the caller
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from helpscout_search.models import camel_keys


SEARCH_TOOLS = {
    'searchConversations',
    'advancedConversationSearch',
    'comprehensiveConversationSearch',
    'structuredConversationFilter',
}
CONVERSATION_TOOLS = {'getThreads', 'getConversationSummary'}


@dataclass
class SessionContext:
    """What the caller has done so far - advisory only, never blocks a call"""
    user_query: Optional[str] = None
    previous_calls: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SessionContext':
        data = data or {}
        return cls(
            user_query=data.get('userQuery'),
            previous_calls=list(data.get('previousCalls') or [])
        )

    def to_dict(self) -> Dict[str, Any]:
        return camel_keys({
            'user_query': self.user_query,
            'previous_calls': list(self.previous_calls),
        })

    def record(self, tool_name: str) -> 'SessionContext':
        """Return a new context with the call appended"""
        return SessionContext(
            user_query=self.user_query,
            previous_calls=[*self.previous_calls, tool_name]
        )

    def has_searched(self) -> bool:
        return any(call in SEARCH_TOOLS for call in self.previous_calls)

    def guidance(self, tool_name: str, result: Dict[str, Any]) -> List[str]:
        """Hints for the next step, based on the call history and the result"""
        hints = []

        if tool_name == 'structuredConversationFilter' and not self.has_searched():
            hints.append(
                "structuredConversationFilter works on IDs discovered by earlier searches. "
                "Run searchConversations or comprehensiveConversationSearch first to find "
                "assignee, customer or ticket numbers."
            )

        if tool_name in CONVERSATION_TOOLS and not self.has_searched():
            hints.append(
                "Conversation IDs come from search results. If this ID was guessed, "
                "search first with comprehensiveConversationSearch."
            )

        if tool_name in SEARCH_TOOLS and not result.get('results'):
            hints.append(
                "No conversations matched. Broaden the search terms, extend the date range, "
                "or search all statuses with comprehensiveConversationSearch."
            )

        failed = (result.get('pagination') or {}).get('failedStatuses')
        if failed:
            hints.append(
                f"Some statuses could not be searched ({', '.join(failed)}). "
                "Retry later for complete results."
            )

        return hints
