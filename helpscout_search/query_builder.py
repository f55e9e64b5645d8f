"""
Query Builder - Turns search criteria into Help Scout query syntax
"""

import re
from typing import Iterable, List, Optional, Sequence

from helpscout_search.errors import ValidationError
from helpscout_search.models import SearchCriteria


ISO_DATE_PATTERN = re.compile(
    r'^\d{4}-\d{2}-\d{2}'
    r'(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$'
)
# Help Scout rejects fractional seconds
FRACTIONAL_SECONDS = re.compile(r'(T\d{2}:\d{2}:\d{2})\.\d+')

SEARCH_IN_BODY = 'body'
SEARCH_IN_SUBJECT = 'subject'
SEARCH_IN_BOTH = 'both'


def escape_term(term: str) -> str:
    """Escape a term for use inside a double-quoted clause"""
    return term.replace('\\', '\\\\').replace('"', '\\"')


def field_clause(field_name: str, value: str) -> str:
    return f'{field_name}:"{escape_term(value)}"'


def or_group(field_name: str, terms: Iterable[str]) -> Optional[str]:
    """Render terms as one parenthesised OR group, or None when there are none"""
    clauses = [field_clause(field_name, term) for term in terms]
    if not clauses:
        return None
    return f"({' OR '.join(clauses)})"


def validate_iso_date(value: str, field_name: str) -> str:
    if not ISO_DATE_PATTERN.match(value or ''):
        raise ValidationError(
            f"Invalid {field_name} date format: {value}. Expected ISO 8601 (e.g., 2024-01-15T00:00:00Z)",
            details={'field': field_name, 'value': value}
        )
    return value


def strip_fractional_seconds(value: str) -> str:
    return FRACTIONAL_SECONDS.sub(r'\1', value)


def append_created_at_filter(
    query: Optional[str],
    created_after: Optional[str] = None,
    created_before: Optional[str] = None
) -> Optional[str]:
    """AND a createdAt range clause onto an existing query"""
    if not created_after and not created_before:
        return query

    if created_after:
        validate_iso_date(created_after, 'createdAfter')
    if created_before:
        validate_iso_date(created_before, 'createdBefore')

    start = strip_fractional_seconds(created_after) if created_after else '*'
    end = strip_fractional_seconds(created_before) if created_before else '*'
    clause = f'(createdAt:[{start} TO {end}])'

    if not query:
        return clause
    return f'({query}) AND {clause}'


def build_filter_query(criteria: SearchCriteria) -> Optional[str]:
    """Render the field criteria, without any date range"""
    parts: List[str] = []

    for group in (
        or_group('body', criteria.content_terms),
        or_group('subject', criteria.subject_terms),
    ):
        if group:
            parts.append(group)

    if criteria.customer_email:
        parts.append(field_clause('email', criteria.customer_email))

    if criteria.email_domain:
        domain = criteria.email_domain
        if domain.startswith('@'):
            domain = domain[1:]
        parts.append(field_clause('email', domain))

    tags = or_group('tag', criteria.tags)
    if tags:
        parts.append(tags)

    return ' AND '.join(parts) if parts else None


def build_query(criteria: SearchCriteria) -> Optional[str]:
    """Render the full query, including both createdAt bounds"""
    return append_created_at_filter(
        build_filter_query(criteria),
        criteria.created_after,
        criteria.created_before
    )


def build_keyword_query(terms: Sequence[str], search_in: Sequence[str]) -> str:
    """Match any term in the body and/or subject"""
    in_body = SEARCH_IN_BODY in search_in or SEARCH_IN_BOTH in search_in
    in_subject = SEARCH_IN_SUBJECT in search_in or SEARCH_IN_BOTH in search_in

    queries = []
    for term in terms:
        term_clauses = []
        if in_body:
            term_clauses.append(field_clause('body', term))
        if in_subject:
            term_clauses.append(field_clause('subject', term))
        if term_clauses:
            queries.append(f"({' OR '.join(term_clauses)})")

    return ' OR '.join(queries)
