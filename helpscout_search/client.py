"""
Help Scout Client - Authenticated transport for the Mailbox API v2
Handles OAuth2 client credentials, retries, response caching and error classification
"""

import json
import time
import random
import logging
import threading
from collections import OrderedDict
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import requests
from oauthlib.oauth2 import BackendApplicationClient, OAuth2Error, TokenExpiredError
from requests_oauthlib import OAuth2Session

from helpscout_search.config import Settings
from helpscout_search.errors import (
    ApiError,
    AuthError,
    NotFoundError,
    RateLimitError,
    UpstreamError,
    ValidationError,
)
from helpscout_search.models import Page


logger = logging.getLogger(__name__)


class HelpScoutClient:
    """Thin transport over the Help Scout API - callers only see pages and classified errors"""

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
    RETRY_DELAY_BASE = 1  # seconds, exponential backoff: 1s, 2s, 4s

    def __init__(
        self,
        settings: Settings,
        session: Optional[OAuth2Session] = None,
        retry_delay_base: Optional[float] = None
    ):
        self.settings = settings
        self.session = session or OAuth2Session(client=BackendApplicationClient(client_id=settings.client_id))
        self.retry_delay_base = self.RETRY_DELAY_BASE if retry_delay_base is None else retry_delay_base
        self._cache: 'OrderedDict[str, Tuple[float, Dict]]' = OrderedDict()
        self._authenticated = False
        self._auth_lock = threading.Lock()

    # === Authentication ===

    def authenticate(self) -> None:
        """Fetch a fresh access token with the client credentials grant"""
        with self._auth_lock:
            self._fetch_token()

    def _ensure_authenticated(self) -> None:
        # Branch threads share one session, only the first of them fetches the token
        with self._auth_lock:
            if not self._authenticated:
                self._fetch_token()

    def _fetch_token(self) -> None:
        try:
            self.session.fetch_token(
                token_url=self.settings.token_url,
                client_id=self.settings.client_id,
                client_secret=self.settings.client_secret
            )
        except OAuth2Error as error:
            raise AuthError(f"OAuth2 token request rejected: {error.description or error}") from error
        except requests.exceptions.RequestException as error:
            raise UpstreamError(f"Could not reach the token endpoint: {error}") from error
        self._authenticated = True
        logger.info("Obtained Help Scout access token")

    # === Requests ===

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict:
        """GET a resource, served from cache when a fresh copy exists"""
        cache_key = self._cache_key(path, params)
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for {path}")
            return cached

        data = self._request_with_retry(path, params)
        self._cache_put(cache_key, data)
        return data

    def fetch_page(self, path: str, params: Optional[Dict[str, Any]] = None) -> Page:
        """GET a paginated collection and unwrap its HAL envelope"""
        data = self.get(path, params)
        embedded = data.get('_embedded') or {}
        items = next(iter(embedded.values()), []) if embedded else []
        page = data.get('page') or {}
        next_link = (data.get('_links') or {}).get('next') or {}

        return Page(
            items=list(items),
            reported_total=page.get('totalElements', len(items)),
            continuation=next_link.get('href'),
            metadata=dict(page)
        )

    def _request_with_retry(self, path: str, params: Optional[Dict[str, Any]]) -> Dict:
        url = self.settings.base_url.rstrip('/') + '/' + path.lstrip('/')
        reauthenticated = False

        if not self._authenticated:
            self._ensure_authenticated()

        for attempt in range(self.settings.max_retries + 1):
            try:
                response = self.session.get(url, params=params, timeout=self.settings.request_timeout)
            except TokenExpiredError:
                if reauthenticated:
                    raise AuthError("Access token expired and could not be renewed")
                logger.info("Access token expired, fetching a new one")
                self.authenticate()
                reauthenticated = True
                continue
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as error:
                if attempt < self.settings.max_retries:
                    delay = self._backoff(attempt)
                    logger.warning(
                        f"Connection error on {path}: {error}, retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self.settings.max_retries + 1})"
                    )
                    time.sleep(delay)
                    continue
                raise UpstreamError(f"Help Scout API unreachable: {error}") from error

            if response.status_code == 401 and not reauthenticated:
                logger.info("Help Scout rejected the access token, fetching a new one")
                self.authenticate()
                reauthenticated = True
                continue

            if response.status_code in self.RETRYABLE_STATUS_CODES and attempt < self.settings.max_retries:
                delay = self._retry_delay(response, attempt)
                logger.warning(
                    f"Help Scout API returned {response.status_code} on {path}, retrying in {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.settings.max_retries + 1})"
                )
                time.sleep(delay)
                continue

            if response.status_code >= 400:
                raise self.classify_response(response)

            logger.debug(f"GET {path} -> {response.status_code}")
            return response.json()

        raise UpstreamError(f"Help Scout API request to {path} failed after {self.settings.max_retries + 1} attempts")

    # === Error classification ===

    @classmethod
    def classify_response(cls, response) -> ApiError:
        """Map a failed HTTP response onto the error taxonomy"""
        status = response.status_code
        message = cls._error_message(response)
        details = {'status': status}

        if status in (401, 403):
            return AuthError(f"Authentication failed: {message}", details=details)
        if status in (400, 422):
            return ValidationError(f"Invalid request: {message}", details=details)
        if status == 404:
            return NotFoundError(f"Resource not found: {message}", details=details)
        if status == 429:
            retry_after = response.headers.get('Retry-After')
            return RateLimitError(
                f"Rate limit exceeded: {message}",
                retry_after=cls._parse_retry_after(retry_after) if retry_after else None,
                details=details
            )
        return UpstreamError(f"Help Scout API error ({status}): {message}", details=details)

    @staticmethod
    def _error_message(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or response.reason or '').strip()[:200]
        if isinstance(body, dict):
            return str(body.get('message') or body.get('error') or body)
        return str(body)

    # === Backoff ===

    def _backoff(self, attempt: int) -> float:
        base_delay = self.retry_delay_base * (2 ** attempt)
        return base_delay + random.uniform(0, 0.5 * base_delay)

    def _retry_delay(self, response, attempt: int) -> float:
        retry_after = response.headers.get('Retry-After')
        if response.status_code == 429 and retry_after:
            return float(self._parse_retry_after(retry_after))
        return self._backoff(attempt)

    @staticmethod
    def _parse_retry_after(header_value: str) -> int:
        """Retry-After is either seconds or an HTTP-date"""
        try:
            return max(1, int(header_value))
        except ValueError:
            try:
                retry_at = parsedate_to_datetime(header_value)
                if retry_at.tzinfo is None:
                    retry_at = retry_at.replace(tzinfo=timezone.utc)
                return max(1, int((retry_at - datetime.now(timezone.utc)).total_seconds()))
            except (TypeError, ValueError):
                return 10

    # === Cache ===

    @staticmethod
    def _cache_key(path: str, params: Optional[Dict[str, Any]]) -> str:
        return f"{path}?{json.dumps(params or {}, sort_keys=True, default=str)}"

    def _cache_get(self, key: str) -> Optional[Dict]:
        if self.settings.cache_ttl_seconds <= 0:
            return None
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at < time.monotonic():
            del self._cache[key]
            return None
        return data

    def _cache_put(self, key: str, data: Dict) -> None:
        if self.settings.cache_ttl_seconds <= 0:
            return
        self._cache[key] = (time.monotonic() + self.settings.cache_ttl_seconds, data)
        self._cache.move_to_end(key)
        while len(self._cache) > self.settings.max_cache_size:
            self._cache.popitem(last=False)

    def clear_cache(self) -> None:
        self._cache.clear()
