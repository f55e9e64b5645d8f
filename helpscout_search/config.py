"""
Runtime configuration loaded from the environment
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


DEFAULT_BASE_URL = 'https://api.helpscout.net/v2/'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == '':
        return default
    return value.strip().lower() == 'true'


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value not in (None, '') else default
    except ValueError:
        return default


@dataclass
class Settings:
    """Help Scout connection and formatting settings"""
    client_id: str = ''
    client_secret: str = ''
    base_url: str = DEFAULT_BASE_URL
    default_inbox_id: Optional[str] = None
    log_level: str = 'INFO'
    redact_message_content: bool = False
    strip_html: bool = True
    max_body_length: int = 0  # 0 = unlimited
    cache_ttl_seconds: int = 300
    max_cache_size: int = 10000
    request_timeout: float = 30.0
    max_retries: int = 3
    legacy_api_key: str = ''

    @property
    def token_url(self) -> str:
        return self.base_url.rstrip('/') + '/oauth2/token'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from environment variables (.env is loaded when reading os.environ)"""
        if environ is None:
            load_dotenv()
            environ = os.environ

        api_key = environ.get('HELPSCOUT_API_KEY', '')
        # ALLOW_PII=true is kept for backwards compatibility and always shows content
        redact = _flag(environ.get('REDACT_MESSAGE_CONTENT'), False) and not _flag(environ.get('ALLOW_PII'), False)

        return cls(
            client_id=environ.get('HELPSCOUT_APP_ID') or environ.get('HELPSCOUT_CLIENT_ID') or api_key,
            client_secret=environ.get('HELPSCOUT_APP_SECRET') or environ.get('HELPSCOUT_CLIENT_SECRET') or '',
            base_url=environ.get('HELPSCOUT_BASE_URL') or DEFAULT_BASE_URL,
            default_inbox_id=environ.get('HELPSCOUT_DEFAULT_INBOX_ID') or None,
            log_level=(environ.get('LOG_LEVEL') or 'INFO').upper(),
            redact_message_content=redact,
            strip_html=_flag(environ.get('HELPSCOUT_STRIP_HTML'), True),
            max_body_length=_int(environ.get('HELPSCOUT_MAX_BODY_LENGTH'), 0),
            cache_ttl_seconds=_int(environ.get('CACHE_TTL_SECONDS'), 300),
            max_cache_size=_int(environ.get('MAX_CACHE_SIZE'), 10000),
            request_timeout=_int(environ.get('HTTP_SOCKET_TIMEOUT'), 30000) / 1000,
            max_retries=_int(environ.get('HTTP_MAX_RETRIES'), 3),
            legacy_api_key=api_key,
        )

    def validate(self) -> None:
        """Raise ValueError when the settings cannot authenticate safely"""
        if self.legacy_api_key.startswith('Bearer '):
            raise ValueError(
                "Personal Access Tokens are no longer supported. "
                "Set HELPSCOUT_APP_ID and HELPSCOUT_APP_SECRET (Help Scout -> My Apps -> Create Private App)."
            )

        if not (self.client_id and self.client_secret):
            raise ValueError(
                "OAuth2 authentication required. Please provide HELPSCOUT_APP_ID and HELPSCOUT_APP_SECRET."
            )

        if not self.base_url.startswith('https://'):
            raise ValueError(
                f"HELPSCOUT_BASE_URL must use HTTPS to protect credentials in transit (got {self.base_url})"
            )


def configure_logging(level: str = 'INFO') -> None:
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT
    )
