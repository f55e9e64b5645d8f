"""
Tests for Settings loaded from the environment
"""

import pytest

from helpscout_search.config import DEFAULT_BASE_URL, Settings


class TestFromEnv:
    """Tests for Settings.from_env"""

    def test_defaults(self):
        """An empty environment yields safe defaults"""
        settings = Settings.from_env({})
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.default_inbox_id is None
        assert settings.redact_message_content is False
        assert settings.strip_html is True
        assert settings.max_body_length == 0
        assert settings.request_timeout == 30.0

    def test_app_credentials(self):
        """HELPSCOUT_APP_ID/SECRET are the primary credential names"""
        settings = Settings.from_env({
            'HELPSCOUT_APP_ID': 'id',
            'HELPSCOUT_APP_SECRET': 'secret',
            'HELPSCOUT_CLIENT_ID': 'other',
        })
        assert (settings.client_id, settings.client_secret) == ('id', 'secret')

    def test_legacy_client_names(self):
        """HELPSCOUT_CLIENT_ID/SECRET still work"""
        settings = Settings.from_env({'HELPSCOUT_CLIENT_ID': 'id', 'HELPSCOUT_CLIENT_SECRET': 'secret'})
        assert (settings.client_id, settings.client_secret) == ('id', 'secret')

    def test_formatting_and_limits(self):
        """Numeric and boolean settings are parsed"""
        settings = Settings.from_env({
            'HELPSCOUT_DEFAULT_INBOX_ID': '42',
            'HELPSCOUT_STRIP_HTML': 'false',
            'HELPSCOUT_MAX_BODY_LENGTH': '500',
            'HTTP_SOCKET_TIMEOUT': '5000',
            'CACHE_TTL_SECONDS': 'not-a-number',
            'LOG_LEVEL': 'debug',
        })
        assert settings.default_inbox_id == '42'
        assert settings.strip_html is False
        assert settings.max_body_length == 500
        assert settings.request_timeout == 5.0
        assert settings.cache_ttl_seconds == 300
        assert settings.log_level == 'DEBUG'

    @pytest.mark.parametrize('redact, allow_pii, expected', [
        ('true', None, True),
        ('true', 'true', False),
        ('false', None, False),
        (None, None, False),
    ])
    def test_redaction(self, redact, allow_pii, expected):
        """REDACT_MESSAGE_CONTENT hides bodies unless ALLOW_PII is set"""
        environ = {}
        if redact is not None:
            environ['REDACT_MESSAGE_CONTENT'] = redact
        if allow_pii is not None:
            environ['ALLOW_PII'] = allow_pii
        assert Settings.from_env(environ).redact_message_content is expected


class TestValidate:
    """Tests for Settings.validate"""

    def test_valid(self):
        """OAuth2 credentials over HTTPS pass"""
        Settings(client_id='id', client_secret='secret').validate()

    def test_personal_access_token_rejected(self):
        """Bearer tokens are no longer supported"""
        settings = Settings.from_env({'HELPSCOUT_API_KEY': 'Bearer abc'})
        with pytest.raises(ValueError, match='Personal Access Tokens'):
            settings.validate()

    def test_missing_credentials(self):
        """Both id and secret are required"""
        with pytest.raises(ValueError, match='OAuth2 authentication required'):
            Settings(client_id='id').validate()

    def test_https_required(self):
        """Credentials are never sent over plain HTTP"""
        with pytest.raises(ValueError, match='HTTPS'):
            Settings(client_id='id', client_secret='secret', base_url='http://api.example.com/v2/').validate()
