"""
Error taxonomy for Help Scout search
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INVALID_INPUT = 'INVALID_INPUT'
    UNAUTHORIZED = 'UNAUTHORIZED'
    RATE_LIMIT = 'RATE_LIMIT'
    UPSTREAM_ERROR = 'UPSTREAM_ERROR'
    NOT_FOUND = 'NOT_FOUND'
    UNCLASSIFIED = 'UNCLASSIFIED'


# Codes that abort a multi-status search instead of degrading to partial results
AGGREGATION_FATAL_CODES = {ErrorCode.UNAUTHORIZED, ErrorCode.INVALID_INPUT}

HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.RATE_LIMIT: 429,
    ErrorCode.UPSTREAM_ERROR: 502,
    ErrorCode.UNCLASSIFIED: 500,
}


class ApiError(Exception):
    """A recognized, classified error from the API or from input validation"""

    code = ErrorCode.UPSTREAM_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = ErrorCode(code)
        self.retry_after = retry_after
        self.details = details or {}

    @property
    def aborts_aggregation(self) -> bool:
        """Whether this error must abort a multi-status search"""
        return self.code in AGGREGATION_FATAL_CODES

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]

    def to_dict(self) -> Dict[str, Any]:
        data = {'code': self.code.value, 'message': self.message, 'details': self.details}
        if self.retry_after is not None:
            data['retryAfter'] = self.retry_after
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class ValidationError(ApiError):
    """Malformed or out-of-range input"""
    code = ErrorCode.INVALID_INPUT


class AuthError(ApiError):
    code = ErrorCode.UNAUTHORIZED


class RateLimitError(ApiError):
    code = ErrorCode.RATE_LIMIT


class UpstreamError(ApiError):
    code = ErrorCode.UPSTREAM_ERROR


class NotFoundError(ApiError):
    code = ErrorCode.NOT_FOUND


def is_api_error(error: BaseException) -> bool:
    return isinstance(error, ApiError)


def error_payload(error: BaseException) -> Dict[str, Any]:
    """Render any exception as a single error object with a stable code"""
    if is_api_error(error):
        return {'error': error.to_dict()}
    return {
        'error': {
            'code': ErrorCode.UNCLASSIFIED.value,
            'message': str(error) or type(error).__name__,
            'details': {'type': type(error).__name__},
        }
    }
