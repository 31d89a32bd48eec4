"""Error taxonomy and the shared recovery helper used by collectors."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger("bandwidth_inspector")


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class InspectorError(Exception):
    """Base class for every error raised by the analysis pipeline."""

    code = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})


class NetworkError(InspectorError):
    """A fetch failed or timed out."""

    code = ErrorCode.NETWORK_ERROR


class ApiError(InspectorError):
    """The host or content API failed or returned an unexpected shape."""

    code = ErrorCode.API_ERROR


class ValidationError(InspectorError):
    code = ErrorCode.VALIDATION_ERROR


class NotFoundError(InspectorError):
    code = ErrorCode.NOT_FOUND


class UnknownError(InspectorError):
    code = ErrorCode.UNKNOWN_ERROR


_ERROR_TYPES = {
    ErrorCode.NETWORK_ERROR: NetworkError,
    ErrorCode.API_ERROR: ApiError,
    ErrorCode.VALIDATION_ERROR: ValidationError,
    ErrorCode.NOT_FOUND: NotFoundError,
    ErrorCode.UNKNOWN_ERROR: UnknownError,
}


def extract_error_message(error: BaseException) -> str:
    message = str(error)
    return message or error.__class__.__name__


def handle_service_error(
    error: BaseException,
    context: str,
    *,
    level: int = logging.WARNING,
    code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
) -> InspectorError:
    """Log a recovered failure and wrap it in the matching taxonomy type.

    Errors that already belong to the taxonomy keep their own type and code.
    The returned error is for the caller to inspect; it is never raised here.
    """
    if isinstance(error, InspectorError):
        wrapped = error
    else:
        wrapped = _ERROR_TYPES[code](extract_error_message(error), {"context": context})
    logger.log(level, "[%s] %s", context, wrapped.message)
    return wrapped
