"""
Shared error responses for the HOS API views.

Maps the engine's exception taxonomy onto HTTP status codes so every view
reports failures in the same ``{'error': ..., 'details': ...}`` shape.
"""

import logging

from rest_framework import status
from rest_framework.response import Response

from .exceptions import (
    AlreadySuperseded,
    ConflictingInterval,
    MissingEditReason,
    OutOfOrderEvent,
    StoreError,
    StoreTimeout,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = [
    (OutOfOrderEvent, status.HTTP_409_CONFLICT, 'Status change is out of order'),
    (ConflictingInterval, status.HTTP_409_CONFLICT, 'Status change conflicts with the timeline'),
    (AlreadySuperseded, status.HTTP_409_CONFLICT, 'Interval has already been amended'),
    (MissingEditReason, status.HTTP_400_BAD_REQUEST, 'An edit reason is required'),
    (StoreTimeout, status.HTTP_503_SERVICE_UNAVAILABLE, 'Timed out waiting for the timeline store'),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE, 'Timeline store unavailable'),
]


def error_response(message, details=None, status_code=status.HTTP_400_BAD_REQUEST):
    body = {'error': message}
    if details is not None:
        body['details'] = details
    return Response(body, status=status_code)


def engine_error_response(exc):
    """
    Build the response for an error raised by the HOS engine.

    Args:
        exc: HOSEngineError subclass instance

    Returns:
        Response with the mapped status code
    """
    for error_class, status_code, message in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            if status_code >= 500:
                logger.error(f"{message}: {str(exc)}")
            else:
                logger.warning(f"{message}: {str(exc)}")
            return error_response(message, str(exc), status_code)

    logger.error(f"Unhandled HOS engine error: {str(exc)}")
    return error_response(
        'HOS engine error', str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
    )
