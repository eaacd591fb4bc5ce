"""Domain errors raised by services and their HTTP mapping.

All errors derive from `ValueError` so callers that only care about
"the operation was rejected" can keep catching `ValueError`.
"""

from fastapi import HTTPException


class NotFoundError(ValueError):
    """The requested record does not exist (404)."""


class PermissionDeniedError(ValueError):
    """The caller may not act on this record (403)."""


class ConflictError(ValueError):
    """The record is in a state that forbids the operation (422)."""


def to_http(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
