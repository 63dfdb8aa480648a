# =============================================
# File: companion/routers/errors.py
# Purpose: Map data-access errors to HTTP responses
# =============================================
from __future__ import annotations

from fastapi import HTTPException

from companion.services.errors import ForbiddenError, NotFoundError

# Errors the routers translate; anything else becomes a 500
DOMAIN_ERRORS = (NotFoundError, ForbiddenError, ValueError)


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ForbiddenError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=422, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
