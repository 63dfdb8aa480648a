# =============================================
# File: companion/services/errors.py
# Purpose: Domain errors raised by the data-access layer (mapped to HTTP codes by the routers)
# =============================================


class NotFoundError(LookupError):
    """Requested document does not exist."""


class ForbiddenError(PermissionError):
    """Caller does not own the document it tries to change."""
