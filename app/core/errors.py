"""
Error taxonomy shared by all features.

Each error is an HTTPException so routes and dependencies can raise it
directly; FastAPI renders it as {"detail": ...} with the matching status.
"""
from typing import Optional
from fastapi import HTTPException, status


class Unauthenticated(HTTPException):
    """Missing, invalid or expired credential."""

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    """Credential is valid but a tenant or permission check failed."""

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    """Resource id does not resolve."""

    def __init__(self, resource: str, detail: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{resource} not found",
        )


class ValidationError(HTTPException):
    """Malformed or missing input, detected before any write."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class Conflict(HTTPException):
    """Uniqueness violation."""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

