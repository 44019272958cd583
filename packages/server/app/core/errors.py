"""
Authorization error taxonomy and its HTTP rendering.

Denials are ordinary decisions inside the resolver; these exceptions exist for
callers that want to halt a request on denial.
"""

from __future__ import annotations

from fastapi import Request
from starlette.responses import JSONResponse


class AuthorizationError(Exception):
    """Base class for authorization failures surfaced to the request path."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)
        self.message = message


class UnauthorizedError(AuthorizationError):
    """No authenticated user, or a session missing its role/organization."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(AuthorizationError):
    """Authenticated, but lacking the role or permission."""


def error_body(code: str, message: str, status: int) -> dict:
    return {"error": {"code": code, "message": message, "status": status}}


async def authorization_error_handler(_request: Request, exc: AuthorizationError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.status_code),
    )
