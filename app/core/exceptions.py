"""Application error taxonomy.

Services raise these instead of ``HTTPException`` so the same code can run
from request handlers, webhook handlers and background work. ``app.main``
installs a handler that renders them as ``{"detail": message}`` with
``status_code``.
"""
from typing import Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, headers: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers


class Unauthorized(AppError):
    """Missing or invalid credentials or signature."""

    status_code = 401


class Forbidden(AppError):
    """Authenticated but not entitled to the resource."""

    status_code = 403


class NotFound(AppError):
    """Referenced installation, repository, project or run does not exist."""

    status_code = 404


class Conflict(AppError):
    status_code = 409


class ValidationFailure(AppError):
    """Malformed request body."""

    status_code = 400


class UpstreamFailure(AppError):
    """GitHub API, git or worker launch failure."""

    status_code = 502

    def __init__(self, message: str, run_id: Optional[str] = None):
        super().__init__(message)
        self.run_id = run_id
