"""Student roster management."""

from .service import InvalidHandleError, StudentCreate, StudentService, StudentUpdate

__all__ = [
    "InvalidHandleError",
    "StudentCreate",
    "StudentService",
    "StudentUpdate",
]
