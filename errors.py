"""Error hierarchy for the shop API.

Every error carries a code, a category and the HTTP status it maps to.
The global handlers in main.py turn them into JSON bodies; nothing here
retries or logs.
"""

from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    DATABASE = "database"
    INTERNAL = "internal"


class ShopError(Exception):
    """Base exception for all expected failures of the API."""

    def __init__(self, message: str, code: str, category: ErrorCategory, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.http_status = http_status

    def to_response(self) -> dict:
        return {
            "message": self.message,
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
            },
        }


# 401

class UnauthorizedError(ShopError):
    """No credential was presented."""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "UNAUTHORIZED", ErrorCategory.AUTHENTICATION, 401)


class InvalidTokenError(ShopError):
    """A credential was presented but could not be verified."""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, "INVALID_TOKEN", ErrorCategory.AUTHENTICATION, 401)


class AuthenticationFailedError(ShopError):
    """Email/password pair (or old password) did not match."""
    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, "AUTHENTICATION_FAILED", ErrorCategory.AUTHENTICATION, 401)


# 400 / 404

class InvalidInputError(ShopError):
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, "INVALID_INPUT", ErrorCategory.VALIDATION, 400)
        self.field = field


class ConflictError(ShopError):
    """Uniqueness violation detected before the write (e.g. email in use)."""
    def __init__(self, message: str):
        super().__init__(message, "CONFLICT", ErrorCategory.CONFLICT, 400)


class NotFoundError(ShopError):
    def __init__(self, resource_type: str, resource_id: Optional[str] = None, message: Optional[str] = None):
        if message is None:
            message = f"{resource_type} not found"
            if resource_id is not None:
                message = f"{resource_type} '{resource_id}' not found"
        super().__init__(message, "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND, 404)
        self.resource_type = resource_type
        self.resource_id = resource_id


# 500

class StorageError(ShopError):
    """A document store call failed."""
    def __init__(self, operation: str, collection: str):
        super().__init__(
            f"Database {operation} on '{collection}' failed",
            "DATABASE_ERROR", ErrorCategory.DATABASE, 500,
        )
        self.operation = operation
        self.collection = collection
