from enum import Enum
from typing import Any, Dict, List, Optional


class VAPIException(Exception):
    """Base exception for VAPI related errors."""
    pass


class VAPIAPIError(VAPIException):
    """Exception raised for VAPI API errors.

    ``status_code`` is None when no response was received at all.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_permission_error(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_bad_request(self) -> bool:
        return self.status_code == 400

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ResourceNotFoundError(VAPIException):
    """Exception raised when a tool or assistant is not found."""
    pass


class ValidationError(VAPIException):
    """Exception raised for validation errors."""
    pass


class CryptoError(VAPIException):
    """Exception raised when encryption or decryption fails."""
    pass


class CredentialStoreError(VAPIException):
    """Exception raised when the credential store cannot be read or written."""
    pass


class CloneErrorCode(str, Enum):
    """Machine-readable failure codes returned to callers."""
    INVALID_USER_ID = "INVALID_USER_ID"
    INVALID_API_KEY = "INVALID_API_KEY"
    API_KEY_NOT_FOUND = "API_KEY_NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    INVALID_TEMPLATE = "INVALID_TEMPLATE"
    VAPI_BAD_REQUEST = "VAPI_BAD_REQUEST"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"


class CloneError(VAPIException):
    """Failure of a link or clone operation, carrying the partial action log."""

    def __init__(
        self,
        code: CloneErrorCode,
        message: str,
        actions: Optional[List[str]] = None,
        details: Optional[str] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.actions = list(actions or [])
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code.value,
            "details": self.details,
            "actions": list(self.actions),
        }
