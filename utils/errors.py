from __future__ import annotations

import time
from typing import Any, Dict, List, Optional


class LexiSyncError(Exception):
    """Base error carrying a timestamp and optional context for logging."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.timestamp = int(time.time() * 1000)
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "timestamp": self.timestamp,
            "context": self.context,
        }


class ValidationError(LexiSyncError):
    """Malformed input. Reported to the caller, never retried."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class NotFoundError(LexiSyncError):
    pass


class DuplicateError(LexiSyncError):
    """Identity collision on create."""


class AlreadyExistsError(DuplicateError):
    pass


class NetworkError(LexiSyncError):
    """Transient remote failure. The only error kind retried by default."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.status_code = status_code
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["url"] = self.url
        return data


class StructuralValidationError(LexiSyncError):
    """A backup or snapshot document failed shape validation."""

    def __init__(self, errors: List[str], context: Optional[Dict[str, Any]] = None):
        super().__init__(f"Invalid document: {len(errors)} problem(s)", context)
        self.errors = list(errors)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class SyncInProgressError(LexiSyncError):
    pass

