"""
Custom exception classes for cookie guard.
"""

from typing import Optional, Dict, Any


class CookieGuardError(Exception):
    """Base exception class."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class CookieWriteError(CookieGuardError):
    """Cookie store rejected a write (invalid attribute combination or quota)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="COOKIE_WRITE_ERROR",
            message=message,
            details=details
        )


class StorageError(CookieGuardError):
    """Persisted key-value store read or write failed."""

    def __init__(self, key: str, message: str):
        super().__init__(
            code="STORAGE_ERROR",
            message=f"Storage operation on '{key}' failed: {message}",
            details={"key": key}
        )


class OracleError(CookieGuardError):
    """Classifier oracle call failed or returned unusable output."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code="ORACLE_ERROR",
            message=message,
            details=details
        )


class ModelNotFoundError(CookieGuardError):
    """Classifier model file is missing."""

    def __init__(self, model_path: str):
        super().__init__(
            code="MODEL_NOT_FOUND",
            message=f"Model not found: {model_path}",
            details={"model_path": model_path}
        )
