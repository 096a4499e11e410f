"""
Custom exceptions for the conto service.
Every AppError carries the HTTP status the error handler answers with.
"""
from typing import Optional, Any, Dict


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Invalid input: amounts, parties, empty or oversized uploads (400)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class AuthenticationError(AppError):
    """Bearer token missing a subject or expired (401)."""

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class DatabaseError(AppError):
    """MongoDB unavailable or not connected (500)."""

    def __init__(self, message: str = "Operazione database fallita", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details)


class FileProcessingError(AppError):
    """Uploaded spreadsheet that cannot be read (422)."""

    def __init__(self, filename: str, reason: str):
        super().__init__(
            f"Errore nel file '{filename}': {reason}",
            status_code=422,
            details={"filename": filename, "reason": reason}
        )
