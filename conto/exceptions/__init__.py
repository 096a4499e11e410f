"""
Custom exceptions package.
"""
from conto.exceptions.custom_exceptions import (
    AppError,
    ValidationError,
    AuthenticationError,
    DatabaseError,
    FileProcessingError
)

__all__ = [
    "AppError",
    "ValidationError",
    "AuthenticationError",
    "DatabaseError",
    "FileProcessingError"
]
