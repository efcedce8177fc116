"""
Error types for kobo-notes.

Every failure raised by the package is a KoboNotesError carrying an ErrorType
and a context dictionary, so callers can tell a file that is not a Kobo
database apart from an unreadable file or a failed export.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Broad category of a failure."""
    DATABASE = "database_error"
    FILE = "file_error"
    VALIDATION = "validation_error"
    EXPORT = "export_error"


class KoboNotesError(Exception):
    """Base class for all kobo-notes errors."""

    error_type = ErrorType.DATABASE

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now()

    def __str__(self) -> str:
        return self.message


class NotKoboDatabaseError(KoboNotesError):
    """The byte buffer is not a SQLite image with the Kobo schema."""
    error_type = ErrorType.FILE


class DatabaseReadError(KoboNotesError):
    """The database could not be read (I/O failure, corrupt page, ...)."""
    error_type = ErrorType.DATABASE


class ValidationError(KoboNotesError):
    """Input rejected before any database work was attempted."""
    error_type = ErrorType.VALIDATION


class ExportError(KoboNotesError):
    """A book could not be rendered or the export could not be written."""
    error_type = ErrorType.EXPORT


class ExportCancelled(ExportError):
    """The export was cancelled before every book was processed."""


_USER_MESSAGES = {
    ErrorType.DATABASE: "Unable to read the database. Please copy KoboReader.sqlite from your device again.",
    ErrorType.FILE: "The selected file is not a valid Kobo database. Please select KoboReader.sqlite from the .kobo folder of your device.",
    ErrorType.VALIDATION: "The provided input is invalid. Please check it and try again.",
    ErrorType.EXPORT: "Export failed. Please try again.",
}


def user_message(error: Exception) -> str:
    """Get a user-friendly message for an error."""
    if isinstance(error, KoboNotesError):
        return _USER_MESSAGES.get(error.error_type, error.message)
    return str(error)


def log_error(error: Exception) -> None:
    """Log an error with its type and context."""
    if isinstance(error, KoboNotesError):
        logger.error(f"[{error.error_type.name}] {error.message} {error.context or ''}".rstrip())
    else:
        logger.error(f"[UNEXPECTED] {error}")
