"""
Custom exception hierarchy for the image QC validator.

Tool and persistence errors are caught by the batch driver and recorded as
per-file failures. ConfigurationError is the only one expected to reach the
caller.
"""
from typing import Optional


class ImageQCError(Exception):
    """Base exception for all image QC errors."""
    pass


class ToolNotFoundError(ImageQCError):
    """Raised when an external tool binary cannot be found or executed."""

    def __init__(self, command: str, message: Optional[str] = None):
        self.command = command
        super().__init__(message or f"{command} not installed or not executable")


class ToolTimeoutError(ImageQCError):
    """Raised when an external tool exceeds its time budget and is killed."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"{command} timed out after {timeout:g}s")


class MalformedOutputError(ImageQCError):
    """Raised when tool output (JSON/XML) cannot be parsed."""

    def __init__(self, message: str, raw_output: Optional[str] = None):
        self.raw_output = raw_output
        super().__init__(message)


class MetadataExtractionError(ImageQCError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class PersistenceError(ImageQCError):
    """Raised when writing to the result store fails."""
    pass


class ConfigurationError(ImageQCError):
    """Raised for setup problems detected before any processing begins."""
    pass
