"""
Exception hierarchy for citelens.

Only conditions the caller has to act on are raised. Everything that can
degrade gracefully (malformed directives, unknown sources, quotes that are
not on the page) is reported through `citelens.core.types.Diagnostic`.
"""

from typing import Any, Dict, Optional


class CitelensError(Exception):
    """Base exception for all citelens errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class GeometryTransformUnavailable(CitelensError):
    """
    The PDF engine cannot provide page geometry right now.

    Raised when a PDF document has no binary handle or PyMuPDF cannot open
    it. Callers treat it as a transient precondition and retry once the
    document bytes are available.
    """


class PdfHandleNotFound(CitelensError, FileNotFoundError):
    """A PDF handle points to a path that does not exist."""
