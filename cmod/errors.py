"""
Error taxonomy for CMOD reading and writing.

Every error is terminal for the read or write call that raised it.
All of them derive from ValueError, matching how invalid file content
is reported elsewhere in the package.
"""

from typing import Optional


class CmodError(ValueError):
    """Base class for invalid CMOD content."""

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class HeaderError(CmodError):
    """Missing or mismatched magic header."""


class GrammarError(CmodError):
    """Unknown keyword, malformed number, or unbalanced quote."""


class ContextError(CmodError):
    """Keyword used outside its required enclosing block."""


class ProtocolError(CmodError):
    """Unexpected binary token or datatype tag mismatch."""


class TruncationError(CmodError):
    """Input ended before a declared block or count was complete."""


class CountMismatchError(CmodError):
    """Fewer values were produced than the layout declares."""
