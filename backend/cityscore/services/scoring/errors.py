"""Error taxonomy for the scoring engine."""

from typing import List, Optional


class ScoringError(Exception):
    """Base class for every error raised by the scoring engine."""


class CompilationError(ScoringError):
    """Formula source could not be turned into an executable artifact."""

    def __init__(self, message: str, diagnostics: Optional[List] = None):
        super().__init__(message)
        self.message = message
        self.diagnostics = list(diagnostics or [])


class SecurityViolation(CompilationError):
    """Formula uses a construct that could escape the sandbox."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.line = line
        self.column = column


class ExecutionError(ScoringError):
    """A compiled formula raised, timed out or returned something other than a number."""


class ValidationError(ScoringError):
    """Malformed board, condition or test-case data coming from the editor."""
