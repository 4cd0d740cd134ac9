"""
Error types for APIFlow.

Only request failures and expression failures travel as exceptions. Graph
mutations report a MutationResult, path misses return MISSING, and stale
geometry lookups return None.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from apiflow.core.models import HttpResponse


class ApiFlowError(Exception):
    """Base class for all APIFlow errors."""


class RequestError(ApiFlowError):
    """
    A network or HTTP failure raised by an HTTP executor.

    Attributes:
        message: Human readable description
        code: Short machine code (e.g. "ECONNABORTED", "ERR_BAD_REQUEST")
        response: The response received before failing, if any
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        response: Optional["HttpResponse"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.response = response

    def __repr__(self) -> str:
        return f"RequestError({self.message!r}, code={self.code!r})"


class ExpressionError(ApiFlowError):
    """A validation expression failed to tokenize, parse or evaluate."""

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)
        self.position = position
