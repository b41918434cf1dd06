from typing import Optional


class CodeGraphError(Exception):
    """Base error for the code graph toolkit."""


class ExtractionError(CodeGraphError):
    """A single source file could not be read or parsed."""

    def __init__(self, file_path: str, reason: str):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Failed to extract {file_path}: {reason}")


class PipelineError(CodeGraphError):
    """The extraction pipeline cannot run at all."""


class StoreConnectionError(CodeGraphError):
    """The graph store could not be reached or rejected a query."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)


class QueryTimeoutError(CodeGraphError):
    """A graph query did not finish within its time budget."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__("query timed out")
