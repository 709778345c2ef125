# src/flatwire/contracts/errors.py
"""Exception taxonomy for flatwire.

Each failure domain gets its own exception so callers can decide where
an error is fatal (startup) and where it is isolated (per message, per task).
"""

from pathlib import Path


class ConfigLoadError(Exception):
    """Raised when a definition file is missing or malformed.

    Startup errors are fatal: the service must not begin serving with a
    partially loaded route table.

    Attributes:
        path: File that failed to load
        message: Human-readable error description
    """

    def __init__(self, path: Path | str, message: str) -> None:
        self.path = Path(path)
        self.message = message
        super().__init__(f"{self.path}: {message}")


class MalformedTreeError(Exception):
    """Raised when a tree node has an unexpected value kind.

    Recovered locally by the flattener: the offending field or array
    element is skipped and the traversal continues with its siblings.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"Field '{field}': {message}")


class SinkError(Exception):
    """Raised when a document sink fails to write a batch.

    Attributes:
        index: Target index of the failed batch
        message: Human-readable error description
        retryable: Whether a retry could plausibly succeed (transport
            errors, 429/5xx responses)
    """

    def __init__(self, index: str, message: str, *, retryable: bool = False) -> None:
        self.index = index
        self.message = message
        self.retryable = retryable
        super().__init__(f"Sink write to '{index}' failed: {message}")
