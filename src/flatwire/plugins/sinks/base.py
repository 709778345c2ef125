# src/flatwire/plugins/sinks/base.py
"""Base class and protocol for document sinks.

A sink accepts an index name and a batch of flat records. Dispatch tasks
call write() concurrently from worker threads, so implementations must be
safe to share between threads.
"""

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DocumentSink(Protocol):
    """Protocol for anything that can receive record batches.

    The dispatch coordinator depends only on this protocol, so tests can
    pass a plain recording object instead of a plugin.
    """

    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        """Write a batch of records to an index.

        Raises:
            SinkError: If the batch could not be written
        """
        ...


class BaseSink(ABC):
    """Base class for sink plugins.

    Subclass and implement write() and close().

    Lifecycle:
        1. __init__(options)          -- validate options, open clients
        2. write(index, records)      -- called concurrently per dispatch task
        3. close()                    -- release resources at shutdown

    Example:
        class StdoutSink(BaseSink):
            name = "stdout"

            def write(self, index, records):
                for record in records:
                    print(index, record)

            def close(self):
                pass
    """

    name: str
    plugin_version: str = "0.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config

    @abstractmethod
    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        """Write a batch of records to an index.

        Raises:
            SinkError: If the batch could not be written
        """
        ...

    def close(self) -> None:  # noqa: B027 - optional hook, default no-op
        """Release resources (connections, file handles)."""
