# src/flatwire/plugins/sinks/jsonl.py
"""JSONL sink plugin for flatwire.

Appends records to ``<directory>/<index>.jsonl``, one JSON object per
line. Useful for offline runs and for inspecting what would be indexed.
Writes from concurrent dispatch tasks are serialized per sink.
"""

import json
import os
import threading
from pathlib import Path
from typing import IO, Any

from pydantic import BaseModel, Field, ValidationError

from flatwire.contracts import SinkError
from flatwire.plugins.sinks.base import BaseSink


class JSONLSinkConfig(BaseModel):
    """Configuration for the JSONL sink."""

    model_config = {"frozen": True, "extra": "forbid"}

    directory: Path = Field(description="Directory receiving one <index>.jsonl file per index")
    encoding: str = "utf-8"
    fsync: bool = Field(default=False, description="fsync after every batch")


class JSONLSink(BaseSink):
    """Append record batches to per-index JSONL files.

    Config options:
        directory: Output directory (created if missing)
        encoding: File encoding (default: "utf-8")
        fsync: Force each batch to disk (default: False)
    """

    name = "jsonl"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any]) -> None:
        super().__init__(config)
        try:
            cfg = JSONLSinkConfig.model_validate(config)
        except ValidationError as e:
            raise ValueError(f"Invalid jsonl sink options: {e}") from e
        self._directory = cfg.directory
        self._encoding = cfg.encoding
        self._fsync = cfg.fsync
        self._files: dict[str, IO[str]] = {}
        self._lock = threading.Lock()

    def path_for(self, index: str) -> Path:
        """Output file of an index."""
        return self._directory / f"{index}.jsonl"

    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        """Append a batch of records to the index file.

        Raises:
            SinkError: If the file cannot be opened or written
        """
        if not records:
            return
        try:
            lines = "".join(json.dumps(record) + "\n" for record in records)
        except (TypeError, ValueError) as e:
            raise SinkError(index, f"record not serializable: {e}") from e

        with self._lock:
            try:
                file = self._open(index)
                file.write(lines)
                file.flush()
                if self._fsync:
                    os.fsync(file.fileno())
            except OSError as e:
                raise SinkError(index, f"cannot write {self.path_for(index)}: {e}") from e

    def _open(self, index: str) -> IO[str]:
        """Open (once) the append handle of an index. Caller holds the lock."""
        if index not in self._files:
            self._directory.mkdir(parents=True, exist_ok=True)
            self._files[index] = open(self.path_for(index), "a", encoding=self._encoding)  # noqa: SIM115 - closed in close()
        return self._files[index]

    def close(self) -> None:
        """Close all open index files."""
        with self._lock:
            for file in self._files.values():
                file.close()
            self._files.clear()
