# src/flatwire/plugins/sinks/elasticsearch.py
"""Elasticsearch bulk sink plugin for flatwire.

Writes each batch with one `_bulk` request. The body is NDJSON: an
action line naming the target index followed by the record, per record.

    {"index":{"_index":"if-stats"}}
    {"interfaces.name":"eth0","counters.in-octets":1234}

Every request runs under the configured timeout. Transport failures and
capacity responses (429/502/503/504) raise a retryable SinkError; other
HTTP errors and per-item bulk failures raise a non-retryable one.
"""

from __future__ import annotations

import json
from typing import Any, Literal

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from flatwire.contracts import SinkError
from flatwire.plugins.sinks.base import BaseSink

logger = structlog.get_logger(__name__)

# HTTP status codes that indicate transient overload of the cluster
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 502, 503, 504})

_NDJSON = "application/x-ndjson"


class ElasticsearchSinkConfig(BaseModel):
    """Configuration for the Elasticsearch sink.

    Example YAML:
        sink:
          plugin: elasticsearch
          options:
            host: es01.example.net
            port: 9200
            timeout_seconds: 10
    """

    model_config = {"frozen": True, "extra": "forbid"}

    host: str = Field(default="localhost", min_length=1, description="Cluster host")
    port: int = Field(default=9200, ge=1, le=65535, description="Cluster HTTP port")
    scheme: Literal["http", "https"] = Field(default="http", description="URL scheme")
    username: str | None = Field(default=None, description="Basic auth user")
    password: str | None = Field(default=None, description="Basic auth password")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Per-request timeout")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


def build_bulk_body(index: str, records: list[dict[str, Any]]) -> tuple[bytes, int]:
    """Serialize records into an NDJSON bulk body.

    Records that cannot be serialized (non-finite floats) are skipped with
    a warning rather than failing the whole batch.

    Args:
        index: Target index name
        records: Flat records

    Returns:
        Tuple of (body bytes, number of records included)
    """
    action = json.dumps({"index": {"_index": index}}, separators=(",", ":"))
    lines: list[str] = []
    included = 0
    for position, record in enumerate(records):
        try:
            document = json.dumps(record, separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            logger.warning("bulk_record_skipped", index=index, position=position, error=str(e))
            continue
        lines.append(action)
        lines.append(document)
        included += 1
    if not lines:
        return b"", 0
    # Bulk bodies must end with a newline
    return ("\n".join(lines) + "\n").encode("utf-8"), included


class ElasticsearchSink(BaseSink):
    """Index record batches into Elasticsearch through the bulk API.

    The underlying httpx.Client is shared by all dispatch tasks; httpx
    clients are thread-safe and pool connections.
    """

    name = "elasticsearch"
    plugin_version = "1.0.0"

    def __init__(self, config: dict[str, Any], *, transport: httpx.BaseTransport | None = None) -> None:
        super().__init__(config)
        try:
            cfg = ElasticsearchSinkConfig.model_validate(config)
        except ValidationError as e:
            raise ValueError(f"Invalid elasticsearch sink options: {e}") from e
        self._config = cfg

        auth = (cfg.username, cfg.password or "") if cfg.username is not None else None
        self._client = httpx.Client(
            base_url=cfg.base_url,
            timeout=cfg.timeout_seconds,
            auth=auth,
            verify=cfg.verify_tls,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        """Write a batch of records with one bulk request.

        Empty batches (or batches with nothing serializable) send nothing.

        Raises:
            SinkError: On transport failure, HTTP error status, or a bulk
                response reporting item errors
        """
        body, included = build_bulk_body(index, records)
        if included == 0:
            return

        try:
            response = self._client.post("/_bulk", content=body, headers={"Content-Type": _NDJSON})
        except httpx.TimeoutException as e:
            raise SinkError(index, f"bulk request timed out after {self._config.timeout_seconds}s", retryable=True) from e
        except httpx.TransportError as e:
            raise SinkError(index, f"bulk request failed: {e}", retryable=True) from e

        if response.status_code >= 400:
            raise SinkError(
                index,
                f"bulk request returned HTTP {response.status_code}: {response.text[:200]}",
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        self._check_item_errors(index, response)
        logger.debug("bulk_written", index=index, records=included)

    def _check_item_errors(self, index: str, response: httpx.Response) -> None:
        """Raise if the bulk response reports per-item failures."""
        try:
            payload = response.json()
        except ValueError as e:
            raise SinkError(index, "bulk response is not valid JSON") from e

        if not isinstance(payload, dict) or not payload.get("errors"):
            return

        failed = [
            item_result
            for item in payload.get("items", [])
            for item_result in item.values()
            if isinstance(item_result, dict) and "error" in item_result
        ]
        first_error = failed[0]["error"] if failed else "unknown error"
        raise SinkError(index, f"{len(failed)} bulk item(s) failed; first error: {first_error}")

    def close(self) -> None:
        """Close the underlying httpx client and release connections."""
        self._client.close()
