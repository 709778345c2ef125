"""Built-in document sinks."""

from flatwire.plugins.sinks.base import BaseSink, DocumentSink
from flatwire.plugins.sinks.elasticsearch import ElasticsearchSink, ElasticsearchSinkConfig, build_bulk_body
from flatwire.plugins.sinks.jsonl import JSONLSink, JSONLSinkConfig

__all__ = [
    "BaseSink",
    "DocumentSink",
    "ElasticsearchSink",
    "ElasticsearchSinkConfig",
    "JSONLSink",
    "JSONLSinkConfig",
    "build_bulk_body",
]
