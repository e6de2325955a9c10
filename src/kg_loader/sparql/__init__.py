"""SPARQL query compilation, HTTP execution, and result normalization."""

from kg_loader.sparql.executor import RequestExecutor
from kg_loader.sparql.http_utils import create_session
from kg_loader.sparql.query import DEFAULT_PREFIXES, StructuredQuery, compile_query, serialize_query
from kg_loader.sparql.results import EnrichedValue, RowSet, WireResult, normalize

__all__ = [
    "RequestExecutor",
    "create_session",
    "DEFAULT_PREFIXES",
    "StructuredQuery",
    "compile_query",
    "serialize_query",
    "EnrichedValue",
    "RowSet",
    "WireResult",
    "normalize",
]
