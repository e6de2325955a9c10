"""Error taxonomy for the query pipeline.

Every error raised by ``kg_loader`` derives from :class:`LoaderError` and
carries a message that can be shown to the user as-is.  Stage-local,
recoverable conditions (nothing to enrich, unresolved labels, zero rows) are
handled in place and never raise.
"""

from __future__ import annotations

from typing import Optional


class LoaderError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(LoaderError):
    """An environment variable holds a value that cannot be used."""


class InvalidQueryError(LoaderError):
    """The query text could not be compiled."""

    def __init__(self, message: str, query_text: Optional[str] = None):
        super().__init__(message)
        self.query_text = query_text


class NonSelectQueryError(InvalidQueryError):
    """The query compiled but is not a SELECT (e.g. ASK, CONSTRUCT, an update)."""


class EmptyEndpointError(LoaderError):
    """The endpoint URL is blank at execution time."""

    def __init__(self, message: str = "SPARQL endpoint URL cannot be empty."):
        super().__init__(message)


class EndpointUnreachableError(LoaderError):
    """The request never produced an HTTP response (DNS, refused, timeout)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Could not reach SPARQL endpoint {url}: {reason}")
        self.url = url
        self.reason = reason


class RemoteQueryError(LoaderError):
    """The endpoint answered with a non-success status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"SPARQL query failed with status {status}: {body}")
        self.status = status
        self.body = body


class MalformedResponseError(LoaderError):
    """A success response whose body is not usable SPARQL JSON."""

    def __init__(
        self,
        message: str = "Failed to fetch or parse data from the SPARQL endpoint.",
    ):
        super().__init__(message)


class InvalidResultShapeError(MalformedResponseError):
    """The result payload lacks ``head.vars`` / ``results.bindings``."""


class EnrichmentLookupFailure(LoaderError):
    """The label service could not be queried.

    Never reaches the user: enrichment degrades to unresolved values.
    """


__all__ = [
    "LoaderError",
    "ConfigError",
    "InvalidQueryError",
    "NonSelectQueryError",
    "EmptyEndpointError",
    "EndpointUnreachableError",
    "RemoteQueryError",
    "MalformedResponseError",
    "InvalidResultShapeError",
    "EnrichmentLookupFailure",
]
