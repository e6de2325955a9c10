"""
HTTP execution of compiled SPARQL queries.

The serialized query is POSTed as ``text/plain`` with
``Accept: application/sparql-results+json`` and a bearer token taken from
configuration.  No retries happen here; a failed request fails the run.

Usage:
    from kg_loader.config import load_config
    from kg_loader.sparql.executor import RequestExecutor
    from kg_loader.sparql.query import compile_query

    cfg = load_config()
    executor = RequestExecutor(timeout=cfg.timeout)
    wire = executor.execute(cfg.endpoint(), compile_query("SELECT * WHERE { ?s ?p ?o } LIMIT 10"))
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from kg_loader.config import Endpoint
from kg_loader.errors import (
    EmptyEndpointError,
    EndpointUnreachableError,
    MalformedResponseError,
    NonSelectQueryError,
    RemoteQueryError,
)
from kg_loader.sparql.http_utils import create_session
from kg_loader.sparql.query import StructuredQuery, serialize_query
from kg_loader.sparql.results import WireResult

logger = logging.getLogger(__name__)

SPARQL_RESULTS_JSON = "application/sparql-results+json"


class RequestExecutor:
    """
    Sends compiled SELECT queries to a SPARQL endpoint.

    The session is created lazily; pass one in to share connection pools
    or to mock HTTP in tests.
    """

    def __init__(
        self,
        timeout: float = 60,
        session: Optional[requests.Session] = None,
        max_retries: int = 0,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self._http_session = session

    @property
    def _session(self) -> requests.Session:
        """Lazy-initialize the HTTP session."""
        if self._http_session is None:
            self._http_session = create_session(
                max_retries=self.max_retries,
                user_agent="kg-loader/0.1 RequestExecutor",
            )
        return self._http_session

    @staticmethod
    def build_headers(endpoint: Endpoint) -> dict:
        headers = {
            "Content-Type": "text/plain",
            "Accept": SPARQL_RESULTS_JSON,
        }
        if endpoint.token:
            headers["Authorization"] = f"Bearer {endpoint.token}"
        return headers

    def execute(self, endpoint: Endpoint, query: StructuredQuery) -> WireResult:
        """
        Execute a compiled query and return the parsed SPARQL JSON.

        Args:
            endpoint: Target endpoint and credential
            query: Compiled SELECT query

        Returns:
            WireResult with the response's head and results sections

        Raises:
            EmptyEndpointError: Endpoint URL is blank (no request is made)
            NonSelectQueryError: Query is not a SELECT (no request is made)
            EndpointUnreachableError: No HTTP response was received
            RemoteQueryError: Non-2xx status; the body is the detail
            MalformedResponseError: 2xx status with a body that is not SPARQL JSON
        """
        url = (endpoint.url or "").strip()
        if not url:
            raise EmptyEndpointError()
        if not query.is_select:
            raise NonSelectQueryError(
                f"Only SELECT queries can be executed; got a {query.query_type} query.",
                query.text,
            )

        body = serialize_query(query)
        logger.debug("POST %s (%d chars)", url, len(body))

        try:
            response = self._session.post(
                url,
                data=body.encode("utf-8"),
                headers=self.build_headers(endpoint),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("SPARQL request to %s failed: %s", url, e)
            raise EndpointUnreachableError(url, str(e)) from e

        if not 200 <= response.status_code < 300:
            text = response.text
            logger.warning(
                "SPARQL endpoint %s returned HTTP %d: %s", url, response.status_code, text[:200]
            )
            raise RemoteQueryError(response.status_code, text)

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"SPARQL endpoint {url} did not return JSON "
                f"(Content-Type: {response.headers.get('Content-Type', 'unknown')})."
            ) from e

        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"Invalid SPARQL response: expected an object, got {type(payload).__name__}."
            )
        if not isinstance(payload.get("head"), dict) or not isinstance(payload.get("results"), dict):
            raise MalformedResponseError(
                "SPARQL response is missing its 'head' or 'results' section."
            )

        return WireResult.from_json(payload)
