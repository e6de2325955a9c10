"""
Process-wide configuration.

Loads environment variables from .env and exposes them as a LoaderConfig.
The bearer token for the SPARQL gateway is only ever read from here.

Usage:
    from kg_loader.config import load_config

    cfg = load_config()
    endpoint = cfg.endpoint()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from kg_loader.errors import ConfigError

DEFAULT_SPARQL_ENDPOINT = (
    "https://fskx-api-gateway-service.risk-ai-cloud.com/gdb-proxy-service/sparql"
)
DEFAULT_CATALOGUE_GRAPH = (
    "https://fskx-graphdb.risk-ai-cloud.com/765519e1754dfade07fdb3e80036e2c3/ontology/"
)


@dataclass(frozen=True)
class Endpoint:
    """A SPARQL endpoint URL plus the bearer credential used to call it."""

    url: str
    token: Optional[str] = None

    def with_url(self, url: str) -> "Endpoint":
        """Same credential, different URL (the user picked another endpoint)."""
        return Endpoint(url=url, token=self.token)

    def __repr__(self) -> str:
        # keep the secret out of logs
        return f"Endpoint(url={self.url!r}, token={'***' if self.token else None})"


@dataclass
class LoaderConfig:
    """Configuration for the query pipeline."""

    sparql_endpoint: str = DEFAULT_SPARQL_ENDPOINT
    bearer_token: Optional[str] = None
    timeout: float = 60.0
    debounce_seconds: float = 0.5
    label_language: str = "en"
    http_retries: int = 0
    catalogue_graph: str = DEFAULT_CATALOGUE_GRAPH

    def endpoint(self, url: Optional[str] = None) -> Endpoint:
        """Build an Endpoint, using the configured URL unless one is given."""
        return Endpoint(
            url=self.sparql_endpoint if url is None else url,
            token=self.bearer_token,
        )


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> LoaderConfig:
    """
    Load .env and return the pipeline configuration.

    Args:
        env: Mapping to read instead of ``os.environ`` (tests). When given,
            no .env file is loaded.

    Returns:
        LoaderConfig built from:
        - KG_LOADER_SPARQL_ENDPOINT: default SPARQL endpoint URL
        - KG_LOADER_SPARQL_BEARER_TOKEN: bearer token for the endpoint
        - KG_LOADER_TIMEOUT: HTTP timeout in seconds
        - KG_LOADER_DEBOUNCE_SECONDS: quiet period before a search runs
        - KG_LOADER_LABEL_LANGUAGE: language for Wikidata labels
        - KG_LOADER_HTTP_RETRIES: transport-level retries (default 0)
        - KG_LOADER_CATALOGUE_GRAPH: named graph holding the DCAT catalogue
    """
    if env is None:
        try:
            from dotenv import load_dotenv
            load_dotenv()
        except ImportError:
            pass
        env = os.environ

    return LoaderConfig(
        sparql_endpoint=env.get("KG_LOADER_SPARQL_ENDPOINT", DEFAULT_SPARQL_ENDPOINT),
        bearer_token=env.get("KG_LOADER_SPARQL_BEARER_TOKEN") or None,
        timeout=_number(env, "KG_LOADER_TIMEOUT", 60.0, float),
        debounce_seconds=_number(env, "KG_LOADER_DEBOUNCE_SECONDS", 0.5, float),
        label_language=env.get("KG_LOADER_LABEL_LANGUAGE", "en"),
        http_retries=_number(env, "KG_LOADER_HTTP_RETRIES", 0, int),
        catalogue_graph=env.get("KG_LOADER_CATALOGUE_GRAPH", DEFAULT_CATALOGUE_GRAPH),
    )
