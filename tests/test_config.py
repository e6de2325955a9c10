"""Unit tests for kg_loader.config."""

import pytest

from kg_loader.config import DEFAULT_SPARQL_ENDPOINT, Endpoint, LoaderConfig, load_config
from kg_loader.errors import ConfigError


class TestLoadConfig:

    def test_defaults(self):
        cfg = load_config(env={})
        assert cfg.sparql_endpoint == DEFAULT_SPARQL_ENDPOINT
        assert cfg.bearer_token is None
        assert cfg.timeout == 60.0
        assert cfg.debounce_seconds == 0.5
        assert cfg.http_retries == 0

    def test_overrides(self):
        cfg = load_config(env={
            "KG_LOADER_SPARQL_ENDPOINT": "https://sparql.example.org/query",
            "KG_LOADER_SPARQL_BEARER_TOKEN": "abc",
            "KG_LOADER_TIMEOUT": "15",
            "KG_LOADER_DEBOUNCE_SECONDS": "0.2",
            "KG_LOADER_LABEL_LANGUAGE": "de",
            "KG_LOADER_HTTP_RETRIES": "3",
        })
        assert cfg.endpoint() == Endpoint(url="https://sparql.example.org/query", token="abc")
        assert cfg.timeout == 15.0
        assert cfg.debounce_seconds == 0.2
        assert cfg.label_language == "de"
        assert cfg.http_retries == 3

    def test_empty_token_is_none(self):
        assert load_config(env={"KG_LOADER_SPARQL_BEARER_TOKEN": ""}).bearer_token is None

    def test_not_a_number(self):
        with pytest.raises(ConfigError, match="KG_LOADER_TIMEOUT"):
            load_config(env={"KG_LOADER_TIMEOUT": "soon"})

    def test_negative(self):
        with pytest.raises(ConfigError):
            load_config(env={"KG_LOADER_DEBOUNCE_SECONDS": "-1"})


class TestEndpoint:

    def test_endpoint_override_keeps_token(self):
        cfg = LoaderConfig(bearer_token="abc")
        assert cfg.endpoint("https://other/sparql") == Endpoint("https://other/sparql", "abc")

    def test_repr_hides_token(self):
        assert "abc" not in repr(Endpoint("https://x/sparql", "abc"))
