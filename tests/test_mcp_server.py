"""Tests for the MCP server: health_check and the query tools (pipeline mocked)."""

from unittest.mock import patch

import pytest

from kg_loader.config import LoaderConfig
from kg_loader.errors import RemoteQueryError
from kg_loader.pipeline import EnrichStep, PipelineMetadata, PipelineResult, PivotStep
from kg_loader.sparql.results import RowSet

CONFIG = LoaderConfig(sparql_endpoint="https://sparql.example.org/query", bearer_token="secret")


# Helper: create a fresh FastMCP, register tools, extract tool fn by name
def _get_tool_fn(name: str):
    from mcp.server.fastmcp import FastMCP
    from kg_loader.mcp_server.tools import register_tools

    server = FastMCP("test")
    register_tools(server)
    for t in server._tool_manager._tools.values():
        if t.name == name:
            return t.fn
    raise ValueError(f"Tool {name!r} not registered")


def _result(rows):
    return PipelineResult(
        rows=RowSet(rows=rows, from_pipeline=True),
        metadata=PipelineMetadata(query="SELECT", endpoint=CONFIG.sparql_endpoint),
    )


@pytest.fixture
def pipeline():
    with patch("kg_loader.mcp_server.tools.load_config", return_value=CONFIG), \
            patch("kg_loader.mcp_server.tools.QueryPipeline") as MockPipeline:
        yield MockPipeline.from_config.return_value


# ---------------------------------------------------------------------------
# health_check
# ---------------------------------------------------------------------------

class TestHealthCheck:

    def test_returns_configuration(self):
        from kg_loader.mcp_server.server import health_check

        with patch("kg_loader.mcp_server.server.load_config", return_value=CONFIG):
            result = health_check()

        assert result["server"] == "kg-loader SPARQL Server"
        assert "version" in result
        assert result["configuration"]["sparql_endpoint"] == CONFIG.sparql_endpoint
        assert result["configuration"]["bearer_token"] is True
        assert "secret" not in str(result)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class TestRunSparqlTool:

    def test_returns_rows(self, pipeline):
        pipeline.run.return_value = _result([{"s": "http://ex.org/a"}])

        result = _get_tool_fn("run_sparql")(query="SELECT ?s WHERE { ?s ?p ?o }")

        assert result["row_count"] == 1
        assert result["columns"] == ["s"]
        assert result["from_pipeline"] is True

    def test_steps(self, pipeline):
        pipeline.run.return_value = _result([])

        _get_tool_fn("run_sparql")(query="SELECT * WHERE { ?s ?p ?o }", pivot=True, enrich_field="entity_name")

        assert pipeline.run.call_args[1]["steps"] == [EnrichStep(field="entity_name"), PivotStep()]

    def test_error_returned(self, pipeline):
        pipeline.run.side_effect = RemoteQueryError(500, "boom")

        result = _get_tool_fn("run_sparql")(query="SELECT * WHERE { ?s ?p ?o }")

        assert result == {"error": "SPARQL query failed with status 500: boom"}


class TestCatalogueTools:

    def test_search_datasets_empty_message(self, pipeline):
        pipeline.run.return_value = _result([])

        result = _get_tool_fn("search_datasets")(term="unicorn")

        assert result["row_count"] == 0
        assert result["message"] == "No datasets found matching your query."

    def test_search_terms_requires_term(self, pipeline):
        result = _get_tool_fn("search_terms")(term=" ")

        assert "error" in result
        pipeline.run.assert_not_called()

    def test_load_dataset(self, pipeline):
        pipeline.run.return_value = _result([{"subject": "u1", "name": "Alice"}])

        result = _get_tool_fn("load_dataset")(dataset_iri="http://ex.org/ds/1", title="People")

        assert result["rows"] == [{"subject": "u1", "name": "Alice"}]
        assert pipeline.run.call_args[1]["source_title"] == "People"
