"""Tests for the kg-loader command line interface (pipeline mocked)."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from kg_loader.cli import cli
from kg_loader.config import LoaderConfig
from kg_loader.errors import InvalidQueryError, RemoteQueryError
from kg_loader.pipeline import EnrichStep, PipelineMetadata, PipelineResult, PivotStep
from kg_loader.sparql.results import EnrichedValue, RowSet

CONFIG = LoaderConfig(sparql_endpoint="https://sparql.example.org/query", bearer_token="t")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _result(rows, **meta):
    return PipelineResult(
        rows=RowSet(rows=rows, from_pipeline=True),
        metadata=PipelineMetadata(query="SELECT", endpoint=CONFIG.sparql_endpoint, **meta),
    )


@pytest.fixture
def pipeline():
    with patch("kg_loader.cli.load_config", return_value=CONFIG), \
            patch("kg_loader.cli.QueryPipeline") as MockPipeline:
        yield MockPipeline.from_config.return_value


def _invoke(*args):
    return CliRunner().invoke(cli, list(args))


# ---------------------------------------------------------------------------
# query
# ---------------------------------------------------------------------------

class TestQueryCommand:

    def test_table_output(self, pipeline):
        pipeline.run.return_value = _result([{"s": "http://ex.org/a", "o": "1"}])
        result = _invoke("query", "SELECT ?s ?o WHERE { ?s ?p ?o }")

        assert result.exit_code == 0, result.output
        assert "http://ex.org/a" in result.output
        assert "1 row(s)" in result.output
        endpoint = pipeline.run.call_args[0][1]
        assert endpoint.url == CONFIG.sparql_endpoint
        assert endpoint.token == "t"

    def test_json_output(self, pipeline):
        label = EnrichedValue(identifier="http://www.wikidata.org/entity/Q1", label="Universe")
        pipeline.run.return_value = _result([{"subject": "u1", "topic": label}], pivoted=True)
        result = _invoke("query", "SELECT * WHERE { ?s ?p ?o }", "--json")

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["metadata"]["pivoted"] is True
        assert payload["metadata"]["from_pipeline"] is True
        assert payload["rows"][0]["topic"]["label"] == "Universe"

    def test_steps_enrich_before_pivot(self, pipeline):
        pipeline.run.return_value = _result([])
        _invoke("query", "SELECT * WHERE { ?s ?p ?o }", "--pivot", "--enrich", "entity_name")

        assert pipeline.run.call_args[1]["steps"] == [EnrichStep(field="entity_name"), PivotStep()]

    def test_example(self, pipeline):
        pipeline.run.return_value = _result([])
        result = _invoke("query", "--example", "Standard")

        assert result.exit_code == 0, result.output
        assert pipeline.run.call_args[0][0] == "SELECT * WHERE { ?s ?p ?o } LIMIT 10"
        assert "No rows returned." in result.output

    def test_unknown_example(self, pipeline):
        result = _invoke("query", "--example", "Nope")
        assert result.exit_code == 2

    def test_no_query(self, pipeline):
        result = _invoke("query")
        assert result.exit_code == 2
        pipeline.run.assert_not_called()

    def test_file(self, pipeline, tmp_path):
        pipeline.run.return_value = _result([])
        query_file = tmp_path / "q.rq"
        query_file.write_text("SELECT ?x WHERE { ?x ?y ?z }", encoding="utf-8")
        result = _invoke("query", "--file", str(query_file))

        assert result.exit_code == 0, result.output
        assert pipeline.run.call_args[0][0] == "SELECT ?x WHERE { ?x ?y ?z }"

    def test_invalid_query(self, pipeline):
        pipeline.run.side_effect = InvalidQueryError("SPARQL syntax error: Expected end of text")
        result = _invoke("query", "SELEC nothing")

        assert result.exit_code == 1
        assert "SPARQL syntax error" in result.output

    def test_remote_error(self, pipeline):
        pipeline.run.side_effect = RemoteQueryError(401, "Unauthorized")
        result = _invoke("query", "SELECT * WHERE { ?s ?p ?o }")

        assert result.exit_code == 1
        assert "status 401" in result.output


# ---------------------------------------------------------------------------
# Catalogue commands
# ---------------------------------------------------------------------------

class TestCatalogueCommands:

    def test_examples(self):
        result = _invoke("examples")
        assert result.exit_code == 0
        assert "== Standard" in result.output
        assert "== Get Data from ZooMo" in result.output

    def test_search_datasets_empty(self, pipeline):
        pipeline.run.return_value = _result([])
        result = _invoke("search-datasets", "unicorn")

        assert result.exit_code == 0, result.output
        assert "No datasets found matching your query." in result.output
        assert "unicorn" in pipeline.run.call_args[0][0]

    def test_search_datasets_listing(self, pipeline):
        pipeline.run.return_value = _result([{"dataset": "http://ex.org/ds/1", "title": "Milk"}])
        result = _invoke("search-datasets")

        assert result.exit_code == 0, result.output
        assert "Milk" in result.output
        assert "FILTER" not in pipeline.run.call_args[0][0]

    def test_search_terms_requires_term(self, pipeline):
        result = _invoke("search-terms", "  ")
        assert result.exit_code == 2
        pipeline.run.assert_not_called()

    def test_load_dataset(self, pipeline):
        pipeline.run.return_value = _result([{"subject": "u1", "name": "Alice"}], pivoted=True)
        result = _invoke("load-dataset", "http://ex.org/ds/1", "--title", "People", "--json")

        assert result.exit_code == 0, result.output
        kwargs = pipeline.run.call_args[1]
        assert kwargs["steps"] == [EnrichStep(), PivotStep()]
        assert kwargs["source_title"] == "People"
        assert json.loads(result.output)["rows"] == [{"subject": "u1", "name": "Alice"}]

    def test_session_reads_terms(self, pipeline):
        pipeline.run.return_value = _result([{"dataset": "http://ex.org/ds/1", "title": "Milk"}])
        result = CliRunner().invoke(cli, ["session"], input="milk\n:quit\n")

        assert result.exit_code == 0, result.output
        queries = [c[0][0] for c in pipeline.run.call_args_list]
        assert any("milk" in q for q in queries)
