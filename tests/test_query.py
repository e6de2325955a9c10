"""Unit tests for kg_loader.sparql.query: SPARQL compilation and serialization."""

import pytest

from kg_loader.errors import InvalidQueryError, NonSelectQueryError
from kg_loader.sparql.query import (
    DEFAULT_PREFIXES,
    StructuredQuery,
    compile_query,
    declared_prefixes,
    serialize_query,
)


# ---------------------------------------------------------------------------
# compile_query
# ---------------------------------------------------------------------------

class TestCompileQuery:

    def test_select_query(self):
        q = compile_query("SELECT ?s ?o WHERE { ?s ?p ?o } LIMIT 10")
        assert isinstance(q, StructuredQuery)
        assert q.query_type == "SELECT"
        assert q.is_select
        assert set(q.variables) == {"s", "o"}

    def test_default_prefix_without_declaration(self):
        q = compile_query("SELECT ?item WHERE { ?item wdt:P31 wd:Q5 } LIMIT 3")
        assert q.is_select
        assert q.declared_prefixes == ()

    def test_declared_prefixes_recorded(self):
        q = compile_query(
            "PREFIX dcat: <http://www.w3.org/ns/dcat#>\n"
            "SELECT ?d WHERE { ?d a dcat:Dataset }"
        )
        assert q.declared_prefixes == ("dcat",)

    def test_syntax_error(self):
        with pytest.raises(InvalidQueryError) as exc:
            compile_query("SELECT ?s WHERE { ?s ?p }")
        assert "syntax" in str(exc.value).lower()
        assert exc.value.query_text == "SELECT ?s WHERE { ?s ?p }"

    def test_empty_query(self):
        with pytest.raises(InvalidQueryError):
            compile_query("   ")

    def test_unknown_prefix(self):
        with pytest.raises(InvalidQueryError):
            compile_query("SELECT ?s WHERE { ?s nope:thing ?o }")

    def test_ask_rejected(self):
        with pytest.raises(NonSelectQueryError):
            compile_query("ASK { ?s ?p ?o }")

    def test_construct_rejected(self):
        with pytest.raises(NonSelectQueryError):
            compile_query("CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o }")

    def test_update_rejected(self):
        with pytest.raises(NonSelectQueryError) as exc:
            compile_query("INSERT DATA { <http://a> <http://b> <http://c> }")
        assert "Update" in str(exc.value)

    def test_non_select_is_invalid_query(self):
        assert issubclass(NonSelectQueryError, InvalidQueryError)


# ---------------------------------------------------------------------------
# serialize_query
# ---------------------------------------------------------------------------

class TestSerializeQuery:

    def test_prepends_used_default_prefixes(self):
        q = compile_query("SELECT ?item WHERE { ?item wdt:P31 wd:Q5 }")
        text = serialize_query(q)
        assert f"PREFIX wdt: <{DEFAULT_PREFIXES['wdt']}>" in text
        assert f"PREFIX wd: <{DEFAULT_PREFIXES['wd']}>" in text
        assert "PREFIX owl:" not in text
        assert text.endswith(q.text)

    def test_self_contained_query_unchanged(self):
        source = "SELECT * WHERE { ?s ?p ?o } LIMIT 10"
        assert serialize_query(compile_query(source)) == source

    def test_declared_prefix_not_duplicated(self):
        source = (
            "PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>\n"
            "SELECT ?s ?l WHERE { ?s rdfs:label ?l }"
        )
        text = serialize_query(compile_query(source))
        assert text.count("PREFIX rdfs:") == 1

    def test_serialized_text_compiles(self):
        q = compile_query("SELECT ?item ?label WHERE { ?item rdfs:label ?label }")
        again = compile_query(serialize_query(q), prefixes={})
        assert again.is_select


def test_declared_prefixes_case_insensitive():
    text = "prefix ex: <http://example.org/>\nPREFIX : <http://default/>\nSELECT * {}"
    assert declared_prefixes(text) == ("ex", "")
