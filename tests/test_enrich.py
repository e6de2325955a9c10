"""Unit tests for kg_loader.transform.enrich: batched IRI label enrichment."""

import re
from unittest.mock import MagicMock

import requests

from kg_loader.errors import EnrichmentLookupFailure
from kg_loader.sparql.results import EnrichedValue, RowSet
from kg_loader.transform.enrich import IriEnrichmentResolver, collect_identifiers, enrich
from kg_loader.wikidata import WIKIDATA_ENTITY_PATTERN

Q1 = "http://www.wikidata.org/entity/Q1"
Q5 = "http://www.wikidata.org/entity/Q5"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _lookup(labels=None, error=None):
    lookup = MagicMock()
    if error is not None:
        lookup.fetch_labels.side_effect = error
    else:
        lookup.fetch_labels.return_value = labels or {}
    return lookup


def _rows(*values, field="entity_name", tagged=True):
    return RowSet(rows=[{"s": f"u{i}", field: v} for i, v in enumerate(values)], from_pipeline=tagged)


# ---------------------------------------------------------------------------
# collect_identifiers
# ---------------------------------------------------------------------------

class TestCollectIdentifiers:

    def test_distinct_in_first_seen_order(self):
        rows = _rows(Q5, "plain", Q1, Q5)
        assert collect_identifiers(rows, "entity_name", WIKIDATA_ENTITY_PATTERN) == [Q5, Q1]

    def test_wiki_and_https_forms(self):
        rows = _rows("https://www.wikidata.org/wiki/Q42", "http://example.org/Q1")
        assert collect_identifiers(rows, "entity_name", WIKIDATA_ENTITY_PATTERN) == [
            "https://www.wikidata.org/wiki/Q42"
        ]


# ---------------------------------------------------------------------------
# IriEnrichmentResolver
# ---------------------------------------------------------------------------

class TestEnrich:

    def test_resolves_label(self):
        lookup = _lookup({Q1: "Universe"})
        rows = IriEnrichmentResolver(lookup).enrich(_rows(Q1))
        assert rows[0]["entity_name"] == EnrichedValue(identifier=Q1, label="Universe")

    def test_no_identifiers_no_lookup(self):
        lookup = _lookup()
        source = _rows("Alice", "30")
        rows = IriEnrichmentResolver(lookup).enrich(source)
        lookup.fetch_labels.assert_not_called()
        assert rows is source

    def test_single_batched_lookup_with_dedup(self):
        lookup = _lookup({Q5: "human"})
        rows = IriEnrichmentResolver(lookup).enrich(_rows(Q5, Q5, Q5, Q5, Q5))
        lookup.fetch_labels.assert_called_once_with([Q5])
        assert all(r["entity_name"].label == "human" for r in rows)

    def test_unresolved_identifier_stays_plain(self):
        lookup = _lookup({Q1: "Universe"})
        rows = IriEnrichmentResolver(lookup).enrich(_rows(Q1, Q5))
        assert isinstance(rows[0]["entity_name"], EnrichedValue)
        assert rows[1]["entity_name"] == Q5

    def test_lookup_failure_degrades(self):
        lookup = _lookup(error=EnrichmentLookupFailure("Wikidata API error: 503"))
        source = _rows(Q1, "Alice")
        rows = IriEnrichmentResolver(lookup).enrich(source)
        assert list(rows) == list(source)
        assert rows.from_pipeline is True

    def test_other_fields_untouched(self):
        lookup = _lookup({Q1: "Universe"})
        source = RowSet(rows=[{"s": Q1, "entity_name": Q1}], from_pipeline=True)
        rows = IriEnrichmentResolver(lookup).enrich(source)
        assert rows[0]["s"] == Q1
        assert source[0]["entity_name"] == Q1

    def test_tag_propagates(self):
        lookup = _lookup({Q1: "Universe"})
        assert IriEnrichmentResolver(lookup).enrich(_rows(Q1)).from_pipeline is True
        assert IriEnrichmentResolver(lookup).enrich(_rows(Q1, tagged=False)).from_pipeline is False

    def test_custom_field_and_matcher(self):
        lookup = _lookup({"urn:x:1": "One"})
        rows = enrich(
            _rows("urn:x:1", field="code"),
            lookup,
            field="code",
            matcher=re.compile(r"^urn:x:\d+$"),
        )
        assert rows[0]["code"].label == "One"

    def test_unexpected_lookup_error_degrades(self):
        lookup = _lookup(error=requests.ConnectionError("connection reset"))
        source = _rows(Q1, "Alice")
        rows = IriEnrichmentResolver(lookup).enrich(source)
        assert list(rows) == list(source)
        assert rows.from_pipeline is True

    def test_malformed_lookup_result_degrades(self):
        lookup = _lookup(error=AttributeError("'str' object has no attribute 'get'"))
        rows = IriEnrichmentResolver(lookup).enrich(_rows(Q1))
        assert rows[0]["entity_name"] == Q1
