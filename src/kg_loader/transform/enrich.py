"""
Label enrichment for external identifiers.

Values of one field that look like Wikidata entity IRIs are collected,
deduplicated, and resolved in a single batched lookup.  Each resolved value
is replaced by an :class:`~kg_loader.sparql.results.EnrichedValue` holding
both the IRI and its label.

Enrichment never fails the pipeline: if the lookup fails, or an IRI has no
label, the plain string stays in place.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Pattern, Protocol, Sequence

from kg_loader.errors import EnrichmentLookupFailure
from kg_loader.sparql.results import EnrichedValue, Row, RowSet
from kg_loader.wikidata import WIKIDATA_ENTITY_PATTERN

logger = logging.getLogger(__name__)

DEFAULT_FIELD = "entity_name"


class LabelLookup(Protocol):
    """Anything that maps a batch of identifiers to labels."""

    def fetch_labels(self, iris: Sequence[str]) -> Dict[str, str]:
        ...


def collect_identifiers(rows: RowSet, field: str, matcher: Pattern[str]) -> List[str]:
    """Distinct string values of *field* matching *matcher*, in first-seen order."""
    found: Dict[str, None] = {}
    for row in rows:
        value = row.get(field)
        if isinstance(value, str) and matcher.match(value):
            found.setdefault(value, None)
    return list(found)


class IriEnrichmentResolver:
    """Replaces identifier values of a field with labelled values."""

    def __init__(self, lookup: LabelLookup):
        self.lookup = lookup

    def enrich(
        self,
        rows: RowSet,
        field: str = DEFAULT_FIELD,
        matcher: Pattern[str] = WIKIDATA_ENTITY_PATTERN,
    ) -> RowSet:
        """
        Enrich *field* across all rows.

        Args:
            rows: Input rows (not modified)
            field: Name of the field to scan
            matcher: Pattern an identifier must match to be looked up

        Returns:
            *rows* itself when nothing matches (no lookup is made), otherwise
            a new RowSet with the same provenance tag
        """
        identifiers = collect_identifiers(rows, field, matcher)
        if not identifiers:
            logger.debug("No identifiers found in %r field to resolve", field)
            return rows

        logger.debug("Resolving %d identifiers from %r", len(identifiers), field)
        try:
            labels = self.lookup.fetch_labels(identifiers)
        except EnrichmentLookupFailure as e:
            logger.warning("Label lookup failed, leaving identifiers unresolved: %s", e)
            labels = {}
        except Exception:
            # any lookup error leaves values unresolved
            logger.warning("Label lookup raised, leaving identifiers unresolved", exc_info=True)
            labels = {}

        unresolved = len(identifiers) - sum(1 for iri in identifiers if iri in labels)
        if unresolved:
            logger.info("%d of %d identifiers have no label", unresolved, len(identifiers))

        return rows.derive(self._apply(row, field, labels) for row in rows)

    @staticmethod
    def _apply(row: Row, field: str, labels: Dict[str, str]) -> Row:
        value = row.get(field)
        if isinstance(value, str) and value in labels:
            return {**row, field: EnrichedValue(identifier=value, label=labels[value])}
        return dict(row)


def enrich(
    rows: RowSet,
    lookup: LabelLookup,
    field: str = DEFAULT_FIELD,
    matcher: Optional[Pattern[str]] = None,
) -> RowSet:
    """Functional form of :meth:`IriEnrichmentResolver.enrich`."""
    return IriEnrichmentResolver(lookup).enrich(
        rows, field, WIKIDATA_ENTITY_PATTERN if matcher is None else matcher
    )
