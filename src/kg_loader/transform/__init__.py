"""Row transformations applied after normalization: pivoting and IRI enrichment."""

from kg_loader.transform.enrich import IriEnrichmentResolver, LabelLookup, enrich
from kg_loader.transform.pivot import SUBJECT_KEY, pivot

__all__ = ["IriEnrichmentResolver", "LabelLookup", "enrich", "pivot", "SUBJECT_KEY"]
