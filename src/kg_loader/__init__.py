"""Query a remote knowledge graph and turn the results into tables.

Searches a DCAT dataset catalogue or a vocabulary over SPARQL, normalizes
the JSON results into rows, and, for dataset loads, pivots subject/column/value
triples into one row per subject with Wikidata identifiers labelled.
"""

__version__ = "0.1.0"
