"""
SPARQL query compilation and serialization.

``compile_query`` turns query text into a validated :class:`StructuredQuery`
using rdflib's SPARQL grammar and algebra translation.  ``serialize_query``
produces the exact text sent to the endpoint.

Only SELECT queries are accepted: everything else (ASK, CONSTRUCT, DESCRIBE,
SPARQL Update) is rejected here, before any request is made.

Usage:
    from kg_loader.sparql.query import compile_query, serialize_query

    query = compile_query("SELECT ?item WHERE { ?item wdt:P31 wd:Q5 } LIMIT 3")
    wire_text = serialize_query(query)   # PREFIX wd:/wdt: lines prepended
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from pyparsing import ParseException
from rdflib import Namespace
from rdflib.plugins.sparql.algebra import translateQuery
from rdflib.plugins.sparql.parser import parseQuery, parseUpdate

from kg_loader.errors import InvalidQueryError, NonSelectQueryError

# Prefixes available to every query without a PREFIX declaration
DEFAULT_PREFIXES: Dict[str, str] = {
    "wd": "http://www.wikidata.org/entity/",
    "wds": "http://www.wikidata.org/entity/statement/",
    "wdv": "http://www.wikidata.org/value/",
    "wdt": "http://www.wikidata.org/prop/direct/",
    "wikibase": "http://wikiba.se/ontology#",
    "p": "http://www.wikidata.org/prop/",
    "ps": "http://www.wikidata.org/prop/statement/",
    "pq": "http://www.wikidata.org/prop/qualifier/",
    "rdfs": "http://www.w3.org/2000/01/rdf-schema#",
    "bd": "http://www.bigdata.com/rdf#",
    "wdref": "http://www.wikidata.org/reference/",
    "psv": "http://www.wikidata.org/prop/statement/value/",
    "psn": "http://www.wikidata.org/prop/statement/value-normalized/",
    "pqv": "http://www.wikidata.org/prop/qualifier/value/",
    "pqn": "http://www.wikidata.org/prop/qualifier/value-normalized/",
    "pr": "http://www.wikidata.org/prop/reference/",
    "prv": "http://www.wikidata.org/prop/reference/value/",
    "prn": "http://www.wikidata.org/prop/reference/value-normalized/",
    "wdno": "http://www.wikidata.org/prop/novalue/",
    "wdata": "http://www.wikidata.org/wiki/Special:EntityData/",
    "schema": "http://schema.org/",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "owl": "http://www.w3.org/2002/07/owl#",
    "skos": "http://www.w3.org/2004/02/skos/core#",
    "xsd": "http://www.w3.org/2001/XMLSchema#",
    "prov": "http://www.w3.org/ns/prov#",
    "bds": "http://www.bigdata.com/rdf/search#",
    "gas": "http://www.bigdata.com/rdf/gas#",
    "hint": "http://www.bigdata.com/queryHints#",
}

_PREFIX_DECL = re.compile(r"^\s*PREFIX\s+([A-Za-z][\w.-]*)?\s*:", re.IGNORECASE | re.MULTILINE)

# rdflib algebra node name -> SPARQL query form
_QUERY_FORMS = {
    "SelectQuery": "SELECT",
    "ConstructQuery": "CONSTRUCT",
    "AskQuery": "ASK",
    "DescribeQuery": "DESCRIBE",
}


@dataclass(frozen=True)
class StructuredQuery:
    """A compiled, validated SELECT query."""

    text: str
    query_type: str
    variables: Tuple[str, ...]
    declared_prefixes: Tuple[str, ...] = ()
    algebra: Any = field(default=None, repr=False, compare=False)

    @property
    def is_select(self) -> bool:
        return self.query_type == "SELECT"


def declared_prefixes(text: str) -> Tuple[str, ...]:
    """Names of the prefixes declared by ``PREFIX`` lines in *text*."""
    return tuple(m.group(1) or "" for m in _PREFIX_DECL.finditer(text))


def _uses_prefix(text: str, name: str) -> bool:
    return re.search(rf"(?<![\w.\-<]){re.escape(name)}:", text) is not None


def _is_update(text: str) -> bool:
    try:
        parseUpdate(text)
    except ParseException:
        return False
    return True


def compile_query(
    text: str,
    prefixes: Optional[Mapping[str, str]] = None,
) -> StructuredQuery:
    """
    Compile SPARQL text into a StructuredQuery.

    Args:
        text: SPARQL query text
        prefixes: Prefixes usable without declaration (default: DEFAULT_PREFIXES)

    Returns:
        StructuredQuery for a SELECT query

    Raises:
        InvalidQueryError: The text is empty or not valid SPARQL
        NonSelectQueryError: The text is valid SPARQL but not a SELECT query
    """
    if not text or not text.strip():
        raise InvalidQueryError("SPARQL query cannot be empty.", text)

    prefixes = DEFAULT_PREFIXES if prefixes is None else prefixes

    try:
        parsed = parseQuery(text)
    except ParseException as e:
        if _is_update(text):
            raise NonSelectQueryError(
                "Only SELECT queries can be executed; got a SPARQL Update request.",
                text,
            ) from e
        raise InvalidQueryError(f"SPARQL syntax error: {e}", text) from e

    try:
        compiled = translateQuery(
            parsed, initNs={name: Namespace(uri) for name, uri in prefixes.items()}
        )
    except Exception as e:
        # rdflib reports semantic problems (unknown prefix, bad GROUP BY) as bare Exceptions
        raise InvalidQueryError(f"Invalid SPARQL query: {e}", text) from e

    form = _QUERY_FORMS.get(compiled.algebra.name, compiled.algebra.name)
    if form != "SELECT":
        raise NonSelectQueryError(
            f"Only SELECT queries can be executed; got a {form} query.", text
        )

    variables = tuple(str(v) for v in compiled.algebra.get("PV") or ())
    return StructuredQuery(
        text=text,
        query_type=form,
        variables=variables,
        declared_prefixes=declared_prefixes(text),
        algebra=compiled,
    )


def serialize_query(
    query: StructuredQuery,
    prefixes: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Produce the wire text for a compiled query.

    Default prefixes the query uses without declaring are prepended as
    PREFIX lines so the endpoint sees a self-contained query.
    """
    prefixes = DEFAULT_PREFIXES if prefixes is None else prefixes
    declared = set(query.declared_prefixes)
    missing = [
        f"PREFIX {name}: <{uri}>"
        for name, uri in prefixes.items()
        if name not in declared and _uses_prefix(query.text, name)
    ]
    if not missing:
        return query.text
    return "\n".join(missing) + "\n" + query.text
