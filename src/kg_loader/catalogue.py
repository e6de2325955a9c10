"""Catalogue and vocabulary search queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional

from kg_loader.config import DEFAULT_CATALOGUE_GRAPH, Endpoint
from kg_loader.pipeline import EnrichStep, PipelineResult, PivotStep, QueryPipeline

logger = logging.getLogger(__name__)

# Characters with a meaning in XPath regular expressions (SPARQL REGEX)
_REGEX_META = set("\\.?*+(){}-[]^$|")


def escape_regex_literal(term: str) -> str:
    """
    Make *term* safe to embed as a literal pattern inside a SPARQL REGEX string.

    Regex metacharacters match themselves, and the result can be placed
    between double quotes in a query.
    """
    escaped = "".join("\\" + ch if ch in _REGEX_META else ch for ch in term)
    return (
        escaped.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


@dataclass
class ExampleQuery:
    """A ready-made query offered to the user."""

    title: str
    query: str


EXAMPLE_QUERIES: List[ExampleQuery] = [
    ExampleQuery(
        title="Standard",
        query="SELECT * WHERE { ?s ?p ?o } LIMIT 10",
    ),
    ExampleQuery(
        title="List of IRAC Vocabularies",
        query="""# Query the hierarchy of the IRAC Vocabulary (Insecticide Resistance Action Committee) of the MAPFI project.
PREFIX irac: <http://srv.ktbl.de/data/irac/>
PREFIX rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>

SELECT ?groupCode ?groupLabel ?subgroupCode ?subgroupLabel ?ingredientLabel
WHERE { GRAPH <https://fskx-graphdb.risk-ai-cloud.com/3ff722ca393651ab950a8fd2701df1ec/> {
    # Get SubGroup and its Group
    ?subgroup a irac:SubGroup ;
              rdfs:subClassOf ?group ;
              rdfs:label ?subgroupLabel ;
              irac:code ?subgroupCode .

    ?group a irac:Group ;
           rdfs:label ?groupLabel ;
           irac:code ?groupCode .

    # Get ActiveIngredients typed as the SubGroup
    OPTIONAL {
        ?ingredient a irac:ActiveIngredient ;
                    rdf:type ?subgroup ;
                    rdfs:label ?ingredientLabel .
    }
} }
ORDER BY ?groupCode ?subgroupCode ?ingredientLabel""",
    ),
    ExampleQuery(
        title="Get Data from ZooMo",
        query="""# How many meat producing animals were sampled for Campylobacter coli during the Zoonoses Monitoring in Germany?
PREFIX obo: <http://purl.obolibrary.org/obo/>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>

SELECT ?spezies ?isolat ?years (COUNT(?s) AS ?count) WHERE {
    ?s a obo:HSO_0000001 ;
       obo:HSO_0000213 ?years ;
       obo:HSO_0000242 ?SpeziesID ;
       obo:HSO_0000308 ?IsolateID .
    ?SpeziesID rdfs:label ?spezies .
    ?IsolateID rdfs:label ?isolat .
    FILTER ( regex(?isolat, "C. coli", "i") )
    FILTER ( regex(?spezies, "Mast", "i") )
} GROUP BY ?spezies ?isolat ?years""",
    ),
]


def get_example_query(title: str) -> Optional[ExampleQuery]:
    for example in EXAMPLE_QUERIES:
        if example.title.lower() == title.lower():
            return example
    return None


def dataset_search_query(term: str = "", graph: str = DEFAULT_CATALOGUE_GRAPH, limit: int = 5) -> str:
    """DCAT dataset listing; a non-blank *term* filters titles (case-insensitive)."""
    title_filter = ""
    if term.strip():
        title_filter = f'FILTER (regex(str(?title), "{escape_regex_literal(term.strip())}", "i"))'
    return f"""
PREFIX dcat: <http://www.w3.org/ns/dcat#>
PREFIX dct: <http://purl.org/dc/terms/>

SELECT ?dataset ?title
       (SAMPLE(?desc) AS ?description)
       (SAMPLE(?dlURL) AS ?downloadURL)
       (SAMPLE(?lic) AS ?license)
       (GROUP_CONCAT(DISTINCT STR(?kw); SEPARATOR=", ") AS ?keywords)
WHERE {{ GRAPH <{graph}> {{
    ?dataset a dcat:Dataset .
    ?dataset dct:title ?title .
    OPTIONAL {{ ?dataset dct:description ?desc . }}
    OPTIONAL {{
        ?dataset dcat:distribution ?distribution .
        ?distribution dcat:downloadURL ?dlURL .
    }}
    OPTIONAL {{ ?dataset dcat:keyword ?kw . }}
    OPTIONAL {{ ?dataset dct:license ?lic . }}
    {title_filter}
}} }}
GROUP BY ?dataset ?title
LIMIT {int(limit)}
"""


_TERM_TYPES = [
    ("owl:Class", "Class"),
    ("rdf:Property", "Property"),
    ("owl:ObjectProperty", "Object Property"),
    ("owl:DatatypeProperty", "Datatype Property"),
    ("owl:AnnotationProperty", "Annotation Property"),
    ("owl:NamedIndividual", "Individual"),
]


def _english(var: str, predicate: str) -> str:
    return (
        f"OPTIONAL {{ ?term {predicate} ?{var} . "
        f'FILTER(LANGMATCHES(LANG(?{var}), "en") || LANG(?{var}) = "") }}'
    )


def term_search_query(term: str, limit: int = 20) -> str:
    """Vocabulary search over classes, properties, and individuals."""
    pattern = escape_regex_literal(term.strip())
    unions = "\n    UNION\n".join(
        f"""    {{
        ?term a {iri} .
        BIND({iri} AS ?termTypeIRI)
        BIND("{label}" AS ?termTypeLabel_str)
    }}"""
        for iri, label in _TERM_TYPES
    )
    optionals = "\n    ".join(
        _english(var, predicate)
        for var, predicate in [
            ("rdfsLabel", "rdfs:label"),
            ("skosPrefLabel", "skos:prefLabel"),
            ("rdfsComment", "rdfs:comment"),
            ("skosDefinition", "skos:definition"),
            ("skosAltLabel", "skos:altLabel"),
            ("dctTitle", "dcterms:title"),
            ("dctDescription", "dcterms:description"),
        ]
    )
    return f"""
PREFIX owl: <http://www.w3.org/2002/07/owl#>
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
PREFIX skos: <http://www.w3.org/2004/02/skos/core#>
PREFIX rdf: <http://www.w3.org/1999/02/22-rdf-syntax-ns#>
PREFIX dcterms: <http://purl.org/dc/terms/>

SELECT DISTINCT ?term ?displayLabel ?displayComment ?termTypeIRI ?termTypeLabel
WHERE {{
{unions}

    {optionals}

    BIND(COALESCE(?rdfsLabel, ?skosPrefLabel, ?dctTitle, "") AS ?label_intermediate)
    BIND(COALESCE(?rdfsComment, ?skosDefinition, ?dctDescription, "") AS ?comment_intermediate)

    # Display label falls back to the local name, then the full IRI
    BIND(IF(STRLEN(?label_intermediate) > 0, ?label_intermediate,
        IF(CONTAINS(STR(?term), "#"), STRAFTER(STR(?term), "#"),
        REPLACE(STR(?term), "^.*/([^/]*)$", "$1")))
    AS ?displayLabel_computed)

    BIND(COALESCE(?displayLabel_computed, STR(?term)) AS ?displayLabel)
    BIND(COALESCE(?comment_intermediate, "") AS ?displayComment)
    BIND(COALESCE(?termTypeLabel_str, "Resource") AS ?termTypeLabel)

    FILTER (
        regex(str(?displayLabel), "{pattern}", "i") ||
        regex(str(?displayComment), "{pattern}", "i") ||
        regex(str(?skosAltLabel), "{pattern}", "i") ||
        regex(STR(?term), "{pattern}", "i")
    )
}}
LIMIT {int(limit)}
"""


def dataset_triples_query(subject_pattern: str) -> str:
    """(s, column_name, entity_name) rows for every subject matching *subject_pattern*."""
    return f"""
PREFIX rdfs: <http://www.w3.org/2000/01/rdf-schema#>
SELECT ?s ?column_name ?entity_name WHERE {{
    ?s ?p ?entity_name .
    ?p rdfs:label ?column_name .
    FILTER REGEX(STR(?s), "{escape_regex_literal(subject_pattern)}", "i")
}}
"""


class CatalogueSearch:
    """
    Dataset catalogue and terminology searches over one SPARQL endpoint.

    Example:
        catalogue = CatalogueSearch(QueryPipeline.from_config(), cfg.endpoint())
        listing = catalogue.search_datasets("")          # initial listing
        hits = catalogue.search_datasets("salmonella")
        table = catalogue.load_dataset(hits.rows[0])     # pivoted, labels resolved
    """

    def __init__(
        self,
        pipeline: QueryPipeline,
        endpoint: Endpoint,
        graph: str = DEFAULT_CATALOGUE_GRAPH,
    ):
        self.pipeline = pipeline
        self.endpoint = endpoint
        self.graph = graph

    def _endpoint(self, url: Optional[str]) -> Endpoint:
        return self.endpoint if url is None else self.endpoint.with_url(url)

    def search_datasets(self, term: str = "", endpoint_url: Optional[str] = None) -> PipelineResult:
        return self.pipeline.run(
            dataset_search_query(term, graph=self.graph), self._endpoint(endpoint_url)
        )

    def search_terms(self, term: str, endpoint_url: Optional[str] = None) -> PipelineResult:
        return self.pipeline.run(term_search_query(term), self._endpoint(endpoint_url))

    def load_dataset(
        self,
        item: Mapping[str, object],
        endpoint_url: Optional[str] = None,
    ) -> PipelineResult:
        """
        Load the statements about a selected catalogue item as a wide table.

        Wikidata IRIs in the object position are labelled first, then the
        triples are pivoted so each labelled value lands in its column.
        """
        subject = str(item.get("dataset") or item.get("s") or "")
        if not subject:
            raise ValueError("Catalogue item has no dataset IRI")
        title = item.get("title")
        logger.info("Loading dataset %s", subject)
        return self.pipeline.run(
            dataset_triples_query(subject),
            self._endpoint(endpoint_url),
            steps=[EnrichStep(), PivotStep()],
            source_title=str(title) if title else None,
        )
