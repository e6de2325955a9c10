"""Query and catalogue tools exposed as MCP tools.

Every tool returns a JSON-ready dict.  Failures come back as
``{"error": message}`` instead of raising, so the client sees the message.
"""

from __future__ import annotations

from typing import Optional

from mcp.server.fastmcp import FastMCP

from kg_loader.catalogue import CatalogueSearch
from kg_loader.config import load_config
from kg_loader.errors import LoaderError
from kg_loader.pipeline import EnrichStep, PipelineResult, PivotStep, QueryPipeline


def _result_dict(result: PipelineResult) -> dict:
    return {
        "endpoint": result.metadata.endpoint,
        "row_count": result.row_count,
        "columns": result.rows.columns(),
        "rows": result.rows.to_records(),
        "pivoted": result.metadata.pivoted,
        "enriched": result.metadata.enriched,
        "source_title": result.metadata.source_title,
        "from_pipeline": result.rows.from_pipeline,
    }


def _catalogue() -> CatalogueSearch:
    cfg = load_config()
    return CatalogueSearch(QueryPipeline.from_config(cfg), cfg.endpoint(), graph=cfg.catalogue_graph)


def register_tools(mcp: FastMCP) -> None:
    """Register the query tools on *mcp*."""

    @mcp.tool()
    def run_sparql(
        query: str,
        endpoint_url: Optional[str] = None,
        pivot: bool = False,
        enrich_field: Optional[str] = None,
    ) -> dict:
        """Run a SPARQL SELECT query and return the rows.

        Common Wikidata prefixes (wd:, wdt:, rdfs:, schema:, ...) may be used
        without PREFIX declarations.

        Args:
            query: SPARQL SELECT query text.
            endpoint_url: Endpoint to query (defaults to the configured one).
            pivot: Pivot ``?s ?column_name ?entity_name`` rows into one row per subject.
            enrich_field: Field whose Wikidata IRIs are replaced by labelled values
                (applied before pivoting).

        Returns:
            Dict with ``row_count``, ``columns``, ``rows`` and provenance flags.
        """
        steps = []
        if enrich_field:
            steps.append(EnrichStep(field=enrich_field))
        if pivot:
            steps.append(PivotStep())
        try:
            cfg = load_config()
            result = QueryPipeline.from_config(cfg).run(query, cfg.endpoint(endpoint_url), steps=steps)
        except LoaderError as e:
            return {"error": str(e)}
        return _result_dict(result)

    @mcp.tool()
    def search_datasets(term: str = "", endpoint_url: Optional[str] = None) -> dict:
        """Search the DCAT dataset catalogue by title.

        An empty ``term`` returns the default listing.

        Returns:
            Dict with matching datasets (dataset, title, description,
            downloadURL, license, keywords).
        """
        try:
            result = _catalogue().search_datasets(term, endpoint_url)
        except LoaderError as e:
            return {"error": str(e), "term": term}
        out = _result_dict(result)
        if not result.rows:
            out["message"] = "No datasets found matching your query."
        return out

    @mcp.tool()
    def search_terms(term: str, endpoint_url: Optional[str] = None) -> dict:
        """Search vocabulary terms (classes, properties, individuals) by label,
        comment, alternative label, or IRI.
        """
        if not term.strip():
            return {"error": "Provide a search term."}
        try:
            result = _catalogue().search_terms(term, endpoint_url)
        except LoaderError as e:
            return {"error": str(e), "term": term}
        out = _result_dict(result)
        if not result.rows:
            out["message"] = "No terms found matching your query."
        return out

    @mcp.tool()
    def load_dataset(
        dataset_iri: str,
        title: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ) -> dict:
        """Load all statements about a dataset as a table, one row per subject.

        Wikidata entity IRIs among the values are returned as
        ``{"identifier", "label", "resolved"}`` objects.
        """
        try:
            result = _catalogue().load_dataset({"dataset": dataset_iri, "title": title}, endpoint_url)
        except (LoaderError, ValueError) as e:
            return {"error": str(e), "dataset": dataset_iri}
        return _result_dict(result)
