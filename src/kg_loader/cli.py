from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click

from kg_loader.catalogue import EXAMPLE_QUERIES, CatalogueSearch, get_example_query
from kg_loader.config import LoaderConfig, load_config
from kg_loader.errors import LoaderError
from kg_loader.pipeline import EnrichStep, PipelineResult, PivotStep, QueryPipeline
from kg_loader.session import SearchSessionController, SessionState, SessionStatus, in_thread

logger = logging.getLogger(__name__)


def _catalogue(cfg: LoaderConfig) -> CatalogueSearch:
    return CatalogueSearch(
        QueryPipeline.from_config(cfg), cfg.endpoint(), graph=cfg.catalogue_graph
    )


def _echo_result(result: PipelineResult, as_json: bool) -> None:
    if as_json:
        payload = {
            "metadata": {
                "endpoint": result.metadata.endpoint,
                "pivoted": result.metadata.pivoted,
                "enriched": result.metadata.enriched,
                "source_title": result.metadata.source_title,
                "from_pipeline": result.rows.from_pipeline,
                "elapsed_ms": round(result.metadata.elapsed_ms, 1),
            },
            "rows": result.rows.to_records(),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not result.rows:
        click.echo("No rows returned.")
        return
    click.echo(result.rows.to_dataframe().to_string(index=False, max_colwidth=60))
    click.echo(f"\n{result.row_count} row(s) from {result.metadata.endpoint}")


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Search and load tables from a SPARQL knowledge graph."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    try:
        ctx.obj = load_config()
    except LoaderError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command("query")
@click.argument("query_text", required=False)
@click.option(
    "--file",
    "query_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the SPARQL query from a file.",
)
@click.option("--example", help="Run one of the example queries by title (see `examples`).")
@click.option("--endpoint", help="SPARQL endpoint URL (defaults to KG_LOADER_SPARQL_ENDPOINT).")
@click.option("--pivot", is_flag=True, help="Pivot (s, column_name, entity_name) rows.")
@click.option(
    "--enrich",
    "enrich_field",
    help="Resolve Wikidata IRIs in this field to labels (applied before --pivot).",
)
@click.option("--json", "as_json", is_flag=True, help="Print rows as JSON.")
@click.pass_obj
def query_command(
    cfg: LoaderConfig,
    query_text: Optional[str],
    query_file: Optional[Path],
    example: Optional[str],
    endpoint: Optional[str],
    pivot: bool,
    enrich_field: Optional[str],
    as_json: bool,
) -> None:
    """Run a SPARQL SELECT query."""
    if example:
        chosen = get_example_query(example)
        if chosen is None:
            raise click.BadParameter(f"Unknown example {example!r}.", param_hint="--example")
        query_text = chosen.query
    elif query_file is not None:
        query_text = query_file.read_text(encoding="utf-8")
    if not query_text:
        raise click.UsageError("Provide QUERY_TEXT, --file or --example.")

    steps = []
    if enrich_field:
        steps.append(EnrichStep(field=enrich_field))
    if pivot:
        steps.append(PivotStep())

    try:
        result = QueryPipeline.from_config(cfg).run(query_text, cfg.endpoint(endpoint), steps=steps)
    except LoaderError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_result(result, as_json)


@cli.command("examples")
def examples_command() -> None:
    """List the example queries."""
    for example in EXAMPLE_QUERIES:
        click.echo(f"== {example.title}")
        click.echo(example.query.strip())
        click.echo("")


@cli.command("search-datasets")
@click.argument("term", default="")
@click.option("--endpoint", help="SPARQL endpoint URL.")
@click.option("--json", "as_json", is_flag=True, help="Print rows as JSON.")
@click.pass_obj
def search_datasets_command(cfg: LoaderConfig, term: str, endpoint: Optional[str], as_json: bool) -> None:
    """Search the dataset catalogue by title (empty TERM lists datasets)."""
    try:
        result = _catalogue(cfg).search_datasets(term, endpoint)
    except LoaderError as exc:
        raise click.ClickException(str(exc)) from exc
    if not result.rows and not as_json:
        click.echo("No datasets found matching your query.")
        return
    _echo_result(result, as_json)


@cli.command("search-terms")
@click.argument("term")
@click.option("--endpoint", help="SPARQL endpoint URL.")
@click.option("--json", "as_json", is_flag=True, help="Print rows as JSON.")
@click.pass_obj
def search_terms_command(cfg: LoaderConfig, term: str, endpoint: Optional[str], as_json: bool) -> None:
    """Search vocabulary terms (classes, properties, individuals)."""
    if not term.strip():
        raise click.BadParameter("TERM must not be empty.", param_hint="TERM")
    try:
        result = _catalogue(cfg).search_terms(term, endpoint)
    except LoaderError as exc:
        raise click.ClickException(str(exc)) from exc
    if not result.rows and not as_json:
        click.echo("No terms found matching your query.")
        return
    _echo_result(result, as_json)


@cli.command("load-dataset")
@click.argument("dataset_iri")
@click.option("--title", help="Dataset title recorded in the result metadata.")
@click.option("--endpoint", help="SPARQL endpoint URL.")
@click.option("--json", "as_json", is_flag=True, help="Print rows as JSON.")
@click.pass_obj
def load_dataset_command(
    cfg: LoaderConfig,
    dataset_iri: str,
    title: Optional[str],
    endpoint: Optional[str],
    as_json: bool,
) -> None:
    """Load the statements about DATASET_IRI as one row per subject."""
    try:
        result = _catalogue(cfg).load_dataset({"dataset": dataset_iri, "title": title}, endpoint)
    except LoaderError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_result(result, as_json)


def _print_state(state: SessionState) -> None:
    if state.status == SessionStatus.LOADING:
        click.echo(f"... searching {state.term or '(all)'!r} on {state.endpoint}", err=True)
    elif state.status == SessionStatus.RESULTS:
        click.echo(state.rows.to_dataframe().to_string(index=False, max_colwidth=60))
    elif state.status in (SessionStatus.EMPTY, SessionStatus.FAILED):
        click.echo(state.message or "", err=state.status == SessionStatus.FAILED)


async def _interactive(session: SearchSessionController) -> None:
    session.start()
    while True:
        try:
            line = await asyncio.to_thread(input)
        except EOFError:
            break
        line = line.rstrip("\n")
        if line.startswith(":endpoint "):
            session.set_endpoint(line[len(":endpoint "):].strip())
        elif line == ":quit":
            break
        else:
            session.set_term(line)
    await session.wait()
    session.close()


@cli.command("session")
@click.option("--terms", "terms_mode", is_flag=True, help="Search vocabulary terms instead of datasets.")
@click.option("--endpoint", help="SPARQL endpoint URL.")
@click.pass_obj
def session_command(cfg: LoaderConfig, terms_mode: bool, endpoint: Optional[str]) -> None:
    """Interactive search: one search term per line, `:endpoint URL` to switch, `:quit` to stop."""
    catalogue = _catalogue(cfg)
    if terms_mode:
        search = in_thread(catalogue.search_terms)
        empty_message = "No terms found matching your query."
    else:
        search = in_thread(catalogue.search_datasets)
        empty_message = "No datasets found matching your query."

    session = SearchSessionController(
        search,
        endpoint=endpoint if endpoint is not None else cfg.sparql_endpoint,
        debounce_seconds=cfg.debounce_seconds,
        listing_on_empty=not terms_mode,
        empty_message=empty_message,
        on_change=_print_state,
    )
    asyncio.run(_interactive(session))


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
