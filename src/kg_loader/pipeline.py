"""
Query pipeline: compile -> execute -> normalize -> (pivot / enrich) -> consumer.

Usage:
    from kg_loader.pipeline import EnrichStep, PivotStep, QueryPipeline

    pipeline = QueryPipeline.from_config()
    result = pipeline.run(query_text, endpoint, steps=[EnrichStep(), PivotStep()])
    consumer(result.rows, result.metadata)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Pattern, Protocol, Sequence, Union

from kg_loader.config import Endpoint, LoaderConfig, load_config
from kg_loader.sparql.executor import RequestExecutor
from kg_loader.sparql.query import StructuredQuery, compile_query, serialize_query
from kg_loader.sparql.results import RowSet, normalize
from kg_loader.transform.enrich import DEFAULT_FIELD, IriEnrichmentResolver
from kg_loader.transform.pivot import pivot
from kg_loader.wikidata import WIKIDATA_ENTITY_PATTERN, WikidataLabelService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PivotStep:
    """Regroup (s, column_name, entity_name) rows into one row per subject."""

    subject_field: str = "s"
    column_field: str = "column_name"
    value_field: str = "entity_name"


@dataclass(frozen=True)
class EnrichStep:
    """Replace identifier values of *field* with labelled values."""

    field: str = DEFAULT_FIELD
    matcher: Pattern[str] = WIKIDATA_ENTITY_PATTERN


Step = Union[PivotStep, EnrichStep]


@dataclass(frozen=True)
class PipelineMetadata:
    """What the consumer needs to know about where a RowSet came from."""

    query: str
    endpoint: str
    pivoted: bool = False
    enriched: bool = False
    source_title: Optional[str] = None
    elapsed_ms: float = 0.0


@dataclass(frozen=True)
class PipelineResult:
    rows: RowSet
    metadata: PipelineMetadata

    @property
    def row_count(self) -> int:
        return len(self.rows)


class ResultConsumer(Protocol):
    """Receives the final rows and their metadata."""

    def __call__(self, rows: RowSet, metadata: PipelineMetadata) -> None:
        ...


def deliver(result: PipelineResult, consumer: ResultConsumer) -> None:
    consumer(result.rows, result.metadata)


@dataclass
class QueryPipeline:
    """Runs one query through every pipeline stage."""

    executor: RequestExecutor
    resolver: Optional[IriEnrichmentResolver] = None

    @classmethod
    def from_config(cls, config: Optional[LoaderConfig] = None) -> "QueryPipeline":
        config = config or load_config()
        labels = WikidataLabelService(
            language=config.label_language,
            timeout=config.timeout,
            max_retries=config.http_retries,
        )
        return cls(
            executor=RequestExecutor(timeout=config.timeout, max_retries=config.http_retries),
            resolver=IriEnrichmentResolver(labels),
        )

    def compile(self, query: Union[str, StructuredQuery]) -> StructuredQuery:
        if isinstance(query, StructuredQuery):
            return query
        return compile_query(query)

    def run(
        self,
        query: Union[str, StructuredQuery],
        endpoint: Endpoint,
        steps: Sequence[Step] = (),
        source_title: Optional[str] = None,
    ) -> PipelineResult:
        """
        Execute *query* against *endpoint* and apply *steps* in order.

        Raises:
            InvalidQueryError: The query text does not compile
            LoaderError: Any other failure before the transformation steps;
                enrichment problems never raise
        """
        structured = self.compile(query)
        started = time.time()

        wire = self.executor.execute(endpoint, structured)
        rows = normalize(wire)
        logger.debug("Normalized %d rows from %s", len(rows), endpoint.url)

        pivoted = enriched = False
        for step in steps:
            if isinstance(step, PivotStep):
                rows = pivot(rows, step.subject_field, step.column_field, step.value_field)
                pivoted = True
            elif isinstance(step, EnrichStep):
                if self.resolver is None:
                    raise ValueError("EnrichStep requires a pipeline with a label resolver")
                rows = self.resolver.enrich(rows, step.field, step.matcher)
                enriched = True
            else:
                raise TypeError(f"Unknown pipeline step: {step!r}")

        elapsed_ms = (time.time() - started) * 1000
        metadata = PipelineMetadata(
            query=serialize_query(structured),
            endpoint=endpoint.url,
            pivoted=pivoted,
            enriched=enriched,
            source_title=source_title,
            elapsed_ms=elapsed_ms,
        )
        logger.info("Query on %s returned %d rows in %.0f ms", endpoint.url, len(rows), elapsed_ms)
        return PipelineResult(rows=rows, metadata=metadata)
