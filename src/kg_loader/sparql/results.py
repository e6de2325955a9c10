"""
SPARQL JSON results and the tabular row model.

A :class:`WireResult` is the parsed ``application/sparql-results+json``
payload.  :func:`normalize` flattens it into a :class:`RowSet`: one row per
binding, one string value per declared variable, tagged as pipeline output.

Transformations never mutate a RowSet; they build a new one with
:meth:`RowSet.derive`, which carries the provenance tag over.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple, Union

from kg_loader.errors import InvalidResultShapeError


@dataclass(frozen=True)
class EnrichedValue:
    """An external identifier together with its resolved display label."""

    identifier: str
    label: str
    resolved: bool = True

    def __str__(self) -> str:
        return self.label

    def to_dict(self) -> Dict[str, Any]:
        return {"identifier": self.identifier, "label": self.label, "resolved": self.resolved}


Value = Union[str, EnrichedValue]
Row = Dict[str, Value]


@dataclass(frozen=True)
class WireResult:
    """Raw SPARQL JSON results: ``head`` and ``results`` sections as received."""

    head: Mapping[str, Any]
    results: Mapping[str, Any]

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "WireResult":
        return cls(head=payload.get("head") or {}, results=payload.get("results") or {})


@dataclass(frozen=True)
class RowSet:
    """
    An ordered sequence of rows plus a provenance tag.

    ``from_pipeline`` is True only for rows produced by the query pipeline.
    Rows built from other sources (uploaded files, hand-made records) must
    use :meth:`from_records`, which never sets it.
    """

    rows: Tuple[Row, ...] = ()
    from_pipeline: bool = False

    def __post_init__(self):
        object.__setattr__(self, "rows", tuple(self.rows))

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __getitem__(self, index):
        return self.rows[index]

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Value]]) -> "RowSet":
        """Wrap externally sourced records. The result is never tagged."""
        return cls(rows=tuple(dict(r) for r in records), from_pipeline=False)

    def derive(self, rows: Iterable[Row]) -> "RowSet":
        """New RowSet over *rows* keeping this RowSet's provenance tag."""
        return RowSet(rows=tuple(rows), from_pipeline=self.from_pipeline)

    def columns(self) -> List[str]:
        """Ordered union of the keys of all rows (first-seen order)."""
        seen: Dict[str, None] = {}
        for row in self.rows:
            for key in row:
                seen.setdefault(key, None)
        return list(seen)

    def to_records(self) -> List[Dict[str, Any]]:
        """Rows as JSON-ready dicts; enriched values become plain dicts."""
        return [
            {k: v.to_dict() if isinstance(v, EnrichedValue) else v for k, v in row.items()}
            for row in self.rows
        ]

    def to_dataframe(self):
        """Rows as a pandas DataFrame. Absent keys become empty cells."""
        import pandas as pd

        return pd.DataFrame(
            [{k: str(v) for k, v in row.items()} for row in self.rows],
            columns=self.columns(),
        ).fillna("")


def normalize(result: WireResult) -> RowSet:
    """
    Flatten SPARQL JSON bindings into a tagged RowSet.

    Every row has exactly the declared variables, in declared order.  An
    unbound variable yields an empty string.

    Raises:
        InvalidResultShapeError: ``head.vars`` or ``results.bindings`` is
            missing or not a list
    """
    variables = result.head.get("vars") if isinstance(result.head, Mapping) else None
    bindings = result.results.get("bindings") if isinstance(result.results, Mapping) else None
    if not isinstance(variables, list) or not isinstance(bindings, list):
        raise InvalidResultShapeError(
            "Invalid SPARQL JSON structure received: expected head.vars and results.bindings."
        )

    rows: List[Row] = []
    for binding in bindings:
        if not isinstance(binding, Mapping):
            raise InvalidResultShapeError(
                f"Invalid SPARQL binding: expected an object, got {type(binding).__name__}."
            )
        row: Row = {}
        for var in variables:
            term = binding.get(var)
            row[var] = term.get("value", "") if isinstance(term, Mapping) else ""
        rows.append(row)

    return RowSet(rows=tuple(rows), from_pipeline=True)
