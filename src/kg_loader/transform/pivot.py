"""
Long-to-wide pivot of (subject, column name, value) rows.

The dataset triple query returns one row per statement::

    s   column_name  entity_name
    u1  name         Alice
    u1  age          30

and the pivot groups them into one row per subject, with column names as
keys::

    {"subject": "u1", "name": "Alice", "age": "30"}

Column sets differ from row to row; consumers treat an absent key as unset.
"""

from __future__ import annotations

import logging
from typing import Dict

from kg_loader.sparql.results import Row, RowSet

logger = logging.getLogger(__name__)

SUBJECT_KEY = "subject"

# Variable names used by the dataset triple query
SUBJECT_FIELD = "s"
COLUMN_FIELD = "column_name"
VALUE_FIELD = "entity_name"


def pivot(
    rows: RowSet,
    subject_field: str = SUBJECT_FIELD,
    column_field: str = COLUMN_FIELD,
    value_field: str = VALUE_FIELD,
) -> RowSet:
    """
    Regroup triple-shaped rows into one row per distinct subject.

    Subjects are emitted in first-seen order.  A repeated (subject, column)
    pair overwrites the earlier value (last write wins).  Rows without a
    subject or a column name, or whose column name is ``subject``, are
    skipped with a warning.  Rows already in wide form (a ``subject`` key
    and no column field) are merged into their subject's row, so pivoting
    a pivoted RowSet returns the same rows.

    The provenance tag of *rows* is carried over to the result.
    """
    accumulators: Dict[str, Row] = {}
    skipped = 0

    for row in rows:
        if column_field not in row and row.get(SUBJECT_KEY):
            subject = row[SUBJECT_KEY]
            acc = accumulators.setdefault(subject, {SUBJECT_KEY: subject})
            acc.update(row)
            continue

        subject = row.get(subject_field)
        column = row.get(column_field)
        if not subject or not column:
            logger.warning("Skipping row without subject or column name for pivoting: %r", row)
            skipped += 1
            continue
        if str(column) == SUBJECT_KEY:
            logger.warning(
                "Skipping column %r for subject %s: it would replace the subject key",
                column, subject,
            )
            skipped += 1
            continue

        acc = accumulators.setdefault(str(subject), {SUBJECT_KEY: subject})
        # TODO: surface conflicting values for the same (subject, column) pair
        # instead of keeping only the last one
        acc[str(column)] = row.get(value_field, "")

    logger.debug(
        "Pivoted %d rows into %d subjects (%d skipped)", len(rows), len(accumulators), skipped
    )
    return rows.derive(accumulators.values())
