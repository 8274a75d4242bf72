"""Derives a TableSchema from a header row and data rows."""

from itertools import islice
from typing import Iterable, List, Optional, Sequence, Set

from common.logging_config import get_logger
from common.types import Column, ColumnType, TableSchema
from tabular.type_parsers import PARSERS, TYPE_PRECEDENCE

logger = get_logger(__name__)


class _ColumnVote:
    """Types still satisfied by every non-empty value seen so far."""

    __slots__ = ('candidates', 'seen_value')

    def __init__(self):
        self.candidates: Set[ColumnType] = set(TYPE_PRECEDENCE)
        self.seen_value = False

    def observe(self, value: str) -> None:
        if not value.strip():
            return
        self.seen_value = True
        for column_type in list(self.candidates):
            if not PARSERS[column_type](value).ok:
                self.candidates.discard(column_type)

    def winner(self) -> ColumnType:
        if not self.seen_value:
            return ColumnType.TEXT
        for column_type in TYPE_PRECEDENCE:
            if column_type in self.candidates:
                return column_type
        return ColumnType.TEXT


class SchemaInferencer:
    """
    Whole-column type vote with fixed precedence INTEGER > FLOAT > DATE > TEXT.

    A column takes the first type in precedence order that every non-empty
    value satisfies; one non-conforming value downgrades the whole column.
    Columns with no non-empty values are TEXT. Blank header cells are dropped
    together with their data column.
    """

    def __init__(self, sample_rows: Optional[int] = None):
        """
        Args:
            sample_rows: Vote on at most this many data rows; None scans all rows
        """
        if sample_rows is not None and sample_rows < 1:
            raise ValueError("sample_rows must be positive")
        self.sample_rows = sample_rows

    def infer_schema(self, header_row: Sequence[str], data_rows: Iterable[Sequence[str]]) -> TableSchema:
        positions: List[int] = []
        names: List[str] = []
        for position, raw_name in enumerate(header_row):
            name = raw_name.strip()
            if name:
                positions.append(position)
                names.append(name)

        votes = [_ColumnVote() for _ in positions]
        rows = data_rows if self.sample_rows is None else islice(data_rows, self.sample_rows)

        row_count = 0
        for row in rows:
            row_count += 1
            for vote, position in zip(votes, positions):
                # Short rows are the loader's arity problem; here they simply carry no vote.
                if position < len(row):
                    vote.observe(row[position])

        columns = tuple(
            Column(name=name, column_type=vote.winner(), position=position)
            for name, vote, position in zip(names, votes, positions)
        )
        schema = TableSchema(columns=columns, source_width=len(header_row))

        logger.debug(
            f"Inferred {len(columns)} columns from {row_count} rows: "
            + ", ".join(f"{c.name} {c.column_type.value}" for c in columns)
        )
        return schema
