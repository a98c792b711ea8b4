"""Column analysis for uploaded rows."""

import logging
import re
from typing import Sequence

from .models import ColumnType, ImportColumn

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 3

NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

# Loose day/month/year, plus ISO year-first dates
DATE_PATTERN = re.compile(
    r"(?<!\d)(?:\d{1,2}[/.-]\d{1,2}[/.-]\d{4}|\d{4}-\d{1,2}-\d{1,2})(?!\d)"
)


class ColumnAnalyzer:
    """Infers names, samples and types for the columns of parsed rows."""

    def analyze(self, rows: Sequence[Sequence[str]], has_header: bool = True) -> list[ImportColumn]:
        """
        Build one ImportColumn per column index.

        Args:
            rows: Parsed rows, including the header row when present
            has_header: Whether the first row holds column names

        Returns:
            Columns ordered by index, up to the widest row
        """
        if not rows:
            return []

        header_row = rows[0] if has_header else None
        data_rows = rows[1:] if has_header else rows
        max_columns = max(len(row) for row in rows)

        columns = []
        for i in range(max_columns):
            values = [row[i] for row in data_rows if i < len(row) and row[i]]

            name = ""
            if header_row is not None and i < len(header_row):
                name = header_row[i]

            columns.append(
                ImportColumn(
                    name=name or f"Column {i + 1}",
                    index=i,
                    sample=tuple(values[:SAMPLE_SIZE]),
                    type=self.infer_type(values),
                )
            )

        logger.info(
            f"Analyzed {len(columns)} columns over {len(data_rows)} data rows"
        )
        return columns

    def infer_type(self, values: Sequence[str]) -> ColumnType:
        """
        Classify a column from its non-empty values.

        The first matching rule wins: number, email, date, text. A column with
        no values at all is "text", not vacuously "number", so an empty column
        never earns numeric type boosts.
        """
        if not values:
            return ColumnType.TEXT

        if all(NUMBER_PATTERN.match(v.strip()) for v in values):
            return ColumnType.NUMBER

        if any("@" in v for v in values):
            return ColumnType.EMAIL

        if any(DATE_PATTERN.search(v) for v in values):
            return ColumnType.DATE

        return ColumnType.TEXT
