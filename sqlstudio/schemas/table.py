"""
TabularResult schema - a named table produced by a query or merge step.

Backends hand results back as ``{columns, rows, rowCount}`` mappings or as
TabularResult instances; ``TabularResult.coerce`` normalises both.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

PREVIEW_ROWS = 10


@dataclass(frozen=True)
class TabularResult:
    """
    An immutable table of rows.

    Attributes:
        columns: Column names in output order
        rows: One mapping per row, keyed by column name
        affected_rows: Rows changed by a statement without a result set
            (UPDATE/INSERT/DELETE), when the backend reports it
    """
    columns: tuple[str, ...] = field(default_factory=tuple)
    rows: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    affected_rows: Optional[int] = None

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        columns: Optional[Iterable[str]] = None,
    ) -> "TabularResult":
        """
        Build a result from row mappings.

        When columns are not given they are taken from the keys of the rows,
        in first-seen order.
        """
        copied = tuple(dict(row) for row in rows)
        if columns is None:
            seen: dict[str, None] = {}
            for row in copied:
                for key in row:
                    seen.setdefault(key, None)
            columns = seen.keys()
        return cls(columns=tuple(columns), rows=copied)

    @classmethod
    def coerce(cls, value: Any) -> "TabularResult":
        """Normalise a backend result into a TabularResult."""
        if isinstance(value, TabularResult):
            return value
        if isinstance(value, Mapping):
            rows = value.get("rows") or []
            columns = value.get("columns")
            table = cls.from_rows(rows, columns=columns)
            count = value.get("rowCount")
            if isinstance(count, int) and not table.rows:
                return replace(table, affected_rows=count)
            return table
        raise TypeError(
            f"Query executor returned unsupported result type: {type(value).__name__}"
        )

    @property
    def row_count(self) -> int:
        """Rows returned, or rows affected for statements without a result set."""
        if self.affected_rows is not None and not self.rows:
            return self.affected_rows
        return len(self.rows)

    def preview(self, limit: int = PREVIEW_ROWS) -> list[dict[str, Any]]:
        """First rows of the table, for step result previews."""
        return [dict(row) for row in self.rows[:limit]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
            "row_count": self.row_count,
        }
