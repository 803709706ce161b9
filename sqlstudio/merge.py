"""
Merge engine - combine tables saved by earlier steps.

Merge types:
- union: ordered union of the column sets, rows concatenated in source order,
  duplicate rows removed (first occurrence kept)
- union_all: same as union without duplicate removal
- inner_join / left_join / right_join / full_join: hash join of exactly two
  tables on one or more column pairs

Join output columns:
- A key pair with the same column name on both sides becomes one column
  (left value, or the right value when the row has no left side)
- Other columns present on both sides are qualified as "<table>.<column>"
- Rows with a null key value never match

Values compare with Python equality, as SQL compares numbers: 1, 1.0,
Decimal("1") and True are the same value for union de-duplication and join
matching, so an integer id from one database joins a numeric id from the other.
"""

import json
from typing import Any, Callable, Optional, Sequence

from sqlstudio.errors import InvalidConfigurationError
from sqlstudio.schemas import JoinKey, MergeStep, MergeType, TabularResult
from sqlstudio.table_store import VariableTableStore


def _hashable(value: Any) -> Any:
    try:
        hash(value)
        return value
    except TypeError:
        return json.dumps(value, sort_keys=True, default=str)


def _row_key(row: dict[str, Any], columns: Sequence[str]) -> Optional[tuple]:
    values = [row.get(c) for c in columns]
    if any(v is None for v in values):
        return None
    return tuple(_hashable(v) for v in values)


def union_tables(tables: Sequence[TabularResult], distinct: bool = True) -> TabularResult:
    """Concatenate tables, optionally dropping duplicate rows."""
    columns: dict[str, None] = {}
    for table in tables:
        for col in table.columns:
            columns.setdefault(col, None)
    ordered = list(columns)

    rows = []
    seen: set[tuple] = set()
    for table in tables:
        for row in table.rows:
            normalized = {col: row.get(col) for col in ordered}
            if distinct:
                key = tuple(_hashable(normalized[col]) for col in ordered)
                if key in seen:
                    continue
                seen.add(key)
            rows.append(normalized)

    return TabularResult(columns=tuple(ordered), rows=tuple(rows))


def _index(rows: Sequence[dict[str, Any]], columns: Sequence[str]) -> dict[tuple, list[int]]:
    index: dict[tuple, list[int]] = {}
    for i, row in enumerate(rows):
        key = _row_key(row, columns)
        if key is not None:
            index.setdefault(key, []).append(i)
    return index


def join_tables(
    left_name: str,
    left: TabularResult,
    right_name: str,
    right: TabularResult,
    join_keys: Sequence[JoinKey],
    merge_type: MergeType,
) -> TabularResult:
    """
    Hash join two tables.

    Args:
        left_name: Name of the left table (used to qualify colliding columns)
        left: Left table
        right_name: Name of the right table
        right: Right table
        join_keys: Column pairs to match
        merge_type: inner_join, left_join, right_join or full_join

    Returns:
        The joined table
    """
    left_keys = [k.left for k in join_keys]
    right_keys = [k.right for k in join_keys]
    shared = {k.left: k.right for k in join_keys if k.left == k.right}

    left_columns = list(left.columns)
    for col in shared:
        if col not in left_columns:
            left_columns.append(col)
    right_columns = [c for c in right.columns if c not in shared]

    left_map = []
    for col in left_columns:
        if col not in shared and col in right_columns:
            left_map.append((col, f"{left_name}.{col}"))
        else:
            left_map.append((col, col))
    right_map = []
    for col in right_columns:
        if col in left_columns:
            right_map.append((col, f"{right_name}.{col}"))
        else:
            right_map.append((col, col))

    def combine(lrow: Optional[dict[str, Any]], rrow: Optional[dict[str, Any]]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for src, dst in left_map:
            if lrow is not None:
                out[dst] = lrow.get(src)
            elif src in shared and rrow is not None:
                out[dst] = rrow.get(shared[src])
            else:
                out[dst] = None
        for src, dst in right_map:
            out[dst] = rrow.get(src) if rrow is not None else None
        return out

    rows: list[dict[str, Any]] = []

    if merge_type == MergeType.RIGHT_JOIN:
        left_index = _index(left.rows, left_keys)
        for rrow in right.rows:
            key = _row_key(rrow, right_keys)
            matches = left_index.get(key) if key is not None else None
            if matches:
                for li in matches:
                    rows.append(combine(left.rows[li], rrow))
            else:
                rows.append(combine(None, rrow))
    else:
        right_index = _index(right.rows, right_keys)
        matched_right: set[int] = set()
        for lrow in left.rows:
            key = _row_key(lrow, left_keys)
            matches = right_index.get(key) if key is not None else None
            if matches:
                for ri in matches:
                    rows.append(combine(lrow, right.rows[ri]))
                    matched_right.add(ri)
            elif merge_type in (MergeType.LEFT_JOIN, MergeType.FULL_JOIN):
                rows.append(combine(lrow, None))

        if merge_type == MergeType.FULL_JOIN:
            for ri, rrow in enumerate(right.rows):
                if ri not in matched_right:
                    rows.append(combine(None, rrow))

    columns = tuple(dst for _, dst in left_map) + tuple(dst for _, dst in right_map)
    return TabularResult(columns=columns, rows=tuple(rows))


def _union(step: MergeStep, tables: list[TabularResult]) -> TabularResult:
    return union_tables(tables, distinct=True)


def _union_all(step: MergeStep, tables: list[TabularResult]) -> TabularResult:
    return union_tables(tables, distinct=False)


def _join(step: MergeStep, tables: list[TabularResult]) -> TabularResult:
    left_name, right_name = step.source_tables
    return join_tables(left_name, tables[0], right_name, tables[1], step.join_keys, step.merge_type)


MERGE_FUNCTIONS: dict[MergeType, Callable[[MergeStep, list[TabularResult]], TabularResult]] = {
    MergeType.UNION: _union,
    MergeType.UNION_ALL: _union_all,
    MergeType.INNER_JOIN: _join,
    MergeType.LEFT_JOIN: _join,
    MergeType.RIGHT_JOIN: _join,
    MergeType.FULL_JOIN: _join,
}


def check_merge_step(step: MergeStep) -> None:
    """
    Shape checks that need no data.

    Raises:
        InvalidConfigurationError: Too few sources, missing join keys, or a
            join over more than two tables
    """
    if len(step.source_tables) < 2:
        raise InvalidConfigurationError("Merge operation requires at least 2 source tables")
    if step.merge_type.is_join:
        if not step.join_keys:
            raise InvalidConfigurationError("Join operations require join keys")
        if len(step.source_tables) != 2:
            raise InvalidConfigurationError("Join operations require exactly 2 source tables")


def merge_tables(step: MergeStep, store: VariableTableStore) -> TabularResult:
    """
    Run a merge step against the execution's table store.

    Shape checks run before any table is resolved.

    Raises:
        InvalidConfigurationError: Bad shape, or a source table no earlier
            step produced
    """
    check_merge_step(step)
    tables = store.resolve(step.source_tables)
    return MERGE_FUNCTIONS[step.merge_type](step, tables)
