"""
VariableTableStore - execution-scoped named tables.

Each execution constructs its own store. Steps publish their result under
their save_as name; later steps in the same execution read it back by name.
The store is cleared when the execution finishes and is never shared between
executions.
"""

from typing import Iterator

from sqlstudio.errors import InvalidConfigurationError
from sqlstudio.schemas import TabularResult


class VariableTableStore:
    """Mapping of save_as name -> TabularResult for one execution."""

    def __init__(self) -> None:
        self._tables: dict[str, TabularResult] = {}

    def put(self, name: str, table: TabularResult) -> None:
        """
        Publish a table.

        Raises:
            InvalidConfigurationError: If the name was already published in
                this execution
        """
        if name in self._tables:
            raise InvalidConfigurationError(
                f"Table '{name}' already exists in this execution"
            )
        self._tables[name] = table

    def get(self, name: str) -> TabularResult:
        """
        Resolve a table produced by an earlier step.

        Raises:
            InvalidConfigurationError: If no earlier step produced the name
        """
        try:
            return self._tables[name]
        except KeyError:
            raise InvalidConfigurationError(
                f"Referenced table '{name}' not found"
            ) from None

    def resolve(self, names) -> list[TabularResult]:
        return [self.get(name) for name in names]

    def names(self) -> list[str]:
        return list(self._tables)

    def clear(self) -> None:
        self._tables.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[str]:
        return iter(self._tables)
