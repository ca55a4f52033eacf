# src/async_paging/base/interfaces.py

import logging
from abc import ABC, abstractmethod
from typing import (Any, Dict, Iterable, List, Mapping, Optional, Sequence,
                    Tuple, Type, TypeVar, Union)

from async_paging.base.rewriter import ParamStyle

# Type variable for any entity
T = TypeVar("T")

# One result row: column alias -> value, in select-list order.
Row = Mapping[str, Any]
BoundArg = Optional[Union[Sequence[Any], Mapping[str, Any]]]

log = logging.getLogger(__name__)


class QueryExecutor(ABC):
    """
    Runs query text against a database on behalf of the pagination core.

    Executors use a connection or pool owned by the caller and never begin,
    commit or roll back transactions. Driver errors are logged and re-raised
    as ExecutionError.
    """

    def __init__(self, entity_types: Iterable[Type[Any]] = ()):
        """
        Args:
            entity_types: Classes this executor maps rows into natively. Other
                          record shapes go through alias-to-field assignment.
        """
        self._entity_types: Tuple[Type[Any], ...] = tuple(entity_types)

    @property
    @abstractmethod
    def param_style(self) -> ParamStyle:
        """The placeholder style this executor's driver expects."""
        pass

    @property
    def entity_types(self) -> Tuple[Type[Any], ...]:
        return self._entity_types

    @abstractmethod
    async def count(
        self, query: str, bound_values: BoundArg = None, timeout: Optional[float] = None
    ) -> int:
        """
        Execute a count query and return its single scalar.

        Args:
            query: Count query text.
            bound_values: Positional list or named mapping, matching `param_style`.
            timeout: Optional timeout, where the driver supports one.

        Returns:
            The count, with a NULL result coerced to 0.

        Raises:
            ExecutionError: If the driver fails.
        """
        pass

    @abstractmethod
    async def fetch(
        self,
        query: str,
        bound_values: BoundArg = None,
        offset: int = 0,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Execute a query and return its rows, windowed server-side.

        Args:
            query: Query text.
            bound_values: Positional list or named mapping, matching `param_style`.
            offset: Number of leading rows to skip.
            limit: Maximum rows to return; None for no limit.
            timeout: Optional timeout, where the driver supports one.

        Returns:
            Rows as dicts keyed by column alias, in select-list order.

        Raises:
            ExecutionError: If the driver fails.
        """
        pass

    # --- Entity Mapping ---

    def is_entity(self, shape: Optional[Type[Any]]) -> bool:
        """True if `shape` is one of the entity types this executor maps natively."""
        return shape is not None and shape in self._entity_types

    def row_to_entity(self, row: Row, shape: Type[T]) -> T:
        """
        Native row-to-entity mapping: columns are passed as keyword arguments.
        Backends override this to convert stored representations first.
        """
        try:
            return shape(**dict(row))
        except Exception as e:
            log.error(
                f"Failed to instantiate {shape.__name__} from row: {e}. Row: {dict(row)!r}",
                exc_info=True,
            )
            raise ValueError(f"Failed to create {shape.__name__} instance from row") from e

    # --- Helpers ---

    @staticmethod
    def _check_window(offset: int, limit: Optional[int]) -> None:
        if not isinstance(offset, int) or offset < 0:
            raise ValueError("Offset must be a non-negative integer.")
        if limit is not None and (not isinstance(limit, int) or limit < 0):
            raise ValueError("Limit must be a non-negative integer or None.")
