# src/async_paging/base/materializer.py
import logging
from dataclasses import MISSING, dataclass, fields, is_dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Type, get_type_hints

from pydantic import BaseModel

from .interfaces import QueryExecutor, Row

# --- Setup Logging ---
log = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldMapping:
    """One assignable field of a record shape."""

    name: str
    default_factory: Callable[[], Any]


def _constant(value: Any) -> Callable[[], Any]:
    return lambda: value


def _pydantic_default(info: Any) -> Callable[[], Any]:
    if info.is_required():
        return _constant(None)
    if info.default_factory is not None:
        return info.default_factory
    return _constant(info.default)


def _dataclass_default(f: Any) -> Callable[[], Any]:
    if f.default is not MISSING:
        return _constant(f.default)
    if f.default_factory is not MISSING:
        return f.default_factory
    return _constant(None)


def _is_pydantic_model(shape: Type[Any]) -> bool:
    return isinstance(shape, type) and issubclass(shape, BaseModel)


class ResultMaterializer:
    """
    Maps raw rows into caller-facing records.

    - no shape: one dict per row, keyed by column alias
    - an entity type of the executor: the executor's native mapping
    - any other class: case-insensitive alias-to-field assignment through a
      field table that is built once per shape
    """

    def __init__(self):
        self._mappings: Dict[Type[Any], Dict[str, FieldMapping]] = {}

    def materialize(
        self,
        rows: Iterable[Row],
        shape: Optional[Type[Any]] = None,
        executor: Optional[QueryExecutor] = None,
    ) -> List[Any]:
        if shape is None or shape is dict:
            return [dict(row) for row in rows]
        if executor is not None and executor.is_entity(shape):
            return [executor.row_to_entity(row, shape) for row in rows]
        mapping = self.field_mapping(shape)
        return [self._assign(row, shape, mapping) for row in rows]

    def field_mapping(self, shape: Type[Any]) -> Dict[str, FieldMapping]:
        """Returns the lower-cased field table for `shape`, building it on first use."""
        cached = self._mappings.get(shape)
        if cached is not None:
            return cached

        entries: List[FieldMapping] = []
        if _is_pydantic_model(shape):
            for name, info in shape.model_fields.items():
                entries.append(FieldMapping(name, _pydantic_default(info)))
        elif is_dataclass(shape):
            for f in fields(shape):
                if not f.init:
                    continue
                entries.append(FieldMapping(f.name, _dataclass_default(f)))
        else:
            try:
                annotations = get_type_hints(shape)
            except (TypeError, NameError) as e:
                log.warning(
                    f"get_type_hints failed for {shape.__name__}: {e}. Falling back to __annotations__."
                )
                annotations = getattr(shape, "__annotations__", {})
            for name in annotations:
                if name.startswith("_"):
                    continue
                entries.append(FieldMapping(name, _constant(getattr(shape, name, None))))

        if not entries:
            raise TypeError(f"{shape.__name__} declares no fields to map rows onto")

        mapping = {entry.name.lower(): entry for entry in entries}
        self._mappings[shape] = mapping
        log.debug(f"Built field mapping for {shape.__name__}: {list(mapping)}")
        return mapping

    def _assign(self, row: Row, shape: Type[Any], mapping: Dict[str, FieldMapping]) -> Any:
        values = {entry.name: entry.default_factory() for entry in mapping.values()}
        for alias, value in row.items():
            entry = mapping.get(str(alias).lower())
            if entry is not None:
                values[entry.name] = value

        if _is_pydantic_model(shape):
            return shape.model_construct(**values)
        if is_dataclass(shape):
            return shape(**values)
        instance = shape()
        for name, value in values.items():
            setattr(instance, name, value)
        return instance

