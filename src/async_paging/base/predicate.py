# src/async_paging/base/predicate.py
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple, Union

from .condition import Condition, MatchType, is_blank
from .exceptions import UnsupportedMatchTypeError

# --- Setup Logging ---
log = logging.getLogger(__name__)


# --- Structured Clause Classes ---
@dataclass(frozen=True)
class Clause(ABC):
    """Base class for backend-neutral predicate fragments."""

    @property
    @abstractmethod
    def bound_values(self) -> List[Any]:
        """Parameter values in the order their placeholders appear."""
        pass


@dataclass(frozen=True)
class Predicate(Clause):
    """One comparison (property <match_type> operands)."""

    property: str
    match_type: MatchType
    operands: Tuple[Any, ...] = ()

    @property
    def bound_values(self) -> List[Any]:
        mt = self.match_type
        if mt in (MatchType.ISNULL, MatchType.NOTNULL):
            return []
        if mt == MatchType.CONTAINS:
            return [f"%{self.operands[0]}%"]
        if mt == MatchType.STARTSWITH:
            return [f"{self.operands[0]}%"]
        if mt == MatchType.ENDSWITH:
            return [f"%{self.operands[0]}"]
        return list(self.operands)


@dataclass(frozen=True)
class Disjunction(Clause):
    """OR-combination of predicates derived from a multi-property condition."""

    clauses: Tuple[Predicate, ...]

    @property
    def bound_values(self) -> List[Any]:
        values: List[Any] = []
        for clause in self.clauses:
            values.extend(clause.bound_values)
        return values


# Top-level clauses are combined with AND; order only matters for binding.
ClauseList = List[Clause]


def _as_members(value: Any) -> Tuple[Any, ...]:
    """IN/NOTIN operands: collections pass through whole, scalars become one member."""
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


# --- Predicate Builder ---
class PredicateBuilder:
    """
    Turns a flat list of Conditions into a ClauseList.

    Blank-value policy per match type:
      - ISNULL/NOTNULL take no value and are always kept.
      - IN/NOTIN keep the value collection as given, without filtering members.
      - BETWEEN is dropped when either bound is None.
      - every other match type is dropped when its value is blank.
    Conditions with no usable property name are dropped silently, and unknown
    match types are dropped with a warning.
    """

    def build(self, conditions: Optional[Iterable[Condition]]) -> ClauseList:
        clauses: ClauseList = []
        if not conditions:
            return clauses

        for condition in conditions:
            names = condition.names
            if not names:
                log.debug(f"Dropping condition without property name: {condition!r}")
                continue
            try:
                match_type = MatchType.parse(condition.match_type)
            except UnsupportedMatchTypeError as e:
                log.warning(f"{e}. Dropping condition {condition!r}.")
                continue

            predicates = [
                p
                for p in (
                    self._predicate(
                        name, match_type, condition.value, condition.second_value
                    )
                    for name in names
                )
                if p is not None
            ]
            if not predicates:
                log.debug(f"Dropping condition with blank value: {condition!r}")
                continue

            if condition.is_multi:
                clauses.append(Disjunction(tuple(predicates)))
            else:
                clauses.append(predicates[0])

        log.debug(f"Built {len(clauses)} clause(s): {clauses!r}")
        return clauses

    def build_one(
        self, prop: str, match_type: Union[MatchType, str], *values: Any
    ) -> Optional[Predicate]:
        """
        Builds a single predicate from positional operands. For IN/NOTIN the
        operands themselves are the members unless a single collection is given.
        Returns None when the predicate is dropped (blank operand or unknown
        match type).
        """
        if is_blank(prop):
            raise ValueError("A property name is required.")
        try:
            mt = MatchType.parse(match_type)
        except UnsupportedMatchTypeError as e:
            log.warning(f"{e}. Dropping predicate on {prop!r}.")
            return None
        if mt.is_membership and len(values) != 1:
            value: Any = list(values)
        else:
            value = values[0] if values else None
        second = values[1] if mt == MatchType.BETWEEN and len(values) > 1 else None
        clauses = self.build([Condition(prop, mt, value, second)])
        return clauses[0] if clauses else None

    def _predicate(
        self, name: str, match_type: MatchType, value: Any, second_value: Any
    ) -> Optional[Predicate]:
        if match_type in (MatchType.ISNULL, MatchType.NOTNULL):
            return Predicate(name, match_type)
        if match_type.is_membership:
            return Predicate(name, match_type, _as_members(value))
        if match_type == MatchType.BETWEEN:
            if value is None or second_value is None:
                return None
            return Predicate(name, match_type, (value, second_value))
        if is_blank(value):
            return None
        return Predicate(name, match_type, (value,))
