# src/async_paging/base/rewriter.py
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .condition import MatchType, Sort, is_blank
from .exceptions import (
    DuplicateOrderByError,
    MalformedQueryError,
    UnsupportedCountQueryError,
)
from .predicate import Clause, ClauseList, Disjunction, Predicate
from .utils import strip_terminator

# --- Setup Logging ---
log = logging.getLogger(__name__)

BoundValues = Union[List[Any], Dict[str, Any]]


# --- Binding Styles ---
class ParamStyle(Enum):
    """DB-API placeholder styles the rewriter can render."""

    QMARK = "qmark"  # ?
    NUMERIC = "numeric"  # $1
    FORMAT = "format"  # %s
    NAMED = "named"  # :name
    PYFORMAT = "pyformat"  # %(name)s

    @property
    def is_named(self) -> bool:
        return self in (ParamStyle.NAMED, ParamStyle.PYFORMAT)


class CountMode(Enum):
    """How the count form of a query is produced."""

    DERIVE = "derive"  # select count(*) from ... (no group by)
    WRAP = "wrap"  # select count(1) as count from (<query>) orgi


@dataclass(frozen=True)
class QueryPlan:
    """The texts and parameters for one pagination call."""

    filter_clause: str
    fetch_query_text: str
    count_query_text: Optional[str]
    bound_values: BoundValues


_COMPARISON_OPS = {
    MatchType.EQ: "=",
    MatchType.NE: "<>",
    MatchType.LT: "<",
    MatchType.LTE: "<=",
    MatchType.GT: ">",
    MatchType.GTE: ">=",
}
_LIKE_OPS = (MatchType.CONTAINS, MatchType.STARTSWITH, MatchType.ENDSWITH)
_NUMERIC_PLACEHOLDER = re.compile(r"\$(\d+)")


class _Binder:
    """Hands out placeholders and accumulates the values they bind."""

    def __init__(
        self,
        style: ParamStyle,
        bound_values: Optional[Union[Sequence[Any], Mapping[str, Any]]],
        query: str,
    ):
        self.style = style
        self.values: BoundValues
        if style.is_named:
            if bound_values is not None and not isinstance(bound_values, Mapping):
                raise TypeError(
                    f"Parameter style '{style.value}' binds by name; got {type(bound_values).__name__}"
                )
            self.values = dict(bound_values or {})
        else:
            if isinstance(bound_values, Mapping):
                raise TypeError(
                    f"Parameter style '{style.value}' binds by position; got a mapping"
                )
            self.values = list(bound_values or [])
        self._counter = 0
        self._next_index = len(self.values) + 1
        if style == ParamStyle.NUMERIC:
            used = [int(n) for n in _NUMERIC_PLACEHOLDER.findall(query)]
            self._next_index = max(used + [len(self.values)]) + 1

    def bind(self, value: Any) -> str:
        if self.style.is_named:
            name = f"_p{self._counter}"
            while name in self.values:
                self._counter += 1
                name = f"_p{self._counter}"
            self._counter += 1
            self.values[name] = value
            return f":{name}" if self.style == ParamStyle.NAMED else f"%({name})s"

        self.values.append(value)
        if self.style == ParamStyle.NUMERIC:
            placeholder = f"${self._next_index}"
            self._next_index += 1
            return placeholder
        return "?" if self.style == ParamStyle.QMARK else "%s"


# --- Rewriter Interface ---
class QueryRewriter(ABC):
    """
    Splices generated filtering and ordering into an opaque query string and
    derives its count form. Rendering and planning are shared; locating the
    query's clauses is left to implementations.
    """

    @abstractmethod
    def splice(self, query: str, fragment: str) -> str:
        query = strip_terminator(query)
        """Places a rendered filter fragment at the query's filtering position."""
        pass

    @abstractmethod
    def append_order_by(self, query: str, sort: Optional[Sort]) -> str:
        """Appends an order by built from `sort`, refusing to merge with an existing one."""
        pass

    @abstractmethod
    def derive_count(self, query: str) -> str:
        query = strip_terminator(query)
        """Returns the `select count(*)` form of a query."""
        pass

    @abstractmethod
    def wrap_count(self, query: str) -> str:
        query = strip_terminator(query)
        """Returns a count over the query used as a derived table."""
        pass

    def render(
        self,
        clauses: ClauseList,
        style: ParamStyle = ParamStyle.QMARK,
        bound_values: Optional[Union[Sequence[Any], Mapping[str, Any]]] = None,
        query: str = "",
    ) -> Tuple[str, BoundValues]:
        """
        Renders clauses into a filter fragment for `style`.

        Args:
            clauses: Output of PredicateBuilder.build.
            style: Placeholder style of the target executor.
            bound_values: Values already bound by the caller's query. They are
                copied, never mutated, and the generated values follow them.
            query: The caller's query, consulted for `$n` numbering.

        Returns:
            The fragment (empty when there are no clauses) and the full
            bound values.
        """
        binder = _Binder(style, bound_values, query)
        fragment = " and ".join(self._render_clause(c, binder) for c in clauses)
        return fragment, binder.values

    def _render_clause(self, clause: Clause, binder: _Binder) -> str:
        if isinstance(clause, Disjunction):
            return "(" + " or ".join(
                self._render_clause(c, binder) for c in clause.clauses
            ) + ")"
        if not isinstance(clause, Predicate):
            raise TypeError(f"Unsupported clause type: {type(clause).__name__}")

        col = clause.property
        mt = clause.match_type
        if mt == MatchType.ISNULL:
            return f"{col} is null"
        if mt == MatchType.NOTNULL:
            return f"{col} is not null"
        if mt.is_membership:
            if not clause.operands:
                return "1=0" if mt == MatchType.IN else "1=1"
            placeholders = ", ".join(binder.bind(v) for v in clause.operands)
            keyword = "in" if mt == MatchType.IN else "not in"
            return f"{col} {keyword} ({placeholders})"
        if mt == MatchType.BETWEEN:
            low, high = clause.operands
            return f"{col} between {binder.bind(low)} and {binder.bind(high)}"
        if mt in _LIKE_OPS:
            return f"{col} like {binder.bind(clause.bound_values[0])}"
        return f"{col} {_COMPARISON_OPS[mt]} {binder.bind(clause.operands[0])}"

    def plan(
        self,
        query: str,
        clauses: ClauseList,
        sort: Optional[Sort] = None,
        bound_values: Optional[Union[Sequence[Any], Mapping[str, Any]]] = None,
        param_style: ParamStyle = ParamStyle.QMARK,
        auto_count: bool = True,
        count_mode: CountMode = CountMode.DERIVE,
    ) -> QueryPlan:
        """Builds the fetch text and, when `auto_count` is set, the count text."""
        if is_blank(query):
            raise ValueError("A query string is required.")
        query = strip_terminator(query)

        fragment, values = self.render(clauses, param_style, bound_values, query)
        filtered = self.splice(query, fragment)
        fetch_text = self.append_order_by(filtered, sort)

        count_text = None
        if auto_count:
            if count_mode == CountMode.WRAP:
                count_text = self.wrap_count(filtered)
            else:
                count_text = self.derive_count(filtered)

        plan = QueryPlan(
            filter_clause=fragment,
            fetch_query_text=fetch_text,
            count_query_text=count_text,
            bound_values=values,
        )
        log.debug(f"Planned query: {plan!r}")
        return plan


# --- Substring Heuristic ---
_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)
_WHERE = re.compile(r"\swhere\s", re.IGNORECASE)
_GROUP_BY = re.compile(r"\sgroup\s+by\s", re.IGNORECASE)
_ORDER_BY = re.compile(r"\sorder\s+by\s", re.IGNORECASE)
_ORDER_BY_TOKEN = re.compile(r"\border\s+by\b", re.IGNORECASE)


class TextQueryRewriter(QueryRewriter):
    """
    Treats the query as unstructured text so it stays dialect-agnostic.

    Known limitation: the words `from`, `where`, `group by` and `order by`
    inside string literals or subqueries can mislead the clause search.
    """

    def _locate_from(self, query: str) -> int:
        match = _FROM.search(query)
        if match is None:
            raise MalformedQueryError(f"Query is missing a 'from' clause: [{query}]")
        return match.start()

    def splice(self, query: str, fragment: str) -> str:
        if not fragment:
            return query
        start = self._locate_from(query)

        # Filtering goes before any group by / order by.
        cut = len(query)
        for pattern in (_GROUP_BY, _ORDER_BY):
            match = pattern.search(query, start)
            if match is not None:
                cut = min(cut, match.start())
        head, tail = query[:cut].rstrip(), query[cut:]

        where = _WHERE.search(head, start)
        if where is not None:
            existing = head[where.end():].strip()
            head = f"{head[:where.start()]} where ({existing}) and ({fragment})"
        else:
            head = f"{head} where {fragment}"
        return head + tail

    def append_order_by(self, query: str, sort: Optional[Sort]) -> str:
        if not sort:
            return query
        existing = _ORDER_BY_TOKEN.search(query)
        if existing is not None:
            raise DuplicateOrderByError(
                f"Duplicate order by, query already has the sort: "
                f"{query[existing.end():].strip()}"
            )
        return f"{query} order by {sort}"

    def derive_count(self, query: str) -> str:
        start = self._locate_from(query)
        if _GROUP_BY.search(query) is not None:
            raise UnsupportedCountQueryError(
                f"Grouped queries cannot be auto-counted, supply an explicit count: [{query}]"
            )
        order_by = _ORDER_BY.search(query, start)
        end = order_by.start() if order_by is not None else len(query)
        return "select count(*) " + query[start:end]

    def wrap_count(self, query: str) -> str:
        self._locate_from(query)
        return f"select count(1) as count from ({query}) orgi"
