# src/async_paging/base/condition.py
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple, Union

from .exceptions import UnsupportedMatchTypeError

# Property names are spliced into query text, so only dotted identifiers pass.
_PROPERTY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def is_blank(value: Any) -> bool:
    """True for None and for strings that are empty or whitespace only."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def check_property(name: str) -> None:
    """Raises ValueError unless `name` is a dotted identifier."""
    if not _PROPERTY_PATTERN.match(name):
        raise ValueError(f"Invalid property name: {name!r}")


# --- Match Type Enum ---
class MatchType(Enum):
    """Closed set of comparison operators a Condition can select."""

    # Comparison
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LTE = "le"
    GT = "gt"
    GTE = "ge"
    # Null checks
    ISNULL = "isnull"
    NOTNULL = "notnull"
    # String matching
    CONTAINS = "contains"
    STARTSWITH = "startswith"
    ENDSWITH = "endswith"
    # Membership
    IN = "in"
    NOTIN = "notin"
    # Range
    BETWEEN = "between"

    @classmethod
    def parse(cls, tag: Union["MatchType", str]) -> "MatchType":
        """Resolves a member from itself, its name or its value (case-insensitive)."""
        if isinstance(tag, MatchType):
            return tag
        if isinstance(tag, str):
            key = tag.strip()
            for member in cls:
                if key.upper() == member.name or key.lower() == member.value:
                    return member
        raise UnsupportedMatchTypeError(f"Unsupported match type: {tag!r}")

    @property
    def needs_value(self) -> bool:
        return self not in (MatchType.ISNULL, MatchType.NOTNULL)

    @property
    def is_membership(self) -> bool:
        return self in (MatchType.IN, MatchType.NOTIN)


# --- Condition ---
@dataclass(frozen=True)
class Condition:
    """
    One filter: a property (or an OR group of properties), a match type and
    its operand(s).

    A blank property name marks a placeholder that the predicate builder
    drops, so optional form fields can be passed through unconditionally.
    `match_type` may also be a raw tag string; unknown tags are dropped by the
    builder with a warning rather than rejected here.
    """

    property_name: Optional[str] = None
    match_type: Union[MatchType, str] = MatchType.EQ
    value: Any = None
    second_value: Any = None
    property_names: Tuple[str, ...] = ()

    def __post_init__(self):
        names = tuple(self.property_names or ())
        object.__setattr__(self, "property_names", names)
        if self.property_name and names:
            raise ValueError(
                "Condition accepts either property_name or property_names, not both."
            )
        for name in self.names:
            check_property(name)

    @property
    def names(self) -> Tuple[str, ...]:
        """The non-blank property names this condition applies to."""
        if self.property_names:
            return tuple(n for n in self.property_names if not is_blank(n))
        if is_blank(self.property_name):
            return ()
        return (self.property_name,)

    @property
    def is_multi(self) -> bool:
        return len(self.property_names) > 0

    # Convenience constructors
    @classmethod
    def eq(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.EQ, value)

    @classmethod
    def ne(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.NE, value)

    @classmethod
    def is_null(cls, prop: str) -> "Condition":
        return cls(prop, MatchType.ISNULL)

    @classmethod
    def not_null(cls, prop: str) -> "Condition":
        return cls(prop, MatchType.NOTNULL)

    @classmethod
    def contains(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.CONTAINS, value)

    @classmethod
    def starts_with(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.STARTSWITH, value)

    @classmethod
    def ends_with(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.ENDSWITH, value)

    @classmethod
    def lt(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.LT, value)

    @classmethod
    def lte(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.LTE, value)

    @classmethod
    def gt(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.GT, value)

    @classmethod
    def gte(cls, prop: str, value: Any) -> "Condition":
        return cls(prop, MatchType.GTE, value)

    @classmethod
    def in_(cls, prop: str, values: Any) -> "Condition":
        return cls(prop, MatchType.IN, values)

    @classmethod
    def not_in(cls, prop: str, values: Any) -> "Condition":
        return cls(prop, MatchType.NOTIN, values)

    @classmethod
    def between(cls, prop: str, low: Any, high: Any) -> "Condition":
        return cls(prop, MatchType.BETWEEN, low, high)

    @classmethod
    def any_of(
        cls,
        props: Sequence[str],
        match_type: Union[MatchType, str],
        value: Any = None,
        second_value: Any = None,
    ) -> "Condition":
        """Applies one operator/value pair to several properties, combined with OR."""
        return cls(
            match_type=match_type,
            value=value,
            second_value=second_value,
            property_names=tuple(props),
        )


# --- Sorting ---
@dataclass(frozen=True)
class Order:
    """A single sort key."""

    property: str
    ascending: bool = True

    def __post_init__(self):
        check_property(self.property)

    def __str__(self) -> str:
        return f"{self.property} {'asc' if self.ascending else 'desc'}"


@dataclass(frozen=True)
class Sort:
    """Ordered sequence of sort keys. Duplicates are kept as given."""

    orders: Tuple[Order, ...] = field(default_factory=tuple)

    @classmethod
    def by(cls, *items: Union[str, Order, Tuple[str, bool]]) -> "Sort":
        orders = []
        for item in items:
            if isinstance(item, Order):
                orders.append(item)
            elif isinstance(item, str):
                orders.append(Order(item))
            elif isinstance(item, tuple) and len(item) == 2:
                orders.append(Order(item[0], bool(item[1])))
            else:
                raise TypeError(f"Cannot build a sort key from {item!r}")
        return cls(tuple(orders))

    @classmethod
    def asc(cls, *props: str) -> "Sort":
        return cls(tuple(Order(p, True) for p in props))

    @classmethod
    def desc(cls, *props: str) -> "Sort":
        return cls(tuple(Order(p, False) for p in props))

    def and_(self, other: Union["Sort", Iterable[Order]]) -> "Sort":
        return Sort(self.orders + tuple(other))

    def __iter__(self) -> Iterator[Order]:
        return iter(self.orders)

    def __len__(self) -> int:
        return len(self.orders)

    def __bool__(self) -> bool:
        return bool(self.orders)

    def __str__(self) -> str:
        return ", ".join(str(o) for o in self.orders)
