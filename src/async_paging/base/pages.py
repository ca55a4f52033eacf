# src/async_paging/base/pages.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from .condition import Condition, Sort

T = TypeVar("T")


class PageState(Enum):
    """Progress of a pagination call."""

    UNEXECUTED = "unexecuted"
    COUNTED = "counted"
    COUNT_SKIPPED = "count_skipped"
    FETCHED = "fetched"
    DONE = "done"


@dataclass
class Pages(Generic[T]):
    """
    A page request and, once paginated, its result.

    The caller fills in the window, sort and conditions; the pagination engine
    assigns `total_count`, `result` and `state`. `total_count` stays -1 when
    counting was skipped.
    """

    page_number: int = 1
    page_size: int = 20
    sort: Optional[Sort] = None
    conditions: List[Condition] = field(default_factory=list)
    auto_count: bool = True
    total_count: int = -1
    result: List[T] = field(default_factory=list)
    state: PageState = PageState.UNEXECUTED

    def __post_init__(self):
        self.conditions = list(self.conditions or [])

    # Window bounds are checked on every assignment, including __init__.
    def __setattr__(self, name, value):
        if name == "page_number" and (not isinstance(value, int) or value < 1):
            raise ValueError("page_number must be an integer >= 1.")
        if name == "page_size" and (not isinstance(value, int) or value < 0):
            raise ValueError("page_size must be a non-negative integer (0 = unbounded).")
        super().__setattr__(name, value)

    @property
    def offset(self) -> int:
        """Zero-based index of the first row on this page."""
        return (self.page_number - 1) * self.page_size

    @property
    def limit(self) -> Optional[int]:
        return self.page_size if self.page_size > 0 else None

    @property
    def total_pages(self) -> int:
        if self.total_count < 0:
            return -1
        if self.page_size == 0:
            return 1 if self.total_count > 0 else 0
        return -(-self.total_count // self.page_size)

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def next_page(self) -> int:
        return self.page_number + 1 if self.has_next else self.page_number

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    @property
    def previous_page(self) -> int:
        return self.page_number - 1 if self.has_previous else self.page_number

    def add_condition(self, condition: Condition) -> "Pages[T]":
        self.conditions.append(condition)
        return self
