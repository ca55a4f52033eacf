class QueryError(Exception):
    """Base class for errors raised while planning or running a paged query."""

    def __init__(self, message: str = "The query could not be processed."):
        super().__init__(message)


class MalformedQueryError(QueryError):
    """Exception raised when a query string has no locatable `from` token."""

    def __init__(self, message: str = "The query is missing a 'from' clause."):
        super().__init__(message)


class UnsupportedCountQueryError(QueryError):
    """Exception raised when a count form cannot be derived from a grouped query."""

    def __init__(
        self,
        message: str = "Grouped queries cannot be auto-counted; supply an explicit count.",
    ):
        super().__init__(message)


class DuplicateOrderByError(QueryError):
    """Exception raised when a query already orders its rows and a Sort is also given."""

    def __init__(self, message: str = "The query already contains an 'order by'."):
        super().__init__(message)


class UnsupportedMatchTypeError(QueryError):
    """Raised for an unknown match type. The predicate builder logs it and drops the condition."""

    def __init__(self, message: str = "Unsupported match type."):
        super().__init__(message)


class ExecutionError(QueryError):
    """Wraps a database driver error raised while an executor ran a query."""

    def __init__(self, message: str = "The database failed to execute the query."):
        super().__init__(message)
