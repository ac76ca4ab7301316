"""Exception hierarchy for trace-sessions.

All exceptions inherit from SessionsError, so callers can handle every
failure of the package with a single except clause and still tell the
outcomes apart by type.
"""


class SessionsError(Exception):
    """Base exception for all trace-sessions errors."""


class SessionNotFoundError(SessionsError):
    """Raised when a session, external session or element id has no matching documents."""


class InvalidQueryError(SessionsError):
    """Raised when search parameters are rejected before reaching the store."""


class SearchFailureError(SessionsError):
    """Raised when the store fails during a search, delete or bulk round trip."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


class ImportFailureError(SessionsError):
    """Raised when an import file is malformed or its elements cannot be written."""


class ImportConflictError(ImportFailureError):
    """Raised when imported session ids collide with stored or already imported sessions.

    ``conflicts`` maps each offending file name to the duplicated session ids found in it.
    """

    def __init__(self, message: str, conflicts: dict[str, list[str]]) -> None:
        super().__init__(message)
        self.conflicts = conflicts


class CatalogError(SessionsError):
    """Raised when the catalog service cannot resolve chain names."""
