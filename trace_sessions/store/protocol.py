"""Session store protocol.

Defines the SessionStore protocol that all storage backends must implement.
Stores are created once at startup and passed explicitly to the services that
use them.
"""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class BulkOperation:
    """Index instruction for one element document.

    ``source`` is the already serialized JSON document, so its byte size is known
    before the bulk call is assembled.
    """

    doc_id: str | None
    source: str


@dataclass(frozen=True, slots=True)
class BulkItemOutcome:
    """Per-item result of a bulk call. ``error`` is None on success."""

    doc_id: str | None
    error: str | None = None


@runtime_checkable
class SessionStore(Protocol):
    """Protocol for element index backends.

    Implementations: OpenSearchSessionStore (production), MemorySessionStore (testing, CLI demo).
    """

    async def search(self, body: dict[str, Any]) -> dict[str, Any]:
        """Run a search request body against the elements index and return the raw response."""
        ...

    async def bulk(self, operations: list[BulkOperation]) -> list[BulkItemOutcome]:
        """Index documents in one round trip. Returns one outcome per operation, in order."""
        ...

    async def delete_by_query(self, query: dict[str, Any], *, refresh: bool = False) -> None:
        """Delete every element document matching ``query``."""
        ...

    def close(self) -> None:
        """Release client resources."""
        ...
