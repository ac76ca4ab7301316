"""Session store protocol and backends."""

from .factory import create_session_store
from .protocol import BulkItemOutcome, BulkOperation, SessionStore

__all__ = [
    "BulkItemOutcome",
    "BulkOperation",
    "SessionStore",
    "create_session_store",
]
