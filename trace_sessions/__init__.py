"""Trace Sessions - retrieval, search, export and import of chain execution traces.

Every executed chain produces a session: a tree of elements (steps) with their
inputs, outputs and timings. Elements are stored flat in an OpenSearch index,
one document per element with the session fields copied onto each. This package
turns those documents back into session trees, builds listing and filter
queries, and moves sessions in and out of the index as JSON files.

Quick Start:
    >>> from trace_sessions import SessionService, create_session_store, settings
    >>>
    >>> store = create_session_store(settings)
    >>> service = SessionService(store)
    >>> session = await service.find_by_id("3f2c...")
    >>> for root in session.session_elements:
    ...     print(root.element_name, len(root.children))

Environment Variables:
    - OPENSEARCH_HOST: OpenSearch host; empty selects the in-memory store
    - OPENSEARCH_INDEX_PREFIX: Prefix joined to the elements index name
    - CATALOG_URL: Catalog service used to refresh chain names in listings
"""

from .catalog import CatalogClient
from .exceptions import (
    CatalogError,
    ImportConflictError,
    ImportFailureError,
    InvalidQueryError,
    SearchFailureError,
    SessionNotFoundError,
    SessionsError,
)
from .logging import LoggingConfig, get_session_logger, setup_logging
from .sessions import (
    ExecutionStatus,
    FilterCondition,
    FilterFeature,
    FilterRequest,
    ImportFile,
    Session,
    SessionElement,
    SessionExport,
    SessionSearchRequest,
    SessionSearchResponse,
    SessionService,
)
from .settings import Settings, settings
from .store import SessionStore, create_session_store

__version__ = "0.1.0"

__all__ = [
    "CatalogClient",
    "CatalogError",
    "ExecutionStatus",
    "FilterCondition",
    "FilterFeature",
    "FilterRequest",
    "ImportConflictError",
    "ImportFailureError",
    "ImportFile",
    "InvalidQueryError",
    "LoggingConfig",
    "SearchFailureError",
    "Session",
    "SessionElement",
    "SessionExport",
    "SessionNotFoundError",
    "SessionSearchRequest",
    "SessionSearchResponse",
    "SessionService",
    "SessionStore",
    "SessionsError",
    "Settings",
    "create_session_store",
    "get_session_logger",
    "settings",
    "setup_logging",
]
