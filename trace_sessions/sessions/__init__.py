"""Session trace retrieval, tree reconstruction, import and export."""

from ._bulk import BulkImportBatcher, BulkThresholds, find_conflicting_session_ids
from ._models import (
    ElementRecord,
    ExceptionInfo,
    ExecutionStatus,
    FilterCondition,
    FilterFeature,
    FilterRequest,
    ImportFile,
    Session,
    SessionElement,
    SessionElementProperty,
    SessionExport,
    SessionSearchRequest,
    SessionSearchResponse,
)
from ._tree import build_element_tree
from .service import SessionService

__all__ = [
    "BulkImportBatcher",
    "BulkThresholds",
    "ElementRecord",
    "ExceptionInfo",
    "ExecutionStatus",
    "FilterCondition",
    "FilterFeature",
    "FilterRequest",
    "ImportFile",
    "Session",
    "SessionElement",
    "SessionElementProperty",
    "SessionExport",
    "SessionSearchRequest",
    "SessionSearchResponse",
    "SessionService",
    "build_element_tree",
    "find_conflicting_session_ids",
]
