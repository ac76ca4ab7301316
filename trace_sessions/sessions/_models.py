"""Pydantic models for session documents, reconstructed sessions and search requests.

Wire names (store documents, export files) are camelCase; attributes are snake_case.
Both spellings are accepted on input.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _scalar_as_str(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    return value


def _none_as_zero(value: Any) -> Any:
    return 0 if value is None else value


SnapshotValue = Annotated[str | None, BeforeValidator(_scalar_as_str)]
"""Header or context value; JSON numbers and booleans are read as their text, null is kept."""

Duration = Annotated[int, BeforeValidator(_none_as_zero)]
"""Duration in milliseconds; null reads as 0."""


class ExecutionStatus(StrEnum):
    """Execution status of a session or a single element."""

    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED_NORMALLY = "COMPLETED_NORMALLY"
    COMPLETED_WITH_WARNINGS = "COMPLETED_WITH_WARNINGS"
    COMPLETED_WITH_ERRORS = "COMPLETED_WITH_ERRORS"
    CANCELLED_OR_UNKNOWN = "CANCELLED_OR_UNKNOWN"


class FilterFeature(StrEnum):
    """Session attribute a search filter applies to."""

    ENGINE = "ENGINE"
    STATUS = "STATUS"
    CHAIN_NAME = "CHAIN_NAME"
    START_TIME = "START_TIME"
    FINISH_TIME = "FINISH_TIME"


class FilterCondition(StrEnum):
    """Predicate applied by a search filter."""

    IN = "IN"
    NOT_IN = "NOT_IN"
    CONTAINS = "CONTAINS"
    DOES_NOT_CONTAIN = "DOES_NOT_CONTAIN"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    IS_AFTER = "IS_AFTER"
    IS_BEFORE = "IS_BEFORE"
    IS_WITHIN = "IS_WITHIN"


class ExceptionInfo(BaseModel):
    """Exception captured while an element was executing."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    message: str | None = None
    stack_trace: str | None = None


class SessionElementProperty(BaseModel):
    """Typed exchange property value."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: SnapshotValue = None
    value: SnapshotValue = None


class ElementRecord(BaseModel):
    """Flat, store-resident element document.

    Session-level fields are denormalized onto every record of a session;
    ``parent_element_id`` and ``prev_element_id`` are lookup keys, not references.
    Header, property and context snapshots are stored as JSON text.
    """

    model_config = _CAMEL_CONFIG

    id: str | None = None
    session_id: str | None = None

    external_session_id: str | None = None
    session_started: str | None = None
    session_finished: str | None = None
    session_duration: Duration = 0
    session_execution_status: ExecutionStatus | None = None
    imported_session: bool = False
    chain_id: str | None = None
    chain_name: str | None = None
    domain: str | None = None
    engine_address: str | None = None
    logging_level: str | None = None
    snapshot_name: str | None = None
    correlation_id: str | None = None
    parent_session_id: str | None = None

    chain_element_id: str | None = None
    actual_element_chain_id: str | None = None
    element_name: str | None = None
    camel_element_name: str | None = None
    prev_element_id: str | None = None
    parent_element_id: str | None = None

    started: str | None = None
    finished: str | None = None
    duration: Duration = 0
    execution_status: ExecutionStatus | None = None

    body_before: str | None = None
    body_after: str | None = None
    headers_before: str | None = None
    headers_after: str | None = None
    properties_before: str | None = None
    properties_after: str | None = None
    context_before: str | None = None
    context_after: str | None = None

    exception_info: ExceptionInfo | None = None


class SessionElement(BaseModel):
    """One step of a reconstructed session tree."""

    model_config = _CAMEL_CONFIG

    element_id: str | None = None
    session_id: str | None = None
    chain_element_id: str | None = None
    actual_element_chain_id: str | None = None
    parent_element: str | None = None
    previous_element: str | None = None
    element_name: str | None = None
    camel_name: str | None = None

    started: str | None = None
    finished: str | None = None
    duration: Duration = 0
    execution_status: ExecutionStatus | None = None

    body_before: str | None = None
    body_after: str | None = None
    headers_before: dict[str, SnapshotValue] | None = None
    headers_after: dict[str, SnapshotValue] | None = None
    properties_before: dict[str, SessionElementProperty] | None = None
    properties_after: dict[str, SessionElementProperty] | None = None
    context_before: dict[str, SnapshotValue] | None = None
    context_after: dict[str, SnapshotValue] | None = None

    children: list["SessionElement"] | None = Field(default_factory=list)
    exception_info: ExceptionInfo | None = None


class Session(BaseModel):
    """A session aggregated from the element records sharing one session id."""

    model_config = _CAMEL_CONFIG

    id: str | None = None
    imported_session: bool = False
    external_session_cip_id: str | None = None
    chain_id: str | None = None
    chain_name: str | None = None
    domain: str | None = None
    engine_address: str | None = None
    logging_level: str | None = None
    snapshot_name: str | None = None
    correlation_id: str | None = None
    parent_session_id: str | None = None

    started: str | None = None
    finished: str | None = None
    duration: Duration = 0
    execution_status: ExecutionStatus | None = None

    session_elements: list[SessionElement] | None = None


class FilterRequest(BaseModel):
    """A single ``(feature, condition, value)`` search filter."""

    model_config = _CAMEL_CONFIG

    feature: FilterFeature
    condition: FilterCondition
    value: str


class SessionSearchRequest(BaseModel):
    """Free-text search string plus ordered filters for a session listing."""

    model_config = _CAMEL_CONFIG

    search_string: str = ""
    filter_request_list: list[FilterRequest] = Field(default_factory=list)


class SessionSearchResponse(BaseModel):
    """Preview page of a session listing.

    ``offset`` is the running total, i.e. the request offset plus the number of returned sessions.
    """

    model_config = _CAMEL_CONFIG

    offset: int
    sessions: list[Session] = Field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ImportFile:
    """Raw content of one import file."""

    name: str
    content: bytes


@dataclass(frozen=True, slots=True)
class SessionExport:
    """Serialized export: suggested file name and pretty-printed JSON array."""

    filename: str
    content: str
