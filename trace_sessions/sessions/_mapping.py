"""Conversions between flat element records and session trees.

Write direction: ``Session`` tree -> ``ElementRecord`` list, session fields copied
onto every record. Read direction: records -> ``SessionElement`` nodes -> forest,
plus session previews taken from a representative record.
"""

import json
from collections.abc import Sequence

from pydantic import TypeAdapter, ValidationError

from trace_sessions.logging import get_session_logger
from trace_sessions.sessions._models import ElementRecord, Session, SessionElement, SessionElementProperty, SnapshotValue
from trace_sessions.sessions._tree import build_element_tree

logger = get_session_logger(__name__)

_STRING_MAP = TypeAdapter(dict[str, SnapshotValue])
_PROPERTY_MAP = TypeAdapter(dict[str, SessionElementProperty])


# --- Read direction ---


def record_to_element(record: ElementRecord) -> SessionElement:
    """Map one stored record to a childless tree node, decoding the JSON snapshots."""
    return SessionElement(
        element_id=record.id,
        session_id=record.session_id,
        chain_element_id=record.chain_element_id,
        actual_element_chain_id=record.actual_element_chain_id,
        parent_element=record.parent_element_id,
        previous_element=record.prev_element_id,
        element_name=record.element_name,
        camel_name=record.camel_element_name,
        started=record.started,
        finished=record.finished,
        duration=record.duration,
        execution_status=record.execution_status,
        body_before=record.body_before,
        body_after=record.body_after,
        headers_before=_string_map_from_json(record.headers_before),
        headers_after=_string_map_from_json(record.headers_after),
        properties_before=_properties_from_json(record.properties_before),
        properties_after=_properties_from_json(record.properties_after),
        context_before=_string_map_from_json(record.context_before),
        context_after=_string_map_from_json(record.context_after),
        children=[],
        exception_info=record.exception_info,
    )


def records_to_elements(records: Sequence[ElementRecord]) -> list[SessionElement]:
    """Map records of one session to nodes and rebuild their forest."""
    return build_element_tree([record_to_element(record) for record in records])


def record_to_preview(record: ElementRecord) -> Session:
    """Session fields of a record, without elements."""
    return Session(
        id=record.session_id,
        imported_session=record.imported_session,
        external_session_cip_id=record.external_session_id,
        chain_id=record.chain_id,
        chain_name=record.chain_name,
        domain=record.domain,
        engine_address=record.engine_address,
        logging_level=record.logging_level,
        snapshot_name=record.snapshot_name,
        correlation_id=record.correlation_id,
        parent_session_id=record.parent_session_id,
        started=record.session_started,
        finished=record.session_finished,
        duration=record.session_duration,
        execution_status=record.session_execution_status,
    )


def records_to_session(records: Sequence[ElementRecord], *, include_elements: bool) -> Session | None:
    """Aggregate the records of one session. Session fields come from the first record.

    Returns None for an empty record list.
    """
    if not records:
        return None
    session = record_to_preview(records[0])
    if include_elements:
        session.session_elements = records_to_elements(records)
    return session


# --- Write direction ---


def session_to_records(session: Session) -> list[ElementRecord]:
    """Flatten a session tree into records in depth-first pre-order."""
    records: list[ElementRecord] = []
    stack = list(reversed(session.session_elements or []))
    while stack:
        element = stack.pop()
        records.append(element_to_record(element, session))
        stack.extend(reversed(element.children or []))
    return records


def sessions_to_records(sessions: Sequence[Session]) -> list[ElementRecord]:
    """Flatten several sessions, keeping session order."""
    records: list[ElementRecord] = []
    for session in sessions:
        records.extend(session_to_records(session))
    return records


def element_to_record(element: SessionElement, session: Session) -> ElementRecord:
    """Build the stored record of one element, denormalizing the session fields onto it."""
    return ElementRecord(
        id=element.element_id,
        session_id=session.id,
        external_session_id=session.external_session_cip_id,
        session_started=session.started,
        session_finished=session.finished,
        session_duration=session.duration,
        session_execution_status=session.execution_status,
        imported_session=session.imported_session,
        chain_id=session.chain_id,
        chain_name=session.chain_name,
        domain=session.domain,
        engine_address=session.engine_address,
        logging_level=session.logging_level,
        snapshot_name=session.snapshot_name,
        correlation_id=session.correlation_id,
        parent_session_id=session.parent_session_id,
        chain_element_id=element.chain_element_id,
        actual_element_chain_id=element.actual_element_chain_id,
        element_name=element.element_name,
        camel_element_name=element.camel_name,
        prev_element_id=element.previous_element,
        parent_element_id=element.parent_element,
        started=element.started,
        finished=element.finished,
        duration=element.duration,
        execution_status=element.execution_status,
        body_before=element.body_before,
        body_after=element.body_after,
        headers_before=_string_map_to_json(element.headers_before),
        headers_after=_string_map_to_json(element.headers_after),
        properties_before=_properties_to_json(element.properties_before),
        properties_after=_properties_to_json(element.properties_after),
        context_before=_string_map_to_json(element.context_before),
        context_after=_string_map_to_json(element.context_after),
        exception_info=element.exception_info,
    )


# --- JSON snapshot helpers ---


def _string_map_from_json(value: str | None) -> dict[str, str | None] | None:
    if value is None or not value.strip():
        return None
    try:
        return _STRING_MAP.validate_json(value)
    except ValidationError:
        logger.error(f"Error while deserializing json string: {value}")
        return None


def _properties_from_json(value: str | None) -> dict[str, SessionElementProperty]:
    if not value:
        return {}
    try:
        return _PROPERTY_MAP.validate_json(value)
    except ValidationError:
        logger.error(f"Error while deserializing json string: {value}")
        return {}


def _string_map_to_json(value: dict[str, str | None] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _properties_to_json(value: dict[str, SessionElementProperty] | None) -> str | None:
    if value is None:
        return None
    return _PROPERTY_MAP.dump_json(value, by_alias=True).decode("utf-8")
