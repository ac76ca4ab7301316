"""Builders for session test data."""

from typing import Any

from trace_sessions.sessions import ElementRecord, ExecutionStatus, Session, SessionElement
from trace_sessions.store import BulkOperation, SessionStore


def make_element(element_id: str, *, parent: str | None = None, started: str | None = None, session_id: str = "s1", **fields: Any) -> SessionElement:
    """Childless element; ``children`` may be passed explicitly to build a tree."""
    return SessionElement(
        element_id=element_id,
        session_id=session_id,
        parent_element=parent,
        started=started,
        element_name=fields.pop("element_name", f"step {element_id}"),
        **fields,
    )


def make_session(
    session_id: str,
    *,
    chain_id: str | None = "chain-1",
    started: str = "2024-01-01T00:00:00",
    elements: list[SessionElement] | None = None,
    **fields: Any,
) -> Session:
    return Session(
        id=session_id,
        chain_id=chain_id,
        chain_name=fields.pop("chain_name", f"Chain {chain_id}"),
        started=started,
        finished=fields.pop("finished", started),
        duration=fields.pop("duration", 100),
        execution_status=fields.pop("execution_status", ExecutionStatus.COMPLETED_NORMALLY),
        engine_address=fields.pop("engine_address", "10.0.0.1"),
        session_elements=elements,
        **fields,
    )


def make_record(element_id: str, session_id: str = "s1", **fields: Any) -> ElementRecord:
    return ElementRecord(
        id=element_id,
        session_id=session_id,
        chain_id=fields.pop("chain_id", "chain-1"),
        session_started=fields.pop("session_started", "2024-01-01T00:00:00"),
        session_duration=fields.pop("session_duration", 100),
        element_name=fields.pop("element_name", f"step {element_id}"),
        **fields,
    )


async def seed(store: SessionStore, records: list[ElementRecord]) -> None:
    """Write records straight to the store, bypassing import validation."""
    await store.bulk([BulkOperation(doc_id=record.id, source=record.model_dump_json(by_alias=True)) for record in records])
