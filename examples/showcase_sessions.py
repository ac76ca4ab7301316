#!/usr/bin/env python3
"""Session store showcase; runs standalone without external services.

Demonstrates:
  - Importing sessions from an export file into MemorySessionStore
  - Light and full session reads with tree reconstruction
  - Listing, free-text search and filters
  - Exporting sessions back to a JSON file
  - Duplicate detection on re-import

Usage:
  python examples/showcase_sessions.py
"""

import asyncio
from pathlib import Path
from tempfile import TemporaryDirectory

from pydantic import TypeAdapter

from trace_sessions import (
    ExecutionStatus,
    FilterCondition,
    FilterFeature,
    FilterRequest,
    ImportConflictError,
    ImportFile,
    Session,
    SessionElement,
    SessionSearchRequest,
    SessionService,
)
from trace_sessions.store.memory import MemorySessionStore

# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def build_session(index: int) -> Session:
    """A three-step session: an HTTP trigger calling a service, then a script."""
    session_id = f"session-{index:02d}"
    started = f"2024-05-01T12:00:{index:02d}"
    status = ExecutionStatus.COMPLETED_WITH_ERRORS if index % 3 == 0 else ExecutionStatus.COMPLETED_NORMALLY

    def element(name: str, suffix: str, offset_ms: int, parent: str | None = None, **fields) -> SessionElement:
        return SessionElement(
            element_id=f"{session_id}-{suffix}",
            session_id=session_id,
            parent_element=parent,
            element_name=name,
            started=f"{started}.{offset_ms:03d}",
            duration=10,
            execution_status=ExecutionStatus.COMPLETED_NORMALLY,
            **fields,
        )

    trigger = element("HTTP Trigger", "trigger", 0, body_before=f'{{"orderId": {1000 + index}}}')
    trigger.children = [
        element("Service Call", "call", 5, parent=trigger.element_id, headers_after={"X-Status": "200"}),
        element("Script", "script", 20, parent=trigger.element_id, body_after="order accepted"),
    ]
    return Session(
        id=session_id,
        chain_id="orders",
        chain_name="Order intake",
        started=started,
        finished=started,
        duration=30,
        execution_status=status,
        engine_address="10.0.0.7",
        session_elements=[trigger],
    )


def print_tree(elements: list[SessionElement], depth: int = 0) -> None:
    for element in elements:
        print(f"{'  ' * depth}- {element.element_name} [{element.element_id}] body_before={element.body_before!r}")
        print_tree(element.children or [], depth + 1)


# ---------------------------------------------------------------------------
# Demos
# ---------------------------------------------------------------------------


async def demo_import(service: SessionService) -> None:
    print("\n=== Import ===\n")
    content = TypeAdapter(list[Session]).dump_json([build_session(i) for i in range(12)], by_alias=True)
    imported = await service.import_sessions([ImportFile(name="orders.json", content=content)])
    print(f"Imported {len(imported)} sessions; imported flag={imported[0].imported_session}, chain id={imported[0].chain_id}")


async def demo_reads(service: SessionService) -> None:
    print("\n=== Light vs. full reads ===\n")
    light = await service.find_by_id("session-03")
    print("Light tree (payloads omitted):")
    print_tree(light.session_elements or [])

    full = await service.find_by_id("session-03", light=False)
    print("\nFull tree:")
    print_tree(full.session_elements or [])

    element = await service.get_element("session-03-call")
    print(f"\nSingle element headers_after={element.headers_after}")


async def demo_search(service: SessionService) -> None:
    print("\n=== Listing ===\n")
    page = await service.search(offset=0, limit=5, sort_column="sessionStarted")
    print(f"Newest 5: {[s.id for s in page.sessions]} (running total {page.offset})")

    failed = await service.search(
        limit=50,
        request=SessionSearchRequest(
            filter_request_list=[FilterRequest(feature=FilterFeature.STATUS, condition=FilterCondition.IN, value="COMPLETED_WITH_ERRORS")],
        ),
    )
    print(f"Failed sessions: {[s.id for s in failed.sessions]}")

    found = await service.search(limit=50, request=SessionSearchRequest(search_string="1007"))
    print(f"Payload search for '1007': {[s.id for s in found.sessions]}")


async def demo_export(service: SessionService, output_dir: Path) -> None:
    print("\n=== Export and re-import ===\n")
    exported = await service.export_sessions(["session-00", "session-01"])
    path = output_dir / exported.filename
    path.write_text(exported.content, encoding="utf-8")
    print(f"Exported to {path.name} ({len(exported.content):,} bytes)")

    try:
        await service.import_sessions([ImportFile(name=path.name, content=path.read_bytes())])
    except ImportConflictError as e:
        print(f"Re-import rejected: {e.conflicts}")


async def main() -> None:
    store = MemorySessionStore()
    service = SessionService(store)

    await demo_import(service)
    await demo_reads(service)
    await demo_search(service)
    with TemporaryDirectory() as tmpdir:
        await demo_export(service, Path(tmpdir))

    store.close()
    print("\nAll demos completed successfully.")


if __name__ == "__main__":
    asyncio.run(main())
