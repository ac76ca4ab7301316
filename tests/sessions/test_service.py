"""Tests for SessionService over the in-memory store."""

import re
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import TypeAdapter

from trace_sessions.catalog import CatalogClient
from trace_sessions.exceptions import CatalogError, ImportConflictError, ImportFailureError, InvalidQueryError, SessionNotFoundError
from trace_sessions.sessions import (
    BulkThresholds,
    ExecutionStatus,
    FilterCondition,
    FilterFeature,
    FilterRequest,
    ImportFile,
    Session,
    SessionSearchRequest,
    SessionService,
)
from trace_sessions.sessions._mapping import sessions_to_records
from trace_sessions.store.memory import MemorySessionStore
from tests.support.helpers import make_element, make_session, seed

_SESSIONS = TypeAdapter(list[Session])


def _session_with_tree(session_id: str = "s1", **fields) -> Session:
    root = make_element(
        f"{session_id}-root",
        session_id=session_id,
        started="2024-01-01T00:00:00",
        body_before="request",
        headers_before={"Content-Type": "text/plain"},
        children=[
            make_element(f"{session_id}-b", parent=f"{session_id}-root", session_id=session_id, started="2024-01-01T00:00:02"),
            make_element(f"{session_id}-a", parent=f"{session_id}-root", session_id=session_id, started="2024-01-01T00:00:01"),
        ],
    )
    return make_session(session_id, elements=[root], **fields)


def _file(name: str, sessions: list[Session]) -> ImportFile:
    return ImportFile(name=name, content=_SESSIONS.dump_json(sessions, by_alias=True))


async def _seed_sessions(store: MemorySessionStore, *sessions: Session) -> None:
    await seed(store, sessions_to_records(list(sessions)))


class TestFindById:
    @pytest.mark.asyncio
    async def test_light_tree(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", external_session_cip_id="ext-1"))

        session = await service.find_by_id("s1")

        assert session.id == "s1"
        assert session.external_session_cip_id == "ext-1"
        root = session.session_elements[0]
        assert root.element_id == "s1-root"
        assert [child.element_id for child in root.children] == ["s1-a", "s1-b"]
        assert root.body_before is None
        assert root.headers_before is None

    @pytest.mark.asyncio
    async def test_full_read_includes_payload(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))

        root = (await service.find_by_id("s1", light=False)).session_elements[0]

        assert root.body_before == "request"
        assert root.headers_before == {"Content-Type": "text/plain"}

    @pytest.mark.asyncio
    async def test_without_elements(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))
        session = await service.find_by_id("s1", include_elements=False)
        assert session.session_elements is None

    @pytest.mark.asyncio
    async def test_not_found(self, service: SessionService):
        with pytest.raises(SessionNotFoundError, match="Can't find session missing"):
            await service.find_by_id("missing")

    @pytest.mark.asyncio
    async def test_reads_every_window(self, service: SessionService, store: MemorySessionStore):
        elements = [make_element(f"e{i:03d}", started=f"2024-01-01T00:{i // 60:02d}:{i % 60:02d}") for i in range(650)]
        await _seed_sessions(store, make_session("s1", elements=elements))

        session = await service.find_by_id("s1")

        assert len(session.session_elements) == 650
        assert session.session_elements[0].element_id == "e000"
        assert session.session_elements[-1].element_id == "e649"


class TestOtherLookups:
    @pytest.mark.asyncio
    async def test_session_exists(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))
        assert await service.session_exists("s1") is True
        assert await service.session_exists("s2") is False

    @pytest.mark.asyncio
    async def test_find_by_external_id(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", external_session_cip_id="ext-1"))

        preview = await service.find_by_external_id("ext-1")
        detailed = await service.find_by_external_id("ext-1", include_elements=True)

        assert preview.id == "s1"
        assert preview.session_elements is None
        assert detailed.session_elements[0].body_before == "request"

    @pytest.mark.asyncio
    async def test_find_by_external_id_not_found(self, service: SessionService):
        with pytest.raises(SessionNotFoundError):
            await service.find_by_external_id("nope")

    @pytest.mark.asyncio
    async def test_get_element_has_payload_and_no_children(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))

        element = await service.get_element("s1-root")

        assert element.body_before == "request"
        assert element.children == []

    @pytest.mark.asyncio
    async def test_get_element_not_found(self, service: SessionService):
        with pytest.raises(SessionNotFoundError, match="element"):
            await service.get_element("missing")


class TestSearch:
    @pytest.fixture
    async def twenty_five_sessions(self, store: MemorySessionStore) -> None:
        sessions = [
            make_session(
                f"s{i:02d}",
                started=f"2024-01-01T00:00:{i:02d}",
                chain_id="chain-1" if i % 2 == 0 else "chain-2",
                execution_status=ExecutionStatus.COMPLETED_WITH_ERRORS if i % 5 == 0 else ExecutionStatus.COMPLETED_NORMALLY,
                elements=[
                    make_element(f"s{i:02d}-a", session_id=f"s{i:02d}", started=f"2024-01-01T00:00:{i:02d}"),
                    make_element(f"s{i:02d}-b", session_id=f"s{i:02d}", started=f"2024-01-01T00:00:{i:02d}.5"),
                ],
            )
            for i in range(25)
        ]
        await _seed_sessions(store, *sessions)

    @pytest.mark.asyncio
    async def test_first_page_newest_first(self, service: SessionService, twenty_five_sessions):
        response = await service.search(offset=0, limit=20, sort_column="sessionStarted")

        assert response.offset == 20
        assert [s.id for s in response.sessions] == [f"s{i:02d}" for i in range(24, 4, -1)]
        assert all(s.session_elements is None for s in response.sessions)

    @pytest.mark.asyncio
    async def test_second_page(self, service: SessionService, twenty_five_sessions):
        response = await service.search(offset=20, limit=20)

        assert response.offset == 25
        assert [s.id for s in response.sessions] == ["s04", "s03", "s02", "s01", "s00"]

    @pytest.mark.asyncio
    async def test_unknown_sort_column(self, service: SessionService):
        with pytest.raises(InvalidQueryError, match="Valid columns are"):
            await service.search(sort_column="bogus")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("offset", "limit"), [(-1, 20), (0, 0), (0, -5)])
    async def test_out_of_range_paging_returns_empty_page(self, service: SessionService, store: MemorySessionStore, offset, limit):
        with patch.object(store, "search", wraps=store.search) as spy:
            response = await service.search(offset=offset, limit=limit)

        assert response.offset == 0
        assert response.sessions == []
        spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_chain_filter(self, service: SessionService, twenty_five_sessions):
        response = await service.search(chain_id="chain-2", limit=100)
        assert len(response.sessions) == 12
        assert {s.chain_id for s in response.sessions} == {"chain-2"}

    @pytest.mark.asyncio
    async def test_status_filter_and_search_string(self, service: SessionService, twenty_five_sessions):
        request = SessionSearchRequest(
            filter_request_list=[FilterRequest(feature=FilterFeature.STATUS, condition=FilterCondition.IN, value="COMPLETED_WITH_ERRORS")],
        )
        by_status = await service.search(limit=100, request=request)
        by_id = await service.search(limit=100, request=SessionSearchRequest(search_string="s07"))

        assert [s.id for s in by_status.sessions] == ["s20", "s15", "s10", "s05", "s00"]
        assert [s.id for s in by_id.sessions] == ["s07"]


class TestSearchWithChainNames:
    @pytest.mark.asyncio
    async def test_names_refreshed_from_catalog(self, store: MemorySessionStore, thresholds: BulkThresholds):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="c1", chain_name="Old"), _session_with_tree("s2", chain_id=None))
        catalog = AsyncMock(spec=CatalogClient)
        catalog.get_chain_names.return_value = {"c1": "New"}
        service = SessionService(store, thresholds=thresholds, catalog=catalog)

        response = await service.search_with_chain_names()

        catalog.get_chain_names.assert_awaited_once_with({"c1"})
        names = {s.id: s.chain_name for s in response.sessions}
        assert names["s1"] == "New"

    @pytest.mark.asyncio
    async def test_catalog_failure_keeps_stored_names(self, store: MemorySessionStore, thresholds: BulkThresholds):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="c1", chain_name="Old"))
        catalog = AsyncMock(spec=CatalogClient)
        catalog.get_chain_names.side_effect = CatalogError("catalog down")
        service = SessionService(store, thresholds=thresholds, catalog=catalog)

        with patch("trace_sessions.sessions.service.logger") as mock_logger:
            response = await service.search_with_chain_names()

        assert [s.chain_name for s in response.sessions] == ["Old"]
        mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_without_catalog(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="c1", chain_name="Old"))
        response = await service.search_with_chain_names()
        assert [s.chain_name for s in response.sessions] == ["Old"]


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_chain_id_removes_only_that_chain(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="c1"), _session_with_tree("s2", chain_id="c2"))

        await service.delete_by_chain_id("c1")

        assert await service.session_exists("s1") is False
        assert await service.session_exists("s2") is True
        assert len((await service.find_by_id("s2")).session_elements[0].children) == 2

    @pytest.mark.asyncio
    async def test_delete_by_id(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"), _session_with_tree("s2"))

        await service.delete_by_id("s1")

        assert await service.session_exists("s1") is False
        assert await service.session_exists("s2") is True

    @pytest.mark.asyncio
    async def test_delete_by_chain_ids_and_all(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(
            store,
            _session_with_tree("s1", chain_id="c1"),
            _session_with_tree("s2", chain_id="c2"),
            _session_with_tree("s3", chain_id="c3"),
        )

        await service.delete_by_chain_ids(["c1", "c2"])
        assert [s.id for s in (await service.search()).sessions] == ["s3"]

        await service.delete_all()
        assert (await service.search()).sessions == []

    @pytest.mark.asyncio
    async def test_chain_delete_refreshes(self, service: SessionService, store: MemorySessionStore):
        with patch.object(store, "delete_by_query", new_callable=AsyncMock) as delete:
            await service.delete_by_chain_id("c1")
            await service.delete_by_id("s1")

        assert delete.await_args_list[0].kwargs == {"refresh": True}
        assert delete.await_args_list[1].kwargs == {"refresh": False}


class TestImport:
    @pytest.mark.asyncio
    async def test_import_marks_sessions_imported(self, service: SessionService):
        imported = await service.import_sessions([_file("a.json", [_session_with_tree("s1", chain_id="c1")])])

        assert [s.id for s in imported] == ["s1"]
        assert imported[0].chain_id is None
        assert imported[0].imported_session is True
        assert imported[0].session_elements is None

        stored = await service.find_by_id("s1", light=False)
        assert stored.chain_id is None
        assert stored.imported_session is True
        assert stored.session_elements[0].body_before == "request"

    @pytest.mark.asyncio
    async def test_conflict_across_files_writes_nothing(self, service: SessionService, store: MemorySessionStore):
        files = [
            _file("a.json", [_session_with_tree("s1")]),
            _file("b.json", [_session_with_tree("s2"), _session_with_tree("s1")]),
        ]

        with pytest.raises(ImportConflictError) as exc_info:
            await service.import_sessions(files)

        assert exc_info.value.conflicts == {"b.json": ["s1"]}
        assert "File b.json can't be imported because of sessions duplicates: s1" in str(exc_info.value)
        assert store.bulk_calls == []
        assert await service.session_exists("s2") is False

    @pytest.mark.asyncio
    async def test_conflict_with_stored_session(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))
        store.bulk_calls.clear()

        with pytest.raises(ImportConflictError) as exc_info:
            await service.import_sessions([_file("a.json", [_session_with_tree("s1"), _session_with_tree("s9")])])

        assert exc_info.value.conflicts == {"a.json": ["s1"]}
        assert store.bulk_calls == []

    @pytest.mark.asyncio
    async def test_malformed_file(self, service: SessionService, store: MemorySessionStore):
        files = [_file("good.json", [_session_with_tree("s1")]), ImportFile(name="bad.json", content=b"{not json")]

        with pytest.raises(ImportFailureError, match="Error while reading file bad.json"):
            await service.import_sessions(files)

        assert store.bulk_calls == []

    @pytest.mark.asyncio
    async def test_large_import_is_batched(self, store: MemorySessionStore, thresholds: BulkThresholds):
        service = SessionService(store, thresholds=thresholds)
        sessions = [_session_with_tree(f"s{i}") for i in range(5)]

        await service.import_sessions([_file("many.json", sessions)])

        assert len(store.bulk_calls) == 1
        assert len(store.bulk_calls[0]) == 15


class TestExport:
    @pytest.mark.asyncio
    async def test_export_file_name_and_content(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="chain-9"), _session_with_tree("s2", chain_id="other"))

        exported = await service.export_sessions(["s1", "s2"])

        assert re.fullmatch(r"chain-sessions-chain-9-\(\d{4}-\d{2}-\d{2}T\d{2}_\d{2}_\d{2}\)\.json", exported.filename)
        sessions = _SESSIONS.validate_json(exported.content)
        assert [s.id for s in sessions] == ["s1", "s2"]
        assert sessions[0].session_elements[0].body_before == "request"
        assert '\n  {\n    "id": "s1"' in exported.content

    @pytest.mark.asyncio
    async def test_missing_sessions_skipped(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1"))

        exported = await service.export_sessions(["ghost", "s1"])

        assert [s.id for s in _SESSIONS.validate_json(exported.content)] == ["s1"]

    @pytest.mark.asyncio
    async def test_nothing_found(self, service: SessionService):
        with pytest.raises(SessionNotFoundError, match="Sessions not found"):
            await service.export_sessions(["ghost"])

    @pytest.mark.asyncio
    async def test_export_then_import_reproduces_sessions(self, service: SessionService, store: MemorySessionStore):
        await _seed_sessions(store, _session_with_tree("s1", chain_id="c1"), _session_with_tree("s2", chain_id="c2"))
        exported = await service.export_sessions(["s1", "s2"])
        originals = _SESSIONS.validate_json(exported.content)

        await service.delete_all()
        await service.import_sessions([ImportFile(name=exported.filename, content=exported.content.encode("utf-8"))])

        for original in originals:
            restored = await service.find_by_id(original.id, light=False)
            assert restored == original.model_copy(update={"chain_id": None, "imported_session": True})
