"""Session facade: read, search, import, export and delete over a SessionStore.

Read path: store -> collapsed inner hits -> ElementRecord -> session tree.
Write path: import files -> Session trees -> ElementRecord -> bulk batches.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from pydantic import TypeAdapter, ValidationError

from trace_sessions.catalog import CatalogClient
from trace_sessions.exceptions import CatalogError, ImportConflictError, ImportFailureError, SessionNotFoundError
from trace_sessions.logging import get_session_logger
from trace_sessions.sessions._bulk import BulkImportBatcher, BulkThresholds, find_conflicting_session_ids
from trace_sessions.sessions._mapping import record_to_element, record_to_preview, records_to_session, sessions_to_records
from trace_sessions.sessions._models import (
    ElementRecord,
    ImportFile,
    Session,
    SessionElement,
    SessionExport,
    SessionSearchRequest,
    SessionSearchResponse,
)
from trace_sessions.sessions._query import (
    CHAIN_ID_KEY,
    EXTERNAL_SESSION_ID_KEY,
    SESSION_ID_KEY,
    Query,
    build_element_body,
    build_existing_sessions_body,
    build_search_body,
    build_window_body,
    extract_collapsed_sources,
    match_all_query,
    term_query,
)
from trace_sessions.settings import settings
from trace_sessions.store.protocol import SessionStore

logger = get_session_logger(__name__)

_SESSION_LIST = TypeAdapter(list[Session])

DEFAULT_SORT_COLUMN = "sessionStarted"
DEFAULT_LIMIT = 20
EXPORT_TIMESTAMP_FORMAT = "%Y-%m-%dT%H_%M_%S"


class SessionService:
    """Orchestrates session retrieval, search, import, export and deletion.

    The store is injected and shared; the service itself holds no per-request state.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        thresholds: BulkThresholds | None = None,
        catalog: CatalogClient | None = None,
    ) -> None:
        self._store = store
        self._batcher = BulkImportBatcher(store, thresholds or BulkThresholds.from_settings(settings))
        self._catalog = catalog

    # --- Reads ---

    async def find_by_id(self, session_id: str, *, light: bool = True, include_elements: bool = True) -> Session:
        """Session with its element tree. Light reads omit step payloads."""
        session = await self._find(SESSION_ID_KEY, session_id, light=light, include_elements=include_elements)
        if session is None:
            raise SessionNotFoundError(f"Can't find session {session_id}")
        return session

    async def session_exists(self, session_id: str) -> bool:
        records = await self._search_records(build_window_body(SESSION_ID_KEY, session_id, light=True, window=0))
        return bool(records)

    async def find_by_external_id(self, external_session_id: str, *, include_elements: bool = False) -> Session:
        """Session by the external id given at execution time; payloads only when elements are requested."""
        session = await self._find(EXTERNAL_SESSION_ID_KEY, external_session_id, light=not include_elements, include_elements=include_elements)
        if session is None:
            raise SessionNotFoundError(f"Can't find session by external id {external_session_id}")
        return session

    async def get_element(self, element_id: str) -> SessionElement:
        """Single element with full payload and no children."""
        records = await self._search_records(build_element_body(element_id))
        if not records:
            raise SessionNotFoundError(f"Can't find element with id {element_id}")
        return record_to_element(records[0])

    async def search(
        self,
        *,
        chain_id: str | None = None,
        offset: int = 0,
        limit: int = DEFAULT_LIMIT,
        sort_column: str = DEFAULT_SORT_COLUMN,
        request: SessionSearchRequest | None = None,
    ) -> SessionSearchResponse:
        """One light preview per session, sorted by ``sort_column`` descending.

        Out-of-range paging yields an empty page without querying the store.
        """
        if offset < 0 or limit < 1:
            return SessionSearchResponse(offset=0, sessions=[])

        request = request or SessionSearchRequest()
        body = build_search_body(
            chain_id=chain_id,
            offset=offset,
            limit=limit,
            sort_column=sort_column,
            search_string=request.search_string,
            filters=request.filter_request_list,
        )
        representatives: dict[str | None, ElementRecord] = {}
        for record in await self._search_records(body):
            representatives[record.session_id] = record

        previews = [record_to_preview(record) for record in representatives.values()]
        return SessionSearchResponse(offset=offset + len(previews), sessions=previews)

    async def search_with_chain_names(
        self,
        *,
        chain_id: str | None = None,
        offset: int = 0,
        limit: int = DEFAULT_LIMIT,
        sort_column: str = DEFAULT_SORT_COLUMN,
        request: SessionSearchRequest | None = None,
    ) -> SessionSearchResponse:
        """``search`` with chain names refreshed from the catalog when one is configured.

        Catalog failures keep the stored names.
        """
        response = await self.search(chain_id=chain_id, offset=offset, limit=limit, sort_column=sort_column, request=request)
        if self._catalog is None or not response.sessions:
            return response

        chain_ids = {session.chain_id for session in response.sessions if session.chain_id}
        try:
            names = await self._catalog.get_chain_names(chain_ids)
        except CatalogError as e:
            logger.warning(f"Failed to receive actual chains names for sessions: {e}")
            return response

        for session in response.sessions:
            if session.chain_id in names:
                session.chain_name = names[session.chain_id]
        return response

    # --- Deletes ---

    async def delete_by_id(self, session_id: str) -> None:
        logger.info(f"Deleting session {session_id}")
        await self._store.delete_by_query(term_query(SESSION_ID_KEY, session_id), refresh=False)

    async def delete_by_chain_id(self, chain_id: str) -> None:
        logger.info(f"Deleting all sessions of chain {chain_id}")
        await self._store.delete_by_query(term_query(CHAIN_ID_KEY, chain_id), refresh=True)

    async def delete_by_chain_ids(self, chain_ids: Iterable[str]) -> None:
        for chain_id in chain_ids:
            await self.delete_by_chain_id(chain_id)

    async def delete_all(self) -> None:
        logger.info("Deleting all sessions")
        await self._store.delete_by_query(match_all_query(), refresh=True)

    # --- Import / export ---

    async def import_sessions(self, files: Sequence[ImportFile]) -> list[Session]:
        """Import session files as a unit.

        Every file is parsed and checked for duplicate session ids before the first
        write. Imported sessions lose their chain id and are flagged as imported.

        Returns:
            The imported sessions without their elements.
        """
        parsed: list[tuple[str, list[Session]]] = []
        for file in files:
            try:
                sessions = _SESSION_LIST.validate_json(file.content)
            except ValidationError as e:
                logger.error(f"Error while reading file {file.name}: {e}")
                raise ImportFailureError(f"Error while reading file {file.name}") from e
            logger.debug(f"Found {len(sessions)} sessions in file {file.name}")
            parsed.append((file.name, sessions))

        session_ids = [session.id for _, sessions in parsed for session in sessions if session.id is not None]
        existing = await self._existing_session_ids(session_ids)
        conflicts = find_conflicting_session_ids(parsed, existing)
        if conflicts:
            message = "; ".join(f"File {name} can't be imported because of sessions duplicates: {', '.join(ids)}" for name, ids in conflicts.items())
            logger.error(message)
            raise ImportConflictError(message, conflicts)

        imported = [session for _, sessions in parsed for session in sessions]
        for session in imported:
            session.chain_id = None
            session.imported_session = True

        records = sessions_to_records(imported)
        await self._batcher.write(records)
        logger.info(f"Imported {len(imported)} sessions ({len(records)} elements) from {len(files)} files")
        return [session.model_copy(update={"session_elements": None}) for session in imported]

    async def export_sessions(self, session_ids: Sequence[str]) -> SessionExport:
        """Full sessions as a pretty-printed JSON array named after the first session's chain."""
        sessions: list[Session] = []
        for session_id in session_ids:
            session = await self._find(SESSION_ID_KEY, session_id, light=False, include_elements=True)
            if session is None:
                logger.warning(f"Session {session_id} not found, skipped from export")
                continue
            sessions.append(session)
        if not sessions:
            raise SessionNotFoundError("Sessions not found")

        chain_id = sessions[0].chain_id or "null"
        timestamp = datetime.now(UTC).strftime(EXPORT_TIMESTAMP_FORMAT)
        content = _SESSION_LIST.dump_json(sessions, indent=2, by_alias=True).decode("utf-8")
        return SessionExport(filename=f"chain-sessions-{chain_id}-({timestamp}).json", content=content)

    # --- Store access ---

    async def _find(self, id_key: str, value: str, *, light: bool, include_elements: bool) -> Session | None:
        """Page through every element matching ``id_key`` until an empty window comes back."""
        records: list[ElementRecord] = []
        window = 0
        while page := await self._search_records(build_window_body(id_key, value, light=light, window=window)):
            records.extend(page)
            window += 1
        return records_to_session(records, include_elements=include_elements)

    async def _existing_session_ids(self, session_ids: Sequence[str]) -> set[str]:
        if not session_ids:
            return set()
        candidates = sorted(set(session_ids))
        existing: set[str] = set()
        window = 0
        while page := await self._search_records(build_existing_sessions_body(candidates, window=window)):
            existing.update(record.session_id for record in page if record.session_id is not None)
            window += 1
        return existing

    async def _search_records(self, body: Query) -> list[ElementRecord]:
        response = await self._store.search(body)
        return [ElementRecord.model_validate(source) for source in extract_collapsed_sources(response)]
