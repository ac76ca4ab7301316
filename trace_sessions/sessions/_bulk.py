"""Duplicate validation and size-aware bulk writing of imported element records.

Two write speeds: elements that are large, or imports that are small, go out
one element per bulk call; everything else accumulates into a pending batch
that is flushed before it would grow past the configured maximum.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pydantic_core import PydanticSerializationError

from trace_sessions.exceptions import ImportFailureError, SearchFailureError
from trace_sessions.logging import get_session_logger
from trace_sessions.sessions._models import ElementRecord, Session
from trace_sessions.settings import Settings
from trace_sessions.store.protocol import BulkOperation, SessionStore

logger = get_session_logger(__name__)


@dataclass(frozen=True, slots=True)
class BulkThresholds:
    """Byte and count limits steering how records are grouped into bulk calls."""

    max_batch_size_bytes: int
    payload_size_threshold_bytes: int
    elements_count_threshold: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "BulkThresholds":
        return cls(
            max_batch_size_bytes=settings.bulk_request_max_size_kb * 1024,
            payload_size_threshold_bytes=settings.bulk_request_payload_size_threshold_kb * 1024,
            elements_count_threshold=settings.bulk_request_elements_count_threshold,
        )


def find_conflicting_session_ids(
    files: Iterable[tuple[str, Sequence[Session]]],
    existing_ids: set[str],
) -> dict[str, list[str]]:
    """Map each file name to the session ids that cannot be imported from it.

    An id conflicts when it is already stored, appears more than once in its
    file, or appeared in an earlier file of the same import. Ids keep their
    first-seen order; files without conflicts are omitted.
    """
    conflicts: dict[str, list[str]] = {}
    earlier_files: set[str] = set()
    for name, sessions in files:
        counts = Counter(session.id for session in sessions)
        offending: dict[str, None] = {}
        for session in sessions:
            session_id = session.id
            if session_id is None:
                continue
            if session_id in existing_ids or counts[session_id] > 1 or session_id in earlier_files:
                offending[session_id] = None
        if offending:
            conflicts[name] = list(offending)
        earlier_files.update(session_id for session_id in counts if session_id is not None)
    return conflicts


class BulkImportBatcher:
    """Writes element records to the store in bulk calls bounded by ``BulkThresholds``.

    Calls are strictly sequential; a flush completes before the next record is
    considered. The first failing call aborts the whole write.
    """

    def __init__(self, store: SessionStore, thresholds: BulkThresholds) -> None:
        self._store = store
        self._thresholds = thresholds

    async def write(self, records: Sequence[ElementRecord]) -> int:
        """Write all records and return the number of bulk calls issued."""
        thresholds = self._thresholds
        write_individually = len(records) <= thresholds.elements_count_threshold

        calls = 0
        pending: list[BulkOperation] = []
        pending_size = 0

        for record in records:
            operation, size = self._serialize(record)

            if write_individually or size >= thresholds.payload_size_threshold_bytes:
                await self._execute([operation])
                calls += 1
                continue

            if pending and pending_size + size > thresholds.max_batch_size_bytes:
                await self._execute(pending)
                calls += 1
                pending, pending_size = [], 0

            pending.append(operation)
            pending_size += size

            if pending_size >= thresholds.max_batch_size_bytes:
                await self._execute(pending)
                calls += 1
                pending, pending_size = [], 0

        if pending:
            await self._execute(pending)
            calls += 1

        logger.debug(f"Wrote {len(records)} session elements in {calls} bulk requests")
        return calls

    @staticmethod
    def _serialize(record: ElementRecord) -> tuple[BulkOperation, int]:
        try:
            payload = record.model_dump_json(by_alias=True)
        except PydanticSerializationError as e:
            logger.error("Failed to serialize sessions write request")
            raise ImportFailureError(f"Failed to parse sessions write request on element {record.element_name} in chain {record.chain_name}") from e
        return BulkOperation(doc_id=record.id, source=payload), len(payload.encode("utf-8"))

    async def _execute(self, operations: list[BulkOperation]) -> None:
        try:
            outcomes = await self._store.bulk(operations)
        except SearchFailureError as e:
            logger.error(f"While sessions writing an error has occurred: {e}")
            raise ImportFailureError("Import was failed while saving to opensearch") from e

        reasons = [outcome.error for outcome in outcomes if outcome.error]
        if reasons:
            raise ImportFailureError("Some sessions elements can't be saved to opensearch:\n" + "\n".join(reasons))
