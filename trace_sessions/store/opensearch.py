"""OpenSearch-backed session store for production use.

Wraps the synchronous, thread-safe opensearch-py client. Async methods
dispatch the blocking calls to a bounded thread pool via
loop.run_in_executor(). Transport and protocol failures surface as
SearchFailureError naming the operation; nothing is retried.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from opensearchpy import OpenSearch
from opensearchpy.exceptions import OpenSearchException

from trace_sessions.exceptions import SearchFailureError
from trace_sessions.logging import get_session_logger
from trace_sessions.store.protocol import BulkItemOutcome, BulkOperation

logger = get_session_logger(__name__)


def normalize_index_name(name: str, prefix: str = "") -> str:
    """Prepend the configured namespace prefix to an index name."""
    return f"{prefix}_{name}" if prefix else name


class OpenSearchSessionStore:
    """Element index on an OpenSearch cluster.

    One instance (and one client connection pool) is shared by every request.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 9200,
        protocol: str = "http",
        username: str = "",
        password: str = "",
        index: str = "sessions-elements",
        index_prefix: str = "",
        require_alias: bool = True,
        timeout: float = 30.0,
        max_workers: int = 4,
        client: Any = None,
    ) -> None:
        self._index = normalize_index_name(index, index_prefix)
        self._require_alias = require_alias
        self._client = client or OpenSearch(
            hosts=[{"host": host, "port": port}],
            http_auth=(username, password) if username else None,
            use_ssl=protocol == "https",
            timeout=timeout,
        )
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="os-sessions")
        logger.info(f"Session store using OpenSearch index '{self._index}' at {protocol}://{host}:{port}")

    @property
    def index(self) -> str:
        return self._index

    async def _run(self, fn: Any, *args: Any) -> Any:
        """Run a sync function on the store executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    # --- Async public API ---

    async def search(self, body: dict[str, Any]) -> dict[str, Any]:
        """Search the elements index."""
        return await self._run(self._search_sync, body)

    async def bulk(self, operations: list[BulkOperation]) -> list[BulkItemOutcome]:
        """Index operations in one bulk call and report per-item outcomes."""
        if not operations:
            return []
        return await self._run(self._bulk_sync, operations)

    async def delete_by_query(self, query: dict[str, Any], *, refresh: bool = False) -> None:
        """Delete matching element documents."""
        await self._run(self._delete_by_query_sync, query, refresh)

    def close(self) -> None:
        """Close the client transport and release the executor."""
        self._executor.shutdown(wait=True)
        self._client.close()

    # --- Sync implementations (executor threads only) ---

    def _search_sync(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            return self._client.search(index=self._index, body=body)
        except OpenSearchException as e:
            logger.error(f"Search against '{self._index}' failed: {e}")
            raise SearchFailureError("search", "Error during element execution search") from e

    def _bulk_sync(self, operations: list[BulkOperation]) -> list[BulkItemOutcome]:
        lines: list[Any] = []
        for operation in operations:
            action: dict[str, Any] = {"_index": self._index}
            if operation.doc_id is not None:
                action["_id"] = operation.doc_id
            lines.append({"index": action})
            lines.append(operation.source)
        try:
            response = self._client.bulk(body=lines, index=self._index, require_alias=self._require_alias)
        except OpenSearchException as e:
            logger.error(f"Bulk write of {len(operations)} elements to '{self._index}' failed: {e}")
            raise SearchFailureError("bulk", "Unable to perform bulk write to OpenSearch") from e
        return [_item_outcome(item) for item in response.get("items", [])]

    def _delete_by_query_sync(self, query: dict[str, Any], refresh: bool) -> None:
        try:
            self._client.delete_by_query(index=self._index, body={"query": query}, refresh=refresh)
        except OpenSearchException as e:
            logger.error(f"Delete from '{self._index}' failed: {e}")
            raise SearchFailureError("delete", "Unable to perform delete from OpenSearch") from e


def _item_outcome(item: dict[str, Any]) -> BulkItemOutcome:
    """Bulk response items are keyed by their action name."""
    result = next(iter(item.values()), {})
    error = result.get("error")
    if error is None:
        return BulkItemOutcome(doc_id=result.get("_id"))
    reason = error.get("reason") if isinstance(error, dict) else str(error)
    return BulkItemOutcome(doc_id=result.get("_id"), error=reason or str(error))
