"""Catalog service client for resolving chain display names."""

from collections.abc import Iterable

import httpx

from trace_sessions.exceptions import CatalogError
from trace_sessions.logging import get_session_logger

logger = get_session_logger(__name__)

CHAIN_NAMES_PATH = "/v1/chains/names"


class CatalogClient:
    """Looks up current chain names by chain id."""

    def __init__(self, base_url: str, *, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def get_chain_names(self, chain_ids: Iterable[str]) -> dict[str, str | None]:
        """Return ``{chain_id: name}`` for the given ids. Unknown ids are simply absent; a null name stays None."""
        ids = sorted(set(chain_ids))
        if not ids:
            return {}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            try:
                response = await client.get(f"{self._base_url}{CHAIN_NAMES_PATH}", params={"chainIds": ",".join(ids)})
                response.raise_for_status()
                names = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Failed to request chains names from catalog: {e}")
                raise CatalogError("Failed to request chains names from catalog") from e
        if not isinstance(names, dict):
            raise CatalogError(f"Unexpected chains names payload from catalog: {type(names).__name__}")
        return {str(chain_id): None if name is None else str(name) for chain_id, name in names.items()}
