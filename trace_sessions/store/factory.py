"""Factory function for creating session store instances based on settings."""

from trace_sessions.settings import Settings
from trace_sessions.store.protocol import SessionStore


def create_session_store(settings: Settings) -> SessionStore:
    """Create a SessionStore based on settings.

    Selects OpenSearchSessionStore when opensearch_host is configured,
    otherwise falls back to MemorySessionStore.

    Backends are imported lazily so the OpenSearch client is only loaded when used.
    """
    if settings.opensearch_host:
        from trace_sessions.store.opensearch import OpenSearchSessionStore

        return OpenSearchSessionStore(
            host=settings.opensearch_host,
            port=settings.opensearch_port,
            protocol=settings.opensearch_protocol,
            username=settings.opensearch_username,
            password=settings.opensearch_password,
            index=settings.opensearch_elements_index,
            index_prefix=settings.opensearch_index_prefix,
            require_alias=settings.opensearch_require_alias,
            timeout=settings.opensearch_timeout,
            max_workers=settings.opensearch_max_workers,
        )

    from trace_sessions.store.memory import MemorySessionStore

    return MemorySessionStore()
