"""Core configuration settings for trace-sessions.

This module provides centralized configuration for the session store,
bulk import thresholds and the catalog service. Settings are loaded from
environment variables with .env file support via pydantic-settings.

Environment variables:
    OPENSEARCH_HOST: OpenSearch host name. Empty selects the in-memory store.
    OPENSEARCH_PORT / OPENSEARCH_PROTOCOL: OpenSearch endpoint.
    OPENSEARCH_USERNAME / OPENSEARCH_PASSWORD: Basic auth credentials.
    OPENSEARCH_INDEX_PREFIX / OPENSEARCH_ELEMENTS_INDEX: Index naming.
    BULK_REQUEST_MAX_SIZE_KB: Upper bound for one batched bulk call.
    BULK_REQUEST_PAYLOAD_SIZE_THRESHOLD_KB: Elements at or above this size are written alone.
    BULK_REQUEST_ELEMENTS_COUNT_THRESHOLD: Imports this small write every element alone.
    CATALOG_URL: Base URL of the catalog service used for chain names.

Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file in current directory
    3. Default values

Example:
    >>> from trace_sessions.settings import settings
    >>> print(settings.opensearch_elements_index)
    sessions-elements

Note:
    Settings are loaded once at module import and frozen. The process must
    be restarted to pick up changes to environment variables or .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the session store and its collaborators.

    Attributes:
        opensearch_host: OpenSearch host. Leave empty to run against the
                         in-memory store (CLI demos, tests).

        opensearch_index_prefix: Prefix prepended to every index name, e.g.
                                 a namespace shared by several deployments.

        opensearch_require_alias: Bulk writes target an alias rather than a
                                  concrete index, so a missing alias fails
                                  the write instead of auto-creating an index.

        opensearch_max_workers: Size of the thread pool that runs the
                                synchronous OpenSearch client calls.

        bulk_request_max_size_kb: Running-total threshold that flushes a
                                  pending bulk batch.

        bulk_request_payload_size_threshold_kb: Serialized element size at or
                                                above which the element is
                                                written in its own bulk call.

        bulk_request_elements_count_threshold: Imports with at most this many
                                               elements skip batching.

        catalog_url: Catalog service base URL. Empty disables chain-name
                     refresh on search results.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # OpenSearch
    opensearch_host: str = ""
    opensearch_port: int = 9200
    opensearch_protocol: str = "http"
    opensearch_username: str = ""
    opensearch_password: str = ""
    opensearch_index_prefix: str = ""
    opensearch_elements_index: str = "sessions-elements"
    opensearch_require_alias: bool = True
    opensearch_timeout: float = 30.0
    opensearch_max_workers: int = 4

    # Bulk import
    bulk_request_max_size_kb: int = 10240
    bulk_request_payload_size_threshold_kb: int = 1024
    bulk_request_elements_count_threshold: int = 10

    # Catalog
    catalog_url: str = ""
    catalog_timeout: float = 10.0


settings = Settings()
