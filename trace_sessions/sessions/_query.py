"""OpenSearch query bodies for session listings, detail retrieval and deletes.

Every body collapses on a field and asks for one inner hit per collapsed value,
the element with the longest session duration. Results are read back from the
inner hits with ``extract_collapsed_sources``.
"""

from collections.abc import Sequence
from typing import Any

from trace_sessions.exceptions import InvalidQueryError
from trace_sessions.sessions._models import FilterCondition, FilterFeature, FilterRequest

SESSION_ID_KEY = "sessionId"
EXTERNAL_SESSION_ID_KEY = "externalSessionId"
ELEMENT_ID_KEY = "id"
CHAIN_ID_KEY = "chainId"
STARTED_KEY = "started"
SESSION_DURATION_KEY = "sessionDuration"
SESSION_FINISHED_KEY = "sessionFinished"

SCROLL_WINDOW = 300
INNER_HIT_NAME = "most_recent"

SORT_COLUMNS: tuple[str, ...] = (
    "sessionId",
    "sessionStarted",
    "sessionFinished",
    "sessionDuration",
    "sessionExecutionStatus",
    "chainId",
    "chainName",
    "engineAddress",
    "loggingLevel",
)

PAYLOAD_FIELDS: tuple[str, ...] = (
    "bodyBefore",
    "bodyAfter",
    "headersBefore",
    "headersAfter",
    "propertiesBefore",
    "propertiesAfter",
    "contextBefore",
    "contextAfter",
)

FEATURE_FIELDS: dict[FilterFeature, str] = {
    FilterFeature.ENGINE: "engineAddress",
    FilterFeature.STATUS: "sessionExecutionStatus",
    FilterFeature.CHAIN_NAME: "chainName",
    FilterFeature.START_TIME: "sessionStarted",
    FilterFeature.FINISH_TIME: "sessionFinished",
}

type Query = dict[str, Any]


def validate_sort_column(sort_column: str) -> None:
    """Reject sort columns outside the session-level allow-list."""
    if sort_column not in SORT_COLUMNS:
        raise InvalidQueryError(f"Can't sort results on this column. Valid columns are: {', '.join(SORT_COLUMNS)}")


def build_search_body(
    *,
    chain_id: str | None,
    offset: int,
    limit: int,
    sort_column: str,
    search_string: str = "",
    filters: Sequence[FilterRequest] = (),
) -> Query:
    """Listing query: one light representative per session, newest ``sort_column`` first."""
    validate_sort_column(sort_column)

    must: list[Query] = []
    must_not: list[Query] = []

    if chain_id:
        must.append(_term(CHAIN_ID_KEY, chain_id))

    if search_string:
        must.append({
            "bool": {
                "should": [
                    _term(SESSION_ID_KEY, search_string),
                    {"multi_match": {"query": search_string, "type": "phrase_prefix", "fields": list(PAYLOAD_FIELDS)}},
                ],
                "minimum_should_match": 1,
            }
        })

    for filter_request in filters:
        field = FEATURE_FIELDS[filter_request.feature]
        clause, negated = build_filter_clause(filter_request.condition, field, filter_request.value)
        (must_not if negated else must).append(clause)

    return {
        "query": {"bool": {"must": must, "must_not": must_not}},
        "sort": [
            {sort_column: {"order": "desc"}},
            {SESSION_ID_KEY: {"order": "asc"}},
            {STARTED_KEY: {"order": "asc"}},
        ],
        "from": offset,
        "size": limit,
        "_source": {"excludes": list(PAYLOAD_FIELDS)},
        "collapse": _collapse(SESSION_ID_KEY, light=True),
    }


def build_filter_clause(condition: FilterCondition, field: str, value: str) -> tuple[Query, bool]:
    """Translate one filter into a query clause.

    Returns the clause and whether it belongs to ``must_not``. Time conditions take
    epoch milliseconds; ``IS_WITHIN`` always ranges over the session finish time.
    """
    match condition:
        case FilterCondition.IN:
            return _terms(field, value), False
        case FilterCondition.NOT_IN:
            return _terms(field, value), True
        case FilterCondition.CONTAINS:
            return _wildcard(field, f"*{value}*"), False
        case FilterCondition.DOES_NOT_CONTAIN:
            return _wildcard(field, f"*{value}*"), True
        case FilterCondition.STARTS_WITH:
            return {"match_phrase_prefix": {field: {"query": value}}}, False
        case FilterCondition.ENDS_WITH:
            return _wildcard(field, f"*{value}"), False
        case FilterCondition.IS_AFTER:
            return {"range": {field: {"gte": _epoch_millis(value)}}}, False
        case FilterCondition.IS_BEFORE:
            return {"range": {field: {"lte": _epoch_millis(value)}}}, False
        case FilterCondition.IS_WITHIN:
            bounds = value.split(",")
            if len(bounds) != 2:
                raise InvalidQueryError(f"IS_WITHIN expects two comma-separated timestamps, got '{value}'")
            return {"range": {SESSION_FINISHED_KEY: {"gte": _epoch_millis(bounds[0]), "lte": _epoch_millis(bounds[1])}}}, False


def build_window_body(id_key: str, value: str, *, light: bool, window: int) -> Query:
    """Detail query for one page of elements matching ``id_key``, oldest first."""
    body: Query = {
        "query": _term(id_key, value),
        "sort": [{STARTED_KEY: {"order": "asc"}}],
        "from": window * SCROLL_WINDOW,
        "size": SCROLL_WINDOW,
        "collapse": _collapse(ELEMENT_ID_KEY, light=light),
    }
    if light:
        body["_source"] = {"excludes": list(PAYLOAD_FIELDS)}
    return body


def build_element_body(element_id: str) -> Query:
    """Detail query for a single element with its full payload."""
    return {
        "query": _term(ELEMENT_ID_KEY, element_id),
        "sort": [{STARTED_KEY: {"order": "asc"}}],
        "size": SCROLL_WINDOW,
        "collapse": _collapse(ELEMENT_ID_KEY, light=False),
    }


def build_existing_sessions_body(session_ids: Sequence[str], *, window: int) -> Query:
    """One page of session ids (collapsed, payload-free) among ``session_ids``."""
    return {
        "query": {"terms": {SESSION_ID_KEY: list(session_ids)}},
        "sort": [{SESSION_ID_KEY: {"order": "asc"}}],
        "from": window * SCROLL_WINDOW,
        "size": SCROLL_WINDOW,
        "_source": {"includes": [SESSION_ID_KEY]},
        "collapse": {"field": SESSION_ID_KEY},
    }


def term_query(field: str, value: str) -> Query:
    """Exact-match query used by deletes."""
    return _term(field, value)


def match_all_query() -> Query:
    return {"match_all": {}}


def extract_collapsed_sources(response: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Flatten the inner-hit sources of a collapsed search response, in hit order.

    Hits without inner hits (plain collapse) contribute their own source.
    """
    if not response:
        return []
    sources: list[dict[str, Any]] = []
    for hit in response.get("hits", {}).get("hits", []):
        inner = hit.get("inner_hits", {}).get(INNER_HIT_NAME)
        if inner is None:
            sources.append(hit.get("_source", {}))
            continue
        sources.extend(inner_hit.get("_source", {}) for inner_hit in inner.get("hits", {}).get("hits", []))
    return sources


def _collapse(field: str, *, light: bool) -> Query:
    inner_hits: Query = {
        "name": INNER_HIT_NAME,
        "size": 1,
        "sort": [{SESSION_DURATION_KEY: {"order": "desc"}}],
    }
    if light:
        inner_hits["_source"] = {"excludes": list(PAYLOAD_FIELDS)}
    return {"field": field, "inner_hits": inner_hits}


def _term(field: str, value: str) -> Query:
    return {"term": {field: {"value": value}}}


def _terms(field: str, value: str) -> Query:
    return {"terms": {field: value.split(",")}}


def _wildcard(field: str, pattern: str) -> Query:
    return {"wildcard": {field: {"value": pattern}}}


def _epoch_millis(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as e:
        raise InvalidQueryError(f"Expected epoch milliseconds, got '{value}'") from e
