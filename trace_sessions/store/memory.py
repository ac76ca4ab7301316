"""In-memory session store for testing and CLI demos.

Dict-based storage implementing the full SessionStore protocol. Search bodies
are evaluated against the stored sources for the query DSL subset the query
builder emits: match_all, term, terms, wildcard, match_phrase_prefix,
multi_match (phrase_prefix), range and bool, plus sort, from/size, _source
filtering and field collapse with inner hits.
Not for production use. All data is lost when the process exits.
"""

import json
import re
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from itertools import count
from typing import Any

from trace_sessions.store.protocol import BulkItemOutcome, BulkOperation

type Source = dict[str, Any]
type Hit = tuple[str, Source]

_DEFAULT_SIZE = 10
_DEFAULT_INNER_HITS_SIZE = 3


class MemorySessionStore:
    """Dict-based element index for unit tests.

    Storage layout: document id -> source. ``bulk_calls`` records the operations
    of every bulk round trip in order.
    """

    def __init__(self) -> None:
        self._documents: dict[str, Source] = {}
        self._generated_ids = count(1)
        self.bulk_calls: list[list[BulkOperation]] = []

    async def search(self, body: dict[str, Any]) -> dict[str, Any]:
        """Evaluate a search body and return an OpenSearch-shaped response."""
        query = body.get("query", {"match_all": {}})
        matched = [(doc_id, source) for doc_id, source in self._documents.items() if _matches(source, query)]
        ordered = _sort_hits(matched, body.get("sort", []))

        collapse = body.get("collapse")
        if collapse:
            groups = _collapse(ordered, collapse["field"])
        else:
            groups = [(hit, [hit]) for hit in ordered]

        start = body.get("from", 0)
        page = groups[start : start + body.get("size", _DEFAULT_SIZE)]

        hits: list[dict[str, Any]] = []
        for (doc_id, source), members in page:
            hit: dict[str, Any] = {"_id": doc_id, "_source": _filter_source(source, body.get("_source"))}
            inner = collapse.get("inner_hits") if collapse else None
            if inner:
                inner_members = _sort_hits(members, inner.get("sort", []))[: inner.get("size", _DEFAULT_INNER_HITS_SIZE)]
                hit["inner_hits"] = {
                    inner["name"]: {
                        "hits": {
                            "total": {"value": len(members)},
                            "hits": [{"_id": member_id, "_source": _filter_source(member, inner.get("_source"))} for member_id, member in inner_members],
                        }
                    }
                }
            hits.append(hit)
        return {"hits": {"total": {"value": len(ordered)}, "hits": hits}}

    async def bulk(self, operations: list[BulkOperation]) -> list[BulkItemOutcome]:
        """Store every operation's document under its id, generating ids where missing."""
        self.bulk_calls.append(list(operations))
        outcomes: list[BulkItemOutcome] = []
        for operation in operations:
            try:
                source = json.loads(operation.source)
            except json.JSONDecodeError as e:
                outcomes.append(BulkItemOutcome(doc_id=operation.doc_id, error=f"failed to parse document: {e}"))
                continue
            doc_id = operation.doc_id or f"generated-{next(self._generated_ids)}"
            self._documents[doc_id] = source
            outcomes.append(BulkItemOutcome(doc_id=doc_id))
        return outcomes

    async def delete_by_query(self, query: dict[str, Any], *, refresh: bool = False) -> None:
        """Remove every document matching ``query``. Deletes are always visible immediately."""
        for doc_id in [doc_id for doc_id, source in self._documents.items() if _matches(source, query)]:
            del self._documents[doc_id]

    def close(self) -> None:
        """Nothing to release."""


# --- Query evaluation ---


def _matches(source: Source, query: dict[str, Any]) -> bool:  # noqa: PLR0911
    if len(query) != 1:
        raise ValueError(f"Query clause must have exactly one key, got {sorted(query)}")
    ((kind, spec),) = query.items()
    match kind:
        case "match_all":
            return True
        case "term":
            field, condition = _single(spec)
            expected = condition["value"] if isinstance(condition, dict) else condition
            return source.get(field) == expected
        case "terms":
            field, values = _single(spec)
            return source.get(field) in values
        case "wildcard":
            field, condition = _single(spec)
            pattern = condition["value"] if isinstance(condition, dict) else condition
            value = source.get(field)
            return value is not None and _wildcard_regex(pattern).fullmatch(str(value)) is not None
        case "match_phrase_prefix":
            field, condition = _single(spec)
            text = condition["query"] if isinstance(condition, dict) else condition
            return _phrase_prefix(source.get(field), text)
        case "multi_match":
            if spec.get("type") != "phrase_prefix":
                raise ValueError(f"Unsupported multi_match type: {spec.get('type')}")
            return any(_phrase_prefix(source.get(field), spec["query"]) for field in spec["fields"])
        case "range":
            field, bounds = _single(spec)
            return _in_range(source.get(field), bounds)
        case "bool":
            return _matches_bool(source, spec)
        case _:
            raise ValueError(f"Unsupported query clause: {kind}")


def _matches_bool(source: Source, spec: dict[str, Any]) -> bool:
    must = _as_list(spec.get("must")) + _as_list(spec.get("filter"))
    if not all(_matches(source, clause) for clause in must):
        return False
    if any(_matches(source, clause) for clause in _as_list(spec.get("must_not"))):
        return False
    should = _as_list(spec.get("should"))
    if not should:
        return True
    minimum = spec.get("minimum_should_match", 0 if must else 1)
    return sum(_matches(source, clause) for clause in should) >= int(minimum)


def _single(spec: dict[str, Any]) -> tuple[str, Any]:
    ((field, condition),) = spec.items()
    return field, condition


def _as_list(value: Any) -> list[dict[str, Any]]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _wildcard_regex(pattern: str) -> re.Pattern[str]:
    parts = [".*" if char == "*" else "." if char == "?" else re.escape(char) for char in pattern]
    return re.compile("".join(parts), re.DOTALL)


_TOKEN = re.compile(r"\w+")


def _phrase_prefix(value: Any, text: str) -> bool:
    """Token sequence match where the last query token only needs to be a prefix."""
    if value is None:
        return False
    tokens = _TOKEN.findall(str(value).lower())
    query = _TOKEN.findall(text.lower())
    if not query:
        return False
    *head, last = query
    for start in range(len(tokens) - len(query) + 1):
        if tokens[start : start + len(head)] == head and tokens[start + len(head)].startswith(last):
            return True
    return False


def _in_range(value: Any, bounds: dict[str, Any]) -> bool:
    actual = _to_millis(value)
    if actual is None:
        return False
    checks: dict[str, Callable[[int, int], bool]] = {
        "gte": lambda a, b: a >= b,
        "gt": lambda a, b: a > b,
        "lte": lambda a, b: a <= b,
        "lt": lambda a, b: a < b,
    }
    for op, bound in bounds.items():
        if op not in checks:
            continue
        limit = _to_millis(bound)
        if limit is None or not checks[op](actual, limit):
            return False
    return True


def _to_millis(value: Any) -> int | None:
    """Epoch milliseconds of a numeric or ISO-8601 value. Naive timestamps are taken as UTC."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)


# --- Sorting, collapsing, source filtering ---


def _sort_hits(hits: Sequence[Hit], sort: Sequence[Any]) -> list[Hit]:
    """Multi-key stable sort. Documents missing a sort field go last in either direction."""
    ordered = list(hits)
    for field, descending in reversed([_sort_spec(item) for item in sort]):
        present = [hit for hit in ordered if hit[1].get(field) is not None]
        missing = [hit for hit in ordered if hit[1].get(field) is None]
        present.sort(key=lambda hit, f=field: hit[1][f], reverse=descending)
        ordered = present + missing
    return ordered


def _sort_spec(item: Any) -> tuple[str, bool]:
    if isinstance(item, str):
        return item, False
    ((field, options),) = item.items()
    order = options.get("order", "asc") if isinstance(options, dict) else options
    return field, order == "desc"


def _collapse(hits: list[Hit], field: str) -> list[tuple[Hit, list[Hit]]]:
    """Group hits by ``field`` value; the first hit of each group in sort order represents it."""
    groups: dict[Any, list[Hit]] = {}
    for hit in hits:
        groups.setdefault(hit[1].get(field), []).append(hit)
    return [(members[0], members) for members in groups.values()]


def _filter_source(source: Source, spec: Any) -> Source:
    if spec is None or spec is True:
        return dict(source)
    if spec is False:
        return {}
    if isinstance(spec, list):
        spec = {"includes": spec}
    includes = spec.get("includes")
    excludes = set(spec.get("excludes", ()))
    return {key: value for key, value in source.items() if (includes is None or key in includes) and key not in excludes}
