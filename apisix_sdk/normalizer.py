"""
Normalization of the two APISIX response envelope generations

Legacy (pre-3.0):
    single  {"node": {"key": ..., "value": {...}}, "action": ...}
    list    {"node": {"key": ..., "nodes": [...], "dir": true}, "count": N}

Current (3.0+):
    single  {"key": ..., "value": {...}}
    list    {"total": N, "list": [{"key": ..., "value": {...}}], "has_more": bool}
"""
from typing import Any, Dict, List, Optional, Tuple

from .types import CanonicalList, CanonicalResource, PaginatedResult

DEFAULT_PAGE_SIZE = 10


def recover_id(key: Any) -> Optional[str]:
    """Last path segment of an etcd-style key"""
    if not isinstance(key, str) or not key:
        return None
    segment = key.rstrip("/").rsplit("/", 1)[-1]
    return segment or None


def _with_id(value: Any, key: Any) -> Any:
    if not isinstance(value, dict):
        return value
    identifier = recover_id(key)
    if identifier is None or "id" in value:
        return value
    return {**value, "id": identifier}


def _unwrap_entry(entry: Any) -> Any:
    if isinstance(entry, dict) and "value" in entry:
        return _with_id(entry["value"], entry.get("key"))
    return entry


class ResponseNormalizer:
    """Decodes wire envelopes into canonical values and lists"""

    def _split_single(self, envelope: Any) -> Tuple[Any, Any]:
        if not isinstance(envelope, dict):
            return None, None
        node = envelope.get("node")
        if isinstance(node, dict) and "value" in node:
            return node.get("value"), node.get("key")
        if "value" in envelope:
            return envelope.get("value"), envelope.get("key")
        return None, None

    def normalize_resource(self, envelope: Any) -> CanonicalResource:
        value, key = self._split_single(envelope)
        if value is None:
            return CanonicalResource(value={})
        value = _with_id(value, key)
        identifier = value.get("id") if isinstance(value, dict) else recover_id(key)
        return CanonicalResource(value=value, id=str(identifier) if identifier is not None else None)

    def extract_value(self, envelope: Any) -> Any:
        """Value of a single-resource envelope, with its id recovered from the key"""
        return self.normalize_resource(envelope).value

    def extract_list(self, envelope: Any) -> List[Any]:
        """
        Items of a list envelope

        Tried in order: flat "list", legacy "node.nodes", bare array,
        {"data": [...]}, single wrapped "value". Anything else is empty.
        """
        if isinstance(envelope, list):
            return list(envelope)
        if not isinstance(envelope, dict):
            return []

        if isinstance(envelope.get("list"), list):
            return [_unwrap_entry(entry) for entry in envelope["list"]]

        node = envelope.get("node")
        if isinstance(node, dict) and isinstance(node.get("nodes"), list):
            return [_unwrap_entry(entry) for entry in node["nodes"]]

        if isinstance(envelope.get("data"), list):
            return list(envelope["data"])

        if "value" in envelope and envelope["value"] is not None:
            value = envelope["value"]
            return list(value) if isinstance(value, list) else [_with_id(value, envelope.get("key"))]

        return []

    def extract_pagination(self, envelope: Any, page_size: Optional[int] = None) -> Dict[str, Any]:
        """
        Pagination hints of a list envelope

        Returns:
            {"total": int | None, "has_more": bool | None}
        """
        if not isinstance(envelope, dict):
            return {"total": None, "has_more": None}

        node = envelope.get("node")
        if isinstance(node, dict) and "nodes" in node:
            # The legacy protocol has no continuation signal
            count = envelope.get("count")
            total = count if isinstance(count, int) else len(node.get("nodes") or [])
            return {"total": total, "has_more": False}

        total = envelope.get("total")
        if isinstance(total, int) and not isinstance(total, bool):
            items = self.extract_list(envelope)
            return {"total": total, "has_more": len(items) >= (page_size or DEFAULT_PAGE_SIZE)}

        has_more = envelope.get("has_more")
        return {"total": None, "has_more": has_more if isinstance(has_more, bool) else None}

    def normalize_list(self, envelope: Any, page_size: Optional[int] = None) -> CanonicalList:
        pagination = self.extract_pagination(envelope, page_size)
        return CanonicalList(
            items=self.extract_list(envelope),
            total=pagination["total"],
            has_more=pagination["has_more"],
        )

    @staticmethod
    def paginate_locally(items: List[Any], page: int, page_size: int) -> PaginatedResult:
        """Slice a full listing into one page for servers without pagination"""
        page = max(page, 1)
        start = (page - 1) * page_size
        end = start + page_size
        return PaginatedResult(
            items=items[start:end],
            page=page,
            page_size=page_size,
            total=len(items),
            has_more=end < len(items),
        )
