"""Structured level diffs.

``diff_levels`` compares two levels per namespace: ids only in ``b`` are
added, ids only in ``a`` removed, and ids in both whose serialized record
differs are changed. Parameter blocks are compared by index. The result is
JSON-serializable with a stable shape.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from .level.models import ENTITY_NAMESPACES, Level, NS_PARAM
from .packing.packers import pack_entity

__all__ = ["diff_levels"]


def _records(level: Level, namespace: str) -> Dict[int, bytes]:
    if namespace == NS_PARAM:
        if level.params is None:
            return {}
        return {
            i: block for i, block in enumerate(level.params) if block is not None
        }
    coll = level.collection(namespace)
    out: Dict[int, bytes] = {}
    if coll is not None:
        for entity in coll:
            # First occurrence wins for duplicated ids.
            out.setdefault(entity.id, pack_entity(entity))
    return out


def _diff_namespace(
    a: Dict[int, bytes], b: Dict[int, bytes]
) -> Optional[Dict[str, List[int]]]:
    added = sorted(set(b) - set(a))
    removed = sorted(set(a) - set(b))
    changed = sorted(k for k in set(a) & set(b) if a[k] != b[k])
    if not (added or removed or changed):
        return None
    return {"added": added, "removed": removed, "changed": changed}


def diff_levels(a: Level, b: Level) -> Dict[str, Any]:
    namespaces: Dict[str, Dict[str, List[int]]] = {}
    for ns in ENTITY_NAMESPACES + (NS_PARAM,):
        entry = _diff_namespace(_records(a, ns), _records(b, ns))
        if entry is not None:
            namespaces[ns] = entry
    count = sum(
        len(v["added"]) + len(v["removed"]) + len(v["changed"])
        for v in namespaces.values()
    )
    return {
        "left": a.name,
        "right": b.name,
        "namespaces": namespaces,
        "summary": {"count": count},
    }
