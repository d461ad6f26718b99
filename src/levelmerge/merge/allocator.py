"""Identifier allocation.

``next_free_id`` is the pure primitive. ``IdAllocator`` owns one used-id set
per namespace for the duration of a merge session, so an id it hands out is
never handed out again.
"""

from __future__ import annotations

from typing import AbstractSet, Dict, Iterable, Mapping, Optional, Set

from ..level.models import Level, NS_PARAM
from ..packing.packers import peek_record_id
from .options import DEFAULT_NAMESPACES, NamespaceConfig

__all__ = ["next_free_id", "used_ids", "IdAllocator"]


def next_free_id(used_ids: AbstractSet[int], start_hint: int) -> int:
    """Return the smallest integer >= ``start_hint`` not in ``used_ids``."""
    candidate = start_hint
    while candidate in used_ids:
        candidate += 1
    return candidate


def used_ids(level: Level, namespace: str) -> Set[int]:
    """Ids currently taken in ``namespace``, undecoded records included."""
    if namespace == NS_PARAM:
        # Holes stay reserved; indices are never reused.
        return set(range(len(level.params))) if level.params is not None else set()
    coll = level.collection(namespace)
    ids: Set[int] = coll.id_set() if coll is not None else set()
    for record in level.raw_records.get(namespace, ()):
        ids.add(peek_record_id(record))
    return ids


class IdAllocator:
    """Per-session id allocation for one level.

    Args:
        level: Level whose ids seed the used sets.
        namespaces: Namespace configuration (high bands).
    """

    def __init__(
        self,
        level: Level,
        namespaces: Mapping[str, NamespaceConfig] = DEFAULT_NAMESPACES,
    ) -> None:
        self._level = level
        self._namespaces = namespaces
        self._used: Dict[str, Set[int]] = {}

    def used(self, namespace: str) -> Set[int]:
        if namespace not in self._used:
            self._used[namespace] = used_ids(self._level, namespace)
        return self._used[namespace]

    def reserve(self, namespace: str, ids: int | Iterable[int]) -> None:
        used = self.used(namespace)
        if isinstance(ids, int):
            used.add(ids)
        else:
            used.update(ids)

    def is_used(self, namespace: str, entity_id: int) -> bool:
        return entity_id in self.used(namespace)

    def band_floor(self, namespace: str) -> int:
        cfg = self._namespaces.get(namespace)
        if cfg is None or cfg.high_band is None:
            return 0
        return cfg.high_band + 1

    def allocate(self, namespace: str, start_hint: Optional[int] = None) -> int:
        """Allocate and reserve a fresh id in ``namespace``.

        Without a hint allocation starts past the highest used id. Banded
        namespaces never allocate at or below their band.
        """
        used = self.used(namespace)
        if start_hint is None:
            start_hint = max(used) + 1 if used else 0
        start_hint = max(start_hint, self.band_floor(namespace))
        new_id = next_free_id(used, start_hint)
        used.add(new_id)
        return new_id
