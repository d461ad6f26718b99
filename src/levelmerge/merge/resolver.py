"""Conflict resolution and reference rewriting.

Within a namespace the first entity (collection order) keeps a duplicated
id and later ones are renumbered. Under ``SpacePolicy.SHARED`` the
namespaces of each shared group also collide with each other; the
lower-priority namespace is renumbered.

After an entity moves from ``old`` to ``new``:

* references bound to it by handle follow it;
* raw references ``(namespace, old)`` are rewritten only when no entity in
  the namespace still carries ``old``. Otherwise they keep pointing at the
  entity that kept the id.

Exclusive namespaces (parameter indices) allow one referrer per index; later
referrers receive a fresh slot holding a copy of the block.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from ..level.models import ENTITY_NAMESPACES, Entity, Level, NS_PARAM
from ..logging import get_logger
from .allocator import IdAllocator, next_free_id
from .options import DEFAULT_NAMESPACES, NamespaceConfig, SpacePolicy

__all__ = ["RenumberMap", "resolve", "renumber_entity"]

log = get_logger("resolver")


@dataclass(slots=True)
class RenumberMap:
    """Ordered ``old -> new`` pairs per namespace.

    Pairs are kept as a list because one old id can be renumbered several
    times (three entities sharing id 7 produce two pairs for 7).
    """

    entries: Dict[str, List[Tuple[int, int]]] = field(default_factory=dict)
    rewritten: int = 0

    def record(self, namespace: str, old: int, new: int) -> None:
        self.entries.setdefault(namespace, []).append((old, new))

    def pairs(self, namespace: str) -> List[Tuple[int, int]]:
        return list(self.entries.get(namespace, ()))

    def count(self) -> int:
        return sum(len(v) for v in self.entries.values())

    def merge(self, other: "RenumberMap") -> None:
        for ns, pairs in other.entries.items():
            self.entries.setdefault(ns, []).extend(pairs)
        self.rewritten += other.rewritten

    def __bool__(self) -> bool:
        return bool(self.entries)

    def to_dict(self) -> Dict[str, List[List[int]]]:
        return {
            ns: [[old, new] for old, new in pairs]
            for ns, pairs in self.entries.items()
        }


def renumber_entity(
    level: Level, entity: Entity, new_id: int, renumber: RenumberMap
) -> int:
    """Move ``entity`` to ``new_id`` and rewrite every reference to it.

    Returns the number of references rewritten.
    """
    ns = entity.namespace
    old = entity.id
    entity.id = new_id
    renumber.record(ns, old, new_id)
    coll = level.collection(ns)
    old_still_taken = coll is not None and coll.find(old) is not None
    rewritten = 0
    for _, ref in level.iter_references():
        if ref.namespace != ns:
            continue
        if ref.follows(entity):
            ref.id = new_id
            rewritten += 1
        elif ref.target is None and ref.id == old and not old_still_taken:
            ref.id = new_id
            rewritten += 1
    renumber.rewritten += rewritten
    log.debug(
        "%s %d -> %d (%d reference(s) rewritten)", ns, old, new_id, rewritten
    )
    return rewritten


def _resolve_namespace(
    level: Level, namespace: str, allocator: IdAllocator, renumber: RenumberMap
) -> None:
    coll = level.collection(namespace)
    if coll is None:
        return
    seen: Set[int] = set()
    losers: List[Entity] = []
    for entity in coll:
        if entity.id in seen:
            losers.append(entity)
        else:
            seen.add(entity.id)
    for entity in losers:
        renumber_entity(level, entity, allocator.allocate(namespace), renumber)


def _resolve_shared_group(
    level: Level,
    group: Sequence[str],
    allocator: IdAllocator,
    renumber: RenumberMap,
) -> None:
    taken: Set[int] = set()
    for ns in group:
        coll = level.collection(ns)
        if coll is None:
            continue
        # Snapshot: renumbering mutates ids while iterating.
        collide = [e for e in coll if e.id in taken]
        own = allocator.used(ns)
        for entity in collide:
            union = taken | own
            start = max(max(union) + 1, allocator.band_floor(ns))
            new_id = next_free_id(union, start)
            allocator.reserve(ns, new_id)
            renumber_entity(level, entity, new_id, renumber)
        taken.update(coll.id_set())


def _split_exclusive(
    level: Level, namespace: str, allocator: IdAllocator, renumber: RenumberMap
) -> None:
    if namespace != NS_PARAM or level.params is None:
        return
    claimed: Set[int] = set()
    for _, ref in list(level.iter_references()):
        if ref.namespace != namespace or ref.is_null:
            continue
        if ref.id not in claimed:
            claimed.add(ref.id)
            continue
        block = level.params.get(ref.id)
        if block is None:
            continue  # dangling; left to validation
        new_index = level.params.add(block)
        allocator.reserve(namespace, new_index)
        renumber.record(namespace, ref.id, new_index)
        renumber.rewritten += 1
        log.debug("%s %d split to %d", namespace, ref.id, new_index)
        ref.point_at(new_index)


def resolve(
    level: Level,
    namespaces: Optional[Iterable[str]] = None,
    policy: SpacePolicy = SpacePolicy.SEPARATE,
    shared_spaces: Sequence[Sequence[str]] = (),
    config: Mapping[str, NamespaceConfig] = DEFAULT_NAMESPACES,
    allocator: Optional[IdAllocator] = None,
) -> RenumberMap:
    """Make ids unique per namespace and return the renumbering performed."""
    selected = list(namespaces) if namespaces is not None else list(config)
    allocator = allocator or IdAllocator(level, config)
    renumber = RenumberMap()
    for ns in ENTITY_NAMESPACES:
        if ns in selected:
            _resolve_namespace(level, ns, allocator, renumber)
    if policy is SpacePolicy.SHARED:
        for group in shared_spaces:
            if any(ns in selected for ns in group):
                _resolve_shared_group(level, group, allocator, renumber)
    for ns in selected:
        cfg = config.get(ns)
        if cfg is not None and cfg.exclusive:
            _split_exclusive(level, ns, allocator, renumber)
    return renumber
