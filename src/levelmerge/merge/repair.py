"""Bounded, deterministic repair of validation violations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from ..level.models import Level, Spline
from ..level.validator import Violation, ViolationKind
from ..logging import get_logger
from .allocator import IdAllocator
from .options import DEFAULT_NAMESPACES, NamespaceConfig
from .resolver import RenumberMap, resolve

__all__ = ["RepairResult", "fit_weights", "repair"]

log = get_logger("repair")


@dataclass(slots=True)
class RepairResult:
    repaired: int = 0
    renumber: RenumberMap = field(default_factory=RenumberMap)
    messages: List[str] = field(default_factory=list)
    unfixable: List[Violation] = field(default_factory=list)


def fit_weights(
    weights: Sequence[float], count: int, increment: float = 0.1
) -> List[float]:
    """Truncate or extend ``weights`` to ``count`` entries.

    Extension continues from the last value by ``increment``; an empty
    array starts at 0.0.
    """
    fitted = list(weights[:count])
    while len(fitted) < count:
        fitted.append(fitted[-1] + increment if fitted else 0.0)
    return fitted


def repair(
    level: Level,
    violations: Sequence[Violation],
    increment: float = 0.1,
    config: Mapping[str, NamespaceConfig] = DEFAULT_NAMESPACES,
    allocator: Optional[IdAllocator] = None,
) -> RepairResult:
    """Apply one repair pass for ``violations``.

    Dangling nullable references are cleared, duplicate ids are renumbered
    through the resolver, and spline weight arrays are re-derived from the
    vertex count. Missing non-nullable references cannot be repaired and are
    returned in ``unfixable``.
    """
    result = RepairResult()
    resolve_ns: List[str] = []
    for v in violations:
        if v.kind is ViolationKind.DANGLING_REFERENCE:
            cfg = config.get(v.namespace, NamespaceConfig(v.namespace))
            if cfg.nullable and v.ref is not None:
                v.ref.clear()
                result.repaired += 1
                result.messages.append(
                    f"{v.path}: cleared dangling {v.namespace} {v.entity_id}"
                )
            else:
                result.unfixable.append(v)
        elif v.kind is ViolationKind.NULL_REFERENCE:
            result.unfixable.append(v)
        elif v.kind is ViolationKind.DUPLICATE_ID:
            if v.namespace not in resolve_ns:
                resolve_ns.append(v.namespace)
        elif v.kind is ViolationKind.SIZE_MISMATCH:
            spline = v.owner
            if isinstance(spline, Spline):
                before = len(spline.weights)
                spline.weights = fit_weights(
                    spline.weights, spline.vertex_count, increment
                )
                result.repaired += 1
                result.messages.append(
                    f"{v.path}: weights {before} -> {len(spline.weights)}"
                )
            else:
                result.unfixable.append(v)
    if resolve_ns:
        renumber = resolve(
            level, resolve_ns, config=config, allocator=allocator
        )
        result.renumber.merge(renumber)
        result.repaired += renumber.count()
        for ns, pairs in renumber.entries.items():
            for old, new in pairs:
                result.messages.append(f"{ns} {old} renumbered to {new}")
    for message in result.messages:
        log.debug(message)
    return result
