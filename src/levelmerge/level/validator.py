"""Reference integrity validation.

``validate`` scans a level and returns every violation it finds, in a
stable order: duplicate ids per collection, then references in collection
order, then parameter index sharing, then spline buffer sizes. The level is
never mutated.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from ..errors import E_DUP, E_NULL, E_REF, E_SIZE
from .namespaces import DEFAULT_NAMESPACES, NamespaceConfig
from .models import Entity, Level, NS_PARAM, Ref

__all__ = ["ViolationKind", "Violation", "validate", "collection_key"]


class ViolationKind(Enum):
    NULL_REFERENCE = E_NULL
    DANGLING_REFERENCE = E_REF
    DUPLICATE_ID = E_DUP
    SIZE_MISMATCH = E_SIZE


@dataclass(slots=True)
class Violation:
    kind: ViolationKind
    path: str
    message: str
    namespace: str = ""
    entity_id: Optional[int] = None
    owner: Optional[Entity] = field(default=None, repr=False, compare=False)
    ref: Optional[Ref] = field(default=None, repr=False, compare=False)

    @property
    def code(self) -> str:
        return self.kind.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "path": self.path,
            "message": self.message,
            "namespace": self.namespace,
            "id": self.entity_id,
        }


_COLLECTION_KEYS = {
    "model": "models",
    "instance": "instances",
    "resource": "resources",
    "spline": "splines",
}


def collection_key(namespace: str) -> str:
    return _COLLECTION_KEYS.get(namespace, namespace)


def _ref_label(owner: Entity, ref: Ref) -> str:
    # Field name of ``ref`` inside its owner, for violation paths.
    for name in ("model", "spline", "params"):
        if getattr(owner, name, None) is ref:
            return name
    resources = getattr(owner, "resources", None)
    if resources is not None:
        for i, r in enumerate(resources):
            if r is ref:
                return f"resources[{i}]"
    for i, tc in enumerate(getattr(owner, "textures", ())):
        if tc.texture is ref:
            return f"textures[{i}].texture"
    return "ref"


def _resolves(level: Level, ref: Ref, known: Dict[str, Set[int]]) -> bool:
    if ref.namespace == NS_PARAM:
        return level.params is not None and level.params.contains(ref.id)
    ids = known.get(ref.namespace)
    if ids is None:
        ids = known[ref.namespace] = level.known_ids(ref.namespace)
    return ref.id in ids


def validate(
    level: Level, namespaces: Mapping[str, NamespaceConfig] = DEFAULT_NAMESPACES
) -> List[Violation]:
    violations: List[Violation] = []

    for coll in level.iter_collections():
        key = collection_key(coll.namespace)
        seen: Dict[int, int] = {}
        for pos, entity in enumerate(coll):
            if entity.id in seen:
                violations.append(
                    Violation(
                        ViolationKind.DUPLICATE_ID,
                        f"{key}[{pos}]",
                        f"{coll.namespace} id {entity.id} already used at "
                        f"{key}[{seen[entity.id]}]",
                        coll.namespace,
                        entity.id,
                        owner=entity,
                    )
                )
            else:
                seen[entity.id] = pos

    positions: Dict[int, int] = {}
    for coll in level.iter_collections():
        for pos, entity in enumerate(coll):
            positions[id(entity)] = pos

    referrers: Dict[str, Dict[int, str]] = {}
    known: Dict[str, Set[int]] = {}
    for owner, ref in level.iter_references():
        path = (
            f"{collection_key(owner.namespace)}[{positions[id(owner)]}]."
            f"{_ref_label(owner, ref)}"
        )
        cfg = namespaces.get(ref.namespace, NamespaceConfig(ref.namespace))
        if ref.is_null:
            if not cfg.nullable:
                violations.append(
                    Violation(
                        ViolationKind.NULL_REFERENCE,
                        path,
                        f"{owner.namespace} {owner.id} has no {ref.namespace}",
                        ref.namespace,
                        None,
                        owner=owner,
                        ref=ref,
                    )
                )
            continue
        if not _resolves(level, ref, known):
            violations.append(
                Violation(
                    ViolationKind.DANGLING_REFERENCE,
                    path,
                    f"{ref.namespace} {ref.id} referenced by "
                    f"{owner.namespace} {owner.id} does not exist",
                    ref.namespace,
                    ref.id,
                    owner=owner,
                    ref=ref,
                )
            )
            continue
        if cfg.exclusive:
            first = referrers.setdefault(ref.namespace, {}).setdefault(
                ref.id, path
            )
            if first != path:
                violations.append(
                    Violation(
                        ViolationKind.DUPLICATE_ID,
                        path,
                        f"{ref.namespace} {ref.id} already referenced by "
                        f"{first}",
                        ref.namespace,
                        ref.id,
                        owner=owner,
                        ref=ref,
                    )
                )

    if level.splines is not None:
        for pos, spline in enumerate(level.splines):
            if len(spline.weights) != spline.vertex_count:
                violations.append(
                    Violation(
                        ViolationKind.SIZE_MISMATCH,
                        f"splines[{pos}].weights",
                        f"spline {spline.id} has {spline.vertex_count} "
                        f"vertices but {len(spline.weights)} weights",
                        spline.namespace,
                        spline.id,
                        owner=spline,
                    )
                )
    return violations
