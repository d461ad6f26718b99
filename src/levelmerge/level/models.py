"""Dataclass models for level collections and their cross references.

Every record carries an integer id unique within its namespace. Links between
records are :class:`Ref` objects: a raw id (``None`` meaning absent) plus an
optional ownership handle to the referenced entity. Handle-bound references
follow their entity when it is renumbered; raw ones are matched by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any,
    ClassVar,
    Dict,
    FrozenSet,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

NS_MODEL = "model"
NS_INSTANCE = "instance"
NS_RESOURCE = "resource"
NS_SPLINE = "spline"
NS_PARAM = "param-index"

ENTITY_NAMESPACES = (NS_MODEL, NS_INSTANCE, NS_RESOURCE, NS_SPLINE)
ALL_NAMESPACES = ENTITY_NAMESPACES + (NS_PARAM,)

Vec3 = Tuple[float, float, float]


@dataclass(slots=True, eq=False)
class Ref:
    namespace: str
    id: Optional[int] = None
    target: Optional[Any] = field(default=None, repr=False)

    @classmethod
    def to(cls, namespace: str, entity: "Entity") -> "Ref":
        return cls(namespace, entity.id, entity)

    @property
    def is_null(self) -> bool:
        return self.id is None

    def bind(self, entity: "Entity") -> None:
        self.target = entity
        self.id = entity.id

    def point_at(self, new_id: Optional[int]) -> None:
        """Raw rewrite; drops any handle."""
        self.id = new_id
        self.target = None

    def clear(self) -> None:
        self.point_at(None)

    def follows(self, entity: object) -> bool:
        return self.target is not None and self.target is entity

    def detached(self) -> "Ref":
        # Handles never cross a level boundary.
        return Ref(self.namespace, self.id)


class Entity:
    """Base for records stored in a :class:`Collection`."""

    __slots__ = ()
    namespace: ClassVar[str] = ""
    id: int

    def references(self) -> Iterator[Ref]:
        return iter(())

    def clone(self) -> "Entity":  # pragma: no cover - every kind overrides
        raise NotImplementedError


@dataclass(slots=True, eq=False)
class Resource(Entity):
    namespace: ClassVar[str] = NS_RESOURCE
    id: int
    width: int = 0
    height: int = 0
    mip_count: int = 1
    data: bytes = b""
    flags: int = 0

    def clone(self) -> "Resource":
        return replace(self, data=bytes(self.data))


@dataclass(slots=True, eq=False)
class Spline(Entity):
    namespace: ClassVar[str] = NS_SPLINE
    id: int
    vertices: List[Vec3] = field(default_factory=list)
    weights: List[float] = field(default_factory=list)

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def clone(self) -> "Spline":
        return replace(
            self, vertices=list(self.vertices), weights=list(self.weights)
        )


@dataclass(slots=True, eq=False)
class TextureConfig:
    texture: Ref = field(default_factory=lambda: Ref(NS_RESOURCE))
    mode: int = 0

    def clone(self) -> "TextureConfig":
        return TextureConfig(texture=self.texture.detached(), mode=self.mode)


class ModelKind(Enum):
    MOBY = "moby"
    TIE = "tie"
    SHRUB = "shrub"


@dataclass(slots=True, eq=False)
class Model(Entity):
    """Model definition; concrete kinds are the variant subclasses below.

    Variant-only fields are reached through :meth:`get_optional` and
    :meth:`set_optional`, which consult ``optional_fields`` first.
    """

    namespace: ClassVar[str] = NS_MODEL
    kind: ClassVar[ModelKind]
    optional_fields: ClassVar[FrozenSet[str]] = frozenset()
    id: int
    textures: List[TextureConfig] = field(default_factory=list)
    payload: bytes = b""
    scale: float = 1.0

    def references(self) -> Iterator[Ref]:
        for tc in self.textures:
            yield tc.texture

    def supports(self, name: str) -> bool:
        return name in self.optional_fields

    def get_optional(self, name: str) -> Any:
        if not self.supports(name):
            return None
        return getattr(self, name)

    def set_optional(self, name: str, value: Any) -> bool:
        if not self.supports(name):
            return False
        setattr(self, name, value)
        return True

    def clone(self) -> "Model":
        return replace(
            self,
            textures=[tc.clone() for tc in self.textures],
            payload=bytes(self.payload),
        )


@dataclass(slots=True, eq=False)
class MobyModel(Model):
    kind: ClassVar[ModelKind] = ModelKind.MOBY
    optional_fields: ClassVar[FrozenSet[str]] = frozenset(
        {"bone_count", "animation_count"}
    )
    bone_count: int = 0
    animation_count: int = 0


@dataclass(slots=True, eq=False)
class TieModel(Model):
    kind: ClassVar[ModelKind] = ModelKind.TIE
    optional_fields: ClassVar[FrozenSet[str]] = frozenset({"cull_radius"})
    cull_radius: float = 0.0


@dataclass(slots=True, eq=False)
class ShrubModel(Model):
    kind: ClassVar[ModelKind] = ModelKind.SHRUB
    optional_fields: ClassVar[FrozenSet[str]] = frozenset(
        {"cull_radius", "draw_distance"}
    )
    cull_radius: float = 0.0
    draw_distance: float = 0.0


MODEL_VARIANTS: Dict[ModelKind, Type[Model]] = {
    ModelKind.MOBY: MobyModel,
    ModelKind.TIE: TieModel,
    ModelKind.SHRUB: ShrubModel,
}


def make_model(kind: ModelKind | str, model_id: int, **fields: Any) -> Model:
    """Build a model variant; unknown optional fields are rejected."""
    cls = MODEL_VARIANTS[ModelKind(kind)]
    optional = {k: fields.pop(k) for k in list(fields) if k in cls.optional_fields}
    model = cls(id=model_id, **fields)
    for name, value in optional.items():
        model.set_optional(name, value)
    return model


@dataclass(slots=True, eq=False)
class Instance(Entity):
    namespace: ClassVar[str] = NS_INSTANCE
    id: int
    model: Ref = field(default_factory=lambda: Ref(NS_MODEL))
    resources: List[Ref] = field(default_factory=list)
    spline: Ref = field(default_factory=lambda: Ref(NS_SPLINE))
    params: Ref = field(default_factory=lambda: Ref(NS_PARAM))
    position: Vec3 = (0.0, 0.0, 0.0)
    rotation: Vec3 = (0.0, 0.0, 0.0)
    scale: float = 1.0
    light: int = 0

    @property
    def model_id(self) -> Optional[int]:
        return self.model.id

    def references(self) -> Iterator[Ref]:
        yield self.model
        yield from self.resources
        yield self.spline
        yield self.params

    def copy_transform_from(self, other: "Instance") -> None:
        self.position = other.position
        self.rotation = other.rotation
        self.scale = other.scale

    def clone(self) -> "Instance":
        return replace(
            self,
            model=self.model.detached(),
            resources=[r.detached() for r in self.resources],
            spline=self.spline.detached(),
            params=self.params.detached(),
        )


E = TypeVar("E", bound=Entity)


class Collection(Generic[E]):
    """Ordered entities of a single namespace."""

    def __init__(self, namespace: str, entities: Iterable[E] = ()) -> None:
        self.namespace = namespace
        self._items: List[E] = list(entities)

    def __iter__(self) -> Iterator[E]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> E:
        return self._items[index]

    def __repr__(self) -> str:  # convenience for tests
        return f"Collection({self.namespace!r}, ids={self.ids()})"

    def ids(self) -> List[int]:
        return [e.id for e in self._items]

    def id_set(self) -> set[int]:
        return {e.id for e in self._items}

    def find(self, entity_id: int) -> Optional[E]:
        for e in self._items:
            if e.id == entity_id:
                return e
        return None

    def append(self, entity: E) -> E:
        self._items.append(entity)
        return entity

    def remove(self, entity: E) -> None:
        self._items = [e for e in self._items if e is not entity]


class ParamTable:
    """Position-indexed parameter blocks.

    Removing a block leaves a hole; indices are never compacted because
    existing instances address blocks by position.
    """

    namespace = NS_PARAM

    def __init__(self, blocks: Iterable[Optional[bytes]] = ()) -> None:
        self._slots: List[Optional[bytes]] = [
            bytes(b) if b is not None else None for b in blocks
        ]

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[Optional[bytes]]:
        return iter(self._slots)

    def get(self, index: int) -> Optional[bytes]:
        if 0 <= index < len(self._slots):
            return self._slots[index]
        return None

    def contains(self, index: int) -> bool:
        return self.get(index) is not None

    def indices(self) -> List[int]:
        return [i for i, b in enumerate(self._slots) if b is not None]

    def add(self, data: bytes) -> int:
        self._slots.append(bytes(data))
        return len(self._slots) - 1

    def put(self, index: int, data: bytes) -> None:
        if index < 0:
            raise ValueError(f"Negative param index: {index}")
        while len(self._slots) <= index:
            self._slots.append(None)
        self._slots[index] = bytes(data)

    def remove(self, index: int) -> None:
        if 0 <= index < len(self._slots):
            self._slots[index] = None


@dataclass(eq=False)
class Level:
    name: str = ""
    models: Optional[Collection[Model]] = field(
        default_factory=lambda: Collection(NS_MODEL)
    )
    instances: Optional[Collection[Instance]] = field(
        default_factory=lambda: Collection(NS_INSTANCE)
    )
    resources: Optional[Collection[Resource]] = field(
        default_factory=lambda: Collection(NS_RESOURCE)
    )
    splines: Optional[Collection[Spline]] = field(
        default_factory=lambda: Collection(NS_SPLINE)
    )
    params: Optional[ParamTable] = field(default_factory=ParamTable)
    # Derived lists, rebuilt on finalize.
    model_ids: List[int] = field(default_factory=list)
    instance_ids: List[int] = field(default_factory=list)
    # Records the loader left undecoded, by namespace.
    raw_records: Dict[str, List[bytes]] = field(default_factory=dict)

    def collection(self, namespace: str) -> Optional[Collection]:
        return {
            NS_MODEL: self.models,
            NS_INSTANCE: self.instances,
            NS_RESOURCE: self.resources,
            NS_SPLINE: self.splines,
        }.get(namespace)

    def iter_collections(self) -> Iterator[Collection]:
        for ns in ENTITY_NAMESPACES:
            coll = self.collection(ns)
            if coll is not None:
                yield coll

    def iter_references(self) -> Iterator[Tuple[Entity, Ref]]:
        """All (owner, ref) pairs in collection order."""
        for coll in self.iter_collections():
            for owner in coll:
                for ref in owner.references():
                    yield owner, ref

    def entity_count(self) -> int:
        return sum(len(c) for c in self.iter_collections())

    def find(self, namespace: str, entity_id: int) -> Optional[Entity]:
        """Look an entity up, falling back to undecoded loader records."""
        coll = self.collection(namespace)
        if coll is not None:
            hit = coll.find(entity_id)
            if hit is not None:
                return hit
        raw = self.raw_records.get(namespace)
        if not raw:
            return None
        from ..packing.packers import peek_record_id, unpack_entity

        for record in raw:
            if peek_record_id(record) == entity_id:
                return unpack_entity(namespace, record)
        return None

    def known_ids(self, namespace: str) -> set[int]:
        """Ids present in a namespace, including undecoded loader records."""
        coll = self.collection(namespace)
        ids = coll.id_set() if coll is not None else set()
        raw = self.raw_records.get(namespace)
        if raw:
            from ..packing.packers import peek_record_id

            ids.update(peek_record_id(record) for record in raw)
        return ids

    def rebuild_index_lists(self) -> None:
        models = self.models if self.models is not None else ()
        instances = self.instances if self.instances is not None else ()
        used = {m.id for m in models}
        used.update(i.model.id for i in instances if i.model.id is not None)
        self.model_ids = sorted(used)
        self.instance_ids = [i.id for i in instances]


__all__ = [
    "NS_MODEL",
    "NS_INSTANCE",
    "NS_RESOURCE",
    "NS_SPLINE",
    "NS_PARAM",
    "ENTITY_NAMESPACES",
    "ALL_NAMESPACES",
    "Ref",
    "Entity",
    "Resource",
    "Spline",
    "TextureConfig",
    "ModelKind",
    "Model",
    "MobyModel",
    "TieModel",
    "ShrubModel",
    "MODEL_VARIANTS",
    "make_model",
    "Instance",
    "Collection",
    "ParamTable",
    "Level",
]
