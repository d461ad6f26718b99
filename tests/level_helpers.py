"""Small level builders shared by the tests."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from levelmerge.level.models import (
    Collection,
    Instance,
    Level,
    ModelKind,
    NS_INSTANCE,
    NS_MODEL,
    NS_PARAM,
    NS_RESOURCE,
    NS_SPLINE,
    ParamTable,
    Ref,
    Resource,
    Spline,
    TextureConfig,
    make_model,
)


def texture(rid: int, fill: int, size: int = 64, w: int = 8, h: int = 8) -> Resource:
    data = bytes((fill + i) % 256 for i in range(size))
    return Resource(id=rid, width=w, height=h, data=data)


def model(mid: int, textures: Sequence[int] = (), kind: ModelKind = ModelKind.MOBY):
    return make_model(
        kind,
        mid,
        textures=[TextureConfig(Ref(NS_RESOURCE, t)) for t in textures],
    )


def instance(
    iid: int,
    model_id: Optional[int],
    resources: Iterable[Optional[int]] = (),
    spline: Optional[int] = None,
    params: Optional[int] = None,
    position=(0.0, 0.0, 0.0),
) -> Instance:
    return Instance(
        id=iid,
        model=Ref(NS_MODEL, model_id),
        resources=[Ref(NS_RESOURCE, r) for r in resources],
        spline=Ref(NS_SPLINE, spline),
        params=Ref(NS_PARAM, params),
        position=position,
    )


def spline(sid: int, points: int, weights: int) -> Spline:
    return Spline(
        id=sid,
        vertices=[(float(i), 0.0, 0.0) for i in range(points)],
        weights=[0.5 * i for i in range(weights)],
    )


def make_level(
    name: str = "level",
    models=(),
    instances=(),
    resources=(),
    splines=(),
    params=(),
) -> Level:
    return Level(
        name=name,
        models=Collection(NS_MODEL, models),
        instances=Collection(NS_INSTANCE, instances),
        resources=Collection(NS_RESOURCE, resources),
        splines=Collection(NS_SPLINE, splines),
        params=ParamTable(params),
    )
