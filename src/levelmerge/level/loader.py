"""Level document loading and dumping (JSON/YAML).

Documents are the human-editable form of a level used by the CLI and by
fixtures. References are plain ids; ``null`` marks an absent reference.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import json

import yaml

from ..errors import ConfigError, E_CONFIG
from ..utils.io import DataError, read_payload
from .models import (
    Collection,
    Instance,
    Level,
    Model,
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

__all__ = [
    "load_level",
    "parse_level_dict",
    "dump_level",
    "level_to_dict",
    "read_document",
]


def read_document(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        data: Any = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ConfigError(E_CONFIG, f"Root of {p.name} must be an object")
    return data


def load_level(path: str | Path) -> Level:
    p = Path(path)
    return parse_level_dict(read_document(p), p.parent)


def _opt_id(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _vec3(value: Any, default: tuple) -> tuple:
    if value is None:
        return default
    if not isinstance(value, (list, tuple)) or len(value) != 3:
        raise ConfigError(E_CONFIG, f"Expected 3 components, got {value!r}")
    return tuple(float(v) for v in value)


def _section(data: Dict[str, Any], key: str) -> Optional[List[Any]]:
    # An explicit null keeps the collection absent (fatal for merges).
    if key not in data:
        return []
    value = data[key]
    if value is None:
        return None
    if not isinstance(value, list):
        raise ConfigError(E_CONFIG, f"'{key}' must be a list")
    return value


def _parse_resource(entry: Dict[str, Any], base_dir: Path) -> Resource:
    return Resource(
        id=int(entry["id"]),
        width=int(entry.get("width", 0)),
        height=int(entry.get("height", 0)),
        mip_count=int(entry.get("mip_count", 1)),
        flags=int(entry.get("flags", 0)),
        data=read_payload(entry, base_dir),
    )


def _parse_spline(entry: Dict[str, Any]) -> Spline:
    return Spline(
        id=int(entry["id"]),
        vertices=[_vec3(v, (0.0, 0.0, 0.0)) for v in entry.get("vertices", [])],
        weights=[float(w) for w in entry.get("weights", [])],
    )


def _parse_model(entry: Dict[str, Any], base_dir: Path) -> Model:
    textures = []
    for tc in entry.get("textures", []) or []:
        if isinstance(tc, dict):
            textures.append(
                TextureConfig(
                    Ref(NS_RESOURCE, _opt_id(tc.get("texture"))),
                    int(tc.get("mode", 0)),
                )
            )
        else:
            textures.append(TextureConfig(Ref(NS_RESOURCE, _opt_id(tc))))
    kind = ModelKind(entry.get("kind", ModelKind.MOBY.value))
    extras = {
        k: entry[k]
        for k in ("bone_count", "animation_count", "cull_radius", "draw_distance")
        if k in entry
    }
    model = make_model(
        kind,
        int(entry["id"]),
        textures=textures,
        payload=read_payload(entry, base_dir, prefix="payload"),
        scale=float(entry.get("scale", 1.0)),
    )
    for name, value in extras.items():
        if not model.set_optional(name, value):
            raise ConfigError(
                E_CONFIG,
                f"Model {model.id} ({kind.value}) has no field '{name}'",
            )
    return model


def _parse_instance(entry: Dict[str, Any]) -> Instance:
    return Instance(
        id=int(entry["id"]),
        model=Ref(NS_MODEL, _opt_id(entry.get("model"))),
        resources=[
            Ref(NS_RESOURCE, _opt_id(r)) for r in entry.get("resources", []) or []
        ],
        spline=Ref(NS_SPLINE, _opt_id(entry.get("spline"))),
        params=Ref(NS_PARAM, _opt_id(entry.get("params"))),
        position=_vec3(entry.get("position"), (0.0, 0.0, 0.0)),
        rotation=_vec3(entry.get("rotation"), (0.0, 0.0, 0.0)),
        scale=float(entry.get("scale", 1.0)),
        light=int(entry.get("light", 0)),
    )


def parse_level_dict(data: Dict[str, Any], base_dir: Path = Path(".")) -> Level:
    try:
        resources = _section(data, "resources")
        splines = _section(data, "splines")
        models = _section(data, "models")
        instances = _section(data, "instances")
        params = _section(data, "params")
        return Level(
            name=str(data.get("name", "")),
            resources=None
            if resources is None
            else Collection(
                NS_RESOURCE, (_parse_resource(e, base_dir) for e in resources)
            ),
            splines=None
            if splines is None
            else Collection(NS_SPLINE, (_parse_spline(e) for e in splines)),
            models=None
            if models is None
            else Collection(
                NS_MODEL, (_parse_model(e, base_dir) for e in models)
            ),
            instances=None
            if instances is None
            else Collection(
                NS_INSTANCE, (_parse_instance(e) for e in instances)
            ),
            params=None
            if params is None
            else ParamTable(
                None if b is None else bytes.fromhex(b) for b in params
            ),
        )
    except (KeyError, TypeError, ValueError, DataError) as e:
        raise ConfigError(E_CONFIG, f"Invalid level document: {e}") from e


def level_to_dict(level: Level) -> Dict[str, Any]:
    def model(m: Model) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": m.id,
            "kind": m.kind.value,
            "textures": [
                {"texture": tc.texture.id, "mode": tc.mode} for tc in m.textures
            ],
            "scale": m.scale,
        }
        if m.payload:
            d["payload_hex"] = m.payload.hex()
        for name in sorted(m.optional_fields):
            d[name] = m.get_optional(name)
        return d

    def instance(i: Instance) -> Dict[str, Any]:
        return {
            "id": i.id,
            "model": i.model.id,
            "resources": [r.id for r in i.resources],
            "spline": i.spline.id,
            "params": i.params.id,
            "position": list(i.position),
            "rotation": list(i.rotation),
            "scale": i.scale,
            "light": i.light,
        }

    out: Dict[str, Any] = {"name": level.name}
    if level.resources is not None:
        out["resources"] = [
            {
                "id": r.id,
                "width": r.width,
                "height": r.height,
                "mip_count": r.mip_count,
                "flags": r.flags,
                "data_hex": r.data.hex(),
            }
            for r in level.resources
        ]
    if level.splines is not None:
        out["splines"] = [
            {
                "id": s.id,
                "vertices": [list(v) for v in s.vertices],
                "weights": list(s.weights),
            }
            for s in level.splines
        ]
    if level.models is not None:
        out["models"] = [model(m) for m in level.models]
    if level.instances is not None:
        out["instances"] = [instance(i) for i in level.instances]
    if level.params is not None:
        out["params"] = [None if b is None else b.hex() for b in level.params]
    return out


def dump_level(level: Level, path: str | Path) -> None:
    p = Path(path)
    data = level_to_dict(level)
    if p.suffix.lower() in {".yaml", ".yml"}:
        text = yaml.safe_dump(data, sort_keys=False)
    else:
        text = json.dumps(data, indent=2)
    p.write_text(text, encoding="utf-8")
