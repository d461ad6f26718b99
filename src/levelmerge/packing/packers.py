"""Pure binary packing functions for level records.

Each entity kind has a ``pack_*`` (toByteArray) and ``unpack_*`` (fromBytes)
pair. All functions are side-effect free and validate sizes.
"""

from __future__ import annotations

import struct
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import BinaryFormatError, E_FORMAT
from ..level.models import (
    Entity,
    Instance,
    Model,
    ModelKind,
    MODEL_VARIANTS,
    NS_INSTANCE,
    NS_MODEL,
    NS_PARAM,
    NS_RESOURCE,
    NS_SPLINE,
    Ref,
    Resource,
    Spline,
    TextureConfig,
)
from .constants import HOLE_LENGTH, MAX_RECORD_SIZE, NULL_ID

__all__ = [
    "pack_resource",
    "unpack_resource",
    "pack_spline",
    "unpack_spline",
    "pack_model",
    "unpack_model",
    "pack_instance",
    "unpack_instance",
    "pack_param_block",
    "unpack_param_block",
    "pack_entity",
    "unpack_entity",
    "peek_record_id",
]

# id, width, height, mip_count, flags, data_len
_RESOURCE_HEADER = struct.Struct("<iIIIII")
# id, vertex_count, weight_count
_SPLINE_HEADER = struct.Struct("<iII")
# id, kind, texture_count, payload_len, scale,
# bone_count, animation_count, cull_radius, draw_distance
_MODEL_HEADER = struct.Struct("<iBxHIfIIff")
_TEXTURE_CONFIG = struct.Struct("<iI")
# id, model, spline, params, resource_count, light, position, rotation, scale
_INSTANCE_HEADER = struct.Struct("<iiiiII3f3ff")
_PARAM_HEADER = struct.Struct("<I")
_I32 = struct.Struct("<i")

_MODEL_KIND_CODES = {ModelKind.MOBY: 0, ModelKind.TIE: 1, ModelKind.SHRUB: 2}
_MODEL_KIND_BY_CODE = {v: k for k, v in _MODEL_KIND_CODES.items()}


def _encode_ref(ref: Ref) -> int:
    return NULL_ID if ref.id is None else ref.id


def _decode_ref(namespace: str, raw: int) -> Ref:
    return Ref(namespace, None if raw == NULL_ID else raw)


def _pack(fmt: struct.Struct, *values) -> bytes:
    try:
        return fmt.pack(*values)
    except struct.error as e:
        raise BinaryFormatError(
            E_FORMAT, f"Value out of range for record: {e}", {"values": values}
        ) from e


def _need(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise BinaryFormatError(
            E_FORMAT,
            f"{what} record truncated: {len(data)} < {size}",
        )
    if size > MAX_RECORD_SIZE:
        raise BinaryFormatError(E_FORMAT, f"{what} record too large: {size}")


def pack_resource(res: Resource) -> bytes:
    return (
        _pack(
            _RESOURCE_HEADER,
            res.id,
            res.width,
            res.height,
            res.mip_count,
            res.flags,
            len(res.data),
        )
        + res.data
    )


def unpack_resource(data: bytes) -> Resource:
    _need(data, _RESOURCE_HEADER.size, "Resource")
    rid, w, h, mips, flags, n = _RESOURCE_HEADER.unpack_from(data)
    start = _RESOURCE_HEADER.size
    _need(data, start + n, "Resource")
    return Resource(
        id=rid,
        width=w,
        height=h,
        mip_count=mips,
        flags=flags,
        data=bytes(data[start : start + n]),
    )


def pack_spline(spline: Spline) -> bytes:
    out = bytearray(
        _pack(_SPLINE_HEADER, spline.id, len(spline.vertices), len(spline.weights))
    )
    for v in spline.vertices:
        out += struct.pack("<3f", *v)
    out += struct.pack(f"<{len(spline.weights)}f", *spline.weights)
    return bytes(out)


def unpack_spline(data: bytes) -> Spline:
    _need(data, _SPLINE_HEADER.size, "Spline")
    sid, vcount, wcount = _SPLINE_HEADER.unpack_from(data)
    off = _SPLINE_HEADER.size
    _need(data, off + vcount * 12 + wcount * 4, "Spline")
    vertices = [
        struct.unpack_from("<3f", data, off + i * 12) for i in range(vcount)
    ]
    off += vcount * 12
    weights = list(struct.unpack_from(f"<{wcount}f", data, off))
    return Spline(id=sid, vertices=vertices, weights=weights)


def pack_model(model: Model) -> bytes:
    out = bytearray(
        _pack(
            _MODEL_HEADER,
            model.id,
            _MODEL_KIND_CODES[model.kind],
            len(model.textures),
            len(model.payload),
            model.scale,
            model.get_optional("bone_count") or 0,
            model.get_optional("animation_count") or 0,
            model.get_optional("cull_radius") or 0.0,
            model.get_optional("draw_distance") or 0.0,
        )
    )
    for tc in model.textures:
        out += _pack(_TEXTURE_CONFIG, _encode_ref(tc.texture), tc.mode)
    out += model.payload
    return bytes(out)


def unpack_model(data: bytes) -> Model:
    _need(data, _MODEL_HEADER.size, "Model")
    (
        mid,
        kind_code,
        tex_count,
        payload_len,
        scale,
        bones,
        anims,
        cull,
        draw,
    ) = _MODEL_HEADER.unpack_from(data)
    kind = _MODEL_KIND_BY_CODE.get(kind_code)
    if kind is None:
        raise BinaryFormatError(E_FORMAT, f"Unknown model kind code {kind_code}")
    off = _MODEL_HEADER.size
    _need(data, off + tex_count * _TEXTURE_CONFIG.size + payload_len, "Model")
    textures: List[TextureConfig] = []
    for _ in range(tex_count):
        tex_id, mode = _TEXTURE_CONFIG.unpack_from(data, off)
        textures.append(TextureConfig(_decode_ref(NS_RESOURCE, tex_id), mode))
        off += _TEXTURE_CONFIG.size
    model = MODEL_VARIANTS[kind](
        id=mid,
        textures=textures,
        payload=bytes(data[off : off + payload_len]),
        scale=scale,
    )
    for name, value in (
        ("bone_count", bones),
        ("animation_count", anims),
        ("cull_radius", cull),
        ("draw_distance", draw),
    ):
        model.set_optional(name, value)
    return model


def pack_instance(inst: Instance) -> bytes:
    out = bytearray(
        _pack(
            _INSTANCE_HEADER,
            inst.id,
            _encode_ref(inst.model),
            _encode_ref(inst.spline),
            _encode_ref(inst.params),
            len(inst.resources),
            inst.light,
            *inst.position,
            *inst.rotation,
            inst.scale,
        )
    )
    for ref in inst.resources:
        out += _pack(_I32, _encode_ref(ref))
    return bytes(out)


def unpack_instance(data: bytes) -> Instance:
    _need(data, _INSTANCE_HEADER.size, "Instance")
    values = _INSTANCE_HEADER.unpack_from(data)
    iid, model_id, spline_id, param_index, res_count, light = values[:6]
    off = _INSTANCE_HEADER.size
    _need(data, off + res_count * 4, "Instance")
    resources = [
        _decode_ref(NS_RESOURCE, raw)
        for raw in struct.unpack_from(f"<{res_count}i", data, off)
    ]
    return Instance(
        id=iid,
        model=_decode_ref(NS_MODEL, model_id),
        resources=resources,
        spline=_decode_ref(NS_SPLINE, spline_id),
        params=_decode_ref(NS_PARAM, param_index),
        position=tuple(values[6:9]),
        rotation=tuple(values[9:12]),
        scale=values[12],
        light=light,
    )


def pack_param_block(block: Optional[bytes]) -> bytes:
    if block is None:
        return _PARAM_HEADER.pack(HOLE_LENGTH)
    return _PARAM_HEADER.pack(len(block)) + block


def unpack_param_block(data: bytes) -> Optional[bytes]:
    _need(data, _PARAM_HEADER.size, "Param block")
    (n,) = _PARAM_HEADER.unpack_from(data)
    if n == HOLE_LENGTH:
        return None
    _need(data, _PARAM_HEADER.size + n, "Param block")
    return bytes(data[_PARAM_HEADER.size : _PARAM_HEADER.size + n])


_PACKERS: Dict[str, Tuple[Callable, Callable]] = {
    NS_RESOURCE: (pack_resource, unpack_resource),
    NS_SPLINE: (pack_spline, unpack_spline),
    NS_MODEL: (pack_model, unpack_model),
    NS_INSTANCE: (pack_instance, unpack_instance),
}


def pack_entity(entity: Entity) -> bytes:
    try:
        packer, _ = _PACKERS[entity.namespace]
    except KeyError:
        raise BinaryFormatError(
            E_FORMAT, f"No packer for namespace '{entity.namespace}'"
        ) from None
    return packer(entity)


def unpack_entity(namespace: str, data: bytes) -> Entity:
    try:
        _, unpacker = _PACKERS[namespace]
    except KeyError:
        raise BinaryFormatError(
            E_FORMAT, f"No unpacker for namespace '{namespace}'"
        ) from None
    return unpacker(data)


def peek_record_id(data: bytes) -> int:
    """Every entity record starts with its i32 id."""
    _need(data, 4, "Entity")
    return _I32.unpack_from(data)[0]
