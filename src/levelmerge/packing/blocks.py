"""Block builder: one record to one aligned byte block.

``pad`` is append-only; it never truncates the serialized record.
"""

from __future__ import annotations

from ..level.models import Entity
from .constants import DISK_ALIGNMENT, ELEMENT_SIZES, RECORD_ALIGNMENT
from .packers import pack_entity

__all__ = ["serialize", "pad", "padding_for", "build_block"]


def serialize(entity: Entity) -> bytes:
    return pack_entity(entity)


def padding_for(length: int, alignment: int) -> int:
    return (alignment - (length % alignment)) % alignment


def pad(
    data: bytes, element_size: int, alignment: int = DISK_ALIGNMENT
) -> bytes:
    """Zero-extend to ``element_size``, then to a multiple of ``alignment``."""
    if element_size < 0:
        raise ValueError(f"element_size must be >= 0, got {element_size}")
    if alignment < 1:
        raise ValueError(f"alignment must be >= 1, got {alignment}")
    out = bytes(data)
    if len(out) < element_size:
        out += b"\x00" * (element_size - len(out))
    return out + b"\x00" * padding_for(len(out), alignment)


def build_block(
    entity: Entity,
    element_size: int | None = None,
    alignment: int = RECORD_ALIGNMENT,
) -> bytes:
    if element_size is None:
        element_size = ELEMENT_SIZES.get(entity.namespace, 0)
    return pad(serialize(entity), element_size, alignment)
