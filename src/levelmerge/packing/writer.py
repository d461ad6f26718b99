"""Level container writer (reference save collaborator).

Layout::

    header                      HEADER_SIZE, zero padded
    table[ns] ...               DISK_ALIGNMENT aligned, one per namespace:
        records                 each padded to element size / RECORD_ALIGNMENT
        offsets                 u32 per record, relative to table start
    directory                   DISK_ALIGNMENT aligned, DIRECTORY_ENTRY_SIZE each
    footer                      directory offset, table count, crc32, magic

The writer trusts the level: ids unique, references resolved. Undecoded
loader records in ``Level.raw_records`` are written back unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List
import struct
import zlib

from ..level.models import Level, NS_PARAM
from ..logging import get_logger
from ..reporting import get_reporter, format_summary
from .blocks import build_block, pad, padding_for
from .constants import (
    DIRECTORY_ENTRY_SIZE,
    DISK_ALIGNMENT,
    ELEMENT_SIZES,
    FOOTER_MAGIC,
    FOOTER_SIZE,
    FORMAT_VERSION,
    HEADER_SIZE,
    LEVEL_NAME_SIZE,
    MAGIC,
    NAMESPACE_NAME_SIZE,
    RECORD_ALIGNMENT,
    TABLE_ORDER,
)
from .packers import pack_param_block

__all__ = ["TableLayout", "pack_level", "write_level", "table_records"]


@dataclass(slots=True)
class TableLayout:
    name: str
    offset: int
    count: int
    element_size: int
    offsets_offset: int


def _pack_name(name: str, size: int) -> bytes:
    raw = name.encode("utf-8")[: size - 1]
    return raw + b"\x00" * (size - len(raw))


def table_records(level: Level) -> Dict[str, List[bytes]]:
    """Blocks per namespace in container order."""
    tables: Dict[str, List[bytes]] = {}
    for ns in TABLE_ORDER:
        element_size = ELEMENT_SIZES[ns]
        if ns == NS_PARAM:
            if level.params is None:
                continue
            blocks = [
                pad(pack_param_block(b), element_size, RECORD_ALIGNMENT)
                for b in level.params
            ]
        else:
            coll = level.collection(ns)
            if coll is None:
                continue
            blocks = [build_block(e, element_size) for e in coll]
        blocks.extend(
            pad(raw, element_size, RECORD_ALIGNMENT)
            for raw in level.raw_records.get(ns, [])
        )
        tables[ns] = blocks
    for ns, raws in level.raw_records.items():
        if ns not in tables:
            tables[ns] = [pad(raw, 0, RECORD_ALIGNMENT) for raw in raws]
    return tables


def _pack_header(level: Level, table_count: int) -> bytes:
    raw = struct.pack(
        f"<8sHH{LEVEL_NAME_SIZE}s",
        MAGIC,
        FORMAT_VERSION,
        table_count,
        _pack_name(level.name, LEVEL_NAME_SIZE),
    )
    return pad(raw, HEADER_SIZE, DISK_ALIGNMENT)


def pack_level(level: Level) -> bytes:
    tables = table_records(level)
    out = bytearray(_pack_header(level, len(tables)))
    layouts: List[TableLayout] = []
    for ns, blocks in tables.items():
        out += b"\x00" * padding_for(len(out), DISK_ALIGNMENT)
        table_offset = len(out)
        rel_offsets: List[int] = []
        for block in blocks:
            rel_offsets.append(len(out) - table_offset)
            out += block
        out += b"\x00" * padding_for(len(out), RECORD_ALIGNMENT)
        offsets_offset = len(out)
        out += struct.pack(f"<{len(rel_offsets)}I", *rel_offsets)
        layouts.append(
            TableLayout(
                name=ns,
                offset=table_offset,
                count=len(blocks),
                element_size=ELEMENT_SIZES.get(ns, 0),
                offsets_offset=offsets_offset,
            )
        )
    out += b"\x00" * padding_for(len(out), DISK_ALIGNMENT)
    directory_offset = len(out)
    for t in layouts:
        entry = struct.pack(
            f"<{NAMESPACE_NAME_SIZE}sIIII",
            _pack_name(t.name, NAMESPACE_NAME_SIZE),
            t.offset,
            t.count,
            t.element_size,
            t.offsets_offset,
        )
        out += pad(entry, DIRECTORY_ENTRY_SIZE, 1)
    out += struct.pack("<III", directory_offset, len(layouts), 0)
    out += FOOTER_MAGIC
    crc = compute_crc32(bytes(out))
    struct.pack_into("<I", out, len(out) - 12, crc)
    if len(out) < HEADER_SIZE + FOOTER_SIZE:
        raise RuntimeError(f"Container too small: {len(out)}")
    return bytes(out)


def compute_crc32(data: bytes) -> int:
    """CRC over the container with the footer crc field excluded."""
    crc_field_offset = len(data) - 12
    return (
        zlib.crc32(data[:crc_field_offset] + data[crc_field_offset + 4 :])
        & 0xFFFFFFFF
    )


def write_level(level: Level, output_path: Path) -> int:
    logger = get_logger()
    data = pack_level(level)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(data)
    logger.info(
        "Wrote level %s: %d bytes (crc=0x%08x)",
        output_path.name,
        len(data),
        struct.unpack_from("<I", data, len(data) - 12)[0],
    )
    get_reporter().status(
        format_summary(
            "write",
            file=output_path.name,
            bytes=len(data),
            entities=level.entity_count(),
        )
    )
    return len(data)
