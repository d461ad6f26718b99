"""Level container inspection and reading.

Public functions:
- inspect_pack(data) -> dict
- validate_pack(info) -> list[str]
- read_level(source, decode=None) -> Level
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
import struct

from ..errors import BinaryFormatError, E_FORMAT
from ..level.models import (
    ENTITY_NAMESPACES,
    Collection,
    Level,
    NS_PARAM,
    ParamTable,
)
from .constants import (
    DIRECTORY_ENTRY_SIZE,
    DISK_ALIGNMENT,
    FOOTER_MAGIC,
    FOOTER_SIZE,
    HEADER_SIZE,
    LEVEL_NAME_SIZE,
    MAGIC,
    NAMESPACE_NAME_SIZE,
)
from .packers import unpack_entity, unpack_param_block
from .writer import compute_crc32

__all__ = [
    "parse_header",
    "parse_footer",
    "inspect_pack",
    "validate_pack",
    "read_level",
]


def _read_exact(data: bytes, offset: int, size: int, label: str) -> bytes:
    end = offset + size
    if offset < 0 or end > len(data):
        raise BinaryFormatError(
            E_FORMAT,
            f"Out of range read for {label}: {offset}+{size}>{len(data)}",
        )
    return data[offset:end]


def parse_header(data: bytes) -> Dict[str, Any]:
    raw = _read_exact(data, 0, HEADER_SIZE, "header")
    magic, version, table_count, name = struct.unpack_from(
        f"<8sHH{LEVEL_NAME_SIZE}s", raw, 0
    )
    return {
        "magic_ok": magic == MAGIC,
        "version": version,
        "table_count": table_count,
        "name": name.rstrip(b"\x00").decode("utf-8", errors="replace"),
    }


def parse_footer(data: bytes) -> Dict[str, Any]:
    footer_offset = len(data) - FOOTER_SIZE
    raw = _read_exact(data, footer_offset, FOOTER_SIZE, "footer")
    directory_offset, table_count, crc = struct.unpack_from("<III", raw, 0)
    return {
        "offset": footer_offset,
        "directory_offset": directory_offset,
        "table_count": table_count,
        "crc32": crc,
        "magic_ok": raw[12:] == FOOTER_MAGIC,
    }


def _parse_directory(data: bytes, footer: Dict[str, Any]) -> List[Dict[str, Any]]:
    entries = []
    for i in range(footer["table_count"]):
        raw = _read_exact(
            data,
            footer["directory_offset"] + i * DIRECTORY_ENTRY_SIZE,
            DIRECTORY_ENTRY_SIZE,
            f"dir[{i}]",
        )
        name, offset, count, element_size, offsets_offset = struct.unpack_from(
            f"<{NAMESPACE_NAME_SIZE}sIIII", raw, 0
        )
        entries.append(
            {
                "name": name.rstrip(b"\x00").decode("utf-8", errors="replace"),
                "offset": offset,
                "count": count,
                "element_size": element_size,
                "offsets_offset": offsets_offset,
            }
        )
    return entries


def inspect_pack(source: bytes | str | Path) -> Dict[str, Any]:
    data = _load(source)
    footer = parse_footer(data)
    info: Dict[str, Any] = {
        "file_size": len(data),
        "header": parse_header(data),
        "footer": {
            **footer,
            "crc_calculated": compute_crc32(data),
        },
    }
    info["footer"]["crc_match"] = (
        info["footer"]["crc_calculated"] == footer["crc32"]
    )
    info["tables"] = _parse_directory(data, footer)
    return info


def validate_pack(info: Dict[str, Any]) -> List[str]:
    issues: List[str] = []
    if not info["header"]["magic_ok"]:
        issues.append("Header magic mismatch")
    footer = info["footer"]
    if not footer["magic_ok"]:
        issues.append("Footer magic mismatch")
    if not footer["crc_match"]:
        issues.append("CRC mismatch")
    if info["header"]["table_count"] != footer["table_count"]:
        issues.append("Header/footer table count mismatch")
    if footer["directory_offset"] % DISK_ALIGNMENT:
        issues.append("Directory not aligned")
    file_size = info["file_size"]
    for t in info["tables"]:
        if t["offset"] % DISK_ALIGNMENT:
            issues.append(f"Table {t['name']} not aligned")
        if t["offsets_offset"] + 4 * t["count"] > file_size:
            issues.append(f"Table {t['name']} exceeds file size")
    return issues


def _load(source: bytes | str | Path) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    return Path(source).read_bytes()


def _table_slices(data: bytes, table: Dict[str, Any]) -> List[bytes]:
    offsets = struct.unpack_from(
        f"<{table['count']}I",
        _read_exact(
            data, table["offsets_offset"], 4 * table["count"], table["name"]
        ),
    )
    # Each record runs to the next record (or the offsets array); the
    # padding tail is ignored by the unpackers.
    bounds = list(offsets) + [table["offsets_offset"] - table["offset"]]
    return [
        _read_exact(
            data,
            table["offset"] + bounds[i],
            bounds[i + 1] - bounds[i],
            f"{table['name']}[{i}]",
        )
        for i in range(table["count"])
    ]


def read_level(
    source: bytes | str | Path, decode: Optional[Iterable[str]] = None
) -> Level:
    """Load a container; namespaces outside ``decode`` stay raw records."""
    data = _load(source)
    info = inspect_pack(data)
    issues = validate_pack(info)
    if issues:
        raise BinaryFormatError(
            E_FORMAT, "Invalid level container", {"issues": issues}
        )
    wanted = set(decode) if decode is not None else None
    level = Level(name=info["header"]["name"])
    for table in info["tables"]:
        ns = table["name"]
        records = _table_slices(data, table)
        if wanted is not None and ns not in wanted:
            level.raw_records[ns] = records
        elif ns == NS_PARAM:
            level.params = ParamTable(unpack_param_block(r) for r in records)
        elif ns in ENTITY_NAMESPACES:
            setattr(
                level,
                _ATTR_BY_NAMESPACE[ns],
                Collection(ns, (unpack_entity(ns, r) for r in records)),
            )
        else:
            level.raw_records[ns] = records
    level.rebuild_index_lists()
    return level


_ATTR_BY_NAMESPACE = {
    "model": "models",
    "instance": "instances",
    "resource": "resources",
    "spline": "splines",
}
