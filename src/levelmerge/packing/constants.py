"""On-disk constants for the level container."""

from __future__ import annotations

MAGIC = b"LVLPAK01"
FOOTER_MAGIC = b"LVLEND01"
FORMAT_VERSION = 1

# Tables and the directory start on this boundary.
DISK_ALIGNMENT = 0x80
# Individual records inside a table.
RECORD_ALIGNMENT = 0x10

HEADER_SIZE = 0x80
LEVEL_NAME_SIZE = 32
NAMESPACE_NAME_SIZE = 16
DIRECTORY_ENTRY_SIZE = 32
FOOTER_SIZE = 20

# Encoded value of an absent reference.
NULL_ID = -1
# Encoded length of a removed parameter block.
HOLE_LENGTH = 0xFFFFFFFF

# Fixed record size per namespace; variable payloads extend past it.
ELEMENT_SIZES = {
    "model": 0x40,
    "instance": 0x50,
    "resource": 0x20,
    "spline": 0x10,
    "param-index": 0x04,
}

# Table order inside the container.
TABLE_ORDER = ("resource", "spline", "model", "instance", "param-index")

MAX_RECORD_SIZE = 64 * 1024 * 1024
