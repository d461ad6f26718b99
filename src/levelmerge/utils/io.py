"""Payload helpers for level documents."""

from __future__ import annotations
from pathlib import Path
from typing import Any

__all__ = ["DataError", "safe_file_path", "safe_read_file", "read_payload"]

MAX_PAYLOAD_SIZE = 100 * 1024 * 1024
MAX_HEX_STRING_LENGTH = 2 * MAX_PAYLOAD_SIZE


class DataError(RuntimeError):
    pass


def safe_file_path(base_dir: Path, file_path: str) -> Path:
    base_dir = base_dir.resolve()
    resolved = (base_dir / file_path).resolve()
    try:
        resolved.relative_to(base_dir)
    except ValueError:
        raise DataError(f"Path escapes document directory: {file_path}") from None
    return resolved


def safe_read_file(path: Path, max_size: int = MAX_PAYLOAD_SIZE) -> bytes:
    if not path.exists():
        raise DataError(f"File not found: {path}")
    size = path.stat().st_size
    if size > max_size:
        raise DataError(f"File too large: {size}>{max_size}")
    return path.read_bytes()


def read_payload(
    entry: dict[str, Any], base_dir: Path, prefix: str = "data"
) -> bytes:
    """Read ``<prefix>_hex`` | ``<prefix>_file`` | ``<prefix>`` from an entry.

    A missing source means an empty payload; more than one is an error.
    """
    keys = [k for k in (f"{prefix}_hex", f"{prefix}_file", prefix) if entry.get(k) is not None]
    if not keys:
        return b""
    if len(keys) > 1:
        raise DataError(f"Multiple payload sources: {keys}")
    key = keys[0]
    value = entry[key]
    if key.endswith("_hex"):
        if not isinstance(value, str):
            raise DataError(f"{key} must be string")
        h = value.replace(" ", "").replace("\n", "")
        if len(h) > MAX_HEX_STRING_LENGTH:
            raise DataError("hex string too long")
        try:
            return bytes.fromhex(h)
        except ValueError as e:
            raise DataError(f"invalid hex in {key}: {e}") from e
    if key.endswith("_file"):
        if not isinstance(value, str):
            raise DataError(f"{key} must be a path string")
        return safe_read_file(safe_file_path(base_dir, value))
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    raise DataError(f"{key} must be str or bytes")
