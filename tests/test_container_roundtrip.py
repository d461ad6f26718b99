from pathlib import Path
import zlib

import pytest

from levelmerge.errors import BinaryFormatError
from levelmerge.level.models import ModelKind, NS_MODEL
from levelmerge.packing.constants import DISK_ALIGNMENT
from levelmerge.packing.inspector import inspect_pack, read_level, validate_pack
from levelmerge.packing.writer import pack_level, write_level
from levelmerge.reporting import SilentReporter, set_reporter
from level_helpers import instance, make_level, model, spline, texture


def _level():
    tie = model(12, textures=[1], kind=ModelKind.TIE)
    tie.set_optional("cull_radius", 2.5)
    return make_level(
        "roundtrip",
        models=[model(501, textures=[0]), tie],
        resources=[texture(0, 3), texture(1, 4, size=40)],
        instances=[
            instance(1, 501, resources=[0], spline=101, params=0,
                     position=(1.5, -2.0, 8.25)),
            instance(2, 12),
        ],
        splines=[spline(101, 3, 3)],
        params=[b"\x01\x02\x03", None, b"\x04"],
    )


def test_write_and_read_level(tmp_path: Path):
    set_reporter(SilentReporter())
    out = tmp_path / "level.lvp"
    written = write_level(_level(), out)
    data = out.read_bytes()
    assert written == len(data)

    info = inspect_pack(data)
    assert validate_pack(info) == []
    assert info["header"]["name"] == "roundtrip"
    for table in info["tables"]:
        assert table["offset"] % DISK_ALIGNMENT == 0

    stored_crc = int.from_bytes(data[-12:-8], "little")
    expected = zlib.crc32(data[:-12] + data[-8:]) & 0xFFFFFFFF
    assert stored_crc == expected

    level = read_level(out)
    assert level.models.ids() == [501, 12]
    assert level.models.find(12).get_optional("cull_radius") == 2.5
    assert level.resources.find(1).data == texture(1, 4, size=40).data
    inst = level.instances.find(1)
    assert inst.position == (1.5, -2.0, 8.25)
    assert inst.spline.id == 101
    assert [r.id for r in inst.resources] == [0]
    assert list(level.params) == [b"\x01\x02\x03", None, b"\x04"]
    assert level.instance_ids == [1, 2]
    assert level.model_ids == [12, 501]


def test_undecoded_tables_use_raw_fallback():
    level = read_level(pack_level(_level()), decode=["instance", "resource"])
    assert len(level.models) == 0
    assert len(level.raw_records[NS_MODEL]) == 2
    found = level.find(NS_MODEL, 501)
    assert found is not None
    assert found.textures[0].texture.id == 0
    assert level.find(NS_MODEL, 999) is None


def test_raw_records_are_written_back_unchanged():
    partial = read_level(pack_level(_level()), decode=["instance"])
    again = read_level(pack_level(partial))
    assert again.models.ids() == [501, 12]
    assert again.splines.ids() == [101]


def test_corrupted_container_is_rejected():
    data = bytearray(pack_level(_level()))
    data[0x90] ^= 0xFF
    info = inspect_pack(bytes(data))
    assert "CRC mismatch" in validate_pack(info)
    with pytest.raises(BinaryFormatError):
        read_level(bytes(data))


def test_truncated_container_is_rejected():
    with pytest.raises(BinaryFormatError):
        inspect_pack(b"LVLPAK01")
