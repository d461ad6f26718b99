from pathlib import Path

import pytest

from levelmerge.errors import ConfigError
from levelmerge.merge.options import (
    DEFAULT_NAMESPACES,
    MergeOptions,
    SpacePolicy,
    load_options,
)


def test_defaults():
    opts = MergeOptions()
    assert opts.copy_missing and opts.map_resources and opts.allow_repair
    assert not opts.skip_validation
    assert opts.weight_increment == 0.1
    assert opts.selects(12345)
    assert DEFAULT_NAMESPACES["spline"].high_band == 100
    assert not DEFAULT_NAMESPACES["model"].nullable
    assert DEFAULT_NAMESPACES["param-index"].exclusive


def test_load_yaml_options(tmp_path: Path):
    path = tmp_path / "merge.yaml"
    path.write_text(
        "reposition_existing: true\n"
        "model_ids: [501, 502]\n"
        "space_policy: shared\n"
        "shared_spaces:\n"
        "  - [model, resource]\n",
        encoding="utf-8",
    )
    opts = load_options(path)
    assert opts.reposition_existing
    assert opts.model_ids == [501, 502]
    assert opts.space_policy is SpacePolicy.SHARED
    assert opts.shared_spaces == [("model", "resource")]
    assert opts.selects(501) and not opts.selects(7)


def test_unknown_option_is_rejected(tmp_path: Path):
    path = tmp_path / "merge.json"
    path.write_text('{"copy_everything": true}', encoding="utf-8")
    with pytest.raises(ConfigError) as exc:
        load_options(path)
    assert "copy_everything" in exc.value.message


def test_unknown_shared_namespace_is_rejected(tmp_path: Path):
    path = tmp_path / "merge.json"
    path.write_text('{"shared_spaces": [["model", "sound"]]}', encoding="utf-8")
    with pytest.raises(ConfigError):
        load_options(path)
