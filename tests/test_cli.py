from pathlib import Path
import json

import yaml

from levelmerge.cli import build_options, build_parser, main

TARGET = {
    "name": "target",
    "models": [{"id": 501, "kind": "moby"}],
    "resources": [
        {"id": i, "width": 4, "height": 4, "data_hex": f"{i:02x}" * 8}
        for i in range(4)
    ],
    "instances": [{"id": 1, "model": 501, "resources": [3]}],
}

DONOR = {
    "name": "donor",
    "models": [{"id": 501, "kind": "moby"}],
    "resources": [
        {"id": 3, "width": 4, "height": 4, "data_hex": "03" * 8},
        {"id": 4, "width": 4, "height": 4, "data_hex": "aa" * 8},
    ],
    "instances": [
        {"id": i, "model": 501, "resources": [3, 4]} for i in range(1, 4)
    ],
}


def _write(path: Path, doc: dict) -> Path:
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return path


def test_merge_command_writes_output_and_report(tmp_path: Path):
    donor = _write(tmp_path / "donor.yaml", DONOR)
    target = _write(tmp_path / "target.yaml", TARGET)
    out = tmp_path / "merged.lvp"
    report_path = tmp_path / "report.json"
    rc = main(
        [
            "-r",
            "silent",
            "merge",
            str(donor),
            str(target),
            "-o",
            str(out),
            "--report",
            str(report_path),
        ]
    )
    assert rc == 0
    assert out.exists()
    report = json.loads(report_path.read_text())
    assert report["success"] is True
    assert report["counts"]["copied"] == 2
    assert report["resource_map"] == {"3": 3, "4": 4}
    # Target document is left alone.
    assert yaml.safe_load(target.read_text()) == TARGET


def test_validate_command_flags_dangling(tmp_path: Path):
    doc = dict(TARGET, instances=[{"id": 1, "model": 9}])
    path = _write(tmp_path / "broken.yaml", doc)
    assert main(["-r", "silent", "validate", str(path)]) == 1
    assert main(["-r", "silent", "validate", str(_write(tmp_path / "ok.yaml", TARGET))]) == 0


def test_inspect_and_diff_commands(tmp_path: Path, capsys):
    donor = _write(tmp_path / "donor.yaml", DONOR)
    target = _write(tmp_path / "target.yaml", TARGET)
    out = tmp_path / "merged.lvp"
    assert main(["-r", "silent", "merge", str(donor), str(target), "-o", str(out)]) == 0
    capsys.readouterr()

    assert main(["-r", "silent", "inspect", str(out)]) == 0
    info = json.loads(capsys.readouterr().out)
    assert info["issues"] == []

    assert main(["-r", "silent", "diff", str(target), str(out)]) == 1
    diff = json.loads(capsys.readouterr().out)
    assert diff["namespaces"]["instance"]["added"] == [2, 3]


def test_fatal_merge_returns_two(tmp_path: Path):
    donor = _write(tmp_path / "donor.yaml", {"name": "empty"})
    target = _write(tmp_path / "target.yaml", TARGET)
    assert main(["-r", "silent", "merge", str(donor), str(target)]) == 2


def test_flags_override_option_file(tmp_path: Path):
    opts_path = tmp_path / "opts.yaml"
    opts_path.write_text("copy_missing: false\nimport_models: true\n")
    args = build_parser().parse_args(
        [
            "merge",
            "d.yaml",
            "t.yaml",
            "--options",
            str(opts_path),
            "--copy-missing",
            "--no-map-resources",
            "--model-id",
            "501",
            "--shared-space",
            "model,resource",
        ]
    )
    opts = build_options(args)
    assert opts.copy_missing is True
    assert opts.import_models is True
    assert opts.map_resources is False
    assert opts.model_ids == [501]
    assert opts.shared_spaces == [("model", "resource")]
    assert opts.space_policy.value == "shared"
