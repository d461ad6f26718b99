"""High-level API for levelmerge.

Thin file-based wrappers around the merge engine used by the CLI. Levels are
read from and written to either ``.lvp`` containers or YAML/JSON documents,
chosen by file suffix.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from .diff import diff_levels
from .level.loader import dump_level, load_level
from .level.models import Level
from .level.validator import Violation, validate
from .logging import get_logger
from .merge.options import MergeOptions
from .merge.orchestrator import LevelSaver, MergeSession
from .merge.report import MergeReport, write_report
from .packing.inspector import inspect_pack, read_level, validate_pack
from .packing.writer import write_level
from .reporting import get_reporter, task

__all__ = [
    "CONTAINER_SUFFIX",
    "load_any",
    "save_any",
    "file_saver",
    "merge_files",
    "validate_file",
    "inspect_file",
    "diff_files",
]

CONTAINER_SUFFIX = ".lvp"


def _is_container(path: Path) -> bool:
    return path.suffix.lower() == CONTAINER_SUFFIX


def load_any(path: str | Path) -> Level:
    p = Path(path)
    with task("load", f"Load {p.name}"):
        level = read_level(p) if _is_container(p) else load_level(p)
    get_logger().debug(
        "loaded %s: %d entities", p.name, level.entity_count()
    )
    return level


def save_any(level: Level, path: str | Path) -> None:
    p = Path(path)
    if _is_container(p):
        write_level(level, p)
    else:
        p.parent.mkdir(parents=True, exist_ok=True)
        dump_level(level, p)
        get_logger().info("Wrote level document %s", p.name)


def file_saver(path: str | Path) -> LevelSaver:
    def _save(level: Level) -> None:
        save_any(level, path)

    return _save


def merge_files(
    donor_path: str | Path,
    target_path: str | Path,
    output_path: Optional[str | Path] = None,
    options: Optional[MergeOptions] = None,
    report_path: Optional[str | Path] = None,
) -> MergeReport:
    """Merge ``donor_path`` into ``target_path``.

    The merged level is written to ``output_path`` (no write when omitted);
    the target file itself is never overwritten implicitly.
    """
    donor = load_any(donor_path)
    target = load_any(target_path)
    saver = file_saver(output_path) if output_path is not None else None
    report = MergeSession(donor, target, options, saver).run()
    if report_path is not None:
        write_report(report, report_path)
    return report


def validate_file(path: str | Path) -> List[Violation]:
    level = load_any(path)
    violations = validate(level)
    get_reporter().summary("validate", violations=len(violations))
    return violations


def inspect_file(path: str | Path) -> Dict[str, Any]:
    info = inspect_pack(Path(path))
    info["issues"] = validate_pack(info)
    return info


def diff_files(left: str | Path, right: str | Path) -> Dict[str, Any]:
    return diff_levels(load_any(left), load_any(right))
