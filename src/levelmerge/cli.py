"""Command line interface for levelmerge."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .api import diff_files, inspect_file, merge_files, validate_file
from .errors import MergeError
from .logging import configure_logging, step
from .merge.options import MergeOptions, SpacePolicy, load_options
from .reporting import (
    JsonLinesReporter,
    PlainReporter,
    RichReporter,
    SilentReporter,
    get_reporter,
    set_reporter,
    set_verbosity,
)

# CLI flag -> MergeOptions field; None leaves the option-file value.
_POLICY_FLAGS = (
    "reposition_existing",
    "copy_missing",
    "import_models",
    "map_resources",
    "skip_validation",
    "allow_repair",
    "full_compare",
)


def build_options(args: argparse.Namespace) -> MergeOptions:
    opts = load_options(args.options) if args.options else MergeOptions()
    for name in _POLICY_FLAGS:
        value = getattr(args, name, None)
        if value is not None:
            setattr(opts, name, value)
    if args.model_ids:
        opts.model_ids = list(args.model_ids)
    if args.shared_spaces:
        opts.space_policy = SpacePolicy.SHARED
        opts.shared_spaces = [
            tuple(ns.strip() for ns in group.split(","))
            for group in args.shared_spaces
        ]
    return opts


def _merge_cmd(args: argparse.Namespace) -> int:
    opts = build_options(args)
    step(f"merging {args.donor.name} into {args.target.name}")
    report = merge_files(
        args.donor,
        args.target,
        args.output,
        opts,
        report_path=args.report,
    )
    if report.fatal is not None:
        return 2
    return 0 if report.success else 1


def _validate_cmd(args: argparse.Namespace) -> int:
    step(f"validating {args.level.name}")
    violations = validate_file(args.level)
    rep = get_reporter()
    for v in violations:
        rep.error(f"{v.code} {v.path}: {v.message}")
    return 1 if violations else 0


def _inspect_cmd(args: argparse.Namespace) -> int:
    info = inspect_file(args.container)
    rep = get_reporter()
    rep.flush()
    for issue in info["issues"]:
        rep.error(issue)
    print(json.dumps(info, indent=2, sort_keys=True))
    return 1 if info["issues"] else 0


def _diff_cmd(args: argparse.Namespace) -> int:
    step("diffing levels")
    result = diff_files(args.left, args.right)
    rep = get_reporter()
    rep.section("Diff results")
    diff_count = result["summary"]["count"]
    rep.summary(
        "diff", count=diff_count, left=args.left.name, right=args.right.name
    )
    rep.flush()
    print(json.dumps(result, indent=2, sort_keys=True))
    return 1 if diff_count else 0


def _add_policy_flags(m: argparse.ArgumentParser) -> None:
    flags = {
        "reposition_existing": "Move already-present target instances to donor transforms",
        "copy_missing": "Copy donor instances the target lacks",
        "import_models": "Also import donor model definitions",
        "map_resources": "Deduplicate and import referenced resources",
        "skip_validation": "Debug only: save without validation or repair",
        "allow_repair": "Attempt one repair pass on violations",
        "full_compare": "Verify resource matches byte for byte",
    }
    for name, help_text in flags.items():
        m.add_argument(
            "--" + name.replace("_", "-"),
            dest=name,
            action=argparse.BooleanOptionalAction,
            default=None,
            help=help_text,
        )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="levelmerge", description="Level asset merge tool"
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "json", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, json (JSONL events), silent",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    m = sub.add_parser("merge", help="Merge a donor level into a target level")
    m.add_argument("donor", type=Path)
    m.add_argument("target", type=Path)
    m.add_argument(
        "-o", "--output", type=Path, help="Where to save the merged level"
    )
    m.add_argument(
        "--options", type=Path, help="YAML/JSON file with merge options"
    )
    m.add_argument(
        "--model-id",
        dest="model_ids",
        type=int,
        action="append",
        help="Restrict the merge to a model id (repeatable)",
    )
    m.add_argument(
        "--shared-space",
        dest="shared_spaces",
        action="append",
        metavar="NS,NS",
        help="Namespaces sharing one id space, highest priority first",
    )
    m.add_argument(
        "--report", type=Path, help="Write the merge report as JSON"
    )
    _add_policy_flags(m)
    m.set_defaults(func=_merge_cmd)

    v = sub.add_parser("validate", help="Check reference integrity of a level")
    v.add_argument("level", type=Path)
    v.set_defaults(func=_validate_cmd)

    i = sub.add_parser("inspect", help="Inspect a level container")
    i.add_argument("container", type=Path)
    i.set_defaults(func=_inspect_cmd)

    d = sub.add_parser("diff", help="Diff two levels")
    d.add_argument("left", type=Path)
    d.add_argument("right", type=Path)
    d.set_defaults(func=_diff_cmd)
    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    requested = args.reporter
    if requested == "json":
        set_reporter(JsonLinesReporter())
    elif requested == "silent":
        set_reporter(SilentReporter())
    elif requested == "rich":
        if sys.stderr.isatty():
            set_reporter(RichReporter())
        else:
            # Fallback quietly to plain if no TTY
            set_reporter(PlainReporter())
    else:
        set_reporter(PlainReporter())
    set_verbosity(args.verbose)
    configure_logging(args.verbose)
    try:
        return args.func(args)
    except MergeError as e:
        get_reporter().error(str(e))
        return 2
    finally:
        get_reporter().flush()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
