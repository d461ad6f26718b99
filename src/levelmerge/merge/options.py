"""Merge policy options."""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import json

import yaml

from ..errors import ConfigError, E_CONFIG
from ..level.namespaces import DEFAULT_NAMESPACES, NamespaceConfig

__all__ = [
    "NamespaceConfig",
    "DEFAULT_NAMESPACES",
    "SpacePolicy",
    "MergeOptions",
    "load_options",
    "options_from_dict",
]


class SpacePolicy(Enum):
    SEPARATE = "separate"
    SHARED = "shared"


@dataclass(slots=True)
class MergeOptions:
    """Caller-selected merge policy.

    The first five knobs map 1:1 onto the CLI flags; the rest tune
    resolution and resource matching.
    """

    reposition_existing: bool = False
    copy_missing: bool = True
    import_models: bool = False
    map_resources: bool = True
    skip_validation: bool = False
    model_ids: Optional[List[int]] = None
    space_policy: SpacePolicy = SpacePolicy.SEPARATE
    # Earlier namespace in a group has priority and keeps its ids.
    shared_spaces: List[Tuple[str, ...]] = field(default_factory=list)
    allow_repair: bool = True
    full_compare: bool = False
    sample_window: int = 10
    sample_stride: int = 500
    sample_limit: int = 2000
    weight_increment: float = 0.1

    def selects(self, model_id: Optional[int]) -> bool:
        return self.model_ids is None or model_id in self.model_ids


def options_from_dict(data: Dict[str, Any]) -> MergeOptions:
    known = {f.name for f in fields(MergeOptions)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            E_CONFIG, f"Unknown option(s): {', '.join(unknown)}"
        )
    values = dict(data)
    try:
        if "space_policy" in values:
            values["space_policy"] = SpacePolicy(values["space_policy"])
        if values.get("shared_spaces") is not None:
            values["shared_spaces"] = [
                tuple(str(ns) for ns in group)
                for group in values["shared_spaces"]
            ]
        if values.get("model_ids") is not None:
            values["model_ids"] = [int(m) for m in values["model_ids"]]
    except (TypeError, ValueError) as e:
        raise ConfigError(E_CONFIG, f"Invalid option value: {e}") from e
    opts = MergeOptions(**values)
    for group in opts.shared_spaces:
        for ns in group:
            if ns not in DEFAULT_NAMESPACES:
                raise ConfigError(
                    E_CONFIG, f"Unknown namespace in shared_spaces: {ns}"
                )
    return opts


def load_options(path: str | Path) -> MergeOptions:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        data: Any = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ConfigError(E_CONFIG, "Options root must be an object")
    return options_from_dict(data)
