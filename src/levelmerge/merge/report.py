"""Structured merge result."""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import json

from ..errors import MergeError

__all__ = ["MergeReport", "write_report"]


@dataclass(slots=True)
class MergeReport:
    success: bool = False
    fatal: Optional[Dict[str, Any]] = None
    state: str = "INIT"
    copied: int = 0
    repositioned: int = 0
    skipped: int = 0
    resources_imported: int = 0
    resources_reused: int = 0
    models_imported: int = 0
    repaired: int = 0
    messages: List[str] = field(default_factory=list)
    renumber_map: Dict[str, List[List[int]]] = field(default_factory=dict)
    resource_map: Dict[int, int] = field(default_factory=dict)
    violations: List[Dict[str, Any]] = field(default_factory=list)
    remaining: List[Dict[str, Any]] = field(default_factory=list)
    validation_skipped: bool = False
    saved: bool = False

    @property
    def applied(self) -> int:
        return self.copied + self.repositioned + self.models_imported

    def skip(self, error: MergeError) -> None:
        self.skipped += 1
        self.messages.append(f"skipped [{error.code}]: {error.message}")

    def note(self, message: str) -> None:
        self.messages.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "fatal": self.fatal,
            "state": self.state,
            "counts": {
                "copied": self.copied,
                "repositioned": self.repositioned,
                "skipped": self.skipped,
                "resources_imported": self.resources_imported,
                "resources_reused": self.resources_reused,
                "models_imported": self.models_imported,
                "repaired": self.repaired,
            },
            "messages": list(self.messages),
            "renumber_map": self.renumber_map,
            "resource_map": {str(k): v for k, v in self.resource_map.items()},
            "violations": self.violations,
            "remaining": self.remaining,
            "validation_skipped": self.validation_skipped,
            "saved": self.saved,
        }


def write_report(report: MergeReport, path: str | Path) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
