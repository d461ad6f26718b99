"""Error definitions for levelmerge.

Skippable errors are per-entity and never leave the orchestrator; fatal
errors abort a session before the target level is touched.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

E_EMPTY_RESOURCE = "E_EMPTY_RESOURCE"
E_MODEL_MISSING = "E_MODEL_MISSING"
E_MISSING_SOURCE = "E_MISSING_SOURCE"
E_NULL = "E_NULL"
E_REF = "E_REF"
E_DUP = "E_DUP"
E_SIZE = "E_SIZE"
E_FATAL = "E_FATAL"
E_CONFIG = "E_CONFIG"
E_FORMAT = "E_FORMAT"


@dataclass
class MergeError(Exception):
    code: str
    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}" + (
            f" | ctx={self.context}" if self.context else ""
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context or {},
        }


class SkippableError(MergeError):
    pass


class EmptyResourceError(SkippableError):
    pass


class ModelNotFoundError(SkippableError):
    pass


class FatalMergeError(MergeError):
    pass


class ConfigError(MergeError):
    pass


class BinaryFormatError(MergeError):
    pass


def fatal_error(
    message: str, context: Optional[Dict[str, Any]] = None
) -> FatalMergeError:
    return FatalMergeError(code=E_FATAL, message=message, context=context)


__all__ = [
    "MergeError",
    "SkippableError",
    "EmptyResourceError",
    "ModelNotFoundError",
    "FatalMergeError",
    "ConfigError",
    "BinaryFormatError",
    "fatal_error",
    "E_EMPTY_RESOURCE",
    "E_MODEL_MISSING",
    "E_MISSING_SOURCE",
    "E_NULL",
    "E_REF",
    "E_DUP",
    "E_SIZE",
    "E_FATAL",
    "E_CONFIG",
    "E_FORMAT",
]
