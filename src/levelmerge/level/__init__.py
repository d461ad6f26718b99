from .models import Level
from .loader import dump_level, load_level
from .validator import Violation, ViolationKind, validate

__all__ = [
    "Level",
    "load_level",
    "dump_level",
    "validate",
    "Violation",
    "ViolationKind",
]
