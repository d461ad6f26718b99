"""levelmerge: asset-graph merge and consistency engine for level data."""

from .errors import MergeError
from .level.models import Level
from .merge import MergeOptions, MergeReport, MergeSession, merge_levels

__version__ = "0.1.0"

__all__ = [
    "MergeError",
    "Level",
    "MergeOptions",
    "MergeReport",
    "MergeSession",
    "merge_levels",
    "__version__",
]
