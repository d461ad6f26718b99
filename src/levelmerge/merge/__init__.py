from .allocator import IdAllocator, next_free_id
from .dedup import ResourceDeduplicator, samples_match, texture_signature
from .options import (
    DEFAULT_NAMESPACES,
    MergeOptions,
    NamespaceConfig,
    SpacePolicy,
    load_options,
)
from .orchestrator import MergeSession, MergeState, finalize, merge_levels
from .repair import fit_weights, repair
from .report import MergeReport, write_report
from .resolver import RenumberMap, resolve

__all__ = [
    "IdAllocator",
    "next_free_id",
    "ResourceDeduplicator",
    "samples_match",
    "texture_signature",
    "DEFAULT_NAMESPACES",
    "MergeOptions",
    "NamespaceConfig",
    "SpacePolicy",
    "load_options",
    "MergeSession",
    "MergeState",
    "finalize",
    "merge_levels",
    "fit_weights",
    "repair",
    "MergeReport",
    "write_report",
    "RenumberMap",
    "resolve",
]
