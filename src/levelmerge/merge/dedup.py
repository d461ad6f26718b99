"""Resource deduplication.

Matching is two-tier. An exact lookup on :func:`texture_signature` (dims,
mip count, payload length and a BLAKE2b digest over sampled bytes) comes
first; on a miss, :func:`samples_match` compares fixed-size byte runs at a
regular stride.

Tolerance: byte-identical payloads with equal dimensions always produce the
same signature, so the exact tier has no false negatives for them. Both
tiers only look at samples, so two payloads that differ outside the sampled
bytes can be reported equal (false positive). ``full_compare`` turns every
candidate match into a full byte comparison and removes that case.
"""

from __future__ import annotations

import hashlib
from typing import Callable, Dict, List, Optional

from ..errors import E_EMPTY_RESOURCE, EmptyResourceError
from ..level.models import Level, NS_RESOURCE, Resource
from ..logging import get_logger
from .allocator import IdAllocator
from .options import MergeOptions

__all__ = [
    "SignatureFn",
    "texture_signature",
    "samples_match",
    "ResourceDeduplicator",
]

SignatureFn = Callable[[Resource], str]

_SAMPLE_POINTS = (0.0, 0.25, 0.5, 0.75, 0.95)
_WINDOW = 16
_WINDOWED_MIN = 1000

log = get_logger("dedup")


def texture_signature(resource: Resource) -> str:
    data = resource.data
    n = len(data)
    digest = hashlib.blake2b(digest_size=16)
    if n:
        for frac in _SAMPLE_POINTS:
            digest.update(data[int(n * frac)].to_bytes(1, "little"))
        if n > _WINDOWED_MIN:
            for start in (0, n // 2, n - _WINDOW):
                digest.update(data[start : start + _WINDOW])
    return (
        f"{resource.width}x{resource.height}-m{resource.mip_count}-{n}-"
        f"{digest.hexdigest()}"
    )


def samples_match(
    a: Resource,
    b: Resource,
    window: int = 10,
    stride: int = 500,
    limit: int = 2000,
) -> bool:
    """Heuristic equality: equal dims/mips and equal sampled byte runs."""
    if (a.width, a.height, a.mip_count) != (b.width, b.height, b.mip_count):
        return False
    if not a.data or not b.data:
        return False
    end = min(limit, len(a.data), len(b.data))
    for off in range(0, end, stride):
        if a.data[off : off + window] != b.data[off : off + window]:
            return False
    return True


def _same_bytes(a: Resource, b: Resource) -> bool:
    return (
        (a.width, a.height, a.mip_count) == (b.width, b.height, b.mip_count)
        and a.data == b.data
    )


class ResourceDeduplicator:
    """Imports donor resources into a target level, reusing matches.

    The signature index over the target collection is built once, on first
    use, and kept current as resources are appended.
    """

    def __init__(
        self,
        target: Level,
        allocator: IdAllocator,
        options: Optional[MergeOptions] = None,
        signature_fn: SignatureFn = texture_signature,
    ) -> None:
        if target.resources is None:
            raise ValueError("target level has no resource collection")
        self._target = target
        self._allocator = allocator
        self._options = options or MergeOptions()
        self._signature_fn = signature_fn
        self._index: Optional[Dict[str, List[Resource]]] = None
        self.imported = 0
        self.reused = 0

    def _build_index(self) -> Dict[str, List[Resource]]:
        index: Dict[str, List[Resource]] = {}
        for res in self._target.resources:
            if res.data:
                index.setdefault(self._signature_fn(res), []).append(res)
        log.debug("signature index: %d keys", len(index))
        return index

    def _accepts(self, candidate: Resource, resource: Resource) -> bool:
        if self._options.full_compare:
            return _same_bytes(candidate, resource)
        return True

    def find_match(self, resource: Resource) -> Optional[Resource]:
        if self._index is None:
            self._index = self._build_index()
        sig = self._signature_fn(resource)
        for candidate in self._index.get(sig, ()):
            if self._accepts(candidate, resource):
                return candidate
        opts = self._options
        for candidate in self._target.resources:
            if samples_match(
                candidate,
                resource,
                opts.sample_window,
                opts.sample_stride,
                opts.sample_limit,
            ) and self._accepts(candidate, resource):
                return candidate
        return None

    def import_entity(self, resource: Resource) -> Resource:
        """Return the target resource holding ``resource``, appending on a miss.

        Raises:
            EmptyResourceError: the resource has no payload.
        """
        if not resource.data:
            raise EmptyResourceError(
                E_EMPTY_RESOURCE,
                f"resource {resource.id} has an empty payload",
                {"resource": resource.id},
            )
        if self._index is None:
            self._index = self._build_index()
        match = self.find_match(resource)
        if match is not None:
            self.reused += 1
            log.debug("resource %d reuses target %d", resource.id, match.id)
            return match
        copy = resource.clone()
        copy.id = self._allocator.allocate(
            NS_RESOURCE, start_hint=len(self._target.resources)
        )
        self._target.resources.append(copy)
        self._index.setdefault(self._signature_fn(copy), []).append(copy)
        self.imported += 1
        log.debug("resource %d imported as %d", resource.id, copy.id)
        return copy

    def import_resource(self, resource: Resource) -> int:
        return self.import_entity(resource).id
