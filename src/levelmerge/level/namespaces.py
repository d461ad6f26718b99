"""Per-namespace configuration."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional

from ..packing.constants import ELEMENT_SIZES
from .models import NS_INSTANCE, NS_MODEL, NS_PARAM, NS_RESOURCE, NS_SPLINE

__all__ = ["NamespaceConfig", "DEFAULT_NAMESPACES", "SPLINE_HIGH_BAND"]

SPLINE_HIGH_BAND = 100


@dataclass(slots=True, frozen=True)
class NamespaceConfig:
    name: str
    nullable: bool = True
    high_band: Optional[int] = None
    # Exclusive namespaces allow a single referrer per id.
    exclusive: bool = False
    element_size: int = 0


DEFAULT_NAMESPACES: Dict[str, NamespaceConfig] = {
    NS_MODEL: NamespaceConfig(
        NS_MODEL, nullable=False, element_size=ELEMENT_SIZES[NS_MODEL]
    ),
    NS_INSTANCE: NamespaceConfig(
        NS_INSTANCE, nullable=False, element_size=ELEMENT_SIZES[NS_INSTANCE]
    ),
    NS_RESOURCE: NamespaceConfig(
        NS_RESOURCE, element_size=ELEMENT_SIZES[NS_RESOURCE]
    ),
    NS_SPLINE: NamespaceConfig(
        NS_SPLINE,
        high_band=SPLINE_HIGH_BAND,
        element_size=ELEMENT_SIZES[NS_SPLINE],
    ),
    NS_PARAM: NamespaceConfig(
        NS_PARAM, exclusive=True, element_size=ELEMENT_SIZES[NS_PARAM]
    ),
}
