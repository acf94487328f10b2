"""
Capacity requirements planning and bottleneck resolution.
"""

from .capacity_planner import CapacityPlanner
from .capacity_resolver import CapacityResolver, ResolverPreferences
from .types import (
    AutoResolveResult,
    Bottleneck,
    CapacityLoad,
    CapacityPeriod,
    CapacityProfile,
    CapacityRequirements,
    CapacityResolutionSuggestion,
    LevelLoadResult,
    LoadMove,
    LoadSourceType,
    ResolutionAction,
)

__all__ = [
    "CapacityPlanner",
    "CapacityResolver",
    "ResolverPreferences",
    "AutoResolveResult",
    "Bottleneck",
    "CapacityLoad",
    "CapacityPeriod",
    "CapacityProfile",
    "CapacityRequirements",
    "CapacityResolutionSuggestion",
    "LevelLoadResult",
    "LoadMove",
    "LoadSourceType",
    "ResolutionAction",
]
