"""
Core value types: effectivity windows and the planning horizon.
"""

from .effectivity import ALWAYS, Effectivity
from .horizon import PlanningHorizon, PlanningZone, TimeBucket

__all__ = [
    "ALWAYS",
    "Effectivity",
    "PlanningHorizon",
    "PlanningZone",
    "TimeBucket",
]
