"""
Structure and order lifecycle managers.
"""

from .base import VersionedStructureManager, next_version
from .bom_manager import BomComparison, BomManager
from .change_order_manager import ChangeOrderManager, ImpactAnalysis
from .routing_manager import RoutingManager
from .work_center_manager import WorkCenterManager
from .work_order_manager import WorkOrderManager

__all__ = [
    "VersionedStructureManager",
    "next_version",
    "BomComparison",
    "BomManager",
    "ChangeOrderManager",
    "ImpactAnalysis",
    "RoutingManager",
    "WorkCenterManager",
    "WorkOrderManager",
]
