"""
Product structures and shop-floor master data.
"""

from .bom import Bom, BomLine, BomType, StructureStatus
from .change_order import ChangeAction, ChangeOrder, ChangeOrderStatus, StructureChange
from .routing import Operation, OperationType, Routing
from .work_center import CalendarEntry, WorkCenter
from .work_order import WorkOrder, WorkOrderOperation, WorkOrderStatus

__all__ = [
    "Bom",
    "BomLine",
    "BomType",
    "StructureStatus",
    "ChangeAction",
    "ChangeOrder",
    "ChangeOrderStatus",
    "StructureChange",
    "Operation",
    "OperationType",
    "Routing",
    "CalendarEntry",
    "WorkCenter",
    "WorkOrder",
    "WorkOrderOperation",
    "WorkOrderStatus",
]
