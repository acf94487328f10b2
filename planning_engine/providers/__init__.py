"""
Provider contracts and their in-memory implementations.
"""

from .base import (
    DemandEntry,
    DemandHistoryProvider,
    DemandPoint,
    DemandProvider,
    ForecastProvider,
    InventoryProvider,
    PlannedOrderRepository,
    ReplenishmentType,
    ScheduledReceipt,
    StructureStore,
    WorkCenterProvider,
    WorkOrderRepository,
)
from .memory import (
    InMemoryDemandHistory,
    InMemoryDemandProvider,
    InMemoryInventoryProvider,
    InMemoryPlannedOrderRepository,
    InMemoryStructureStore,
    InMemoryWorkCenterProvider,
    InMemoryWorkOrderRepository,
)

__all__ = [
    "DemandEntry",
    "DemandHistoryProvider",
    "DemandPoint",
    "DemandProvider",
    "ForecastProvider",
    "InventoryProvider",
    "PlannedOrderRepository",
    "ReplenishmentType",
    "ScheduledReceipt",
    "StructureStore",
    "WorkCenterProvider",
    "WorkOrderRepository",
    "InMemoryDemandHistory",
    "InMemoryDemandProvider",
    "InMemoryInventoryProvider",
    "InMemoryPlannedOrderRepository",
    "InMemoryStructureStore",
    "InMemoryWorkCenterProvider",
    "InMemoryWorkOrderRepository",
]
