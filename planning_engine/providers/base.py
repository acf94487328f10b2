"""
Planning Engine - Provider Contracts
====================================

Abstract collaborators consumed by the engine. The engine itself performs no
I/O; everything it reads or persists goes through these interfaces.

- StructureStore: effective-dated BOM/Routing lookup, where-used
- InventoryProvider: on-hand, safety stock, receipts, lead time, make/buy
- DemandProvider: independent gross requirements and demand sources
- WorkCenterProvider: work centers, calendars, available capacity
- PlannedOrderRepository: persistence boundary for a planning run
- WorkOrderRepository: firm work orders (committed load)
- ForecastProvider / DemandHistoryProvider: forecast feed and its fallback
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from ..structures.bom import Bom, BomLine
from ..structures.routing import Routing
from ..structures.work_center import CalendarEntry, WorkCenter
from ..structures.work_order import WorkOrder, WorkOrderStatus

if TYPE_CHECKING:
    from ..core.horizon import PlanningHorizon
    from ..forecasting.demand_forecasting import DemandForecast
    from ..mrp.types import PlannedOrder


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

class ReplenishmentType(str, Enum):
    """Make or buy."""
    PURCHASE = "purchase"
    MANUFACTURE = "manufacture"


@dataclass(frozen=True)
class ScheduledReceipt:
    """Open supply (purchase order, released work order) due on a date."""
    receipt_date: date
    quantity: float
    source_reference: Optional[str] = None


@dataclass(frozen=True)
class DemandEntry:
    """Independent demand due on a date."""
    required_date: date
    quantity: float
    source_type: str = "sales_order"  # sales_order | forecast | work_order
    source_reference: Optional[str] = None


@dataclass(frozen=True)
class DemandPoint:
    """One observation of historical demand."""
    demand_date: date
    quantity: float


# ═══════════════════════════════════════════════════════════════════════════════
# STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

class StructureStore(ABC):
    """Effective-dated BOM and Routing graphs."""

    @abstractmethod
    def find_effective_bom(self, product_id: str, as_of: date) -> Optional[Bom]:
        """Released BOM whose effectivity contains ``as_of``, or None."""

    @abstractmethod
    def find_effective_routing(self, product_id: str, as_of: date) -> Optional[Routing]:
        """Released Routing whose effectivity contains ``as_of``, or None."""

    @abstractmethod
    def find_where_used(self, component_product_id: str) -> List[Tuple[Bom, BomLine]]:
        """Every (BOM, line) pair referencing the component."""

    @abstractmethod
    def get_bom(self, bom_id: str) -> Optional[Bom]:
        pass

    @abstractmethod
    def get_routing(self, routing_id: str) -> Optional[Routing]:
        pass

    @abstractmethod
    def has_product(self, product_id: str) -> bool:
        """True if master data exists for the product."""

    @abstractmethod
    def list_boms(self, product_id: Optional[str] = None) -> List[Bom]:
        pass

    @abstractmethod
    def list_routings(self, product_id: Optional[str] = None) -> List[Routing]:
        pass

    @abstractmethod
    def save_bom(self, bom: Bom) -> None:
        pass

    @abstractmethod
    def save_routing(self, routing: Routing) -> None:
        pass


# ═══════════════════════════════════════════════════════════════════════════════
# INVENTORY & DEMAND
# ═══════════════════════════════════════════════════════════════════════════════

class InventoryProvider(ABC):
    """Stock position and replenishment master data."""

    @abstractmethod
    def get_on_hand_quantity(self, product_id: str) -> float:
        pass

    @abstractmethod
    def get_safety_stock(self, product_id: str) -> float:
        pass

    @abstractmethod
    def get_scheduled_receipts(self, product_id: str, until_date: date) -> List[ScheduledReceipt]:
        """Open receipts due before ``until_date``."""

    @abstractmethod
    def get_lead_time_days(self, product_id: str) -> int:
        pass

    @abstractmethod
    def get_replenishment_type(self, product_id: str) -> ReplenishmentType:
        pass


class DemandProvider(ABC):
    """Independent demand (sales orders, master schedule)."""

    @abstractmethod
    def get_gross_requirements(self, product_id: str, horizon: "PlanningHorizon") -> List[DemandEntry]:
        pass

    def get_demand_sources(self, product_id: str, on: date) -> List[DemandEntry]:
        """Demand entries due on a single date (used for pegging)."""
        return []

    def get_master_scheduled_products(self, horizon: "PlanningHorizon") -> List[str]:
        return []


# ═══════════════════════════════════════════════════════════════════════════════
# WORK CENTERS
# ═══════════════════════════════════════════════════════════════════════════════

class WorkCenterProvider(ABC):
    """Work centers and their calendars."""

    @abstractmethod
    def get_work_center(self, work_center_id: str) -> Optional[WorkCenter]:
        pass

    @abstractmethod
    def list_work_centers(self, active_only: bool = True) -> List[WorkCenter]:
        pass

    @abstractmethod
    def get_available_capacity(
        self,
        work_center_id: str,
        on: date,
        include_overtime: bool = False,
    ) -> float:
        """
        Available hours on a date.

        Working-day hours x capacity units x efficiency, optionally plus
        calendar overtime. Zero on non-working days.
        """

    @abstractmethod
    def get_calendar(self, work_center_id: str, start: date, end: date) -> List[CalendarEntry]:
        """Calendar entries in [start, end)."""

    @abstractmethod
    def save_work_center(self, work_center: WorkCenter) -> None:
        """Insert or replace a work center."""

    @abstractmethod
    def set_calendar_entry(self, work_center_id: str, entry: CalendarEntry) -> None:
        """Insert or replace the calendar entry of ``entry.date``."""

    @abstractmethod
    def remove_calendar_entry(self, work_center_id: str, on: date) -> bool:
        """Drop the entry on a date; False when there was none."""

    @abstractmethod
    def add_overtime(self, work_center_id: str, on: date, hours: float) -> None:
        pass


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

class PlannedOrderRepository(ABC):
    """Persistence boundary of an MRP run."""

    @abstractmethod
    def save_planned_order(self, order: "PlannedOrder") -> None:
        pass

    @abstractmethod
    def delete_planned_orders(self, product_id: str, horizon: "PlanningHorizon") -> int:
        """Delete the product's planned orders due inside the horizon; returns the count."""

    @abstractmethod
    def find_planned_orders(
        self,
        product_id: Optional[str] = None,
        horizon: Optional["PlanningHorizon"] = None,
    ) -> List["PlannedOrder"]:
        pass


class WorkOrderRepository(ABC):
    """Firm work orders."""

    @abstractmethod
    def save(self, work_order: WorkOrder) -> None:
        pass

    @abstractmethod
    def get(self, work_order_id: str) -> Optional[WorkOrder]:
        pass

    @abstractmethod
    def find_by_status(self, statuses: Sequence[WorkOrderStatus]) -> List[WorkOrder]:
        pass

    @abstractmethod
    def find_by_product(self, product_id: str) -> List[WorkOrder]:
        pass

    def find_active(self) -> List[WorkOrder]:
        return self.find_by_status([
            WorkOrderStatus.PLANNED,
            WorkOrderStatus.RELEASED,
            WorkOrderStatus.IN_PROGRESS,
        ])


# ═══════════════════════════════════════════════════════════════════════════════
# FORECAST
# ═══════════════════════════════════════════════════════════════════════════════

class ForecastProvider(ABC):
    """
    ML forecast service.

    Callers check is_healthy()/is_available() before predict(); predict may
    raise ForecastUnavailable or return None.
    """

    @abstractmethod
    def predict(
        self,
        product_id: str,
        start: date,
        end: date,
        features: Optional[Dict[str, Any]] = None,
    ) -> Optional["DemandForecast"]:
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    def is_available(self, product_id: Optional[str] = None) -> bool:
        return True

    def get_name(self) -> str:
        return self.__class__.__name__


class DemandHistoryProvider(ABC):
    """Historical demand used by the forecast fallback."""

    @abstractmethod
    def get_history(self, product_id: str, until: Optional[date] = None) -> List[DemandPoint]:
        pass
