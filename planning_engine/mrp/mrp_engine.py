"""
Planning Engine - MRP Engine
============================

Orchestrates the MRP Calculator across a product set and a planning horizon.

Features:
- Full regenerate (purge every planned order in the horizon) or net-change
  (purge only the products the run touched)
- Products netted level by level on low-level codes, so a shared component
  is netted once against the demand of all its parents
- Optional worker pool fanning out over the products of one level; the plan
  does not depend on the worker count or the product order
- Per-product failure isolation: an error on one product never aborts its
  siblings
- Pegging through where-used
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Set

from ..config import LotSizingStrategy, PlanningConfig, get_config
from ..core.horizon import PlanningHorizon
from ..providers.base import (
    DemandProvider,
    InventoryProvider,
    PlannedOrderRepository,
    StructureStore,
)
from .bom_explosion import BomExplosion
from .ledger import InventoryLedger
from .lot_sizing import LotSizingRule
from .mrp_calculator import MrpCalculator, WorkingDayPredicate
from .types import MrpResult

if TYPE_CHECKING:
    from ..forecasting.demand_forecasting import DemandForecaster

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeggingEntry:
    """A demand source behind a product's requirement on a date."""
    product_id: str
    on: date
    source_type: str
    source_id: Optional[str]
    quantity: float
    parent_product_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "date": self.on.isoformat(),
            "source_type": self.source_type,
            "source_id": self.source_id,
            "quantity": self.quantity,
            "parent_product_id": self.parent_product_id,
        }


class MrpEngine:
    """
    MRP engine.

    Usage:
        engine = MrpEngine(store, inventory, demand, planned_orders)
        results = engine.run(["FG-1", "FG-2"], horizon)
        results["FG-1"].planned_orders
    """

    def __init__(
        self,
        store: StructureStore,
        inventory: InventoryProvider,
        demand: DemandProvider,
        planned_orders: PlannedOrderRepository,
        forecaster: Optional["DemandForecaster"] = None,
        config: Optional[PlanningConfig] = None,
        is_working_day: Optional[WorkingDayPredicate] = None,
    ):
        self.store = store
        self.demand = demand
        self.planned_orders = planned_orders
        self.config = config or get_config()
        self.explosion = BomExplosion(store, self.config)
        self.calculator = MrpCalculator(
            store=store,
            inventory=inventory,
            demand=demand,
            explosion=self.explosion,
            forecaster=forecaster,
            config=self.config,
            is_working_day=is_working_day,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Calculation
    # ─────────────────────────────────────────────────────────────────────────

    def calculate(
        self,
        product_id: str,
        horizon: PlanningHorizon,
        lot_sizing: Optional[LotSizingStrategy] = None,
        lot_sizing_parameters: Optional[Dict[str, Any]] = None,
        product_rules: Optional[Dict[str, LotSizingRule]] = None,
        as_of: Optional[date] = None,
    ) -> MrpResult:
        """Calculate one product without persisting anything."""
        return self.calculate_multiple(
            [product_id], horizon, lot_sizing, lot_sizing_parameters, product_rules, as_of,
        )[product_id]

    def calculate_multiple(
        self,
        product_ids: Sequence[str],
        horizon: PlanningHorizon,
        lot_sizing: Optional[LotSizingStrategy] = None,
        lot_sizing_parameters: Optional[Dict[str, Any]] = None,
        product_rules: Optional[Dict[str, LotSizingRule]] = None,
        as_of: Optional[date] = None,
        max_workers: Optional[int] = None,
    ) -> Dict[str, MrpResult]:
        """
        Calculate a set of products against one shared ledger.

        Returns results keyed by product id, in the order given.
        """
        rule = LotSizingRule(
            lot_sizing or self.config.default_lot_sizing,
            dict(lot_sizing_parameters or {}),
        )
        workers = max_workers if max_workers is not None else self.config.mrp_max_workers
        return self.calculator.calculate_multiple(
            product_ids,
            horizon,
            lot_sizing=rule,
            product_rules=product_rules,
            as_of=as_of,
            max_workers=workers,
            ledger=InventoryLedger(horizon),
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Runs (with persistence)
    # ─────────────────────────────────────────────────────────────────────────

    def run(
        self,
        product_ids: Optional[Sequence[str]],
        horizon: PlanningHorizon,
        regenerate: bool = True,
        lot_sizing: Optional[LotSizingStrategy] = None,
        lot_sizing_parameters: Optional[Dict[str, Any]] = None,
        product_rules: Optional[Dict[str, LotSizingRule]] = None,
        as_of: Optional[date] = None,
        max_workers: Optional[int] = None,
    ) -> Dict[str, MrpResult]:
        """
        Calculate and persist planned orders.

        Full regenerate deletes every planned order inside the horizon before
        saving; net-change deletes only for products the run touched.
        """
        if product_ids is None:
            product_ids = self.demand.get_master_scheduled_products(horizon)

        results = self.calculate_multiple(
            product_ids, horizon, lot_sizing, lot_sizing_parameters,
            product_rules, as_of, max_workers,
        )

        touched: Set[str] = set(results)
        for result in results.values():
            touched.update(o.product_id for o in result.planned_orders)
            touched.update(r.product_id for r in result.material_requirements)

        purge = set(touched)
        if regenerate:
            purge.update(o.product_id for o in self.planned_orders.find_planned_orders(horizon=horizon))

        deleted = 0
        for product_id in sorted(purge):
            deleted += self.planned_orders.delete_planned_orders(product_id, horizon)

        saved = 0
        for result in results.values():
            for order in result.planned_orders:
                self.planned_orders.save_planned_order(order)
                saved += 1

        failed = [pid for pid, r in results.items() if not r.is_successful]
        logger.info(
            f"MRP {'regenerate' if regenerate else 'net-change'} run: "
            f"{len(results)} products, {deleted} orders deleted, {saved} saved, "
            f"{len(failed)} with errors"
        )
        return results

    def regenerate(self, horizon: PlanningHorizon, product_ids: Optional[Sequence[str]] = None,
                   **kwargs) -> Dict[str, MrpResult]:
        return self.run(product_ids, horizon, regenerate=True, **kwargs)

    def net_change(self, product_ids: Sequence[str], horizon: PlanningHorizon,
                   **kwargs) -> Dict[str, MrpResult]:
        return self.run(product_ids, horizon, regenerate=False, **kwargs)

    # ─────────────────────────────────────────────────────────────────────────
    # Pegging
    # ─────────────────────────────────────────────────────────────────────────

    def pegging(self, product_id: str, on: date) -> List[PeggingEntry]:
        """Direct demand sources plus demand derived from parent products."""
        entries = [
            PeggingEntry(product_id, on, e.source_type, e.source_reference, e.quantity)
            for e in self.demand.get_demand_sources(product_id, on)
        ]

        for used in self.explosion.where_used(product_id, as_of=on):
            for e in self.demand.get_demand_sources(used.product_id, on):
                entries.append(PeggingEntry(
                    product_id=product_id,
                    on=on,
                    source_type=f"derived_from_{e.source_type}",
                    source_id=e.source_reference,
                    quantity=e.quantity * used.line.get_quantity_with_scrap(),
                    parent_product_id=used.product_id,
                ))

        for order in self.planned_orders.find_planned_orders(product_id=product_id):
            if order.due_date == on and order.source_reference:
                entries.append(PeggingEntry(
                    product_id=product_id,
                    on=on,
                    source_type="planned_order",
                    source_id=order.source_reference,
                    quantity=order.quantity,
                    parent_product_id=order.parent_product_id,
                ))

        return entries
