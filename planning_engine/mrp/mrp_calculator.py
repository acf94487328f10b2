"""
Planning Engine - MRP Calculator
================================

Netting, lot sizing, lead-time offset and dependent demand for a set of
top-level products.

Products are processed by low-level code (the deepest level at which a
product appears in any of the structures). At each code, every product with
demand is netted once, bucket by bucket in time order:
1. Gross = independent demand (or forecast) + dependent demand from all parents
2. Net = max(0, gross - (on_hand + scheduled_receipts - safety_stock)), via the
   InventoryLedger
3. Lot sizing (LotSizingRule), looking ahead at the net of later buckets
4. Order date = required date - lead time (calendar or working days)
5. Manufacturing orders explode one BOM level at the order start date; each
   component gets dependent demand due on that date. Purchase orders stop.

A top-level product whose structure is cyclic is rejected before anything is
booked, with the cycle path in its result.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from ..config import PlanningConfig, get_config
from ..core.horizon import PlanningHorizon
from ..exceptions import CircularStructureException, StructureNotFound
from ..providers.base import (
    DemandEntry,
    DemandProvider,
    InventoryProvider,
    ReplenishmentType,
    StructureStore,
)
from .bom_explosion import BomExplosion
from .ledger import InventoryLedger
from .lot_sizing import LotSizingRule
from .types import MaterialRequirement, MrpResult, OrderType, PlannedOrder, RequirementSource

if TYPE_CHECKING:
    from ..forecasting.demand_forecasting import DemandForecaster

logger = logging.getLogger(__name__)

WorkingDayPredicate = Callable[[date], bool]


# ═══════════════════════════════════════════════════════════════════════════════
# LEAD TIME
# ═══════════════════════════════════════════════════════════════════════════════

def offset_for_lead_time(
    required_date: date,
    lead_time_days: int,
    is_working_day: Optional[WorkingDayPredicate] = None,
) -> date:
    """
    Order date for a requirement.

    Calendar days by default; with ``is_working_day`` only working days count.
    """
    if is_working_day is None:
        return required_date - timedelta(days=lead_time_days)
    current = required_date
    remaining = lead_time_days
    while remaining > 0:
        current -= timedelta(days=1)
        if is_working_day(current):
            remaining -= 1
    return current


def add_lead_time(
    order_date: date,
    lead_time_days: int,
    is_working_day: Optional[WorkingDayPredicate] = None,
) -> date:
    """Inverse of offset_for_lead_time (exact for working required dates)."""
    if is_working_day is None:
        return order_date + timedelta(days=lead_time_days)
    current = order_date
    remaining = lead_time_days
    while remaining > 0:
        current += timedelta(days=1)
        if is_working_day(current):
            remaining -= 1
    return current


# ═══════════════════════════════════════════════════════════════════════════════
# MRP CALCULATOR
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _Demand:
    """A gross requirement waiting to be netted, with what it pegs to."""
    product_id: str
    required_date: date
    quantity: float
    roots: Tuple[str, ...]  # top-level products the demand comes from
    source: RequirementSource = RequirementSource.CUSTOMER_ORDER
    source_reference: Optional[str] = None
    source_order_id: Optional[str] = None
    parent_product_id: Optional[str] = None


@dataclass
class _ProductPlan:
    """Netting outcome for one product, merged into the results at the end."""
    product_id: str
    roots: Tuple[str, ...]
    requirements: List[MaterialRequirement] = field(default_factory=list)
    orders: List[PlannedOrder] = field(default_factory=list)
    dependent: List[_Demand] = field(default_factory=list)
    pegs: List[Tuple[str, MaterialRequirement]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def owner_id(self) -> str:
        """Result that reports the product's orders when several roots share it."""
        return self.roots[0]


class MrpCalculator:
    """
    MRP calculation for top-level products and their component trees.

    Products are netted in low-level-code order: every parent has placed its
    orders before any of its components is netted, and each product is
    netted once, bucket by bucket, against the sum of its independent and
    dependent demand. The plan is therefore the same whatever order the
    products are given in and however many workers run a level.
    """

    def __init__(
        self,
        store: StructureStore,
        inventory: InventoryProvider,
        demand: DemandProvider,
        explosion: Optional[BomExplosion] = None,
        forecaster: Optional["DemandForecaster"] = None,
        config: Optional[PlanningConfig] = None,
        is_working_day: Optional[WorkingDayPredicate] = None,
    ):
        self.store = store
        self.inventory = inventory
        self.demand = demand
        self.config = config or get_config()
        self.explosion = explosion or BomExplosion(store, self.config)
        self.forecaster = forecaster
        self.is_working_day = is_working_day

    def calculate(
        self,
        product_id: str,
        horizon: PlanningHorizon,
        lot_sizing: Optional[LotSizingRule] = None,
        product_rules: Optional[Dict[str, LotSizingRule]] = None,
        as_of: Optional[date] = None,
    ) -> MrpResult:
        """Run MRP for a single top-level product."""
        return self.calculate_multiple([product_id], horizon, lot_sizing, product_rules, as_of)[product_id]

    def calculate_multiple(
        self,
        product_ids: Sequence[str],
        horizon: PlanningHorizon,
        lot_sizing: Optional[LotSizingRule] = None,
        product_rules: Optional[Dict[str, LotSizingRule]] = None,
        as_of: Optional[date] = None,
        max_workers: int = 1,
        ledger: Optional[InventoryLedger] = None,
    ) -> Dict[str, MrpResult]:
        """
        Run MRP for a set of top-level products.

        Args:
            product_ids: top-level products, one result each (duplicates ignored)
            horizon: planning horizon
            lot_sizing: default rule (config default strategy if omitted)
            product_rules: per-product rule overrides
            as_of: reference date for past-due checks (horizon start if omitted)
            max_workers: products of the same low-level code netted in parallel
            ledger: netting ledger to book into (a fresh one if omitted)

        A component shared by several top-level products is reported on the
        result of the first of them by id; errors go to every one of them.
        """
        rule = lot_sizing or LotSizingRule(self.config.default_lot_sizing)
        rules = product_rules or {}
        ledger = ledger or InventoryLedger(horizon)
        reference = as_of or horizon.start_date
        roots = list(dict.fromkeys(product_ids))

        results = {
            root_id: MrpResult(
                product_id=root_id,
                parameters={
                    "horizon": horizon.to_dict(),
                    "lot_sizing": rule.to_dict(),
                    "product_rules": {pid: r.to_dict() for pid, r in rules.items()},
                    "reference_date": reference.isoformat(),
                },
            )
            for root_id in roots
        }

        codes: Dict[str, int] = {}
        pending: Dict[str, List[_Demand]] = defaultdict(list)
        for root_id in roots:
            self._load_root(root_id, horizon, results[root_id], codes, pending)

        plans: List[_ProductPlan] = []
        netted: Set[str] = set()
        level = 0
        while level <= max(codes.values(), default=0):
            batch = sorted(
                pid for pid, demands in pending.items()
                if demands and pid not in netted and codes.get(pid, 0) == level
            )
            if batch:
                level_plans = self._plan_level(
                    batch, pending, level, horizon, ledger, rule, rules, reference, max_workers,
                )
                netted.update(batch)
                for plan in level_plans:
                    plans.append(plan)
                    for demand in plan.dependent:
                        if demand.product_id in netted:
                            plan.errors.append(
                                f"Component '{demand.product_id}' of '{plan.product_id}' was netted "
                                f"before its parent; structure changed during the run"
                            )
                            continue
                        if codes.get(demand.product_id, 0) <= level:
                            codes[demand.product_id] = level + 1
                        pending[demand.product_id].append(demand)
            level += 1

        self._merge(plans, results)
        for result in results.values():
            logger.info(
                f"MRP {result.product_id}: {len(result.planned_orders)} planned orders, "
                f"{len(result.warnings)} warnings, {len(result.errors)} errors"
            )
        return results

    def _load_root(
        self,
        root_id: str,
        horizon: PlanningHorizon,
        result: MrpResult,
        codes: Dict[str, int],
        pending: Dict[str, List[_Demand]],
    ) -> None:
        """Low-level codes and independent demand of a top-level product."""
        try:
            root_codes = self.explosion.low_level_codes(root_id)
        except CircularStructureException as exc:
            # Nothing of this product reaches the ledger.
            logger.error(f"MRP aborted for {root_id}: {exc}")
            result.errors.append(f"{exc} (product {root_id})")
            result.parameters["cycle_path"] = exc.path
            return

        try:
            source, entries = self._independent_demand(root_id, horizon, result)
        except Exception as exc:
            logger.exception(f"Demand lookup failed for {root_id}")
            result.errors.append(f"Calculation error: {exc}")
            return

        for product_id, code in root_codes.items():
            codes[product_id] = max(codes.get(product_id, 0), code)
        pending[root_id].extend(
            _Demand(
                product_id=root_id,
                required_date=entry.required_date,
                quantity=entry.quantity,
                roots=(root_id,),
                source=source,
                source_reference=entry.source_reference,
            )
            for entry in entries
        )

    def _plan_level(
        self,
        batch: List[str],
        pending: Dict[str, List[_Demand]],
        level: int,
        horizon: PlanningHorizon,
        ledger: InventoryLedger,
        rule: LotSizingRule,
        rules: Dict[str, LotSizingRule],
        reference: date,
        max_workers: int,
    ) -> List[_ProductPlan]:
        """Net every product of one low-level code; plans come back in batch order."""

        def plan(product_id: str) -> _ProductPlan:
            return self._plan_product(
                product_id, pending[product_id], level, horizon, ledger,
                rules.get(product_id, rule), reference,
            )

        if max_workers <= 1 or len(batch) <= 1:
            return [plan(product_id) for product_id in batch]
        with ThreadPoolExecutor(max_workers=min(max_workers, len(batch))) as executor:
            return list(executor.map(plan, batch))

    def _merge(self, plans: List[_ProductPlan], results: Dict[str, MrpResult]) -> None:
        pegs: Dict[str, List[MaterialRequirement]] = defaultdict(list)
        for plan in plans:
            for order_id, requirement in plan.pegs:
                pegs[order_id].append(requirement)

        for plan in plans:
            owner = results[plan.owner_id]
            owner.material_requirements.extend(plan.requirements)
            owner.planned_orders.extend(
                replace(o, component_requirements=tuple(pegs.get(o.order_id, ())))
                for o in plan.orders
            )
            owner.warnings.extend(plan.warnings)
            for root_id in plan.roots:
                for error in plan.errors:
                    if error not in results[root_id].errors:
                        results[root_id].errors.append(error)

    # ─────────────────────────────────────────────────────────────────────────
    # Demand
    # ─────────────────────────────────────────────────────────────────────────

    def _independent_demand(
        self,
        product_id: str,
        horizon: PlanningHorizon,
        result: MrpResult,
    ) -> Tuple[RequirementSource, List[DemandEntry]]:
        entries = [e for e in self.demand.get_gross_requirements(product_id, horizon) if e.quantity > 0]
        if entries or self.forecaster is None:
            return RequirementSource.CUSTOMER_ORDER, entries

        forecast = self.forecaster.forecast(
            product_id, horizon.start_date, horizon.end_date, bucket_size=horizon.bucket_size,
        )
        result.warnings.extend(forecast.warnings)
        result.parameters["forecast"] = {
            "source": forecast.source.value,
            "confidence": forecast.confidence.value,
        }
        return RequirementSource.FORECAST, forecast.to_gross_requirements()

    def _dependent_demand(
        self,
        order: PlannedOrder,
        roots: Tuple[str, ...],
        plan: _ProductPlan,
    ) -> List[_Demand]:
        """Component demand of a manufacturing order, due on its start date."""
        bom = self.store.find_effective_bom(order.product_id, order.start_date)
        if bom is None:
            error = str(StructureNotFound(order.product_id, order.start_date))
            if error not in plan.errors:
                logger.error(f"MRP {order.product_id}: {error}")
                plan.errors.append(error)
            return []

        rows = self.explosion.explode_single_level(bom, order.quantity, order.start_date)

        # Phantom splicing can list a component more than once.
        totals: Dict[str, float] = defaultdict(float)
        for row in rows:
            totals[row.product_id] += row.quantity

        return [
            _Demand(
                product_id=component_id,
                required_date=order.start_date,
                quantity=quantity,
                roots=roots,
                source=RequirementSource.DEPENDENT_DEMAND,
                source_reference=order.order_id,
                source_order_id=order.order_id,
                parent_product_id=order.product_id,
            )
            for component_id, quantity in sorted(totals.items())
            if quantity > 0
        ]

    # ─────────────────────────────────────────────────────────────────────────
    # Netting
    # ─────────────────────────────────────────────────────────────────────────

    def _lead_time(self, product_id: str, warnings: List[str]) -> int:
        lead_time = self.inventory.get_lead_time_days(product_id)
        if lead_time <= 0:
            lead_time = self.config.default_lead_time_days
            warnings.append(f"Using default lead time of {lead_time} day(s) for product '{product_id}'")
        return lead_time

    def _plan_product(
        self,
        product_id: str,
        demands: List[_Demand],
        level: int,
        horizon: PlanningHorizon,
        ledger: InventoryLedger,
        rule: LotSizingRule,
        reference: date,
    ) -> _ProductPlan:
        """Per-product isolation boundary: a failure drops this product's plan only."""
        ordered = sorted(demands, key=lambda d: (d.required_date, d.parent_product_id or "", d.roots))
        plan = _ProductPlan(product_id, tuple(sorted({r for d in ordered for r in d.roots})))
        try:
            self._net_product(plan, ordered, level, horizon, ledger, rule, reference)
        except Exception as exc:
            logger.exception(f"MRP failed for {product_id}")
            plan.requirements, plan.orders, plan.dependent, plan.pegs = [], [], [], []
            plan.errors.append(f"Calculation error for '{product_id}': {exc}")
        return plan

    def _net_product(
        self,
        plan: _ProductPlan,
        demands: List[_Demand],
        level: int,
        horizon: PlanningHorizon,
        ledger: InventoryLedger,
        rule: LotSizingRule,
        reference: date,
    ) -> None:
        product_id = plan.product_id
        ledger.ensure(product_id, lambda: (
            self.inventory.get_on_hand_quantity(product_id),
            self.inventory.get_safety_stock(product_id),
            self.inventory.get_scheduled_receipts(product_id, horizon.end_date),
        ))

        lead_time = self._lead_time(product_id, plan.warnings)
        replenishment = ReplenishmentType(self.inventory.get_replenishment_type(product_id))
        order_type = (
            OrderType.MANUFACTURING if replenishment == ReplenishmentType.MANUFACTURE
            else OrderType.PURCHASE
        )

        # Gross per bucket: independent and dependent demand together.
        gross = np.zeros(ledger.bucket_count)
        by_bucket: Dict[int, List[_Demand]] = defaultdict(list)
        for demand in demands:
            bucket = horizon.bucket_index_for(demand.required_date)
            gross[bucket] += demand.quantity
            by_bucket[bucket].append(demand)

        for bucket in sorted(by_bucket):
            if gross[bucket] <= 0:
                continue
            bucket_demands = by_bucket[bucket]
            first = bucket_demands[0]
            roots = tuple(sorted({r for d in bucket_demands for r in d.roots}))

            outcome = ledger.net(
                product_id, bucket, float(gross[bucket]),
                lambda net, ahead: rule.apply(net, ahead),
                gross[bucket + 1:].tolist(),
            )

            required_date = first.required_date
            order_date = offset_for_lead_time(required_date, lead_time, self.is_working_day)

            requirement = MaterialRequirement(
                product_id=product_id,
                gross_requirement=outcome.gross,
                net_requirement=outcome.net,
                required_date=required_date,
                order_date=order_date,
                on_hand=outcome.on_hand,
                scheduled_receipts=outcome.scheduled_receipts,
                safety_stock=outcome.safety_stock,
                level=level,
                parent_product_id=first.parent_product_id,
                source_order_id=first.source_order_id,
                source=first.source,
                bucket_index=bucket,
            )
            plan.requirements.append(requirement)
            for demand in bucket_demands:
                if demand.source_order_id is not None:
                    plan.pegs.append((demand.source_order_id, requirement))

            if outcome.order_quantity <= 0:
                continue

            order = PlannedOrder(
                order_id=f"PLO-{uuid.uuid4().hex[:10].upper()}",
                product_id=product_id,
                quantity=outcome.order_quantity,
                start_date=order_date,
                due_date=required_date,
                order_type=order_type,
                level=level,
                lot_sizing_strategy=rule.strategy,
                original_requirement=outcome.net,
                lead_time_days=lead_time,
                is_past_due=order_date < reference,
                source_reference=first.source_order_id or first.source_reference,
                parent_product_id=first.parent_product_id,
            )
            plan.orders.append(order)

            if order.is_past_due:
                message = (
                    f"Past-due order for '{product_id}': order date {order_date} is before "
                    f"{reference} (required {required_date}); expedite"
                )
                logger.warning(message)
                plan.warnings.append(message)
            if order.excess_quantity > 1e-9:
                plan.warnings.append(
                    f"Lot sizing excess of {order.excess_quantity:g} for '{product_id}' "
                    f"on {required_date} ({rule.strategy.value})"
                )
            if order.is_manufacturing:
                plan.dependent.extend(self._dependent_demand(order, roots, plan))
