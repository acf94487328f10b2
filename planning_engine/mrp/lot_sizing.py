"""
Planning Engine - Lot Sizing
============================

Lot sizing policies. Each policy turns a net requirement into an order
quantity through one interface:

    apply(net, parameters, future_requirements) -> quantity

``future_requirements`` holds the net requirements of the following
buckets, in time order (what stock and scheduled receipts leave uncovered),
for policies that look ahead (POS, LUC).

Parameters (all optional):
- fixed_order_quantity: multiple
- periods_of_supply: periods
- economic_order_quantity: annual_demand, ordering_cost, holding_cost
- least_unit_cost: ordering_cost, holding_cost_per_period
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import numpy as np

from ..config import LotSizingStrategy

logger = logging.getLogger(__name__)


class LotSizingPolicy(ABC):
    """Interface for lot sizing policies."""

    strategy: LotSizingStrategy

    @abstractmethod
    def apply(
        self,
        net: float,
        parameters: Dict[str, Any],
        future_requirements: Sequence[float] = (),
    ) -> float:
        pass


class LotForLot(LotSizingPolicy):
    """Order exactly the net requirement."""

    strategy = LotSizingStrategy.LOT_FOR_LOT

    def apply(self, net, parameters, future_requirements=()):
        return net


class FixedOrderQuantity(LotSizingPolicy):
    """Round the net requirement up to the configured multiple."""

    strategy = LotSizingStrategy.FIXED_ORDER_QUANTITY

    def apply(self, net, parameters, future_requirements=()):
        multiple = parameters.get("multiple", parameters.get("fixed_quantity"))
        if not multiple or multiple <= 0:
            return net
        return float(np.ceil(net / multiple) * multiple)


class PeriodsOfSupply(LotSizingPolicy):
    """Cover this bucket plus the next N-1 buckets of net demand in one order."""

    strategy = LotSizingStrategy.PERIODS_OF_SUPPLY

    def apply(self, net, parameters, future_requirements=()):
        periods = int(parameters.get("periods", 1))
        if periods <= 1:
            return net
        ahead = list(future_requirements)[:periods - 1]
        return net + float(np.sum(ahead)) if ahead else net


class EconomicOrderQuantity(LotSizingPolicy):
    """
    EOQ = sqrt(2DS/H).

    D = annual demand (default net x 12), S = ordering cost, H = holding cost
    per unit per year. Never orders less than the net requirement.
    """

    strategy = LotSizingStrategy.ECONOMIC_ORDER_QUANTITY

    def apply(self, net, parameters, future_requirements=()):
        annual_demand = parameters.get("annual_demand", net * 12)
        ordering_cost = parameters.get("ordering_cost", 100.0)
        holding_cost = parameters.get("holding_cost", 10.0)
        if holding_cost <= 0 or annual_demand <= 0:
            return net
        eoq = float(np.sqrt(2 * annual_demand * ordering_cost / holding_cost))
        return max(net, eoq)


class LeastUnitCost(LotSizingPolicy):
    """
    Least unit cost.

    Extends the lot one bucket at a time, charging holding cost for every
    period a unit waits, and keeps the lot whose cost per unit is lowest.
    """

    strategy = LotSizingStrategy.LEAST_UNIT_COST

    def apply(self, net, parameters, future_requirements=()):
        ordering_cost = parameters.get("ordering_cost", 50.0)
        holding_cost = parameters.get("holding_cost_per_period", 0.25)
        if net <= 0 or holding_cost <= 0:
            return net

        best_quantity = net
        best_unit_cost = ordering_cost / net
        quantity = net
        holding = 0.0

        for periods_held, requirement in enumerate(future_requirements, start=1):
            if requirement <= 0:
                continue
            quantity += requirement
            holding += requirement * periods_held * holding_cost
            unit_cost = (ordering_cost + holding) / quantity
            if unit_cost > best_unit_cost:
                break
            best_quantity, best_unit_cost = quantity, unit_cost

        return best_quantity


_POLICIES: Dict[LotSizingStrategy, LotSizingPolicy] = {
    policy.strategy: policy
    for policy in (
        LotForLot(),
        FixedOrderQuantity(),
        PeriodsOfSupply(),
        EconomicOrderQuantity(),
        LeastUnitCost(),
    )
}


def get_policy(strategy: LotSizingStrategy) -> LotSizingPolicy:
    return _POLICIES[LotSizingStrategy(strategy)]


@dataclass(frozen=True)
class LotSizingRule:
    """Strategy plus its parameters, as configured for a product or a run."""
    strategy: LotSizingStrategy = LotSizingStrategy.LOT_FOR_LOT
    parameters: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.strategy, LotSizingStrategy):
            object.__setattr__(self, "strategy", LotSizingStrategy(self.strategy))

    def apply(self, net: float, future_requirements: Sequence[float] = ()) -> float:
        if net <= 0:
            return 0.0
        quantity = get_policy(self.strategy).apply(net, self.parameters, future_requirements)
        if quantity < net:
            logger.warning(
                f"{self.strategy.value} returned {quantity} below net {net}; using net"
            )
            return net
        return quantity

    def to_dict(self) -> Dict[str, Any]:
        return {"strategy": self.strategy.value, "parameters": dict(self.parameters)}


def apply_lot_sizing(
    net: float,
    strategy: LotSizingStrategy,
    parameters: Optional[Dict[str, Any]] = None,
    future_requirements: Sequence[float] = (),
) -> float:
    """Shortcut for LotSizingRule(strategy, parameters).apply(...)."""
    return LotSizingRule(strategy, parameters or {}).apply(net, future_requirements)
