"""
Planning Engine - Inventory Ledger
==================================

Per-product supply/demand accumulators for one MRP run.

Each product owns numpy arrays indexed by bucket:

    receipts[b]          scheduled receipts arriving in bucket b
    planned_receipts[b]  planned order receipts created by this run
    consumption[b]       gross requirements already netted in bucket b

    projected[k] = on_hand - safety_stock + cumsum(receipts + planned - consumption)[k]

Supply available to a new requirement in bucket b is min(projected[k], k >= b):
a requirement never takes stock already promised to a later bucket and never
borrows receipts that arrive after b.

Netting a requirement is atomic per product (one lock per product). The
MRP calculator nets each product once, all of its demand bucket by bucket,
so results never depend on which caller reached the ledger first.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.horizon import PlanningHorizon
from ..providers.base import ScheduledReceipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NettingOutcome:
    """What one netting step saw and decided."""
    bucket_index: int
    gross: float
    on_hand: float
    scheduled_receipts: float
    safety_stock: float
    available: float
    net: float
    order_quantity: float


class _ProductLedger:
    """Arrays for a single product."""

    def __init__(self, n_buckets: int, on_hand: float, safety_stock: float):
        self.on_hand = float(on_hand)
        self.safety_stock = float(safety_stock)
        self.receipts = np.zeros(n_buckets)
        self.planned_receipts = np.zeros(n_buckets)
        self.consumption = np.zeros(n_buckets)
        self.lock = threading.Lock()

    def projected(self) -> np.ndarray:
        flow = self.receipts + self.planned_receipts - self.consumption
        return self.on_hand - self.safety_stock + np.cumsum(flow)

    def available(self, bucket: int) -> float:
        return float(np.min(self.projected()[bucket:]))

    def lookahead_net(self, bucket: int, gross: float, net: float,
                      future_gross: Sequence[float]) -> List[float]:
        """
        Net requirements of the buckets after ``bucket``.

        Projected lot-for-lot on a scratch copy: this bucket receives exactly
        ``net``, every later bucket exactly its own shortfall.
        """
        planned = self.planned_receipts.copy()
        consumption = self.consumption.copy()
        planned[bucket] += net
        consumption[bucket] += gross

        nets: List[float] = []
        for k, future in enumerate(future_gross, start=bucket + 1):
            projected = self.on_hand - self.safety_stock + np.cumsum(self.receipts + planned - consumption)
            shortfall = max(0.0, future - float(np.min(projected[k:])))
            planned[k] += shortfall
            consumption[k] += future
            nets.append(shortfall)
        return nets


class InventoryLedger:
    """
    Shared netting ledger for a planning run.

    Usage:
        ledger = InventoryLedger(horizon)
        ledger.ensure("P1", lambda: (on_hand, safety_stock, receipts))
        outcome = ledger.net("P1", bucket, gross, size_lot)
    """

    def __init__(self, horizon: PlanningHorizon):
        self.horizon = horizon
        self._buckets = horizon.buckets()
        self._products: Dict[str, _ProductLedger] = {}
        self._registry_lock = threading.Lock()

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self._products

    def ensure(
        self,
        product_id: str,
        loader: Callable[[], Tuple[float, float, Iterable[ScheduledReceipt]]],
    ) -> None:
        """Create the product's arrays on first use; ``loader`` runs at most once."""
        with self._registry_lock:
            if product_id in self._products:
                return
            on_hand, safety_stock, receipts = loader()
            entry = _ProductLedger(len(self._buckets), on_hand, safety_stock)
            for receipt in receipts:
                if receipt.receipt_date >= self.horizon.end_date:
                    continue
                entry.receipts[self.horizon.bucket_index_for(receipt.receipt_date)] += receipt.quantity
            self._products[product_id] = entry

    def _get(self, product_id: str) -> _ProductLedger:
        try:
            return self._products[product_id]
        except KeyError:
            raise KeyError(f"Product '{product_id}' is not in the ledger") from None

    def net(
        self,
        product_id: str,
        bucket: int,
        gross: float,
        size_lot: Optional[Callable[[float, List[float]], float]] = None,
        future_gross: Sequence[float] = (),
    ) -> NettingOutcome:
        """
        Net a gross requirement in a bucket and book the resulting order.

        ``size_lot(net, future_net)`` maps the net requirement to an order
        quantity, ``future_net`` being the net requirements that
        ``future_gross`` (the gross of the following buckets) leaves once
        scheduled receipts and stock are used. Without it the order equals the
        net requirement.
        """
        entry = self._get(product_id)
        with entry.lock:
            available = entry.available(bucket)
            net = max(0.0, gross - available)
            order_quantity = 0.0
            if net > 0:
                if size_lot is None:
                    order_quantity = net
                else:
                    future_net = entry.lookahead_net(bucket, gross, net, future_gross)
                    order_quantity = size_lot(net, future_net)
                entry.planned_receipts[bucket] += order_quantity
            entry.consumption[bucket] += gross

            receipts_in_bucket = float(entry.receipts[bucket])
            return NettingOutcome(
                bucket_index=bucket,
                gross=gross,
                on_hand=available + entry.safety_stock - receipts_in_bucket,
                scheduled_receipts=receipts_in_bucket,
                safety_stock=entry.safety_stock,
                available=available,
                net=net,
                order_quantity=order_quantity,
            )

    def available(self, product_id: str, bucket: int) -> float:
        entry = self._get(product_id)
        with entry.lock:
            return entry.available(bucket)

    def projected_balance(self, product_id: str) -> np.ndarray:
        """Projected on-hand per bucket, safety stock included."""
        entry = self._get(product_id)
        with entry.lock:
            return entry.projected() + entry.safety_stock

    def snapshot(self, product_id: str) -> Dict[str, list]:
        entry = self._get(product_id)
        with entry.lock:
            return {
                "bucket_start": [b.start.isoformat() for b in self._buckets],
                "receipts": entry.receipts.tolist(),
                "planned_receipts": entry.planned_receipts.tolist(),
                "consumption": entry.consumption.tolist(),
                "projected_on_hand": (entry.projected() + entry.safety_stock).tolist(),
            }
