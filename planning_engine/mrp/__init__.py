"""
MRP: BOM explosion, netting ledger, lot sizing, calculator and engine.
"""

from .bom_explosion import (
    BomExplosion,
    ExplodedComponent,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    WhereUsedEntry,
)
from .ledger import InventoryLedger, NettingOutcome
from .lot_sizing import LotSizingPolicy, LotSizingRule, apply_lot_sizing, get_policy
from .mrp_calculator import MrpCalculator, add_lead_time, offset_for_lead_time
from .mrp_engine import MrpEngine, PeggingEntry
from .types import MaterialRequirement, MrpResult, OrderType, PlannedOrder, RequirementSource

__all__ = [
    "BomExplosion",
    "ExplodedComponent",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "WhereUsedEntry",
    "InventoryLedger",
    "NettingOutcome",
    "LotSizingPolicy",
    "LotSizingRule",
    "apply_lot_sizing",
    "get_policy",
    "MrpCalculator",
    "add_lead_time",
    "offset_for_lead_time",
    "MrpEngine",
    "PeggingEntry",
    "MaterialRequirement",
    "MrpResult",
    "OrderType",
    "PlannedOrder",
    "RequirementSource",
]
