"""
Planning Engine - Configuration
===============================

Configuração central do motor de planeamento (MRP, CRP, resolver, forecast).

Uso:
    from planning_engine.config import PlanningSettings

    config = PlanningSettings.get_config()
    if config.mrp_max_workers > 1:
        ...

Configuração via variáveis de ambiente:
    PLANNING_LOT_SIZING=fixed_order_quantity
    PLANNING_BUCKET_SIZE=week
    PLANNING_MRP_MAX_WORKERS=4
    PLANNING_FORECAST_TIMEOUT=2.5
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class BucketSize(str, Enum):
    """Time bucket granularity for a planning horizon."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class LotSizingStrategy(str, Enum):
    """
    Lot sizing policies.

    LOT_FOR_LOT: order exactly the net requirement
    FIXED_ORDER_QUANTITY: round up to a configured multiple
    PERIODS_OF_SUPPLY: cover N buckets of demand with one order
    ECONOMIC_ORDER_QUANTITY: classic EOQ = sqrt(2DS/H)
    LEAST_UNIT_COST: grow the lot while the unit cost keeps falling
    """
    LOT_FOR_LOT = "lot_for_lot"
    FIXED_ORDER_QUANTITY = "fixed_order_quantity"
    PERIODS_OF_SUPPLY = "periods_of_supply"
    ECONOMIC_ORDER_QUANTITY = "economic_order_quantity"
    LEAST_UNIT_COST = "least_unit_cost"


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class PlanningConfig:
    """
    Configuração do motor de planeamento.

    Valores default são os mais conservadores (lot-for-lot, execução sequencial).
    """
    # MRP
    default_lot_sizing: LotSizingStrategy = LotSizingStrategy.LOT_FOR_LOT
    default_lead_time_days: int = 1       # usado quando o provider devolve 0
    max_bom_levels: int = 99
    mrp_max_workers: int = 1              # 1 = sequencial

    # Horizon
    default_bucket_size: BucketSize = BucketSize.DAY
    frozen_days: int = 14
    slushy_days: int = 14

    # Capacity
    working_minutes_per_day: float = 480.0
    include_overtime: bool = False
    bottleneck_threshold: float = 0.9

    # Resolver
    overtime_rate: float = 75.0
    max_overtime_hours_per_day: float = 4.0
    subcontract_rate: float = 100.0
    max_reschedule_days: int = 30

    # Forecast
    forecast_timeout_seconds: float = 5.0
    forecast_min_history: int = 12
    forecast_confidence_level: float = 0.95

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["default_lot_sizing"] = self.default_lot_sizing.value
        data["default_bucket_size"] = self.default_bucket_size.value
        return data


class PlanningSettings:
    """
    Singleton para a configuração do planeamento.

    Carrega configuração de variáveis de ambiente ou usa defaults.

    Uso:
        config = PlanningSettings.get_config()
        PlanningSettings.reset()  # recarregar após alterar o ambiente
    """

    _instance: Optional[PlanningConfig] = None

    @classmethod
    def _load_from_env(cls) -> PlanningConfig:
        """Carrega configuração de variáveis de ambiente."""
        config = PlanningConfig()

        enum_mapping = {
            "PLANNING_LOT_SIZING": ("default_lot_sizing", LotSizingStrategy),
            "PLANNING_BUCKET_SIZE": ("default_bucket_size", BucketSize),
        }

        for env_var, (attr_name, enum_class) in enum_mapping.items():
            value = os.environ.get(env_var)
            if value:
                try:
                    setattr(config, attr_name, enum_class(value.lower()))
                    logger.info(f"Planning setting {attr_name} = {value}")
                except ValueError:
                    logger.warning(f"Invalid value for {env_var}: {value}")

        numeric_mapping = {
            "PLANNING_DEFAULT_LEAD_TIME": ("default_lead_time_days", int),
            "PLANNING_MAX_BOM_LEVELS": ("max_bom_levels", int),
            "PLANNING_MRP_MAX_WORKERS": ("mrp_max_workers", int),
            "PLANNING_FROZEN_DAYS": ("frozen_days", int),
            "PLANNING_SLUSHY_DAYS": ("slushy_days", int),
            "PLANNING_WORKING_MINUTES_PER_DAY": ("working_minutes_per_day", float),
            "PLANNING_BOTTLENECK_THRESHOLD": ("bottleneck_threshold", float),
            "PLANNING_OVERTIME_RATE": ("overtime_rate", float),
            "PLANNING_MAX_OVERTIME_PER_DAY": ("max_overtime_hours_per_day", float),
            "PLANNING_SUBCONTRACT_RATE": ("subcontract_rate", float),
            "PLANNING_MAX_RESCHEDULE_DAYS": ("max_reschedule_days", int),
            "PLANNING_FORECAST_TIMEOUT": ("forecast_timeout_seconds", float),
            "PLANNING_FORECAST_MIN_HISTORY": ("forecast_min_history", int),
            "PLANNING_FORECAST_CONFIDENCE": ("forecast_confidence_level", float),
        }

        for env_var, (attr_name, cast) in numeric_mapping.items():
            value = os.environ.get(env_var)
            if value:
                try:
                    setattr(config, attr_name, cast(value))
                except ValueError:
                    logger.warning(f"Invalid value for {env_var}: {value}")

        value = os.environ.get("PLANNING_INCLUDE_OVERTIME")
        if value:
            config.include_overtime = value.lower() in ("true", "1", "yes")

        return config

    @classmethod
    def get_config(cls) -> PlanningConfig:
        """Obtém configuração atual."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset para recarregar config."""
        cls._instance = None


def get_config() -> PlanningConfig:
    """Atalho para PlanningSettings.get_config()."""
    return PlanningSettings.get_config()
