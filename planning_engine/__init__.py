"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PLANNING ENGINE — MRP / CRP MODULE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Motor de planeamento de produção:

1. **BOM Explosion**: explosão multi-nível com phantoms, scrap e deteção de ciclos
2. **MRP**: netting por bucket, lot sizing, lead-time offset e pegging
3. **CRP**: perfis de carga por centro de trabalho, bottlenecks e nivelamento
4. **Capacity Resolver**: sugestões (centro alternativo, horas extra, reagendar, subcontratar, dividir)
5. **Forecast**: previsão ML com fallback histórico (Holt-Winters)
6. **Managers**: ciclo de vida de BOMs, Routings, ordens de produção e ECOs

Arquitetura:
    ┌─────────────────────────────────────────────────────────────────┐
    │                      Planning Engine                            │
    ├─────────────────────────────────────────────────────────────────┤
    │  Providers (contracts + in-memory)                              │
    │    ├─ StructureStore (BOM, Routing)                             │
    │    ├─ Inventory / Demand / Work Centers                         │
    │    └─ Forecast / Demand History                                 │
    ├─────────────────────────────────────────────────────────────────┤
    │  MRP                                                            │
    │    ├─ BomExplosion                                              │
    │    ├─ MrpCalculator (netting, lot sizing, offset)               │
    │    └─ MrpEngine (low-level codes, regenerate / net change)      │
    ├─────────────────────────────────────────────────────────────────┤
    │  Capacity                                                       │
    │    ├─ CapacityPlanner (profiles, bottlenecks, leveling)         │
    │    └─ CapacityResolver (suggestions, auto-resolve, apply)       │
    ├─────────────────────────────────────────────────────────────────┤
    │  Forecasting                                                    │
    │    └─ DemandForecaster → HistoricalForecastFallback             │
    └─────────────────────────────────────────────────────────────────┘

Mathematical Foundations:
───────────────────────
    Net(b)  = max(0, Gross(b) + SS − (OnHand + Σ Receipts(≤ b) − Σ Gross(< b)))
    EOQ     = sqrt(2 · D · S / H)
    Load(wc, p) = Σ setup + run hours of operations dated in period p
    Util(wc, p) = Load / Available

Dependencies:
    - pandas: séries de procura e perfis de capacidade
    - numpy: cálculos numéricos
    - statsmodels: Holt-Winters (fallback histórico)
    - scipy: intervalos de confiança
    - pydantic: preferências do resolver
    - python-dateutil: aritmética de meses no horizonte

Version: 0.1.0
"""

from .config import BucketSize, LotSizingStrategy, PlanningConfig, PlanningSettings, get_config
from .core import ALWAYS, Effectivity, PlanningHorizon, PlanningZone, TimeBucket
from .exceptions import (
    CircularStructureException,
    ForecastUnavailable,
    InvalidStatus,
    InvalidVersion,
    PlanningError,
    StructureNotFound,
)
from .mrp import BomExplosion, MrpCalculator, MrpEngine, MrpResult, PlannedOrder
from .capacity import CapacityPlanner, CapacityResolver, ResolverPreferences
from .forecasting import DemandForecast, DemandForecaster, HistoricalForecastFallback
from .managers import BomManager, ChangeOrderManager, RoutingManager, WorkCenterManager, WorkOrderManager

__version__ = "0.1.0"

__all__ = [
    # Config
    "BucketSize",
    "LotSizingStrategy",
    "PlanningConfig",
    "PlanningSettings",
    "get_config",
    # Core
    "ALWAYS",
    "Effectivity",
    "PlanningHorizon",
    "PlanningZone",
    "TimeBucket",
    # Errors
    "CircularStructureException",
    "ForecastUnavailable",
    "InvalidStatus",
    "InvalidVersion",
    "PlanningError",
    "StructureNotFound",
    # MRP
    "BomExplosion",
    "MrpCalculator",
    "MrpEngine",
    "MrpResult",
    "PlannedOrder",
    # Capacity
    "CapacityPlanner",
    "CapacityResolver",
    "ResolverPreferences",
    # Forecast
    "DemandForecast",
    "DemandForecaster",
    "HistoricalForecastFallback",
    # Managers
    "BomManager",
    "ChangeOrderManager",
    "RoutingManager",
    "WorkCenterManager",
    "WorkOrderManager",
]
