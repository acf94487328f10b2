"""
Fixtures comuns para os testes do motor de planeamento.
"""
from datetime import date, timedelta
from typing import Callable, List

import pytest

from ..config import PlanningConfig, PlanningSettings
from ..core.horizon import PlanningHorizon
from ..providers.memory import (
    InMemoryDemandHistory,
    InMemoryDemandProvider,
    InMemoryInventoryProvider,
    InMemoryPlannedOrderRepository,
    InMemoryStructureStore,
    InMemoryWorkCenterProvider,
    InMemoryWorkOrderRepository,
)
from ..structures.bom import Bom, BomLine, BomType, StructureStatus
from ..structures.routing import Operation, Routing
from ..structures.work_center import WorkCenter


# 2025-03-03 is a Monday.
TODAY = date(2025, 3, 3)


@pytest.fixture(autouse=True)
def _reset_settings():
    """Nenhum teste herda configuração carregada por outro."""
    PlanningSettings.reset()
    yield
    PlanningSettings.reset()


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def config() -> PlanningConfig:
    """Configuração default, independente do ambiente."""
    return PlanningConfig()


@pytest.fixture
def store() -> InMemoryStructureStore:
    return InMemoryStructureStore()


@pytest.fixture
def inventory() -> InMemoryInventoryProvider:
    return InMemoryInventoryProvider()


@pytest.fixture
def demand() -> InMemoryDemandProvider:
    return InMemoryDemandProvider()


@pytest.fixture
def planned_orders() -> InMemoryPlannedOrderRepository:
    return InMemoryPlannedOrderRepository()


@pytest.fixture
def work_orders() -> InMemoryWorkOrderRepository:
    return InMemoryWorkOrderRepository()


@pytest.fixture
def history() -> InMemoryDemandHistory:
    return InMemoryDemandHistory()


@pytest.fixture
def make_bom(store) -> Callable[..., Bom]:
    """Cria e grava uma BOM libertada; os componentes ficam registados no master data."""

    def _make(product_id: str, lines: List[BomLine], bom_type: BomType = BomType.STANDARD,
              bom_id: str = None) -> Bom:
        bom = Bom(
            bom_id=bom_id or f"BOM-{product_id}",
            product_id=product_id,
            bom_type=bom_type,
            lines=list(lines),
            status=StructureStatus.RELEASED,
        )
        for line in lines:
            store.add_product(line.product_id)
        store.save_bom(bom)
        return bom

    return _make


@pytest.fixture
def make_routing(store) -> Callable[..., Routing]:
    """Cria e grava um roteiro libertado."""

    def _make(product_id: str, operations: List[Operation]) -> Routing:
        routing = Routing(
            routing_id=f"RTG-{product_id}",
            product_id=product_id,
            operations=list(operations),
            status=StructureStatus.RELEASED,
        )
        store.save_routing(routing)
        return routing

    return _make


@pytest.fixture
def work_centers() -> InMemoryWorkCenterProvider:
    """Três centros CNC de 8h x 5 dias e uma prensa."""
    return InMemoryWorkCenterProvider([
        WorkCenter("WC-A", "CNC-A", work_center_type="cnc", hourly_rate=50.0),
        WorkCenter("WC-B", "CNC-B", work_center_type="cnc", hourly_rate=50.0),
        WorkCenter("WC-C", "CNC-C", work_center_type="cnc", hourly_rate=50.0),
        WorkCenter("WC-P", "PRESS", work_center_type="press", hourly_rate=40.0),
    ])


@pytest.fixture
def daily_horizon(today) -> PlanningHorizon:
    """30 dias, 7 congelados, 7 slushy."""
    return PlanningHorizon(today, today + timedelta(days=30), 7, 7)


@pytest.fixture
def weekly_horizon(today) -> PlanningHorizon:
    """4 semanas sem zona congelada."""
    return PlanningHorizon.for_weeks(4, 0, 0, start_date=today)
