"""
Planning Engine - Versioned Structure Lifecycle
===============================================

Shared draft → released → obsolete lifecycle for BOMs and Routings.

    DRAFT ──release──► RELEASED ──obsolete──► OBSOLETE
      ▲                    │
      └─ create_version ◄──┘   (copy as a new draft; previous loses is_latest)

Releasing a version supersedes the released versions of the same product
whose effectivity overlaps it: an older one is closed the day before the new
version starts, one fully covered by the new window becomes obsolete.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Generic, List, Optional, TypeVar

from ..config import PlanningConfig, get_config
from ..core.effectivity import Effectivity
from ..exceptions import InvalidStatus, InvalidVersion, StructureNotFound
from ..providers.base import StructureStore
from ..structures.bom import Bom, StructureStatus
from ..structures.routing import Routing

logger = logging.getLogger(__name__)

S = TypeVar("S", Bom, Routing)


def next_version(version: str) -> str:
    """'1.0' -> '2.0', '3' -> '4.0'; anything else gets a '.1' suffix."""
    head = version.split(".")[0]
    if head.isdigit():
        return f"{int(head) + 1}.0"
    return f"{version}.1"


class VersionedStructureManager(Generic[S]):
    """Base class of BomManager and RoutingManager."""

    label = "Structure"
    structure_type = "bom"

    def __init__(self, store: StructureStore, config: Optional[PlanningConfig] = None):
        self.store = store
        self.config = config or get_config()

    # Hooks
    def _get(self, structure_id: str) -> Optional[S]:
        raise NotImplementedError

    def _list(self, product_id: str) -> List[S]:
        raise NotImplementedError

    def _save(self, structure: S) -> None:
        raise NotImplementedError

    def _id(self, structure: S) -> str:
        raise NotImplementedError

    def _has_content(self, structure: S) -> bool:
        raise NotImplementedError

    def _release_checks(self, structure: S) -> List[str]:
        return []

    # ─────────────────────────────────────────────────────────────────────────

    def _ensure_unique_version(self, product_id: str, version: str) -> None:
        if any(s.version == version for s in self._list(product_id)):
            raise InvalidVersion.version_exists(product_id, version)

    def _ensure_draft(self, structure: S) -> None:
        if structure.status != StructureStatus.DRAFT:
            raise InvalidVersion.cannot_modify(self._id(structure), structure.status.value)

    def _mark_latest(self, structure: S) -> None:
        for other in self._list(structure.product_id):
            if other is not structure and other.is_latest:
                other.is_latest = False
                self._save(other)
        structure.is_latest = True

    def release(self, structure_id: str, effective_from: Optional[date] = None) -> S:
        """
        Release a draft.

        Raises:
            InvalidStatus: the version is not a draft
            InvalidVersion: empty or invalid content
        """
        structure = self.get(structure_id)
        if structure.status != StructureStatus.DRAFT:
            raise InvalidStatus(
                structure_id, structure.status.value, StructureStatus.RELEASED.value, "release",
            )
        if not self._has_content(structure):
            raise InvalidVersion.cannot_release(structure_id, f"{self.label} has no lines")
        problems = self._release_checks(structure)
        if problems:
            raise InvalidVersion.cannot_release(structure_id, "; ".join(problems))

        start = effective_from or structure.effectivity.effective_from or date.today()
        structure.effectivity = Effectivity(start, structure.effectivity.effective_to)
        self._supersede(structure)
        structure.status = StructureStatus.RELEASED
        self._save(structure)
        logger.info(f"Released {self.label} {structure_id} v{structure.version} effective {start}")
        return structure

    def _supersede(self, released: S) -> None:
        start = released.effectivity.effective_from
        for other in self._list(released.product_id):
            if other is released or other.status != StructureStatus.RELEASED:
                continue
            if not other.effectivity.overlaps(released.effectivity):
                continue
            other_start = other.effectivity.effective_from
            if other_start is not None and other_start >= start:
                other.status = StructureStatus.OBSOLETE
                logger.info(f"Obsoleted {self.label} {self._id(other)} (superseded by {self._id(released)})")
            else:
                other.effectivity = other.effectivity.closed_at(start - timedelta(days=1))
                logger.info(f"Closed {self.label} {self._id(other)} at {start - timedelta(days=1)}")
            self._save(other)

    def obsolete(self, structure_id: str, effective_to: Optional[date] = None) -> S:
        structure = self.get(structure_id)
        if structure.status == StructureStatus.OBSOLETE:
            raise InvalidStatus(
                structure_id, structure.status.value, StructureStatus.OBSOLETE.value, "obsolete",
            )
        if effective_to is not None:
            structure.effectivity = structure.effectivity.closed_at(effective_to)
        structure.status = StructureStatus.OBSOLETE
        self._save(structure)
        logger.info(f"Obsoleted {self.label} {structure_id}")
        return structure

    def get(self, structure_id: str) -> S:
        structure = self._get(structure_id)
        if structure is None:
            raise StructureNotFound.for_id(structure_id, self.structure_type)
        return structure

    def versions(self, product_id: str) -> List[S]:
        return sorted(self._list(product_id), key=lambda s: s.version)


