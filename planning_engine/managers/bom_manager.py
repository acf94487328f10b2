"""
Planning Engine - BOM Manager
=============================

Versioned BOM lifecycle: create, edit drafts, release, obsolete, compare.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ..config import PlanningConfig
from ..core.effectivity import ALWAYS, Effectivity
from ..exceptions import CircularStructureException, StructureNotFound
from ..mrp.bom_explosion import BomExplosion, ValidationSeverity, WhereUsedEntry
from ..providers.base import StructureStore
from ..structures.bom import Bom, BomLine, BomType, StructureStatus
from .base import VersionedStructureManager, next_version

logger = logging.getLogger(__name__)


@dataclass
class BomComparison:
    """Line differences between two BOM versions, keyed by component."""
    from_bom_id: str
    to_bom_id: str
    added: List[Dict[str, Any]] = field(default_factory=list)
    removed: List[Dict[str, Any]] = field(default_factory=list)
    changed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_differences(self) -> bool:
        return bool(self.added or self.removed or self.changed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_bom_id": self.from_bom_id,
            "to_bom_id": self.to_bom_id,
            "added": self.added,
            "removed": self.removed,
            "changed": self.changed,
        }


class BomManager(VersionedStructureManager[Bom]):
    """
    Gestor de BOMs.

    Only drafts can be edited; a released BOM changes through a new version
    (create_version) or a change order.
    """

    label = "BOM"
    structure_type = "bom"

    def __init__(self, store: StructureStore, config: Optional[PlanningConfig] = None):
        super().__init__(store, config)
        self.explosion = BomExplosion(store, self.config)

    def _get(self, structure_id: str) -> Optional[Bom]:
        return self.store.get_bom(structure_id)

    def _list(self, product_id: str) -> List[Bom]:
        return self.store.list_boms(product_id)

    def _save(self, structure: Bom) -> None:
        self.store.save_bom(structure)

    def _id(self, structure: Bom) -> str:
        return structure.bom_id

    def _has_content(self, structure: Bom) -> bool:
        return bool(structure.lines)

    def _release_checks(self, structure: Bom) -> List[str]:
        # A cycle raises CircularStructureException from validate().
        result = self.explosion.validate(structure.bom_id, structure.effectivity.effective_from)
        return [i.message for i in result.issues if i.severity == ValidationSeverity.ERROR]

    # ─────────────────────────────────────────────────────────────────────────

    def create(
        self,
        product_id: str,
        version: str = "1.0",
        lines: Optional[Sequence[BomLine]] = None,
        bom_type: BomType = BomType.STANDARD,
        output_quantity: float = 1.0,
        uom_code: str = "UN",
        effectivity: Effectivity = ALWAYS,
        bom_id: Optional[str] = None,
    ) -> Bom:
        """
        Create a draft BOM.

        Raises:
            InvalidVersion: version already exists for the product
            CircularStructureException: a line would close a cycle
        """
        self._ensure_unique_version(product_id, version)
        if output_quantity <= 0:
            raise ValueError("Output quantity must be positive")

        bom = Bom(
            bom_id=bom_id or f"BOM-{product_id}-{version}",
            product_id=product_id,
            version=version,
            bom_type=bom_type,
            output_quantity=output_quantity,
            uom_code=uom_code,
            effectivity=effectivity,
        )
        for line in lines or []:
            self._check_line(bom, line)
            bom.lines.append(line if line.line_number else replace(line, line_number=bom.next_line_number()))

        self._mark_latest(bom)
        self._save(bom)
        logger.info(f"Created BOM {bom.bom_id} for {product_id} v{version} ({len(bom.lines)} lines)")
        return bom

    def find_effective(self, product_id: str, as_of: Optional[date] = None) -> Bom:
        as_of = as_of or date.today()
        bom = self.store.find_effective_bom(product_id, as_of)
        if bom is None:
            raise StructureNotFound(product_id, as_of, "bom")
        return bom

    def _check_line(self, bom: Bom, line: BomLine) -> None:
        if line.quantity <= 0:
            raise ValueError(f"Quantity must be positive for component {line.product_id}")
        cycle = self.explosion.creates_cycle(bom.product_id, line.product_id)
        if cycle is not None:
            raise CircularStructureException(cycle)

    def add_line(self, bom_id: str, line: BomLine) -> Bom:
        bom = self.get(bom_id)
        self._ensure_draft(bom)
        self._check_line(bom, line)
        if not line.line_number:
            line = replace(line, line_number=bom.next_line_number())
        elif any(existing.line_number == line.line_number for existing in bom.lines):
            raise ValueError(f"Line {line.line_number} already exists on BOM {bom_id}")
        bom.lines.append(line)
        self._save(bom)
        return bom

    def remove_line(self, bom_id: str, line_number: int) -> Bom:
        bom = self.get(bom_id)
        self._ensure_draft(bom)
        remaining = [line for line in bom.lines if line.line_number != line_number]
        if len(remaining) == len(bom.lines):
            raise ValueError(f"Line {line_number} not found on BOM {bom_id}")
        bom.lines = remaining
        self._save(bom)
        return bom

    def update_line_quantity(self, bom_id: str, line_number: int, quantity: float) -> Bom:
        bom = self.get(bom_id)
        self._ensure_draft(bom)
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        for i, line in enumerate(bom.lines):
            if line.line_number == line_number:
                bom.lines[i] = line.with_quantity(quantity)
                self._save(bom)
                return bom
        raise ValueError(f"Line {line_number} not found on BOM {bom_id}")

    def create_version(
        self,
        bom_id: str,
        new_version: Optional[str] = None,
        effective_from: Optional[date] = None,
    ) -> Bom:
        """Copy a BOM as a new draft version."""
        source = self.get(bom_id)
        version = new_version or next_version(source.version)
        self._ensure_unique_version(source.product_id, version)

        draft = Bom(
            bom_id=f"BOM-{source.product_id}-{version}",
            product_id=source.product_id,
            version=version,
            bom_type=source.bom_type,
            output_quantity=source.output_quantity,
            uom_code=source.uom_code,
            lines=list(source.lines),
            effectivity=Effectivity(effective_from) if effective_from else ALWAYS,
            status=StructureStatus.DRAFT,
            previous_version_id=source.bom_id,
        )
        self._mark_latest(draft)
        self._save(draft)
        logger.info(f"Created BOM version {draft.bom_id} from {bom_id}")
        return draft

    def compare(self, from_bom_id: str, to_bom_id: str) -> BomComparison:
        old = {line.product_id: line for line in self.get(from_bom_id).lines}
        new = {line.product_id: line for line in self.get(to_bom_id).lines}
        diff = BomComparison(from_bom_id=from_bom_id, to_bom_id=to_bom_id)

        for product_id in sorted(new.keys() - old.keys()):
            diff.added.append({"product_id": product_id, "quantity": new[product_id].quantity})
        for product_id in sorted(old.keys() - new.keys()):
            diff.removed.append({"product_id": product_id, "quantity": old[product_id].quantity})
        for product_id in sorted(old.keys() & new.keys()):
            a, b = old[product_id], new[product_id]
            if a.quantity != b.quantity or a.scrap_percentage != b.scrap_percentage:
                diff.changed.append({
                    "product_id": product_id,
                    "old_quantity": a.quantity,
                    "new_quantity": b.quantity,
                    "old_scrap_percentage": a.scrap_percentage,
                    "new_scrap_percentage": b.scrap_percentage,
                })
        return diff

    def where_used(self, component_product_id: str, as_of: Optional[date] = None) -> List[WhereUsedEntry]:
        return self.explosion.where_used(component_product_id, as_of)
