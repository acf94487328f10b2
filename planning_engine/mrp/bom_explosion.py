"""
Planning Engine - BOM Explosion
===============================

Multi-level BOM explosion against an effective-dated structure store.

Features:
- Depth-first explosion with an explicit stack (no recursion)
- Cycle detection per ancestor path (a revisit via another branch is fine)
- Phantom inlining at the current level
- Line-level effectivity, checked independently of the BOM window
- Where-used lookup and structural validation
- Low-level codes over every released BOM version

Quantity of a component line:

    required = parent_quantity x quantity_per x (1 + scrap% / 100)
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pandas as pd

from ..config import PlanningConfig, get_config
from ..exceptions import CircularStructureException, StructureNotFound
from ..providers.base import StructureStore
from ..structures.bom import Bom, BomLine, BomType, StructureStatus

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExplodedComponent:
    """One row of an exploded BOM."""
    product_id: str
    quantity: float
    level: int  # 1 = direct component of the exploded product
    uom_code: str = "UN"
    parent_product_id: Optional[str] = None
    bom_id: Optional[str] = None
    line_number: int = 0
    is_phantom_source: bool = False  # reached through a phantom assembly
    has_structure: bool = False  # component has an effective BOM of its own

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": round(self.quantity, 6),
            "level": self.level,
            "uom_code": self.uom_code,
            "parent_product_id": self.parent_product_id,
            "bom_id": self.bom_id,
            "line_number": self.line_number,
            "is_phantom_source": self.is_phantom_source,
            "has_structure": self.has_structure,
        }


@dataclass(frozen=True)
class WhereUsedEntry:
    """A BOM line referencing a component."""
    bom_id: str
    product_id: str  # parent product
    version: str
    line: BomLine
    status: str = "released"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bom_id": self.bom_id,
            "product_id": self.product_id,
            "version": self.version,
            "status": self.status,
            "quantity": self.line.quantity,
            "line_number": self.line.line_number,
        }


class ValidationSeverity(str, Enum):
    """Severity of validation issues."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationIssue:
    """A validation issue found during checks."""
    code: str
    message: str
    severity: ValidationSeverity
    product_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "product_id": self.product_id,
            "details": self.details,
        }


@dataclass
class ValidationResult:
    """Result of validation checks."""
    valid: bool = True
    issues: List[ValidationIssue] = field(default_factory=list)
    warnings_count: int = 0
    errors_count: int = 0

    def add_issue(self, issue: ValidationIssue) -> None:
        self.issues.append(issue)
        if issue.severity == ValidationSeverity.ERROR:
            self.errors_count += 1
            self.valid = False
        elif issue.severity == ValidationSeverity.WARNING:
            self.warnings_count += 1

    def codes(self) -> List[str]:
        return [i.code for i in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors_count": self.errors_count,
            "warnings_count": self.warnings_count,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class _Task:
    """Stack frame: one BOM line waiting to be expanded."""
    line: BomLine
    bom: Bom
    parent_quantity: float
    level: int  # level of the parent
    path: Tuple[str, ...]  # product ids from the root down to the parent
    parent_product_id: str
    via_phantom: bool


# ═══════════════════════════════════════════════════════════════════════════════
# BOM EXPLOSION
# ═══════════════════════════════════════════════════════════════════════════════

class BomExplosion:
    """
    BOM explosion over a StructureStore.

    Usage:
        explosion = BomExplosion(store)
        rows = explosion.explode("BOM-A", 5)
        leaves = explosion.leaf_requirements("BOM-A", 5)
    """

    def __init__(self, store: StructureStore, config: Optional[PlanningConfig] = None):
        self.store = store
        self.config = config or get_config()

    # ─────────────────────────────────────────────────────────────────────────
    # Explosion
    # ─────────────────────────────────────────────────────────────────────────

    def explode(
        self,
        bom_id: str,
        parent_quantity: float = 1.0,
        as_of: Optional[date] = None,
        max_levels: Optional[int] = None,
    ) -> List[ExplodedComponent]:
        """
        Explode a BOM into a flat, level-tagged component list.

        Raises:
            StructureNotFound: unknown bom_id
            CircularStructureException: a product repeats on an ancestor path
        """
        bom = self.store.get_bom(bom_id)
        if bom is None:
            raise StructureNotFound.for_id(bom_id)
        return self._walk(
            bom,
            parent_quantity,
            as_of or date.today(),
            max_levels if max_levels is not None else self.config.max_bom_levels,
        )

    def explode_product(
        self,
        product_id: str,
        quantity: float = 1.0,
        as_of: Optional[date] = None,
        max_levels: Optional[int] = None,
    ) -> List[ExplodedComponent]:
        """Explode the product's effective BOM on ``as_of``."""
        as_of = as_of or date.today()
        bom = self.store.find_effective_bom(product_id, as_of)
        if bom is None:
            raise StructureNotFound(product_id, as_of)
        return self._walk(
            bom,
            quantity,
            as_of,
            max_levels if max_levels is not None else self.config.max_bom_levels,
        )

    def explode_single_level(
        self,
        bom: Bom,
        quantity: float,
        as_of: date,
        path: Sequence[str] = (),
    ) -> List[ExplodedComponent]:
        """
        Direct components of a BOM, phantoms spliced in.

        ``path`` is the chain of products above the BOM's product; it is used
        for cycle detection through phantoms.
        """
        return self._walk(bom, quantity, as_of, max_levels=1, root_path=tuple(path), warn_on_cap=False)

    def _walk(
        self,
        root: Bom,
        quantity: float,
        as_of: date,
        max_levels: int,
        root_path: Tuple[str, ...] = (),
        warn_on_cap: bool = True,
    ) -> List[ExplodedComponent]:
        if root.product_id in root_path:
            raise CircularStructureException(list(root_path) + [root.product_id])

        result: List[ExplodedComponent] = []
        stack: List[_Task] = []
        self._push_lines(stack, root, quantity, 0, root_path + (root.product_id,),
                         root.product_id, False, as_of)

        while stack:
            task = stack.pop()
            line = task.line
            required = task.parent_quantity * line.get_quantity_with_scrap()
            child_bom = self.store.find_effective_bom(line.product_id, as_of)

            if child_bom is not None and line.product_id in task.path:
                raise CircularStructureException(list(task.path) + [line.product_id])

            is_phantom = line.is_phantom or (
                child_bom is not None and child_bom.bom_type == BomType.PHANTOM
            )

            if is_phantom:
                if child_bom is not None:
                    # Splice the phantom's lines in at the same level.
                    self._push_lines(stack, child_bom, required, task.level,
                                     task.path + (line.product_id,),
                                     task.parent_product_id, True, as_of)
                    continue
                logger.info(
                    f"Phantom {line.product_id} has no effective BOM on {as_of}; "
                    f"treating it as a regular component"
                )

            level = task.level + 1
            result.append(ExplodedComponent(
                product_id=line.product_id,
                quantity=required,
                level=level,
                uom_code=line.uom_code,
                parent_product_id=task.parent_product_id,
                bom_id=task.bom.bom_id,
                line_number=line.line_number,
                is_phantom_source=task.via_phantom,
                has_structure=child_bom is not None,
            ))

            if child_bom is None:
                continue
            if level >= max_levels:
                if warn_on_cap:
                    logger.warning(
                        f"Max BOM levels ({max_levels}) reached at {line.product_id}; "
                        f"not descending further"
                    )
                continue

            self._push_lines(stack, child_bom, required, level,
                             task.path + (line.product_id,),
                             line.product_id, False, as_of)

        return result

    @staticmethod
    def _push_lines(
        stack: List[_Task],
        bom: Bom,
        quantity: float,
        level: int,
        path: Tuple[str, ...],
        parent_product_id: str,
        via_phantom: bool,
        as_of: date,
    ) -> None:
        lines = sorted(bom.effective_lines(as_of), key=lambda l: l.line_number)
        # Reversed so the first line is expanded first.
        for line in reversed(lines):
            stack.append(_Task(line, bom, quantity, level, path, parent_product_id, via_phantom))

    # ─────────────────────────────────────────────────────────────────────────
    # Aggregations
    # ─────────────────────────────────────────────────────────────────────────

    def leaf_requirements(
        self,
        bom_id: str,
        quantity: float = 1.0,
        as_of: Optional[date] = None,
    ) -> Dict[str, float]:
        """Total quantity per component with no BOM of its own (raw materials)."""
        leaves: Dict[str, float] = defaultdict(float)
        for row in self.explode(bom_id, quantity, as_of):
            if not row.has_structure:
                leaves[row.product_id] += row.quantity
        return dict(leaves)

    def to_dataframe(
        self,
        bom_id: str,
        quantity: float = 1.0,
        as_of: Optional[date] = None,
    ) -> pd.DataFrame:
        """Exploded BOM as a DataFrame."""
        rows = [r.to_dict() for r in self.explode(bom_id, quantity, as_of)]
        columns = list(ExplodedComponent.__dataclass_fields__.keys())
        return pd.DataFrame(rows, columns=columns)

    # ─────────────────────────────────────────────────────────────────────────
    # Where-used
    # ─────────────────────────────────────────────────────────────────────────

    def where_used(
        self,
        component_product_id: str,
        as_of: Optional[date] = None,
    ) -> List[WhereUsedEntry]:
        """
        Every BOM/line pair referencing the component.

        With ``as_of`` only effective BOMs and lines are returned.
        """
        entries = []
        for bom, line in self.store.find_where_used(component_product_id):
            if as_of is not None and not (bom.is_effective_at(as_of) and line.is_effective_at(as_of)):
                continue
            entries.append(WhereUsedEntry(
                bom_id=bom.bom_id,
                product_id=bom.product_id,
                version=bom.version,
                line=line,
                status=bom.status.value,
            ))
        return entries

    def where_used_all_levels(self, component_product_id: str) -> List[str]:
        """All ancestor products of a component, nearest first."""
        seen: Set[str] = set()
        ordered: List[str] = []
        queue = deque([component_product_id])
        while queue:
            current = queue.popleft()
            for entry in self.where_used(current):
                if entry.product_id not in seen:
                    seen.add(entry.product_id)
                    ordered.append(entry.product_id)
                    queue.append(entry.product_id)
        return ordered

    # ─────────────────────────────────────────────────────────────────────────
    # Low-level codes
    # ─────────────────────────────────────────────────────────────────────────

    def _released_components(self, product_id: str) -> List[str]:
        """Components on any released version of the product's BOM."""
        components: Set[str] = set()
        for bom in self.store.list_boms(product_id):
            if bom.status == StructureStatus.RELEASED:
                components.update(line.product_id for line in bom.lines)
        return sorted(components)

    def low_level_codes(self, product_id: str) -> Dict[str, int]:
        """
        Deepest level at which each product appears below ``product_id``.

        Every released BOM version counts, whatever its effectivity, so the
        codes hold for any explosion date. Phantoms get a code like any other
        product; the components spliced through them only end up lower.

        Raises:
            CircularStructureException: path from ``product_id`` to the repeat
        """
        children: Dict[str, List[str]] = {}
        post_order: List[str] = []
        on_path: Set[str] = set()
        done: Set[str] = set()

        children[product_id] = self._released_components(product_id)
        path: List[str] = [product_id]
        on_path.add(product_id)
        stack: List[Tuple[str, int]] = [(product_id, 0)]

        while stack:
            node, index = stack[-1]
            if index == len(children[node]):
                stack.pop()
                path.pop()
                on_path.discard(node)
                done.add(node)
                post_order.append(node)
                continue
            stack[-1] = (node, index + 1)
            child = children[node][index]
            if child in on_path:
                raise CircularStructureException(path + [child])
            if child in done:
                continue
            children[child] = self._released_components(child)
            path.append(child)
            on_path.add(child)
            stack.append((child, 0))

        codes: Dict[str, int] = {product_id: 0}
        for node in reversed(post_order):
            for child in children[node]:
                codes[child] = max(codes.get(child, 0), codes[node] + 1)
        return codes

    # ─────────────────────────────────────────────────────────────────────────
    # Validation
    # ─────────────────────────────────────────────────────────────────────────

    def _structure_for(self, product_id: str, as_of: date) -> Optional[Bom]:
        """Effective BOM, else the latest version in any status."""
        bom = self.store.find_effective_bom(product_id, as_of)
        if bom is not None:
            return bom
        latest = [b for b in self.store.list_boms(product_id) if b.is_latest]
        return latest[0] if latest else None

    def find_cycle(self, bom: Bom, as_of: Optional[date] = None) -> Optional[List[str]]:
        """Path of the first cycle reachable from the BOM, or None."""
        as_of = as_of or date.today()
        stack: List[Tuple[str, Tuple[str, ...], Bom]] = [
            (bom.product_id, (bom.product_id,), bom)
        ]
        while stack:
            _, path, current = stack.pop()
            for line in current.lines:
                if line.product_id in path:
                    return list(path) + [line.product_id]
                child = self._structure_for(line.product_id, as_of)
                if child is not None:
                    stack.append((line.product_id, path + (line.product_id,), child))
        return None

    def creates_cycle(
        self,
        parent_product_id: str,
        component_product_id: str,
        as_of: Optional[date] = None,
    ) -> Optional[List[str]]:
        """Cycle path that adding component -> parent would create, or None."""
        if parent_product_id == component_product_id:
            return [parent_product_id, component_product_id]
        as_of = as_of or date.today()
        child = self._structure_for(component_product_id, as_of)
        if child is None:
            return None
        stack: List[Tuple[Tuple[str, ...], Bom]] = [
            ((parent_product_id, component_product_id), child)
        ]
        visited: Set[str] = set()
        while stack:
            path, current = stack.pop()
            if current.product_id in visited:
                continue
            visited.add(current.product_id)
            for line in current.lines:
                if line.product_id == parent_product_id:
                    return list(path) + [parent_product_id]
                grandchild = self._structure_for(line.product_id, as_of)
                if grandchild is not None:
                    stack.append((path + (line.product_id,), grandchild))
        return None

    def validate(
        self,
        bom_id: str,
        as_of: Optional[date] = None,
        raise_on_cycle: bool = True,
    ) -> ValidationResult:
        """
        Validate a BOM.

        Checks: cycles (direct or transitive), missing component master data,
        non-positive quantities, empty BOM.

        Raises:
            CircularStructureException: on a cycle when raise_on_cycle is set
        """
        bom = self.store.get_bom(bom_id)
        if bom is None:
            raise StructureNotFound.for_id(bom_id)

        result = ValidationResult()

        if not bom.lines:
            result.add_issue(ValidationIssue(
                code="BOM_NO_LINES",
                message=f"BOM {bom_id} has no lines",
                severity=ValidationSeverity.WARNING,
                product_id=bom.product_id,
            ))

        for line in bom.lines:
            if line.quantity <= 0:
                result.add_issue(ValidationIssue(
                    code="BOM_INVALID_QTY",
                    message=f"Invalid quantity ({line.quantity}) for {line.product_id}",
                    severity=ValidationSeverity.ERROR,
                    product_id=line.product_id,
                    details={"line_number": line.line_number},
                ))
            if not self.store.has_product(line.product_id):
                result.add_issue(ValidationIssue(
                    code="BOM_MISSING_COMPONENT",
                    message=f"Component {line.product_id} not found in master data",
                    severity=ValidationSeverity.ERROR,
                    product_id=line.product_id,
                ))

        cycle = self.find_cycle(bom, as_of)
        if cycle is not None:
            if raise_on_cycle:
                raise CircularStructureException(cycle)
            result.add_issue(ValidationIssue(
                code="BOM_CYCLE",
                message=f"Cycle detected: {' -> '.join(cycle)}",
                severity=ValidationSeverity.ERROR,
                product_id=bom.product_id,
                details={"path": cycle},
            ))

        if not result.valid:
            logger.info(f"BOM {bom_id} failed validation with {result.errors_count} error(s)")
        return result
