"""
═══════════════════════════════════════════════════════════════════════════════
                    CAPACITY RESOLVER — Bottleneck Remediation
═══════════════════════════════════════════════════════════════════════════════

Given a bottleneck (work center, period, overload hours) proposes ranked,
costed remediation actions and can auto-apply the low-risk ones.

    Action                    Priority  Auto   Approval  Cost
    ───────────────────────────────────────────────────────────────────────
    alternative work center   1         yes    no        rate diff × hours
    overtime                  2         no     yes       hours × OT rate
    reschedule                3         *      no        0
    subcontract               4         no     yes       hours × vendor rate
    split                     5         no     yes       0

    * auto only when every moved order is a work order outside the Frozen
      zone that still meets its due date. Planned orders follow on the next
      MRP run.

Alternative work centers and reschedules only claim the hours of loads that
fit whole into the target period's spare capacity.

Ranking: (priority, estimated cost, suggested date, target resource id).
═══════════════════════════════════════════════════════════════════════════════
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import replace
from datetime import date, timedelta
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator

from ..config import PlanningConfig, get_config
from ..core.horizon import PlanningHorizon
from ..exceptions import InvalidStatus
from ..structures.work_center import WorkCenter
from .capacity_planner import CapacityPlanner, Order
from .types import (
    AutoResolveResult,
    Bottleneck,
    CapacityLoad,
    CapacityProfile,
    CapacityResolutionSuggestion,
    LoadSourceType,
    ResolutionAction,
)

if TYPE_CHECKING:
    from ..managers.work_order_manager import WorkOrderManager

logger = logging.getLogger(__name__)

MAX_OVERTIME_HOURS_PER_DAY = 24.0
SPLIT_RESOLUTION_SHARE = 0.5
_EPSILON = 1e-9

LoadKey = Tuple[str, str, int]


class ResolverPreferences(BaseModel):
    """
    Preferências do resolver.

    Rates left as None fall back to the work center, then to the config.
    """
    priority_overrides: Dict[ResolutionAction, int] = Field(default_factory=dict)
    disabled_actions: List[ResolutionAction] = Field(default_factory=list)
    overtime_rate: Optional[float] = Field(default=None, ge=0)
    subcontract_rate: Optional[float] = Field(default=None, ge=0)
    max_overtime_hours_per_day: Optional[float] = Field(default=None, ge=0)

    @field_validator("priority_overrides")
    @classmethod
    def check_priorities(cls, v):
        for action, priority in v.items():
            if priority < 1:
                raise ValueError(f"Priority for {action} must be at least 1")
        return v

    def is_enabled(self, action: ResolutionAction) -> bool:
        return action not in self.disabled_actions

    def priority_for(self, action: ResolutionAction) -> int:
        return self.priority_overrides.get(action, action.default_priority)


class CapacityResolver:
    """
    Resolver de bottlenecks de capacidade.

    Usage:
        resolver = CapacityResolver(planner, work_order_manager)
        for bottleneck in planner.identify_bottlenecks(horizon):
            result = resolver.auto_resolve(bottleneck, simulate=True)
    """

    def __init__(
        self,
        planner: CapacityPlanner,
        work_order_manager: Optional["WorkOrderManager"] = None,
        preferences: Optional[ResolverPreferences] = None,
        config: Optional[PlanningConfig] = None,
    ):
        self.planner = planner
        self.work_centers = planner.work_centers
        self.work_order_manager = work_order_manager
        self.preferences = preferences or ResolverPreferences()
        self.config = config or planner.config or get_config()

    def set_preferences(self, preferences: ResolverPreferences) -> None:
        self.preferences = preferences

    # ═══════════════════════════════════════════════════════════════════════════
    # SUGGESTIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def get_suggestions(
        self,
        bottleneck: Bottleneck,
        horizon: Optional[PlanningHorizon] = None,
        orders: Optional[Iterable[Order]] = None,
    ) -> List[CapacityResolutionSuggestion]:
        """
        Ranked suggestions for one bottleneck.

        Without a horizon, a daily horizon of ``max_reschedule_days`` starting
        at the bottleneck period is used, with no Frozen zone.
        """
        overload = bottleneck.overload_hours
        if overload <= 0:
            return []

        if horizon is None:
            horizon = PlanningHorizon(
                bottleneck.period_start,
                bottleneck.period_start + timedelta(days=max(1, self.config.max_reschedule_days)),
                0,
                0,
            )
        wc = self.work_centers.get_work_center(bottleneck.work_center_id)
        profiles = self.planner.get_all_capacity_profiles(horizon, orders)

        suggestions: List[CapacityResolutionSuggestion] = []
        if wc is not None:
            suggestions.extend(self.suggest_alternative_work_centers(bottleneck, wc, profiles, horizon))
            suggestions.extend(self.suggest_overtime(bottleneck, wc))
            suggestions.extend(self.suggest_subcontracting(bottleneck, wc))
        else:
            logger.warning(f"Bottleneck on unknown work center '{bottleneck.work_center_id}'")
        suggestions.extend(self.suggest_reschedule(bottleneck, profiles.get(bottleneck.work_center_id), horizon))
        suggestions.extend(self.suggest_order_splitting(bottleneck))

        ranked = [
            s.with_priority(self.preferences.priority_for(s.action))
            for s in suggestions
            if self.preferences.is_enabled(s.action)
        ]
        ranked.sort(key=lambda s: s.sort_key())
        return ranked

    def suggest_alternative_work_centers(
        self,
        bottleneck: Bottleneck,
        wc: WorkCenter,
        profiles: Dict[str, CapacityProfile],
        horizon: PlanningHorizon,
    ) -> List[CapacityResolutionSuggestion]:
        """
        Alternatives listed on the work center, else same-type work centers.

        Only work order operations can be rerouted; each one moves whole and
        only into the spare hours the alternative has in the period.
        """
        if wc.alternative_ids:
            candidates = [self.work_centers.get_work_center(wc_id) for wc_id in wc.alternative_ids]
        else:
            candidates = [
                other for other in self.work_centers.list_work_centers(active_only=True)
                if other.work_center_type == wc.work_center_type
                and other.work_center_id != wc.work_center_id
            ]

        reassignable = [
            l for l in bottleneck.loads
            if l.source_type == LoadSourceType.WORK_ORDER and l.operation_number is not None
        ]
        suggestions = []
        for alt in sorted((c for c in candidates if c is not None and c.is_active), key=lambda c: c.work_center_id):
            profile = profiles.get(alt.work_center_id)
            if profile is None:
                profile = self.planner.build_profile(alt.work_center_id, horizon, [])
            period = profile.period_for(bottleneck.period_start)
            if period is None or period.remaining_hours <= 0:
                continue

            moved = _pick_loads(reassignable, period.remaining_hours, bottleneck.overload_hours)
            if not moved:
                continue
            moved_hours = math.fsum(l.hours for l in moved)
            hours = min(bottleneck.overload_hours, moved_hours)
            cost = max(0.0, alt.total_rate - wc.total_rate) * moved_hours
            suggestions.append(CapacityResolutionSuggestion(
                action=ResolutionAction.ALTERNATIVE_WORK_CENTER,
                description=f"Route {moved_hours:.1f}h to alternative work center {alt.code}",
                resolves_hours=hours,
                priority=ResolutionAction.ALTERNATIVE_WORK_CENTER.default_priority,
                estimated_cost=cost,
                can_auto_apply=True,
                target_resource_id=alt.work_center_id,
                suggested_date=bottleneck.period_start,
                parameters={
                    "work_center_id": wc.work_center_id,
                    "period_start": bottleneck.period_start.isoformat(),
                    "moved_hours": moved_hours,
                    "reassignments": [[l.source_id, l.operation_number] for l in moved],
                    "loads": [list(_load_key(l)) for l in moved],
                },
                reason="Alternative work center has available capacity",
            ))
        return suggestions

    def suggest_overtime(self, bottleneck: Bottleneck, wc: WorkCenter) -> List[CapacityResolutionSuggestion]:
        """
        Overtime up to the calendar's overtime in the period, or the per-day
        cap on each working day when the calendar sets none.
        """
        allocation = self._overtime_allocation(bottleneck, wc)
        hours = math.fsum(allocation.values())
        if hours <= 0:
            return []

        rate = self._rate(self.preferences.overtime_rate, wc.overtime_rate, self.config.overtime_rate)
        return [CapacityResolutionSuggestion(
            action=ResolutionAction.OVERTIME,
            description=f"Schedule {hours:.1f}h overtime on {wc.code}",
            resolves_hours=hours,
            priority=ResolutionAction.OVERTIME.default_priority,
            estimated_cost=hours * rate,
            requires_approval=True,
            can_auto_apply=False,
            target_resource_id=wc.work_center_id,
            suggested_date=min(allocation),
            parameters={
                "work_center_id": wc.work_center_id,
                "rate": rate,
                "allocation": {d.isoformat(): h for d, h in sorted(allocation.items())},
            },
            reason="Overtime adds capacity without moving orders",
        )]

    def _overtime_allocation(self, bottleneck: Bottleneck, wc: WorkCenter) -> Dict[date, float]:
        per_day_cap = self.preferences.max_overtime_hours_per_day
        if per_day_cap is None:
            per_day_cap = self.config.max_overtime_hours_per_day

        calendar = {
            e.date: e for e in self.work_centers.get_calendar(
                wc.work_center_id, bottleneck.period_start, bottleneck.period_end,
            )
        }
        calendar_overtime = {d: e.overtime_hours for d, e in calendar.items() if e.is_working and e.overtime_hours > 0}

        if calendar_overtime:
            caps = calendar_overtime
        else:
            caps = {}
            current = bottleneck.period_start
            while current < bottleneck.period_end:
                entry = calendar.get(current)
                working = entry.is_working if entry is not None else wc.is_working_day(current)
                if working:
                    caps[current] = per_day_cap
                current += timedelta(days=1)

        allocation: Dict[date, float] = {}
        needed = bottleneck.overload_hours
        for day in sorted(caps):
            if needed <= 0:
                break
            hours = min(needed, caps[day])
            if hours > 0:
                allocation[day] = hours
                needed -= hours
        return allocation

    def suggest_reschedule(
        self,
        bottleneck: Bottleneck,
        profile: Optional[CapacityProfile],
        horizon: PlanningHorizon,
    ) -> List[CapacityResolutionSuggestion]:
        """
        Move non-firm orders to the nearest later period whose spare capacity
        takes them whole.

        The first period that absorbs the full overload wins; failing that,
        the one that absorbs the most. Planned orders are only re-dated by the
        next MRP run, so a suggestion that moves one is never auto-applied.
        """
        if profile is None:
            return []
        movable = [l for l in bottleneck.loads if not l.is_firm]
        if not movable:
            return []

        overload = bottleneck.overload_hours
        best = None
        for period in profile.periods:
            if period.start <= bottleneck.period_start or period.remaining_hours <= 0:
                continue
            days = (period.start - bottleneck.period_start).days
            if days > self.config.max_reschedule_days:
                break

            moved = _pick_loads(movable, period.remaining_hours, overload, whole_orders=True)
            moved_hours = math.fsum(l.hours for l in moved)
            if moved and (best is None or moved_hours > best[2] + _EPSILON):
                best = (period, moved, moved_hours)
            if moved_hours >= overload - _EPSILON:
                break
        if best is None:
            return []

        period, moved, moved_hours = best
        days = (period.start - bottleneck.period_start).days
        hours = min(overload, moved_hours)
        in_frozen = any(horizon.is_frozen(l.load_date) for l in moved)
        misses_due = any(l.due_date is not None and period.start > l.due_date for l in moved)
        work_order_ids = sorted({l.source_id for l in moved if l.source_type == LoadSourceType.WORK_ORDER})
        planned_order_ids = sorted({l.source_id for l in moved if l.source_type == LoadSourceType.PLANNED_ORDER})

        return [CapacityResolutionSuggestion(
            action=ResolutionAction.RESCHEDULE,
            description=f"Reschedule {moved_hours:.1f}h to {period.start.isoformat()} (+{days} days)",
            resolves_hours=hours,
            priority=ResolutionAction.RESCHEDULE.default_priority,
            lead_time_impact=days,
            can_auto_apply=not in_frozen and not misses_due and not planned_order_ids,
            target_resource_id=bottleneck.work_center_id,
            suggested_date=period.start,
            parameters={
                "work_center_id": bottleneck.work_center_id,
                "from_date": bottleneck.period_start.isoformat(),
                "moved_hours": moved_hours,
                "work_order_ids": work_order_ids,
                "planned_order_ids": planned_order_ids,
                "loads": [list(_load_key(l)) for l in moved],
                "frozen": in_frozen,
                "misses_due_date": misses_due,
            },
            reason="Later period has spare capacity",
        )]

    def suggest_subcontracting(self, bottleneck: Bottleneck, wc: WorkCenter) -> List[CapacityResolutionSuggestion]:
        rate = self._rate(self.preferences.subcontract_rate, wc.subcontract_rate, self.config.subcontract_rate)
        hours = bottleneck.overload_hours
        return [CapacityResolutionSuggestion(
            action=ResolutionAction.SUBCONTRACT,
            description=f"Subcontract {hours:.1f}h of {wc.code} work",
            resolves_hours=hours,
            priority=ResolutionAction.SUBCONTRACT.default_priority,
            estimated_cost=hours * rate,
            requires_approval=True,
            can_auto_apply=False,
            suggested_date=bottleneck.period_start,
            parameters={"work_center_id": wc.work_center_id, "rate": rate},
            reason="External vendor capacity",
        )]

    def suggest_order_splitting(self, bottleneck: Bottleneck) -> List[CapacityResolutionSuggestion]:
        return [CapacityResolutionSuggestion(
            action=ResolutionAction.SPLIT,
            description="Split large operations across periods or work centers",
            resolves_hours=bottleneck.overload_hours * SPLIT_RESOLUTION_SHARE,
            priority=ResolutionAction.SPLIT.default_priority,
            requires_approval=True,
            can_auto_apply=False,
            target_resource_id=bottleneck.work_center_id,
            suggested_date=bottleneck.period_start,
            parameters={"work_center_id": bottleneck.work_center_id},
            reason="Splitting lets parts of an order run in parallel",
        )]

    @staticmethod
    def _rate(*candidates: Optional[float]) -> float:
        for rate in candidates:
            if rate is not None:
                return rate
        return 0.0

    # ═══════════════════════════════════════════════════════════════════════════
    # AUTO RESOLVE
    # ═══════════════════════════════════════════════════════════════════════════

    def auto_resolve(
        self,
        bottleneck: Bottleneck,
        simulate: bool = False,
        horizon: Optional[PlanningHorizon] = None,
        orders: Optional[Iterable[Order]] = None,
    ) -> AutoResolveResult:
        """
        Apply auto-appliable suggestions in rank order until the overload is
        covered. In simulate mode the same selection is returned without any
        mutation.

        Suggestions are re-ranked after each action over the loads no earlier
        action has moved, and each (action, target) is used at most once.
        """
        remaining = bottleneck.overload_hours
        actions: List[CapacityResolutionSuggestion] = []
        taken: Set[LoadKey] = set()
        tried: Set[Tuple[ResolutionAction, Optional[str]]] = set()

        while remaining > _EPSILON:
            current = replace(
                bottleneck,
                overload_hours=remaining,
                loads=tuple(l for l in bottleneck.loads if _load_key(l) not in taken),
            )
            suggestion = next(
                (
                    s for s in self.get_suggestions(current, horizon, orders)
                    if s.can_auto_apply and not s.requires_approval
                    and (s.action, s.target_resource_id) not in tried
                ),
                None,
            )
            if suggestion is None:
                break
            tried.add((suggestion.action, suggestion.target_resource_id))
            if not (simulate or self.apply_suggestion(suggestion)):
                continue

            actions.append(suggestion)
            taken.update(tuple(key) for key in suggestion.parameters.get("loads", ()))
            remaining -= suggestion.resolves_hours
            logger.info(
                f"{'Simulated' if simulate else 'Applied'} {suggestion.action.value} on "
                f"{bottleneck.work_center_id}: {suggestion.resolves_hours:.1f}h, "
                f"{max(0.0, remaining):.1f}h remaining"
            )

        return AutoResolveResult(
            resolved=remaining <= _EPSILON,
            remaining_overload=max(0.0, remaining),
            actions=actions,
            simulated=simulate,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # APPLY / VALIDATE / IMPACT
    # ═══════════════════════════════════════════════════════════════════════════

    def apply_suggestion(
        self,
        suggestion: CapacityResolutionSuggestion,
        approved: bool = False,
        force_apply: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Apply one suggestion.

        Suggestions that require approval need ``approved``; suggestions that
        are not auto-appliable need ``approved`` or ``force_apply``. Returns
        False (with a log line) when nothing was applied.
        """
        context = context or {}
        if suggestion.requires_approval and not approved:
            logger.info(f"Resolution requires approval: {suggestion.description}")
            return False
        if not suggestion.can_auto_apply and not (approved or force_apply):
            logger.info(f"Resolution cannot be auto-applied: {suggestion.description}")
            return False

        errors = self.validate_suggestion(suggestion, context)
        if errors:
            logger.warning(f"Rejected {suggestion.action.value}: {'; '.join(errors)}")
            return False

        handlers = {
            ResolutionAction.ALTERNATIVE_WORK_CENTER: self._apply_alternative_work_center,
            ResolutionAction.OVERTIME: self._apply_overtime,
            ResolutionAction.RESCHEDULE: self._apply_reschedule,
            ResolutionAction.SUBCONTRACT: self._apply_manual_only,
            ResolutionAction.SPLIT: self._apply_manual_only,
        }
        return handlers[suggestion.action](suggestion, context)

    def _apply_overtime(self, suggestion: CapacityResolutionSuggestion, context: Dict[str, Any]) -> bool:
        wc_id = suggestion.parameters.get("work_center_id") or suggestion.target_resource_id
        allocation = suggestion.parameters.get("allocation") or {}
        if not wc_id or not allocation:
            logger.warning("Cannot apply overtime: missing work center or allocation")
            return False
        for day, hours in allocation.items():
            self.work_centers.add_overtime(wc_id, date.fromisoformat(day), hours)
        return True

    def _apply_reschedule(self, suggestion: CapacityResolutionSuggestion, context: Dict[str, Any]) -> bool:
        work_order_ids = suggestion.parameters.get("work_order_ids") or []
        planned = suggestion.parameters.get("planned_order_ids") or []
        if planned:
            logger.info(f"{len(planned)} planned orders are re-dated by the next MRP run, not here")
        if not work_order_ids:
            logger.info(f"No work orders to reschedule: {suggestion.description}")
            return False
        if self.work_order_manager is None:
            logger.warning("Cannot reschedule work orders: no work order manager")
            return False
        try:
            for wo_id in work_order_ids:
                self.work_order_manager.reschedule(wo_id, suggestion.suggested_date)
        except (InvalidStatus, ValueError) as exc:
            logger.error(f"Failed to reschedule: {exc}")
            return False
        return True

    def _apply_alternative_work_center(self, suggestion: CapacityResolutionSuggestion, context: Dict[str, Any]) -> bool:
        reassignments = suggestion.parameters.get("reassignments") or []
        if not reassignments:
            logger.info(f"No work order operations to reroute: {suggestion.description}")
            return False
        if self.work_order_manager is None:
            logger.warning("Cannot reassign operations: no work order manager")
            return False
        try:
            for wo_id, operation_number in reassignments:
                self.work_order_manager.reassign_operation(wo_id, operation_number, suggestion.target_resource_id)
        except (InvalidStatus, ValueError) as exc:
            logger.error(f"Failed to apply alternative work center: {exc}")
            return False
        logger.info(
            f"Routed {suggestion.resolves_hours:.1f}h to {suggestion.target_resource_id} "
            f"({len(reassignments)} work order operations)"
        )
        return True

    def _apply_manual_only(self, suggestion: CapacityResolutionSuggestion, context: Dict[str, Any]) -> bool:
        logger.info(f"{suggestion.action.label} flagged for manual handling: {suggestion.description}")
        return False

    def validate_suggestion(
        self,
        suggestion: CapacityResolutionSuggestion,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Errors that block applying a suggestion; empty when valid."""
        context = context or {}
        errors: List[str] = []
        action = suggestion.action

        if action == ResolutionAction.RESCHEDULE:
            if suggestion.suggested_date is None:
                errors.append("New schedule date is required for reschedule action")
            if suggestion.lead_time_impact > self.config.max_reschedule_days:
                errors.append(
                    f"Reschedule delay exceeds maximum allowed ({self.config.max_reschedule_days} days)"
                )
        elif action == ResolutionAction.ALTERNATIVE_WORK_CENTER:
            if not suggestion.target_resource_id:
                errors.append("Alternative work center ID is required")
            elif self.work_centers.get_work_center(suggestion.target_resource_id) is None:
                errors.append("Alternative work center not found")
        elif action == ResolutionAction.OVERTIME:
            allocation = suggestion.parameters.get("allocation") or {}
            per_day = max(allocation.values(), default=suggestion.resolves_hours)
            if per_day > MAX_OVERTIME_HOURS_PER_DAY:
                errors.append(f"Overtime hours exceed maximum ({MAX_OVERTIME_HOURS_PER_DAY:g} hours per day)")
            budget = context.get("max_overtime_budget")
            if budget is not None and suggestion.estimated_cost > budget:
                errors.append("Overtime cost exceeds budget")
        elif action == ResolutionAction.SPLIT:
            if suggestion.resolves_hours < 1:
                errors.append("Split must resolve at least 1 hour")
        elif action == ResolutionAction.SUBCONTRACT:
            if not (context.get("subcontractor_id") or suggestion.parameters.get("subcontractor_id")):
                errors.append("Subcontractor ID is required")

        return errors

    def estimate_impact(
        self,
        suggestion: CapacityResolutionSuggestion,
        context: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        context = context or {}
        affected = context.get("affected_work_orders") or suggestion.parameters.get("work_order_ids") or []
        days_delayed = max(0, suggestion.lead_time_impact)

        if days_delayed > 7:
            cascade_risk = "High"
        elif days_delayed > 3:
            cascade_risk = "Medium"
        else:
            cascade_risk = "Low"

        quality_impact = {
            ResolutionAction.OVERTIME: "Potential quality degradation due to overtime",
            ResolutionAction.SUBCONTRACT: "Quality depends on subcontractor",
            ResolutionAction.SPLIT: "Minimal impact",
        }.get(suggestion.action, "None")

        return {
            "hours_resolved": suggestion.resolves_hours,
            "estimated_cost": suggestion.estimated_cost,
            "days_delayed": days_delayed,
            "affected_work_orders": list(affected),
            "quality_impact": quality_impact,
            "cost_breakdown": self._cost_breakdown(suggestion),
            "scheduling_impact": {
                "days_delayed": days_delayed,
                "affected_orders": len(affected),
                "cascade_risk": cascade_risk,
            },
        }

    def _cost_breakdown(self, suggestion: CapacityResolutionSuggestion) -> Dict[str, float]:
        if suggestion.action == ResolutionAction.OVERTIME:
            rate = suggestion.parameters.get("rate", self.config.overtime_rate)
            return {
                "overtime_hours": suggestion.resolves_hours,
                "hourly_rate": rate,
                "total_cost": suggestion.resolves_hours * rate,
            }
        if suggestion.action == ResolutionAction.SUBCONTRACT:
            cost = suggestion.estimated_cost
            return {
                "estimated_cost": cost,
                "setup": cost * 0.2,
                "processing": cost * 0.7,
                "logistics": cost * 0.1,
            }
        return {"estimated_cost": suggestion.estimated_cost}


def _load_key(load: CapacityLoad) -> LoadKey:
    return (load.source_type.value, load.source_id, load.operation_number or 0)


def _pick_loads(
    loads: List[CapacityLoad],
    capacity: float,
    needed: float,
    whole_orders: bool = False,
) -> List[CapacityLoad]:
    """
    Loads that fit whole into ``capacity`` spare hours, until ``needed`` is
    covered. Most slack first, then by source id.

    With ``whole_orders`` the loads of one order move together.
    """
    units: Dict[Any, List[CapacityLoad]] = defaultdict(list)
    for load in loads:
        key = (load.source_type.value, load.source_id) if whole_orders else _load_key(load)
        units[key].append(load)
    ranked = sorted(
        units.items(),
        key=lambda item: (-min(l.slack_days for l in item[1]), item[0][1], item[0]),
    )

    picked: List[CapacityLoad] = []
    covered = 0.0
    for _, unit in ranked:
        if covered >= needed - _EPSILON:
            break
        hours = math.fsum(l.hours for l in unit)
        if covered + hours > capacity + _EPSILON:
            continue
        picked.extend(unit)
        covered += hours
    return picked
