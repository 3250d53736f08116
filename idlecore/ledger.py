"""
IdleCore — idlecore/ledger.py
ProducerLedger: owned counts, levels, unlocks, production rates.
================================================================
Version:     0.3
Stack:       Python 3.11+ | stdlib
Status:      Stable.

Architecture notes
------------------
- Every operation takes the GameState explicitly and edits it in place.
  Callers that need isolation pass `state.copy()`; commands.apply_command
  always does.
- All-or-nothing: every check runs before the first write, so a raised
  NotAvailable / InsufficientResource leaves the state untouched.
- No rate is cached. production_rate() recomputes from (owned, level) and
  the current EffectSet on every call.

Effect keys read here
---------------------
  essenceGenerationMultiplier     producers of `essence`
  minionProductionMultiplier      every producer of kind "minion"
  <resource>ProductionMultiplier  per produced resource (e.g. goldProductionMultiplier)
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from idlecore import formulas
from idlecore.data_loader import Catalog, ProducerDef, RequirementDef
from idlecore.effects import EffectSet
from idlecore.errors import InsufficientResource, NotAvailable
from idlecore.events import (
    GameEvent,
    EVT_PRODUCER_PURCHASED,
    EVT_PRODUCER_UPGRADED,
    EVT_PRODUCER_UNLOCKED,
    EVT_PRODUCER_RESET,
)
from idlecore.state import GameState, ProducerState

logger = logging.getLogger("idlecore.ledger")


# ============================================================
# LOOKUPS
# ============================================================

def _definition(catalog: Catalog, producer_id: str) -> ProducerDef:
    pdef = catalog.producers.get(producer_id)
    if pdef is None:
        raise NotAvailable(f"unknown producer '{producer_id}'", target_id=producer_id)
    return pdef


def _line(state: GameState, pdef: ProducerDef) -> ProducerState:
    """The producer's dynamic record, created lazily for new definitions."""
    ps = state.producers.get(pdef.id)
    if ps is None:
        ps = ProducerState(unlocked=pdef.unlocked_by_default, last_collected_at=state.now)
        state.producers[pdef.id] = ps
    return ps


def _unlocked_line(state: GameState, catalog: Catalog, producer_id: str):
    pdef = _definition(catalog, producer_id)
    ps = _line(state, pdef)
    if not ps.unlocked:
        raise NotAvailable(f"producer '{producer_id}' is locked", target_id=producer_id)
    return pdef, ps


def _charge(state: GameState, resource: str, amount: float) -> None:
    available = state.resource(resource)
    if available < amount:
        raise InsufficientResource(resource, amount, available)


# ============================================================
# COSTS & RATES
# ============================================================

def next_cost(state: GameState, catalog: Catalog, producer_id: str, amount: int = 1) -> float:
    """Price of the next `amount` units, for presentation. math.inf past float range."""
    pdef = _definition(catalog, producer_id)
    owned = state.producers[producer_id].owned if producer_id in state.producers else 0
    return formulas.bulk_cost(pdef.base_cost, pdef.cost_multiplier, owned, amount)


def next_upgrade_cost(state: GameState, catalog: Catalog, producer_id: str) -> Optional[float]:
    """None when the producer has no upgrade table or is at max level."""
    pdef = _definition(catalog, producer_id)
    up = pdef.upgrade
    if up is None:
        return None
    level = state.producers[producer_id].level if producer_id in state.producers else 1
    if up.max_level is not None and level >= up.max_level:
        return None
    return formulas.upgrade_cost(up.base_cost, up.cost_multiplier, level)


def effect_multiplier(pdef: ProducerDef, effects: EffectSet) -> float:
    mult = effects.get(f"{pdef.resource}ProductionMultiplier")
    if pdef.resource == "essence":
        mult *= effects.get("essenceGenerationMultiplier")
    if pdef.kind == "minion":
        mult *= effects.get("minionProductionMultiplier")
    return mult


def production_rate(state: GameState, catalog: Catalog, producer_id: str,
                    effects: Optional[EffectSet] = None) -> float:
    """Per-second output of one producer line after effects. 0 while locked."""
    pdef = _definition(catalog, producer_id)
    ps = state.producers.get(producer_id)
    if ps is None or not ps.unlocked or ps.owned <= 0:
        return 0.0
    base = formulas.production(pdef.base_production, ps.owned, ps.level,
                               pdef.production_multiplier)
    return base * effect_multiplier(pdef, effects or EffectSet())


def total_production_by_resource(state: GameState, catalog: Catalog,
                                 effects: Optional[EffectSet] = None) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for pid in sorted(state.producers):
        if pid not in catalog.producers:
            continue
        rate = production_rate(state, catalog, pid, effects)
        if rate > 0:
            resource = catalog.producers[pid].resource
            totals[resource] = totals.get(resource, 0.0) + rate
    return totals


# ============================================================
# UNLOCKS
# ============================================================

def requirement_met(state: GameState, req: Optional[RequirementDef]) -> bool:
    if req is None:
        return True
    for resource, minimum in req.resources.items():
        if state.resource(resource) < minimum:
            return False
    for pid, minimum in req.producers.items():
        ps = state.producers.get(pid)
        if ps is None or ps.owned < minimum:
            return False
    return True


def unlock(state: GameState, catalog: Catalog, producer_id: str) -> List[GameEvent]:
    """Locked -> unlocked once the requirement holds. Never reverts."""
    pdef = _definition(catalog, producer_id)
    ps = _line(state, pdef)
    if ps.unlocked:
        return []
    if not requirement_met(state, pdef.unlock_requirement):
        raise NotAvailable(
            f"unlock requirement for '{producer_id}' not met", target_id=producer_id
        )
    ps.unlocked = True
    logger.info("Unlocked producer %s", producer_id)
    return [GameEvent(event_key=EVT_PRODUCER_UNLOCKED, source=producer_id)]


def check_unlocks(state: GameState, catalog: Catalog) -> List[str]:
    """Unlocks every locked producer whose requirement now holds."""
    changed = []
    for pid in sorted(catalog.producers):
        pdef = catalog.producers[pid]
        ps = _line(state, pdef)
        if not ps.unlocked and requirement_met(state, pdef.unlock_requirement):
            ps.unlocked = True
            changed.append(pid)
    if changed:
        logger.info("Unlocked producers: %s", ", ".join(changed))
    return changed


# ============================================================
# PURCHASE / UPGRADE / RESET
# ============================================================

def purchase(state: GameState, catalog: Catalog, producer_id: str,
             amount: int = 1) -> List[GameEvent]:
    """
    Buys `amount` units at the sum of their successive unit costs.
    Increment and deduction happen together or not at all.
    """
    if amount < 1:
        raise ValueError(f"amount must be >= 1, got {amount}")
    pdef, ps = _unlocked_line(state, catalog, producer_id)
    # stops summing once the balance is passed; `required` is then a lower bound
    total = formulas.bulk_cost(pdef.base_cost, pdef.cost_multiplier, ps.owned, amount,
                               limit=state.resource(pdef.cost_resource))
    _charge(state, pdef.cost_resource, total)

    state.resources[pdef.cost_resource] = state.resource(pdef.cost_resource) - total
    ps.owned += amount
    logger.info("Purchased %d x %s for %d %s (owned %d)",
                amount, producer_id, total, pdef.cost_resource, ps.owned)
    return [GameEvent(
        event_key=EVT_PRODUCER_PURCHASED,
        source=producer_id,
        data={"amount": amount, "cost": total,
              "resource": pdef.cost_resource, "owned": ps.owned},
    )]


def upgrade(state: GameState, catalog: Catalog, producer_id: str) -> List[GameEvent]:
    """Raises the producer's level by one, charging its upgrade table if any."""
    pdef, ps = _unlocked_line(state, catalog, producer_id)
    up = pdef.upgrade
    cost = 0
    if up is not None:
        if up.max_level is not None and ps.level >= up.max_level:
            raise NotAvailable(
                f"producer '{producer_id}' is at max level {up.max_level}",
                target_id=producer_id,
            )
        cost = formulas.upgrade_cost(up.base_cost, up.cost_multiplier, ps.level)
        _charge(state, up.resource, cost)
        state.resources[up.resource] = state.resource(up.resource) - cost

    ps.level += 1
    logger.info("Upgraded %s to level %d", producer_id, ps.level)
    return [GameEvent(
        event_key=EVT_PRODUCER_UPGRADED,
        source=producer_id,
        data={"level": ps.level, "cost": cost,
              "resource": up.resource if up else None},
    )]


def reset(state: GameState, catalog: Catalog, producer_id: Optional[str] = None,
          refund_rate: Optional[float] = None) -> List[GameEvent]:
    """
    Sets owned back to 0 and level to 1, refunding a share of what the
    owned units cost. `producer_id=None` resets every line.
    """
    if refund_rate is None:
        refund_rate = catalog.config.reset_refund_rate
    if producer_id is None:
        targets = [catalog.producers[pid] for pid in sorted(catalog.producers)]
    else:
        targets = [_definition(catalog, producer_id)]

    events = []
    for pdef in targets:
        ps = _line(state, pdef)
        if ps.owned == 0 and ps.level == 1:
            continue
        refund = formulas.refund_value(pdef.base_cost, pdef.cost_multiplier,
                                       ps.owned, refund_rate)
        state.resources[pdef.cost_resource] = state.resource(pdef.cost_resource) + refund
        events.append(GameEvent(
            event_key=EVT_PRODUCER_RESET,
            source=pdef.id,
            data={"owned_before": ps.owned, "level_before": ps.level,
                  "refund": refund, "resource": pdef.cost_resource},
        ))
        ps.owned = 0
        ps.level = 1
    if events:
        logger.info("Reset %d producer line(s)", len(events))
    return events
