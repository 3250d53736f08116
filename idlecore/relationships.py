"""
IdleCore — idlecore/relationships.py
RelationshipTracker: per-NPC value, tiers, growth and decay.
=============================================================
Version:     0.4
Stack:       Python 3.11+ | stdlib math
Status:      Stable.

Architecture notes
------------------
- Tier is never stored. It is recomputed from `value` through the active
  model's TierTable every time it is asked for.
- Two models ship (data/relationships.toml): "simple" 0..100 and
  "extended" -100..100. config.relationship_model picks one per new game;
  the choice is persisted on the GameState.
- detailed_tier() and simplified_tier() are separate lookups on separate
  tables. They are not interchangeable.
- Passive sources ("decay", "growing_affinity") never touch
  last_interaction_at. Genuine interactions reset it and the decay counter.

Decay
-----
  A record idle longer than the threshold owes
      due = floor((now - last_interaction_at - threshold) / SECONDS_PER_DAY)
  decay days. Only days beyond `decay_days_applied` are charged, so running
  decay twice for the same `now` changes nothing. Each charged day removes
  decay_amount, never taking the value below the model's decay_floor. A
  value already under the floor is left alone.

Advance
-------
  advance() walks (start, end] in time order, stopping only at decay-day
  boundaries. Between stops, passive growth adds growth_per_second * dt,
  capped at the model maximum. Splitting a span anywhere yields the same
  result as evaluating it whole.

Design Variables
----------------
  SECONDS_PER_DAY           86400
  SECONDS_PER_MINUTE        60
  DECAY_THRESHOLD_SECONDS   86400   (config.decay_threshold_seconds)
  DECAY_AMOUNT_PER_DAY      1.0     (config.decay_amount_per_day)
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from idlecore.data_loader import (
    Catalog,
    RelationshipModelDef,
    TierDef,
    TierTableDef,
    get_relationship_config,
)
from idlecore.effects import EffectSet
from idlecore.errors import NotAvailable
from idlecore.events import GameEvent, EVT_RELATIONSHIP_CHANGED, EVT_RELATIONSHIP_TIER_CHANGED
from idlecore.state import GameState, RelationshipRecord, clamp

logger = logging.getLogger("idlecore.relationships")

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

SECONDS_PER_DAY: float = 86400.0
SECONDS_PER_MINUTE: float = 60.0
DECAY_THRESHOLD_SECONDS: float = 86400.0
DECAY_AMOUNT_PER_DAY: float = 1.0

SOURCE_DECAY = "decay"
SOURCE_GROWING_AFFINITY = "growing_affinity"
PASSIVE_SOURCES = frozenset({SOURCE_DECAY, SOURCE_GROWING_AFFINITY})

DETAILED_TABLE = "detailed"
SIMPLIFIED_TABLE = "simplified"


# ============================================================
# TIER TABLES
# ============================================================

class TierTable:
    """Ordered thresholds, lowest first. The lowest tier is the catch-all."""

    def __init__(self, definition: TierTableDef) -> None:
        self.id = definition.id
        self.tiers: List[TierDef] = list(definition.tiers)

    @staticmethod
    def _reaches(value: float, tier: TierDef) -> bool:
        return value >= tier.min if tier.inclusive else value > tier.min

    def index_of(self, value: float) -> int:
        for i in range(len(self.tiers) - 1, 0, -1):
            if self._reaches(value, self.tiers[i]):
                return i
        return 0

    def classify(self, value: float) -> str:
        return self.tiers[self.index_of(value)].name

    def next_tier(self, value: float) -> Optional[TierDef]:
        i = self.index_of(value)
        return self.tiers[i + 1] if i + 1 < len(self.tiers) else None

    def points_to_next(self, value: float) -> Optional[float]:
        """Distance to the next tier's threshold, None at the top tier."""
        nxt = self.next_tier(value)
        if nxt is None:
            return None
        return nxt.min - value


def _table_defs(catalog: Optional[Catalog]):
    if catalog is not None:
        return catalog.tier_tables
    return {t.id: t for t in get_relationship_config().tier_tables}


def detailed_tier(value: float, catalog: Optional[Catalog] = None) -> str:
    """Granular 8-tier name (Nemesis .. Devoted)."""
    return TierTable(_table_defs(catalog)[DETAILED_TABLE]).classify(value)


def simplified_tier(value: float, catalog: Optional[Catalog] = None) -> str:
    """Coarse 5-tier name (ENEMY .. ALLY)."""
    return TierTable(_table_defs(catalog)[SIMPLIFIED_TABLE]).classify(value)


# ============================================================
# MODEL HELPERS
# ============================================================

def model_for(state: GameState, catalog: Catalog) -> RelationshipModelDef:
    model = catalog.relationship_models.get(state.relationship_model)
    if model is None:
        raise NotAvailable(
            f"unknown relationship model '{state.relationship_model}'",
            target_id=state.relationship_model,
        )
    return model


def table_for(state: GameState, catalog: Catalog) -> TierTable:
    return TierTable(catalog.tier_tables[model_for(state, catalog).tier_table])


def _record(state: GameState, catalog: Catalog, npc_id: str) -> RelationshipRecord:
    record = state.relationships.get(npc_id)
    if record is not None:
        return record
    npc = catalog.npcs.get(npc_id)
    if npc is None:
        raise NotAvailable(f"unknown NPC '{npc_id}'", target_id=npc_id)
    model = model_for(state, catalog)
    start = npc.starting_relationship
    if start is None:
        start = catalog.config.starting_relationship
    record = RelationshipRecord(
        npc_id=npc_id,
        value=clamp(start, model.min_value, model.max_value),
        last_interaction_at=state.now,
    )
    state.relationships[npc_id] = record
    return record


def tier(state: GameState, catalog: Catalog, npc_id: str) -> str:
    return table_for(state, catalog).classify(_record(state, catalog, npc_id).value)


def points_to_next_tier(state: GameState, catalog: Catalog, npc_id: str) -> Optional[float]:
    return table_for(state, catalog).points_to_next(_record(state, catalog, npc_id).value)


def _change_events(npc_id: str, old: float, new: float, delta: float, source: str,
                   table: TierTable) -> List[GameEvent]:
    if new == old:
        return []
    events = [GameEvent(
        event_key=EVT_RELATIONSHIP_CHANGED,
        source=source,
        target=npc_id,
        data={"old": old, "new": new, "delta": delta},
    )]
    old_tier, new_tier = table.classify(old), table.classify(new)
    if old_tier != new_tier:
        events.append(GameEvent(
            event_key=EVT_RELATIONSHIP_TIER_CHANGED,
            source=source,
            target=npc_id,
            data={"old_tier": old_tier, "new_tier": new_tier, "value": new},
        ))
    return events


# ============================================================
# CHANGES
# ============================================================

def apply_change(state: GameState, catalog: Catalog, npc_id: str, delta: float,
                 source: str, now: float,
                 effects: Optional[EffectSet] = None) -> List[GameEvent]:
    """
    Adds `delta` to one relationship, clamped to the model range.
    Positive deltas from genuine interactions scale by relationshipGainMultiplier.
    """
    record = _record(state, catalog, npc_id)
    model = model_for(state, catalog)
    table = TierTable(catalog.tier_tables[model.tier_table])

    passive = source in PASSIVE_SOURCES
    if delta > 0 and not passive and effects is not None:
        delta *= effects.get("relationshipGainMultiplier")

    old = record.value
    record.value = clamp(old + delta, model.min_value, model.max_value)
    if not passive:
        record.last_interaction_at = now
        record.decay_days_applied = 0
    logger.debug("Relationship %s: %.2f -> %.2f (%s)", npc_id, old, record.value, source)
    return _change_events(npc_id, old, record.value, delta, source, table)


def due_decay_days(record: RelationshipRecord, now: float,
                   threshold: float = DECAY_THRESHOLD_SECONDS) -> int:
    idle = now - record.last_interaction_at - threshold
    if idle < 0:
        return 0
    return int(math.floor(idle / SECONDS_PER_DAY))


def _charge_decay(record: RelationshipRecord, due: int, amount: float, floor: float) -> None:
    pending = due - record.decay_days_applied
    if pending <= 0:
        return
    if record.value > floor:
        record.value = max(floor, record.value - amount * pending)
    record.decay_days_applied = due


def decay_tick(state: GameState, catalog: Catalog, now: float) -> List[GameEvent]:
    """Charges every decay day that has come due by `now`. Idempotent."""
    cfg = catalog.config
    if not cfg.relationship_decay_enabled:
        return []
    model = model_for(state, catalog)
    table = TierTable(catalog.tier_tables[model.tier_table])
    events = []
    for npc_id in sorted(state.relationships):
        record = state.relationships[npc_id]
        old = record.value
        due = due_decay_days(record, now, cfg.decay_threshold_seconds)
        _charge_decay(record, due, cfg.decay_amount_per_day, model.decay_floor)
        events.extend(_change_events(npc_id, old, record.value, record.value - old,
                                     SOURCE_DECAY, table))
    return events


def growth_per_second(effects: EffectSet) -> float:
    """Passive growth rate from relationshipGrowthPerMinute."""
    return max(0.0, effects.get("relationshipGrowthPerMinute")) / SECONDS_PER_MINUTE


def _advance_record(record: RelationshipRecord, start: float, end: float,
                    growth: float, model: RelationshipModelDef,
                    decay_enabled: bool, threshold: float, amount: float) -> None:
    def grow(dt: float) -> None:
        if growth > 0 and dt > 0 and record.value < model.max_value:
            record.value = min(model.max_value, record.value + growth * dt)

    t = start
    if decay_enabled:
        _charge_decay(record, due_decay_days(record, start, threshold), amount, model.decay_floor)
        k = record.decay_days_applied + 1
        boundary = record.last_interaction_at + threshold + k * SECONDS_PER_DAY
        while boundary <= end:
            grow(boundary - t)
            _charge_decay(record, k, amount, model.decay_floor)
            t = boundary
            k += 1
            boundary = record.last_interaction_at + threshold + k * SECONDS_PER_DAY
    grow(end - t)
    record.value = clamp(record.value, model.min_value, model.max_value)


def advance(state: GameState, catalog: Catalog, start: float, end: float,
            growth: float = 0.0) -> List[GameEvent]:
    """
    Applies passive growth and decay over (start, end] to every record.
    `growth` is points per second (see growth_per_second()).
    """
    if end <= start:
        return []
    cfg = catalog.config
    model = model_for(state, catalog)
    table = TierTable(catalog.tier_tables[model.tier_table])
    events = []
    for npc_id in sorted(state.relationships):
        record = state.relationships[npc_id]
        old = record.value
        _advance_record(record, start, end, growth, model,
                        cfg.relationship_decay_enabled,
                        cfg.decay_threshold_seconds, cfg.decay_amount_per_day)
        source = SOURCE_GROWING_AFFINITY if record.value > old else SOURCE_DECAY
        events.extend(_change_events(npc_id, old, record.value, record.value - old,
                                     source, table))
    return events
