"""
IdleCore — idlecore/state.py
GameState aggregate: resources, producer lines, relationships, traits.
=====================================================================
Version:     0.3
Stack:       Python 3.11+ | stdlib dataclasses
Status:      Stable.

Architecture notes
------------------
- GameState is passed explicitly into every operation. There is no
  module-level game singleton.
- Nothing derived is stored: production rates and relationship tiers are
  always recomputed from (owned, level) and value.
- Ledger/relationship/trait operations edit the state they are given, after
  every check has passed. commands.apply_command() and tick.step() run them
  on `state.copy()`, so a caller never sees a half-applied change.
"""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from typing import Dict, List

from idlecore.data_loader import Catalog, PlayerBaseDef
from idlecore.errors import CorruptedSaveState


@dataclass
class ProducerState:
    owned: int = 0
    level: int = 1
    unlocked: bool = False
    last_collected_at: float = 0.0


@dataclass
class RelationshipRecord:
    npc_id: str
    value: float
    last_interaction_at: float
    decay_days_applied: int = 0   # decay days already charged since last interaction


@dataclass
class PlayerStats:
    """Persistent player numbers. Combat actors are built from these."""
    level: int = 1
    experience: int = 0
    health: int = 100
    max_health: int = 100
    attack: int = 10
    defense: int = 5
    speed: float = 10.0
    crit_chance: float = 0.05
    dodge_chance: float = 0.0
    element: str = "physical"

    @classmethod
    def from_def(cls, base: PlayerBaseDef) -> "PlayerStats":
        return cls(
            health=base.max_health,
            max_health=base.max_health,
            attack=base.attack,
            defense=base.defense,
            speed=base.speed,
            crit_chance=base.crit_chance,
            dodge_chance=base.dodge_chance,
            element=base.element,
        )


@dataclass
class GameState:
    now: float
    resources: Dict[str, float] = field(default_factory=dict)
    lifetime_resources: Dict[str, float] = field(default_factory=dict)
    producers: Dict[str, ProducerState] = field(default_factory=dict)
    relationships: Dict[str, RelationshipRecord] = field(default_factory=dict)
    relationship_model: str = "extended"
    acquired_traits: List[str] = field(default_factory=list)
    equipped_traits: List[str] = field(default_factory=list)
    trait_slots: int = 3
    cooldowns: Dict[str, float] = field(default_factory=dict)
    player: PlayerStats = field(default_factory=PlayerStats)
    last_saved_timestamp: float = 0.0

    def copy(self) -> "GameState":
        return copy.deepcopy(self)

    def resource(self, name: str) -> float:
        return self.resources.get(name, 0.0)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def new_game(catalog: Catalog, now: float) -> GameState:
    """Fresh state: starting resources, every producer and NPC present."""
    cfg = catalog.config
    model = catalog.relationship_model

    producers = {
        pid: ProducerState(unlocked=pdef.unlocked_by_default, last_collected_at=now)
        for pid, pdef in catalog.producers.items()
    }
    relationships = {}
    for npc_id, npc in catalog.npcs.items():
        start = npc.starting_relationship
        if start is None:
            start = cfg.starting_relationship
        relationships[npc_id] = RelationshipRecord(
            npc_id=npc_id,
            value=clamp(start, model.min_value, model.max_value),
            last_interaction_at=now,
        )

    return GameState(
        now=now,
        resources=dict(cfg.starting_resources),
        lifetime_resources={},
        producers=producers,
        relationships=relationships,
        relationship_model=model.id,
        trait_slots=cfg.default_trait_slots,
        player=PlayerStats.from_def(cfg.player),
        last_saved_timestamp=now,
    )


# ============================================================
# VALIDATION
# ============================================================

def _finite(x: float) -> bool:
    return not (math.isnan(x) or math.isinf(x))


def validate(state: GameState, catalog: Catalog) -> None:
    """
    Raises CorruptedSaveState when the state breaks a core invariant:
    non-finite numbers, negative resources, impossible producer lines,
    relationships outside the model range, unknown ids.
    """
    if not _finite(state.now) or not _finite(state.last_saved_timestamp):
        raise CorruptedSaveState("timestamps must be finite")
    for name, amount in list(state.resources.items()) + list(state.lifetime_resources.items()):
        if not _finite(amount) or amount < 0:
            raise CorruptedSaveState(f"resource '{name}' has invalid amount {amount!r}")

    for pid, ps in state.producers.items():
        if pid not in catalog.producers:
            raise CorruptedSaveState(f"unknown producer '{pid}'")
        if ps.owned < 0 or ps.level < 1:
            raise CorruptedSaveState(f"producer '{pid}' has owned={ps.owned} level={ps.level}")
        up = catalog.producers[pid].upgrade
        if up is not None and up.max_level is not None and ps.level > up.max_level:
            raise CorruptedSaveState(f"producer '{pid}' above max level {up.max_level}")

    model = catalog.relationship_models.get(state.relationship_model)
    if model is None:
        raise CorruptedSaveState(f"unknown relationship model '{state.relationship_model}'")
    for npc_id, record in state.relationships.items():
        if npc_id not in catalog.npcs:
            raise CorruptedSaveState(f"unknown NPC '{npc_id}'")
        if not _finite(record.value) or not (model.min_value <= record.value <= model.max_value):
            raise CorruptedSaveState(
                f"relationship '{npc_id}' value {record.value!r} outside "
                f"[{model.min_value:g}, {model.max_value:g}]"
            )
        if record.decay_days_applied < 0:
            raise CorruptedSaveState(f"relationship '{npc_id}' has negative decay counter")

    for tid in set(state.acquired_traits) | set(state.equipped_traits):
        if tid not in catalog.traits:
            raise CorruptedSaveState(f"unknown trait '{tid}'")
    if not set(state.equipped_traits) <= set(state.acquired_traits):
        raise CorruptedSaveState("equipped trait that was never acquired")
    if len(state.equipped_traits) > state.trait_slots:
        raise CorruptedSaveState("more traits equipped than slots")
    for name, remaining in state.cooldowns.items():
        if not _finite(remaining):
            raise CorruptedSaveState(f"cooldown '{name}' is not finite")

    p = state.player
    if p.max_health <= 0 or not (0 <= p.health <= p.max_health):
        raise CorruptedSaveState(f"player health {p.health}/{p.max_health} out of range")
