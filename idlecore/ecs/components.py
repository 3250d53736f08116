"""
IdleCore — idlecore/ecs/components.py
ECS component definitions for transient combat actors (python-tcod-ecs).
=========================================================================
Version:     0.2
Stack:       Python 3.11+ | python-tcod-ecs
Status:      Stable.

Actors live only inside a CombatSession's registry. Nothing here is
persisted; permanent consequences are written back to PlayerStats.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List


@dataclass
class ActorIdentity:
    name: str
    definition_id: str                      # "player" or an EnemyDef id
    is_player: bool = False
    level: int = 1
    insertion: int = 0                      # spawn order, breaks speed ties


@dataclass
class Vitals:
    health: int
    max_health: int
    is_dead: bool = False


@dataclass
class CombatStats:
    attack: int = 10
    defense: int = 0
    speed: float = 10.0
    crit_chance: float = 0.05
    dodge_chance: float = 0.0
    element: str = "physical"


@dataclass
class StatusEffect:
    type: str                               # "defend" | "weaken"
    magnitude: float                        # fraction, 0.5 = halve
    remaining_duration: int                 # owner turns left


@dataclass
class StatusEffects:
    effects: List[StatusEffect] = field(default_factory=list)
