"""
IdleCore — idlecore/combat.py
CombatResolver: damage math, turn order, and the combat session.
================================================================
Version:     0.3
Stack:       Python 3.11+ | python-tcod-ecs | bespoke EventBus
Status:      Stable.

Architecture notes
------------------
- damage(), resolve_attack() and turn_order() are stateless. Randomness
  comes only from an injected random.Random so fights replay exactly
  under a seed.
- CombatSession keeps its actors in a private tcod.ecs.Registry. Actors
  carry base stats; the player's EffectSet is applied as attacks resolve:
      attackDamageMultiplier  outgoing attack     (player attacking)
      critChance              added crit chance   (player attacking)
      defenseMultiplier       defense             (player defending)
      dodgeChance             added dodge chance  (player defending)
- Vitals.health is never mutated directly outside _apply_damage().
- Actors are discarded when the session ends. write_back() turns the
  outcome into a RecordCombatResult command against the GameState.

Damage pipeline (resolve_attack)
--------------------------------
  1. dodge roll   rng.random() < dodge chance -> 0 damage
  2. base         max(0, attack - defense)
  3. crit roll    rng.random() < crit chance  -> x CRIT_MULTIPLIER
  4. element      x ELEMENT_CHART[(attacker, defender)] (default 1.0)
  5. statuses     x (1 - m) per attacker "weaken", x (1 - m) per defender "defend"
  6. floor, never negative

Event emission
--------------
  combat.action_resolved   per attack / defend / flee attempt
  combat.on_damage         after health drops
  combat.on_death          when health reaches 0
  combat.status_applied / combat.status_expired
  combat.ended             victory | defeat | fled

Design Variables
----------------
  CRIT_MULTIPLIER        1.5
  DEFEND_REDUCTION       0.5    damage taken while defending is halved
  DEFEND_DURATION        1      owner turns
  FLEE_BASE_CHANCE       0.5    +FLEE_SPEED_FACTOR per point of speed lead
  FLEE_SPEED_FACTOR      0.05
  FLEE_MIN / FLEE_MAX    0.1 / 0.9
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import tcod.ecs

from idlecore.commands import COMBAT_COOLDOWN, RecordCombatResult, apply_command
from idlecore.data_loader import Catalog, EnemyDef
from idlecore.effects import EffectSet, resolve_state
from idlecore.errors import NotAvailable
from idlecore.events import (
    EventBus,
    GameEvent,
    EVT_ACTION_RESOLVED,
    EVT_ON_DAMAGE,
    EVT_ON_DEATH,
    EVT_STATUS_APPLIED,
    EVT_STATUS_EXPIRED,
    EVT_COMBAT_ENDED,
)
from idlecore.ecs.components import ActorIdentity, CombatStats, StatusEffect, StatusEffects, Vitals
from idlecore.state import GameState, PlayerStats

logger = logging.getLogger("idlecore.combat")

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

CRIT_MULTIPLIER: float = 1.5
DEFEND_REDUCTION: float = 0.5
DEFEND_DURATION: int = 1
FLEE_BASE_CHANCE: float = 0.5
FLEE_SPEED_FACTOR: float = 0.05
FLEE_MIN: float = 0.1
FLEE_MAX: float = 0.9

STATUS_DEFEND = "defend"
STATUS_WEAKEN = "weaken"

OUTCOME_VICTORY = "victory"
OUTCOME_DEFEAT = "defeat"
OUTCOME_FLED = "fled"

# (attacking element, defending element) -> multiplier. Missing pairs are 1.0.
ELEMENT_CHART: Dict[Tuple[str, str], float] = {
    ("fire", "nature"):  1.5,
    ("nature", "water"): 1.5,
    ("water", "fire"):   1.5,
    ("nature", "fire"):  0.75,
    ("water", "nature"): 0.75,
    ("fire", "water"):   0.75,
    ("light", "shadow"): 1.5,
    ("shadow", "light"): 1.5,
}


# ============================================================
# PURE MATH
# ============================================================

def damage(attack: float, defense: float) -> float:
    return max(0, attack - defense)


def element_multiplier(attacking: str, defending: str) -> float:
    return ELEMENT_CHART.get((attacking, defending), 1.0)


def flee_chance(player_speed: float, enemy_speed: float) -> float:
    chance = FLEE_BASE_CHANCE + (player_speed - enemy_speed) * FLEE_SPEED_FACTOR
    return min(FLEE_MAX, max(FLEE_MIN, chance))


@dataclass(frozen=True)
class AttackResult:
    attacker: str
    defender: str
    damage: int
    dodged: bool = False
    critical: bool = False
    element_multiplier: float = 1.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "attacker": self.attacker,
            "defender": self.defender,
            "damage": self.damage,
            "dodged": self.dodged,
            "critical": self.critical,
            "element_multiplier": self.element_multiplier,
        }


def _statuses(entity: tcod.ecs.Entity, kind: str) -> List[StatusEffect]:
    if StatusEffects not in entity.components:
        return []
    return [s for s in entity.components[StatusEffects].effects if s.type == kind]


def resolve_attack(attacker: tcod.ecs.Entity, defender: tcod.ecs.Entity,
                   effects: Optional[EffectSet] = None,
                   rng: Optional[random.Random] = None) -> AttackResult:
    """
    Works out one attack. Does not touch health; the session applies the
    result. `effects` is the player's EffectSet.
    """
    rng = rng or random.Random()
    effects = effects or EffectSet()
    a_id, d_id = attacker.components[ActorIdentity], defender.components[ActorIdentity]
    a, d = attacker.components[CombatStats], defender.components[CombatStats]

    dodge = d.dodge_chance + (effects.get("dodgeChance") if d_id.is_player else 0.0)
    if rng.random() < dodge:
        return AttackResult(attacker=a_id.name, defender=d_id.name, damage=0, dodged=True)

    attack = a.attack * (effects.get("attackDamageMultiplier") if a_id.is_player else 1.0)
    defense = d.defense * (effects.get("defenseMultiplier") if d_id.is_player else 1.0)
    raw = damage(attack, defense)

    crit_chance = a.crit_chance + (effects.get("critChance") if a_id.is_player else 0.0)
    critical = rng.random() < crit_chance
    if critical:
        raw *= CRIT_MULTIPLIER

    elem = element_multiplier(a.element, d.element)
    raw *= elem
    for s in _statuses(attacker, STATUS_WEAKEN):
        raw *= max(0.0, 1.0 - s.magnitude)
    for s in _statuses(defender, STATUS_DEFEND):
        raw *= max(0.0, 1.0 - s.magnitude)

    return AttackResult(
        attacker=a_id.name,
        defender=d_id.name,
        damage=max(0, math.floor(raw)),
        critical=critical,
        element_multiplier=elem,
    )


def turn_order(actors: Sequence[tcod.ecs.Entity]) -> List[tcod.ecs.Entity]:
    """Speed descending; ties go to the player, then to spawn order. Never random."""
    def key(entity: tcod.ecs.Entity):
        ident = entity.components[ActorIdentity]
        return (-entity.components[CombatStats].speed,
                0 if ident.is_player else 1,
                ident.insertion)
    return sorted(actors, key=key)


# ============================================================
# SPAWNING
# ============================================================

def spawn_player(registry: tcod.ecs.Registry, player: PlayerStats,
                 name: str = "Player", insertion: int = 0) -> tcod.ecs.Entity:
    ent = registry.new_entity()
    ent.components[ActorIdentity] = ActorIdentity(
        name=name, definition_id="player", is_player=True,
        level=player.level, insertion=insertion,
    )
    ent.components[Vitals] = Vitals(health=player.health, max_health=player.max_health)
    ent.components[CombatStats] = CombatStats(
        attack=player.attack, defense=player.defense, speed=player.speed,
        crit_chance=player.crit_chance, dodge_chance=player.dodge_chance,
        element=player.element,
    )
    ent.components[StatusEffects] = StatusEffects()
    return ent


def spawn_enemy(registry: tcod.ecs.Registry, enemy: EnemyDef,
                insertion: int = 1) -> tcod.ecs.Entity:
    ent = registry.new_entity()
    ent.components[ActorIdentity] = ActorIdentity(
        name=enemy.name, definition_id=enemy.id, level=enemy.level, insertion=insertion,
    )
    ent.components[Vitals] = Vitals(health=enemy.max_health, max_health=enemy.max_health)
    ent.components[CombatStats] = CombatStats(
        attack=enemy.attack, defense=enemy.defense, speed=enemy.speed,
        crit_chance=enemy.crit_chance, dodge_chance=enemy.dodge_chance,
        element=enemy.element,
    )
    ent.components[StatusEffects] = StatusEffects()
    return ent


# ============================================================
# SESSION
# ============================================================

class CombatSession:
    """
    One fight between the player and a single enemy.

    Usage:
        session = CombatSession(state.player, catalog.enemies["forest_wolf"],
                                effects=resolve_state(state, catalog),
                                bus=bus, rng=random.Random(7))
        while session.active:
            session.run_round("attack")
        state = session.write_back(state, catalog)
    """

    def __init__(self, player: PlayerStats, enemy: EnemyDef,
                 effects: Optional[EffectSet] = None,
                 bus: Optional[EventBus] = None,
                 rng: Optional[random.Random] = None) -> None:
        if player.health <= 0:
            raise NotAvailable("player has no health left to fight", target_id="player")
        self.enemy_def = enemy
        self.effects = effects or EffectSet()
        self.bus = bus
        self.rng = rng or random.Random()
        self.registry = tcod.ecs.Registry()
        self.player = spawn_player(self.registry, player, insertion=0)
        self.enemy = spawn_enemy(self.registry, enemy, insertion=1)
        self.outcome: Optional[str] = None
        self.rounds = 0
        self.events: List[GameEvent] = []

    @classmethod
    def start(cls, state: GameState, catalog: Catalog, enemy_id: str,
              bus: Optional[EventBus] = None,
              rng: Optional[random.Random] = None) -> "CombatSession":
        """Builds a session from the current GameState. Respects the combat cooldown."""
        enemy = catalog.enemies.get(enemy_id)
        if enemy is None:
            raise NotAvailable(f"unknown enemy '{enemy_id}'", target_id=enemy_id)
        if state.cooldowns.get(COMBAT_COOLDOWN, 0.0) > 0:
            raise NotAvailable(
                f"combat on cooldown for {state.cooldowns[COMBAT_COOLDOWN]:.0f}s",
                target_id=enemy_id,
            )
        return cls(state.player, enemy, effects=resolve_state(state, catalog),
                   bus=bus, rng=rng)

    # ----------------------------------------------------------
    # Internal
    # ----------------------------------------------------------

    def _emit(self, event: GameEvent) -> None:
        self.events.append(event)
        if self.bus is not None:
            self.bus.emit(event)

    def _name(self, entity: tcod.ecs.Entity) -> str:
        return entity.components[ActorIdentity].name

    def _require_active(self) -> None:
        if not self.active:
            raise NotAvailable(f"combat already ended ({self.outcome})")

    def _apply_damage(self, target: tcod.ecs.Entity, amount: int,
                      attacker: Optional[tcod.ecs.Entity] = None) -> None:
        """Only legal mutation path for Vitals.health. `attacker` None means self-inflicted."""
        vitals = target.components[Vitals]
        amount = max(0, amount)
        vitals.health = max(0, vitals.health - amount)
        name = self._name(target)
        self._emit(GameEvent(
            event_key=EVT_ON_DAMAGE,
            source=self._name(attacker) if attacker is not None else name,
            target=name,
            data={"amount": amount, "health_remaining": vitals.health},
        ))
        if vitals.health <= 0 and not vitals.is_dead:
            vitals.is_dead = True
            self._emit(GameEvent(
                event_key=EVT_ON_DEATH,
                source=name,
                data={"final_health": vitals.health},
            ))

    def _end(self, outcome: str) -> None:
        self.outcome = outcome
        logger.info("Combat vs %s ended: %s after %d round(s)",
                    self.enemy_def.id, outcome, self.rounds)
        self._emit(GameEvent(
            event_key=EVT_COMBAT_ENDED,
            source=self._name(self.player),
            target=self.enemy_def.id,
            data={"outcome": outcome, "rounds": self.rounds,
                  "player_health": self.player.components[Vitals].health},
        ))

    def _check_end(self) -> None:
        if self.enemy.components[Vitals].is_dead:
            self._end(OUTCOME_VICTORY)
        elif self.player.components[Vitals].is_dead:
            self._end(OUTCOME_DEFEAT)

    def _attack(self, attacker: tcod.ecs.Entity, defender: tcod.ecs.Entity) -> AttackResult:
        result = resolve_attack(attacker, defender, self.effects, self.rng)
        self._emit(GameEvent(
            event_key=EVT_ACTION_RESOLVED,
            source=result.attacker,
            target=result.defender,
            data={"action": "attack", **result.to_dict()},
        ))
        if result.damage > 0:
            self._apply_damage(defender, result.damage, attacker)
        self._check_end()
        return result

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.outcome is None

    def apply_status(self, target: tcod.ecs.Entity, kind: str, magnitude: float,
                     duration: int) -> StatusEffect:
        status = StatusEffect(type=kind, magnitude=magnitude, remaining_duration=duration)
        target.components[StatusEffects].effects.append(status)
        self._emit(GameEvent(
            event_key=EVT_STATUS_APPLIED,
            source=self._name(target),
            data={"status": kind, "magnitude": magnitude, "duration": duration},
        ))
        return status

    def tick_status_effects(self, actor: Optional[tcod.ecs.Entity] = None) -> None:
        """
        Counts down statuses by one owner turn and drops the finished ones.
        `actor=None` ticks every actor.
        """
        actors = [actor] if actor is not None else [self.player, self.enemy]
        for ent in actors:
            bucket = ent.components[StatusEffects]
            kept = []
            for status in bucket.effects:
                status.remaining_duration -= 1
                if status.remaining_duration > 0:
                    kept.append(status)
                else:
                    self._emit(GameEvent(
                        event_key=EVT_STATUS_EXPIRED,
                        source=self._name(ent),
                        data={"status": status.type},
                    ))
            bucket.effects = kept

    def player_attack(self) -> AttackResult:
        self._require_active()
        return self._attack(self.player, self.enemy)

    def enemy_attack(self) -> AttackResult:
        self._require_active()
        return self._attack(self.enemy, self.player)

    def defend(self) -> None:
        """Halves damage taken until the player's next turn."""
        self._require_active()
        self.apply_status(self.player, STATUS_DEFEND, DEFEND_REDUCTION, DEFEND_DURATION)
        self._emit(GameEvent(
            event_key=EVT_ACTION_RESOLVED,
            source=self._name(self.player),
            data={"action": "defend"},
        ))

    def flee(self) -> bool:
        self._require_active()
        chance = flee_chance(self.player.components[CombatStats].speed,
                             self.enemy.components[CombatStats].speed)
        escaped = self.rng.random() < chance
        self._emit(GameEvent(
            event_key=EVT_ACTION_RESOLVED,
            source=self._name(self.player),
            data={"action": "flee", "chance": chance, "escaped": escaped},
        ))
        if escaped:
            self._end(OUTCOME_FLED)
        return escaped

    def run_round(self, player_action: str = "attack") -> List[AttackResult]:
        """
        Every living actor takes one turn in turn_order(). Statuses tick at
        the start of their owner's turn.
        """
        self._require_active()
        if player_action not in ("attack", "defend", "flee"):
            raise ValueError(f"unknown player action '{player_action}'")
        self.rounds += 1
        results = []
        for actor in turn_order([self.player, self.enemy]):
            if not self.active:
                break
            self.tick_status_effects(actor)
            if actor == self.player:
                if player_action == "attack":
                    results.append(self.player_attack())
                elif player_action == "defend":
                    self.defend()
                else:
                    self.flee()
            else:
                results.append(self.enemy_attack())
        return results

    def write_back(self, state: GameState, catalog: Catalog) -> GameState:
        """New GameState carrying the fight's health and rewards."""
        if self.active:
            raise NotAvailable("combat is still running")
        command = RecordCombatResult(
            outcome=self.outcome,
            enemy_id=self.enemy_def.id,
            enemy_level=self.enemy_def.level,
            player_health=self.player.components[Vitals].health,
        )
        new_state, events = apply_command(state, command, catalog, state.now)
        for event in events:
            self._emit(event)
        return new_state
