"""
IdleCore — idlecore/commands.py
Player commands: tagged variants and their handler table.
==========================================================
Version:     0.3
Stack:       Python 3.11+ | Pydantic v2
Status:      Stable.

Architecture notes
------------------
- Each command is a frozen Pydantic model with a `kind` literal. The
  `Command` union is discriminated on it, so raw dicts (from a UI or a
  script) parse straight into the right variant via parse_command().
- HANDLERS maps kind -> handler. Adding a command means adding a model
  and one table entry; there is no if/elif chain.
- apply_command() runs the handler on a deep copy and returns
  (new_state, events). The caller's state is never touched, so a raised
  error leaves it exactly as it was.

Design Variables
----------------
  EXPERIENCE_PER_ENEMY_LEVEL   10    victory reward
  GOLD_PER_ENEMY_LEVEL         5     victory reward
  DEFEAT_RECOVERY_SECONDS      300   "combat" cooldown after a defeat
"""

from __future__ import annotations

import logging
from typing import Annotated, Callable, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from idlecore import ledger, relationships, traits
from idlecore.data_loader import Catalog
from idlecore.effects import resolve_state
from idlecore.events import GameEvent, EVT_COMBAT_RECORDED
from idlecore.state import GameState

logger = logging.getLogger("idlecore.commands")

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

EXPERIENCE_PER_ENEMY_LEVEL: int = 10
GOLD_PER_ENEMY_LEVEL: int = 5
DEFEAT_RECOVERY_SECONDS: float = 300.0
COMBAT_COOLDOWN = "combat"


# ============================================================
# COMMAND MODELS
# ============================================================

class _Command(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Producer ---

class PurchaseProducer(_Command):
    kind: Literal["purchase_producer"] = "purchase_producer"
    producer_id: str
    amount: int = Field(default=1, ge=1)


class UpgradeProducer(_Command):
    kind: Literal["upgrade_producer"] = "upgrade_producer"
    producer_id: str


class UnlockProducer(_Command):
    kind: Literal["unlock_producer"] = "unlock_producer"
    producer_id: str


class ResetProducer(_Command):
    kind: Literal["reset_producer"] = "reset_producer"
    producer_id: Optional[str] = None   # None resets every line


# --- Relationship ---

class ChangeRelationship(_Command):
    kind: Literal["change_relationship"] = "change_relationship"
    npc_id: str
    delta: float
    source: str = "interaction"


# --- Trait ---

class AcquireTrait(_Command):
    kind: Literal["acquire_trait"] = "acquire_trait"
    trait_id: str


class EquipTrait(_Command):
    kind: Literal["equip_trait"] = "equip_trait"
    trait_id: str


class UnequipTrait(_Command):
    kind: Literal["unequip_trait"] = "unequip_trait"
    trait_id: str


# --- Combat ---

class RecordCombatResult(_Command):
    kind: Literal["record_combat_result"] = "record_combat_result"
    outcome: Literal["victory", "defeat", "fled"]
    enemy_id: str
    enemy_level: int = Field(default=1, ge=1)
    player_health: int = Field(ge=0)


Command = Annotated[
    Union[
        PurchaseProducer, UpgradeProducer, UnlockProducer, ResetProducer,
        ChangeRelationship,
        AcquireTrait, EquipTrait, UnequipTrait,
        RecordCombatResult,
    ],
    Field(discriminator="kind"),
]

_COMMAND_ADAPTER: TypeAdapter = TypeAdapter(Command)


def parse_command(data: dict) -> _Command:
    """Builds the right command variant from a plain dict with a `kind` key."""
    return _COMMAND_ADAPTER.validate_python(data)


# ============================================================
# HANDLERS
# Signature: (state, command, catalog, now) -> events. Mutate `state`.
# ============================================================

HandlerFn = Callable[[GameState, _Command, Catalog, float], List[GameEvent]]


def _purchase(state: GameState, cmd: PurchaseProducer, catalog: Catalog, now: float):
    return ledger.purchase(state, catalog, cmd.producer_id, cmd.amount)


def _upgrade(state: GameState, cmd: UpgradeProducer, catalog: Catalog, now: float):
    return ledger.upgrade(state, catalog, cmd.producer_id)


def _unlock(state: GameState, cmd: UnlockProducer, catalog: Catalog, now: float):
    return ledger.unlock(state, catalog, cmd.producer_id)


def _reset(state: GameState, cmd: ResetProducer, catalog: Catalog, now: float):
    return ledger.reset(state, catalog, cmd.producer_id)


def _change_relationship(state: GameState, cmd: ChangeRelationship, catalog: Catalog,
                         now: float):
    effects = resolve_state(state, catalog)
    return relationships.apply_change(state, catalog, cmd.npc_id, cmd.delta,
                                      cmd.source, now, effects)


def _acquire(state: GameState, cmd: AcquireTrait, catalog: Catalog, now: float):
    return traits.acquire(state, catalog, cmd.trait_id)


def _equip(state: GameState, cmd: EquipTrait, catalog: Catalog, now: float):
    return traits.equip(state, catalog, cmd.trait_id)


def _unequip(state: GameState, cmd: UnequipTrait, catalog: Catalog, now: float):
    return traits.unequip(state, catalog, cmd.trait_id)


def _record_combat(state: GameState, cmd: RecordCombatResult, catalog: Catalog, now: float):
    """
    Writes a finished fight back into persistent state. Victory pays
    experience and gold by enemy level; defeat leaves the player on 1 hp
    with the combat cooldown running.
    """
    player = state.player
    player.health = min(cmd.player_health, player.max_health)
    rewards: Dict[str, int] = {}

    if cmd.outcome == "victory":
        rewards = {
            "experience": cmd.enemy_level * EXPERIENCE_PER_ENEMY_LEVEL,
            "gold": cmd.enemy_level * GOLD_PER_ENEMY_LEVEL,
        }
        player.experience += rewards["experience"]
        state.resources["gold"] = state.resource("gold") + rewards["gold"]
        state.lifetime_resources["gold"] = (
            state.lifetime_resources.get("gold", 0.0) + rewards["gold"]
        )
    elif cmd.outcome == "defeat":
        player.health = max(1, player.health)
        state.cooldowns[COMBAT_COOLDOWN] = DEFEAT_RECOVERY_SECONDS

    logger.info("Combat vs %s recorded: %s %s", cmd.enemy_id, cmd.outcome, rewards)
    return [GameEvent(
        event_key=EVT_COMBAT_RECORDED,
        source="player",
        target=cmd.enemy_id,
        data={"outcome": cmd.outcome, "rewards": rewards,
              "player_health": player.health},
    )]


HANDLERS: Dict[str, HandlerFn] = {
    "purchase_producer":    _purchase,
    "upgrade_producer":     _upgrade,
    "unlock_producer":      _unlock,
    "reset_producer":       _reset,
    "change_relationship":  _change_relationship,
    "acquire_trait":        _acquire,
    "equip_trait":          _equip,
    "unequip_trait":        _unequip,
    "record_combat_result": _record_combat,
}


def apply_command(state: GameState, command: _Command, catalog: Catalog,
                  now: Optional[float] = None) -> Tuple[GameState, List[GameEvent]]:
    """Runs one command on a copy of `state`. Returns (new_state, events)."""
    handler = HANDLERS.get(command.kind)
    if handler is None:
        raise ValueError(f"no handler for command kind '{command.kind}'")
    if now is None:
        now = state.now
    new_state = state.copy()
    events = handler(new_state, command, catalog, now)
    return new_state, events
