"""
IdleCore — idlecore/save.py
Persisted-state schema, serialization, backup fallback.
=======================================================
Version:     0.3
Stack:       Python 3.11+ | Pydantic v2 (JSON)
Status:      Stable.

Architecture notes
------------------
- SaveState is the wire shape. GameState is the working shape. They are
  converted explicitly by to_save_state() / from_save_state(); nothing
  else reads or writes save files.
- save_game() writes to a temporary file, rotates the previous save to
  `<path>.bak`, then moves the new file into place.
- load_game() tries the primary file, then the backup, then a new game.
  Which one was used is returned in LoadResult.source and logged; a
  fallback is never silent.
- No offline progress is applied here. The TickEngine does that with
  catch_up() after loading.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from idlecore.clock import Clock
from idlecore.data_loader import Catalog
from idlecore.errors import CorruptedSaveState
from idlecore.state import (
    GameState,
    PlayerStats,
    ProducerState,
    RelationshipRecord,
    new_game,
    validate,
)

logger = logging.getLogger("idlecore.save")

SAVE_VERSION: int = 1
BACKUP_SUFFIX: str = ".bak"


# ============================================================
# WIRE SCHEMA
# ============================================================

class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ProducerSave(_Strict):
    owned: int = Field(ge=0)
    level: int = Field(ge=1)
    unlocked: bool
    last_collected_at: float


class RelationshipSave(_Strict):
    npc_id: str
    value: float
    last_interaction_at: float
    decay_days_applied: int = Field(default=0, ge=0)


class PlayerSave(_Strict):
    level: int = Field(ge=1)
    experience: int = Field(ge=0)
    health: int = Field(ge=0)
    max_health: int = Field(gt=0)
    attack: int
    defense: int
    speed: float
    crit_chance: float = Field(ge=0.0, le=1.0)
    dodge_chance: float = Field(ge=0.0, le=1.0)
    element: str


class SaveState(_Strict):
    version: int = SAVE_VERSION
    last_saved_timestamp: float
    now: float
    resources: Dict[str, float]
    lifetime_resources: Dict[str, float] = Field(default_factory=dict)
    producers: Dict[str, ProducerSave]
    relationships: List[RelationshipSave]
    relationship_model: str
    acquired_traits: List[str] = Field(default_factory=list)
    equipped_traits: List[str] = Field(default_factory=list)
    trait_slots: int = Field(ge=0)
    cooldowns: Dict[str, float] = Field(default_factory=dict)
    player: PlayerSave


# ============================================================
# CONVERSION
# ============================================================

def to_save_state(state: GameState) -> SaveState:
    return SaveState(
        last_saved_timestamp=state.last_saved_timestamp,
        now=state.now,
        resources=dict(state.resources),
        lifetime_resources=dict(state.lifetime_resources),
        producers={
            pid: ProducerSave(owned=ps.owned, level=ps.level, unlocked=ps.unlocked,
                              last_collected_at=ps.last_collected_at)
            for pid, ps in state.producers.items()
        },
        relationships=[
            RelationshipSave(npc_id=r.npc_id, value=r.value,
                             last_interaction_at=r.last_interaction_at,
                             decay_days_applied=r.decay_days_applied)
            for _, r in sorted(state.relationships.items())
        ],
        relationship_model=state.relationship_model,
        acquired_traits=list(state.acquired_traits),
        equipped_traits=list(state.equipped_traits),
        trait_slots=state.trait_slots,
        cooldowns=dict(state.cooldowns),
        player=PlayerSave(**vars(state.player)),
    )


def from_save_state(save: SaveState, catalog: Catalog) -> GameState:
    """
    Rebuilds a GameState and checks it against the catalog. Producers and
    NPCs added to the catalog since the save was written get fresh records.
    """
    if save.version > SAVE_VERSION:
        raise CorruptedSaveState(f"save version {save.version} is newer than {SAVE_VERSION}")

    seen = set()
    records: Dict[str, RelationshipRecord] = {}
    for r in save.relationships:
        if r.npc_id in seen:
            raise CorruptedSaveState(f"duplicate relationship record '{r.npc_id}'")
        seen.add(r.npc_id)
        records[r.npc_id] = RelationshipRecord(
            npc_id=r.npc_id, value=r.value,
            last_interaction_at=r.last_interaction_at,
            decay_days_applied=r.decay_days_applied,
        )

    state = GameState(
        now=save.now,
        resources=dict(save.resources),
        lifetime_resources=dict(save.lifetime_resources),
        producers={pid: ProducerState(**p.model_dump()) for pid, p in save.producers.items()},
        relationships=records,
        relationship_model=save.relationship_model,
        acquired_traits=list(save.acquired_traits),
        equipped_traits=list(save.equipped_traits),
        trait_slots=save.trait_slots,
        cooldowns=dict(save.cooldowns),
        player=PlayerStats(**save.player.model_dump()),
        last_saved_timestamp=save.last_saved_timestamp,
    )
    validate(state, catalog)

    fresh = new_game(catalog, save.now)
    for pid, ps in fresh.producers.items():
        state.producers.setdefault(pid, ps)
    for npc_id, record in fresh.relationships.items():
        if npc_id not in state.relationships:
            model = catalog.relationship_models[state.relationship_model]
            record.value = max(model.min_value, min(model.max_value, record.value))
            state.relationships[npc_id] = record
    return state


def dumps(state: GameState) -> str:
    return to_save_state(state).model_dump_json(indent=2)


def loads(text: str, catalog: Catalog) -> GameState:
    try:
        save = SaveState.model_validate_json(text)
    except ValidationError as exc:
        raise CorruptedSaveState(str(exc)) from exc
    return from_save_state(save, catalog)


# ============================================================
# FILES
# ============================================================

def backup_path(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def save_game(state: GameState, path: Path, clock: Optional[Clock] = None) -> GameState:
    """
    Writes `state` with last_saved_timestamp stamped from `clock` (or
    state.now). Returns the stamped copy that was written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    stamped = state.copy()
    stamped.last_saved_timestamp = clock.now() if clock is not None else state.now

    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as fh:
        fh.write(dumps(stamped))
    if path.exists():
        os.replace(path, backup_path(path))
    os.replace(tmp, path)
    logger.debug("Saved game to %s at t=%.0f", path, stamped.last_saved_timestamp)
    return stamped


@dataclass(frozen=True)
class LoadResult:
    state: GameState
    source: Literal["primary", "backup", "default"]
    error: Optional[str] = None     # why the primary (and backup) were skipped


def _read(path: Path, catalog: Catalog) -> GameState:
    with open(path, "r", encoding="utf-8") as fh:
        return loads(fh.read(), catalog)


def load_game(path: Path, catalog: Catalog, clock: Optional[Clock] = None) -> LoadResult:
    """Primary save, else its backup, else a new game. Never raises on bad data."""
    path = Path(path)
    errors: List[str] = []

    for source, candidate in (("primary", path), ("backup", backup_path(path))):
        if not candidate.exists():
            errors.append(f"{source}: {candidate} not found")
            continue
        try:
            state = _read(candidate, catalog)
        except (CorruptedSaveState, OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not load %s save %s: %s", source, candidate, exc)
            errors.append(f"{source}: {exc}")
            continue
        if source == "backup":
            logger.warning("Loaded backup save %s", candidate)
            return LoadResult(state=state, source="backup", error="; ".join(errors))
        return LoadResult(state=state, source="primary")

    now = clock.now() if clock is not None else 0.0
    if path.exists() or backup_path(path).exists():
        logger.warning("No usable save at %s; starting a new game", path)
    else:
        logger.info("No save at %s; starting a new game", path)
    return LoadResult(state=new_game(catalog, now), source="default", error="; ".join(errors))
