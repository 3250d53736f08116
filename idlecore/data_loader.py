"""
IdleCore — idlecore/data_loader.py
JIT Data Loaders for TOML definition tables powered by Pydantic.
=============================================================================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 | tomllib
Status:      Core data validation and loading layer.

Definitions are static: producers, traits, NPCs, enemies, relationship
models and tier tables, effect composition rules, simulation balance.
Anything malformed is rejected with InvalidDefinition. Nothing is clamped
or coerced into range.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from idlecore.errors import InvalidDefinition

logger = logging.getLogger("idlecore.data")

# ================================================================================
# SCHEMAS
# ================================================================================

class RequirementDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    resources: Dict[str, float] = Field(default_factory=dict)
    producers: Dict[str, int] = Field(default_factory=dict)  # producer id -> min owned


class UpgradeCostDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    resource: str = "essence"
    base_cost: float
    cost_multiplier: float
    max_level: Optional[int] = None

    @model_validator(mode="after")
    def _check(self) -> "UpgradeCostDef":
        if self.base_cost <= 0:
            raise ValueError("upgrade base_cost must be > 0")
        if self.cost_multiplier < 1:
            raise ValueError("upgrade cost_multiplier must be >= 1")
        if self.max_level is not None and self.max_level < 1:
            raise ValueError("upgrade max_level must be >= 1")
        return self


class ProducerDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: Literal["generator", "minion"]
    resource: str                       # what it produces
    cost_resource: str = "essence"      # what it is bought with
    base_cost: float
    cost_multiplier: float
    base_production: float
    production_multiplier: float = 1.0
    unlocked_by_default: bool = True
    unlock_requirement: Optional[RequirementDef] = None
    upgrade: Optional[UpgradeCostDef] = None
    description: str = ""

    @model_validator(mode="after")
    def _check(self) -> "ProducerDef":
        if self.base_cost <= 0:
            raise ValueError("base_cost must be > 0")
        if self.cost_multiplier <= 1:
            raise ValueError("cost_multiplier must be > 1")
        # floor() would otherwise repeat a price between successive units
        if self.base_cost * (self.cost_multiplier - 1) < 1:
            raise ValueError("base_cost * (cost_multiplier - 1) must be >= 1")
        if self.base_production < 0:
            raise ValueError("base_production must be >= 0")
        if self.production_multiplier < 1:
            raise ValueError("production_multiplier must be >= 1")
        return self


class ProducerCollectionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    producers: List[ProducerDef]


class TraitDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    type: str = "General"
    description: str = ""
    essence_cost: float = 0.0
    effects: Dict[str, float] = Field(default_factory=dict)
    permanent: bool = False              # active once acquired, no slot needed
    source_npc: Optional[str] = None
    required_relationship: Optional[float] = None
    tier: int = 1
    rarity: str = "Common"


class TraitCollectionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    traits: List[TraitDef]


class NpcDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    starting_relationship: Optional[float] = None
    faction: Optional[str] = None


class NpcCollectionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    npcs: List[NpcDef]


class TierDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    name: str
    min: float
    inclusive: bool = True   # False: value must be strictly above min


class TierTableDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    tiers: List[TierDef]

    @model_validator(mode="after")
    def _check(self) -> "TierTableDef":
        if not self.tiers:
            raise ValueError(f"tier table '{self.id}' is empty")
        mins = [t.min for t in self.tiers]
        if mins != sorted(mins) or len(set(mins)) != len(mins):
            raise ValueError(f"tier table '{self.id}' must list strictly ascending thresholds")
        names = [t.name for t in self.tiers]
        if len(set(names)) != len(names):
            raise ValueError(f"tier table '{self.id}' has duplicate tier names")
        return self


class RelationshipModelDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    min_value: float
    max_value: float
    decay_floor: float
    tier_table: str

    @model_validator(mode="after")
    def _check(self) -> "RelationshipModelDef":
        if self.min_value >= self.max_value:
            raise ValueError(f"model '{self.id}': min_value must be < max_value")
        if not (self.min_value <= self.decay_floor <= self.max_value):
            raise ValueError(f"model '{self.id}': decay_floor outside value range")
        return self


class RelationshipConfigDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    tier_tables: List[TierTableDef]
    models: List[RelationshipModelDef]


class EffectRuleDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    key: str
    composition: Literal["additive", "multiplicative"]
    description: str = ""


class EffectRuleCollectionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    rules: List[EffectRuleDef]


class EnemyDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    level: int = 1
    max_health: int
    attack: int
    defense: int = 0
    speed: float = 10.0
    crit_chance: float = Field(default=0.05, ge=0.0, le=1.0)
    dodge_chance: float = Field(default=0.0, ge=0.0, le=1.0)
    element: str = "physical"


class EnemyCollectionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    enemies: List[EnemyDef]


class PlayerBaseDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    max_health: int = 100
    attack: int = 10
    defense: int = 5
    speed: float = 10.0
    crit_chance: float = Field(default=0.05, ge=0.0, le=1.0)
    dodge_chance: float = Field(default=0.0, ge=0.0, le=1.0)
    element: str = "physical"


class SimulationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    live_tick_seconds: float = Field(default=1.0, gt=0)
    max_catchup_seconds: float = Field(default=7 * 86400.0, gt=0)
    decay_threshold_seconds: float = Field(default=86400.0, ge=0)
    decay_amount_per_day: float = Field(default=1.0, ge=0)
    relationship_decay_enabled: bool = True
    relationship_model: str = "extended"
    default_trait_slots: int = Field(default=3, ge=0)
    reset_refund_rate: float = Field(default=0.4, ge=0, le=1)
    starting_resources: Dict[str, float] = Field(default_factory=lambda: {"essence": 0.0})
    starting_relationship: float = 0.0
    player: PlayerBaseDef = Field(default_factory=PlayerBaseDef)


# ================================================================================
# LOADERS & CACHE (JIT)
# ================================================================================

DATA_DIR = Path(__file__).parent.parent / "data"

_PRODUCER_CACHE: Dict[Path, Dict[str, ProducerDef]] = {}
_TRAIT_CACHE: Dict[Path, Dict[str, TraitDef]] = {}
_NPC_CACHE: Dict[Path, Dict[str, NpcDef]] = {}
_ENEMY_CACHE: Dict[Path, Dict[str, EnemyDef]] = {}
_RELATIONSHIP_CACHE: Dict[Path, RelationshipConfigDef] = {}
_EFFECT_RULE_CACHE: Dict[Path, Dict[str, EffectRuleDef]] = {}
_CONFIG_CACHE: Dict[Path, SimulationConfig] = {}


def clear_caches() -> None:
    """Drops every memoised definition table (used by tests)."""
    for cache in (_PRODUCER_CACHE, _TRAIT_CACHE, _NPC_CACHE, _ENEMY_CACHE,
                  _RELATIONSHIP_CACHE, _EFFECT_RULE_CACHE, _CONFIG_CACHE):
        cache.clear()


def _read_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Definition table not found: {path}")
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidDefinition(f"invalid TOML: {exc}", source=str(path)) from exc


def _validate(model_cls: type[BaseModel], data: Dict[str, Any], path: Path) -> Any:
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise InvalidDefinition(str(exc), source=str(path)) from exc


def _index(items: List[Any], path: Path) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for item in items:
        if item.id in out:
            raise InvalidDefinition(f"duplicate id '{item.id}'", source=str(path))
        out[item.id] = item
    return out


def get_producer_defs(data_dir: Path = DATA_DIR) -> Dict[str, ProducerDef]:
    """Loads all producer definitions. Cached per data directory."""
    if data_dir in _PRODUCER_CACHE:
        return _PRODUCER_CACHE[data_dir]

    path = data_dir / "producers.toml"
    collection = _validate(ProducerCollectionDef, _read_toml(path), path)
    _PRODUCER_CACHE[data_dir] = _index(collection.producers, path)
    return _PRODUCER_CACHE[data_dir]


def get_trait_defs(data_dir: Path = DATA_DIR) -> Dict[str, TraitDef]:
    """Loads all trait definitions. Cached per data directory."""
    if data_dir in _TRAIT_CACHE:
        return _TRAIT_CACHE[data_dir]

    path = data_dir / "traits.toml"
    collection = _validate(TraitCollectionDef, _read_toml(path), path)
    _TRAIT_CACHE[data_dir] = _index(collection.traits, path)
    return _TRAIT_CACHE[data_dir]


def get_npc_defs(data_dir: Path = DATA_DIR) -> Dict[str, NpcDef]:
    if data_dir in _NPC_CACHE:
        return _NPC_CACHE[data_dir]

    path = data_dir / "npcs.toml"
    collection = _validate(NpcCollectionDef, _read_toml(path), path)
    _NPC_CACHE[data_dir] = _index(collection.npcs, path)
    return _NPC_CACHE[data_dir]


def get_enemy_defs(data_dir: Path = DATA_DIR) -> Dict[str, EnemyDef]:
    if data_dir in _ENEMY_CACHE:
        return _ENEMY_CACHE[data_dir]

    path = data_dir / "enemies.toml"
    if not path.exists():
        return {}
    collection = _validate(EnemyCollectionDef, _read_toml(path), path)
    _ENEMY_CACHE[data_dir] = _index(collection.enemies, path)
    return _ENEMY_CACHE[data_dir]


def get_relationship_config(data_dir: Path = DATA_DIR) -> RelationshipConfigDef:
    """Loads relationship models and their tier tables."""
    if data_dir in _RELATIONSHIP_CACHE:
        return _RELATIONSHIP_CACHE[data_dir]

    path = data_dir / "relationships.toml"
    cfg = _validate(RelationshipConfigDef, _read_toml(path), path)
    tables = _index(cfg.tier_tables, path)
    models = _index(cfg.models, path)
    for model in models.values():
        if model.tier_table not in tables:
            raise InvalidDefinition(
                f"model '{model.id}' references unknown tier table '{model.tier_table}'",
                source=str(path),
            )
    _RELATIONSHIP_CACHE[data_dir] = cfg
    return cfg


def get_effect_rules(data_dir: Path = DATA_DIR) -> Dict[str, EffectRuleDef]:
    if data_dir in _EFFECT_RULE_CACHE:
        return _EFFECT_RULE_CACHE[data_dir]

    path = data_dir / "effects.toml"
    collection = _validate(EffectRuleCollectionDef, _read_toml(path), path)
    rules: Dict[str, EffectRuleDef] = {}
    for rule in collection.rules:
        if rule.key in rules:
            raise InvalidDefinition(f"duplicate effect rule '{rule.key}'", source=str(path))
        rules[rule.key] = rule
    _EFFECT_RULE_CACHE[data_dir] = rules
    return rules


def get_simulation_config(data_dir: Path = DATA_DIR) -> SimulationConfig:
    """Loads balance settings. A missing config.toml means all defaults."""
    if data_dir in _CONFIG_CACHE:
        return _CONFIG_CACHE[data_dir]

    path = data_dir / "config.toml"
    if not path.exists():
        logger.info("No %s; using default simulation config", path)
        cfg = SimulationConfig()
    else:
        cfg = _validate(SimulationConfig, _read_toml(path), path)
    _CONFIG_CACHE[data_dir] = cfg
    return cfg


# ================================================================================
# CATALOG
# ================================================================================

@dataclass(frozen=True)
class Catalog:
    """Every static table the core consumes, cross-checked as a whole."""
    producers: Dict[str, ProducerDef]
    traits: Dict[str, TraitDef]
    npcs: Dict[str, NpcDef]
    tier_tables: Dict[str, TierTableDef]
    relationship_models: Dict[str, RelationshipModelDef]
    effect_rules: Dict[str, EffectRuleDef]
    config: SimulationConfig = field(default_factory=SimulationConfig)
    enemies: Dict[str, EnemyDef] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for pdef in self.producers.values():
            req = pdef.unlock_requirement
            if req is None:
                continue
            for pid in req.producers:
                if pid not in self.producers:
                    raise InvalidDefinition(
                        f"unlock requirement references unknown producer '{pid}'",
                        source=f"producer:{pdef.id}",
                    )
        for tdef in self.traits.values():
            if tdef.source_npc is not None and tdef.source_npc not in self.npcs:
                raise InvalidDefinition(
                    f"source_npc '{tdef.source_npc}' is not a known NPC",
                    source=f"trait:{tdef.id}",
                )
        for model in self.relationship_models.values():
            if model.tier_table not in self.tier_tables:
                raise InvalidDefinition(
                    f"unknown tier table '{model.tier_table}'", source=f"model:{model.id}"
                )
        if self.config.relationship_model not in self.relationship_models:
            raise InvalidDefinition(
                f"unknown relationship model '{self.config.relationship_model}'",
                source="config",
            )

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Catalog":
        return load_catalog(data_dir)

    @property
    def relationship_model(self) -> RelationshipModelDef:
        return self.relationship_models[self.config.relationship_model]

    def with_config(self, **overrides: Any) -> "Catalog":
        """Copy of this catalog with some SimulationConfig fields replaced."""
        try:
            cfg = SimulationConfig.model_validate({**self.config.model_dump(), **overrides})
        except ValidationError as exc:
            raise InvalidDefinition(str(exc), source="config overrides") from exc
        return Catalog(
            producers=self.producers, traits=self.traits, npcs=self.npcs,
            tier_tables=self.tier_tables, relationship_models=self.relationship_models,
            effect_rules=self.effect_rules, config=cfg, enemies=self.enemies,
        )


def load_catalog(data_dir: Optional[Path] = None) -> Catalog:
    """Loads and cross-checks every definition table under `data_dir`."""
    data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
    rel = get_relationship_config(data_dir)
    catalog = Catalog(
        producers=get_producer_defs(data_dir),
        traits=get_trait_defs(data_dir),
        npcs=get_npc_defs(data_dir),
        tier_tables={t.id: t for t in rel.tier_tables},
        relationship_models={m.id: m for m in rel.models},
        effect_rules=get_effect_rules(data_dir),
        config=get_simulation_config(data_dir),
        enemies=get_enemy_defs(data_dir),
    )
    logger.debug(
        "Catalog loaded from %s: %d producers, %d traits, %d npcs",
        data_dir, len(catalog.producers), len(catalog.traits), len(catalog.npcs),
    )
    return catalog
