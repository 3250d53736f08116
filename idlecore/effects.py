"""
IdleCore — idlecore/effects.py
EffectResolver: active traits -> immutable EffectSet.
=====================================================
Version:     0.2
Stack:       Python 3.11+ | stdlib
Status:      Stable. Pure.

Composition
-----------
  Each effect key has exactly one rule, applied uniformly to every trait:
    multiplicative   factors multiply, identity 1.0
    additive         increments add,   identity 0.0
  Rules come from data/effects.toml. A key with no declared rule is
  multiplicative when its name ends in "Multiplier", additive otherwise.

  Active traits are the equipped ones plus every acquired trait flagged
  `permanent`. They fold in sorted id order, so the result does not depend
  on acquisition or equip order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from idlecore.data_loader import Catalog, EffectRuleDef, TraitDef
from idlecore.errors import NotAvailable

MULTIPLICATIVE = "multiplicative"
ADDITIVE = "additive"

_IDENTITY = {MULTIPLICATIVE: 1.0, ADDITIVE: 0.0}


def composition_for(key: str, rules: Mapping[str, EffectRuleDef]) -> str:
    rule = rules.get(key)
    if rule is not None:
        return rule.composition
    return MULTIPLICATIVE if key.endswith("Multiplier") else ADDITIVE


@dataclass(frozen=True)
class EffectSet:
    """Aggregated effect values. Missing keys read back as their identity."""
    values: Mapping[str, float] = field(default_factory=dict)
    rules: Mapping[str, EffectRuleDef] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))
        object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))

    def get(self, key: str) -> float:
        if key in self.values:
            return self.values[key]
        return _IDENTITY[composition_for(key, self.rules)]

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def as_dict(self) -> Dict[str, float]:
        return dict(self.values)


def active_traits(acquired: Iterable[str], equipped: Iterable[str],
                  traits: Mapping[str, TraitDef]) -> list[str]:
    active = set(equipped)
    for tid in acquired:
        tdef = traits.get(tid)
        if tdef is not None and tdef.permanent:
            active.add(tid)
    return sorted(active)


def resolve(acquired: Iterable[str], equipped: Iterable[str],
            traits: Mapping[str, TraitDef],
            rules: Optional[Mapping[str, EffectRuleDef]] = None) -> EffectSet:
    """Folds every active trait's effects into one EffectSet."""
    rules = rules or {}
    values: Dict[str, float] = {}
    for tid in active_traits(acquired, equipped, traits):
        tdef = traits.get(tid)
        if tdef is None:
            raise NotAvailable(f"unknown trait '{tid}'", target_id=tid)
        for key, amount in sorted(tdef.effects.items()):
            mode = composition_for(key, rules)
            current = values.get(key, _IDENTITY[mode])
            values[key] = current * amount if mode == MULTIPLICATIVE else current + amount
    return EffectSet(values=values, rules=rules)


def resolve_state(state, catalog: Catalog) -> EffectSet:
    """EffectSet for the traits a GameState currently holds."""
    return resolve(state.acquired_traits, state.equipped_traits,
                   catalog.traits, catalog.effect_rules)
