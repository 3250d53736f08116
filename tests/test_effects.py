"""
IdleCore — tests/test_effects.py
"""

import pytest

from idlecore.data_loader import load_catalog
from idlecore.effects import ADDITIVE, MULTIPLICATIVE, EffectSet, active_traits, composition_for, resolve
from idlecore.errors import NotAvailable

catalog = load_catalog()


def _resolve(equipped, acquired=()):
    return resolve(list(acquired), list(equipped), catalog.traits, catalog.effect_rules)


def test_empty_set_reads_identities():
    effects = _resolve([])
    assert effects.get("essenceGenerationMultiplier") == 1.0
    assert effects.get("critChance") == 0.0
    assert "critChance" not in effects


def test_multiplicative_keys_multiply():
    effects = _resolve(["MentorsInsight", "EssenceFlow"])
    assert effects.get("essenceGenerationMultiplier") == pytest.approx(1.265)


def test_additive_keys_add():
    traits = dict(catalog.traits)
    traits["SharperEye"] = traits["CombatReflexes"].model_copy(
        update={"id": "SharperEye", "effects": {"critChance": 0.1}}
    )
    effects = resolve([], ["KeenEye", "SharperEye"], traits, catalog.effect_rules)
    assert effects.get("critChance") == pytest.approx(0.15)


def test_order_independent():
    a = _resolve(["EssenceFlow", "BattleHardened", "MentorsInsight"])
    b = _resolve(["MentorsInsight", "EssenceFlow", "BattleHardened"])
    assert a.as_dict() == b.as_dict()


def test_permanent_trait_active_without_slot():
    effects = _resolve([], acquired=["Foreman", "KeenEye"])
    assert effects.get("minionProductionMultiplier") == pytest.approx(1.25)
    # acquired but unequipped: inactive
    assert effects.get("critChance") == 0.0


def test_active_traits_sorted_union():
    assert active_traits(["Foreman", "KeenEye"], ["KeenEye", "EssenceFlow"], catalog.traits) == [
        "EssenceFlow", "Foreman", "KeenEye",
    ]


def test_unknown_trait_raises():
    with pytest.raises(NotAvailable):
        _resolve(["Phantom"])


def test_undeclared_keys_fall_back_on_suffix():
    assert composition_for("oreProductionMultiplier", {}) == MULTIPLICATIVE
    assert composition_for("luck", {}) == ADDITIVE
    assert EffectSet().get("goldProductionMultiplier") == 1.0


def test_effect_set_is_read_only():
    effects = _resolve(["KeenEye"])
    with pytest.raises(TypeError):
        effects.values["critChance"] = 1.0
