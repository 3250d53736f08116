"""
IdleCore — tests/test_data_loader.py
Definition tables: loading, validation and catalog cross-checks.
"""

import tempfile
import unittest
from pathlib import Path

import pytest

from idlecore.data_loader import (
    Catalog,
    NpcDef,
    SimulationConfig,
    TraitDef,
    get_effect_rules,
    get_producer_defs,
    get_simulation_config,
    load_catalog,
)
from idlecore.errors import InvalidDefinition


def _write(tmpdir: str, name: str, text: str) -> Path:
    path = Path(tmpdir) / name
    path.write_text(text, encoding="utf-8")
    return Path(tmpdir)


PRODUCER_TEMPLATE = """
[[producers]]
id = "well"
name = "Well"
kind = "generator"
resource = "essence"
base_cost = {base_cost}
cost_multiplier = {cost_multiplier}
base_production = {base_production}
production_multiplier = {production_multiplier}
"""

UPGRADE_TEMPLATE = """
[producers.upgrade]
resource = "essence"
base_cost = 50
cost_multiplier = {upgrade_multiplier}
max_level = 5
"""


def test_load_bundled_catalog():
    catalog = load_catalog()
    assert "essence_well" in catalog.producers
    assert catalog.producers["essence_well"].base_cost == 10
    assert catalog.producers["miner"].unlock_requirement.resources["gold"] == 200
    assert catalog.traits["Foreman"].permanent is True
    assert catalog.relationship_model.id == "extended"
    assert set(catalog.tier_tables) >= {"detailed", "simplified", "affinity"}
    assert catalog.enemies["forest_wolf"].speed == 12.0


def test_catalog_load_classmethod_matches_loader():
    assert Catalog.load().producers.keys() == load_catalog().producers.keys()


def test_effect_rules_loaded():
    rules = get_effect_rules()
    assert rules["essenceGenerationMultiplier"].composition == "multiplicative"
    assert rules["critChance"].composition == "additive"


class TestInvalidProducers(unittest.TestCase):
    def _load(self, **fields):
        values = {"base_cost": 10, "cost_multiplier": 1.15, "base_production": 0.1,
                  "production_multiplier": 1.1}
        upgrade_multiplier = fields.pop("upgrade_multiplier", None)
        values.update(fields)
        text = PRODUCER_TEMPLATE.format(**values)
        if upgrade_multiplier is not None:
            text += UPGRADE_TEMPLATE.format(upgrade_multiplier=upgrade_multiplier)
        with tempfile.TemporaryDirectory() as tmpdir:
            data_dir = _write(tmpdir, "producers.toml", text)
            return get_producer_defs(data_dir)

    def test_valid_definition_loads(self):
        defs = self._load()
        self.assertEqual(defs["well"].cost_multiplier, 1.15)

    def test_cost_multiplier_of_one_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(cost_multiplier=1.0)

    def test_cost_multiplier_below_one_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(cost_multiplier=0.9)

    def test_flattening_floor_rejected(self):
        # floor(2 * 1.1 ** n) repeats values
        with self.assertRaises(InvalidDefinition):
            self._load(base_cost=2, cost_multiplier=1.1)

    def test_zero_base_cost_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(base_cost=0)

    def test_negative_production_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(base_production=-1)

    def test_production_multiplier_below_one_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(production_multiplier=0.9)

    def test_upgrade_table_loads(self):
        defs = self._load(upgrade_multiplier=1.5)
        self.assertEqual(defs["well"].upgrade.max_level, 5)

    def test_upgrade_cost_multiplier_below_one_rejected(self):
        with self.assertRaises(InvalidDefinition):
            self._load(upgrade_multiplier=0.9)


def test_duplicate_producer_ids_rejected():
    text = PRODUCER_TEMPLATE.format(base_cost=10, cost_multiplier=1.15, base_production=0.1,
                                   production_multiplier=1.1)
    with tempfile.TemporaryDirectory() as tmpdir:
        data_dir = _write(tmpdir, "producers.toml", text + text)
        with pytest.raises(InvalidDefinition, match="duplicate"):
            get_producer_defs(data_dir)


def test_malformed_toml_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        data_dir = _write(tmpdir, "producers.toml", "[[producers]\nid = ")
        with pytest.raises(InvalidDefinition):
            get_producer_defs(data_dir)


def test_missing_table_raises_file_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(FileNotFoundError):
            get_producer_defs(Path(tmpdir))


def test_missing_config_means_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        cfg = get_simulation_config(Path(tmpdir))
    assert cfg == SimulationConfig()
    assert cfg.max_catchup_seconds == 7 * 86400
    assert cfg.default_trait_slots == 3


def test_catalog_rejects_unknown_trait_source_npc():
    base = load_catalog()
    traits = dict(base.traits)
    traits["Orphan"] = TraitDef(id="Orphan", name="Orphan", source_npc="nobody")
    with pytest.raises(InvalidDefinition, match="nobody"):
        Catalog(
            producers=base.producers, traits=traits, npcs=base.npcs,
            tier_tables=base.tier_tables, relationship_models=base.relationship_models,
            effect_rules=base.effect_rules, config=base.config,
        )


def test_catalog_rejects_unknown_relationship_model():
    with pytest.raises(InvalidDefinition):
        load_catalog().with_config(relationship_model="imaginary")


def test_with_config_keeps_tables():
    base = load_catalog()
    simple = base.with_config(relationship_model="simple")
    assert simple.relationship_model.min_value == 0
    assert simple.producers is base.producers
    assert base.relationship_model.id == "extended"


def test_npc_starting_relationship_optional():
    npc = NpcDef(id="x", name="X")
    assert npc.starting_relationship is None


def test_with_config_validates_overrides():
    base = load_catalog()
    with pytest.raises(InvalidDefinition):
        base.with_config(live_tick_seconds=0)
    with pytest.raises(InvalidDefinition):
        base.with_config(max_catchup_seconds=-1.0)
    assert base.with_config(live_tick_seconds=60.0).config.live_tick_seconds == 60.0
