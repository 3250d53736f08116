"""
IdleCore — tests/test_save.py
Save round-trip, backup rotation and fallback.
"""

import json
import tempfile
import unittest
from pathlib import Path

import pytest

from idlecore.clock import ManualClock
from idlecore.data_loader import load_catalog
from idlecore.errors import CorruptedSaveState
from idlecore.save import backup_path, dumps, load_game, loads, save_game
from idlecore.state import new_game

catalog = load_catalog()


def _played_state():
    state = new_game(catalog, now=100.0)
    state.resources["essence"] = 1234.5
    state.producers["essence_well"].owned = 7
    state.producers["essence_well"].level = 3
    state.relationships["elder_willow"].value = 42.0
    state.relationships["elder_willow"].decay_days_applied = 2
    state.acquired_traits = ["KeenEye", "Foreman"]
    state.equipped_traits = ["KeenEye"]
    state.cooldowns["combat"] = 120.0
    state.player.experience = 30
    return state


def test_round_trip_preserves_state():
    state = _played_state()
    restored = loads(dumps(state), catalog)
    assert restored == state


def test_loads_rejects_unknown_fields():
    data = json.loads(dumps(_played_state()))
    data["cheat_mode"] = True
    with pytest.raises(CorruptedSaveState):
        loads(json.dumps(data), catalog)


def test_loads_rejects_out_of_range_relationship():
    data = json.loads(dumps(_played_state()))
    data["relationships"][0]["value"] = 500
    with pytest.raises(CorruptedSaveState):
        loads(json.dumps(data), catalog)


def test_loads_rejects_equipped_not_acquired():
    data = json.loads(dumps(_played_state()))
    data["equipped_traits"] = ["EssenceFlow"]
    with pytest.raises(CorruptedSaveState):
        loads(json.dumps(data), catalog)


def test_loads_fills_in_new_definitions():
    data = json.loads(dumps(_played_state()))
    del data["producers"]["miner"]
    data["relationships"] = [r for r in data["relationships"] if r["npc_id"] != "captain_vex"]
    restored = loads(json.dumps(data), catalog)
    assert restored.producers["miner"].owned == 0
    assert restored.relationships["captain_vex"].value == -20


class TestSaveFiles(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "save.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_save_stamps_timestamp_from_clock(self):
        stamped = save_game(_played_state(), self.path, ManualClock(start=5000.0))
        self.assertEqual(stamped.last_saved_timestamp, 5000.0)
        result = load_game(self.path, catalog)
        self.assertEqual(result.source, "primary")
        self.assertEqual(result.state.last_saved_timestamp, 5000.0)

    def test_second_save_rotates_backup(self):
        first = _played_state()
        save_game(first, self.path)
        second = first.copy()
        second.resources["essence"] = 1.0
        save_game(second, self.path)
        self.assertTrue(backup_path(self.path).exists())
        backup = loads(backup_path(self.path).read_text(encoding="utf-8"), catalog)
        self.assertEqual(backup.resources["essence"], 1234.5)

    def test_corrupted_primary_falls_back_to_backup(self):
        save_game(_played_state(), self.path)
        save_game(_played_state(), self.path)
        self.path.write_text("{ not json", encoding="utf-8")
        with self.assertLogs("idlecore.save", level="WARNING"):
            result = load_game(self.path, catalog)
        self.assertEqual(result.source, "backup")
        self.assertEqual(result.state.producers["essence_well"].owned, 7)
        self.assertIn("primary", result.error)

    def test_nothing_usable_starts_new_game(self):
        self.path.write_text("garbage", encoding="utf-8")
        backup_path(self.path).write_text("more garbage", encoding="utf-8")
        result = load_game(self.path, catalog, ManualClock(start=77.0))
        self.assertEqual(result.source, "default")
        self.assertEqual(result.state.now, 77.0)
        self.assertEqual(result.state.resources["essence"], 10)

    def test_missing_save_starts_new_game(self):
        result = load_game(self.path, catalog)
        self.assertEqual(result.source, "default")
