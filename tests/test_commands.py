"""
IdleCore — tests/test_commands.py
Command parsing and copy-on-apply semantics.
"""

import pytest
from pydantic import ValidationError

from idlecore.commands import (
    COMBAT_COOLDOWN,
    DEFEAT_RECOVERY_SECONDS,
    HANDLERS,
    ChangeRelationship,
    PurchaseProducer,
    RecordCombatResult,
    apply_command,
    parse_command,
)
from idlecore.data_loader import load_catalog
from idlecore.errors import InsufficientResource
from idlecore.events import EVT_COMBAT_RECORDED
from idlecore.state import new_game

catalog = load_catalog()


def test_parse_command_picks_variant():
    cmd = parse_command({"kind": "purchase_producer", "producer_id": "essence_well", "amount": 2})
    assert isinstance(cmd, PurchaseProducer)
    assert cmd.amount == 2


def test_parse_command_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        parse_command({"kind": "summon_dragon"})


def test_parse_command_rejects_zero_amount():
    with pytest.raises(ValidationError):
        parse_command({"kind": "purchase_producer", "producer_id": "essence_well", "amount": 0})


def test_every_kind_has_a_handler():
    kinds = {
        "purchase_producer", "upgrade_producer", "unlock_producer", "reset_producer",
        "change_relationship", "acquire_trait", "equip_trait", "unequip_trait",
        "record_combat_result",
    }
    assert set(HANDLERS) == kinds


def test_apply_command_leaves_input_untouched():
    state = new_game(catalog, now=0.0)
    new_state, events = apply_command(state, PurchaseProducer(producer_id="essence_well"), catalog)
    assert state.producers["essence_well"].owned == 0
    assert state.resources["essence"] == 10
    assert new_state.producers["essence_well"].owned == 1
    assert new_state.resources["essence"] == 0
    assert len(events) == 1


def test_failed_command_raises_and_input_intact():
    state = new_game(catalog, now=0.0)
    with pytest.raises(InsufficientResource):
        apply_command(state, PurchaseProducer(producer_id="essence_well", amount=3), catalog)
    assert state.resources["essence"] == 10


def test_change_relationship_uses_equipped_effects():
    state = new_game(catalog, now=0.0)
    state.acquired_traits.append("RelationshipSage")
    state.equipped_traits.append("RelationshipSage")
    cmd = ChangeRelationship(npc_id="elder_willow", delta=10, source="gift")
    new_state, _ = apply_command(state, cmd, catalog, now=42.0)
    assert new_state.relationships["elder_willow"].value == pytest.approx(12)
    assert new_state.relationships["elder_willow"].last_interaction_at == 42.0


def test_record_victory_pays_by_enemy_level():
    state = new_game(catalog, now=0.0)
    cmd = RecordCombatResult(outcome="victory", enemy_id="forest_wolf", enemy_level=2,
                             player_health=70)
    new_state, events = apply_command(state, cmd, catalog)
    assert new_state.player.experience == 20
    assert new_state.resources["gold"] == 10
    assert new_state.player.health == 70
    assert events[0].event_key == EVT_COMBAT_RECORDED


def test_record_defeat_leaves_one_hp_and_cooldown():
    state = new_game(catalog, now=0.0)
    cmd = RecordCombatResult(outcome="defeat", enemy_id="ember_imp", enemy_level=3,
                             player_health=0)
    new_state, _ = apply_command(state, cmd, catalog)
    assert new_state.player.health == 1
    assert new_state.cooldowns[COMBAT_COOLDOWN] == DEFEAT_RECOVERY_SECONDS
    assert new_state.player.experience == 0
