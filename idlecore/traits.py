"""
IdleCore — idlecore/traits.py
Trait acquisition and slot-limited equipping.
=============================================
Version:     0.2
Stack:       Python 3.11+ | stdlib
Status:      Stable.

Acquiring a trait costs essence and may need a relationship with the NPC
who teaches it. Non-permanent traits only apply while equipped, and the
number equipped is capped by GameState.trait_slots. Permanent traits are
active once acquired and never take a slot.
"""

from __future__ import annotations

import logging
from typing import List

from idlecore.data_loader import Catalog, TraitDef
from idlecore.errors import InsufficientResource, NotAvailable
from idlecore.events import GameEvent, EVT_TRAIT_ACQUIRED, EVT_TRAIT_EQUIPPED, EVT_TRAIT_UNEQUIPPED
from idlecore.state import GameState

logger = logging.getLogger("idlecore.traits")

TRAIT_COST_RESOURCE = "essence"


def _definition(catalog: Catalog, trait_id: str) -> TraitDef:
    tdef = catalog.traits.get(trait_id)
    if tdef is None:
        raise NotAvailable(f"unknown trait '{trait_id}'", target_id=trait_id)
    return tdef


def acquire(state: GameState, catalog: Catalog, trait_id: str) -> List[GameEvent]:
    tdef = _definition(catalog, trait_id)
    if trait_id in state.acquired_traits:
        raise NotAvailable(f"trait '{trait_id}' already acquired", target_id=trait_id)

    if tdef.source_npc is not None and tdef.required_relationship is not None:
        record = state.relationships.get(tdef.source_npc)
        value = record.value if record is not None else 0.0
        if value < tdef.required_relationship:
            raise NotAvailable(
                f"trait '{trait_id}' needs relationship {tdef.required_relationship:g} "
                f"with '{tdef.source_npc}' (have {value:g})",
                target_id=trait_id,
            )

    available = state.resource(TRAIT_COST_RESOURCE)
    if available < tdef.essence_cost:
        raise InsufficientResource(TRAIT_COST_RESOURCE, tdef.essence_cost, available)

    state.resources[TRAIT_COST_RESOURCE] = available - tdef.essence_cost
    state.acquired_traits.append(trait_id)
    logger.info("Acquired trait %s for %g essence", trait_id, tdef.essence_cost)
    return [GameEvent(
        event_key=EVT_TRAIT_ACQUIRED,
        source=trait_id,
        target=tdef.source_npc,
        data={"cost": tdef.essence_cost, "permanent": tdef.permanent},
    )]


def equip(state: GameState, catalog: Catalog, trait_id: str) -> List[GameEvent]:
    tdef = _definition(catalog, trait_id)
    if trait_id not in state.acquired_traits:
        raise NotAvailable(f"trait '{trait_id}' not acquired", target_id=trait_id)
    if tdef.permanent:
        raise NotAvailable(f"trait '{trait_id}' is permanent and always active",
                           target_id=trait_id)
    if trait_id in state.equipped_traits:
        raise NotAvailable(f"trait '{trait_id}' already equipped", target_id=trait_id)
    if len(state.equipped_traits) >= state.trait_slots:
        raise NotAvailable(f"all {state.trait_slots} trait slots are full", target_id=trait_id)

    state.equipped_traits.append(trait_id)
    return [GameEvent(
        event_key=EVT_TRAIT_EQUIPPED,
        source=trait_id,
        data={"slots_used": len(state.equipped_traits), "slots": state.trait_slots},
    )]


def unequip(state: GameState, catalog: Catalog, trait_id: str) -> List[GameEvent]:
    _definition(catalog, trait_id)
    if trait_id not in state.equipped_traits:
        raise NotAvailable(f"trait '{trait_id}' is not equipped", target_id=trait_id)
    state.equipped_traits.remove(trait_id)
    return [GameEvent(event_key=EVT_TRAIT_UNEQUIPPED, source=trait_id)]
