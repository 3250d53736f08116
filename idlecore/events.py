"""
IdleCore — idlecore/events.py
Event envelope, canonical event keys, in-process pub-sub.
=========================================================
Version:     0.3
Stack:       Python 3.11+ | Pydantic v2 | bespoke pub-sub
Status:      Stable.

Architecture notes
------------------
- All events share one envelope (GameEvent). `data` stays flat and
  JSON-serializable so the journal can write it unchanged.
- Operations never emit directly. They return lists of GameEvent and the
  TickEngine publishes them once the new state has been accepted.
- Wildcard key "*" receives every emitted event (used by the Journal).
- A failing handler is logged and skipped so the rest still run.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("idlecore.events")

# ============================================================
# CANONICAL EVENT KEYS
# Never use raw strings. Add new keys here only.
# ============================================================

EVT_PRODUCER_PURCHASED     = "producer.purchased"
EVT_PRODUCER_UPGRADED      = "producer.upgraded"
EVT_PRODUCER_UNLOCKED      = "producer.unlocked"
EVT_PRODUCER_RESET         = "producer.reset"

EVT_RELATIONSHIP_CHANGED      = "relationship.changed"
EVT_RELATIONSHIP_TIER_CHANGED = "relationship.tier_changed"

EVT_TRAIT_ACQUIRED         = "trait.acquired"
EVT_TRAIT_EQUIPPED         = "trait.equipped"
EVT_TRAIT_UNEQUIPPED       = "trait.unequipped"

EVT_TICK_STEPPED           = "tick.stepped"
EVT_TICK_CATCH_UP          = "tick.catch_up"
EVT_TICK_REJECTED          = "tick.rejected"

EVT_ACTION_RESOLVED        = "combat.action_resolved"
EVT_ON_DAMAGE              = "combat.on_damage"
EVT_ON_DEATH               = "combat.on_death"
EVT_STATUS_APPLIED         = "combat.status_applied"
EVT_STATUS_EXPIRED         = "combat.status_expired"
EVT_COMBAT_ENDED           = "combat.ended"
EVT_COMBAT_RECORDED        = "combat.recorded"


class GameEvent(BaseModel):
    """Base envelope. The journal receives these directly."""
    event_key: str
    source: str
    target: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


HandlerFn = Callable[[GameEvent], None]


class EventBus:
    """
    Bespoke pub-sub. Pass the instance at construction; no global singleton.

    Per-handler errors are logged with their traceback and swallowed so
    emission always continues.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[HandlerFn]] = {}

    def subscribe(self, event_key: str, handler: HandlerFn) -> None:
        self._subscribers.setdefault(event_key, []).append(handler)

    def unsubscribe(self, event_key: str, handler: HandlerFn) -> None:
        if event_key in self._subscribers:
            self._subscribers[event_key] = [
                h for h in self._subscribers[event_key] if h != handler
            ]

    def emit(self, event: GameEvent) -> None:
        targets = (
            self._subscribers.get(event.event_key, [])
            + self._subscribers.get("*", [])
        )
        for handler in targets:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception("Handler error on '%s'", event.event_key)

    def emit_all(self, events: List[GameEvent]) -> None:
        for event in events:
            self.emit(event)
