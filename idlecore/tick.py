"""
IdleCore — idlecore/tick.py
TickEngine: one shared step function, live and catch-up entry points.
======================================================================
Version:     0.4
Stack:       Python 3.11+ | bespoke EventBus
Status:      Stable.

Architecture notes
------------------
- step() is the only place elapsed time turns into state. Live ticks and
  offline catch-up both call it; catch-up is one closed-form step, never a
  per-second replay.
- step() is pure. It deep-copies its input and returns the new state.
- Everything step() does is linear in elapsed time within a step (rates
  are constant, relationship growth/decay is walked in time order), so
      step(step(s, t1), t2) == step(s, t1 + t2)
  up to float rounding, and N live ticks equal one step of their sum.
- A stepped state that fails validation raises CorruptedSaveState. The
  TickEngine stays on its last-known-good snapshot and re-raises.

Step order
----------
  1. resolve the EffectSet from the state's traits
  2. accrue every resource (rate * elapsed), mirrored into lifetime totals
  3. advance relationships over (now, now + elapsed]
  4. expire cooldowns
  5. now += elapsed, then check unlocks
  6. validate

Design Variables
----------------
  LIVE_TICK_SECONDS       1.0       (config.live_tick_seconds)
  MAX_CATCHUP_SECONDS     604800    (config.max_catchup_seconds, 7 days)
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from idlecore import formulas, ledger, relationships
from idlecore.clock import Clock
from idlecore.commands import apply_command
from idlecore.data_loader import Catalog
from idlecore.effects import resolve_state
from idlecore.errors import CorruptedSaveState
from idlecore.events import (
    EventBus,
    GameEvent,
    EVT_PRODUCER_UNLOCKED,
    EVT_TICK_STEPPED,
    EVT_TICK_CATCH_UP,
    EVT_TICK_REJECTED,
)
from idlecore.state import GameState, validate

logger = logging.getLogger("idlecore.tick")

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

LIVE_TICK_SECONDS: float = 1.0
MAX_CATCHUP_SECONDS: float = 7 * 86400.0


# ============================================================
# STEP
# ============================================================

def clamp_elapsed(elapsed_seconds: float, catalog: Catalog) -> float:
    if math.isnan(elapsed_seconds) or elapsed_seconds <= 0:
        return 0.0
    return min(elapsed_seconds, catalog.config.max_catchup_seconds)


def step_with_events(state: GameState, elapsed_seconds: float,
                     catalog: Catalog) -> Tuple[GameState, List[GameEvent]]:
    """step() plus the events it produced (unlocks, relationship changes)."""
    elapsed = clamp_elapsed(elapsed_seconds, catalog)
    new = state.copy()
    events: List[GameEvent] = []

    # 1. effects
    effects = resolve_state(new, catalog)

    # 2. resources
    rates = ledger.total_production_by_resource(new, catalog, effects)
    for resource in sorted(rates):
        gained = formulas.accrued(rates[resource], elapsed)
        new.resources[resource] = new.resource(resource) + gained
        new.lifetime_resources[resource] = new.lifetime_resources.get(resource, 0.0) + gained
    end = new.now + elapsed
    for ps in new.producers.values():
        ps.last_collected_at = end

    # 3. relationships
    events.extend(relationships.advance(
        new, catalog, new.now, end, relationships.growth_per_second(effects),
    ))

    # 4. cooldowns
    for name in sorted(new.cooldowns):
        remaining = new.cooldowns[name] - elapsed
        if remaining <= 0:
            del new.cooldowns[name]
        else:
            new.cooldowns[name] = remaining

    # 5. clock + unlocks
    new.now = end
    for pid in ledger.check_unlocks(new, catalog):
        events.append(GameEvent(event_key=EVT_PRODUCER_UNLOCKED, source=pid))

    # 6. validate
    validate(new, catalog)
    events.append(GameEvent(
        event_key=EVT_TICK_STEPPED,
        source="tick",
        data={"elapsed": elapsed, "now": new.now, "rates": rates},
    ))
    logger.debug("Stepped %.3fs to t=%.3f (rates %s)", elapsed, new.now, rates)
    return new, events


def step(state: GameState, elapsed_seconds: float, catalog: Catalog) -> GameState:
    """Advances `state` by elapsed time. Pure: the input is not modified."""
    return step_with_events(state, elapsed_seconds, catalog)[0]


# ============================================================
# ENGINE
# ============================================================

class TickEngine:
    """
    Owns the current GameState for a running session.

    Usage:
        engine = TickEngine(state, catalog, bus=bus, clock=SystemClock())
        engine.catch_up()          # once, after loading
        engine.tick()              # every live_tick_seconds
        engine.dispatch(PurchaseProducer(producer_id="essence_well"))
    """

    def __init__(self, state: GameState, catalog: Catalog,
                 bus: Optional[EventBus] = None,
                 clock: Optional[Clock] = None) -> None:
        validate(state, catalog)
        self.catalog = catalog
        self.bus = bus or EventBus()
        self.clock = clock
        self._state = state.copy()
        self._last_good = state.copy()

    @property
    def state(self) -> GameState:
        return self._state

    # ----------------------------------------------------------
    # Internal: accept / reject
    # ----------------------------------------------------------

    def _accept(self, new_state: GameState, events: List[GameEvent]) -> None:
        self._state = new_state
        self._last_good = new_state.copy()
        self.bus.emit_all(events)

    def _reject(self, exc: Exception, elapsed: float) -> None:
        self._state = self._last_good.copy()
        logger.warning("Step of %.3fs rejected, staying on last good state: %s", elapsed, exc)
        self.bus.emit(GameEvent(
            event_key=EVT_TICK_REJECTED,
            source="tick",
            data={"elapsed": elapsed, "reason": str(exc)},
        ))

    def advance(self, elapsed_seconds: float) -> GameState:
        try:
            new_state, events = step_with_events(self._state, elapsed_seconds, self.catalog)
        except CorruptedSaveState as exc:
            self._reject(exc, elapsed_seconds)
            raise
        self._accept(new_state, events)
        return self._state

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    def tick(self) -> GameState:
        """One live tick of config.live_tick_seconds."""
        return self.advance(self.catalog.config.live_tick_seconds)

    def run(self, seconds: float) -> GameState:
        """Headless helper: live ticks covering `seconds`, remainder last."""
        live = self.catalog.config.live_tick_seconds
        full = int(seconds // live)
        for _ in range(full):
            self.tick()
        remainder = seconds - full * live
        if remainder > 0:
            self.advance(remainder)
        return self._state

    def catch_up(self, now: Optional[float] = None) -> float:
        """
        Applies the offline window since last_saved_timestamp as one step.
        Returns the seconds actually applied (after the cap). The window is
        consumed: a second call with the same `now` applies nothing.
        """
        if now is None:
            if self.clock is None:
                raise ValueError("catch_up() needs `now` or a clock")
            now = self.clock.now()
        offline = now - self._state.last_saved_timestamp
        if offline < 0:
            logger.warning("Clock went backwards by %.1fs; skipping catch-up", -offline)
            offline = 0.0
        applied = clamp_elapsed(offline, self.catalog)
        if applied < offline:
            logger.info("Offline for %.0fs; capped to %.0fs", offline, applied)

        before = dict(self._state.resources)
        self.advance(applied)
        self._state.last_saved_timestamp = now
        self._last_good.last_saved_timestamp = now

        gained = {k: v - before.get(k, 0.0) for k, v in self._state.resources.items()
                  if v - before.get(k, 0.0) > 0}
        logger.info("Catch-up applied %.0fs: %s", applied, gained)
        self.bus.emit(GameEvent(
            event_key=EVT_TICK_CATCH_UP,
            source="tick",
            data={"offline": offline, "applied": applied, "gained": gained},
        ))
        return applied

    def dispatch(self, command) -> List[GameEvent]:
        """Applies a player command; the state swaps only if it succeeds."""
        new_state, events = apply_command(self._state, command, self.catalog, self._state.now)
        validate(new_state, self.catalog)
        self._accept(new_state, events)
        return events

    def replace_state(self, state: GameState) -> None:
        """Swaps in a state produced elsewhere (e.g. combat write-back)."""
        validate(state, self.catalog)
        self._accept(state.copy(), [])

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view for presentation."""
        effects = resolve_state(self._state, self.catalog)
        return {
            "now": self._state.now,
            "resources": dict(self._state.resources),
            "rates": ledger.total_production_by_resource(self._state, self.catalog, effects),
            "tiers": {
                npc_id: relationships.tier(self._state, self.catalog, npc_id)
                for npc_id in sorted(self._state.relationships)
            },
            "effects": effects.as_dict(),
            "cooldowns": dict(self._state.cooldowns),
        }
