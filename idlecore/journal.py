"""
IdleCore — idlecore/journal.py
Journal: append-only JSONL history of significant game events.
==============================================================
Version:     0.2
Stack:       Python 3.11+ | stdlib json | bespoke EventBus
Status:      Stable. No gameplay logic here.

Architecture notes
------------------
- The journal is a PASSIVE wildcard subscriber. It never emits events.
- Append-only JSONL. Written entries are never modified.
- Significance gate (int 1-5): events below JOURNAL_SIGNIFICANCE_MIN are
  dropped. Live-tick noise (tick.stepped, passive relationship drift)
  scores 1 and never reaches disk.
- Simulated time is injected as a callable. The journal never reads the
  wall clock.
- This is the player-facing history. Diagnostics go through `logging`.

Session Markers
---------------
  "journal.session_opened" and "journal.session_closed" are written
  unconditionally via open_session() / close_session().

Design Variables
----------------
  JOURNAL_SIGNIFICANCE_MIN   2
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List

from idlecore.events import (
    EventBus,
    GameEvent,
    EVT_PRODUCER_PURCHASED,
    EVT_PRODUCER_UPGRADED,
    EVT_PRODUCER_UNLOCKED,
    EVT_PRODUCER_RESET,
    EVT_RELATIONSHIP_CHANGED,
    EVT_RELATIONSHIP_TIER_CHANGED,
    EVT_TRAIT_ACQUIRED,
    EVT_TRAIT_EQUIPPED,
    EVT_TRAIT_UNEQUIPPED,
    EVT_TICK_STEPPED,
    EVT_TICK_CATCH_UP,
    EVT_TICK_REJECTED,
    EVT_ACTION_RESOLVED,
    EVT_ON_DAMAGE,
    EVT_ON_DEATH,
    EVT_STATUS_APPLIED,
    EVT_STATUS_EXPIRED,
    EVT_COMBAT_ENDED,
    EVT_COMBAT_RECORDED,
)
from idlecore.relationships import PASSIVE_SOURCES

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

JOURNAL_SIGNIFICANCE_MIN: int = 2

SESSION_OPENED = "journal.session_opened"
SESSION_CLOSED = "journal.session_closed"


# ============================================================
# SIGNIFICANCE SCORING TABLE
# Events not listed score 1 (below threshold, dropped).
# ============================================================

_SIGNIFICANCE_TABLE: Dict[str, int] = {
    # routine
    EVT_TICK_STEPPED:              1,
    EVT_STATUS_EXPIRED:            1,

    # standard
    EVT_PRODUCER_PURCHASED:        2,
    EVT_RELATIONSHIP_CHANGED:      2,
    EVT_TRAIT_EQUIPPED:            2,
    EVT_TRAIT_UNEQUIPPED:          2,
    EVT_ACTION_RESOLVED:           2,
    EVT_ON_DAMAGE:                 2,
    EVT_STATUS_APPLIED:            2,

    # notable
    EVT_PRODUCER_UPGRADED:         3,
    EVT_PRODUCER_RESET:            3,
    EVT_TICK_CATCH_UP:             3,
    EVT_COMBAT_ENDED:              3,
    EVT_COMBAT_RECORDED:           3,

    # significant
    EVT_PRODUCER_UNLOCKED:         4,
    EVT_RELATIONSHIP_TIER_CHANGED: 4,
    EVT_TRAIT_ACQUIRED:            4,
    EVT_ON_DEATH:                  4,
    EVT_TICK_REJECTED:             4,
}


def score_significance(event: GameEvent) -> int:
    """
    Base score from the table, with overrides:
      - relationship.changed from a passive source drops to 1
      - a critical hit raises combat.action_resolved to 3
    """
    base = _SIGNIFICANCE_TABLE.get(event.event_key, 1)
    if event.event_key == EVT_RELATIONSHIP_CHANGED and event.source in PASSIVE_SOURCES:
        return 1
    if event.event_key == EVT_ACTION_RESOLVED and event.data.get("critical"):
        base = max(base, 3)
    return base


# ============================================================
# JOURNAL ENTRY  (immutable after construction)
# ============================================================

@dataclass(frozen=True)
class JournalEntry:
    entry_id: str               # UUID4 string
    timestamp: float            # simulated seconds
    event_key: str
    actor: str
    target: str | None
    data: Dict[str, Any]
    significance: int           # 1-5

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id":     self.entry_id,
            "timestamp":    self.timestamp,
            "event_key":    self.event_key,
            "actor":        self.actor,
            "target":       self.target,
            "data":         self.data,
            "significance": self.significance,
        }


# ============================================================
# JOURNAL WRITER
# ============================================================

class Journal:
    """
    Wildcard subscriber writing qualifying events to a JSONL file.

    Usage:
        bus = EventBus()
        journal = Journal(bus, Path("sessions/journal.jsonl"),
                          time_source=lambda: engine.state.now)
        journal.open_session()
        # ... ticks and commands ...
        journal.close_session()
    """

    def __init__(
        self,
        bus: EventBus,
        journal_path: Path,
        time_source: Callable[[], float],
        significance_min: int = JOURNAL_SIGNIFICANCE_MIN,
    ) -> None:
        self.bus = bus
        self.journal_path = Path(journal_path)
        self.time_source = time_source
        self.significance_min = significance_min

        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        bus.subscribe("*", self._on_event)

    def open_session(self) -> None:
        marker = GameEvent(event_key=SESSION_OPENED, source="system")
        self._write(marker, significance=5)

    def close_session(self) -> None:
        marker = GameEvent(event_key=SESSION_CLOSED, source="system")
        self._write(marker, significance=5)

    def detach(self) -> None:
        self.bus.unsubscribe("*", self._on_event)

    def _on_event(self, event: GameEvent) -> None:
        significance = score_significance(event)
        if significance < self.significance_min:
            return
        self._write(event, significance)

    def _write(self, event: GameEvent, significance: int) -> JournalEntry:
        entry = JournalEntry(
            entry_id=str(uuid.uuid4()),
            timestamp=self.time_source(),
            event_key=event.event_key,
            actor=event.source,
            target=event.target,
            data=dict(event.data),
            significance=significance,
        )
        with open(self.journal_path, "a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        return entry


# ============================================================
# JOURNAL READER  (read-only)
# ============================================================

class JournalReader:
    """Read-only queries over a journal JSONL file."""

    def __init__(self, journal_path: Path) -> None:
        self.journal_path = Path(journal_path)

    def all_entries(self) -> List[Dict[str, Any]]:
        if not self.journal_path.exists():
            return []
        entries = []
        with open(self.journal_path, "r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    entries.append(json.loads(line))
        return entries

    def by_event_key(self, event_key: str) -> List[Dict[str, Any]]:
        return [e for e in self.all_entries() if e.get("event_key") == event_key]

    def by_actor(self, actor: str) -> List[Dict[str, Any]]:
        return [e for e in self.all_entries() if e.get("actor") == actor]

    def by_significance(self, minimum: int) -> List[Dict[str, Any]]:
        return [e for e in self.all_entries() if e.get("significance", 0) >= minimum]

    def session_markers(self) -> List[Dict[str, Any]]:
        return [e for e in self.all_entries()
                if e.get("event_key") in (SESSION_OPENED, SESSION_CLOSED)]
