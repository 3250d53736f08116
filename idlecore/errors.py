"""
IdleCore — idlecore/errors.py
Error kinds raised by the simulation core.
==========================================
Version:     0.1
Stack:       Python 3.11+
Status:      Stable.

Recoverability
--------------
  InvalidDefinition     fatal at load. Static data is never coerced.
  NotAvailable          recoverable. Caller is told, state untouched.
  InsufficientResource  recoverable. Carries the shortfall, state untouched.
  CorruptedSaveState    triggers backup / default fallback in save.load_game().
"""

from __future__ import annotations

from typing import Optional


class IdleCoreError(Exception):
    """Base class for every error the core raises on purpose."""


class InvalidDefinition(IdleCoreError):
    """Malformed static data (e.g. a cost multiplier <= 1)."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class NotAvailable(IdleCoreError):
    """Operation targets something unknown, locked, or already maxed."""

    def __init__(self, message: str, target_id: Optional[str] = None):
        self.target_id = target_id
        super().__init__(message)


class InsufficientResource(IdleCoreError):
    def __init__(self, resource: str, required: float, available: float):
        self.resource = resource
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Not enough {resource}: need {required:g}, have {available:g} "
            f"(short {self.shortfall:g})"
        )


class CorruptedSaveState(IdleCoreError):
    """Persisted (or freshly stepped) state failed validation."""
