"""
IdleCore — idlecore/formulas.py
Scaling formulas: producer cost, production, upgrade cost, accrual.
===================================================================
Version:     0.2
Stack:       Python 3.11+ | stdlib math
Status:      Stable. Pure functions only.

Every function here is side-effect free and gives identical results for
identical inputs. Catch-up and live ticks both route through them, so they
must stay closed-form in elapsed time.

Costs that leave float range come back as math.inf, which no balance can
cover, instead of raising OverflowError.

  unit_cost      floor(base_cost * cost_multiplier ** owned)
  production     base_production * owned * production_multiplier ** (level - 1)
  upgrade_cost   floor(base_cost * cost_multiplier ** (level - 1))
  accrued        rate * elapsed
"""

from __future__ import annotations

import math
import sys
from typing import Optional

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

DEFAULT_REFUND_RATE: float = 0.4   # share of spent cost returned on reset


def _scaled(base: float, multiplier: float, exponent: int) -> float:
    """floor(base * multiplier ** exponent), or math.inf past float range."""
    try:
        value = base * (multiplier ** exponent)
    except OverflowError:
        return math.inf
    if math.isinf(value):
        return math.inf
    return math.floor(value)


def unit_cost(base_cost: float, cost_multiplier: float, owned: int) -> float:
    """Price of the next unit when `owned` units are already held."""
    if owned < 0:
        raise ValueError(f"owned must be >= 0, got {owned}")
    return _scaled(base_cost, cost_multiplier, owned)


def bulk_cost(base_cost: float, cost_multiplier: float, owned: int, amount: int,
              limit: Optional[float] = None) -> float:
    """
    Total price for `amount` units bought in one go.
    Each unit is priced at its own owned count; never amount * unit_cost(owned).

    With `limit` set, summing stops as soon as the running total exceeds it
    and that partial total is returned. Costs only grow with owned, so the
    full price is then known to be over the limit as well.
    """
    if amount < 1:
        raise ValueError(f"amount must be >= 1, got {amount}")
    total = 0
    for i in range(amount):
        total += unit_cost(base_cost, cost_multiplier, owned + i)
        if total > sys.float_info.max:
            return math.inf
        if limit is not None and total > limit:
            break
    return total


def production(base_production: float, owned: int, level: int,
               production_multiplier: float) -> float:
    """Per-second output of a producer line before effect multipliers."""
    if owned <= 0:
        return 0.0
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return base_production * owned * (production_multiplier ** (level - 1))


def upgrade_cost(base_cost: float, cost_multiplier: float, level: int) -> float:
    """Price of going from `level` to `level + 1`."""
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    return _scaled(base_cost, cost_multiplier, level - 1)


def accrued(rate: float, elapsed_seconds: float) -> float:
    return rate * max(0.0, elapsed_seconds)


def refund_value(base_cost: float, cost_multiplier: float, owned: int,
                 refund_rate: float = DEFAULT_REFUND_RATE) -> int:
    """Resource handed back when a producer line is reset to zero."""
    if owned <= 0:
        return 0
    spent = bulk_cost(base_cost, cost_multiplier, 0, owned)
    return math.floor(spent * refund_rate)
