"""
IdleCore — tests/test_formulas.py
Cost, production, upgrade and refund formulas.
"""

import math

import pytest

from idlecore.formulas import accrued, bulk_cost, production, refund_value, unit_cost, upgrade_cost


def test_first_and_second_unit_cost():
    assert unit_cost(10, 1.15, 0) == 10
    assert unit_cost(10, 1.15, 1) == 11


def test_unit_cost_strictly_increasing():
    costs = [unit_cost(10, 1.15, n) for n in range(60)]
    assert all(b > a for a, b in zip(costs, costs[1:]))


def test_unit_cost_rejects_negative_owned():
    with pytest.raises(ValueError):
        unit_cost(10, 1.15, -1)


def test_bulk_cost_is_sum_of_successive_units():
    assert bulk_cost(10, 1.15, 0, 5) == 10 + 11 + 13 + 15 + 17
    assert bulk_cost(10, 1.15, 3, 4) == sum(unit_cost(10, 1.15, n) for n in range(3, 7))
    assert bulk_cost(10, 1.15, 3, 4) > 4 * unit_cost(10, 1.15, 3)


def test_bulk_cost_rejects_zero_amount():
    with pytest.raises(ValueError):
        bulk_cost(10, 1.15, 0, 0)


def test_production_examples():
    assert production(0.1, 5, 1, 1.1) == pytest.approx(0.5)
    assert production(0.1, 5, 3, 1.1) == pytest.approx(0.5 * 1.21)


def test_production_zero_when_none_owned():
    assert production(0.1, 0, 1, 1.1) == 0.0
    assert production(0.1, 0, 40, 1.5) == 0.0


def test_upgrade_cost_rebased_on_level_one():
    assert upgrade_cost(50, 1.5, 1) == 50
    assert upgrade_cost(50, 1.5, 2) == 75
    assert upgrade_cost(50, 1.5, 3) == 112


def test_accrued_is_linear_and_ignores_negative_time():
    assert accrued(0.5, 10) == pytest.approx(5.0)
    assert accrued(0.5, 4) + accrued(0.5, 6) == pytest.approx(accrued(0.5, 10))
    assert accrued(0.5, -3) == 0.0


def test_refund_value_is_share_of_total_spent():
    spent = 10 + 11 + 13 + 15 + 17
    assert refund_value(10, 1.15, 5, 0.4) == int(spent * 0.4)
    assert refund_value(10, 1.15, 0, 0.4) == 0


def test_costs_past_float_range_are_infinite():
    assert unit_cost(10, 1.15, 6000) == math.inf
    assert upgrade_cost(50, 1.5, 5000) == math.inf
    assert bulk_cost(10, 1.15, 5000, 10 ** 9) == math.inf


def test_bulk_cost_stops_once_limit_passed():
    assert bulk_cost(10, 1.15, 0, 10 ** 12, limit=100) == 10 + 11 + 13 + 15 + 17 + 20 + 23
