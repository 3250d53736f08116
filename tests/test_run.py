"""
IdleCore — tests/test_run.py
Headless driver argument parsing.
"""

import argparse

import pytest

import run


def test_buy_spec_defaults_to_one_unit():
    command = run._parse_buy("essence_well")
    assert command.producer_id == "essence_well"
    assert command.amount == 1
    assert run._parse_buy("worker:3").amount == 3


@pytest.mark.parametrize("spec", ["essence_well:abc", "essence_well:0", "worker:-2"])
def test_bad_buy_spec_is_an_argument_error(spec):
    with pytest.raises(argparse.ArgumentTypeError):
        run._parse_buy(spec)


def test_bad_buy_spec_exits_before_loading(capsys):
    with pytest.raises(SystemExit) as exc:
        run.main(["--buy", "essence_well:abc"])
    assert exc.value.code == 2
    assert "essence_well:abc" in capsys.readouterr().err
