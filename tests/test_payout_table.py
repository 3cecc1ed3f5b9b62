import copy
import json

import pytest

from lotto_risk.config import BET_TYPES, DEFAULT_PAYOUT_TABLE
from lotto_risk.core.payout_table import (
    PayoutTableError, load_payout_table, validate_payout_table, get_bet_type_config,
    calculate_risk_budget, is_valid_bet_type, risk_zones
)


@pytest.fixture
def defaults():
    return copy.deepcopy(DEFAULT_PAYOUT_TABLE)


def test_default_table_is_valid(table):
    assert sorted(table) == sorted(BET_TYPES)
    assert sum(config['allocation'] for config in table.values()) == pytest.approx(1.0)


def test_loaded_table_is_a_copy(table):
    table['TOP3']['base_payout'] = 1
    assert DEFAULT_PAYOUT_TABLE['TOP3']['base_payout'] == 800


def test_missing_bet_type(defaults):
    del defaults['RUN_BOTTOM']
    with pytest.raises(PayoutTableError, match="Missing bet types"):
        validate_payout_table(defaults)


def test_unknown_bet_type(defaults):
    defaults['FRONT3'] = dict(defaults['TOP3'])
    with pytest.raises(PayoutTableError, match="Unknown bet types"):
        validate_payout_table(defaults)


def test_allocations_must_sum_to_one(defaults):
    defaults['TOP3']['allocation'] = 0.35
    with pytest.raises(PayoutTableError, match="sum to 1.0"):
        validate_payout_table(defaults)


def test_allocation_inside_tolerance_is_accepted(defaults):
    defaults['TOP3']['allocation'] = 0.3004
    assert validate_payout_table(defaults)


@pytest.mark.parametrize("field, value", [
    ('tier1_payout', 800),
    ('tier2_payout', 700),
    ('tier2_payout', 0),
])
def test_payouts_must_strictly_decrease(defaults, field, value):
    defaults['TOP3'][field] = value
    with pytest.raises(PayoutTableError, match="base > tier1 > tier2"):
        validate_payout_table(defaults)


@pytest.mark.parametrize("value", [0, -0.1, 1.5])
def test_allocation_range(defaults, value):
    defaults['TOD3']['allocation'] = value
    with pytest.raises(PayoutTableError, match="allocation"):
        validate_payout_table(defaults)


@pytest.mark.parametrize("value", [None, '800', True])
def test_fields_must_be_numbers(defaults, value):
    defaults['TOP2']['base_payout'] = value
    with pytest.raises(PayoutTableError, match="must be a number"):
        validate_payout_table(defaults)


def test_load_from_json_file(tmp_path, defaults):
    defaults['TOP3']['base_payout'] = 900
    path = tmp_path / 'payouts.json'
    path.write_text(json.dumps(defaults), encoding='utf-8')

    table = load_payout_table(path)

    assert table['TOP3']['base_payout'] == 900


def test_load_broken_json_file(tmp_path):
    path = tmp_path / 'payouts.json'
    path.write_text('{not json', encoding='utf-8')

    with pytest.raises(PayoutTableError, match="Cannot read"):
        load_payout_table(path)


def test_load_invalid_table_from_file(tmp_path, defaults):
    defaults['TOP3']['allocation'] = 0.9
    path = tmp_path / 'payouts.json'
    path.write_text(json.dumps(defaults), encoding='utf-8')

    with pytest.raises(PayoutTableError):
        load_payout_table(path)


def test_bet_type_lookup(table):
    assert is_valid_bet_type('BOTTOM2')
    assert not is_valid_bet_type('bottom2')
    assert get_bet_type_config(table, 'TOD3')['base_payout'] == 150
    with pytest.raises(PayoutTableError):
        get_bet_type_config(table, 'FRONT3')


def test_risk_budget(table):
    assert calculate_risk_budget(table, 'TOP2', 1_000_000) == pytest.approx(150_000)


def test_risk_zones_cover_every_ratio():
    zones = risk_zones()

    assert [z['tier'] for z in zones] == ['BASE', 'TIER1', 'TIER2', 'REJECTED']
    for lower, upper in zip(zones, zones[1:]):
        assert lower['max_usage'] == upper['min_usage']
    assert zones[-1]['max_usage'] is None
