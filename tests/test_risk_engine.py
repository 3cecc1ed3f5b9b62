import pytest

from lotto_risk.config import (
    STATUS_ACCEPTED, STATUS_WARNING, STATUS_REJECTED,
    TIER_BASE, TIER_1, TIER_2, TIER_REJECTED, TIER_BLOCKED
)
from lotto_risk.core.risk_engine import (
    evaluate, classify_usage, calculate_limit, calculate_net_amount, blocked_result,
    no_limit_result
)

# limit = floor(200_000 * 0.5 / 100) = 1000, which keeps usage ratios exact
SIMPLE_CONFIG = {'allocation': 0.5, 'base_payout': 100, 'tier1_payout': 80, 'tier2_payout': 60}
SIMPLE_POOL = {'capital': 200_000, 'total_sales': 0}


def _request(amount=1000, bet_type='TOP3', number='123', has_referrer=False):
    return {'bet_type': bet_type, 'number': number, 'amount': amount, 'has_referrer': has_referrer}


def test_small_pool_rejects_heavily_backed_number(table):
    pool = {'capital': 500_000, 'total_sales': 200_000}
    result = evaluate(_request(), pool, 5000, table['TOP3'])

    assert result['total_pot'] == 700_000
    assert result['current_limit'] == 262
    assert result['projected_amount'] == 6000
    assert result['status'] == STATUS_REJECTED
    assert result['tier'] == TIER_REJECTED
    assert result['applied_payout'] == 0
    assert result['remaining_limit'] == 262 - 6000
    assert 'Over limit' in result['reason']


def test_large_pool_accepts_at_base_payout(table):
    pool = {'capital': 50_000_000, 'total_sales': 200_000}
    result = evaluate(_request(), pool, 5000, table['TOP3'])

    assert result['total_pot'] == 50_200_000
    assert result['current_limit'] == 18825
    assert result['usage_ratio'] == pytest.approx(0.3187, abs=1e-4)
    assert result['usage_percent'] == pytest.approx(31.87, abs=1e-2)
    assert result['status'] == STATUS_ACCEPTED
    assert result['applied_payout'] == 800
    assert result['potential_win'] == 800_000
    assert result['allocation'] == 0.30
    assert result['base_payout'] == 800


def test_referrer_commission_does_not_reduce_exposure(table):
    pool = {'capital': 50_000_000, 'total_sales': 0}
    result = evaluate(_request(has_referrer=True), pool, 5000, table['TOP3'])

    assert result['commission'] == 80
    assert result['net_amount'] == 920
    assert result['projected_amount'] == 6000


@pytest.mark.parametrize("exposure, status, tier, payout", [
    (600, STATUS_ACCEPTED, TIER_BASE, 100),       # exactly 0.70
    (600.001, STATUS_WARNING, TIER_1, 80),
    (750, STATUS_WARNING, TIER_1, 80),            # exactly 0.85
    (750.001, STATUS_WARNING, TIER_2, 60),
    (900, STATUS_WARNING, TIER_2, 60),            # exactly 1.0
    (900.001, STATUS_REJECTED, TIER_REJECTED, 0),
])
def test_threshold_boundaries_stay_in_better_tier(exposure, status, tier, payout):
    result = evaluate(_request(amount=100), SIMPLE_POOL, exposure, SIMPLE_CONFIG)

    assert result['current_limit'] == 1000
    assert result['status'] == status
    assert result['tier'] == tier
    assert result['applied_payout'] == payout


def test_classify_usage_order():
    assert classify_usage(0) == (STATUS_ACCEPTED, TIER_BASE)
    assert classify_usage(0.7) == (STATUS_ACCEPTED, TIER_BASE)
    assert classify_usage(0.85) == (STATUS_WARNING, TIER_1)
    assert classify_usage(1.0) == (STATUS_WARNING, TIER_2)
    assert classify_usage(5.0) == (STATUS_REJECTED, TIER_REJECTED)


def test_payout_never_improves_as_exposure_grows():
    payouts = [
        evaluate(_request(amount=10), SIMPLE_POOL, exposure, SIMPLE_CONFIG)['applied_payout']
        for exposure in range(0, 1200, 25)
    ]

    assert payouts == sorted(payouts, reverse=True)
    assert payouts[0] == 100
    assert payouts[-1] == 0


@pytest.mark.parametrize("exposure", [0, 250, 999, 1000, 4000])
def test_remaining_plus_projected_equals_limit(exposure):
    result = evaluate(_request(amount=120), SIMPLE_POOL, exposure, SIMPLE_CONFIG)

    assert result['remaining_limit'] + result['projected_amount'] == result['current_limit']


def test_negative_remaining_limit_is_not_clamped():
    result = evaluate(_request(amount=500), SIMPLE_POOL, 800, SIMPLE_CONFIG)

    assert result['status'] == STATUS_REJECTED
    assert result['remaining_limit'] == -300
    assert '300.00' in result['reason']


@pytest.mark.parametrize("amount", [1000, 250, 40, 1])
def test_commission_split_adds_up(amount):
    commission, net = calculate_net_amount(amount, True)
    assert net + commission == pytest.approx(amount)

    commission, net = calculate_net_amount(amount, False)
    assert commission == 0
    assert net == amount


def test_evaluate_is_pure(table):
    request = _request(has_referrer=True)
    pool = {'capital': 1_000_000, 'total_sales': 300_000}
    before = (dict(request), dict(pool), dict(table['TOP3']))

    first = evaluate(request, pool, 120, table['TOP3'])
    second = evaluate(request, pool, 120, table['TOP3'])

    assert first == second
    assert (request, pool, table['TOP3']) == before


@pytest.mark.parametrize("config", [
    {'allocation': 0, 'base_payout': 100, 'tier1_payout': 80, 'tier2_payout': 60},
    {'allocation': 0.5, 'base_payout': 0, 'tier1_payout': 0, 'tier2_payout': 0},
])
def test_degenerate_config_gives_zero_limit_and_ratio(config):
    result = evaluate(_request(amount=100), SIMPLE_POOL, 50, config)

    assert result['current_limit'] == 0
    assert result['usage_ratio'] == 0
    assert result['usage_percent'] == 0


def test_manual_limit_only_lowers_the_cap():
    assert calculate_limit(200_000, SIMPLE_CONFIG) == 1000
    assert calculate_limit(200_000, SIMPLE_CONFIG, manual_limit=400) == 400
    assert calculate_limit(200_000, SIMPLE_CONFIG, manual_limit=5000) == 1000

    result = evaluate(_request(amount=100), SIMPLE_POOL, 200, SIMPLE_CONFIG, manual_limit=400)
    assert result['current_limit'] == 400
    assert result['tier'] == TIER_1


def test_blocked_result_rejects_without_payout():
    result = evaluate(_request(amount=100), SIMPLE_POOL, 0, SIMPLE_CONFIG)
    blocked = blocked_result(result)

    assert blocked['status'] == STATUS_REJECTED
    assert blocked['tier'] == TIER_BLOCKED
    assert blocked['applied_payout'] == 0
    assert blocked['current_limit'] == result['current_limit']
    assert result['status'] == STATUS_ACCEPTED


def test_no_limit_result_rejects_zero_limit_evaluation():
    config = dict(SIMPLE_CONFIG, allocation=0)
    result = evaluate(_request(amount=100), SIMPLE_POOL, 0, config)
    rejected = no_limit_result(result)

    assert result['status'] == STATUS_ACCEPTED
    assert rejected['status'] == STATUS_REJECTED
    assert rejected['tier'] == TIER_REJECTED
    assert rejected['applied_payout'] == 0
    assert rejected['current_limit'] == 0
