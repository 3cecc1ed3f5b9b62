"""
Risk & payout engine.

Decides, for one wager, whether it is accepted and at which payout
multiplier, from the round's pool and the number's current exposure.

Every function here is pure and does no I/O. Identical arguments always
give identical results.
"""
import math
from lotto_risk.config import (
    AFFILIATE_COMMISSION_RATE, SAFE_ZONE_MAX, WARNING_ZONE_MAX, REJECT_THRESHOLD,
    STATUS_ACCEPTED, STATUS_WARNING, STATUS_REJECTED,
    TIER_BASE, TIER_1, TIER_2, TIER_REJECTED, TIER_BLOCKED
)


def calculate_net_amount(amount, has_referrer, rate=AFFILIATE_COMMISSION_RATE):
    """
    Split a wager into affiliate commission and net revenue.

    Returns:
        Tuple of (commission, net_amount)
    """
    commission = amount * rate if has_referrer else 0
    net_amount = amount - commission
    return commission, net_amount


def classify_usage(usage_ratio):
    """
    Map a usage ratio to (status, tier).

    Thresholds are checked worst first and are exclusive: a ratio of
    exactly 0.70, 0.85 or 1.0 stays in the better tier.
    """
    if usage_ratio > REJECT_THRESHOLD:
        return STATUS_REJECTED, TIER_REJECTED
    if usage_ratio > WARNING_ZONE_MAX:
        return STATUS_WARNING, TIER_2
    if usage_ratio > SAFE_ZONE_MAX:
        return STATUS_WARNING, TIER_1
    return STATUS_ACCEPTED, TIER_BASE


def calculate_limit(total_pot, config, manual_limit=None):
    """
    Maximum total stake on one number such that a win at the base payout
    stays within the bet type's share of the pool.
    """
    if config['base_payout'] > 0:
        limit = math.floor(total_pot * config['allocation'] / config['base_payout'])
    else:
        limit = 0
    if manual_limit is not None:
        limit = min(limit, manual_limit)
    return limit


def _payout_for_tier(config, tier):
    if tier == TIER_BASE:
        return config['base_payout']
    if tier == TIER_1:
        return config['tier1_payout']
    if tier == TIER_2:
        return config['tier2_payout']
    return 0


def _reason(tier, usage_percent, remaining_limit):
    if tier == TIER_REJECTED:
        return (f"Over limit: usage {usage_percent:.1f}% exceeds 100% "
                f"(over by {-remaining_limit:,.2f})")
    if tier == TIER_2:
        return f"Usage {usage_percent:.1f}% is above 85% - payout reduced to tier 2"
    if tier == TIER_1:
        return f"Usage {usage_percent:.1f}% is above 70% - payout reduced to tier 1"
    return f"Normal - {usage_percent:.1f}% of limit used"


def evaluate(request, pool, current_exposure, config, manual_limit=None,
             commission_rate=AFFILIATE_COMMISSION_RATE):
    """
    Evaluate one wager against the pool.

    Args:
        request: dict with bet_type, number, amount, has_referrer
        pool: dict with capital and total_sales for the round
        current_exposure: gross amount already accepted on this number
        config: payout table entry for the bet type
        manual_limit: operator cap for this number; lowers the computed
                      limit, never raises it
        commission_rate: affiliate share taken when has_referrer is set

    Returns:
        Dict with the decision and every intermediate value
    """
    amount = request['amount']
    commission, net_amount = calculate_net_amount(
        amount, request.get('has_referrer', False), commission_rate
    )

    total_pot = pool['capital'] + pool['total_sales']
    allocation = config['allocation']
    base_payout = config['base_payout']

    current_limit = calculate_limit(total_pot, config, manual_limit)

    # the gross amount counts against the limit, commission does not reduce liability
    projected_amount = current_exposure + amount
    usage_ratio = projected_amount / current_limit if current_limit > 0 else 0
    usage_percent = usage_ratio * 100

    status, tier = classify_usage(usage_ratio)
    applied_payout = _payout_for_tier(config, tier)
    remaining_limit = current_limit - projected_amount

    return {
        'bet_type': request['bet_type'],
        'number': request['number'],
        'amount': amount,
        'status': status,
        'tier': tier,
        'reason': _reason(tier, usage_percent, remaining_limit),
        'applied_payout': applied_payout,
        'potential_win': amount * applied_payout,
        'commission': commission,
        'net_amount': net_amount,
        'total_pot': total_pot,
        'allocation': allocation,
        'base_payout': base_payout,
        'current_limit': current_limit,
        'current_exposure': current_exposure,
        'projected_amount': projected_amount,
        'usage_ratio': usage_ratio,
        'usage_percent': usage_percent,
        'remaining_limit': remaining_limit,
    }


def blocked_result(result):
    """Turn an evaluation into the rejection given for a manually closed number"""
    blocked = dict(result)
    blocked.update({
        'status': STATUS_REJECTED,
        'tier': TIER_BLOCKED,
        'reason': f"Number {result['number']} is closed for betting",
        'applied_payout': 0,
        'potential_win': 0,
    })
    return blocked


def no_limit_result(result):
    """Turn an evaluation into the rejection given when the number has no limit left to sell"""
    rejected = dict(result)
    rejected.update({
        'status': STATUS_REJECTED,
        'tier': TIER_REJECTED,
        'reason': f"No limit available for {result['bet_type']} {result['number']}",
        'applied_payout': 0,
        'potential_win': 0,
    })
    return rejected
