"""
Ticket submission and cancellation: validate a batch of bets and run each
through the ledger
"""
import math
from lotto_risk.config import (
    DIGIT_LENGTHS, BET_TYPE_NAMES, STATUS_REJECTED, STATUS_WARNING,
    ROUND_WAITING, ROUND_OPEN, BET_PENDING, logger
)
from lotto_risk.core.ledger import place_bet, cancel_bet, ExposureConflictError
from lotto_risk.core.payout_table import is_valid_bet_type


def validate_bet(bet):
    """
    Check a bet before it reaches the risk engine.

    Numbers whose length does not match the bet type are rejected, never
    padded or truncated.

    Returns:
        None if the bet is valid, otherwise the reason it is not
    """
    bet_type = bet.get('bet_type')
    if not is_valid_bet_type(bet_type):
        return f"Unknown bet type {bet_type!r}"

    amount = bet.get('amount')
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return f"Amount must be a number, got {amount!r}"
    if not math.isfinite(amount) or amount <= 0:
        return f"Amount must be positive, got {amount}"

    number = bet.get('number')
    expected = DIGIT_LENGTHS[bet_type]
    if not isinstance(number, str) or not number.isdigit() or len(number) != expected:
        return (f"{BET_TYPE_NAMES[bet_type]} needs a {expected}-digit number, "
                f"got {number!r}")

    return None


def _rejection(bet, reason, result=None, retryable=False):
    rejected = {
        'bet_type': bet.get('bet_type'),
        'number': bet.get('number'),
        'amount': bet.get('amount'),
        'reason': reason,
        'retryable': retryable,
    }
    if result is not None:
        rejected['tier'] = result['tier']
        rejected['usage_percent'] = result['usage_percent']
        rejected['remaining_limit'] = result['remaining_limit']
    return rejected


def submit_ticket(store, round_manager, round_id, bets, has_referrer, table, now=None):
    """
    Place every bet of a ticket.

    Each bet is accepted or rejected on its own; a ticket succeeds when at
    least one bet is accepted.

    Args:
        store: ExposureStore for the round
        round_manager: RoundManager used to check the round is open
        round_id: target round
        bets: list of dicts with bet_type, number, amount
        has_referrer: whether the bettor came through an affiliate
        table: validated payout table

    Returns:
        Dict with success flag, accepted and rejected bets and totals
    """
    if not bets:
        return {'success': False, 'message': 'Select at least one number to bet on',
                'accepted_bets': [], 'rejected_bets': []}

    try:
        round_manager.check_accepting_bets(round_id, now=now)
    except ValueError as e:
        return {'success': False, 'message': str(e), 'accepted_bets': [], 'rejected_bets': []}

    accepted = []
    rejected = []

    for bet in bets:
        problem = validate_bet(bet)
        if problem:
            rejected.append(_rejection(bet, problem))
            continue

        request = {
            'bet_type': bet['bet_type'],
            'number': bet['number'],
            'amount': bet['amount'],
            'has_referrer': has_referrer,
        }
        try:
            result = place_bet(store, round_id, request, table)
        except ExposureConflictError as e:
            rejected.append(_rejection(bet, str(e), retryable=True))
            continue

        if result['status'] == STATUS_REJECTED:
            rejected.append(_rejection(bet, result['reason'], result))
            continue

        accepted.append({
            'bet_id': result['bet_id'],
            'bet_type': result['bet_type'],
            'number': result['number'],
            'amount': result['amount'],
            'status': result['status'],
            'tier': result['tier'],
            'applied_payout': result['applied_payout'],
            'potential_win': result['potential_win'],
            'commission': result['commission'],
            'net_amount': result['net_amount'],
            'notice': result['reason'] if result['status'] == STATUS_WARNING else None,
        })

    total_amount = sum(b['amount'] for b in accepted)
    total_commission = sum(b['commission'] for b in accepted)

    logger.info(
        f"Ticket for round {round_id}: {len(accepted)} accepted, "
        f"{len(rejected)} rejected, total {total_amount:,.2f}"
    )

    return {
        'success': len(accepted) > 0,
        'message': ('Ticket accepted' if accepted
                    else 'None of the bets could be accepted'),
        'accepted_bets': accepted,
        'rejected_bets': rejected,
        'total_amount': total_amount,
        'total_commission': total_commission,
        'net_amount': total_amount - total_commission,
    }


def cancel_bets(store, round_manager, bet_ids, reason):
    """
    Cancel the bets of a ticket and release their exposure.

    Only pending bets of a round that is still WAITING or OPEN can be
    cancelled. Every bet is checked before any is cancelled.

    Returns:
        Dict with the cancelled bets and the amount to refund

    Raises:
        NotFoundError: unknown bet or round
        ValueError: missing reason, or a bet that cannot be cancelled
    """
    if not reason or not reason.strip():
        raise ValueError("A reason is required to cancel bets")
    if not bet_ids:
        raise ValueError("Select at least one bet to cancel")
    bet_ids = list(dict.fromkeys(bet_ids))

    for bet_id in bet_ids:
        bet = store.get_bet(bet_id)
        if bet['status'] != BET_PENDING:
            raise ValueError(f"Bet {bet_id} is {bet['status']}, only pending bets can be cancelled")
        lottery_round = round_manager.get_round(bet['round_id'])
        if lottery_round['status'] not in (ROUND_WAITING, ROUND_OPEN):
            raise ValueError(
                f"Round {lottery_round['round_number']} is {lottery_round['status']}, "
                f"bets can no longer be cancelled"
            )

    cancelled = [cancel_bet(store, bet_id, reason) for bet_id in bet_ids]
    refund = sum(b['amount'] for b in cancelled)

    logger.info(f"Cancelled {len(cancelled)} bets ({reason}), refund {refund:,.2f}")
    return {'success': True, 'cancelled_bets': cancelled, 'refund_amount': refund}
