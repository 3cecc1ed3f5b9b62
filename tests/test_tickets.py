from datetime import datetime

import pytest

from lotto_risk.config import STATUS_WARNING, BET_CANCELLED
from lotto_risk.core.ledger import NotFoundError
from lotto_risk.core.tickets import cancel_bets, submit_ticket, validate_bet

BETTING_DAY = datetime(2026, 10, 25, 12, 0)


@pytest.mark.parametrize("bet", [
    {'bet_type': 'TOP3', 'number': '123', 'amount': 10},
    {'bet_type': 'TOP2', 'number': '05', 'amount': 1.5},
    {'bet_type': 'RUN_BOTTOM', 'number': '0', 'amount': 1},
])
def test_valid_bets(bet):
    assert validate_bet(bet) is None


@pytest.mark.parametrize("bet, fragment", [
    ({'bet_type': 'FRONT3', 'number': '123', 'amount': 10}, 'Unknown bet type'),
    ({'bet_type': 'TOP2', 'number': '123', 'amount': 10}, '2-digit'),
    ({'bet_type': 'TOP3', 'number': '12', 'amount': 10}, '3-digit'),
    ({'bet_type': 'TOP3', 'number': '12a', 'amount': 10}, '3-digit'),
    ({'bet_type': 'RUN_TOP', 'number': 7, 'amount': 10}, '1-digit'),
    ({'bet_type': 'TOP3', 'number': '123', 'amount': 0}, 'positive'),
    ({'bet_type': 'TOP3', 'number': '123', 'amount': -5}, 'positive'),
    ({'bet_type': 'TOP3', 'number': '123', 'amount': float('nan')}, 'positive'),
    ({'bet_type': 'TOP3', 'number': '123', 'amount': '10'}, 'must be a number'),
    ({'bet_type': 'TOP3', 'number': '123', 'amount': True}, 'must be a number'),
])
def test_invalid_bets(bet, fragment):
    assert fragment in validate_bet(bet)


def test_ticket_accepts_and_rejects_bets_individually(rounds, open_round, sql_store, table):
    bets = [
        {'bet_type': 'TOP3', 'number': '123', 'amount': 100},
        {'bet_type': 'TOP2', 'number': '123', 'amount': 50},
        {'bet_type': 'RUN_TOP', 'number': '7', 'amount': 50},
        {'bet_type': 'TOP3', 'number': '456', 'amount': -5},
    ]

    result = submit_ticket(sql_store, rounds, open_round['round_id'], bets, True, table,
                           now=BETTING_DAY)

    assert result['success']
    assert [b['number'] for b in result['accepted_bets']] == ['123', '7']
    assert [b['number'] for b in result['rejected_bets']] == ['123', '456']
    assert not any(b['retryable'] for b in result['rejected_bets'])
    assert result['total_amount'] == 150
    assert result['total_commission'] == pytest.approx(12)
    assert result['net_amount'] == pytest.approx(138)

    pool = rounds.get_round(open_round['round_id'])['pool']
    assert pool['total_sales'] == 150
    assert pool['total_bets'] == 2


def test_over_limit_bet_carries_risk_details(rounds, open_round, sql_store, table):
    bets = [{'bet_type': 'TOP3', 'number': '123', 'amount': 1000}]

    result = submit_ticket(sql_store, rounds, open_round['round_id'], bets, False, table,
                           now=BETTING_DAY)

    assert not result['success']
    rejected = result['rejected_bets'][0]
    assert rejected['tier'] == 'REJECTED'
    assert rejected['remaining_limit'] < 0


def test_reduced_payout_comes_with_a_notice(rounds, open_round, sql_store, table):
    bets = [{'bet_type': 'TOP3', 'number': '123', 'amount': 150}]

    result = submit_ticket(sql_store, rounds, open_round['round_id'], bets, False, table,
                           now=BETTING_DAY)

    accepted = result['accepted_bets'][0]
    assert accepted['status'] == STATUS_WARNING
    assert accepted['applied_payout'] == 650
    assert 'tier 1' in accepted['notice']


def test_empty_ticket(rounds, open_round, sql_store, table):
    result = submit_ticket(sql_store, rounds, open_round['round_id'], [], False, table,
                           now=BETTING_DAY)

    assert not result['success']
    assert result['accepted_bets'] == []


def test_ticket_for_closed_round(rounds, open_round, sql_store, table):
    rounds.close_round(open_round['round_id'])
    bets = [{'bet_type': 'TOP3', 'number': '123', 'amount': 10}]

    result = submit_ticket(sql_store, rounds, open_round['round_id'], bets, False, table,
                           now=BETTING_DAY)

    assert not result['success']
    assert 'not open' in result['message']
    assert sql_store.list_exposures(open_round['round_id']) == []


def _placed_ticket(rounds, open_round, sql_store, table):
    bets = [
        {'bet_type': 'TOP3', 'number': '123', 'amount': 100},
        {'bet_type': 'TOP2', 'number': '45', 'amount': 40},
    ]
    result = submit_ticket(sql_store, rounds, open_round['round_id'], bets, True, table,
                           now=BETTING_DAY)
    return [b['bet_id'] for b in result['accepted_bets']]


def test_cancel_ticket_refunds_and_releases_exposure(rounds, open_round, sql_store, table):
    bet_ids = _placed_ticket(rounds, open_round, sql_store, table)

    result = cancel_bets(sql_store, rounds, bet_ids + bet_ids[:1], 'wrong numbers')

    assert result['success']
    assert result['refund_amount'] == 140
    assert [b['status'] for b in result['cancelled_bets']] == [BET_CANCELLED] * 2
    assert all(e['cumulative_amount'] == 0 for e in sql_store.list_exposures(open_round['round_id']))

    pool = rounds.get_round(open_round['round_id'])['pool']
    assert pool['total_sales'] == 0
    assert pool['total_bets'] == 0


@pytest.mark.parametrize("reason", ['', '   ', None])
def test_cancel_needs_a_reason(rounds, open_round, sql_store, table, reason):
    bet_ids = _placed_ticket(rounds, open_round, sql_store, table)

    with pytest.raises(ValueError, match="reason"):
        cancel_bets(sql_store, rounds, bet_ids, reason)


def test_cancel_after_close_is_refused(rounds, open_round, sql_store, table):
    bet_ids = _placed_ticket(rounds, open_round, sql_store, table)
    rounds.close_round(open_round['round_id'])

    with pytest.raises(ValueError, match="no longer be cancelled"):
        cancel_bets(sql_store, rounds, bet_ids, 'late')

    assert rounds.get_round(open_round['round_id'])['pool']['total_sales'] == 140


def test_cancel_unknown_bet_changes_nothing(rounds, open_round, sql_store, table):
    bet_ids = _placed_ticket(rounds, open_round, sql_store, table)

    with pytest.raises(NotFoundError):
        cancel_bets(sql_store, rounds, bet_ids + [999], 'typo')

    assert [b['status'] for b in rounds.list_bets(open_round['round_id'])] == ['PENDING', 'PENDING']
