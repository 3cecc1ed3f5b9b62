"""
Bot traffic simulator for stress-testing a payout table.

Generates bettors with different behaviour profiles, fires their bets
through place_bet() against an in-memory ledger and reports how the pool
and the most heavily backed numbers held up.
"""
import numpy as np
import pandas as pd
from lotto_risk.config import (
    DIGIT_LENGTHS, INITIAL_CAPITAL, STATUS_REJECTED, STATUS_WARNING,
    WARNING_ZONE_MAX, logger
)
from lotto_risk.core.ledger import InMemoryExposureStore, place_bet, risk_snapshot

BOT_BEHAVIORS = {
    'conservative': {'min_amount': 20, 'max_amount': 200, 'bets_per_day': 5},
    'moderate': {'min_amount': 50, 'max_amount': 500, 'bets_per_day': 10},
    'aggressive': {'min_amount': 200, 'max_amount': 2000, 'bets_per_day': 20},
    'whale': {'min_amount': 1000, 'max_amount': 20000, 'bets_per_day': 30},
}

POPULAR_NUMBERS = {
    3: ['123', '456', '789', '888', '999', '777', '666', '555', '100', '200'],
    2: ['12', '23', '34', '45', '56', '67', '78', '89', '90', '01'],
    1: ['1', '3', '5', '7', '9'],
}

DEFAULT_SIMULATION_CONFIG = {
    'n_bots': 100,
    'behavior_distribution': {'conservative': 40, 'moderate': 35, 'aggressive': 20, 'whale': 5},
    'referrer_rate': 0.60,
    'bet_type_distribution': {
        'TOP3': 30, 'TOD3': 20, 'TOP2': 20, 'BOTTOM2': 20, 'RUN_TOP': 5, 'RUN_BOTTOM': 5
    },
    'peak_hours': [12, 18, 20, 21],
    'popular_pick_rate': 0.70,
    'favorite_pick_rate': 0.80,
}

LOG_COLUMNS = [
    'bot_id', 'behavior', 'hour', 'bet_type', 'number', 'amount',
    'status', 'tier', 'applied_payout', 'usage_percent', 'commission'
]


def _weighted_choice(rng, weights):
    keys = list(weights)
    p = np.array([weights[k] for k in keys], dtype=float)
    return keys[rng.choice(len(keys), p=p / p.sum())]


def _random_number(rng, bet_type):
    digits = DIGIT_LENGTHS[bet_type]
    return str(int(rng.integers(0, 10 ** digits))).zfill(digits)


class BotSimulation:
    """
    Reproducible bot traffic against one round.

    The same seed and config always produce the same bets, so two payout
    tables can be compared on identical traffic.
    """

    def __init__(self, table, config=None, capital=INITIAL_CAPITAL, seed=42):
        self.table = table
        self.config = dict(DEFAULT_SIMULATION_CONFIG, **(config or {}))
        self.capital = capital
        self.rng = np.random.default_rng(seed)
        self.store = InMemoryExposureStore()
        self.round_id = 'simulation'
        self.store.open_pool(self.round_id, capital)
        self.bots = [self._make_bot(i) for i in range(1, self.config['n_bots'] + 1)]

    def _make_bot(self, bot_id):
        rng = self.rng
        behavior = _weighted_choice(rng, self.config['behavior_distribution'])

        favorite_types = []
        for _ in range(int(rng.integers(1, 4))):
            bet_type = _weighted_choice(rng, self.config['bet_type_distribution'])
            if bet_type not in favorite_types:
                favorite_types.append(bet_type)

        favorites = {}
        for bet_type in favorite_types:
            popular = POPULAR_NUMBERS[DIGIT_LENGTHS[bet_type]]
            numbers = set()
            for _ in range(int(rng.integers(2, 6))):
                if rng.random() < self.config['popular_pick_rate']:
                    numbers.add(popular[int(rng.integers(0, len(popular)))])
                else:
                    numbers.add(_random_number(rng, bet_type))
            favorites[bet_type] = sorted(numbers)

        return {
            'bot_id': f"BOT_{bot_id:04d}",
            'behavior': behavior,
            'has_referrer': bool(rng.random() < self.config['referrer_rate']),
            'favorites': favorites,
            **BOT_BEHAVIORS[behavior],
        }

    def _make_bet(self, bot, hour):
        rng = self.rng
        bet_types = list(bot['favorites'])
        bet_type = bet_types[int(rng.integers(0, len(bet_types)))]

        numbers = bot['favorites'][bet_type]
        if rng.random() < self.config['favorite_pick_rate']:
            number = numbers[int(rng.integers(0, len(numbers)))]
        else:
            number = _random_number(rng, bet_type)

        amount = rng.uniform(bot['min_amount'], bot['max_amount'])
        if hour in self.config['peak_hours']:
            amount *= rng.uniform(1.2, 1.5)
        amount = round(amount / 10) * 10
        amount = max(bot['min_amount'], min(bot['max_amount'], amount))

        return {
            'bet_type': bet_type,
            'number': number,
            'amount': float(amount),
            'has_referrer': bot['has_referrer'],
        }

    def run(self, n_bets=1000):
        """
        Fire n_bets bot bets, spread over a simulated day.

        Returns:
            Tuple of (stats dict, pandas DataFrame bet log)
        """
        weights = np.array([bot['bets_per_day'] for bot in self.bots], dtype=float)
        weights /= weights.sum()

        log = []
        for i in range(n_bets):
            hour = int(i * 24 / n_bets)
            bot = self.bots[int(self.rng.choice(len(self.bots), p=weights))]
            request = self._make_bet(bot, hour)
            result = place_bet(self.store, self.round_id, request, self.table)
            log.append({
                'bot_id': bot['bot_id'],
                'behavior': bot['behavior'],
                'hour': hour,
                'bet_type': request['bet_type'],
                'number': request['number'],
                'amount': request['amount'],
                'status': result['status'],
                'tier': result['tier'],
                'applied_payout': result['applied_payout'],
                'usage_percent': result['usage_percent'],
                'commission': result['commission'] if result['status'] != STATUS_REJECTED else 0.0,
            })

        bet_log = pd.DataFrame(log, columns=LOG_COLUMNS)
        stats = self.summarize(bet_log)
        logger.info(
            f"Simulated {n_bets} bets: {stats['accepted_bets']} accepted, "
            f"{stats['warning_bets']} at reduced payout, {stats['rejected_bets']} rejected"
        )
        return stats, bet_log

    def summarize(self, bet_log):
        pool = self.store.get_pool(self.round_id)
        snapshot = risk_snapshot(self.store, self.round_id, self.table, limit=None)
        placed = bet_log[bet_log['status'] != STATUS_REJECTED]
        top = snapshot.iloc[0] if not snapshot.empty else None

        return {
            'total_bets': len(bet_log),
            'accepted_bets': len(placed),
            'warning_bets': int((bet_log['status'] == STATUS_WARNING).sum()),
            'rejected_bets': len(bet_log) - len(placed),
            'total_volume': float(placed['amount'].sum()),
            'total_commission': pool['total_commission'],
            'average_bet_size': float(placed['amount'].mean()) if len(placed) else 0.0,
            'total_pot': pool['capital'] + pool['total_sales'],
            'numbers_at_risk': int((snapshot['usage_percent'] > WARNING_ZONE_MAX * 100).sum()),
            'highest_usage_percent': float(top['usage_percent']) if top is not None else 0.0,
            'highest_usage_number': f"{top['bet_type']} {top['number']}" if top is not None else '-',
        }
