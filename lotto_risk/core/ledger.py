"""
Exposure ledger: per-number cumulative stakes and per-round pool totals.

The risk engine never touches storage. place_bet() reads a snapshot,
evaluates it, and commits through a compare-and-swap on the number's
version; a concurrent change makes the commit fail and the bet is
re-evaluated against fresh figures. cancel_bet() takes a stake back out
the same way.
"""
import threading
from datetime import datetime
import pandas as pd
from sqlalchemy.exc import IntegrityError
from lotto_risk.config import (
    INITIAL_CAPITAL, MAX_COMMIT_RETRIES, RISK_SNAPSHOT_LIMIT,
    AFFILIATE_COMMISSION_RATE, STATUS_REJECTED, ROUND_ANNOUNCED, ROUND_SETTLED,
    BET_PENDING, BET_CANCELLED, logger
)
from lotto_risk.core.db import SessionLocal, LotteryRound, NumberExposure, PlacedBet
from lotto_risk.core.payout_table import get_bet_type_config
from lotto_risk.core.risk_engine import (
    evaluate, blocked_result, no_limit_result, calculate_limit, classify_usage
)


class ExposureConflictError(RuntimeError):
    """A bet could not be committed because its number kept changing underneath it"""


class NotFoundError(ValueError):
    """The round or bet does not exist"""


def _empty_exposure():
    return {
        'cumulative_amount': 0.0,
        'bet_count': 0,
        'is_blocked': False,
        'manual_limit': None,
        'version': 0,
    }


class ExposureStore:
    """
    Storage interface used by place_bet() and cancel_bet().

    get_exposure() returns the defaults of _empty_exposure() for a number
    nobody has bet on yet. increment_if_unchanged() must only apply the
    bet when the stored version still equals expected_version, and returns
    the new bet id (falsy on conflict). cancel_if_unchanged() is the same
    check in reverse and also requires the bet to be pending.
    """

    def get_pool(self, round_id):
        raise NotImplementedError

    def get_exposure(self, round_id, bet_type, number):
        raise NotImplementedError

    def increment_if_unchanged(self, round_id, result, expected_version):
        raise NotImplementedError

    def get_bet(self, bet_id):
        raise NotImplementedError

    def cancel_if_unchanged(self, bet, expected_version, reason=None):
        raise NotImplementedError

    def set_blocked(self, round_id, bet_type, number, blocked):
        raise NotImplementedError

    def set_manual_limit(self, round_id, bet_type, number, limit):
        raise NotImplementedError

    def reset_round(self, round_id):
        raise NotImplementedError

    def list_exposures(self, round_id, bet_type=None):
        raise NotImplementedError


class InMemoryExposureStore(ExposureStore):
    """Process-local store, used by the simulator and tests"""

    def __init__(self):
        self._lock = threading.Lock()
        self._pools = {}
        self._exposures = {}
        self.bets = []

    def open_pool(self, round_id, capital=INITIAL_CAPITAL):
        with self._lock:
            self._pools[round_id] = {
                'capital': capital,
                'total_sales': 0.0,
                'net_sales': 0.0,
                'total_commission': 0.0,
                'total_bets': 0,
            }

    def get_pool(self, round_id):
        with self._lock:
            if round_id not in self._pools:
                raise NotFoundError(f"Round {round_id} not found")
            return dict(self._pools[round_id])

    def get_exposure(self, round_id, bet_type, number):
        with self._lock:
            return dict(self._exposures.get((round_id, bet_type, number), _empty_exposure()))

    def increment_if_unchanged(self, round_id, result, expected_version):
        key = (round_id, result['bet_type'], result['number'])
        with self._lock:
            row = self._exposures.setdefault(key, _empty_exposure())
            if row['version'] != expected_version:
                return False

            row['cumulative_amount'] += result['amount']
            row['bet_count'] += 1
            row['version'] += 1

            pool = self._pools[round_id]
            pool['total_sales'] += result['amount']
            pool['net_sales'] += result['net_amount']
            pool['total_commission'] += result['commission']
            pool['total_bets'] += 1

            bet_id = len(self.bets) + 1
            self.bets.append(dict(result, round_id=round_id, bet_id=bet_id, status=BET_PENDING))
            return bet_id

    def get_bet(self, bet_id):
        with self._lock:
            if not 1 <= bet_id <= len(self.bets):
                raise NotFoundError(f"Bet {bet_id} not found")
            return dict(self.bets[bet_id - 1])

    def cancel_if_unchanged(self, bet, expected_version, reason=None):
        key = (bet['round_id'], bet['bet_type'], bet['number'])
        with self._lock:
            row = self._exposures.get(key)
            stored = self.bets[bet['bet_id'] - 1]
            if row is None or row['version'] != expected_version or stored['status'] != BET_PENDING:
                return False

            row['cumulative_amount'] -= stored['amount']
            row['bet_count'] -= 1
            row['version'] += 1

            pool = self._pools[bet['round_id']]
            pool['total_sales'] -= stored['amount']
            pool['net_sales'] -= stored['net_amount']
            pool['total_commission'] -= stored['commission']
            pool['total_bets'] -= 1

            stored['status'] = BET_CANCELLED
            stored['cancel_reason'] = reason
            return True

    def _update(self, key, **values):
        with self._lock:
            if key[0] not in self._pools:
                raise NotFoundError(f"Round {key[0]} not found")
            row = self._exposures.setdefault(key, _empty_exposure())
            row.update(values)
            row['version'] += 1

    def set_blocked(self, round_id, bet_type, number, blocked):
        self._update((round_id, bet_type, number), is_blocked=blocked)

    def set_manual_limit(self, round_id, bet_type, number, limit):
        self._update((round_id, bet_type, number), manual_limit=limit)

    def reset_round(self, round_id):
        with self._lock:
            keys = [k for k in self._exposures if k[0] == round_id]
            for key in keys:
                del self._exposures[key]
            return len(keys)

    def list_exposures(self, round_id, bet_type=None):
        with self._lock:
            return [
                dict(row, bet_type=bt, number=number)
                for (rid, bt, number), row in self._exposures.items()
                if rid == round_id and (bet_type is None or bt == bet_type)
            ]


class SqlExposureStore(ExposureStore):
    """Ledger backed by the lottery_rounds / number_exposures / placed_bets tables"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    def get_pool(self, round_id):
        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            return lottery_round.pool()
        finally:
            session.close()

    @staticmethod
    def _as_dict(row):
        return {
            'bet_type': row.bet_type,
            'number': row.number,
            'cumulative_amount': row.cumulative_amount,
            'bet_count': row.bet_count,
            'is_blocked': row.is_blocked,
            'manual_limit': row.manual_limit,
            'version': row.version,
        }

    @staticmethod
    def bet_as_dict(bet):
        return {
            'bet_id': bet.bet_id,
            'round_id': bet.round_id,
            'bet_type': bet.bet_type,
            'number': bet.number,
            'amount': bet.amount,
            'net_amount': bet.net_amount,
            'commission': bet.commission,
            'applied_payout': bet.applied_payout,
            'potential_win': bet.potential_win,
            'tier': bet.tier,
            'placed_at': bet.placed_at,
            'status': bet.status,
            'win_amount': bet.win_amount,
            'cancel_reason': bet.cancel_reason,
        }

    def get_exposure(self, round_id, bet_type, number):
        session = self.session_factory()
        try:
            row = session.query(NumberExposure).filter_by(
                round_id=round_id, bet_type=bet_type, number=number
            ).first()
            if row is None:
                return _empty_exposure()
            exposure = self._as_dict(row)
            del exposure['bet_type'], exposure['number']
            return exposure
        finally:
            session.close()

    def _get_or_create(self, session, round_id, bet_type, number):
        row = session.query(NumberExposure).filter_by(
            round_id=round_id, bet_type=bet_type, number=number
        ).first()
        if row is None:
            row = NumberExposure(
                round_id=round_id, bet_type=bet_type, number=number,
                cumulative_amount=0.0, bet_count=0, is_blocked=False, version=0
            )
            session.add(row)
            session.flush()
        return row

    def _adjust_round(self, session, round_id, result, sign):
        session.query(LotteryRound).filter_by(round_id=round_id).update({
            LotteryRound.total_sales: LotteryRound.total_sales + sign * result['amount'],
            LotteryRound.net_sales: LotteryRound.net_sales + sign * result['net_amount'],
            LotteryRound.total_commission: LotteryRound.total_commission + sign * result['commission'],
            LotteryRound.total_bets: LotteryRound.total_bets + sign,
        }, synchronize_session=False)

    def increment_if_unchanged(self, round_id, result, expected_version):
        session = self.session_factory()
        key = {'round_id': round_id, 'bet_type': result['bet_type'], 'number': result['number']}
        try:
            if expected_version == 0:
                self._get_or_create(session, **key)

            updated = session.query(NumberExposure).filter_by(
                version=expected_version, **key
            ).update({
                NumberExposure.cumulative_amount: NumberExposure.cumulative_amount + result['amount'],
                NumberExposure.bet_count: NumberExposure.bet_count + 1,
                NumberExposure.version: NumberExposure.version + 1,
            }, synchronize_session=False)

            if updated == 0:
                session.rollback()
                return False

            self._adjust_round(session, round_id, result, 1)

            placed = PlacedBet(
                round_id=round_id,
                bet_type=result['bet_type'],
                number=result['number'],
                amount=result['amount'],
                net_amount=result['net_amount'],
                commission=result['commission'],
                applied_payout=result['applied_payout'],
                potential_win=result['potential_win'],
                tier=result['tier'],
                placed_at=datetime.now().isoformat(),
                status=BET_PENDING
            )
            session.add(placed)
            session.flush()
            bet_id = placed.bet_id
            session.commit()
            return bet_id
        except IntegrityError:
            # another writer created the row first
            session.rollback()
            return False
        except Exception as e:
            session.rollback()
            logger.error(f"Error committing bet on {key}: {e}")
            raise
        finally:
            session.close()

    def get_bet(self, bet_id):
        session = self.session_factory()
        try:
            bet = session.query(PlacedBet).filter_by(bet_id=bet_id).first()
            if bet is None:
                raise NotFoundError(f"Bet {bet_id} not found")
            return self.bet_as_dict(bet)
        finally:
            session.close()

    def cancel_if_unchanged(self, bet, expected_version, reason=None):
        session = self.session_factory()
        try:
            updated = session.query(NumberExposure).filter_by(
                round_id=bet['round_id'], bet_type=bet['bet_type'],
                number=bet['number'], version=expected_version
            ).update({
                NumberExposure.cumulative_amount: NumberExposure.cumulative_amount - bet['amount'],
                NumberExposure.bet_count: NumberExposure.bet_count - 1,
                NumberExposure.version: NumberExposure.version + 1,
            }, synchronize_session=False)

            cancelled = session.query(PlacedBet).filter_by(
                bet_id=bet['bet_id'], status=BET_PENDING
            ).update({
                PlacedBet.status: BET_CANCELLED,
                PlacedBet.cancel_reason: reason,
            }, synchronize_session=False)

            if updated == 0 or cancelled == 0:
                session.rollback()
                return False

            self._adjust_round(session, bet['round_id'], bet, -1)
            session.commit()
            return True
        except Exception as e:
            session.rollback()
            logger.error(f"Error cancelling bet {bet['bet_id']}: {e}")
            raise
        finally:
            session.close()

    def _update(self, round_id, bet_type, number, **values):
        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            if lottery_round.status in (ROUND_ANNOUNCED, ROUND_SETTLED):
                raise ValueError(
                    f"Round {lottery_round.round_number} is already {lottery_round.status.lower()}"
                )

            row = self._get_or_create(session, round_id, bet_type, number)
            for field, value in values.items():
                setattr(row, field, value)
            row.version = row.version + 1
            session.commit()
        except ValueError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating exposure {bet_type}/{number}: {e}")
            raise
        finally:
            session.close()

    def set_blocked(self, round_id, bet_type, number, blocked):
        self._update(round_id, bet_type, number, is_blocked=blocked)

    def set_manual_limit(self, round_id, bet_type, number, limit):
        self._update(round_id, bet_type, number, manual_limit=limit)

    def reset_round(self, round_id):
        session = self.session_factory()
        try:
            removed = session.query(NumberExposure).filter_by(round_id=round_id).delete()
            session.commit()
            return removed
        except Exception as e:
            session.rollback()
            logger.error(f"Error resetting exposure for round {round_id}: {e}")
            raise
        finally:
            session.close()

    def list_exposures(self, round_id, bet_type=None):
        session = self.session_factory()
        try:
            query = session.query(NumberExposure).filter_by(round_id=round_id)
            if bet_type is not None:
                query = query.filter_by(bet_type=bet_type)
            return [self._as_dict(row) for row in query.all()]
        finally:
            session.close()


def place_bet(store, round_id, request, table, max_retries=MAX_COMMIT_RETRIES,
              commission_rate=AFFILIATE_COMMISSION_RATE):
    """
    Evaluate a wager and, unless rejected, record it in the ledger.

    A number with no limit (manual limit of 0, or a pool too small to
    cover a single unit at the base payout) accepts nothing.

    Args:
        store: ExposureStore holding the round
        round_id: round the bet belongs to
        request: dict with bet_type, number, amount, has_referrer
        table: validated payout table
        max_retries: commit attempts before giving up

    Returns:
        Evaluation result dict (see risk_engine.evaluate), with bet_id
        set when the bet was recorded

    Raises:
        ExposureConflictError: every commit attempt lost a race
    """
    config = get_bet_type_config(table, request['bet_type'])

    for attempt in range(1, max_retries + 1):
        pool = store.get_pool(round_id)
        exposure = store.get_exposure(round_id, request['bet_type'], request['number'])

        result = evaluate(
            request, pool, exposure['cumulative_amount'], config,
            manual_limit=exposure['manual_limit'], commission_rate=commission_rate
        )

        if exposure['is_blocked']:
            result = blocked_result(result)
            logger.info(f"Rejected {request['bet_type']} {request['number']}: number closed")
            return result

        if result['current_limit'] <= 0:
            result = no_limit_result(result)

        if result['status'] == STATUS_REJECTED:
            logger.info(
                f"Rejected {request['bet_type']} {request['number']} "
                f"amount={request['amount']}: {result['reason']}"
            )
            return result

        bet_id = store.increment_if_unchanged(round_id, result, exposure['version'])
        if bet_id:
            logger.debug(
                f"Accepted {request['bet_type']} {request['number']} "
                f"amount={request['amount']} payout={result['applied_payout']}x "
                f"usage={result['usage_percent']:.1f}%"
            )
            return dict(result, bet_id=bet_id)

        logger.warning(
            f"Exposure changed for {request['bet_type']} {request['number']} "
            f"(attempt {attempt}/{max_retries}), re-evaluating"
        )

    raise ExposureConflictError(
        f"Could not place bet on {request['bet_type']} {request['number']} "
        f"after {max_retries} attempts, try again"
    )


def cancel_bet(store, bet_id, reason=None, max_retries=MAX_COMMIT_RETRIES):
    """
    Take a pending bet back out of its number's exposure and the round totals.

    Returns:
        The bet dict with status CANCELLED

    Raises:
        NotFoundError: unknown bet
        ValueError: the bet is no longer pending
        ExposureConflictError: every attempt lost a race
    """
    for attempt in range(1, max_retries + 1):
        bet = store.get_bet(bet_id)
        if bet['status'] != BET_PENDING:
            raise ValueError(f"Bet {bet_id} is {bet['status']}, only pending bets can be cancelled")

        exposure = store.get_exposure(bet['round_id'], bet['bet_type'], bet['number'])
        if store.cancel_if_unchanged(bet, exposure['version'], reason):
            logger.info(f"Cancelled bet {bet_id} ({bet['bet_type']} {bet['number']} amount={bet['amount']})")
            return dict(bet, status=BET_CANCELLED, cancel_reason=reason)

        logger.warning(f"Exposure changed while cancelling bet {bet_id} (attempt {attempt}/{max_retries})")

    raise ExposureConflictError(f"Could not cancel bet {bet_id} after {max_retries} attempts, try again")


SNAPSHOT_COLUMNS = [
    'bet_type', 'number', 'cumulative_amount', 'bet_count', 'max_limit',
    'usage_percent', 'tier', 'is_blocked', 'manual_limit'
]


def risk_snapshot(store, round_id, table, bet_type=None, limit=RISK_SNAPSHOT_LIMIT):
    """
    Live exposure view for operators: highest usage first.

    Returns:
        pandas DataFrame with SNAPSHOT_COLUMNS
    """
    pool = store.get_pool(round_id)
    total_pot = pool['capital'] + pool['total_sales']

    rows = []
    for exposure in store.list_exposures(round_id, bet_type):
        config = get_bet_type_config(table, exposure['bet_type'])
        max_limit = calculate_limit(total_pot, config, exposure['manual_limit'])
        usage = exposure['cumulative_amount'] / max_limit if max_limit > 0 else 0
        rows.append({
            'bet_type': exposure['bet_type'],
            'number': exposure['number'],
            'cumulative_amount': exposure['cumulative_amount'],
            'bet_count': exposure['bet_count'],
            'max_limit': max_limit,
            'usage_percent': usage * 100,
            'tier': classify_usage(usage)[1],
            'is_blocked': exposure['is_blocked'],
            'manual_limit': exposure['manual_limit'],
        })

    df = pd.DataFrame(rows, columns=SNAPSHOT_COLUMNS)
    if df.empty:
        return df

    df = df.sort_values(['usage_percent', 'number'], ascending=[False, True])
    if limit is not None:
        df = df.head(limit)
    return df.reset_index(drop=True)
