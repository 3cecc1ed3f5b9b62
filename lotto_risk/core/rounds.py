"""
Round lifecycle: WAITING -> OPEN -> CLOSED -> ANNOUNCED -> SETTLED.

Exposure is scoped to a round; announcing the result clears it.
"""
import json
from datetime import datetime
from dateutil import parser as date_parser
from sqlalchemy.exc import IntegrityError
from lotto_risk.config import (
    INITIAL_CAPITAL, REQUIRED_CONFIRMATIONS,
    ROUND_WAITING, ROUND_OPEN, ROUND_CLOSED, ROUND_ANNOUNCED, ROUND_SETTLED,
    TOP3, TOD3, TOP2, BOTTOM2, RUN_TOP, RUN_BOTTOM, BET_PENDING, BET_WIN, BET_LOSE, logger
)
from lotto_risk.core.db import SessionLocal, LotteryRound, PlacedBet
from lotto_risk.core.ledger import SqlExposureStore, NotFoundError

# result slot -> number of digits
RESULT_SLOTS = {
    'top3': 3,
    'top2': 2,
    'bottom2': 2,
}
OPTIONAL_RESULT_SLOTS = {
    'tod3': 3,
    'run': 1,
}

ALLOWED_TRANSITIONS = {
    ROUND_OPEN: [ROUND_WAITING, ROUND_CLOSED],
    ROUND_CLOSED: [ROUND_OPEN],
}


def _to_datetime(value):
    if isinstance(value, datetime):
        return value
    return date_parser.parse(value)


def _align_timezone(value, reference):
    """Make value comparable with reference; naive times are taken as local time"""
    if value.tzinfo is None and reference.tzinfo is not None:
        return value.replace(tzinfo=reference.tzinfo)
    if value.tzinfo is not None and reference.tzinfo is None:
        return value.astimezone().replace(tzinfo=None)
    return value


def is_winning_bet(bet_type, number, results):
    """
    Match one bet against announced results.

    TOD3 wins on any ordering of the three digits (the tod3 slot when it was
    announced, top3 otherwise). Run bets win when the digit appears anywhere
    in the top three or bottom two.
    """
    if bet_type == TOP3:
        return number == results['top3']
    if bet_type == TOD3:
        return sorted(number) == sorted(results.get('tod3') or results['top3'])
    if bet_type == TOP2:
        return number == results['top2']
    if bet_type == BOTTOM2:
        return number == results['bottom2']
    if bet_type == RUN_TOP:
        return number in results['top3']
    if bet_type == RUN_BOTTOM:
        return number in results['bottom2']
    return False


def _check_digits(slot, value, length):
    if not isinstance(value, str) or not value.isdigit() or len(value) != length:
        raise ValueError(f"Result '{slot}' must be {length} digits, got {value!r}")


class RoundManager:
    """Create, open, close, announce and settle lottery rounds"""

    def __init__(self, session_factory=None, store=None):
        self.session_factory = session_factory or SessionLocal
        self.store = store or SqlExposureStore(self.session_factory)

    @staticmethod
    def _as_dict(lottery_round):
        return {
            'round_id': lottery_round.round_id,
            'round_number': lottery_round.round_number,
            'lottery_type': lottery_round.lottery_type,
            'draw_date': lottery_round.draw_date,
            'open_time': lottery_round.open_time,
            'close_time': lottery_round.close_time,
            'status': lottery_round.status,
            'pool': lottery_round.pool(),
            'results': json.loads(lottery_round.results) if lottery_round.results else None,
            'confirmed_by': json.loads(lottery_round.confirmed_by) if lottery_round.confirmed_by else [],
            'announced_at': lottery_round.announced_at,
            'total_payout': lottery_round.total_payout,
            'settled_at': lottery_round.settled_at,
        }

    def create_round(self, lottery_type, draw_date, open_time, close_time,
                     capital=INITIAL_CAPITAL):
        draw = _to_datetime(draw_date)
        opens = _to_datetime(open_time)
        closes = _to_datetime(close_time)
        if closes <= opens:
            raise ValueError("close_time must be after open_time")

        session = self.session_factory()
        try:
            lottery_round = LotteryRound(
                round_number=f"{lottery_type}-{draw.strftime('%Y%m%d')}",
                lottery_type=lottery_type,
                draw_date=draw.date().isoformat(),
                open_time=opens.isoformat(),
                close_time=closes.isoformat(),
                status=ROUND_WAITING,
                capital=capital,
                total_sales=0.0,
                net_sales=0.0,
                total_commission=0.0,
                total_bets=0
            )
            session.add(lottery_round)
            session.commit()
            logger.info(f"Created round {lottery_round.round_number} with capital {capital:,.0f}")
            return self._as_dict(lottery_round)
        except IntegrityError as e:
            session.rollback()
            raise ValueError(
                f"Round {lottery_type}-{draw.strftime('%Y%m%d')} already exists"
            ) from e
        finally:
            session.close()

    def get_round(self, round_id):
        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            return self._as_dict(lottery_round)
        finally:
            session.close()

    def list_rounds(self, status=None):
        session = self.session_factory()
        try:
            query = session.query(LotteryRound)
            if status:
                query = query.filter_by(status=status)
            return [self._as_dict(r) for r in query.order_by(LotteryRound.draw_date.desc()).all()]
        finally:
            session.close()

    def list_bets(self, round_id, status=None):
        session = self.session_factory()
        try:
            query = session.query(PlacedBet).filter_by(round_id=round_id)
            if status:
                query = query.filter_by(status=status)
            return [SqlExposureStore.bet_as_dict(b) for b in query.order_by(PlacedBet.bet_id).all()]
        finally:
            session.close()

    def _transition(self, round_id, new_status):
        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            if lottery_round.status not in ALLOWED_TRANSITIONS[new_status]:
                raise ValueError(
                    f"Round {lottery_round.round_number} is {lottery_round.status}, "
                    f"cannot move to {new_status}"
                )
            lottery_round.status = new_status
            session.commit()
            logger.info(f"Round {lottery_round.round_number} is now {new_status}")
            return self._as_dict(lottery_round)
        except ValueError:
            session.rollback()
            raise
        finally:
            session.close()

    def open_round(self, round_id):
        return self._transition(round_id, ROUND_OPEN)

    def close_round(self, round_id):
        return self._transition(round_id, ROUND_CLOSED)

    def check_accepting_bets(self, round_id, now=None):
        """Raise ValueError unless the round is open and before its close time"""
        lottery_round = self.get_round(round_id)
        if lottery_round['status'] != ROUND_OPEN:
            raise ValueError(f"Round {lottery_round['round_number']} is not open for betting")

        close_time = _to_datetime(lottery_round['close_time'])
        now = _align_timezone(now or datetime.now(close_time.tzinfo), close_time)
        if now > close_time:
            raise ValueError(f"Betting for round {lottery_round['round_number']} has closed")
        return lottery_round

    def announce_result(self, round_id, results, confirmed_by):
        """
        Publish the winning digits for a round.

        Args:
            round_id: round to announce
            results: dict with top3, top2, bottom2 and optionally tod3, run
            confirmed_by: identities of the admins confirming the result;
                          at least REQUIRED_CONFIRMATIONS distinct ones

        Returns:
            Round dict plus the number of exposure rows cleared
        """
        admins = sorted(set(confirmed_by or []))
        if len(admins) < REQUIRED_CONFIRMATIONS:
            raise ValueError(f"Requires {REQUIRED_CONFIRMATIONS} admin confirmations, got {len(admins)}")

        for slot, length in RESULT_SLOTS.items():
            _check_digits(slot, results.get(slot), length)
        for slot, length in OPTIONAL_RESULT_SLOTS.items():
            if results.get(slot) is not None:
                _check_digits(slot, results[slot], length)

        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            if lottery_round.status in (ROUND_ANNOUNCED, ROUND_SETTLED):
                raise ValueError(
                    f"Round {lottery_round.round_number} is already {lottery_round.status.lower()}"
                )

            lottery_round.results = json.dumps(
                {k: v for k, v in results.items() if v is not None}
            )
            lottery_round.confirmed_by = json.dumps(admins)
            lottery_round.status = ROUND_ANNOUNCED
            lottery_round.announced_at = datetime.now().isoformat()
            session.commit()
            announced = self._as_dict(lottery_round)
        except ValueError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Error announcing round {round_id}: {e}")
            raise
        finally:
            session.close()

        cleared = self.store.reset_round(round_id)
        logger.info(
            f"Announced round {announced['round_number']} "
            f"(confirmed by {', '.join(admins)}), cleared {cleared} exposure rows"
        )
        announced['exposure_cleared'] = cleared
        return announced

    def settle_round(self, round_id):
        """
        Pay out an announced round.

        Every pending bet is marked WIN or LOSE; a winning bet pays
        amount * the payout it was accepted at.

        Returns:
            Round dict plus counts of settled and winning bets
        """
        session = self.session_factory()
        try:
            lottery_round = session.query(LotteryRound).filter_by(round_id=round_id).first()
            if lottery_round is None:
                raise NotFoundError(f"Round {round_id} not found")
            if lottery_round.status != ROUND_ANNOUNCED:
                raise ValueError(
                    f"Round {lottery_round.round_number} is {lottery_round.status}, "
                    f"it must be announced before settling"
                )

            results = json.loads(lottery_round.results)
            bets = session.query(PlacedBet).filter_by(round_id=round_id, status=BET_PENDING).all()

            winners = 0
            total_payout = 0.0
            for bet in bets:
                if is_winning_bet(bet.bet_type, bet.number, results):
                    bet.status = BET_WIN
                    bet.win_amount = bet.amount * bet.applied_payout
                    winners += 1
                    total_payout += bet.win_amount
                else:
                    bet.status = BET_LOSE
                    bet.win_amount = 0.0

            lottery_round.total_payout = total_payout
            lottery_round.settled_at = datetime.now().isoformat()
            lottery_round.status = ROUND_SETTLED
            session.commit()
            settled = self._as_dict(lottery_round)
        except ValueError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Error settling round {round_id}: {e}")
            raise
        finally:
            session.close()

        logger.info(
            f"Settled round {settled['round_number']}: {winners}/{len(bets)} winning bets, "
            f"payout {total_payout:,.2f}"
        )
        settled['settled_bets'] = len(bets)
        settled['winning_bets'] = winners
        return settled
