"""
FastAPI backend: bet placement, round administration and risk monitoring
"""
from typing import List, Optional
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from lotto_risk.config import BET_TYPE_NAMES, INITIAL_CAPITAL, logger
from lotto_risk.core.db import init_db
from lotto_risk.core.ledger import (
    SqlExposureStore, ExposureConflictError, NotFoundError, risk_snapshot
)
from lotto_risk.core.payout_table import (
    load_payout_table, get_bet_type_config, is_valid_bet_type, risk_zones
)
from lotto_risk.core.risk_engine import evaluate
from lotto_risk.core.rounds import RoundManager
from lotto_risk.core.tickets import submit_ticket, cancel_bets, validate_bet


class SimulationRequest(BaseModel):
    bet_type: str
    number: str
    amount: float
    has_referrer: bool = False
    capital: float = INITIAL_CAPITAL
    total_sales: float = 0.0
    current_exposure: float = 0.0


class RoundRequest(BaseModel):
    lottery_type: str
    draw_date: str
    open_time: str
    close_time: str
    capital: float = INITIAL_CAPITAL


class AnnounceRequest(BaseModel):
    top3: str
    top2: str
    bottom2: str
    tod3: Optional[str] = None
    run: Optional[str] = None
    confirmed_by: List[str] = []


class BetItem(BaseModel):
    bet_type: str
    number: str
    amount: float


class TicketRequest(BaseModel):
    round_id: int
    has_referrer: bool = False
    bets: List[BetItem]


class CancelRequest(BaseModel):
    bet_ids: List[int]
    reason: str


class NumberRequest(BaseModel):
    round_id: int
    bet_type: str
    number: str


class LimitRequest(NumberRequest):
    limit: Optional[float] = None


def _run(action, *args, **kwargs):
    """Call into the core, mapping its errors to HTTP status codes"""
    try:
        return action(*args, **kwargs)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ExposureConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


def create_app(session_factory=None, table=None):
    """
    Build the API.

    The payout table is loaded and validated here; a PayoutTableError
    stops the service from starting.
    """
    if session_factory is None:
        init_db()

    table = table or load_payout_table()
    store = SqlExposureStore(session_factory)
    rounds = RoundManager(session_factory, store)

    app = FastAPI(title="Lotto Risk Backend")

    def _check_number(bet_type, number):
        problem = validate_bet({'bet_type': bet_type, 'number': number, 'amount': 1})
        if problem:
            raise HTTPException(status_code=400, detail=problem)

    @app.get("/")
    def health_check():
        """Health check endpoint"""
        return {"status": "ok", "bet_types": BET_TYPE_NAMES}

    @app.post("/simulate")
    def simulate(body: SimulationRequest):
        """Stateless evaluation for the admin risk simulator"""
        problem = validate_bet(body.model_dump())
        if problem:
            raise HTTPException(status_code=400, detail=problem)
        request = {
            'bet_type': body.bet_type,
            'number': body.number,
            'amount': body.amount,
            'has_referrer': body.has_referrer,
        }
        pool = {'capital': body.capital, 'total_sales': body.total_sales}
        return evaluate(request, pool, body.current_exposure,
                        get_bet_type_config(table, body.bet_type))

    @app.get("/rounds")
    def list_rounds(status: Optional[str] = None):
        return rounds.list_rounds(status)

    @app.post("/rounds")
    def create_round(body: RoundRequest):
        return _run(rounds.create_round, body.lottery_type, body.draw_date,
                    body.open_time, body.close_time, capital=body.capital)

    @app.post("/rounds/{round_id}/open")
    def open_round(round_id: int):
        return _run(rounds.open_round, round_id)

    @app.post("/rounds/{round_id}/close")
    def close_round(round_id: int):
        return _run(rounds.close_round, round_id)

    @app.post("/rounds/{round_id}/announce")
    def announce_round(round_id: int, body: AnnounceRequest):
        results = body.model_dump()
        confirmed_by = results.pop('confirmed_by')
        return _run(rounds.announce_result, round_id, results, confirmed_by)

    @app.post("/rounds/{round_id}/settle")
    def settle_round(round_id: int):
        return _run(rounds.settle_round, round_id)

    @app.get("/rounds/{round_id}/bets")
    def round_bets(round_id: int, status: Optional[str] = None):
        _run(rounds.get_round, round_id)
        return rounds.list_bets(round_id, status)

    @app.post("/tickets")
    def place_ticket(body: TicketRequest):
        result = submit_ticket(
            store, rounds, body.round_id,
            [bet.model_dump() for bet in body.bets], body.has_referrer, table
        )
        retryable = [r for r in result['rejected_bets'] if r.get('retryable')]
        if retryable and not result['accepted_bets']:
            raise HTTPException(status_code=409, detail="Bets could not be placed, try again")
        return result

    @app.post("/tickets/cancel")
    def cancel_ticket(body: CancelRequest):
        return _run(cancel_bets, store, rounds, body.bet_ids, body.reason)

    @app.get("/risk/numbers")
    def risk_numbers(round_id: int, bet_type: Optional[str] = None):
        if bet_type is not None and not is_valid_bet_type(bet_type):
            raise HTTPException(status_code=400, detail=f"Unknown bet type {bet_type!r}")
        snapshot = _run(risk_snapshot, store, round_id, table, bet_type)
        # NaN is not valid JSON
        snapshot = snapshot.astype(object).where(snapshot.notna(), None)
        return snapshot.to_dict(orient='records')

    @app.post("/risk/close")
    def close_number(body: NumberRequest):
        _check_number(body.bet_type, body.number)
        _run(store.set_blocked, body.round_id, body.bet_type, body.number, True)
        logger.info(f"Closed {body.bet_type} {body.number} in round {body.round_id}")
        return {"success": True}

    @app.post("/risk/open")
    def open_number(body: NumberRequest):
        _check_number(body.bet_type, body.number)
        _run(store.set_blocked, body.round_id, body.bet_type, body.number, False)
        _run(store.set_manual_limit, body.round_id, body.bet_type, body.number, None)
        logger.info(f"Reopened {body.bet_type} {body.number} in round {body.round_id}")
        return {"success": True}

    @app.post("/risk/limit")
    def set_limit(body: LimitRequest):
        _check_number(body.bet_type, body.number)
        if body.limit is not None and body.limit < 0:
            raise HTTPException(status_code=400, detail="Limit cannot be negative")
        _run(store.set_manual_limit, body.round_id, body.bet_type, body.number, body.limit)
        logger.info(f"Manual limit {body.limit} on {body.bet_type} {body.number}")
        return {"success": True}

    @app.get("/risk/config")
    def risk_config():
        return {"payout_table": table, "zones": risk_zones()}

    return app
