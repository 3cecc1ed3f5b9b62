import os

# keep the module-level engine off the on-disk database
os.environ.setdefault("LOTTO_RISK_DB_URL", "sqlite://")

import pytest

from lotto_risk.core.db import make_session_factory
from lotto_risk.core.ledger import InMemoryExposureStore, SqlExposureStore
from lotto_risk.core.payout_table import load_payout_table
from lotto_risk.core.rounds import RoundManager


@pytest.fixture
def table():
    return load_payout_table()


@pytest.fixture
def memory_store():
    store = InMemoryExposureStore()
    store.open_pool('r1', 500_000)
    return store


@pytest.fixture
def session_factory():
    return make_session_factory('sqlite://')


@pytest.fixture
def sql_store(session_factory):
    return SqlExposureStore(session_factory)


@pytest.fixture
def rounds(session_factory, sql_store):
    return RoundManager(session_factory, sql_store)


@pytest.fixture
def open_round(rounds):
    created = rounds.create_round('GOV', '2026-11-01', '2026-10-20 08:00', '2026-11-01 15:00')
    return rounds.open_round(created['round_id'])
