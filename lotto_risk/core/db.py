"""
Database layer using SQLAlchemy for the round ledger
"""
from sqlalchemy import (
    create_engine, Column, Integer, String, Float, Boolean, Text, ForeignKey,
    UniqueConstraint
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool
from lotto_risk.config import DB_URL, INITIAL_CAPITAL, ROUND_WAITING, BET_PENDING, logger

Base = declarative_base()


class LotteryRound(Base):
    __tablename__ = 'lottery_rounds'

    round_id = Column(Integer, primary_key=True, autoincrement=True)
    round_number = Column(String, unique=True, nullable=False)
    lottery_type = Column(String, nullable=False)
    draw_date = Column(String, nullable=False)
    open_time = Column(String, nullable=False)
    close_time = Column(String, nullable=False)
    status = Column(String, nullable=False, default=ROUND_WAITING)

    # pool state
    capital = Column(Float, nullable=False, default=INITIAL_CAPITAL)
    total_sales = Column(Float, nullable=False, default=0.0)
    net_sales = Column(Float, nullable=False, default=0.0)
    total_commission = Column(Float, nullable=False, default=0.0)
    total_bets = Column(Integer, nullable=False, default=0)

    results = Column(Text)  # JSON
    confirmed_by = Column(Text)  # JSON
    announced_at = Column(String)
    total_payout = Column(Float)
    settled_at = Column(String)

    exposures = relationship("NumberExposure", back_populates="lottery_round")

    def pool(self):
        return {
            'capital': self.capital,
            'total_sales': self.total_sales,
            'net_sales': self.net_sales,
            'total_commission': self.total_commission,
            'total_bets': self.total_bets,
        }


class NumberExposure(Base):
    __tablename__ = 'number_exposures'
    __table_args__ = (
        UniqueConstraint('round_id', 'bet_type', 'number', name='uq_exposure_key'),
    )

    exposure_id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey('lottery_rounds.round_id'), nullable=False)
    bet_type = Column(String, nullable=False)
    number = Column(String, nullable=False)
    cumulative_amount = Column(Float, nullable=False, default=0.0)
    bet_count = Column(Integer, nullable=False, default=0)
    is_blocked = Column(Boolean, nullable=False, default=False)
    manual_limit = Column(Float)
    version = Column(Integer, nullable=False, default=0)  # bumped on every accepted bet and admin change

    lottery_round = relationship("LotteryRound", back_populates="exposures")


class PlacedBet(Base):
    __tablename__ = 'placed_bets'

    bet_id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey('lottery_rounds.round_id'), nullable=False)
    bet_type = Column(String, nullable=False)
    number = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    net_amount = Column(Float, nullable=False)
    commission = Column(Float, nullable=False)
    applied_payout = Column(Float, nullable=False)
    potential_win = Column(Float, nullable=False)
    tier = Column(String, nullable=False)
    placed_at = Column(String, nullable=False)
    status = Column(String, nullable=False, default=BET_PENDING)
    win_amount = Column(Float)
    cancel_reason = Column(Text)


def make_session_factory(url):
    """Create engine + tables for a database URL and return a session factory"""
    if url in ('sqlite://', 'sqlite:///:memory:'):
        # one shared connection so every session sees the same in-memory database
        db_engine = create_engine(
            url, echo=False,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )
    else:
        db_engine = create_engine(url, echo=False)
    Base.metadata.create_all(db_engine)
    return sessionmaker(bind=db_engine)


# Database engine and session
engine = create_engine(DB_URL, echo=False)
SessionLocal = sessionmaker(bind=engine)


def init_db():
    """Initialize database tables"""
    try:
        Base.metadata.create_all(engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_session():
    """Get database session"""
    return SessionLocal()
