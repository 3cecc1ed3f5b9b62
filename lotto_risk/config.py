"""
Configuration for the lottery risk & payout engine
"""
import os
import logging
from pathlib import Path

# ============================================================================
# ENVIRONMENT DETECTION
# ============================================================================
IS_CLOUD = os.getenv("LOTTO_RISK_ENV", "local").lower() == "cloud"

# ============================================================================
# PATHS
# ============================================================================
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("LOTTO_RISK_DATA_DIR", BASE_DIR / "data"))
DB_URL = os.getenv("LOTTO_RISK_DB_URL", f"sqlite:///{DATA_DIR / 'lotto_risk.db'}")
DATA_DIR.mkdir(parents=True, exist_ok=True)
PAYOUT_TABLE_PATH = os.getenv("LOTTO_RISK_PAYOUT_TABLE")

# ============================================================================
# POOL & COMMISSION
# ============================================================================
INITIAL_CAPITAL = 500_000
AFFILIATE_COMMISSION_RATE = 0.08

# ============================================================================
# BET TYPES
# ============================================================================
TOP3 = 'TOP3'
TOD3 = 'TOD3'
TOP2 = 'TOP2'
BOTTOM2 = 'BOTTOM2'
RUN_TOP = 'RUN_TOP'
RUN_BOTTOM = 'RUN_BOTTOM'

BET_TYPES = [TOP3, TOD3, TOP2, BOTTOM2, RUN_TOP, RUN_BOTTOM]

BET_TYPE_NAMES = {
    TOP3: '3 ตัวบน',
    TOD3: '3 ตัวโต๊ด',
    TOP2: '2 ตัวบน',
    BOTTOM2: '2 ตัวล่าง',
    RUN_TOP: 'วิ่งบน',
    RUN_BOTTOM: 'วิ่งล่าง',
}

DIGIT_LENGTHS = {
    TOP3: 3,
    TOD3: 3,
    TOP2: 2,
    BOTTOM2: 2,
    RUN_TOP: 1,
    RUN_BOTTOM: 1,
}

# ============================================================================
# PAYOUT TABLE
# allocation: share of the pool reserved for the bet type (all must sum to 1)
# base_payout > tier1_payout > tier2_payout > 0
# ============================================================================
PAYOUT_FIELDS = ['allocation', 'base_payout', 'tier1_payout', 'tier2_payout']

DEFAULT_PAYOUT_TABLE = {
    TOP3: {'allocation': 0.30, 'base_payout': 800, 'tier1_payout': 650, 'tier2_payout': 500},
    TOD3: {'allocation': 0.20, 'base_payout': 150, 'tier1_payout': 120, 'tier2_payout': 90},
    TOP2: {'allocation': 0.15, 'base_payout': 90, 'tier1_payout': 75, 'tier2_payout': 60},
    BOTTOM2: {'allocation': 0.15, 'base_payout': 90, 'tier1_payout': 75, 'tier2_payout': 60},
    RUN_TOP: {'allocation': 0.10, 'base_payout': 3.2, 'tier1_payout': 2.8, 'tier2_payout': 2.5},
    RUN_BOTTOM: {'allocation': 0.10, 'base_payout': 4.5, 'tier1_payout': 4.0, 'tier2_payout': 3.5},
}

ALLOCATION_TOLERANCE = 0.001

# ============================================================================
# RISK THRESHOLDS (usage ratio; exclusive lower bounds of the worse tier)
# ============================================================================
SAFE_ZONE_MAX = 0.70
WARNING_ZONE_MAX = 0.85
REJECT_THRESHOLD = 1.00

STATUS_ACCEPTED = 'ACCEPTED'
STATUS_WARNING = 'WARNING'
STATUS_REJECTED = 'REJECTED'

TIER_BASE = 'BASE'
TIER_1 = 'TIER1'
TIER_2 = 'TIER2'
TIER_REJECTED = 'REJECTED'
TIER_BLOCKED = 'BLOCKED'

# ============================================================================
# ROUNDS & LEDGER
# ============================================================================
ROUND_WAITING = 'WAITING'
ROUND_OPEN = 'OPEN'
ROUND_CLOSED = 'CLOSED'
ROUND_ANNOUNCED = 'ANNOUNCED'
ROUND_SETTLED = 'SETTLED'

BET_PENDING = 'PENDING'
BET_CANCELLED = 'CANCELLED'
BET_WIN = 'WIN'
BET_LOSE = 'LOSE'

REQUIRED_CONFIRMATIONS = 2
MAX_COMMIT_RETRIES = 3
RISK_SNAPSHOT_LIMIT = 50

# ============================================================================
# LOGGING
# ============================================================================
LOG_LEVEL = logging.DEBUG if not IS_CLOUD else logging.INFO
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(
    level=LOG_LEVEL,
    format=LOG_FORMAT,
    handlers=[logging.StreamHandler()]
)

logger = logging.getLogger("lotto_risk")

logger.debug(f"Environment: Cloud={IS_CLOUD}")
logger.debug(f"Database URL: {DB_URL}")
if PAYOUT_TABLE_PATH:
    logger.info(f"Payout table override: {PAYOUT_TABLE_PATH}")
