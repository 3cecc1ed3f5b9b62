"""
Per-bet-type payout & allocation table.

The table is loaded and validated once at startup; evaluation code trusts it.
A broken table is fatal: no bets are accepted for a type that is not
configured correctly.
"""
import copy
import json
from pathlib import Path
from lotto_risk.config import (
    BET_TYPES, PAYOUT_FIELDS, DEFAULT_PAYOUT_TABLE, PAYOUT_TABLE_PATH,
    ALLOCATION_TOLERANCE, SAFE_ZONE_MAX, WARNING_ZONE_MAX, REJECT_THRESHOLD,
    STATUS_ACCEPTED, STATUS_WARNING, STATUS_REJECTED,
    TIER_BASE, TIER_1, TIER_2, TIER_REJECTED, logger
)


class PayoutTableError(ValueError):
    """Raised when the payout table cannot be used to accept bets"""


def load_payout_table(path=None):
    """
    Load the payout table.

    Args:
        path: JSON file mapping bet type -> {allocation, base_payout,
              tier1_payout, tier2_payout}. Falls back to the
              LOTTO_RISK_PAYOUT_TABLE environment setting, then to the
              built-in defaults.

    Returns:
        Validated table (dict of dicts)
    """
    path = path or PAYOUT_TABLE_PATH

    if path:
        try:
            with open(Path(path), encoding='utf-8') as f:
                table = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PayoutTableError(f"Cannot read payout table {path}: {e}") from e
        source = str(path)
    else:
        table = copy.deepcopy(DEFAULT_PAYOUT_TABLE)
        source = 'defaults'

    validate_payout_table(table)
    logger.info(f"Payout table loaded from {source}: {sorted(table)}")
    return table


def validate_payout_table(table):
    """Check every invariant of the table, raising PayoutTableError on the first failure"""
    if not isinstance(table, dict):
        raise PayoutTableError("Payout table must be a mapping of bet type to config")

    missing = [bt for bt in BET_TYPES if bt not in table]
    if missing:
        raise PayoutTableError(f"Missing bet types: {missing}")

    unknown = [bt for bt in table if bt not in BET_TYPES]
    if unknown:
        raise PayoutTableError(f"Unknown bet types: {unknown}")

    for bet_type in BET_TYPES:
        config = table[bet_type]
        for field in PAYOUT_FIELDS:
            value = config.get(field) if isinstance(config, dict) else None
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise PayoutTableError(f"{bet_type}.{field} must be a number, got {value!r}")

        if not 0 < config['allocation'] <= 1:
            raise PayoutTableError(
                f"{bet_type}.allocation must be in (0, 1], got {config['allocation']}"
            )

        if not config['base_payout'] > config['tier1_payout'] > config['tier2_payout'] > 0:
            raise PayoutTableError(
                f"{bet_type} payouts must satisfy base > tier1 > tier2 > 0, got "
                f"{config['base_payout']}/{config['tier1_payout']}/{config['tier2_payout']}"
            )

    total = sum(table[bt]['allocation'] for bt in BET_TYPES)
    if abs(total - 1.0) >= ALLOCATION_TOLERANCE:
        raise PayoutTableError(f"Allocations must sum to 1.0, got {total:.4f}")

    return True


def is_valid_bet_type(bet_type):
    return bet_type in BET_TYPES


def get_bet_type_config(table, bet_type):
    if bet_type not in table:
        raise PayoutTableError(f"Bet type {bet_type!r} is not configured")
    return table[bet_type]


def calculate_risk_budget(table, bet_type, total_pot):
    """Share of the pool reserved to cover payouts of one bet type"""
    return total_pot * get_bet_type_config(table, bet_type)['allocation']


def risk_zones():
    """Display metadata for the usage-ratio zones, safest first"""
    return [
        {'name': 'Safe Zone', 'min_usage': 0.0, 'max_usage': SAFE_ZONE_MAX,
         'status': STATUS_ACCEPTED, 'tier': TIER_BASE, 'color': 'green'},
        {'name': 'Warning Zone (Tier 1)', 'min_usage': SAFE_ZONE_MAX, 'max_usage': WARNING_ZONE_MAX,
         'status': STATUS_WARNING, 'tier': TIER_1, 'color': 'yellow'},
        {'name': 'Danger Zone (Tier 2)', 'min_usage': WARNING_ZONE_MAX, 'max_usage': REJECT_THRESHOLD,
         'status': STATUS_WARNING, 'tier': TIER_2, 'color': 'orange'},
        {'name': 'Critical Zone', 'min_usage': REJECT_THRESHOLD, 'max_usage': None,
         'status': STATUS_REJECTED, 'tier': TIER_REJECTED, 'color': 'red'},
    ]
