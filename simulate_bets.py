"""
Stress-test the payout table with simulated bot traffic
"""
import argparse
from lotto_risk.core.payout_table import load_payout_table
from lotto_risk.core.simulation import BotSimulation
from lotto_risk.config import INITIAL_CAPITAL, BET_TYPE_NAMES


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--bets", type=int, default=1000, help="number of bot bets to fire")
    parser.add_argument("--bots", type=int, default=100, help="number of simulated bettors")
    parser.add_argument("--capital", type=float, default=INITIAL_CAPITAL, help="operator capital")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--table", help="JSON payout table to test instead of the configured one")
    args = parser.parse_args()

    print("=" * 70)
    print("LOTTO RISK - BOT TRAFFIC SIMULATION")
    print("=" * 70)

    table = load_payout_table(args.table)
    simulation = BotSimulation(table, {'n_bots': args.bots}, capital=args.capital, seed=args.seed)
    stats, bet_log = simulation.run(args.bets)

    print(f"\nBets fired:        {stats['total_bets']:,}")
    print(f"Accepted:          {stats['accepted_bets']:,} "
          f"({stats['warning_bets']:,} at reduced payout)")
    print(f"Rejected:          {stats['rejected_bets']:,}")
    print(f"Volume accepted:   {stats['total_volume']:,.0f}")
    print(f"Commission:        {stats['total_commission']:,.0f}")
    print(f"Average bet:       {stats['average_bet_size']:,.0f}")
    print(f"Pool at close:     {stats['total_pot']:,.0f}")
    print(f"Numbers above 85%: {stats['numbers_at_risk']}")
    print(f"Most exposed:      {stats['highest_usage_number']} "
          f"({stats['highest_usage_percent']:.1f}%)")

    if len(bet_log):
        print("\nBy bet type:")
        by_type = bet_log.groupby('bet_type')['status'].value_counts().unstack(fill_value=0)
        for bet_type, row in by_type.iterrows():
            counts = ", ".join(f"{status.lower()} {count}" for status, count in row.items())
            print(f"  {BET_TYPE_NAMES[bet_type]:<12} {counts}")

    print("=" * 70)


if __name__ == "__main__":
    main()
