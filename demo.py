"""
Demo script for the position risk simulation engine

This script demonstrates:
1. Loading engine configuration
2. Loading margin manager states (CSV export or a generated sample book)
3. Baseline risk metrics
4. A point shock scenario and a range filter
5. The full stress sweep with cliff detection

Usage:
    python demo.py --shock -20 --asset SUI
    python demo.py --states states.csv --range -30 -10
"""

import argparse
import logging
import sys

import numpy as np
import pandas as pd

from margin_risk.config import load_config
from margin_risk.data.cache import ScenarioCache
from margin_risk.metrics import PositionMetrics
from margin_risk.state.reconstructor import PositionLoader
from margin_risk.stress import ScenarioSession, StressTestEngine
from margin_risk.stress.models import ALL_ASSETS, ScenarioRange


# ANSI color codes for pretty output
class Colors:
    HEADER = "\033[95m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def print_header(text):
    """Print a colored header"""
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{text.center(60)}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'=' * 60}{Colors.ENDC}\n")


def print_success(text):
    print(f"{Colors.OKGREEN}[OK] {text}{Colors.ENDC}")


def print_info(text):
    print(f"{Colors.OKCYAN}  {text}{Colors.ENDC}")


def print_warning(text):
    print(f"{Colors.WARNING}[WARNING] {text}{Colors.ENDC}")


def print_error(text):
    print(f"{Colors.FAIL}[ERROR] {text}{Colors.ENDC}")


def sample_states(n: int = 40, seed: int = 7) -> pd.DataFrame:
    """
    Generate a synthetic SUI/USDC margin book

    Pyth prices use 8 decimals; SUI trades around $3.50.
    """
    rng = np.random.default_rng(seed)
    sui_price = 350_000_000
    usdc_price = 100_000_000

    rows = []
    for i in range(n):
        is_long = rng.random() < 0.7
        equity = rng.uniform(200, 20_000)
        leverage = rng.uniform(1.5, 4.5)

        if is_long:
            # Borrowed USDC to hold SUI
            base_asset = equity * leverage / 3.5
            quote_asset = 0.0
            base_debt = 0.0
            quote_debt = equity * (leverage - 1)
        else:
            # Borrowed SUI and sold it for USDC
            base_asset = 0.0
            quote_asset = equity * leverage
            base_debt = equity * (leverage - 1) / 3.5
            quote_debt = 0.0

        collateral = base_asset * 3.5 + quote_asset
        debt = base_debt * 3.5 + quote_debt
        rows.append({
            "margin_manager_id": f"0x{i:064x}",
            "deepbook_pool_id": "0xsui_usdc",
            "risk_ratio": collateral / debt,
            "base_asset": base_asset,
            "quote_asset": quote_asset,
            "base_debt": base_debt,
            "quote_debt": quote_debt,
            "base_pyth_price": sui_price,
            "base_pyth_decimals": -8,
            "quote_pyth_price": usdc_price,
            "quote_pyth_decimals": -8,
            "base_asset_symbol": "SUI",
            "quote_asset_symbol": "USDC",
            "updated_at": "2025-01-01T00:00:00Z",
        })

    return pd.DataFrame(rows)


def main():
    """Main demo function"""
    parser = argparse.ArgumentParser(description="Margin Position Risk Simulator")
    parser.add_argument("--config", help="Engine config YAML (default: the packaged engine.yaml)")
    parser.add_argument("--states", help="CSV export of margin manager states")
    parser.add_argument("--asset", default=None, help=f"Asset to shock (symbol or {ALL_ASSETS})")
    parser.add_argument("--shock", type=float, default=-20.0, help="Point shock in percent")
    parser.add_argument("--range", nargs=2, type=float, metavar=("MIN", "MAX"),
                        help="Only show positions that liquidate inside this shock range")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    try:
        print_header("Loading Configuration")
        config = load_config(args.config)
        print_success(f"Sweep {config.sweep.min_pct}% to {config.sweep.max_pct}% "
                      f"step {config.sweep.step_pct}%")

        print_header("Loading Positions")
        if args.states:
            states = pd.read_csv(args.states)
            print_success(f"Read {len(states)} states from {args.states}")
        else:
            states = sample_states()
            print_warning("No --states given, using a generated sample book")

        positions = PositionLoader(config=config).load_positions(states)
        if not positions:
            print_error("No positions with debt to analyze")
            sys.exit(1)
        print_success(f"Loaded {len(positions)} positions")

        print(PositionMetrics(positions, config).summary_report())

        print_header("Scenario")
        session = ScenarioSession()
        engine = StressTestEngine(positions, config, cache=ScenarioCache(config.cache.max_entries))
        session.subscribe(lambda state: print_info(
            f"Scenario -> {state.mode.value} ({state.shock_asset} {state.shock_pct:+.0f}%)"
        ))

        session.set_shock_asset(args.asset or config.simulation.default_shock_asset)
        session.activate_scenario(args.shock)
        print(engine.simulate_scenario(session.state).summary())

        if args.range:
            session.set_range(ScenarioRange(min=args.range[0], max=args.range[1]))
            in_range = engine.positions_for_scenario(session.state)
            print_info(f"{len(in_range)} positions liquidate between "
                       f"{args.range[0]:+.0f}% and {args.range[1]:+.0f}%")

        print_header("Stress Sweep")
        print(engine.generate_summary(session.state.shock_asset))
        info = engine.cache.get_cache_info()
        print_info(f"Cache: {info['num_entries']} entries, hit rate {info['hit_rate']:.0%}")

    except Exception as e:
        print_error(f"Demo failed: {e}")
        raise


if __name__ == "__main__":
    main()
