"""
Stress Testing Engine - Aggregates shock simulations and sweeps shock ranges
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from ..config import DEFAULT_CONFIG, EngineConfig
from ..data.cache import ScenarioCache
from ..state.models import PositionSnapshot
from .models import (
    ALL_ASSETS,
    CliffPoint,
    Direction,
    ScenarioRange,
    ScenarioSummary,
    ShockParameters,
    StressCurve,
    SweepPoint,
)
from .scenario import ScenarioState
from .simulator import classify_direction, estimate_liquidation_shock, simulate

logger = logging.getLogger(__name__)


def first_liquidation_at(
    positions: Iterable[PositionSnapshot],
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[float]:
    """
    Estimated downward shock at which the nearest safe position liquidates

    Args:
        positions: Position set
        config: Engine configuration

    Returns:
        Negative percentage closest to zero, or None if no position has a
        downward trigger
    """
    nearest = None
    for position in positions:
        pct_change = estimate_liquidation_shock(position, config)
        if pct_change is None or pct_change >= 0:
            continue
        if nearest is None or pct_change > nearest:
            nearest = pct_change
    return nearest


def simulate_batch(
    positions: Iterable[PositionSnapshot],
    shock_pct: float,
    shock_asset: str = ALL_ASSETS,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ScenarioSummary:
    """
    Apply one shock to every position and aggregate the liquidations

    Args:
        positions: Position set
        shock_pct: Signed percentage change (e.g. -30)
        shock_asset: Asset symbol or ALL_ASSETS
        config: Engine configuration

    Returns:
        ScenarioSummary; at-risk totals use the shocked collateral and debt
    """
    positions = list(positions)
    params = ShockParameters(shock_asset=shock_asset, shock_pct=shock_pct, is_active=shock_pct != 0)

    details = []
    liquidatable_count = 0
    new_liquidations = 0
    debt_at_risk = 0.0
    collateral_at_risk = 0.0

    for position in positions:
        simulated = simulate(position, params, config)
        details.append(simulated)

        if simulated.would_liquidate:
            liquidatable_count += 1
            debt_at_risk += simulated.simulated_debt_usd
            collateral_at_risk += simulated.simulated_collateral_usd

            if not position.is_liquidatable:
                new_liquidations += 1

    return ScenarioSummary(
        shock_pct=params.shock_pct,
        shock_asset=shock_asset,
        liquidatable_count=liquidatable_count,
        debt_at_risk_usd=debt_at_risk,
        collateral_at_risk_usd=collateral_at_risk,
        new_liquidations=new_liquidations,
        first_liquidation_at=first_liquidation_at(positions, config),
        positions_details=tuple(details),
    )


def simulate_sweep_point(
    positions: Iterable[PositionSnapshot],
    shock_pct: float,
    shock_asset: str = ALL_ASSETS,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SweepPoint:
    """
    Liquidation totals at one shock, split between long and short positions

    Args:
        positions: Position set
        shock_pct: Signed percentage change
        shock_asset: Asset symbol or ALL_ASSETS
        config: Engine configuration

    Returns:
        SweepPoint
    """
    params = ShockParameters(shock_asset=shock_asset, shock_pct=shock_pct, is_active=True)

    counts = {Direction.LONG: 0, Direction.SHORT: 0}
    debt = {Direction.LONG: 0.0, Direction.SHORT: 0.0}

    for position in positions:
        simulated = simulate(position, params, config)
        if not simulated.would_liquidate:
            continue

        direction = classify_direction(position).direction
        counts[direction] += 1
        debt[direction] += simulated.simulated_debt_usd

    return SweepPoint(
        price_change=params.shock_pct,
        liquidatable_count=counts[Direction.LONG] + counts[Direction.SHORT],
        debt_at_risk_usd=debt[Direction.LONG] + debt[Direction.SHORT],
        long_liquidatable_count=counts[Direction.LONG],
        short_liquidatable_count=counts[Direction.SHORT],
        long_debt_at_risk_usd=debt[Direction.LONG],
        short_debt_at_risk_usd=debt[Direction.SHORT],
    )


def find_cliff_point(
    points: Sequence[SweepPoint],
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[CliffPoint]:
    """
    Identify the sharpest jump in debt at risk between consecutive sweep points

    A cliff point is where liquidations concentrate: debt at risk grows by at
    least cliff_min_multiplier from one step to the next and the new level is
    above cliff_min_debt_usd, so jumps among near-zero values are ignored.

    Args:
        points: Sweep points in sweep order
        config: Engine configuration

    Returns:
        CliffPoint with the largest multiplier (earliest on ties), or None
    """
    sweep_config = config.sweep
    cliff = None

    for i in range(1, len(points)):
        prev_debt = points[i - 1].debt_at_risk_usd
        curr_debt = points[i].debt_at_risk_usd
        multiplier = curr_debt / max(prev_debt, 1)

        if multiplier < sweep_config.cliff_min_multiplier:
            continue
        if curr_debt <= sweep_config.cliff_min_debt_usd:
            continue

        if cliff is None or multiplier > cliff.multiplier:
            cliff = CliffPoint(
                index=i,
                price_change=points[i].price_change,
                debt_before=prev_debt,
                debt_after=curr_debt,
                multiplier=multiplier,
            )

    return cliff


def sweep(
    positions: Iterable[PositionSnapshot],
    shock_asset: str = ALL_ASSETS,
    config: EngineConfig = DEFAULT_CONFIG,
) -> StressCurve:
    """
    Evaluate the position set across the configured shock range

    The default range is -50% to +20% in 2% steps (36 points).

    Args:
        positions: Position set
        shock_asset: Asset symbol or ALL_ASSETS
        config: Engine configuration

    Returns:
        StressCurve with ordered points and the cliff, if any
    """
    positions = list(positions)
    points = tuple(
        simulate_sweep_point(positions, pct, shock_asset, config)
        for pct in config.sweep.shock_steps
    )
    return StressCurve(
        shock_asset=shock_asset,
        points=points,
        cliff=find_cliff_point(points, config),
    )


def is_in_range(
    position: PositionSnapshot,
    range_selection: ScenarioRange,
    shock_asset: str = ALL_ASSETS,
    config: EngineConfig = DEFAULT_CONFIG,
) -> bool:
    """
    Check whether a position liquidates somewhere inside a shock range

    Samples min, min + step, ... up to max; this is an existential test over
    the sampled points, so a liquidation window narrower than the step can be
    missed.

    Args:
        position: Position snapshot
        range_selection: Shock interval in percent
        shock_asset: Asset symbol or ALL_ASSETS
        config: Engine configuration

    Returns:
        True if any sampled shock liquidates the position
    """
    step = config.sweep.step_pct
    pct = range_selection.min

    while pct <= range_selection.max:
        params = ShockParameters(shock_asset=shock_asset, shock_pct=pct, is_active=True)
        if simulate(position, params, config).would_liquidate:
            return True
        pct += step

    return False


class StressTestEngine:
    """Runs shock scenarios over a set of margin positions"""

    def __init__(
        self,
        positions: Iterable[PositionSnapshot],
        config: Optional[EngineConfig] = None,
        cache: Optional[ScenarioCache] = None,
    ):
        """
        Initialize stress test engine

        Args:
            positions: Position snapshots to test
            config: Engine configuration (defaults if None)
            cache: Optional memoization cache shared across engines
        """
        self.positions = tuple(positions)
        self.config = config or DEFAULT_CONFIG
        self.cache = cache

    def _cached(self, kind: str, shock_pct: Optional[float], shock_asset: str, compute):
        if self.cache is None:
            return compute()

        key = ScenarioCache.make_key(kind, self.positions, shock_pct, shock_asset)
        result = self.cache.get(key)
        if result is None:
            result = compute()
            self.cache.set(key, result)
        return result

    def simulate_position(self, position: PositionSnapshot, shock_pct: float, shock_asset: str = ALL_ASSETS):
        params = ShockParameters(shock_asset=shock_asset, shock_pct=shock_pct, is_active=True)
        return simulate(position, params, self.config)

    def apply_price_shock(self, shock_pct: float, shock_asset: str = ALL_ASSETS) -> ScenarioSummary:
        """
        Apply a price shock and calculate liquidation impact

        Args:
            shock_pct: Signed percentage change (e.g. -10 for a 10% drop)
            shock_asset: Asset symbol or ALL_ASSETS

        Returns:
            ScenarioSummary
        """
        return self._cached(
            "summary", shock_pct, shock_asset,
            lambda: simulate_batch(self.positions, shock_pct, shock_asset, self.config),
        )

    def baseline(self, shock_asset: str = ALL_ASSETS) -> ScenarioSummary:
        """Unshocked state of the position set"""
        return self.apply_price_shock(0, shock_asset)

    def first_liquidation_at(self) -> Optional[float]:
        return first_liquidation_at(self.positions, self.config)

    def sweep(self, shock_asset: str = ALL_ASSETS) -> StressCurve:
        """
        Run the full shock sweep

        Args:
            shock_asset: Asset symbol or ALL_ASSETS

        Returns:
            StressCurve with points and cliff
        """
        points = tuple(
            self._cached(
                "point", pct, shock_asset,
                lambda pct=pct: simulate_sweep_point(self.positions, pct, shock_asset, self.config),
            )
            for pct in self.config.sweep.shock_steps
        )
        curve = StressCurve(
            shock_asset=shock_asset,
            points=points,
            cliff=find_cliff_point(points, self.config),
        )

        if curve.cliff is not None:
            logger.info(f"Cliff at {curve.cliff.price_change:+.0f}% for {shock_asset}: "
                        f"debt at risk x{curve.cliff.multiplier:.1f} "
                        f"(${curve.cliff.debt_before:,.0f} -> ${curve.cliff.debt_after:,.0f})")
        return curve

    def run_all_scenarios(self, shock_asset: str = ALL_ASSETS) -> pd.DataFrame:
        """
        Run the sweep and return the stress curve as a table

        Args:
            shock_asset: Asset symbol or ALL_ASSETS

        Returns:
            DataFrame with one row per shock step
        """
        return self.sweep(shock_asset).to_dataframe()

    def find_cliff_point(self, points: Optional[Sequence[SweepPoint]] = None,
                         shock_asset: str = ALL_ASSETS) -> Optional[CliffPoint]:
        """
        Locate the cliff in a sweep

        Args:
            points: Sweep points (if None, will run the sweep)
            shock_asset: Used only when running the sweep

        Returns:
            CliffPoint or None
        """
        if points is None:
            points = self.sweep(shock_asset).points
        return find_cliff_point(points, self.config)

    def is_in_range(self, position: PositionSnapshot, range_selection: ScenarioRange,
                    shock_asset: str = ALL_ASSETS) -> bool:
        return is_in_range(position, range_selection, shock_asset, self.config)

    def filter_in_range(self, range_selection: ScenarioRange,
                        shock_asset: str = ALL_ASSETS) -> List[PositionSnapshot]:
        """
        Positions that liquidate somewhere inside a shock range

        Args:
            range_selection: Shock interval in percent
            shock_asset: Asset symbol or ALL_ASSETS

        Returns:
            Matching positions in input order
        """
        return [
            p for p in self.positions
            if is_in_range(p, range_selection, shock_asset, self.config)
        ]

    def positions_for_scenario(self, state: ScenarioState) -> List[PositionSnapshot]:
        """Positions in view: the range filter applies only to an active scenario"""
        if state.is_active and state.range_selection is not None:
            return self.filter_in_range(state.range_selection, state.shock_asset)
        return list(self.positions)

    def simulate_scenario(self, state: ScenarioState) -> ScenarioSummary:
        """
        Evaluate the scenario a user currently has selected

        An inactive scenario evaluates the unshocked baseline.

        Args:
            state: Current ScenarioState

        Returns:
            ScenarioSummary
        """
        shock_pct = state.shock_pct if state.is_active else 0
        return self.apply_price_shock(shock_pct, state.shock_asset)

    def direction_breakdown(self) -> Dict[str, int]:
        """Count of positions per direction"""
        breakdown = {Direction.LONG.value: 0, Direction.SHORT.value: 0}
        for position in self.positions:
            breakdown[classify_direction(position).direction.value] += 1
        return breakdown

    def generate_summary(self, shock_asset: str = ALL_ASSETS) -> str:
        """
        Generate stress test summary

        Args:
            shock_asset: Asset symbol or ALL_ASSETS

        Returns:
            Formatted string with the sweep and cliff analysis
        """
        curve = self.sweep(shock_asset)
        baseline = self.baseline(shock_asset)
        directions = self.direction_breakdown()
        total_debt = sum(p.total_debt_usd for p in self.positions)

        summary = f"""
=== Stress Test Summary ===

Shock Asset: {shock_asset}
Total Positions: {len(self.positions)} ({directions['LONG']} long, {directions['SHORT']} short)
Total Debt: ${total_debt:,.2f}
Liquidatable Now: {baseline.liquidatable_count}
"""
        if baseline.first_liquidation_at is not None:
            summary += f"First Liquidation At: {baseline.first_liquidation_at:+.1f}%\n"

        summary += "\n--- Stress Curve ---\n"
        for point in curve.points:
            if point.liquidatable_count == 0:
                continue
            summary += (
                f"{point.price_change:+.0f}%: {point.liquidatable_count} liquidatable "
                f"({point.long_liquidatable_count}L/{point.short_liquidatable_count}S), "
                f"debt at risk ${point.debt_at_risk_usd:,.2f}\n"
            )

        if curve.cliff is not None:
            summary += f"""
--- Cliff Point ---
At {curve.cliff.price_change:+.0f}%: debt at risk jumps {curve.cliff.multiplier:.1f}x
  ${curve.cliff.debt_before:,.2f} -> ${curve.cliff.debt_after:,.2f}
"""
        else:
            summary += "\nNo cliff detected\n"

        return summary
