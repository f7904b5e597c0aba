"""
Shock Simulator - Re-evaluates a single position under a price shock
"""

from typing import Optional

from ..config import DEFAULT_CONFIG, EngineConfig
from ..state.models import PositionSnapshot, buffer_pct, compute_risk_ratio
from .models import (
    Direction,
    DirectionResult,
    Impact,
    ShockParameters,
    SimulatedPosition,
)


def base_multiplier(position: PositionSnapshot, params: ShockParameters) -> float:
    """
    Price multiplier applied to the base leg of a position

    A selector equal to the quote symbol leaves the position untouched; only
    the base leg is ever matched.

    Args:
        position: Position snapshot
        params: Shock parameters

    Returns:
        1 + shock_pct / 100 if the base leg is shocked, else 1
    """
    if params.applies_to_base(position):
        return 1 + params.shock_pct / 100
    return 1


def simulate(
    position: PositionSnapshot,
    params: ShockParameters,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SimulatedPosition:
    """
    Apply a price shock to one position

    Base collateral and base debt are scaled together, so a position whose
    value sits entirely in the base leg keeps its risk ratio; only the quote
    legs make the ratio move.

    Args:
        position: Position snapshot
        params: Shock parameters (is_active and range_selection are ignored)
        config: Engine configuration

    Returns:
        SimulatedPosition
    """
    multiplier = base_multiplier(position, params)

    new_collateral = position.base_asset_usd * multiplier + position.quote_asset_usd
    new_debt = position.base_debt_usd * multiplier + position.quote_debt_usd

    new_risk_ratio = compute_risk_ratio(
        new_collateral, new_debt, config.simulation.no_debt_risk_ratio
    )
    threshold = position.liquidation_threshold
    would_liquidate = new_risk_ratio <= threshold
    simulated_buffer = buffer_pct(new_risk_ratio, threshold)

    if would_liquidate:
        impact = Impact.LIQ
    elif simulated_buffer < config.simulation.watch_buffer_pct:
        impact = Impact.WATCH
    else:
        impact = Impact.SAFE

    original_buffer = position.distance_to_liquidation

    return SimulatedPosition(
        position=position,
        shock_pct=params.shock_pct,
        shock_asset=params.shock_asset,
        original_buffer=original_buffer,
        original_health_factor=position.risk_ratio,
        simulated_buffer=simulated_buffer,
        simulated_health_factor=new_risk_ratio,
        simulated_collateral_usd=new_collateral,
        simulated_debt_usd=new_debt,
        would_liquidate=would_liquidate,
        impact=impact,
        buffer_delta=simulated_buffer - original_buffer,
        health_factor_delta=new_risk_ratio - position.risk_ratio,
    )


def simulate_at_shock(
    position: PositionSnapshot,
    shock_pct: float,
    shock_asset: str,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SimulatedPosition:
    """Shorthand for simulate() with an active point scenario"""
    params = ShockParameters(shock_asset=shock_asset, shock_pct=shock_pct, is_active=True)
    return simulate(position, params, config)


def classify_direction(position: PositionSnapshot) -> DirectionResult:
    """
    Inherent directional exposure of a position to its base asset

    LONG positions lose value when the base price falls, SHORT positions when
    it rises. A flat position (zero net exposure) counts as LONG.

    Args:
        position: Position snapshot

    Returns:
        DirectionResult with net_exposure_usd = base collateral - base debt
    """
    net_exposure = position.base_asset_usd - position.base_debt_usd
    direction = Direction.LONG if net_exposure >= 0 else Direction.SHORT
    return DirectionResult(direction=direction, net_exposure_usd=net_exposure)


def estimate_liquidation_shock(
    position: PositionSnapshot,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Optional[float]:
    """
    Linear estimate of the base price change that brings a position to its threshold

    This treats the net base exposure as moving with price and ignores the
    debt-side scaling used by simulate(), so the two can disagree near the
    threshold.

    Args:
        position: Position snapshot
        config: Engine configuration

    Returns:
        Percentage change, or None if already liquidatable or the net base
        exposure is too small to move the ratio
    """
    if position.is_liquidatable:
        return None

    net_base_exposure = position.base_asset_usd - position.base_debt_usd
    if abs(net_base_exposure) <= config.estimate.min_net_exposure_usd:
        return None

    target_collateral = position.liquidation_threshold * position.total_debt_usd
    change_needed = (target_collateral - position.collateral_value_usd) / net_base_exposure
    return change_needed * 100
