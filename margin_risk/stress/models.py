"""
Stress Testing Models - Scenario parameters and simulation results
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..errors import InvalidScenarioError
from ..state.models import PositionSnapshot

# Shock selector that moves the base leg of every position
ALL_ASSETS = "ALL"


class Impact(str, Enum):
    SAFE = "SAFE"
    WATCH = "WATCH"
    LIQ = "LIQ"


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


def validate_shock_pct(shock_pct: float) -> float:
    """
    Reject shock percentages that cannot be applied to a price

    Args:
        shock_pct: Signed percentage change (e.g. -30 for a 30% drop)

    Returns:
        shock_pct as float
    """
    if isinstance(shock_pct, bool) or not isinstance(shock_pct, (int, float)):
        raise InvalidScenarioError(f"Shock percentage must be a number, got {shock_pct!r}")
    if not math.isfinite(shock_pct):
        raise InvalidScenarioError(f"Shock percentage must be finite, got {shock_pct!r}")
    if shock_pct < -100:
        raise InvalidScenarioError(f"Shock percentage cannot drop a price below zero: {shock_pct}")
    return float(shock_pct)


@dataclass(frozen=True)
class ScenarioRange:
    """Closed shock interval selected by the user, in percent"""

    min: float
    max: float

    def __post_init__(self):
        validate_shock_pct(self.min)
        validate_shock_pct(self.max)
        if self.min > self.max:
            raise InvalidScenarioError(f"Range minimum {self.min} exceeds maximum {self.max}")


@dataclass(frozen=True)
class ShockParameters:
    """Which asset is shocked, by how much, and whether a scenario is being viewed"""

    shock_asset: str = ALL_ASSETS
    shock_pct: float = 0.0
    range_selection: Optional[ScenarioRange] = None
    is_active: bool = False

    def __post_init__(self):
        validate_shock_pct(self.shock_pct)
        if not isinstance(self.shock_asset, str) or not self.shock_asset:
            raise InvalidScenarioError(f"Shock asset must be a non-empty symbol, got {self.shock_asset!r}")

    def applies_to_base(self, position: PositionSnapshot) -> bool:
        """Only the base leg is matched against the selector"""
        return self.shock_asset == ALL_ASSETS or self.shock_asset == position.base_asset_symbol


@dataclass(frozen=True)
class DirectionResult:
    direction: Direction
    net_exposure_usd: float


@dataclass(frozen=True)
class SimulatedPosition:
    """A position re-evaluated under one shock"""

    position: PositionSnapshot
    shock_pct: float
    shock_asset: str
    original_buffer: float
    original_health_factor: float
    simulated_buffer: float
    simulated_health_factor: float
    simulated_collateral_usd: float
    simulated_debt_usd: float
    would_liquidate: bool
    impact: Impact
    buffer_delta: float
    health_factor_delta: float

    @property
    def position_id(self) -> str:
        return self.position.position_id

    @property
    def is_new_liquidation(self) -> bool:
        """Liquidatable under the shock but not in the unshocked snapshot"""
        return self.would_liquidate and not self.position.is_liquidatable

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization"""
        return {
            "position_id": self.position_id,
            "shock_pct": self.shock_pct,
            "shock_asset": self.shock_asset,
            "original_buffer": self.original_buffer,
            "original_health_factor": self.original_health_factor,
            "simulated_buffer": self.simulated_buffer,
            "simulated_health_factor": self.simulated_health_factor,
            "simulated_collateral_usd": self.simulated_collateral_usd,
            "simulated_debt_usd": self.simulated_debt_usd,
            "would_liquidate": self.would_liquidate,
            "impact": self.impact.value,
            "buffer_delta": self.buffer_delta,
            "health_factor_delta": self.health_factor_delta,
        }


@dataclass(frozen=True)
class ScenarioSummary:
    """Aggregate of a shock applied to a set of positions"""

    shock_pct: float
    shock_asset: str
    liquidatable_count: int
    debt_at_risk_usd: float
    collateral_at_risk_usd: float
    new_liquidations: int
    first_liquidation_at: Optional[float]
    positions_details: Tuple[SimulatedPosition, ...] = field(default=(), repr=False)

    def liquidated_positions(self) -> List[SimulatedPosition]:
        """Simulated positions that would liquidate under this shock"""
        return [p for p in self.positions_details if p.would_liquidate]

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization"""
        return {
            "shock_pct": self.shock_pct,
            "shock_asset": self.shock_asset,
            "liquidatable_count": self.liquidatable_count,
            "debt_at_risk_usd": self.debt_at_risk_usd,
            "collateral_at_risk_usd": self.collateral_at_risk_usd,
            "new_liquidations": self.new_liquidations,
            "first_liquidation_at": self.first_liquidation_at,
            "positions_count": len(self.positions_details),
        }

    def summary(self) -> str:
        """Generate human-readable summary"""
        if self.first_liquidation_at is None:
            first = "none"
        else:
            first = f"{self.first_liquidation_at:+.1f}%"

        return f"""
Scenario: {self.shock_asset} {self.shock_pct:+.1f}%
----------------------------------------
Liquidatable Positions: {self.liquidatable_count}
New Liquidations: {self.new_liquidations}
Collateral at Risk: ${self.collateral_at_risk_usd:,.2f}
Debt at Risk: ${self.debt_at_risk_usd:,.2f}
First Liquidation At: {first}
"""


@dataclass(frozen=True)
class SweepPoint:
    """Liquidation totals at one step of a shock sweep, split by direction"""

    price_change: float
    liquidatable_count: int
    debt_at_risk_usd: float
    long_liquidatable_count: int
    short_liquidatable_count: int
    long_debt_at_risk_usd: float
    short_debt_at_risk_usd: float

    def to_dict(self) -> Dict:
        return {
            "price_change": self.price_change,
            "liquidatable_count": self.liquidatable_count,
            "debt_at_risk_usd": self.debt_at_risk_usd,
            "long_liquidatable_count": self.long_liquidatable_count,
            "short_liquidatable_count": self.short_liquidatable_count,
            "long_debt_at_risk_usd": self.long_debt_at_risk_usd,
            "short_debt_at_risk_usd": self.short_debt_at_risk_usd,
        }


@dataclass(frozen=True)
class CliffPoint:
    """Step where debt at risk jumps by at least the cliff multiplier"""

    index: int
    price_change: float
    debt_before: float
    debt_after: float
    multiplier: float

    def to_dict(self) -> Dict:
        return {
            "index": self.index,
            "price_change": self.price_change,
            "debt_before": self.debt_before,
            "debt_after": self.debt_after,
            "multiplier": self.multiplier,
        }


@dataclass(frozen=True)
class StressCurve:
    """Ordered sweep points plus the detected cliff, if any"""

    shock_asset: str
    points: Tuple[SweepPoint, ...]
    cliff: Optional[CliffPoint] = None

    def __len__(self) -> int:
        return len(self.points)

    def point_at(self, price_change: float) -> Optional[SweepPoint]:
        """Sweep point for an exact shock percentage, None if it was not sampled"""
        for point in self.points:
            if point.price_change == price_change:
                return point
        return None

    def to_dataframe(self) -> pd.DataFrame:
        """
        Sweep points as a DataFrame, one row per shock step

        Returns:
            DataFrame with a boolean is_cliff column
        """
        df = pd.DataFrame(
            [p.to_dict() for p in self.points],
            columns=list(SweepPoint.__dataclass_fields__),
        )
        df["is_cliff"] = False
        if self.cliff is not None:
            df.loc[self.cliff.index, "is_cliff"] = True
        return df
