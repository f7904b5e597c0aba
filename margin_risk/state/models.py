"""Data models for margin position snapshots"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..errors import InvalidPositionError

# Risk ratio reported for a position that owes nothing
NO_DEBT_RISK_RATIO = 999.0

# Allowed relative gap between a supplied risk ratio and collateral / debt
RISK_RATIO_REL_TOL = 1e-6


def compute_risk_ratio(
    collateral_value_usd: float,
    debt_value_usd: float,
    no_debt_risk_ratio: float = NO_DEBT_RISK_RATIO,
) -> float:
    """
    Collateral / debt, or the no-debt sentinel when nothing is owed

    Args:
        collateral_value_usd: Total collateral in USD
        debt_value_usd: Total debt in USD
        no_debt_risk_ratio: Sentinel returned when debt_value_usd <= 0

    Returns:
        Risk ratio
    """
    if debt_value_usd > 0:
        return collateral_value_usd / debt_value_usd
    return no_debt_risk_ratio


def buffer_pct(risk_ratio: float, liquidation_threshold: float) -> float:
    """Signed percentage distance between a risk ratio and the liquidation threshold"""
    return ((risk_ratio - liquidation_threshold) / liquidation_threshold) * 100


@dataclass(frozen=True)
class PositionSnapshot:
    """
    Current collateral/debt state of one margin position

    Both legs are expressed in USD. The base leg is the one a price shock of
    the base asset moves; the quote leg is held constant. risk_ratio must
    agree with collateral / debt (999 with no debt) to within
    RISK_RATIO_REL_TOL and is stored as the leg-derived value; use
    from_legs() to skip supplying it.
    """

    position_id: str
    base_asset_usd: float
    quote_asset_usd: float
    base_debt_usd: float
    quote_debt_usd: float
    risk_ratio: float
    liquidation_threshold: float
    base_asset_symbol: str = "BASE"
    quote_asset_symbol: str = "QUOTE"
    pool_id: Optional[str] = None
    base_price_usd: Optional[float] = None
    estimated_reward_usd: float = 0.0
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        for name in ("base_asset_usd", "quote_asset_usd", "base_debt_usd", "quote_debt_usd"):
            value = self._check_finite(name)
            if value < 0:
                raise InvalidPositionError(self.position_id, name, value, "must not be negative")

        risk_ratio = self._check_finite("risk_ratio")
        if risk_ratio < 0:
            raise InvalidPositionError(self.position_id, "risk_ratio", risk_ratio, "must not be negative")

        threshold = self._check_finite("liquidation_threshold")
        if threshold <= 0:
            raise InvalidPositionError(
                self.position_id, "liquidation_threshold", threshold, "must be greater than zero"
            )

        self._check_finite("estimated_reward_usd")
        if self.base_price_usd is not None:
            self._check_finite("base_price_usd")

        derived = compute_risk_ratio(self.collateral_value_usd, self.total_debt_usd)
        if not math.isclose(risk_ratio, derived, rel_tol=RISK_RATIO_REL_TOL):
            raise InvalidPositionError(
                self.position_id, "risk_ratio", risk_ratio,
                f"does not match collateral / debt ({derived:.6f})",
            )
        # Store the leg-derived value so a 0% shock reproduces it exactly
        object.__setattr__(self, "risk_ratio", derived)

    def _check_finite(self, name: str) -> float:
        value = getattr(self, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidPositionError(self.position_id, name, value, "must be a number")
        if not math.isfinite(value):
            raise InvalidPositionError(self.position_id, name, value, "must be finite")
        return value

    @classmethod
    def from_legs(
        cls,
        position_id: str,
        base_asset_usd: float,
        quote_asset_usd: float,
        base_debt_usd: float,
        quote_debt_usd: float,
        liquidation_threshold: float,
        **kwargs,
    ) -> "PositionSnapshot":
        """
        Build a snapshot whose risk ratio is derived from its leg values

        Args:
            position_id: Opaque position key
            base_asset_usd: Base leg collateral in USD
            quote_asset_usd: Quote leg collateral in USD
            base_debt_usd: Base leg debt in USD
            quote_debt_usd: Quote leg debt in USD
            liquidation_threshold: Ratio at or below which the position is liquidatable
            **kwargs: Remaining optional PositionSnapshot fields

        Returns:
            PositionSnapshot
        """
        risk_ratio = compute_risk_ratio(
            base_asset_usd + quote_asset_usd, base_debt_usd + quote_debt_usd
        )
        return cls(
            position_id=position_id,
            base_asset_usd=base_asset_usd,
            quote_asset_usd=quote_asset_usd,
            base_debt_usd=base_debt_usd,
            quote_debt_usd=quote_debt_usd,
            risk_ratio=risk_ratio,
            liquidation_threshold=liquidation_threshold,
            **kwargs,
        )

    @property
    def collateral_value_usd(self) -> float:
        """Total collateral across both legs"""
        return self.base_asset_usd + self.quote_asset_usd

    @property
    def total_debt_usd(self) -> float:
        """Total debt across both legs"""
        return self.base_debt_usd + self.quote_debt_usd

    @property
    def has_debt(self) -> bool:
        return self.total_debt_usd > 0

    @property
    def distance_to_liquidation(self) -> float:
        """
        Signed percentage buffer above the liquidation threshold

        Returns:
            Percentage (negative once the position is liquidatable)
        """
        return buffer_pct(self.risk_ratio, self.liquidation_threshold)

    @property
    def is_liquidatable(self) -> bool:
        """Check if position is at or below its liquidation threshold"""
        return self.risk_ratio <= self.liquidation_threshold

    def to_dict(self) -> dict:
        """Convert snapshot to dictionary"""
        return {
            "position_id": self.position_id,
            "pool_id": self.pool_id,
            "base_asset_symbol": self.base_asset_symbol,
            "quote_asset_symbol": self.quote_asset_symbol,
            "base_asset_usd": self.base_asset_usd,
            "quote_asset_usd": self.quote_asset_usd,
            "base_debt_usd": self.base_debt_usd,
            "quote_debt_usd": self.quote_debt_usd,
            "collateral_value_usd": self.collateral_value_usd,
            "total_debt_usd": self.total_debt_usd,
            "risk_ratio": self.risk_ratio,
            "liquidation_threshold": self.liquidation_threshold,
            "distance_to_liquidation": self.distance_to_liquidation,
            "is_liquidatable": self.is_liquidatable,
            "base_price_usd": self.base_price_usd,
            "estimated_reward_usd": self.estimated_reward_usd,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
