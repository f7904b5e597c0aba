"""
Position Risk Metrics - Baseline risk metrics for a set of margin positions
"""

import math
from typing import Dict, List, Optional

import numpy as np

from ..config import DEFAULT_CONFIG, EngineConfig
from ..state.models import PositionSnapshot
from ..stress.models import Direction
from ..stress.simulator import classify_direction

# (label, min ratio inclusive, max ratio exclusive)
RISK_RATIO_BUCKETS = [
    ("< 1.05", 0.0, 1.05),
    ("1.05-1.10", 1.05, 1.10),
    ("1.10-1.20", 1.10, 1.20),
    ("1.20-1.50", 1.20, 1.50),
    ("1.50+", 1.50, math.inf),
]


def liquidation_price(position: PositionSnapshot, max_multiple: float = 100.0) -> Optional[float]:
    """
    Base asset price at which the position reaches its liquidation threshold

    Solves (k * base_asset + quote_asset) / (k * base_debt + quote_debt) = L
    for the price multiple k, then scales the current base price.

    Args:
        position: Position snapshot (needs base_price_usd)
        max_multiple: Multiples above this are treated as unreachable

    Returns:
        Price in USD, or None if there is no base price, the base exposure is
        flat, or the solution is not a positive multiple up to max_multiple
    """
    if not position.base_price_usd or position.base_price_usd <= 0:
        return None

    threshold = position.liquidation_threshold
    denominator = threshold * position.base_debt_usd - position.base_asset_usd
    numerator = position.quote_asset_usd - threshold * position.quote_debt_usd

    if abs(denominator) < 0.001:
        return None

    k = numerator / denominator
    if k <= 0 or k > max_multiple:
        return None

    return k * position.base_price_usd


class PositionMetrics:
    """Calculates risk metrics for a position set"""

    def __init__(self, positions: List[PositionSnapshot], config: Optional[EngineConfig] = None):
        self.positions = list(positions)
        self.config = config or DEFAULT_CONFIG

    @property
    def total_debt_usd(self) -> float:
        return sum(p.total_debt_usd for p in self.positions)

    @property
    def total_collateral_usd(self) -> float:
        return sum(p.collateral_value_usd for p in self.positions)

    # ====== Liquidation Exposure ======

    def at_risk_summary(self, buffer: Optional[float] = None) -> Dict[str, float]:
        """
        Liquidatable and near-liquidation positions

        A position is at risk when its risk ratio is within `buffer` (as a
        fraction) of its liquidation threshold.

        Args:
            buffer: Fractional buffer above the threshold (default from config)

        Returns:
            Dict with liquidatable_count, at_risk_count, total_debt_at_risk_usd
        """
        at_risk = self.positions_at_risk(buffer)

        return {
            "liquidatable_count": sum(1 for p in self.positions if p.is_liquidatable),
            "at_risk_count": len(at_risk),
            "total_debt_at_risk_usd": sum(p.total_debt_usd for p in at_risk),
        }

    def positions_at_risk(self, buffer: Optional[float] = None) -> List[PositionSnapshot]:
        """
        Positions within the at-risk buffer, most at risk first

        Args:
            buffer: Fractional buffer above the threshold (default from config)

        Returns:
            Positions sorted by ascending distance to liquidation
        """
        if buffer is None:
            buffer = self.config.metrics.at_risk_buffer

        at_risk = [
            p for p in self.positions
            if p.risk_ratio <= p.liquidation_threshold * (1 + buffer)
        ]
        return sorted(at_risk, key=lambda p: p.distance_to_liquidation)

    def risk_distribution(self) -> List[Dict]:
        """
        Histogram of positions by risk ratio

        Returns:
            One dict per bucket with label, min_ratio, max_ratio, count, total_debt_usd
        """
        buckets = [
            {"label": label, "min_ratio": low, "max_ratio": high, "count": 0, "total_debt_usd": 0.0}
            for label, low, high in RISK_RATIO_BUCKETS
        ]

        for p in self.positions:
            for bucket in buckets:
                if bucket["min_ratio"] <= p.risk_ratio < bucket["max_ratio"]:
                    bucket["count"] += 1
                    bucket["total_debt_usd"] += p.total_debt_usd
                    break

        return buckets

    def liquidation_heatmap(self, num_bins: Optional[int] = None) -> Dict:
        """
        Debt grouped by the base price at which it becomes liquidatable

        Bins span 60%-140% of the current base price, taken from the first
        position that carries one. Positions without a reachable liquidation
        price or with dust debt are left out.

        Args:
            num_bins: Number of equal-width price bins (default from config)

        Returns:
            Dict with current_price, max_debt and bins; each bin has
            price_low, price_high, price_center, long/short debt and counts,
            and the ids of its positions
        """
        if num_bins is None:
            num_bins = self.config.metrics.heatmap_bins

        entries = []
        for p in self.positions:
            if p.total_debt_usd < 0.01:
                continue
            price = liquidation_price(p)
            if price is None:
                continue
            entries.append((p, price, classify_direction(p).direction))

        if not entries:
            return {"current_price": 0.0, "max_debt": 0.0, "bins": []}

        current_price = next(
            (p.base_price_usd for p in self.positions if p.base_price_usd and p.base_price_usd > 0),
            0.0,
        )
        edges = np.linspace(current_price * 0.6, current_price * 1.4, num_bins + 1)
        bin_width = edges[1] - edges[0]

        bins = [
            {
                "price_low": float(edges[i]),
                "price_high": float(edges[i + 1]),
                "price_center": float((edges[i] + edges[i + 1]) / 2),
                "long_debt_at_risk_usd": 0.0,
                "short_debt_at_risk_usd": 0.0,
                "long_count": 0,
                "short_count": 0,
                "position_ids": [],
            }
            for i in range(num_bins)
        ]

        for position, price, direction in entries:
            index = int(math.floor((price - edges[0]) / bin_width))
            if index < 0 or index >= num_bins:
                continue
            bin_ = bins[index]
            bin_["position_ids"].append(position.position_id)
            if direction == Direction.LONG:
                bin_["long_debt_at_risk_usd"] += position.total_debt_usd
                bin_["long_count"] += 1
            else:
                bin_["short_debt_at_risk_usd"] += position.total_debt_usd
                bin_["short_count"] += 1

        max_debt = max(
            max(b["long_debt_at_risk_usd"] + b["short_debt_at_risk_usd"] for b in bins), 1.0
        )
        return {"current_price": current_price, "max_debt": max_debt, "bins": bins}

    # ====== Direction & Concentration ======

    def direction_breakdown(self) -> Dict[str, float]:
        """
        Long/short split of the position set

        Returns:
            Dict with counts, debt and summed net exposure per direction
        """
        result = {
            "long_count": 0,
            "short_count": 0,
            "long_debt_usd": 0.0,
            "short_debt_usd": 0.0,
            "long_net_exposure_usd": 0.0,
            "short_net_exposure_usd": 0.0,
        }
        for p in self.positions:
            classified = classify_direction(p)
            side = "long" if classified.direction == Direction.LONG else "short"
            result[f"{side}_count"] += 1
            result[f"{side}_debt_usd"] += p.total_debt_usd
            result[f"{side}_net_exposure_usd"] += classified.net_exposure_usd
        return result

    def concentration_metrics(self) -> Dict[str, float]:
        """
        Top N borrower concentration metrics

        Returns:
            Dict with top_5_pct, top_10_pct, top_5_debt_usd, top_10_debt_usd
        """
        total_debt = self.total_debt_usd

        if not self.positions or total_debt == 0:
            return {
                "top_5_pct": 0,
                "top_10_pct": 0,
                "top_5_debt_usd": 0,
                "top_10_debt_usd": 0,
            }

        sorted_debt = sorted((p.total_debt_usd for p in self.positions), reverse=True)
        top_5_debt = sum(sorted_debt[:5])
        top_10_debt = sum(sorted_debt[:10])

        return {
            "top_5_pct": top_5_debt / total_debt * 100,
            "top_10_pct": top_10_debt / total_debt * 100,
            "top_5_debt_usd": top_5_debt,
            "top_10_debt_usd": top_10_debt,
        }

    def herfindahl_index(self) -> float:
        """
        Herfindahl-Hirschman Index for debt concentration

        Returns:
            HHI (0-10000, higher = more concentrated)
        """
        total_debt = self.total_debt_usd
        if not self.positions or total_debt == 0:
            return 0.0

        shares = np.array([p.total_debt_usd for p in self.positions]) / total_debt * 100
        return float(np.sum(shares ** 2))

    def weighted_avg_risk_ratio(self) -> float:
        """
        Debt-weighted average risk ratio

        Returns:
            Weighted average (inf if there is no debt)
        """
        total_debt = self.total_debt_usd
        if total_debt == 0:
            return float("inf")

        ratios = np.array([p.risk_ratio for p in self.positions])
        debts = np.array([p.total_debt_usd for p in self.positions])
        return float(np.sum(ratios * debts) / total_debt)

    # ====== Summary Report ======

    def compute_all_metrics(self) -> Dict[str, float]:
        """
        Compute all risk metrics and return as a dictionary

        Returns:
            Dict with all risk metrics
        """
        at_risk = self.at_risk_summary()
        concentration = self.concentration_metrics()
        directions = self.direction_breakdown()

        return {
            "total_positions": len(self.positions),
            "total_debt_usd": self.total_debt_usd,
            "total_collateral_usd": self.total_collateral_usd,
            "liquidatable_count": at_risk["liquidatable_count"],
            "at_risk_count": at_risk["at_risk_count"],
            "total_debt_at_risk_usd": at_risk["total_debt_at_risk_usd"],
            "weighted_avg_risk_ratio": self.weighted_avg_risk_ratio(),
            "top_5_concentration_pct": concentration["top_5_pct"],
            "top_10_concentration_pct": concentration["top_10_pct"],
            "herfindahl_index": self.herfindahl_index(),
            "long_count": directions["long_count"],
            "short_count": directions["short_count"],
        }

    def summary_report(self) -> str:
        """
        Generate a human-readable summary report

        Returns:
            Formatted string with key metrics
        """
        metrics = self.compute_all_metrics()
        buffer_pct = self.config.metrics.at_risk_buffer * 100

        report = f"""
=== Position Risk Summary ===

--- Overview ---
Total Positions: {metrics['total_positions']} ({metrics['long_count']} long, {metrics['short_count']} short)
Total Debt: ${metrics['total_debt_usd']:,.2f}
Total Collateral: ${metrics['total_collateral_usd']:,.2f}
Weighted Avg Risk Ratio: {metrics['weighted_avg_risk_ratio']:.3f}

--- Liquidation Exposure ---
Liquidatable Now: {metrics['liquidatable_count']}
Within {buffer_pct:.0f}% of Threshold: {metrics['at_risk_count']} (${metrics['total_debt_at_risk_usd']:,.2f} debt)

--- Concentration ---
Top 5 Positions: {metrics['top_5_concentration_pct']:.1f}% of debt
Top 10 Positions: {metrics['top_10_concentration_pct']:.1f}% of debt
Herfindahl Index: {metrics['herfindahl_index']:.0f}

--- Risk Ratio Distribution ---
"""
        for bucket in self.risk_distribution():
            report += f"{bucket['label']}: {bucket['count']} positions (${bucket['total_debt_usd']:,.2f})\n"

        return report
