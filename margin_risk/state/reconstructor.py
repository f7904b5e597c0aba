"""Position reconstruction from raw margin manager states"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from ..config import DEFAULT_CONFIG, EngineConfig
from ..errors import InvalidPositionError
from .models import PositionSnapshot

logger = logging.getLogger(__name__)

# On-chain pool config stores ratios scaled by 1e9
RATIO_SCALE = 1e9

# Relative gap between the reported and the priced risk ratio worth logging
REPORTED_RATIO_TOLERANCE = 0.01

STATE_COLUMNS = [
    "margin_manager_id",
    "deepbook_pool_id",
    "risk_ratio",
    "base_asset",
    "quote_asset",
    "base_debt",
    "quote_debt",
    "base_pyth_price",
    "base_pyth_decimals",
    "quote_pyth_price",
    "quote_pyth_decimals",
    "base_asset_symbol",
    "quote_asset_symbol",
    "updated_at",
]


def pyth_price_to_usd(pyth_price: float, pyth_decimals: Optional[int]) -> float:
    """
    Convert a Pyth integer price to a USD price

    Args:
        pyth_price: Price scaled by 10^|decimals|
        pyth_decimals: Pyth exponent (sign is ignored)

    Returns:
        USD price, 0 if the price or exponent is missing
    """
    if not pyth_price or pyth_decimals is None or pd.isna(pyth_decimals):
        return 0.0
    return float(pyth_price) / (10 ** abs(int(pyth_decimals)))


def _float(row: Dict, key: str) -> float:
    value = row.get(key)
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return 0.0
    return float(value)


def _text(row: Dict, key: str, default: str) -> str:
    value = row.get(key)
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == "":
        return default
    return str(value)


class PositionLoader:
    """Builds PositionSnapshot objects from indexer margin manager states"""

    def __init__(self, pool_config: Optional[dict] = None, config: Optional[EngineConfig] = None):
        """
        Initialize position loader

        Args:
            pool_config: Latest pool config event payload (config_json), or None
            config: Engine configuration
        """
        self.config = config or DEFAULT_CONFIG
        pool_config = pool_config or {}

        loader_config = self.config.loader
        risk_ratios = pool_config.get("risk_ratios") or {}

        self.liquidation_threshold = self._scaled(
            risk_ratios.get("liquidation_risk_ratio"), loader_config.default_liquidation_threshold
        )
        self.user_reward_pct = self._scaled(
            pool_config.get("user_liquidation_reward"), loader_config.user_liquidation_reward
        )
        self.pool_reward_pct = self._scaled(
            pool_config.get("pool_liquidation_reward"), loader_config.pool_liquidation_reward
        )

        logger.info(f"Initialized loader: liquidation threshold {self.liquidation_threshold:.4f}, "
                    f"reward {(self.user_reward_pct + self.pool_reward_pct) * 100:.1f}%")

    @staticmethod
    def _scaled(raw, default: float) -> float:
        if not raw:
            return default
        return float(raw) / RATIO_SCALE

    def _build_position(self, row: Dict) -> Optional[PositionSnapshot]:
        base_debt = _float(row, "base_debt")
        quote_debt = _float(row, "quote_debt")
        risk_ratio = _float(row, "risk_ratio")

        # Only positions with an active loan and a reported ratio
        if (base_debt <= 0 and quote_debt <= 0) or not risk_ratio:
            return None

        base_price = pyth_price_to_usd(row.get("base_pyth_price"), row.get("base_pyth_decimals"))
        quote_price = pyth_price_to_usd(row.get("quote_pyth_price"), row.get("quote_pyth_decimals"))

        base_asset = _float(row, "base_asset")
        quote_asset = _float(row, "quote_asset")
        manager_id = str(row["margin_manager_id"])

        # A held leg without a price cannot be valued, so the ratio would be wrong
        if (base_asset or base_debt) and not base_price:
            logger.warning(f"Skipping {manager_id}: missing base price")
            return None
        if (quote_asset or quote_debt) and not quote_price:
            logger.warning(f"Skipping {manager_id}: missing quote price")
            return None

        base_debt_usd = base_debt * base_price
        quote_debt_usd = quote_debt * quote_price
        total_debt_usd = base_debt_usd + quote_debt_usd

        updated_at = row.get("updated_at")
        if updated_at is not None and not isinstance(updated_at, datetime):
            updated_at = pd.to_datetime(updated_at).to_pydatetime()

        position = PositionSnapshot.from_legs(
            position_id=manager_id,
            base_asset_usd=base_asset * base_price,
            quote_asset_usd=quote_asset * quote_price,
            base_debt_usd=base_debt_usd,
            quote_debt_usd=quote_debt_usd,
            liquidation_threshold=self.liquidation_threshold,
            pool_id=_text(row, "deepbook_pool_id", "") or None,
            base_asset_symbol=_text(row, "base_asset_symbol", "BASE"),
            quote_asset_symbol=_text(row, "quote_asset_symbol", "QUOTE"),
            base_price_usd=base_price or None,
            estimated_reward_usd=total_debt_usd * (self.user_reward_pct + self.pool_reward_pct),
            updated_at=updated_at,
        )

        if abs(position.risk_ratio - risk_ratio) > REPORTED_RATIO_TOLERANCE * risk_ratio:
            logger.debug(f"{manager_id}: reported risk ratio {risk_ratio:.4f}, "
                         f"priced legs give {position.risk_ratio:.4f}")
        return position

    def load_positions(self, states: Union[pd.DataFrame, Iterable[Dict]]) -> List[PositionSnapshot]:
        """
        Convert raw margin manager states into position snapshots

        Rows without debt or risk ratio are dropped, as are rows holding a
        leg with no price. Risk ratios are recomputed from the priced legs.
        Rows that fail validation are logged and skipped.

        Args:
            states: DataFrame or iterable of dicts with STATE_COLUMNS

        Returns:
            Positions sorted by risk ratio (most at risk first)
        """
        if isinstance(states, pd.DataFrame):
            records = states.to_dict("records")
        else:
            records = list(states)

        logger.info(f"Loading {len(records)} margin manager states...")

        positions = []
        skipped = 0

        for row in records:
            try:
                position = self._build_position(row)
            except (InvalidPositionError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Error processing state for {row.get('margin_manager_id')}: {e}")
                skipped += 1
                continue

            if position is None:
                skipped += 1
                continue
            positions.append(position)

        positions.sort(key=lambda p: p.risk_ratio)

        logger.info(f"Loaded {len(positions)} positions ({skipped} skipped)")
        if positions:
            liquidatable = sum(1 for p in positions if p.is_liquidatable)
            logger.info(f"  Liquidatable: {liquidatable}/{len(positions)}, "
                        f"min risk ratio {positions[0].risk_ratio:.3f}")

        return positions
