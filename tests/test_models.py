"""Tests for position and stress result models"""

from datetime import datetime

import pandas as pd
import pytest

from margin_risk.errors import InvalidPositionError
from margin_risk.state.models import (
    NO_DEBT_RISK_RATIO,
    PositionSnapshot,
    buffer_pct,
    compute_risk_ratio,
)
from margin_risk.stress.models import (
    CliffPoint,
    ScenarioSummary,
    StressCurve,
    SweepPoint,
)
from margin_risk.stress.simulator import simulate_at_shock


@pytest.fixture
def position():
    return PositionSnapshot(
        position_id="0xabc",
        pool_id="0xpool",
        base_asset_usd=120.0,
        quote_asset_usd=30.0,
        base_debt_usd=20.0,
        quote_debt_usd=80.0,
        risk_ratio=1.5,
        liquidation_threshold=1.2,
        base_asset_symbol="SUI",
        quote_asset_symbol="USDC",
        base_price_usd=3.5,
        updated_at=datetime(2025, 1, 1, 12, 0, 0),
    )


def _point(price_change, debt, count=1):
    return SweepPoint(
        price_change=price_change,
        liquidatable_count=count,
        debt_at_risk_usd=debt,
        long_liquidatable_count=count,
        short_liquidatable_count=0,
        long_debt_at_risk_usd=debt,
        short_debt_at_risk_usd=0.0,
    )


class TestRiskRatioHelpers:

    def test_compute_risk_ratio(self):
        assert compute_risk_ratio(150.0, 100.0) == 1.5

    def test_no_debt_sentinel(self):
        assert compute_risk_ratio(150.0, 0.0) == NO_DEBT_RISK_RATIO
        assert compute_risk_ratio(150.0, 0.0, no_debt_risk_ratio=50.0) == 50.0

    def test_buffer_pct(self):
        assert buffer_pct(1.5, 1.2) == pytest.approx(25.0)
        assert buffer_pct(1.2, 1.2) == 0
        assert buffer_pct(0.6, 1.2) == pytest.approx(-50.0)


class TestPositionSnapshot:

    def test_totals(self, position):
        assert position.collateral_value_usd == 150.0
        assert position.total_debt_usd == 100.0
        assert position.has_debt is True

    def test_distance_to_liquidation(self, position):
        assert position.distance_to_liquidation == pytest.approx(25.0)
        assert position.is_liquidatable is False

    def test_liquidatable_at_threshold(self):
        position = PositionSnapshot("0xedge", 110.0, 0.0, 0.0, 100.0, 1.1, 1.1)

        assert position.is_liquidatable is True
        assert position.distance_to_liquidation == 0

    def test_ratio_inconsistent_with_legs_rejected(self):
        # Legs give 200 / 150 = 1.333, not 1.05
        with pytest.raises(InvalidPositionError) as exc_info:
            PositionSnapshot("0xbadratio", 150.0, 50.0, 100.0, 50.0, 1.05, 1.1)

        assert exc_info.value.field == "risk_ratio"
        assert exc_info.value.position_id == "0xbadratio"

    def test_ratio_within_tolerance_is_normalized(self):
        position = PositionSnapshot("0xclose", 200.0, 0.0, 0.0, 150.0, 1.3333334, 1.1)

        assert position.risk_ratio == 200.0 / 150.0

    def test_no_debt_ratio_must_be_sentinel(self):
        assert PositionSnapshot("0xidle", 10.0, 0.0, 0.0, 0.0, 999.0, 1.1).risk_ratio == NO_DEBT_RISK_RATIO

        with pytest.raises(InvalidPositionError):
            PositionSnapshot("0xidle", 10.0, 0.0, 0.0, 0.0, 5.0, 1.1)

    def test_from_legs(self):
        position = PositionSnapshot.from_legs("0xlegs", 150.0, 50.0, 100.0, 50.0, 1.1)

        assert position.risk_ratio == pytest.approx(200 / 150)
        assert position.base_asset_symbol == "BASE"

    def test_from_legs_without_debt(self):
        position = PositionSnapshot.from_legs("0xnodebt", 10.0, 0.0, 0.0, 0.0, 1.1)

        assert position.risk_ratio == NO_DEBT_RISK_RATIO
        assert position.has_debt is False

    def test_is_frozen(self, position):
        with pytest.raises(AttributeError):
            position.risk_ratio = 2.0

    def test_hashable_by_value(self, position):
        twin = PositionSnapshot(**{
            k: getattr(position, k) for k in PositionSnapshot.__dataclass_fields__
        })

        assert twin == position
        assert hash(twin) == hash(position)

    def test_bool_rejected(self):
        with pytest.raises(InvalidPositionError) as exc_info:
            PositionSnapshot("0xbool", True, 0.0, 0.0, 1.0, 1.0, 1.1)

        assert exc_info.value.field == "base_asset_usd"

    def test_negative_risk_ratio_rejected(self):
        with pytest.raises(InvalidPositionError):
            PositionSnapshot("0xneg", 1.0, 0.0, 0.0, 1.0, -1.0, 1.1)

    def test_to_dict(self, position):
        data = position.to_dict()

        assert data["position_id"] == "0xabc"
        assert data["pool_id"] == "0xpool"
        assert data["collateral_value_usd"] == 150.0
        assert data["total_debt_usd"] == 100.0
        assert data["is_liquidatable"] is False
        assert data["updated_at"] == "2025-01-01T12:00:00"

    def test_to_dict_without_timestamp(self):
        position = PositionSnapshot("0xts", 1.0, 0.0, 0.0, 1.0, 1.0, 1.1)

        assert position.to_dict()["updated_at"] is None


class TestSimulatedPosition:

    def test_to_dict(self, position):
        result = simulate_at_shock(position, -10, "SUI")
        data = result.to_dict()

        assert data["position_id"] == "0xabc"
        assert data["shock_pct"] == -10
        assert data["impact"] in ("SAFE", "WATCH", "LIQ")
        assert data["simulated_collateral_usd"] == pytest.approx(138.0)
        assert data["simulated_debt_usd"] == pytest.approx(98.0)

    def test_is_new_liquidation(self):
        already = PositionSnapshot.from_legs("0xold", 100.0, 0.0, 0.0, 100.0, 1.1)
        fresh = PositionSnapshot.from_legs("0xnew", 100.0, 0.0, 0.0, 80.0, 1.1)

        assert simulate_at_shock(already, -30, "BASE").is_new_liquidation is False
        assert simulate_at_shock(fresh, -30, "BASE").is_new_liquidation is True
        assert simulate_at_shock(fresh, 0, "BASE").is_new_liquidation is False


class TestScenarioSummary:

    @pytest.fixture
    def summary(self):
        position = PositionSnapshot.from_legs("0xlong", 100.0, 0.0, 0.0, 80.0, 1.1)
        detail = simulate_at_shock(position, -30, "BASE")
        return ScenarioSummary(
            shock_pct=-30.0,
            shock_asset="BASE",
            liquidatable_count=1,
            debt_at_risk_usd=80.0,
            collateral_at_risk_usd=70.0,
            new_liquidations=1,
            first_liquidation_at=-12.0,
            positions_details=(detail,),
        )

    def test_to_dict(self, summary):
        data = summary.to_dict()

        assert data["liquidatable_count"] == 1
        assert data["debt_at_risk_usd"] == 80.0
        assert data["first_liquidation_at"] == -12.0
        assert data["positions_count"] == 1
        assert "positions_details" not in data

    def test_liquidated_positions(self, summary):
        assert [p.position_id for p in summary.liquidated_positions()] == ["0xlong"]

    def test_summary_text(self, summary):
        text = summary.summary()

        assert "Scenario: BASE -30.0%" in text
        assert "Liquidatable Positions: 1" in text
        assert "Debt at Risk: $80.00" in text
        assert "First Liquidation At: -12.0%" in text

    def test_summary_text_without_first_liquidation(self):
        summary = ScenarioSummary(0.0, "ALL", 0, 0.0, 0.0, 0, None)

        assert "First Liquidation At: none" in summary.summary()

    def test_repr_omits_details(self, summary):
        assert "positions_details" not in repr(summary)


class TestStressCurve:

    @pytest.fixture
    def curve(self):
        points = (_point(-4.0, 0.0, 0), _point(-2.0, 50.0), _point(0.0, 400.0, 3))
        cliff = CliffPoint(index=2, price_change=0.0, debt_before=50.0, debt_after=400.0, multiplier=8.0)
        return StressCurve(shock_asset="SUI", points=points, cliff=cliff)

    def test_len(self, curve):
        assert len(curve) == 3

    def test_point_at(self, curve):
        assert curve.point_at(-2).debt_at_risk_usd == 50.0
        assert curve.point_at(-3) is None

    def test_to_dataframe(self, curve):
        df = curve.to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert len(df) == 3
        assert list(df["price_change"]) == [-4.0, -2.0, 0.0]
        assert list(df["is_cliff"]) == [False, False, True]
        assert "long_debt_at_risk_usd" in df.columns

    def test_to_dataframe_without_cliff(self):
        curve = StressCurve(shock_asset="SUI", points=(_point(0.0, 10.0),))

        assert not curve.to_dataframe()["is_cliff"].any()

    def test_empty_curve_dataframe(self):
        df = StressCurve(shock_asset="SUI", points=()).to_dataframe()

        assert df.empty
        assert "price_change" in df.columns

    def test_cliff_to_dict(self, curve):
        assert curve.cliff.to_dict()["multiplier"] == 8.0
