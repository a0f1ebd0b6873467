"""Tests for asset scoring."""

from datetime import timedelta

import pytest

from sniper_app.analysis.risk_analyzer import (
    Recommendation,
    RiskAnalyzer,
    calculate_buy_pressure,
    calculate_momentum,
    calculate_volatility,
    recommend,
    score_fundamentals,
    score_risk,
)
from sniper_app.config.defaults import RiskParams
from sniper_app.errors import TransientVenueError
from sniper_app.scanner.asset_scanner import DiscoveryEvent
from sniper_app.utils.time import utc_now
from sniper_app.venues.base import VolumeBreakdown


@pytest.fixture
def params() -> RiskParams:
    return RiskParams()


def _discovery(instrument, age=timedelta(0)):
    now = utc_now()
    return DiscoveryEvent(instrument=instrument, pair_id="pair-0", discovered_at=now,
                          pair_created_at=now - age)


class TestScoringFunctions:
    """Test the pure scoring helpers."""

    def test_zero_liquidity_contributes_nothing(self, params):
        """Liquidity of 0 yields a 0 liquidity term in the fundamental score."""
        score, components = score_fundamentals(0.0, 200, 200_000, 0.0, params)

        assert components["liquidity"] == 0.0
        assert components["holders"] == pytest.approx(20.0)
        assert components["market_cap"] == pytest.approx(30.0)
        assert components["volatility"] == pytest.approx(20.0)
        assert score == pytest.approx(70.0)

    def test_zero_liquidity_is_maximum_liquidity_risk(self, params):
        score, components = score_risk(0.0, 1_000, 0.0, params.age_window_seconds, params)

        assert components["liquidity"] == pytest.approx(30.0)
        assert components["age"] == 0.0
        assert score == pytest.approx(30.0)

    def test_metrics_saturate_at_threshold(self, params):
        score, _ = score_fundamentals(10_000_000, 10_000, 10_000_000, 0.0, params)
        assert score == pytest.approx(100.0)

    @pytest.mark.parametrize("liquidity,holders,market_cap,volatility,age", [
        (0, 0, 0, 0, 0),
        (1e12, 1e9, 1e12, 50.0, 1e12),
        (-5, -1, -10, -2.0, -100),
        (25_000, 50, 50_000, 0.5, 3600),
    ])
    def test_scores_within_bounds(self, params, liquidity, holders, market_cap, volatility, age):
        fundamental, _ = score_fundamentals(liquidity, holders, market_cap, volatility, params)
        risk, _ = score_risk(liquidity, holders, volatility, age, params)

        assert 0.0 <= fundamental <= 100.0
        assert 0.0 <= risk <= 100.0

    def test_volatility_and_momentum(self):
        assert calculate_volatility([1.0]) == 0.0
        assert calculate_volatility([1.0, 1.0, 1.0]) == 0.0
        assert calculate_momentum([1.0]) == 0.0
        assert calculate_momentum([1.0, 1.0]) == 0.0
        assert calculate_momentum([1.0, 2.0, 3.0, 4.0]) > 0

    def test_buy_pressure(self):
        assert calculate_buy_pressure(VolumeBreakdown()) == 0.0
        assert calculate_buy_pressure(VolumeBreakdown(75.0, 25.0)) == pytest.approx(0.75)


class TestRecommendation:
    """Test the buy gate and confidence."""

    def test_buy_when_every_gate_passes(self, params):
        recommendation, confidence = recommend(80.0, 20.0, 0.1, 0.8, params)

        assert recommendation == Recommendation.BUY
        # 100 * (0.32 + 0.24 + 0.15 + 0.12)
        assert confidence == 83

    @pytest.mark.parametrize("fundamental,risk,momentum,pressure", [
        (69.9, 20.0, 0.1, 0.7),
        (80.0, 30.1, 0.1, 0.7),
        (80.0, 20.0, 0.04, 0.7),
        (80.0, 20.0, 0.1, 0.59),
    ])
    def test_hold_when_any_gate_fails(self, params, fundamental, risk, momentum, pressure):
        recommendation, confidence = recommend(fundamental, risk, momentum, pressure, params)

        assert recommendation == Recommendation.HOLD
        assert confidence == 0


class TestRiskAnalyzer:
    """Test profile production through a venue."""

    def test_strong_established_asset_is_recommended(self, venue, token_instrument):
        venue.set_market_data(token_instrument, liquidity=100_000, holders=500,
                              market_cap=1_000_000, buy_volume=800, sell_volume=200)
        venue.set_price_history(token_instrument, [1.0] * 30 + [1.2])
        analyzer = RiskAnalyzer({"paper": venue}, RiskParams())

        profile = analyzer.analyze(_discovery(token_instrument, age=timedelta(days=30)))

        assert profile.fundamental_score >= 70
        assert profile.risk_score <= 30
        assert profile.momentum > 0.05
        assert profile.buy_pressure == pytest.approx(0.8)
        assert profile.recommendation == Recommendation.BUY
        assert profile.confidence > 0

    def test_missing_market_data_degrades_to_neutral(self, venue, token_instrument):
        venue.fail("get_liquidity", TransientVenueError("down", venue="paper"))
        analyzer = RiskAnalyzer({"paper": venue}, RiskParams())

        profile = analyzer.analyze(_discovery(token_instrument))

        assert profile.liquidity == 0.0
        assert profile.fundamental_components["liquidity"] == 0.0
        assert profile.recommendation == Recommendation.HOLD
        assert 0 <= profile.fundamental_score <= 100
        assert 0 <= profile.risk_score <= 100

    def test_unexpected_fetch_error_still_profiles(self, venue, token_instrument):
        venue.set_market_data(token_instrument, liquidity=100_000, holders=500)
        venue.fail("get_price_history", ValueError("bad payload"))
        venue.fail("get_liquidity", KeyError("liquidity"))
        analyzer = RiskAnalyzer({"paper": venue}, RiskParams())

        profile = analyzer.analyze(_discovery(token_instrument))

        assert profile.liquidity == 0.0
        assert profile.holder_count == 500
        assert profile.momentum == 0.0
        assert profile.recommendation == Recommendation.HOLD
        assert analyzer.get_asset_profile(token_instrument) is profile

    def test_calculation_failure_gives_worst_scores(self, venue, token_instrument):
        venue.set_market_data(token_instrument, liquidity=100_000)
        analyzer = RiskAnalyzer({"paper": venue}, RiskParams())
        venue.get_holder_count = lambda instrument: None

        profile = analyzer.analyze(_discovery(token_instrument))

        assert profile.fundamental_score == 0.0
        assert profile.risk_score == 100.0
        assert profile.error is not None
        assert profile.recommendation == Recommendation.HOLD

    def test_rescore_appends_history(self, venue, token_instrument):
        analyzer = RiskAnalyzer({"paper": venue}, RiskParams())
        first = analyzer.analyze(_discovery(token_instrument))

        venue.set_market_data(token_instrument, liquidity=50_000)
        second = analyzer.rescore(token_instrument)

        history = analyzer.get_profile_history(token_instrument)
        assert history == [first, second]
        assert first.liquidity == 0.0
        assert second.liquidity == 50_000
        assert second.discovered_at == first.discovered_at
        assert analyzer.get_asset_profile(token_instrument) is second

    def test_unknown_instrument_has_no_profile(self, token_instrument):
        analyzer = RiskAnalyzer({}, RiskParams())
        assert analyzer.get_asset_profile(token_instrument) is None
        assert analyzer.get_profile_history(token_instrument) == []
