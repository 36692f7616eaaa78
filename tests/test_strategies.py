"""
Unit Tests – Strategies & Indicators
=======================================
Signal rules, warm-up periods, names and the strategy factory.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from tradelab.exceptions import StrategyConfigurationError
from tradelab.models import Signal, StrategyType
from tradelab.strategies import (
    BollingerBandStrategy,
    MACDStrategy,
    MAType,
    MomentumStrategy,
    MovingAverageCrossStrategy,
    RSIStrategy,
    available_strategies,
    create_strategy,
    default_parameters,
    resolve_strategy_type,
)
from tradelab.strategies.rsi import relative_strength_index
from tradelab.ta_utils import ema_series, percent_change, sma, std_dev


def _signals(strategy, prices):
    return [strategy.generate_signal(prices, i) for i in range(len(prices))]


# ══════════════════════════════════════════════════════════════════
# Indicator helpers
# ══════════════════════════════════════════════════════════════════

class TestIndicators:

    def test_sma(self):
        values = [Decimal(v) for v in (1, 2, 3, 4)]
        assert sma(values, 3, 2) == Decimal("3.5")
        assert sma(values, 2, 3) == Decimal("2")

    def test_sma_insufficient_data(self):
        with pytest.raises(ValueError):
            sma([Decimal(1)], 0, 2)

    def test_ema_seeded_with_sma(self):
        values = [Decimal(v) for v in (2, 4, 6, 8)]
        series = ema_series(values, 3)
        assert series[:2] == [None, None]
        assert series[2] == Decimal("4")
        # k = 0.5 for a 3-period EMA
        assert series[3] == Decimal("6")

    def test_std_dev_population(self):
        values = [Decimal(v) for v in (2, 4, 4, 4, 5, 5, 7, 9)]
        assert std_dev(values, 7, 8, Decimal(5)) == Decimal("2")

    def test_percent_change_zero_base(self):
        assert percent_change(Decimal(5), Decimal(0)) == 0
        assert percent_change(Decimal(11), Decimal(10)) == Decimal("10")

    def test_rsi_all_gains(self):
        values = [Decimal(v) for v in (1, 2, 3, 4)]
        assert relative_strength_index(values, 3, 3) == Decimal("100")

    def test_rsi_balanced(self):
        values = [Decimal(v) for v in (10, 9, 10)]
        assert relative_strength_index(values, 2, 2) == Decimal("50")


# ══════════════════════════════════════════════════════════════════
# Moving Average
# ══════════════════════════════════════════════════════════════════

class TestMovingAverageCross:

    def test_golden_cross_buys(self, bars):
        strategy = MovingAverageCrossStrategy(short_period=2, long_period=3)
        signals = _signals(strategy, bars([10, 10, 10, 10, 12]))
        assert signals == [Signal.HOLD] * 4 + [Signal.BUY]

    def test_dead_cross_sells(self, bars):
        strategy = MovingAverageCrossStrategy(short_period=2, long_period=3)
        signals = _signals(strategy, bars([10, 10, 10, 10, 12, 6]))
        assert signals[-1] == Signal.SELL

    def test_warm_up_holds(self, bars):
        strategy = MovingAverageCrossStrategy(short_period=5, long_period=10)
        prices = bars([100 - i if i % 2 else 100 + i for i in range(10)])
        assert set(_signals(strategy, prices)) == {Signal.HOLD}

    def test_ema_variant(self, bars):
        strategy = MovingAverageCrossStrategy(short_period=2, long_period=3, ma_type=MAType.EMA)
        signals = _signals(strategy, bars([10, 10, 10, 10, 12]))
        assert signals[-1] == Signal.BUY
        assert strategy.name() == "MA Cross (2/3 EMA)"

    def test_name_and_parameters(self):
        strategy = MovingAverageCrossStrategy()
        assert strategy.name() == "MA Cross (20/60 SMA)"
        assert strategy.parameters() == {
            "short_period": 20, "long_period": 60, "ma_type": "SMA",
        }
        assert strategy.minimum_data_points == 61


# ══════════════════════════════════════════════════════════════════
# RSI
# ══════════════════════════════════════════════════════════════════

class TestRSI:

    def test_recovery_from_oversold_buys(self, bars):
        strategy = RSIStrategy(period=2)
        assert _signals(strategy, bars([10, 9, 8, 9]))[-1] == Signal.BUY

    def test_drop_from_overbought_sells(self, bars):
        strategy = RSIStrategy(period=2)
        assert _signals(strategy, bars([10, 11, 12, 11]))[-1] == Signal.SELL

    def test_warm_up(self, bars):
        strategy = RSIStrategy(period=2)
        assert _signals(strategy, bars([10, 9, 8])) == [Signal.HOLD] * 3

    def test_name(self):
        assert RSIStrategy().name() == "RSI (14, 30/70)"
        assert RSIStrategy(period=7, overbought_level=80, oversold_level=20).name() == "RSI (7, 20/80)"


# ══════════════════════════════════════════════════════════════════
# Bollinger Band
# ══════════════════════════════════════════════════════════════════

class TestBollingerBand:

    def test_lower_band_bounce_buys(self, bars):
        strategy = BollingerBandStrategy(period=3, std_dev_multiplier=1.0)
        signals = _signals(strategy, bars([10, 10, 10, 7, 10]))
        assert signals[:3] == [Signal.HOLD] * 3
        assert signals[-1] == Signal.BUY

    def test_upper_band_reject_sells(self, bars):
        strategy = BollingerBandStrategy(period=3, std_dev_multiplier=1.0)
        signals = _signals(strategy, bars([10, 10, 10, 13, 10]))
        assert signals[-1] == Signal.SELL

    def test_bands_symmetric(self):
        strategy = BollingerBandStrategy(period=3, std_dev_multiplier=2.0)
        values = [Decimal(v) for v in (10, 10, 10)]
        bands = strategy.bands(values, 2)
        assert bands.middle == bands.upper == bands.lower == Decimal("10")

    def test_name(self):
        assert BollingerBandStrategy().name() == "Bollinger Band (20, 2.0)"


# ══════════════════════════════════════════════════════════════════
# Momentum
# ══════════════════════════════════════════════════════════════════

class TestMomentum:

    def test_crossing_entry_threshold_buys(self, bars):
        strategy = MomentumStrategy(period=2)
        assert _signals(strategy, bars([10, 10, 10, 11]))[-1] == Signal.BUY

    def test_crossing_exit_threshold_sells(self, bars):
        strategy = MomentumStrategy(period=2)
        assert _signals(strategy, bars([10, 10, 10, 9]))[-1] == Signal.SELL

    def test_thresholds(self, bars):
        strategy = MomentumStrategy(period=2, entry_threshold=15.0)
        assert _signals(strategy, bars([10, 10, 10, 11]))[-1] == Signal.HOLD

    def test_name(self):
        assert MomentumStrategy().name() == "Momentum (20 days)"


# ══════════════════════════════════════════════════════════════════
# MACD
# ══════════════════════════════════════════════════════════════════

class TestMACD:

    def test_warm_up(self):
        strategy = MACDStrategy()
        assert strategy.minimum_data_points == 35

    def test_signal_mirrors_macd_before_seed(self):
        strategy = MACDStrategy(fast_period=2, slow_period=3, signal_period=3)
        values = [Decimal(v) for v in (10, 11, 12, 13)]
        macd, signal = strategy.macd_lines(values)
        assert macd[:2] == [None, None]
        assert signal == macd

    def test_reversal_produces_buy(self, bars):
        strategy = MACDStrategy(fast_period=3, slow_period=6, signal_period=3)
        falling = [round(100 - 0.1 * i * i, 2) for i in range(30)]
        closes = falling + [round(falling[-1] + 3 * i, 2) for i in range(1, 16)]
        signals = _signals(strategy, bars(closes))
        assert set(signals[:strategy.minimum_data_points]) == {Signal.HOLD}
        assert Signal.BUY in signals[30:]

    def test_name(self):
        assert MACDStrategy().name() == "MACD (12/26/9)"


# ══════════════════════════════════════════════════════════════════
# Factory
# ══════════════════════════════════════════════════════════════════

class TestStrategyFactory:

    @pytest.mark.parametrize("name,cls", [
        ("MOVING_AVERAGE", MovingAverageCrossStrategy),
        ("rsi", RSIStrategy),
        (" bollinger_band ", BollingerBandStrategy),
        ("Momentum", MomentumStrategy),
        (StrategyType.MACD, MACDStrategy),
    ])
    def test_resolves_types(self, name, cls):
        assert isinstance(create_strategy(name), cls)

    def test_unknown_type(self):
        with pytest.raises(StrategyConfigurationError) as exc:
            resolve_strategy_type("TURTLE")
        assert exc.value.code == 400

    def test_params_are_cast(self):
        strategy = create_strategy("RSI", {"period": "10", "overbought_level": 80.0})
        assert strategy.period == 10
        assert strategy.overbought_level == 80
        assert strategy.oversold_level == 30

    def test_float_params(self):
        strategy = create_strategy("BOLLINGER_BAND", {"std_dev_multiplier": "1.5"})
        assert strategy.std_dev_multiplier == 1.5

    def test_bad_param_value(self):
        with pytest.raises(StrategyConfigurationError):
            create_strategy("MOMENTUM", {"period": "fast"})

    @pytest.mark.parametrize("params", [{"period": 0}, {"period": -3}])
    def test_non_positive_period(self, params):
        with pytest.raises(StrategyConfigurationError):
            create_strategy("RSI", params)

    def test_ma_type(self):
        assert create_strategy("MOVING_AVERAGE", {"ma_type": "ema"}).ma_type == MAType.EMA
        with pytest.raises(StrategyConfigurationError):
            create_strategy("MOVING_AVERAGE", {"ma_type": "WMA"})

    def test_default_parameters(self):
        assert default_parameters("MACD") == {
            "fast_period": 12, "slow_period": 26, "signal_period": 9,
        }

    def test_catalogue(self):
        catalogue = available_strategies()
        assert [s["type"] for s in catalogue] == [t.value for t in StrategyType]
        assert all(s["label"] and s["description"] for s in catalogue)
