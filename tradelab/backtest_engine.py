"""
TradeLab Backtest Engine
==========================
Time-stepped, long-only simulation of one strategy over one price
series.

Per bar:
  1. Mark the portfolio to the close and update the drawdown tracker
  2. Ask the strategy for a signal
  3. While a position is open, stop-loss / take-profit override the signal
  4. BUY only when flat, SELL only when long; anything else is a no-op
  5. Every SELL closes the whole position and appends a ``Trade``

After the last bar an open position is liquidated at the final close
with no slippage or commission and without a ``Trade`` record, so the
final capital can differ from the sum of recorded trade profits.

Each ``execute`` call builds its own position, statistics and drawdown
state; the engine itself holds none, so one engine can serve many
threads at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from tradelab import metrics
from tradelab.models import (
    DECIMAL_SCALE,
    HUNDRED,
    QUANTITY_SCALE,
    ZERO,
    BacktestRequest,
    PriceBar,
    Signal,
    decimal_to_float,
    divide,
    round_down,
)
from tradelab.strategies import TradingStrategy

logger = logging.getLogger(__name__)


# ─── Data Classes ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Trade:
    """One completed round trip, recorded when the SELL executes."""
    trade_number: int
    symbol: str
    entry_date: date
    exit_date: date
    entry_price: Decimal        # buy price including slippage
    exit_price: Decimal         # sell price including slippage
    quantity: Decimal
    profit: Decimal             # after commission
    profit_percent: Decimal
    entry_signal: str
    exit_signal: str
    holding_days: int
    portfolio_value_at_entry: Decimal
    portfolio_value_at_exit: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_number": self.trade_number,
            "symbol": self.symbol,
            "entry_date": self.entry_date.isoformat(),
            "exit_date": self.exit_date.isoformat(),
            "entry_price": float(self.entry_price),
            "exit_price": float(self.exit_price),
            "quantity": float(self.quantity),
            "profit": float(self.profit),
            "profit_percent": float(self.profit_percent),
            "entry_signal": self.entry_signal,
            "exit_signal": self.exit_signal,
            "holding_days": self.holding_days,
            "portfolio_value_at_entry": float(self.portfolio_value_at_entry),
            "portfolio_value_at_exit": float(self.portfolio_value_at_exit),
        }


@dataclass
class BacktestResult:
    """Full backtest output for one strategy on one symbol."""
    strategy_name: str
    strategy_type: str
    symbol: str
    start_date: date
    end_date: date
    initial_capital: Decimal
    final_capital: Decimal
    strategy_config: Dict[str, Any] = field(default_factory=dict)

    # Returns
    total_return: Decimal = ZERO        # %
    cagr: Decimal = ZERO                # %
    max_drawdown: Decimal = ZERO        # %

    # Risk-adjusted
    sharpe_ratio: Decimal = ZERO
    sortino_ratio: Decimal = ZERO

    # Trade statistics
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: Decimal = ZERO            # %
    avg_win: Decimal = ZERO
    avg_loss: Decimal = ZERO
    profit_factor: Decimal = ZERO
    max_win_streak: int = 0
    max_loss_streak: int = 0
    avg_holding_days: Decimal = ZERO

    trades: List[Trade] = field(default_factory=list)

    # Filled in when the result is stored
    id: Optional[int] = field(default=None, compare=False)
    executed_at: Optional[datetime] = field(default=None, compare=False)
    execution_time_ms: int = field(default=0, compare=False)

    @property
    def total_profit(self) -> Decimal:
        return self.final_capital - self.initial_capital

    @property
    def calmar_ratio(self) -> Decimal:
        return metrics.calmar_ratio(self.cagr, self.max_drawdown)

    def to_summary_dict(self) -> Dict[str, Any]:
        """Headline figures only; no trades or chart series."""
        return {
            "id": self.id,
            "strategy_name": self.strategy_name,
            "strategy_type": self.strategy_type,
            "symbol": self.symbol,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "initial_capital": float(self.initial_capital),
            "final_capital": float(self.final_capital),
            "total_return": float(self.total_return),
            "cagr": float(self.cagr),
            "max_drawdown": float(self.max_drawdown),
            "sharpe_ratio": float(self.sharpe_ratio),
            "profit_factor": float(self.profit_factor),
            "total_trades": self.total_trades,
            "win_rate": float(self.win_rate),
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "execution_time_ms": self.execution_time_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_summary_dict()
        data.update({
            "strategy_config": dict(self.strategy_config),
            "total_profit": float(self.total_profit),
            "sortino_ratio": float(self.sortino_ratio),
            "calmar_ratio": decimal_to_float(self.calmar_ratio),
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "avg_win": float(self.avg_win),
            "avg_loss": float(self.avg_loss),
            "max_win_streak": self.max_win_streak,
            "max_loss_streak": self.max_loss_streak,
            "avg_holding_days": float(self.avg_holding_days),
            "trades": [t.to_dict() for t in self.trades],
        })
        return data


# ─── Simulation State ─────────────────────────────────────────────

class PositionState:
    """
    Cash and the single open long position of one run.

    Flat ⇔ ``quantity == 0`` ⇔ ``entry_price == 0`` ⇔ ``entry_date is None``.
    """

    def __init__(self, initial_capital: Decimal):
        self.capital = initial_capital
        self.quantity = ZERO
        self.entry_price = ZERO
        self.entry_date: Optional[date] = None
        self.entry_signal: Optional[str] = None

    @property
    def has_position(self) -> bool:
        return self.quantity > 0

    def portfolio_value(self, price: Decimal) -> Decimal:
        return self.capital + self.quantity * price

    def current_return(self, price: Decimal) -> Decimal:
        """Unrealised return of the open position in percent."""
        return divide(price - self.entry_price, self.entry_price, DECIMAL_SCALE) * HUNDRED

    def open_position(self, quantity: Decimal, price: Decimal, cost: Decimal,
                      entry_date: date, signal: str) -> None:
        if self.has_position:
            raise RuntimeError("Cannot open a position while already long")
        self.quantity = quantity
        self.entry_price = price
        self.entry_date = entry_date
        self.entry_signal = signal
        self.capital -= cost

    def close_position(self, proceeds: Decimal) -> None:
        if not self.has_position:
            raise RuntimeError("Cannot close a position while flat")
        self.capital += proceeds
        self.quantity = ZERO
        self.entry_price = ZERO
        self.entry_date = None
        self.entry_signal = None


class TradeStatistics:
    """Running win/loss counters and streaks, updated in trade order."""

    def __init__(self):
        self.trade_number = 0
        self.winning_trades = 0
        self.losing_trades = 0
        self.total_win_amount = ZERO
        self.total_loss_amount = ZERO
        self.current_win_streak = 0
        self.current_loss_streak = 0
        self.max_win_streak = 0
        self.max_loss_streak = 0

    @property
    def total_trades(self) -> int:
        return self.winning_trades + self.losing_trades

    def next_trade_number(self) -> int:
        self.trade_number += 1
        return self.trade_number

    def record_trade(self, profit: Decimal) -> None:
        """A trade counts as a win only when profit is strictly positive."""
        if profit > 0:
            self.winning_trades += 1
            self.total_win_amount += profit
            self.current_win_streak += 1
            self.current_loss_streak = 0
            self.max_win_streak = max(self.max_win_streak, self.current_win_streak)
        else:
            self.losing_trades += 1
            self.total_loss_amount += abs(profit)
            self.current_loss_streak += 1
            self.current_win_streak = 0
            self.max_loss_streak = max(self.max_loss_streak, self.current_loss_streak)


class DrawdownTracker:
    """Peak equity and the worst peak-to-value decline seen so far (%)."""

    def __init__(self, initial_capital: Decimal):
        self.peak_equity = initial_capital
        self.max_drawdown = ZERO

    def update(self, portfolio_value: Decimal) -> Decimal:
        """Record one mark-to-market value and return the current drawdown."""
        if portfolio_value > self.peak_equity:
            self.peak_equity = portfolio_value
        if self.peak_equity <= 0:
            return ZERO
        drawdown = divide(
            self.peak_equity - portfolio_value, self.peak_equity, DECIMAL_SCALE,
        ) * HUNDRED
        if drawdown > self.max_drawdown:
            self.max_drawdown = drawdown
        return drawdown


# ─── Engine ───────────────────────────────────────────────────────

def to_rate(percentage: Decimal) -> Decimal:
    """Percent → fraction, e.g. ``0.1`` → ``0.001``."""
    return divide(percentage, HUNDRED, DECIMAL_SCALE)


class BacktestEngine:
    """
    Stateless executor: ``execute(request, strategy, prices)`` returns a
    fully populated ``BacktestResult``.
    """

    def execute(
        self,
        request: BacktestRequest,
        strategy: TradingStrategy,
        prices: Sequence[PriceBar],
    ) -> BacktestResult:
        position = PositionState(request.initial_capital)
        stats = TradeStatistics()
        drawdown = DrawdownTracker(request.initial_capital)
        trades: List[Trade] = []

        commission_rate = to_rate(request.commission_rate)
        slippage = to_rate(request.slippage)
        position_size_rate = to_rate(request.position_size_percent)

        logger.debug(
            "Backtest %s on %s: %d bars", strategy.name(), request.symbol, len(prices),
        )

        for i, bar in enumerate(prices):
            price = bar.close
            drawdown.update(position.portfolio_value(price))

            signal = self._determine_signal(strategy, prices, i, request, position, price)

            if signal == Signal.BUY and not position.has_position:
                self._execute_buy(
                    position, strategy, bar, commission_rate, slippage, position_size_rate,
                )
            elif signal == Signal.SELL and position.has_position:
                trades.append(self._execute_sell(
                    position, stats, request, strategy, bar, commission_rate, slippage,
                ))

        self._liquidate(position, prices)
        return self._build_result(request, strategy, position, stats, drawdown, trades)

    # ── signal ────────────────────────────────────────────────────

    @staticmethod
    def _determine_signal(
        strategy: TradingStrategy,
        prices: Sequence[PriceBar],
        index: int,
        request: BacktestRequest,
        position: PositionState,
        price: Decimal,
    ) -> Signal:
        signal = strategy.generate_signal(prices, index)
        if not position.has_position:
            return signal

        current_return = position.current_return(price)
        if (request.stop_loss_percent is not None
                and current_return <= -request.stop_loss_percent):
            return Signal.SELL
        if (request.take_profit_percent is not None
                and current_return >= request.take_profit_percent):
            return Signal.SELL
        return signal

    # ── orders ────────────────────────────────────────────────────

    @staticmethod
    def _execute_buy(
        position: PositionState,
        strategy: TradingStrategy,
        bar: PriceBar,
        commission_rate: Decimal,
        slippage: Decimal,
        position_size_rate: Decimal,
    ) -> None:
        invest_amount = position.capital * position_size_rate
        buy_price = bar.close * (1 + slippage)
        if buy_price <= 0 or invest_amount <= 0:
            return

        commission = invest_amount * commission_rate
        net_amount = invest_amount - commission
        quantity = round_down(net_amount / buy_price, QUANTITY_SCALE)
        if quantity <= 0:
            return

        position.open_position(quantity, buy_price, invest_amount, bar.date, strategy.name())

    @staticmethod
    def _execute_sell(
        position: PositionState,
        stats: TradeStatistics,
        request: BacktestRequest,
        strategy: TradingStrategy,
        bar: PriceBar,
        commission_rate: Decimal,
        slippage: Decimal,
    ) -> Trade:
        sell_price = bar.close * (1 - slippage)
        gross_amount = position.quantity * sell_price
        commission = gross_amount * commission_rate
        net_amount = gross_amount - commission

        invested_amount = position.quantity * position.entry_price
        profit = net_amount - invested_amount
        profit_percent = divide(profit, invested_amount, DECIMAL_SCALE) * HUNDRED

        trade = Trade(
            trade_number=stats.next_trade_number(),
            symbol=request.symbol,
            entry_date=position.entry_date,
            exit_date=bar.date,
            entry_price=position.entry_price,
            exit_price=sell_price,
            quantity=position.quantity,
            profit=profit,
            profit_percent=profit_percent,
            entry_signal=position.entry_signal or "",
            exit_signal=strategy.name(),
            holding_days=(bar.date - position.entry_date).days,
            portfolio_value_at_entry=invested_amount + position.capital,
            portfolio_value_at_exit=position.capital + net_amount,
        )
        stats.record_trade(profit)
        position.close_position(net_amount)
        return trade

    @staticmethod
    def _liquidate(position: PositionState, prices: Sequence[PriceBar]) -> None:
        """Close any open position at the last close, free of costs."""
        if not position.has_position:
            return
        last_close = prices[-1].close
        position.close_position(position.quantity * last_close)

    # ── result ────────────────────────────────────────────────────

    @staticmethod
    def _build_result(
        request: BacktestRequest,
        strategy: TradingStrategy,
        position: PositionState,
        stats: TradeStatistics,
        drawdown: DrawdownTracker,
        trades: List[Trade],
    ) -> BacktestResult:
        final_capital = position.capital
        days = (request.end_date - request.start_date).days
        summary = metrics.calculate_metrics(
            initial_capital=request.initial_capital,
            final_capital=final_capital,
            trades=trades,
            days=days,
            winning_trades=stats.winning_trades,
            losing_trades=stats.losing_trades,
            total_win_amount=stats.total_win_amount,
            total_loss_amount=stats.total_loss_amount,
        )

        return BacktestResult(
            strategy_name=strategy.name(),
            strategy_type=strategy.strategy_type.value,
            strategy_config=strategy.parameters(),
            symbol=request.symbol,
            start_date=request.start_date,
            end_date=request.end_date,
            initial_capital=request.initial_capital,
            final_capital=final_capital,
            total_return=summary.total_return,
            cagr=summary.cagr,
            max_drawdown=drawdown.max_drawdown,
            sharpe_ratio=summary.sharpe_ratio,
            sortino_ratio=summary.sortino_ratio,
            total_trades=stats.total_trades,
            winning_trades=stats.winning_trades,
            losing_trades=stats.losing_trades,
            win_rate=summary.win_rate,
            avg_win=summary.avg_win,
            avg_loss=summary.avg_loss,
            profit_factor=summary.profit_factor,
            max_win_streak=stats.max_win_streak,
            max_loss_streak=stats.max_loss_streak,
            avg_holding_days=summary.avg_holding_days,
            trades=trades,
        )


# ── Module-level singleton ────────────────────────────────────────

_engine: Optional[BacktestEngine] = None


def get_backtest_engine() -> BacktestEngine:
    global _engine
    if _engine is None:
        _engine = BacktestEngine()
    return _engine
