#!/usr/bin/env python3
"""
PORTFOLIO - Paper Trading Ledger
=================================
The single piece of mutable shared state: cash balance, trade history,
open positions and running statistics.

Every mutation goes through one of three operations, each atomic under
a single lock:

    execute_trade        open a position (fill sim, slippage, fees)
    resolve_with_prices  run the exit state machine on every open trade
    close_all_positions  mark everything to market at shutdown

The lock is never held across network or AI calls; async callers run
these via asyncio.to_thread().

Exit rules per trade mode:
    SCALP       take-profit price -> stop-loss price -> max hold
    SWING       take-profit price -> 60% edge captured -> stop-loss -> max hold
    CONVICTION  safety valve only (loss > 30% of stake AND confidence < 0.70)
    (no mode)   legacy symmetric TP/SL on unrealized P&L %
A market missing from the fresh snapshot has resolved at the venue.
"""

import copy
import logging
import threading
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from .models import (
    ONE,
    ZERO,
    Direction,
    ExitReason,
    Market,
    PortfolioStats,
    Trade,
    TradeMode,
    TradePlan,
    TradeStatus,
    utcnow,
)
from .simulation import FillSimulator, SimConfig

logger = logging.getLogger(__name__)

# Swing: exit once this share of (fair value - entry) has been captured
EDGE_CAPTURE_RATIO = Decimal("0.60")

# Conviction safety valve
SAFETY_VALVE_LOSS_PCT = Decimal("-30")
SAFETY_VALVE_MIN_CONFIDENCE = Decimal("0.70")
DEFAULT_JUDGE_CONFIDENCE = Decimal("0.5")

RECENT_TRADES = 5
HUNDRED = Decimal("100")
ONE_DP = Decimal("0.1")

MarketSnapshot = Union[Mapping[str, Decimal], Iterable[Market]]


def yes_prices(markets: MarketSnapshot) -> Dict[str, Decimal]:
    """Normalize a snapshot (list of Market or {market_id: yes_price}) to a price index."""
    if isinstance(markets, Mapping):
        return {str(k): Decimal(str(v)) for k, v in markets.items()}
    return {m.id: m.yes_price for m in markets}


def _short(question: str, n: int = 35) -> str:
    return question[:n]


class Portfolio:
    """
    Lock-guarded paper portfolio.

    Usage:
        portfolio = Portfolio(Decimal("100"))
        trade = portfolio.execute_trade("0xabc", "Will X?", Direction.YES,
                                        Decimal("0.40"), Decimal("0.55"), Decimal("0.15"),
                                        Decimal("20"), SimConfig.disabled(), Decimal("5000"))
        closed = portfolio.resolve_with_prices({"0xabc": Decimal("0.60")},
                                               ZERO, ZERO, SimConfig.disabled())
    """

    def __init__(
        self,
        initial_balance: Decimal,
        simulator: Optional[FillSimulator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._lock = threading.Lock()
        self._fills = simulator or FillSimulator()
        self._clock = clock

        self._balance = Decimal(initial_balance)
        self._initial_balance = Decimal(initial_balance)
        self._trades: List[Trade] = []           # Append-only history
        self._trade_index: Dict[str, int] = {}   # trade id -> position in history
        self._open_trades: List[Trade] = []
        self._last_prices: Dict[str, Decimal] = {}  # trade id -> last seen side price
        self._win_count = 0
        self._loss_count = 0
        self._consecutive_losses = 0
        self._total_api_cost = ZERO
        self._peak_balance = Decimal(initial_balance)
        self._max_drawdown = ZERO
        self._start_time = clock()

    # ============================================================
    # READ ACCESSORS
    # ============================================================

    @property
    def balance(self) -> Decimal:
        with self._lock:
            return self._balance

    @property
    def initial_balance(self) -> Decimal:
        return self._initial_balance

    @property
    def consecutive_losses(self) -> int:
        with self._lock:
            return self._consecutive_losses

    @property
    def open_position_count(self) -> int:
        with self._lock:
            return len(self._open_trades)

    def is_alive(self, kill_threshold: Decimal) -> bool:
        with self._lock:
            return self._balance > kill_threshold

    def has_open_position(self, market_id: str) -> bool:
        with self._lock:
            return any(t.market_id == market_id for t in self._open_trades)

    def add_api_cost(self, cost: Decimal):
        with self._lock:
            self._total_api_cost += cost

    def open_trades(self) -> List[Trade]:
        with self._lock:
            return [copy.copy(t) for t in self._open_trades]

    def closed_trades(self) -> List[Trade]:
        with self._lock:
            return [copy.copy(t) for t in self._trades
                    if t.status in (TradeStatus.WON, TradeStatus.LOST)]

    def total_trade_count(self) -> int:
        with self._lock:
            return len(self._trades)

    # ============================================================
    # OPEN
    # ============================================================

    def execute_trade(
        self,
        market_id: str,
        question: str,
        direction: Direction,
        market_yes_price: Decimal,
        fair_value: Decimal,
        edge: Decimal,
        bet_size: Decimal,
        sim: SimConfig,
        market_volume: Decimal = ZERO,
        *,
        plan: Optional[TradePlan] = None,
    ) -> Optional[Trade]:
        """
        Open a position. Returns None when the order can't be placed
        (simulated rejection, bad price, nothing left after fees).
        """
        with self._lock:
            if direction == Direction.SKIP:
                return None

            if bet_size > self._balance:
                bet_size = self._balance
            if bet_size <= ZERO:
                return None

            if sim.fills_enabled:
                filled = self._fills.simulate_fill(sim, bet_size, market_volume)
                if filled is None:
                    logger.warning(f"[SIM] ORDER REJECTED: {_short(question, 40)} "
                                   f"(reject_prob={sim.reject_probability})")
                    return None
                if filled < bet_size:
                    logger.info(f"[SIM] PARTIAL FILL: ${filled} of ${bet_size} (vol=${market_volume})")
                bet_size = filled

            raw_price = direction.side_price(market_yes_price)
            if not (ZERO < raw_price < ONE):
                logger.warning(f"[PORTFOLIO] Skipping {_short(question)}: invalid price {raw_price}")
                return None

            spread = abs(market_yes_price - (ONE - market_yes_price))
            fill = self._fills.price_entry(sim, bet_size, raw_price, spread)

            if fill.total_debit > self._balance:
                fill.bet_size = max(self._balance - fill.gas_fee - fill.maker_taker_fee, ZERO)
                if fill.bet_size <= ZERO:
                    logger.warning(f"[PORTFOLIO] Skipping {_short(question)}: "
                                   f"balance ${self._balance} can't cover fees")
                    return None
                fill.slippage_cost = self._fills.entry_slippage_cost(
                    fill.raw_price, fill.fill_price, fill.bet_size)

            now = self._clock()
            trade = Trade(
                id=uuid.uuid4().hex[:8],
                timestamp=now,
                market_id=market_id,
                question=question,
                direction=direction,
                entry_price=fill.fill_price,
                fair_value=fair_value,
                edge=edge,
                bet_size=fill.bet_size,
                shares=fill.bet_size / fill.fill_price,
                balance_after=self._balance - fill.total_debit,
                raw_entry_price=raw_price,
                entry_gas_fee=fill.gas_fee,
                entry_slippage=fill.slippage_cost,
                maker_taker_fee=fill.maker_taker_fee,
            )
            if plan is not None:
                self._apply_plan(trade, plan, now)

            self._balance -= fill.total_debit
            self._trade_index[trade.id] = len(self._trades)
            self._trades.append(trade)
            self._open_trades.append(copy.copy(trade))

            if fill.gas_fee > ZERO or fill.slippage_cost > ZERO:
                logger.info(f"[SIM] gas=${fill.gas_fee} slip=${fill.slippage_cost:.4f} "
                            f"impact={fill.impact_pct * HUNDRED:.4f}% size=${fill.bet_size}")

            return copy.copy(trade)

    @staticmethod
    def _apply_plan(trade: Trade, plan: TradePlan, now: datetime):
        """Attach the Strategist's exit plan; TP/SL become price levels off the fill price."""
        trade.trade_mode = plan.mode
        trade.category = plan.market.category or None
        trade.specialist_desk = plan.specialist_desk
        trade.bull_probability = plan.bull_probability
        trade.bear_probability = plan.bear_probability
        trade.judge_fair_value = plan.fair_value_yes
        trade.judge_confidence = plan.confidence
        trade.judge_model = plan.judge_model

        if plan.take_profit_pct > ZERO:
            trade.take_profit = trade.entry_price * (ONE + plan.take_profit_pct)
        if plan.stop_loss_pct > ZERO:
            trade.stop_loss = trade.entry_price * (ONE - plan.stop_loss_pct)
        if plan.max_hold_hours > 0:
            trade.max_hold_until = now + timedelta(hours=plan.max_hold_hours)
        trade.check_interval_secs = plan.check_interval_secs

    # ============================================================
    # EXIT STATE MACHINE
    # ============================================================

    def resolve_with_prices(
        self,
        markets: MarketSnapshot,
        exit_tp_pct: Decimal,
        exit_sl_pct: Decimal,
        sim: SimConfig,
    ) -> List[Trade]:
        """
        Evaluate every open trade against fresh prices.

        Returns the trades closed this cycle; the rest stay open.
        """
        prices = yes_prices(markets)
        with self._lock:
            now = self._clock()
            resolved: List[Trade] = []
            still_open: List[Trade] = []

            for trade in self._open_trades:
                if trade.direction == Direction.SKIP:
                    continue

                yes_price = prices.get(trade.market_id)
                if yes_price is None:
                    current_price = self._last_prices.get(trade.id, trade.entry_price)
                    reason: Optional[ExitReason] = ExitReason.MARKET_RESOLVED
                else:
                    current_price = trade.direction.side_price(yes_price)
                    self._last_prices[trade.id] = current_price
                    reason = self._exit_trigger(trade, current_price, exit_tp_pct, exit_sl_pct, now)

                if reason is None:
                    still_open.append(trade)
                    continue

                resolved.append(self._close(trade, current_price, reason, sim, now))

            self._open_trades = still_open
            return resolved

    def _exit_trigger(
        self,
        trade: Trade,
        current_price: Decimal,
        exit_tp_pct: Decimal,
        exit_sl_pct: Decimal,
        now: datetime,
    ) -> Optional[ExitReason]:
        """Mode-specific exit rule. Triggers use the raw (pre-slippage) market price."""
        mode = trade.trade_mode

        if mode == TradeMode.SCALP:
            if trade.take_profit is not None and current_price >= trade.take_profit:
                return ExitReason.TAKE_PROFIT
            if trade.stop_loss is not None and current_price <= trade.stop_loss:
                return ExitReason.STOP_LOSS
            if trade.max_hold_until is not None and now > trade.max_hold_until:
                return ExitReason.TIME_EXPIRY
            return None

        if mode == TradeMode.SWING:
            if trade.take_profit is not None and current_price >= trade.take_profit:
                return ExitReason.TAKE_PROFIT
            if self._edge_captured(trade, current_price):
                return ExitReason.EDGE_CAPTURED
            if trade.stop_loss is not None and current_price <= trade.stop_loss:
                return ExitReason.STOP_LOSS
            if trade.max_hold_until is not None and now > trade.max_hold_until:
                return ExitReason.TIME_EXPIRY
            return None

        if mode == TradeMode.CONVICTION:
            pnl_pct = self._unrealized_pct(trade, current_price) * HUNDRED
            confidence = trade.judge_confidence
            if confidence is None:
                confidence = DEFAULT_JUDGE_CONFIDENCE
            if pnl_pct < SAFETY_VALVE_LOSS_PCT and confidence < SAFETY_VALVE_MIN_CONFIDENCE:
                return ExitReason.SAFETY_VALVE
            return None

        # Legacy: symmetric % TP/SL on unrealized P&L
        change_pct = self._unrealized_pct(trade, current_price)
        if exit_tp_pct > ZERO and change_pct >= exit_tp_pct:
            return ExitReason.TAKE_PROFIT
        if exit_sl_pct > ZERO and change_pct <= -exit_sl_pct:
            return ExitReason.STOP_LOSS
        return None

    @staticmethod
    def _unrealized_pct(trade: Trade, current_price: Decimal) -> Decimal:
        if trade.bet_size <= ZERO:
            return ZERO
        return (current_price - trade.entry_price) * trade.shares / trade.bet_size

    @staticmethod
    def _edge_captured(trade: Trade, current_price: Decimal) -> bool:
        """True once >= 60% of the distance from entry to fair value has been realized."""
        fair_yes = trade.judge_fair_value if trade.judge_fair_value is not None else trade.fair_value
        if fair_yes is None:
            return False
        total_edge = trade.direction.side_price(fair_yes) - trade.entry_price
        if total_edge <= ZERO:
            return False
        captured = (current_price - trade.entry_price) / total_edge
        return captured >= EDGE_CAPTURE_RATIO

    def close_all_positions(self, markets: MarketSnapshot, sim: SimConfig) -> List[Trade]:
        """Force-close every open trade at current price (graceful shutdown)."""
        prices = yes_prices(markets)
        with self._lock:
            now = self._clock()
            closed = []
            for trade in self._open_trades:
                yes_price = prices.get(trade.market_id)
                if yes_price is None or trade.direction == Direction.SKIP:
                    current_price = self._last_prices.get(trade.id, trade.entry_price)
                else:
                    current_price = trade.direction.side_price(yes_price)
                closed.append(self._close(trade, current_price, ExitReason.MANUAL_STOP, sim, now))
            self._open_trades = []
            return closed

    def _close(
        self,
        trade: Trade,
        current_price: Decimal,
        reason: ExitReason,
        sim: SimConfig,
        now: datetime,
    ) -> Trade:
        """Settle one open trade. Caller holds the lock and drops it from the open set."""
        fill = self._fills.price_exit(
            sim, trade.bet_size, trade.shares, trade.entry_price, current_price)

        trade.raw_exit_price = current_price
        trade.exit_price = fill.fill_price
        trade.exit_slippage = fill.slippage_cost
        trade.exit_gas_fee = fill.gas_fee
        trade.platform_fee = fill.platform_fee
        trade.maker_taker_fee = trade.maker_taker_fee + fill.maker_taker_fee
        trade.pnl = fill.gross_pnl
        trade.exit_reason = reason
        hold_hours = (now - trade.timestamp).total_seconds() / 3600
        trade.hold_duration_hours = hold_hours

        # Win/loss on gross P&L (trade quality, not fee drag)
        if fill.gross_pnl > ZERO:
            trade.status = TradeStatus.WON
            self._win_count += 1
            self._consecutive_losses = 0
        else:
            trade.status = TradeStatus.LOST
            self._loss_count += 1
            self._consecutive_losses += 1

        returned = trade.bet_size + fill.gross_pnl - fill.total_fees
        self._balance += max(returned, ZERO)
        trade.balance_after = self._balance
        self._update_drawdown()

        self._trades[self._trade_index[trade.id]] = copy.copy(trade)
        self._last_prices.pop(trade.id, None)

        logger.info(
            f"[PORTFOLIO] CLOSED [{trade.trade_mode.value if trade.trade_mode else '?'}]: "
            f"{trade.direction.value} {_short(trade.question)} | PnL ${fill.gross_pnl:.4f} "
            f"(net ${trade.net_pnl:.4f}) | Fees ${trade.total_fees:.4f} | "
            f"Reason: {reason.short} | Held {hold_hours:.1f}h"
        )
        return copy.copy(trade)

    def _update_drawdown(self):
        if self._balance > self._peak_balance:
            self._peak_balance = self._balance
        if self._peak_balance > ZERO:
            dd = (self._peak_balance - self._balance) / self._peak_balance
            if dd > self._max_drawdown:
                self._max_drawdown = dd

    # ============================================================
    # STATS
    # ============================================================

    def stats_with_markets(self, markets: MarketSnapshot) -> PortfolioStats:
        """Read-only snapshot; open trades are marked to the given prices."""
        prices = yes_prices(markets)
        with self._lock:
            elapsed = self._clock() - self._start_time
            closed_count = self._win_count + self._loss_count
            win_rate = (self._win_count / closed_count * 100) if closed_count > 0 else 0.0
            realized = self._balance - self._initial_balance

            locked = sum((t.bet_size for t in self._open_trades), ZERO)
            unrealized = ZERO
            for trade in self._open_trades:
                yes_price = prices.get(trade.market_id)
                if yes_price is None or trade.direction == Direction.SKIP:
                    continue
                unrealized += (trade.direction.side_price(yes_price) - trade.entry_price) * trade.shares

            total_pnl = realized + unrealized
            roi = ZERO
            if self._initial_balance > ZERO:
                roi = (total_pnl / self._initial_balance * HUNDRED).quantize(ONE_DP)

            gas = slippage = platform = maker_taker = ZERO
            for t in self._trades:
                gas += t.entry_gas_fee + t.exit_gas_fee
                slippage += t.entry_slippage + t.exit_slippage
                platform += t.platform_fee
                maker_taker += t.maker_taker_fee

            return PortfolioStats(
                balance=self._balance,
                initial_balance=self._initial_balance,
                realized_pnl=realized,
                unrealized_pnl=unrealized,
                total_pnl=total_pnl,
                roi=roi,
                peak_balance=self._peak_balance,
                max_drawdown_pct=(self._max_drawdown * HUNDRED).quantize(ONE_DP),
                win_count=self._win_count,
                loss_count=self._loss_count,
                win_rate=win_rate,
                total_api_cost=self._total_api_cost,
                open_positions=len(self._open_trades),
                locked_balance=locked,
                elapsed_hours=elapsed.total_seconds() / 3600,
                consecutive_losses=self._consecutive_losses,
                total_fees_paid=gas + slippage + platform + maker_taker,
                total_slippage_cost=slippage,
                total_gas_fees=gas,
                total_platform_fees=platform,
                total_maker_taker_fees=maker_taker,
                recent_trades=[copy.copy(t) for t in reversed(self._trades[-RECENT_TRADES:])],
            )

    def stats(self) -> PortfolioStats:
        return self.stats_with_markets({})
