#!/usr/bin/env python3
"""
MODELS - Trade Records, Market Snapshots, Pipeline Outputs
===========================================================
Value objects shared by the sizing engine, the ledger and the runner.

- Trade: one position through its whole lifecycle (open -> closed)
- Market: a price/liquidity snapshot from the market feed
- Verdict: direction + fair value + confidence from the reasoning pipeline
- RiskDecision / TradePlan: Risk Manager and Strategist outputs
- PortfolioStats: read-only projection of the ledger

All money and probability values are Decimal.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

ZERO = Decimal("0")
ONE = Decimal("1")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class Direction(str, Enum):
    YES = "YES"
    NO = "NO"
    SKIP = "SKIP"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        """Anything that isn't YES/NO is a SKIP."""
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.SKIP

    def side_price(self, yes_price: Decimal) -> Decimal:
        """Price of the traded side given the YES price."""
        if self is Direction.NO:
            return ONE - yes_price
        return yes_price


class TradeStatus(str, Enum):
    OPEN = "OPEN"
    WON = "WON"
    LOST = "LOST"
    CANCELLED = "CANCELLED"


class ExitReason(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    TIME_EXPIRY = "TIME_EXPIRY"
    MARKET_RESOLVED = "MARKET_RESOLVED"
    MANUAL_STOP = "MANUAL_STOP"
    SAFETY_VALVE = "SAFETY_VALVE"      # Conviction trade, deep loss + low confidence
    EDGE_CAPTURED = "EDGE_CAPTURED"    # Swing trade, 60%+ of edge realized

    @property
    def short(self) -> str:
        return _EXIT_SHORT[self]


_EXIT_SHORT = {
    ExitReason.TAKE_PROFIT: "TP",
    ExitReason.STOP_LOSS: "SL",
    ExitReason.TIME_EXPIRY: "TIME",
    ExitReason.MARKET_RESOLVED: "RESOLVED",
    ExitReason.MANUAL_STOP: "MANUAL",
    ExitReason.SAFETY_VALVE: "SAFETY",
    ExitReason.EDGE_CAPTURED: "EDGE",
}


class TradeMode(str, Enum):
    SCALP = "SCALP"            # Short-term, tight TP/SL
    SWING = "SWING"            # Medium-term, edge-capture exit
    CONVICTION = "CONVICTION"  # Hold to resolution, safety valve only


# ============================================================
# TRADE RECORD
# ============================================================

@dataclass
class Trade:
    """One position, from open to close."""
    id: str
    timestamp: datetime
    market_id: str
    question: str
    direction: Direction
    entry_price: Decimal              # Post-slippage fill price
    fair_value: Decimal               # Believed YES fair value at entry
    edge: Decimal
    bet_size: Decimal
    shares: Decimal
    status: TradeStatus = TradeStatus.OPEN
    exit_price: Optional[Decimal] = None
    pnl: Decimal = ZERO
    balance_after: Decimal = ZERO

    # Exit plan
    trade_mode: Optional[TradeMode] = None
    take_profit: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    max_hold_until: Optional[datetime] = None
    check_interval_secs: int = 0      # Fast-loop re-check cadence for this mode
    exit_reason: Optional[ExitReason] = None
    hold_duration_hours: Optional[float] = None

    # Provenance (audit only)
    category: Optional[str] = None
    specialist_desk: Optional[str] = None
    bull_probability: Optional[Decimal] = None
    bear_probability: Optional[Decimal] = None
    judge_fair_value: Optional[Decimal] = None
    judge_confidence: Optional[Decimal] = None
    judge_model: Optional[str] = None

    # Simulation cost accounting
    raw_entry_price: Optional[Decimal] = None
    raw_exit_price: Optional[Decimal] = None
    entry_gas_fee: Decimal = ZERO
    exit_gas_fee: Decimal = ZERO
    entry_slippage: Decimal = ZERO
    exit_slippage: Decimal = ZERO
    platform_fee: Decimal = ZERO
    maker_taker_fee: Decimal = ZERO

    @property
    def total_fees(self) -> Decimal:
        """Every itemized cost, slippage included."""
        return (self.entry_gas_fee + self.exit_gas_fee + self.entry_slippage
                + self.exit_slippage + self.platform_fee + self.maker_taker_fee)

    @property
    def net_pnl(self) -> Decimal:
        """Gross P&L minus costs not already reflected in the fill prices."""
        return (self.pnl - self.entry_gas_fee - self.exit_gas_fee
                - self.maker_taker_fee - self.platform_fee)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation (Decimals as strings)."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, Decimal):
                value = str(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[f.name] = value
        return data


# ============================================================
# PIPELINE BOUNDARY MODELS
# ============================================================

class Market(BaseModel):
    """Market snapshot from the price feed. Prices are YES/NO share prices."""
    id: str
    question: str = ""
    category: str = ""
    end_date: str = ""
    yes_price: Decimal
    no_price: Decimal = ZERO
    volume: Decimal = ZERO
    liquidity: Decimal = ZERO
    slug: str = ""


class Verdict(BaseModel):
    """Final verdict from the reasoning pipeline (judge)."""
    market_id: str
    fair_value_yes: Decimal = Field(..., ge=0, le=1)
    confidence: Decimal = Field(..., ge=0, le=1)
    direction: Direction = Direction.SKIP
    reasoning: str = ""
    specialist_desk: Optional[str] = None
    bull_probability: Optional[Decimal] = None
    bear_probability: Optional[Decimal] = None
    judge_model: Optional[str] = None

    @field_validator("direction", mode="before")
    @classmethod
    def _parse_direction(cls, value):
        if isinstance(value, Direction):
            return value
        return Direction.parse(value)


class RiskDecision(BaseModel):
    """Risk Manager output: approved size or a rejection reason."""
    approved: bool
    position_size: Decimal = ZERO
    reason: str
    risk_level: str = "NONE"
    expected_value: Decimal = ZERO
    adjustments: List[str] = []


class TradePlan(BaseModel):
    """Strategist output: mode and exit parameters for an approved trade."""
    market: Market
    direction: Direction
    fair_value_yes: Decimal
    edge: Decimal
    confidence: Decimal
    mode: TradeMode
    bet_size: Decimal
    entry_price: Decimal
    take_profit_pct: Decimal = ZERO
    stop_loss_pct: Decimal = ZERO
    max_hold_hours: int = 0
    check_interval_secs: int = 0
    reasoning: str = ""
    specialist_desk: Optional[str] = None
    bull_probability: Optional[Decimal] = None
    bear_probability: Optional[Decimal] = None
    judge_model: Optional[str] = None


# ============================================================
# PORTFOLIO STATS
# ============================================================

@dataclass(frozen=True)
class PortfolioStats:
    """Read-only snapshot of the ledger."""
    balance: Decimal
    initial_balance: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_pnl: Decimal
    roi: Decimal                      # Percent, 1 dp
    peak_balance: Decimal
    max_drawdown_pct: Decimal         # Percent, 1 dp
    win_count: int
    loss_count: int
    win_rate: float                   # Percent
    total_api_cost: Decimal
    open_positions: int
    locked_balance: Decimal
    elapsed_hours: float
    consecutive_losses: int
    total_fees_paid: Decimal
    total_slippage_cost: Decimal
    total_gas_fees: Decimal
    total_platform_fees: Decimal
    total_maker_taker_fees: Decimal
    recent_trades: List[Trade] = field(default_factory=list)

    @property
    def available_balance(self) -> Decimal:
        return self.balance - self.locked_balance

    def render(self) -> str:
        """Boxed operator summary."""
        roi = f"+{self.roi}%" if self.roi >= 0 else f"{self.roi}%"
        rsign = "+" if self.realized_pnl >= 0 else ""
        usign = "+" if self.unrealized_pnl >= 0 else ""
        q = Decimal("0.0001")
        lines = [
            "╔══════════════════════════════════════════╗",
            "║   POLYMARKET AGENT - PAPER PORTFOLIO     ║",
            "╠══════════════════════════════════════════╣",
            f"║  Runtime:     {self.elapsed_hours:.1f}h",
            f"║  Balance:     ${self.balance} (start ${self.initial_balance})",
            f"║  Locked:      ${self.locked_balance} ({self.open_positions} open positions)",
            f"║  Available:   ${self.available_balance}",
            f"║  Realized:    {rsign}${self.realized_pnl}",
            f"║  Unrealized:  {usign}${self.unrealized_pnl} ({self.open_positions} open)",
            f"║  Total P&L:   ${self.total_pnl} ({roi})",
            f"║  Peak:        ${self.peak_balance}",
            f"║  Max DD:      {self.max_drawdown_pct}%",
            f"║  Trades:      {self.win_count + self.loss_count} closed "
            f"(W:{self.win_count} L:{self.loss_count} = {self.win_rate:.0f}%)",
            f"║  Sim Fees:    ${self.total_fees_paid.quantize(q)} "
            f"(gas=${self.total_gas_fees.quantize(q)} slip=${self.total_slippage_cost.quantize(q)} "
            f"plat=${self.total_platform_fees.quantize(q)})",
            f"║  API Cost:    ${self.total_api_cost}",
            f"║  Loss Streak: {self.consecutive_losses}",
            "╚══════════════════════════════════════════╝",
        ]
        return "\n".join(lines)
