#!/usr/bin/env python3
"""
SIMULATION - Realistic Paper Execution
=======================================
Models the ways a real Polymarket order degrades versus the quoted price:

1. Rejection / partial fill: orders can fail outright or fill 50-90%
2. Slippage: base rate scaled by spread, plus a size penalty
3. Market impact: linear penalty on the part of the order above a threshold
4. Gas: random POL cost on both legs
5. Taker + platform fee: % of notional; platform fee on profits only

Each effect is toggled independently by SimConfig. Random draws come
from an injectable generator so scenarios can be replayed exactly.
"""

import logging
import random
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import ONE, ZERO

logger = logging.getLogger(__name__)

# Buy fills are capped at 99c, but never below the quoted price
MAX_FILL_PRICE = Decimal("0.99")

# Spread normalization: 5% spread = 1x base slippage, capped at 3x
REFERENCE_SPREAD = Decimal("0.05")
MAX_SPREAD_FACTOR = Decimal("3")

# No order book at exit time: assume a 3% spread
EXIT_SPREAD_ESTIMATE = Decimal("0.03")

# Partial fills keep 50-90% of the requested size
PARTIAL_FILL_MIN = 0.50
PARTIAL_FILL_MAX = 0.90

FOUR_DP = Decimal("0.0001")


@dataclass(frozen=True)
class SimConfig:
    """Which execution effects are on, and their parameters."""
    fees_enabled: bool = True
    slippage_enabled: bool = True
    fills_enabled: bool = True
    impact_enabled: bool = True
    gas_fee_min: Decimal = Decimal("0.01")
    gas_fee_max: Decimal = Decimal("0.05")
    platform_fee_pct: Decimal = Decimal("0.02")
    taker_fee_pct: Decimal = Decimal("0.00")
    base_slippage_pct: Decimal = Decimal("0.001")
    size_penalty_pct: Decimal = Decimal("0.005")
    size_penalty_threshold: Decimal = Decimal("1.00")
    reject_probability: Decimal = Decimal("0.05")
    partial_fill_probability: Decimal = Decimal("0.15")
    min_liquidity_volume: Decimal = Decimal("10.00")
    impact_threshold: Decimal = Decimal("2.00")
    impact_per_dollar_pct: Decimal = Decimal("0.003")

    @classmethod
    def from_config(cls, cfg) -> "SimConfig":
        """Snapshot the sim_* fields of an AgentConfig."""
        return cls(
            fees_enabled=cfg.sim_fees_enabled,
            slippage_enabled=cfg.sim_slippage_enabled,
            fills_enabled=cfg.sim_fills_enabled,
            impact_enabled=cfg.sim_impact_enabled,
            gas_fee_min=cfg.sim_gas_fee_min,
            gas_fee_max=cfg.sim_gas_fee_max,
            platform_fee_pct=cfg.sim_platform_fee_pct,
            taker_fee_pct=cfg.sim_taker_fee_pct,
            base_slippage_pct=cfg.sim_base_slippage_pct,
            size_penalty_pct=cfg.sim_size_penalty_pct,
            size_penalty_threshold=cfg.sim_size_penalty_threshold,
            reject_probability=cfg.sim_reject_probability,
            partial_fill_probability=cfg.sim_partial_fill_probability,
            min_liquidity_volume=cfg.sim_min_liquidity_volume,
            impact_threshold=cfg.sim_impact_threshold,
            impact_per_dollar_pct=cfg.sim_impact_per_dollar_pct,
        )

    @classmethod
    def disabled(cls) -> "SimConfig":
        """Frictionless execution: fills at the quoted price, no costs."""
        return cls(
            fees_enabled=False,
            slippage_enabled=False,
            fills_enabled=False,
            impact_enabled=False,
            gas_fee_min=ZERO,
            gas_fee_max=ZERO,
            platform_fee_pct=ZERO,
            taker_fee_pct=ZERO,
            base_slippage_pct=ZERO,
            size_penalty_pct=ZERO,
            size_penalty_threshold=ZERO,
            reject_probability=ZERO,
            partial_fill_probability=ZERO,
            min_liquidity_volume=ZERO,
            impact_threshold=ZERO,
            impact_per_dollar_pct=ZERO,
        )


# ============================================================
# PURE PRICE MODELS
# ============================================================

def calculate_slippage_pct(sim: SimConfig, bet_size: Decimal, spread: Decimal) -> Decimal:
    """
    Slippage as a fraction of price.

    base * min(spread / 5%, 3) + size_penalty * (bet_size - threshold)⁺
    """
    if spread > ZERO:
        spread_factor = min(spread / REFERENCE_SPREAD, MAX_SPREAD_FACTOR)
    else:
        spread_factor = ONE

    slippage = sim.base_slippage_pct * spread_factor
    if bet_size > sim.size_penalty_threshold:
        slippage += sim.size_penalty_pct * (bet_size - sim.size_penalty_threshold)
    return slippage


def calculate_impact_pct(sim: SimConfig, bet_size: Decimal) -> Decimal:
    """Extra price penalty for the part of the order above the impact threshold."""
    if bet_size <= sim.impact_threshold:
        return ZERO
    return sim.impact_per_dollar_pct * (bet_size - sim.impact_threshold)


def buy_fill_price(raw_price: Decimal, adjustment: Decimal) -> Decimal:
    """Buying fills worse (higher), capped at 99c; a quote above the cap fills at the quote."""
    return max(raw_price, min(raw_price * (ONE + adjustment), MAX_FILL_PRICE))


def sell_fill_price(raw_price: Decimal, adjustment: Decimal) -> Decimal:
    """Selling fills worse (lower), floored at 0."""
    return min(max(raw_price * (ONE - adjustment), ZERO), ONE)


# ============================================================
# FILL RESULTS
# ============================================================

@dataclass
class EntryFill:
    """Execution outcome of an opening (buy) order."""
    bet_size: Decimal
    raw_price: Decimal
    fill_price: Decimal
    slippage_pct: Decimal
    impact_pct: Decimal
    slippage_cost: Decimal
    gas_fee: Decimal
    maker_taker_fee: Decimal

    @property
    def total_debit(self) -> Decimal:
        return self.bet_size + self.gas_fee + self.maker_taker_fee


@dataclass
class ExitFill:
    """Execution outcome of a closing (sell) order."""
    raw_price: Decimal
    fill_price: Decimal
    slippage_cost: Decimal
    gross_pnl: Decimal
    gas_fee: Decimal
    maker_taker_fee: Decimal
    platform_fee: Decimal

    @property
    def total_fees(self) -> Decimal:
        return self.gas_fee + self.maker_taker_fee + self.platform_fee


# ============================================================
# SIMULATOR
# ============================================================

_thread_state = threading.local()


def thread_rng() -> random.Random:
    """Per-thread generator, created on first use."""
    rng = getattr(_thread_state, "rng", None)
    if rng is None:
        rng = random.Random()
        _thread_state.rng = rng
    return rng


class FillSimulator:
    """
    Stochastic side of the execution model.

    Usage:
        sim = SimConfig.from_config(cfg)
        fills = FillSimulator(rng=random.Random(42))
        filled = fills.simulate_fill(sim, Decimal("5"), volume=Decimal("1200"))
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng

    @property
    def rng(self) -> random.Random:
        return self._rng if self._rng is not None else thread_rng()

    def random_gas_fee(self, min_fee: Decimal, max_fee: Decimal) -> Decimal:
        """Uniform gas cost in [min, max], 4 dp."""
        if min_fee >= max_fee:
            return min_fee
        val = self.rng.uniform(float(min_fee), float(max_fee))
        fee = Decimal(str(val)).quantize(FOUR_DP)
        return min(max(fee, min_fee), max_fee)

    def simulate_fill(self, sim: SimConfig, bet_size: Decimal, volume: Decimal) -> Optional[Decimal]:
        """
        Returns None if the order is rejected, else the filled size.

        Low-volume markets (0 < volume < min_liquidity_volume) are twice as
        likely to partially fill.
        """
        rng = self.rng
        if rng.random() < float(sim.reject_probability):
            return None

        liquidity_factor = 2.0 if ZERO < volume < sim.min_liquidity_volume else 1.0
        if rng.random() < float(sim.partial_fill_probability) * liquidity_factor:
            fill_pct = rng.uniform(PARTIAL_FILL_MIN, PARTIAL_FILL_MAX)
            return (bet_size * Decimal(str(fill_pct))).quantize(FOUR_DP)

        return bet_size

    def price_entry(
        self,
        sim: SimConfig,
        bet_size: Decimal,
        raw_price: Decimal,
        spread: Decimal,
    ) -> EntryFill:
        """Effective buy price and entry costs for a (post-fill) bet size."""
        impact_pct = calculate_impact_pct(sim, bet_size) if sim.impact_enabled else ZERO
        slippage_pct = calculate_slippage_pct(sim, bet_size, spread) if sim.slippage_enabled else ZERO
        fill_price = buy_fill_price(raw_price, slippage_pct + impact_pct)

        gas_fee = self.random_gas_fee(sim.gas_fee_min, sim.gas_fee_max) if sim.fees_enabled else ZERO
        maker_taker = bet_size * sim.taker_fee_pct if sim.fees_enabled else ZERO

        return EntryFill(
            bet_size=bet_size,
            raw_price=raw_price,
            fill_price=fill_price,
            slippage_pct=slippage_pct,
            impact_pct=impact_pct,
            slippage_cost=self.entry_slippage_cost(raw_price, fill_price, bet_size),
            gas_fee=gas_fee,
            maker_taker_fee=maker_taker,
        )

    @staticmethod
    def entry_slippage_cost(raw_price: Decimal, fill_price: Decimal, bet_size: Decimal) -> Decimal:
        """Dollar cost of the price adjustment on the shares actually bought."""
        if fill_price <= ZERO:
            return ZERO
        return (fill_price - raw_price) * bet_size / fill_price

    def price_exit(
        self,
        sim: SimConfig,
        bet_size: Decimal,
        shares: Decimal,
        entry_price: Decimal,
        raw_price: Decimal,
    ) -> ExitFill:
        """Effective sell price, gross P&L and exit costs for closing a position."""
        slippage_pct = (
            calculate_slippage_pct(sim, bet_size, EXIT_SPREAD_ESTIMATE) if sim.slippage_enabled else ZERO
        )
        fill_price = sell_fill_price(raw_price, slippage_pct)
        slippage_cost = abs(raw_price - fill_price) * shares
        gross_pnl = (fill_price - entry_price) * shares

        gas_fee = self.random_gas_fee(sim.gas_fee_min, sim.gas_fee_max) if sim.fees_enabled else ZERO
        exit_value = abs(fill_price * shares)
        maker_taker = exit_value * sim.taker_fee_pct if sim.fees_enabled else ZERO
        platform = gross_pnl * sim.platform_fee_pct if sim.fees_enabled and gross_pnl > ZERO else ZERO

        return ExitFill(
            raw_price=raw_price,
            fill_price=fill_price,
            slippage_cost=slippage_cost,
            gross_pnl=gross_pnl,
            gas_fee=gas_fee,
            maker_taker_fee=maker_taker,
            platform_fee=platform,
        )
