#!/usr/bin/env python3
"""
KELLY CRITERION - Fractional Kelly With Survival Throttle
==========================================================
Position sizing for binary prediction-market shares.

Buying a side at price P pays $1 if that side resolves true:

    b  = (1 - P) / P          net odds per $1 staked
    f* = (p*b - q) / b        full Kelly fraction, q = 1 - p

Sizing pipeline:
1. Fractional Kelly: f* x kelly_fraction (e.g. 0.40 = 40% Kelly)
2. Growth scaling: the position cap grows +0.5x per 1x bankroll growth,
   never above 80% of bankroll
3. Survival cap: near the kill threshold the cap shrinks linearly
4. Minimum trade: stakes under $0.10 are skipped ("BELOW_MIN")

Every guard returns a zero-stake result; skipping is a normal outcome.

References:
    - "A New Interpretation of Information Rate" (Kelly, 1956)
    - "Fortune's Formula" (Poundstone, 2005)
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .models import ONE, ZERO, Direction

# Stakes below this are not worth placing
MIN_TRADE_SIZE = Decimal("0.10")

# Growth scaling: +0.5x cap per 1x bankroll growth, hard ceiling 80%
GROWTH_SCALE_RATE = Decimal("0.5")
MAX_SCALED_POSITION_PCT = Decimal("0.80")
DEFAULT_STARTING_BANKROLL = Decimal("100")

# Risk labels by final bet fraction
LOW_RISK_BELOW = Decimal("0.02")
MEDIUM_RISK_BELOW = Decimal("0.03")

# Survival mode
BUFFER_MULTIPLIER = Decimal("3")          # buffer zone = 3x kill threshold
SURVIVAL_MAX_SHARE = Decimal("0.5")       # at most 50% of the normal cap
SURVIVAL_FLOOR_PCT = Decimal("0.01")      # never below 1%

CENTS = Decimal("0.01")
FOUR_DP = Decimal("0.0001")


# ============================================================
# KELLY RESULT
# ============================================================

@dataclass
class KellyResult:
    """Result of a Kelly sizing call."""
    full_kelly: Decimal = ZERO        # Raw f*
    adjusted_kelly: Decimal = ZERO    # f* x kelly_fraction
    bet_fraction: Decimal = ZERO      # After all caps
    bet_size: Decimal = ZERO          # Dollar stake (0 = skip)
    max_allowed: Decimal = ZERO       # bankroll x scaled cap
    risk_level: str = "NONE"          # NONE, BELOW_MIN, LOW, MEDIUM, HIGH
    expected_value: Decimal = ZERO

    @property
    def should_bet(self) -> bool:
        return self.bet_size > ZERO


def growth_scale_factor(bankroll: Decimal, starting_bankroll: Decimal) -> Decimal:
    """1.0 at or below the starting bankroll; $100 -> $200 gives 1.5x, $500 gives 3.0x."""
    if starting_bankroll <= ZERO or bankroll <= starting_bankroll:
        return ONE
    growth_ratio = bankroll / starting_bankroll
    return ONE + (growth_ratio - ONE) * GROWTH_SCALE_RATE


def classify_risk(bet_fraction: Decimal) -> str:
    if bet_fraction < LOW_RISK_BELOW:
        return "LOW"
    elif bet_fraction < MEDIUM_RISK_BELOW:
        return "MEDIUM"
    return "HIGH"


def kelly_bet(
    bankroll: Decimal,
    fair_prob: Decimal,
    market_price: Decimal,
    direction: Direction,
    max_pct: Decimal,
    kelly_fraction: Decimal,
    starting_bankroll: Decimal = DEFAULT_STARTING_BANKROLL,
    survival_cap: Optional[Decimal] = None,
) -> KellyResult:
    """
    Size a bet with fractional Kelly.

    Args:
        bankroll: Capital available to size against
        fair_prob: Believed probability that YES resolves true
        market_price: Current YES price
        direction: YES or NO (NO inverts both probability and price)
        max_pct: Normal max position fraction before growth scaling
        kelly_fraction: Conservatism multiplier (0.40 = 40% Kelly)
        starting_bankroll: Bankroll at which growth scaling is 1.0x
        survival_cap: Survival-mode cap, clamped independently of growth scaling

    Returns:
        KellyResult (bet_size 0 means skip)
    """
    result = KellyResult(max_allowed=bankroll * max_pct)

    if direction == Direction.SKIP or bankroll <= ZERO:
        return result

    if direction == Direction.NO:
        p, price = ONE - fair_prob, ONE - market_price
    else:
        p, price = fair_prob, market_price

    if not (ZERO < price < ONE) or not (ZERO < p < ONE):
        return result

    b = (ONE - price) / price
    q = ONE - p
    kelly = (p * b - q) / b

    if kelly <= ZERO:
        return result

    result.full_kelly = kelly
    result.adjusted_kelly = kelly * kelly_fraction

    scaled_max_pct = min(max_pct * growth_scale_factor(bankroll, starting_bankroll), MAX_SCALED_POSITION_PCT)
    result.max_allowed = bankroll * scaled_max_pct

    bet_fraction = min(result.adjusted_kelly, scaled_max_pct)
    if survival_cap is not None:
        bet_fraction = min(bet_fraction, survival_cap)
    result.bet_fraction = bet_fraction

    bet_size = (bankroll * bet_fraction).quantize(CENTS)
    if bet_size < MIN_TRADE_SIZE:
        result.risk_level = "BELOW_MIN"
        return result

    result.bet_size = min(bet_size, bankroll)
    result.risk_level = classify_risk(bet_fraction)
    result.expected_value = (p * result.bet_size * b - q * result.bet_size).quantize(FOUR_DP)
    return result


# ============================================================
# SURVIVAL MODE
# ============================================================

def survival_adjust(
    bankroll: Decimal,
    kill_threshold: Decimal,
    normal_max_pct: Decimal,
) -> Tuple[Decimal, bool]:
    """
    Shrink the max position fraction as the bankroll nears the kill threshold.

    Returns:
        (adjusted_max_pct, is_dead)

    Inside the buffer zone (kill < bankroll < 3 x kill) the fraction is
    interpolated linearly up to 50% of normal, floored at 1%.
    """
    buffer_zone = kill_threshold * BUFFER_MULTIPLIER

    if bankroll <= kill_threshold:
        return ZERO, True

    if bankroll < buffer_zone:
        ratio = (bankroll - kill_threshold) / (buffer_zone - kill_threshold)
        reduced = normal_max_pct * ratio * SURVIVAL_MAX_SHARE
        return max(reduced, SURVIVAL_FLOOR_PCT), False

    return normal_max_pct, False


# ============================================================
# LOSS STREAK THROTTLE
# ============================================================

class LossAction(str, Enum):
    CONTINUE = "CONTINUE"
    SKIP_CYCLE = "SKIP_CYCLE"      # 3 consecutive losses
    REDUCE_SIZE = "REDUCE_SIZE"    # 4: halve size for the next 3 trades
    PAUSE = "PAUSE"                # 5+: stop opening, keep monitoring exits


def check_consecutive_losses(consecutive: int) -> LossAction:
    if consecutive >= 5:
        return LossAction.PAUSE
    elif consecutive >= 4:
        return LossAction.REDUCE_SIZE
    elif consecutive >= 3:
        return LossAction.SKIP_CYCLE
    return LossAction.CONTINUE
