#!/usr/bin/env python3
"""
RISK MANAGER - Position Sizing + Portfolio Guardrails
======================================================
No AI. Wraps kelly_bet() and survival_adjust() with portfolio-level checks:

1. Direction must be YES or NO
2. Balance above kill threshold
3. Balance above the untouchable reserve
4. Confidence at or above the configured minimum
5. Survival-mode cap on the position fraction
6. Edge sanity (> 35% is treated as a calibration error)
7. Kelly sizing, capped to available funds, scaled by confidence

Every rejection is a RiskDecision(approved=False) with a reason; nothing raises.
"""

import logging
from decimal import Decimal

from .config import AgentConfig
from .kelly_criterion import kelly_bet, survival_adjust
from .models import ONE, ZERO, Direction, RiskDecision, Verdict
from .portfolio import Portfolio

logger = logging.getLogger(__name__)

MAX_PLAUSIBLE_EDGE = Decimal("0.35")
FULL_CONFIDENCE = Decimal("0.80")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def _reject(reason: str, adjustments=None) -> RiskDecision:
    logger.info(f"[RISK] REJECTED: {reason}")
    return RiskDecision(approved=False, position_size=ZERO, reason=reason, adjustments=adjustments or [])


def check(
    verdict: Verdict,
    portfolio: Portfolio,
    config: AgentConfig,
    effective_max_pct: Decimal,
    market_yes_price: Decimal,
) -> RiskDecision:
    """
    Decide whether to trade a verdict and how much to stake.

    Args:
        verdict: Judge output (direction, fair value of YES, confidence)
        portfolio: Live ledger (read only)
        config: Agent configuration
        effective_max_pct: Max position fraction after the loss throttle
        market_yes_price: Current YES price of the market

    Returns:
        RiskDecision with the approved size or the rejection reason
    """
    adjustments = []

    direction = verdict.direction
    if direction == Direction.SKIP:
        return _reject("Direction is SKIP")

    balance = portfolio.balance

    if not portfolio.is_alive(config.kill_threshold):
        return _reject(f"Balance ${balance} below kill threshold ${config.kill_threshold}")

    reserve = config.initial_balance * config.balance_reserve_pct
    available = balance - reserve
    if available <= ZERO:
        return _reject(f"Balance ${balance} <= reserve ${reserve}")

    confidence = verdict.confidence
    if confidence < config.min_confidence:
        return _reject(f"Confidence {confidence:.2f} < min {config.min_confidence}")

    adj_max_pct, is_dead = survival_adjust(balance, config.kill_threshold, effective_max_pct)
    if is_dead:
        return _reject("Agent should be dead")
    survival_cap = None
    if adj_max_pct < effective_max_pct:
        survival_cap = adj_max_pct
        adjustments.append(f"Survival mode: max_pct reduced to {adj_max_pct * HUNDRED:.1f}%")

    fair_value = verdict.fair_value_yes
    edge = abs(fair_value - market_yes_price)
    if edge > MAX_PLAUSIBLE_EDGE:
        return _reject(f"Edge {edge:.2f} too large (>35%) - likely calibration error", adjustments)

    kelly = kelly_bet(
        bankroll=balance,
        fair_prob=fair_value,
        market_price=market_yes_price,
        direction=direction,
        max_pct=effective_max_pct,
        kelly_fraction=config.kelly_fraction,
        starting_bankroll=config.initial_balance,
        survival_cap=survival_cap,
    )
    if not kelly.should_bet:
        return _reject(f"Kelly bet size is zero ({kelly.risk_level})", adjustments)

    bet_size = min(kelly.bet_size, available)

    if confidence >= FULL_CONFIDENCE:
        confidence_scale = ONE
    else:
        confidence_scale = min(confidence / FULL_CONFIDENCE, ONE)
    bet_size = (bet_size * confidence_scale).quantize(CENTS)

    if bet_size <= ZERO:
        return _reject("Bet size after confidence scaling is zero", adjustments)

    adjustments.append(f"Kelly: {kelly.adjusted_kelly * HUNDRED:.2f}% | Conf scale: {confidence_scale:.2f}")
    logger.info(f"[RISK] APPROVED: ${bet_size} (Kelly={kelly.adjusted_kelly * HUNDRED:.2f}% "
                f"conf_scale={confidence_scale:.2f})")

    return RiskDecision(
        approved=True,
        position_size=bet_size,
        reason=f"Approved: ${bet_size} ({kelly.risk_level} risk)",
        risk_level=kelly.risk_level,
        expected_value=kelly.expected_value,
        adjustments=adjustments,
    )
