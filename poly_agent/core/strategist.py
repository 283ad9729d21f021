#!/usr/bin/env python3
"""
STRATEGIST - Trade Mode Classification + Exit Plan
===================================================
No AI, no I/O. Turns an approved trade into a TradePlan:

    CONVICTION  edge > 20% and confidence >= 0.75      hold to resolution
    SCALP       edge > 15%, confidence >= 0.70, <= 7d   TP 12% / SL 8% / 24h
    SWING       everything else                         TP 80% of edge (5-20%) / SL 10% / 7d

Edge is |fair_value_yes - yes_price|. A wide spread is a warning in the
plan's reasoning, never a rejection.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from .models import ONE, ZERO, Direction, Market, RiskDecision, TradeMode, TradePlan, Verdict, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DAYS_LEFT = 30

# Mode thresholds
CONVICTION_MIN_EDGE = Decimal("0.20")
CONVICTION_MIN_CONFIDENCE = Decimal("0.75")
SCALP_MIN_EDGE = Decimal("0.15")
SCALP_MIN_CONFIDENCE = Decimal("0.70")
SCALP_MAX_DAYS = 7

# Swing take-profit = 80% of edge, clamped to [5%, 20%]
SWING_TP_EDGE_SHARE = Decimal("0.8")
SWING_TP_MIN = Decimal("0.05")
SWING_TP_MAX = Decimal("0.20")

# (tp_pct, sl_pct, max_hold_hours, check_interval_secs); Swing TP is dynamic
EXIT_PARAMS = {
    TradeMode.SCALP: (Decimal("0.12"), Decimal("0.08"), 24, 30),
    TradeMode.SWING: (None, Decimal("0.10"), 168, 90),
    TradeMode.CONVICTION: (ZERO, ZERO, 0, 180),
}

MAX_SPREAD = {
    TradeMode.SCALP: Decimal("0.02"),
    TradeMode.SWING: Decimal("0.04"),
    TradeMode.CONVICTION: Decimal("0.05"),
}

HUNDRED = Decimal("100")


def classify_mode(edge: Decimal, confidence: Decimal, days_left: int) -> TradeMode:
    if edge > CONVICTION_MIN_EDGE and confidence >= CONVICTION_MIN_CONFIDENCE:
        return TradeMode.CONVICTION
    if edge > SCALP_MIN_EDGE and confidence >= SCALP_MIN_CONFIDENCE and days_left <= SCALP_MAX_DAYS:
        return TradeMode.SCALP
    return TradeMode.SWING


def parse_days_remaining(end_date: str, today: Optional[date] = None) -> Optional[int]:
    """
    Whole days until the market's end date (never negative).

    Accepts ISO-8601 timestamps ("2026-03-01T12:00:00Z") or a leading
    YYYY-MM-DD. Returns None when the date can't be parsed.
    """
    if not end_date:
        return None
    today = today or utcnow().date()

    try:
        end = datetime.fromisoformat(end_date.replace("Z", "+00:00")).date()
    except ValueError:
        if len(end_date) < 10:
            return None
        try:
            end = datetime.strptime(end_date[:10], "%Y-%m-%d").date()
        except ValueError:
            return None

    return max((end - today).days, 0)


def exit_params(mode: TradeMode, edge: Decimal) -> Tuple[Decimal, Decimal, int, int]:
    tp_pct, sl_pct, max_hold, interval = EXIT_PARAMS[mode]
    if tp_pct is None:
        tp_pct = min(max(edge * SWING_TP_EDGE_SHARE, SWING_TP_MIN), SWING_TP_MAX)
    return tp_pct, sl_pct, max_hold, interval


def plan(
    verdict: Verdict,
    risk: RiskDecision,
    market: Market,
    today: Optional[date] = None,
) -> TradePlan:
    """Build the exit plan for an approved trade."""
    direction = verdict.direction
    fair_value = verdict.fair_value_yes
    confidence = verdict.confidence

    entry_price = market.no_price if direction == Direction.NO else market.yes_price
    edge = abs(fair_value - market.yes_price)

    days_left = parse_days_remaining(market.end_date, today)
    if days_left is None:
        days_left = DEFAULT_DAYS_LEFT

    mode = classify_mode(edge, confidence, days_left)
    tp_pct, sl_pct, max_hold, interval = exit_params(mode, edge)

    spread = abs(market.yes_price + market.no_price - ONE)
    max_spread = MAX_SPREAD[mode]
    reasoning = (
        f"[{mode.value}] edge={edge * HUNDRED:.1f}% conf={confidence:.2f} "
        f"days_left={days_left} spread={spread * HUNDRED:.1f}%"
    )
    if spread > max_spread:
        reasoning += f" (WARN: spread exceeds {max_spread * HUNDRED:.0f}% limit)"

    logger.info(f"[STRATEGIST] {reasoning}")

    return TradePlan(
        market=market,
        direction=direction,
        fair_value_yes=fair_value,
        edge=edge,
        confidence=confidence,
        mode=mode,
        bet_size=risk.position_size,
        entry_price=entry_price,
        take_profit_pct=tp_pct,
        stop_loss_pct=sl_pct,
        max_hold_hours=max_hold,
        check_interval_secs=interval,
        reasoning=reasoning,
        specialist_desk=verdict.specialist_desk,
        bull_probability=verdict.bull_probability,
        bear_probability=verdict.bear_probability,
        judge_model=verdict.judge_model,
    )
