#!/usr/bin/env python3
"""
EXECUTOR - Applies a TradePlan to the Ledger
=============================================
No AI. Filters plans with unfavorable reward:risk, opens the position
(exit plan attached atomically by the ledger) and hands the trade to
the record sink.
"""

import logging
from decimal import Decimal
from typing import Optional

from .models import ZERO, Direction, Trade, TradePlan
from .portfolio import Portfolio
from .simulation import SimConfig

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def execute(
    plan: TradePlan,
    portfolio: Portfolio,
    sim: SimConfig,
    sink=None,
) -> Optional[Trade]:
    """
    Open the planned position.

    Args:
        plan: Strategist output
        portfolio: Ledger to trade against
        sim: Execution simulation snapshot
        sink: Optional record sink with save_trade(trade)

    Returns:
        The opened Trade, or None if skipped or not filled
    """
    if plan.direction == Direction.SKIP:
        return None

    if plan.stop_loss_pct > ZERO and plan.edge < plan.stop_loss_pct:
        logger.info(
            f"[EXEC] SKIP {plan.market.question[:35]}: edge {plan.edge * HUNDRED:.1f}% "
            f"< SL {plan.stop_loss_pct * HUNDRED:.1f}% (bad reward:risk)"
        )
        return None

    trade = portfolio.execute_trade(
        plan.market.id,
        plan.market.question,
        plan.direction,
        plan.market.yes_price,
        plan.fair_value_yes,
        plan.edge,
        plan.bet_size,
        sim,
        plan.market.volume,
        plan=plan,
    )
    if trade is None:
        return None

    logger.info(
        f"[EXEC] OPEN [{plan.mode.value}]: {trade.direction.value} {trade.question[:35]} "
        f"@ {trade.entry_price:.4f} | ${trade.bet_size} | edge={plan.edge * HUNDRED:.1f}% "
        f"conf={plan.confidence:.2f} | desk={plan.specialist_desk or '?'} judge={plan.judge_model or '?'}"
    )

    if sink is not None:
        sink.save_trade(trade)

    return trade
