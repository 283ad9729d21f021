#!/usr/bin/env python3
"""
KELLY CRITERION TESTS - Fractional Kelly + Survival Throttle
=============================================================
Tests for position sizing:
- Full / fractional Kelly on binary shares
- Growth scaling and caps
- Survival mode near the kill threshold
- Consecutive-loss throttle
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from poly_agent.core.kelly_criterion import (
    MIN_TRADE_SIZE,
    LossAction,
    check_consecutive_losses,
    classify_risk,
    growth_scale_factor,
    kelly_bet,
    survival_adjust,
)
from poly_agent.core.models import Direction

D = Decimal


# ============================================================
# BASIC CALCULATION TESTS
# ============================================================

class TestKellyBet:
    """Tests for the Kelly formula on binary shares."""

    def test_reference_case_full_kelly(self):
        """p=0.65 at price 0.50: b=1, f*=(0.65-0.35)/1=0.30 -> $30 of $100."""
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))

        assert result.full_kelly == D("0.30")
        assert result.adjusted_kelly == D("0.30")
        assert result.bet_size == D("30.00")
        assert result.should_bet

    def test_fractional_kelly(self):
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("1.0"), D("0.40"))

        assert result.adjusted_kelly == D("0.120")
        assert result.bet_size == D("12.00")

    def test_cap_applies(self):
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("0.08"), D("1.0"))

        assert result.bet_fraction == D("0.08")
        assert result.bet_size == D("8.00")

    def test_no_edge_is_skip(self):
        result = kelly_bet(D("100"), D("0.50"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))

        assert result.bet_size == 0
        assert not result.should_bet

    def test_negative_edge_is_skip(self):
        result = kelly_bet(D("100"), D("0.40"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))

        assert result.bet_size == 0
        assert result.risk_level == "NONE"

    def test_no_direction_inverts_probability_and_price(self):
        """Believed YES 0.35 at YES price 0.50 == NO at 0.50 with p=0.65."""
        no_bet = kelly_bet(D("100"), D("0.35"), D("0.50"), Direction.NO, D("1.0"), D("1.0"))
        yes_bet = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))

        assert no_bet.full_kelly == yes_bet.full_kelly
        assert no_bet.bet_size == D("30.00")

    def test_skip_direction(self):
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.SKIP, D("1.0"), D("1.0"))
        assert result.bet_size == 0

    @pytest.mark.parametrize("price", [D("0"), D("1"), D("-0.1"), D("1.2")])
    def test_invalid_price_is_skip(self, price):
        result = kelly_bet(D("100"), D("0.65"), price, Direction.YES, D("1.0"), D("1.0"))
        assert result.bet_size == 0

    def test_zero_bankroll(self):
        result = kelly_bet(D("0"), D("0.65"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))
        assert result.bet_size == 0

    def test_below_min_flagged(self):
        result = kelly_bet(D("1"), D("0.65"), D("0.50"), Direction.YES, D("0.05"), D("1.0"))

        assert result.bet_size == 0
        assert result.risk_level == "BELOW_MIN"

    def test_never_exceeds_bankroll(self):
        result = kelly_bet(D("10"), D("0.99"), D("0.01"), Direction.YES, D("1.0"), D("1.0"))

        assert result.bet_size <= D("10")
        assert result.bet_size >= MIN_TRADE_SIZE

    def test_expected_value(self):
        # stake 30, b=1, p=0.65: EV = 0.65*30 - 0.35*30 = 9
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("1.0"), D("1.0"))
        assert result.expected_value == D("9.0000")

    def test_survival_cap_clamps_independently(self):
        result = kelly_bet(D("100"), D("0.65"), D("0.50"), Direction.YES, D("0.20"), D("1.0"),
                           survival_cap=D("0.02"))

        assert result.bet_fraction == D("0.02")
        assert result.bet_size == D("2.00")


# ============================================================
# GROWTH SCALING
# ============================================================

class TestGrowthScaling:

    def test_no_growth(self):
        assert growth_scale_factor(D("100"), D("100")) == 1
        assert growth_scale_factor(D("50"), D("100")) == 1

    def test_doubling_gives_one_and_a_half(self):
        assert growth_scale_factor(D("200"), D("100")) == D("1.5")

    def test_five_x_gives_three(self):
        assert growth_scale_factor(D("500"), D("100")) == D("3.0")

    def test_growth_raises_cap(self):
        # $200 on a $100 start: cap 0.10 x 1.5 = 0.15
        result = kelly_bet(D("200"), D("0.65"), D("0.50"), Direction.YES, D("0.10"), D("1.0"))
        assert result.bet_fraction == D("0.150")
        assert result.bet_size == D("30.00")

    def test_scaled_cap_never_above_eighty_percent(self):
        result = kelly_bet(D("10000"), D("0.99"), D("0.10"), Direction.YES, D("0.50"), D("1.0"))
        assert result.bet_fraction == D("0.80")


class TestRiskLabels:

    @pytest.mark.parametrize("fraction,label", [
        (D("0.01"), "LOW"),
        (D("0.025"), "MEDIUM"),
        (D("0.03"), "HIGH"),
        (D("0.20"), "HIGH"),
    ])
    def test_classify(self, fraction, label):
        assert classify_risk(fraction) == label


# ============================================================
# SURVIVAL MODE
# ============================================================

class TestSurvivalAdjust:

    def test_dead_at_threshold(self):
        pct, dead = survival_adjust(D("10"), D("10"), D("0.08"))
        assert dead is True
        assert pct == 0

    def test_dead_below_threshold(self):
        _, dead = survival_adjust(D("5"), D("10"), D("0.08"))
        assert dead is True

    def test_outside_buffer_unchanged(self):
        pct, dead = survival_adjust(D("40"), D("10"), D("0.08"))
        assert dead is False
        assert pct == D("0.08")

    def test_inside_buffer_reduced(self):
        # ratio (20-10)/(30-10) = 0.5 -> 0.20 * 0.5 * 0.5 = 0.05
        pct, dead = survival_adjust(D("20"), D("10"), D("0.20"))
        assert dead is False
        assert D("0.01") < pct < D("0.10")
        assert pct == D("0.05")

    def test_floor(self):
        pct, _ = survival_adjust(D("10.01"), D("10"), D("0.08"))
        assert pct == D("0.01")

    def test_monotonic_in_bankroll(self):
        values = [survival_adjust(D(b), D("10"), D("0.20"))[0] for b in ("12", "16", "20", "24", "28")]
        assert values == sorted(values)
        assert len(set(values)) == len(values)


# ============================================================
# LOSS STREAK THROTTLE
# ============================================================

class TestConsecutiveLosses:

    @pytest.mark.parametrize("losses,action", [
        (0, LossAction.CONTINUE),
        (2, LossAction.CONTINUE),
        (3, LossAction.SKIP_CYCLE),
        (4, LossAction.REDUCE_SIZE),
        (5, LossAction.PAUSE),
        (9, LossAction.PAUSE),
    ])
    def test_actions(self, losses, action):
        assert check_consecutive_losses(losses) == action
