#!/usr/bin/env python3
"""
RISK MANAGER TESTS - Guardrails + Sizing
=========================================
"""

import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from poly_agent.core import risk_manager
from poly_agent.core.models import Direction, Verdict
from poly_agent.core.portfolio import Portfolio

D = Decimal


def verdict(direction="YES", fair="0.60", confidence="0.85", market_id="0xmarket1"):
    return Verdict(market_id=market_id, fair_value_yes=D(fair), confidence=D(confidence), direction=direction)


@pytest.fixture
def funded(clock):
    return Portfolio(D("100"), clock=clock)


# ============================================================
# REJECTIONS
# ============================================================

class TestRejections:

    def test_skip_direction(self, funded, config):
        decision = risk_manager.check(verdict("SKIP"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert decision.reason == "Direction is SKIP"
        assert decision.position_size == 0

    def test_unparseable_direction_is_skip(self, funded, config):
        decision = risk_manager.check(verdict("maybe"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert "SKIP" in decision.reason

    def test_below_kill_threshold(self, clock, config):
        dead = Portfolio(D("15"), clock=clock)
        decision = risk_manager.check(verdict(), dead, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert "kill threshold" in decision.reason

    def test_reserve_protection(self, clock, config):
        cfg = config.model_copy(update={"kill_threshold": D("5")})
        thin = Portfolio(D("10"), clock=clock)
        decision = risk_manager.check(verdict(), thin, cfg, cfg.max_position_pct, D("0.45"))
        assert not decision.approved
        assert "reserve" in decision.reason

    def test_low_confidence(self, funded, config):
        decision = risk_manager.check(verdict(confidence="0.50"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert decision.reason.startswith("Confidence")

    def test_implausible_edge(self, funded, config):
        decision = risk_manager.check(verdict(fair="0.90"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert "too large" in decision.reason

    def test_no_kelly_edge(self, funded, config):
        decision = risk_manager.check(verdict(fair="0.45"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved
        assert "Kelly bet size is zero" in decision.reason

    def test_wrong_side_edge(self, funded, config):
        # Believes YES is 0.60 but wants to buy NO
        decision = risk_manager.check(verdict("NO", fair="0.60"), funded, config, config.max_position_pct, D("0.45"))
        assert not decision.approved


# ============================================================
# APPROVALS
# ============================================================

class TestApprovals:

    def test_yes_sized_by_fractional_kelly(self, funded, config):
        # f* = (0.60 - 0.45) / 0.55 = 0.2727; x 0.40 = 10.909% of $100
        decision = risk_manager.check(verdict(), funded, config, config.max_position_pct, D("0.45"))
        assert decision.approved
        assert decision.position_size == D("10.91")
        assert decision.risk_level == "HIGH"
        assert decision.expected_value > 0

    def test_no_sized_on_complement(self, funded, config):
        # NO at 0.55 with p = 0.70: f* = 0.15 / 0.45 = 0.3333; x 0.40 = 13.33%
        decision = risk_manager.check(verdict("NO", fair="0.30"), funded, config, config.max_position_pct, D("0.45"))
        assert decision.approved
        assert decision.position_size == D("13.33")

    def test_confidence_scaling(self, funded, config):
        # 10.91 x (0.70 / 0.80)
        decision = risk_manager.check(verdict(confidence="0.70"), funded, config, config.max_position_pct, D("0.45"))
        assert decision.approved
        assert decision.position_size == D("9.55")

    def test_survival_mode_shrinks_cap(self, clock, config):
        # $30 with kill $15: buffer $45, cap 0.20 x 0.5 x 0.5 = 5%
        weak = Portfolio(D("30"), clock=clock)
        decision = risk_manager.check(verdict(), weak, config, config.max_position_pct, D("0.45"))
        assert decision.approved
        assert decision.position_size == D("1.50")
        assert any("Survival mode" in a for a in decision.adjustments)

    def test_capped_to_available_above_reserve(self, clock, config):
        cfg = config.model_copy(update={
            "kill_threshold": D("5"),
            "balance_reserve_pct": D("0.15"),
            "kelly_fraction": D("1.0"),
            "max_position_pct": D("0.50"),
        })
        p = Portfolio(D("17"), clock=clock)
        decision = risk_manager.check(verdict(), p, cfg, cfg.max_position_pct, D("0.45"))
        assert decision.approved
        assert decision.position_size == D("2.00")

    def test_reduced_effective_pct(self, funded, config):
        decision = risk_manager.check(verdict(), funded, config, D("0.05"), D("0.45"))
        assert decision.position_size == D("5.00")

    def test_verdict_direction_parsed(self):
        assert verdict(" no ").direction == Direction.NO
