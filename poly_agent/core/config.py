#!/usr/bin/env python3
"""
CONFIG - Agent Configuration
=============================
Flat set of named numeric/boolean parameters, read once at startup from
the environment (with .env support via python-dotenv).

Every field maps to an upper-case environment variable of the same name,
except where ENV_OVERRIDES says otherwise.
"""

import os
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class ConfigError(ValueError):
    """Invalid or missing configuration value."""


# Field name -> environment variable (when it isn't just FIELD_NAME.upper())
ENV_OVERRIDES = {
    "max_markets_to_scan": "MAX_MARKETS_SCAN",
    "gamma_api_base": "GAMMA_API",
}


class AgentConfig(BaseModel):
    """Startup configuration for the paper-trading core."""

    # Bankroll & sizing
    initial_balance: Decimal = Field(Decimal("30.00"), gt=0, description="Starting paper balance (USDC)")
    max_position_pct: Decimal = Field(Decimal("0.08"), gt=0, le=1, description="Max fraction of bankroll per trade")
    kill_threshold: Decimal = Field(Decimal("15.00"), ge=0, description="Balance at or below which the agent is dead")
    kelly_fraction: Decimal = Field(Decimal("0.40"), gt=0, le=1, description="Fraction of full Kelly to stake")
    min_confidence: Decimal = Field(Decimal("0.60"), ge=0, le=1, description="Minimum judge confidence to trade")
    balance_reserve_pct: Decimal = Field(Decimal("0.10"), ge=0, lt=1, description="Untouchable reserve (% of initial)")

    # Legacy percentage exits (0 = disabled)
    exit_tp_pct: Decimal = Field(Decimal("0"), ge=0, description="Legacy take-profit on unrealized P&L %")
    exit_sl_pct: Decimal = Field(Decimal("0"), ge=0, description="Legacy stop-loss on unrealized P&L %")

    # Scheduling
    scan_interval_secs: int = Field(1800, gt=0, description="Seconds between full trading cycles")
    price_check_secs: int = Field(90, ge=0, description="Fast price-check interval (0 = disabled)")
    max_open_positions: int = Field(8, gt=0, description="Max concurrent open positions")
    max_markets_to_scan: int = Field(700, gt=0, description="Markets fetched per price snapshot")
    gamma_api_base: str = Field("https://gamma-api.polymarket.com", description="Gamma API base URL")

    # Realistic simulation
    sim_fees_enabled: bool = True
    sim_slippage_enabled: bool = True
    sim_fills_enabled: bool = True
    sim_impact_enabled: bool = True
    sim_gas_fee_min: Decimal = Field(Decimal("0.01"), ge=0)
    sim_gas_fee_max: Decimal = Field(Decimal("0.05"), ge=0)
    sim_platform_fee_pct: Decimal = Field(Decimal("0.02"), ge=0, le=1)
    sim_taker_fee_pct: Decimal = Field(Decimal("0.00"), ge=0, le=1)
    sim_base_slippage_pct: Decimal = Field(Decimal("0.001"), ge=0)
    sim_size_penalty_pct: Decimal = Field(Decimal("0.005"), ge=0)
    sim_size_penalty_threshold: Decimal = Field(Decimal("1.00"), ge=0)
    sim_reject_probability: Decimal = Field(Decimal("0.05"), ge=0, le=1)
    sim_partial_fill_probability: Decimal = Field(Decimal("0.15"), ge=0, le=1)
    sim_min_liquidity_volume: Decimal = Field(Decimal("10.00"), ge=0)
    sim_impact_threshold: Decimal = Field(Decimal("2.00"), ge=0)
    sim_impact_per_dollar_pct: Decimal = Field(Decimal("0.003"), ge=0)

    @classmethod
    def env_var(cls, field_name: str) -> str:
        return ENV_OVERRIDES.get(field_name, field_name.upper())

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AgentConfig":
        """
        Build config from environment variables.

        Args:
            env_file: Optional .env path (default: .env lookup from cwd)

        Raises:
            ConfigError: if any variable fails validation
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        raw = {}
        for name in cls.model_fields:
            value = os.getenv(cls.env_var(name))
            if value is not None and value.strip() != "":
                raw[name] = value.strip()

        try:
            cfg = cls(**raw)
        except ValidationError as e:
            bad = ", ".join(
                f"{cls.env_var(str(err['loc'][0]))}={raw.get(str(err['loc'][0]))!r} ({err['msg']})"
                for err in e.errors()
            )
            raise ConfigError(f"Invalid configuration: {bad}") from e

        if cfg.sim_gas_fee_min > cfg.sim_gas_fee_max:
            raise ConfigError(
                f"SIM_GAS_FEE_MIN ({cfg.sim_gas_fee_min}) > SIM_GAS_FEE_MAX ({cfg.sim_gas_fee_max})"
            )
        return cfg
