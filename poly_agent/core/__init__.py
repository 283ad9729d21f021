# Polymarket Agent Core Components

from .config import AgentConfig, ConfigError
from .kelly_criterion import KellyResult, LossAction, check_consecutive_losses, kelly_bet, survival_adjust
from .models import (
    Direction,
    ExitReason,
    Market,
    PortfolioStats,
    RiskDecision,
    Trade,
    TradeMode,
    TradePlan,
    TradeStatus,
    Verdict,
)
from .portfolio import Portfolio
from .price_feed import GammaPriceFeed
from .simulation import FillSimulator, SimConfig
from .trade_history import TradeHistory

__all__ = [
    'AgentConfig',
    'ConfigError',
    'KellyResult',
    'LossAction',
    'check_consecutive_losses',
    'kelly_bet',
    'survival_adjust',
    'Direction',
    'ExitReason',
    'Market',
    'PortfolioStats',
    'RiskDecision',
    'Trade',
    'TradeMode',
    'TradePlan',
    'TradeStatus',
    'Verdict',
    'Portfolio',
    'GammaPriceFeed',
    'FillSimulator',
    'SimConfig',
    'TradeHistory',
]
