#!/usr/bin/env python3
"""
TRADE HISTORY - Trade Record Sink & Performance Metrics
========================================================
Every Trade is handed here on open and again on close; records are
upserted by trade id into a JSON file. Summary covers closed trades:
win rate, P&L, fees, drawdown, Sharpe.
"""

import json
import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from .models import Trade

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = Path("paper_trades.json")

CLOSED_STATUSES = ("WON", "LOST")


def _num(value) -> float:
    return float(Decimal(value)) if value is not None else 0.0


class TradeHistory:
    """
    JSON-file trade store.

    Usage:
        history = TradeHistory(Path("paper_trades.json"))
        history.save_trade(trade)
        print(history.get_summary())
    """

    def __init__(self, history_file: Optional[Path] = None):
        self._history_file = Path(history_file) if history_file else DEFAULT_HISTORY_FILE
        self._trades: List[dict] = []
        self._index: Dict[str, int] = {}
        self._load()

    def _load(self):
        if self._history_file.exists():
            try:
                with open(self._history_file) as f:
                    data = json.load(f)
                if not isinstance(data, dict) or not isinstance(data.get("trades", []), list):
                    raise ValueError(f"expected an object with a trades list, got {type(data).__name__}")
                self._trades = data.get("trades", [])
                self._index = {t["id"]: i for i, t in enumerate(self._trades)}
                logger.info(f"[HISTORY] Loaded {len(self._trades)} historical trades")
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"[HISTORY] Load error: {e}")
                self._trades = []
                self._index = {}

    def _save(self):
        try:
            data = {
                "trades": self._trades,
                "last_updated": datetime.now(timezone.utc).isoformat(),
                "summary": self.get_summary(),
            }
            with open(self._history_file, "w") as f:
                json.dump(data, f, indent=2)
        except (OSError, TypeError) as e:
            logger.error(f"[HISTORY] Save error: {e}")

    def save_trade(self, trade: Trade) -> dict:
        """Insert or replace the record for this trade id."""
        record = trade.to_dict()
        record["net_pnl"] = str(trade.net_pnl)

        idx = self._index.get(trade.id)
        if idx is None:
            self._index[trade.id] = len(self._trades)
            self._trades.append(record)
        else:
            self._trades[idx] = record
        self._save()

        if record["status"] in CLOSED_STATUSES:
            marker = "+" if trade.pnl >= 0 else "-"
            logger.info(f"[HISTORY] [{marker}] Trade {trade.id} closed: ${trade.pnl:.4f} "
                        f"({record['exit_reason']})")
        return record

    def get_trades(self, limit: Optional[int] = None, status: Optional[str] = None) -> List[dict]:
        trades = self._trades
        if status is not None:
            trades = [t for t in trades if t.get("status") == status]
        if limit:
            trades = trades[-limit:]
        return trades

    def closed(self) -> List[dict]:
        return [t for t in self._trades if t.get("status") in CLOSED_STATUSES]

    def get_summary(self) -> dict:
        """Performance summary over closed trades."""
        closed = self.closed()
        if not closed:
            return {
                "total_trades": 0,
                "open_trades": len(self._trades),
                "wins": 0,
                "losses": 0,
                "win_rate": 0,
                "total_pnl": 0,
                "total_net_pnl": 0,
                "avg_pnl": 0,
                "best_trade": 0,
                "worst_trade": 0,
                "max_drawdown": 0,
                "sharpe_ratio": 0,
            }

        pnls = [_num(t["pnl"]) for t in closed]
        net_pnls = [_num(t.get("net_pnl")) for t in closed]
        wins = [t for t in closed if t["status"] == "WON"]

        total_pnl = sum(pnls)
        avg_pnl = total_pnl / len(pnls)

        cumulative = 0.0
        peak = 0.0
        max_drawdown = 0.0
        for pnl in pnls:
            cumulative += pnl
            if cumulative > peak:
                peak = cumulative
            drawdown = peak - cumulative
            if drawdown > max_drawdown:
                max_drawdown = drawdown

        # Sharpe with risk-free rate = 0
        if len(pnls) > 1:
            std = math.sqrt(sum((p - avg_pnl) ** 2 for p in pnls) / len(pnls))
            sharpe = (avg_pnl / std) if std > 0 else 0
        else:
            sharpe = 0

        return {
            "total_trades": len(closed),
            "open_trades": len(self._trades) - len(closed),
            "wins": len(wins),
            "losses": len(closed) - len(wins),
            "win_rate": round(len(wins) / len(closed) * 100, 1),
            "total_pnl": round(total_pnl, 4),
            "total_net_pnl": round(sum(net_pnls), 4),
            "avg_pnl": round(avg_pnl, 4),
            "best_trade": round(max(pnls), 4),
            "worst_trade": round(min(pnls), 4),
            "max_drawdown": round(max_drawdown, 4),
            "sharpe_ratio": round(sharpe, 2),
        }

    def get_by_exit_reason(self) -> dict:
        reasons = {}
        for trade in self.closed():
            reason = trade.get("exit_reason") or "UNKNOWN"
            bucket = reasons.setdefault(reason, {"count": 0, "pnl": 0.0})
            bucket["count"] += 1
            bucket["pnl"] += _num(trade["pnl"])
        for r in reasons:
            reasons[r]["pnl"] = round(reasons[r]["pnl"], 4)
        return reasons

    def get_by_mode(self) -> dict:
        """Breakdown by trade mode (SCALP / SWING / CONVICTION / LEGACY)."""
        modes = {}
        for trade in self.closed():
            mode = trade.get("trade_mode") or "LEGACY"
            bucket = modes.setdefault(mode, {"trades": 0, "wins": 0, "pnl": 0.0})
            bucket["trades"] += 1
            bucket["pnl"] += _num(trade["pnl"])
            if trade["status"] == "WON":
                bucket["wins"] += 1
        for m in modes:
            modes[m]["win_rate"] = round(modes[m]["wins"] / modes[m]["trades"] * 100, 1)
            modes[m]["pnl"] = round(modes[m]["pnl"], 4)
        return modes
