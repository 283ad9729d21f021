#!/usr/bin/env python3
"""
POLYMARKET AGENT - PAPER TRADING RUNNER
========================================
Real Gamma prices, simulated execution.

Each cycle:
1. Survival check (dead -> stop)
2. Loss-streak throttle (skip / halve size / pause)
3. Resolve open trades against fresh prices
4. Verdicts -> Risk Manager -> Strategist -> Executor
5. Fast price-check loop until the next cycle (while positions are open)

Stop with Ctrl+C, SIGTERM or `touch STOP`. Every open position is marked
to market before exit.

Usage:
    python -m poly_agent.run_paper --verdicts verdicts.json
    python -m poly_agent.run_paper --verdicts verdicts.json --once
"""

import argparse
import asyncio
import json
import logging
import random
import signal
import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from poly_agent.core import executor, risk_manager, strategist
from poly_agent.core.config import AgentConfig, ConfigError
from poly_agent.core.kelly_criterion import LossAction, check_consecutive_losses, survival_adjust
from poly_agent.core.models import Market, Verdict
from poly_agent.core.portfolio import Portfolio
from poly_agent.core.price_feed import GammaPriceFeed
from poly_agent.core.simulation import FillSimulator, SimConfig
from poly_agent.core.trade_history import TradeHistory

logger = logging.getLogger(__name__)

STOP_FILE = Path("STOP")
STOP_POLL_SECS = 5
REDUCED_SIZE_TRADES = 3
REDUCED_SIZE_FACTOR = Decimal("0.5")


# ============================================================
# VERDICT SOURCE
# ============================================================

class JsonVerdictSource:
    """
    Reads judge verdicts from a JSON file (a list of Verdict objects).

    The file is re-read every cycle so an external pipeline can keep it
    current. Only verdicts for markets in the current snapshot are returned.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> List[Verdict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[RUNNER] Verdict file error: {e}")
            return []

        verdicts = []
        for item in raw if isinstance(raw, list) else []:
            try:
                verdicts.append(Verdict.model_validate(item))
            except ValidationError as e:
                logger.warning(f"[RUNNER] Skipping invalid verdict: {e.errors()[0]['msg']}")
        return verdicts

    async def fetch(self, markets: List[Market]) -> List[Verdict]:
        known = {m.id for m in markets}
        verdicts = await asyncio.to_thread(self._read)
        return [v for v in verdicts if v.market_id in known]


# ============================================================
# PAPER TRADER
# ============================================================

class PaperTrader:
    """Async trading loop around one Portfolio ledger."""

    def __init__(
        self,
        config: AgentConfig,
        verdict_source,
        portfolio: Optional[Portfolio] = None,
        feed: Optional[GammaPriceFeed] = None,
        history: Optional[TradeHistory] = None,
        sim: Optional[SimConfig] = None,
        stop_file: Path = STOP_FILE,
    ):
        self.config = config
        self.verdict_source = verdict_source
        self.portfolio = portfolio or Portfolio(config.initial_balance)
        self.feed = feed or GammaPriceFeed(config.gamma_api_base)
        self.history = history or TradeHistory()
        self.sim = sim or SimConfig.from_config(config)
        self.stop_file = Path(stop_file)

        self.shutdown = asyncio.Event()
        self.cycle = 0
        self.paused = False
        self.dead = False
        self.reduced_trades_left = 0

    # ---------------- shutdown plumbing ----------------

    def request_shutdown(self, reason: str = "signal"):
        if not self.shutdown.is_set():
            logger.info(f"[RUNNER] STOP SIGNAL ({reason})")
            self.shutdown.set()

    async def sleep_or_shutdown(self, seconds: float) -> bool:
        """Sleep up to `seconds`. False if shutdown was requested meanwhile."""
        if self.shutdown.is_set():
            return False
        try:
            await asyncio.wait_for(self.shutdown.wait(), timeout=seconds)
            return False
        except asyncio.TimeoutError:
            return True

    async def watch_stop_file(self):
        while not self.shutdown.is_set():
            if self.stop_file.exists():
                self.stop_file.unlink(missing_ok=True)
                self.request_shutdown("STOP file detected")
                return
            await self.sleep_or_shutdown(STOP_POLL_SECS)

    # ---------------- trading ----------------

    async def resolve_open_trades(self, label: str = "") -> Optional[List[Market]]:
        """Fetch prices and run the exit state machine. None if the fetch failed."""
        markets = await self.feed.fetch_markets(self.config.max_markets_to_scan)
        if markets is None:
            logger.warning("[RUNNER] Price fetch failed, skipping resolve")
            return None

        resolved = await asyncio.to_thread(
            self.portfolio.resolve_with_prices,
            markets,
            self.config.exit_tp_pct,
            self.config.exit_sl_pct,
            self.sim,
        )
        for trade in resolved:
            self.history.save_trade(trade)
            logger.info(f"[RUNNER] {label}{trade.exit_reason.short}: {trade.question[:35]} | "
                        f"PnL ${trade.pnl:.4f} | {trade.direction.value}")
        return markets

    def effective_max_pct(self) -> Decimal:
        pct = self.config.max_position_pct
        if self.reduced_trades_left > 0:
            pct = pct * REDUCED_SIZE_FACTOR
        return pct

    async def run_cycle(self) -> bool:
        """One full trading cycle. False means the agent is dead."""
        cfg = self.config
        portfolio = self.portfolio

        if not portfolio.is_alive(cfg.kill_threshold):
            logger.error(f"[RUNNER] AGENT DEAD - Balance ${portfolio.balance} "
                         f"below kill threshold ${cfg.kill_threshold}")
            self.dead = True
            return False

        action = check_consecutive_losses(portfolio.consecutive_losses)
        if action == LossAction.PAUSE:
            if not self.paused:
                logger.error(f"[RUNNER] PAUSED: {portfolio.consecutive_losses} consecutive losses")
                self.paused = True
            await self.resolve_open_trades()
            return True
        elif action == LossAction.SKIP_CYCLE:
            logger.warning("[RUNNER] 3+ losses: skipping this cycle")
            await self.resolve_open_trades()
            return True
        elif action == LossAction.REDUCE_SIZE:
            if self.reduced_trades_left == 0:
                logger.warning(f"[RUNNER] 4+ losses: reducing position 50% for {REDUCED_SIZE_TRADES} trades")
                self.reduced_trades_left = REDUCED_SIZE_TRADES
        else:
            self.paused = False

        survival_pct, _ = survival_adjust(portfolio.balance, cfg.kill_threshold, cfg.max_position_pct)
        if survival_pct < cfg.max_position_pct:
            logger.warning(f"[RUNNER] SURVIVAL MODE: position cap {survival_pct * 100:.1f}%")

        markets = await self.resolve_open_trades()
        if markets is None:
            return True

        if portfolio.open_position_count >= cfg.max_open_positions:
            logger.info(f"[RUNNER] At max open positions ({cfg.max_open_positions}), not opening")
            return True

        by_id: Dict[str, Market] = {m.id: m for m in markets}
        verdicts = await self.verdict_source.fetch(markets)
        opened = 0

        for verdict in verdicts:
            if self.shutdown.is_set():
                break
            if portfolio.open_position_count >= cfg.max_open_positions:
                break
            market = by_id.get(verdict.market_id)
            if market is None or portfolio.has_open_position(market.id):
                continue

            decision = risk_manager.check(verdict, portfolio, cfg, self.effective_max_pct(), market.yes_price)
            if not decision.approved:
                continue

            plan = strategist.plan(verdict, decision, market)
            trade = await asyncio.to_thread(executor.execute, plan, portfolio, self.sim, self.history)
            if trade is None:
                continue

            opened += 1
            if self.reduced_trades_left > 0:
                self.reduced_trades_left -= 1

        logger.info(f"[RUNNER] Cycle #{self.cycle}: {len(verdicts)} verdicts, {opened} opened, "
                    f"{portfolio.open_position_count} open, balance ${portfolio.balance}")
        return True

    def price_check_interval(self) -> int:
        """PRICE_CHECK_SECS, tightened to the shortest re-check cadence among open trades."""
        pc_secs = self.config.price_check_secs
        cadences = [t.check_interval_secs for t in self.portfolio.open_trades() if t.check_interval_secs > 0]
        if pc_secs > 0 and cadences:
            return min(pc_secs, min(cadences))
        return pc_secs

    async def price_check_loop(self) -> bool:
        """
        Wait out the scan interval, re-checking prices every price_check_interval()
        seconds while positions are open. False if shutdown was requested.
        """
        interval = self.config.scan_interval_secs
        pc_secs = self.price_check_interval()
        has_open = self.portfolio.open_position_count > 0

        if not (has_open and 0 < pc_secs < interval):
            return await self.sleep_or_shutdown(interval)

        checks = interval // pc_secs
        logger.info(f"[RUNNER] Fast price-check: {self.portfolio.open_position_count} open, "
                    f"every {pc_secs}s ({checks} checks)")

        for i in range(1, checks + 1):
            if not await self.sleep_or_shutdown(pc_secs):
                return False
            if self.portfolio.open_position_count == 0:
                logger.info("[RUNNER] All positions closed, waiting for next cycle")
                remaining = (checks - i) * pc_secs
                if remaining > 0:
                    return await self.sleep_or_shutdown(remaining)
                return True
            await self.resolve_open_trades(label="FAST-")
        return True

    async def graceful_shutdown(self):
        """Mark every open position to market and log the final report."""
        markets = await self.feed.fetch_markets(self.config.max_markets_to_scan)
        if markets is None:
            logger.warning("[RUNNER] No fresh prices at shutdown, closing at last known prices")
            markets = []

        closed = await asyncio.to_thread(self.portfolio.close_all_positions, markets, self.sim)
        for trade in closed:
            self.history.save_trade(trade)
        if closed:
            logger.info(f"[RUNNER] Closed {len(closed)} positions at shutdown")

        stats = self.portfolio.stats_with_markets(markets)
        logger.info(f"[RUNNER] PAPER TRADING STOPPED after {self.cycle} cycles\n{stats.render()}")
        logger.info(f"[RUNNER] History: {self.history.get_summary()}")

    async def shutdown_positions(self):
        """Run graceful_shutdown to completion even if the caller is cancelled."""
        closing = asyncio.ensure_future(self.graceful_shutdown())
        try:
            await asyncio.shield(closing)
        except asyncio.CancelledError:
            logger.warning("[RUNNER] Cancelled during shutdown, finishing position close first")
            await closing
            raise

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)

    async def run(self, once: bool = False) -> int:
        """Main loop. Returns a process exit code (1 if the agent died)."""
        cfg = self.config
        logger.info(f"[RUNNER] PAPER TRADING STARTED | Balance ${self.portfolio.balance} | "
                    f"Kill ${cfg.kill_threshold} | Kelly {cfg.kelly_fraction} | Max {cfg.max_position_pct}")

        watcher = asyncio.create_task(self.watch_stop_file())
        try:
            while not self.shutdown.is_set():
                self.cycle += 1
                logger.info(f"[RUNNER] ━━━━━━━━━ CYCLE #{self.cycle} ━━━━━━━━━")

                if not await self.run_cycle():
                    break
                if once:
                    logger.info("[RUNNER] Single run mode - exiting")
                    break
                if not await self.price_check_loop():
                    break
        finally:
            self.shutdown.set()
            await self.shutdown_positions()
            await watcher

        return 1 if self.dead else 0


# ============================================================
# MAIN
# ============================================================

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Polymarket Agent - paper trading")
    parser.add_argument("--verdicts", type=Path, default=Path("verdicts.json"),
                        help="JSON file of judge verdicts")
    parser.add_argument("--history", type=Path, default=Path("paper_trades.json"),
                        help="Trade history JSON file")
    parser.add_argument("--env-file", default=None, help="Path to .env file")
    parser.add_argument("--once", action="store_true", help="Run a single cycle, then shut down")
    parser.add_argument("--seed", type=int, default=None, help="Seed the fill simulator")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        config = AgentConfig.from_env(args.env_file)
    except ConfigError as e:
        logger.error(f"[RUNNER] {e}")
        return 2

    simulator = FillSimulator(random.Random(args.seed)) if args.seed is not None else None
    trader = PaperTrader(
        config,
        JsonVerdictSource(args.verdicts),
        portfolio=Portfolio(config.initial_balance, simulator=simulator),
        history=TradeHistory(args.history),
    )

    async def _run():
        trader.install_signal_handlers()
        return await trader.run(once=args.once)

    return asyncio.run(_run())


if __name__ == "__main__":
    sys.exit(main())
