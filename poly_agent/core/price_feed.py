#!/usr/bin/env python3
"""
PRICE FEED - Gamma API Market Snapshots
========================================
Fetches active Polymarket markets and converts them to Market snapshots
for the ledger's resolve cycle.

A failed fetch returns None (not an empty list): an empty snapshot would
make every open trade look resolved.
"""

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

import aiohttp
from pydantic import ValidationError

from .models import ONE, ZERO, Market

logger = logging.getLogger(__name__)

DEFAULT_GAMMA_API = "https://gamma-api.polymarket.com"
REQUEST_TIMEOUT_SECS = 15


def _decimal(value, default: Decimal = ZERO) -> Decimal:
    if value is None or value == "":
        return default
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    return d if d.is_finite() else default


def parse_outcome_prices(raw) -> Optional[List[Decimal]]:
    """outcomePrices arrives as a JSON-encoded string ('["0.48", "0.52"]') or a list."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
    if not isinstance(raw, list) or len(raw) < 2:
        return None
    prices = [_decimal(p, default=None) for p in raw[:2]]
    if any(p is None for p in prices):
        return None
    return prices


def parse_market(data: dict) -> Optional[Market]:
    """One Gamma market dict -> Market, or None if it has no usable YES price."""
    market_id = data.get("conditionId") or data.get("id")
    if not market_id:
        return None

    prices = parse_outcome_prices(data.get("outcomePrices"))
    if prices is None:
        return None
    yes_price, no_price = prices
    if not (ZERO <= yes_price <= ONE):
        return None

    return Market(
        id=str(market_id),
        question=data.get("question") or "",
        category=data.get("category") or "",
        end_date=data.get("endDate") or data.get("endDateIso") or "",
        yes_price=yes_price,
        no_price=no_price,
        volume=_decimal(data.get("volumeNum", data.get("volume"))),
        liquidity=_decimal(data.get("liquidityNum", data.get("liquidity"))),
        slug=data.get("slug") or "",
    )


class GammaPriceFeed:
    """
    Async Gamma API client.

    Usage:
        feed = GammaPriceFeed(cfg.gamma_api_base)
        markets = await feed.fetch_markets(cfg.max_markets_to_scan)
        if markets is not None:
            portfolio.resolve_with_prices(markets, ...)
    """

    def __init__(self, base_url: str = DEFAULT_GAMMA_API):
        self.base_url = base_url.rstrip("/")

    @property
    def markets_url(self) -> str:
        return f"{self.base_url}/markets"

    async def fetch_markets(self, limit: int) -> Optional[List[Market]]:
        params = {"limit": limit, "active": "true", "closed": "false"}
        try:
            timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECS)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.markets_url, params=params) as resp:
                    if resp.status != 200:
                        logger.warning(f"[FEED] Gamma API returned HTTP {resp.status}")
                        return None
                    payload = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"[FEED] Error: {e}")
            return None

        if not isinstance(payload, list):
            logger.warning(f"[FEED] Unexpected payload type: {type(payload).__name__}")
            return None

        markets = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                market = parse_market(item)
            except (InvalidOperation, ValidationError) as e:
                logger.warning(f"[FEED] Skipping malformed market {item.get('conditionId') or item.get('id')}: {e}")
                continue
            if market is not None:
                markets.append(market)

        logger.debug(f"[FEED] {len(markets)}/{len(payload)} markets parsed")
        return markets
