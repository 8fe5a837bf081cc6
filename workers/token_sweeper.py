"""
Periodic sweep of expired verification tokens.

MongoDB's TTL monitor normally removes expired records on its own; this loop
covers deployments where it is unavailable or too slow (it runs about once
a minute and can lag under load). Enabled by setting
VERIFICATION_SWEEP_INTERVAL_SECONDS above zero.
"""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol

from pymongo.errors import PyMongoError

from shared.logging import get_logger

log = get_logger(__name__)


class Sweeper(Protocol):
    async def sweep_expired(self) -> int: ...


async def run_token_sweeper(
    service: Sweeper,
    interval_seconds: float,
    stop_event: Optional[asyncio.Event] = None,
) -> int:
    """Call ``service.sweep_expired()`` every *interval_seconds* until stopped.

    A failed sweep is logged and retried on the next tick. Returns the total
    number of records removed.
    """
    if interval_seconds <= 0:
        log.info("token_sweeper_disabled")
        return 0

    stop_event = stop_event or asyncio.Event()
    total = 0
    log.info("token_sweeper_started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            total += await service.sweep_expired()
        except PyMongoError as e:
            log.error("token_sweep_failed", error=str(e), error_type=type(e).__name__)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass

    log.info("token_sweeper_stopped", removed_total=total)
    return total
