#!/usr/bin/env python3
"""
Chakra relayer.

Every poll interval: read all sell/buy strategies from the MindfulProxy
registry, value each active sell strategy's Chakra, and submit fromChakra /
toChakra transactions for every trigger that is due.

Usage:
    export RPC_URL="https://..."  PRIVATE_KEY="0x..."  REGISTRY_ADDRESS="0x..."
    python relayer.py              # Poll every 60s indefinitely
    python relayer.py --once       # Run a single cycle then exit
    python relayer.py -i 30        # Poll every 30 seconds
    python relayer.py -n 10        # Stop after 10 cycles
"""
import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiohttp
from dotenv import load_dotenv

import config
from chain.client import ChainClient
from errors import ChainReadError, ConfigurationError
from execution import create_submitter
from ingestion.price_feed import PriceFeedClient, get_ssl_context
from state.context import RelayerContext
from strategy.engine import StrategyReport, process_buy_strategy, process_sell_strategy

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_dir: str = config.LOG_DIR) -> Path:
    """Console + file logging. Returns the log file path."""
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / f"relayer_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file)
        ]
    )

    # Reduce noise from libraries
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    return log_file


@dataclass
class CycleReport:
    cycle: int
    sell_strategies: int = 0
    buy_strategies: int = 0
    reports: List[StrategyReport] = field(default_factory=list)
    failed: int = 0
    error: str = ""

    @property
    def submissions(self) -> int:
        return sum(len(r.submissions) for r in self.reports)


class PollDriver:
    """
    Runs one evaluation cycle per tick.

    A tick that fires while the previous cycle is still running is skipped,
    so two cycles never work on the same strategies at once. Within a cycle
    every active strategy gets its own task and all of them are awaited
    before the cycle completes.
    """

    def __init__(
        self,
        ctx: RelayerContext,
        interval: float = config.POLL_INTERVAL_SECONDS,
        strategy_concurrency: int = config.STRATEGY_CONCURRENCY
    ):
        self.ctx = ctx
        self.interval = interval
        self.strategy_concurrency = strategy_concurrency

        self.cycle_count = 0
        self.ticks_skipped = 0
        self.last_report: Optional[CycleReport] = None

        self._cycle_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def run_cycle(self) -> CycleReport:
        """Load strategies and process every active one."""
        self.cycle_count += 1
        report = CycleReport(cycle=self.cycle_count)
        logger.info(f"[DRIVER] Cycle {report.cycle} started")

        await self.ctx.submitter.refresh_pending()

        try:
            sells = await self.ctx.chain.list_sell_strategies()
            buys = await self.ctx.chain.list_buy_strategies()
        except ChainReadError as e:
            logger.error(f"[DRIVER] Cycle {report.cycle} aborted, could not load strategies: {e}")
            report.error = str(e)
            self.last_report = report
            return report

        report.sell_strategies = len(sells)
        report.buy_strategies = len(buys)
        logger.info(f"[DRIVER] Number of sell strategies found: {len(sells)}")
        logger.info(f"[DRIVER] Number of buy strategies found: {len(buys)}")

        jobs = []
        for s in sells:
            if s.active:
                jobs.append((f"sell#{s.strategy_id}", process_sell_strategy(self.ctx, s)))
        for b in buys:
            if b.active:
                jobs.append((f"buy#{b.strategy_id}", process_buy_strategy(self.ctx, b)))

        semaphore = asyncio.Semaphore(self.strategy_concurrency)

        async def bounded(job):
            async with semaphore:
                return await job

        results = await asyncio.gather(*(bounded(job) for _, job in jobs), return_exceptions=True)

        for (label, _), result in zip(jobs, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                report.failed += 1
                logger.error(f"[DRIVER] Strategy {label} failed unexpectedly: {result!r}", exc_info=result)
            else:
                report.reports.append(result)

        logger.info(
            f"[DRIVER] Cycle {report.cycle} complete: {len(jobs)} active strategies, "
            f"{report.submissions} submissions, {report.failed} failures"
        )
        self.last_report = report
        return report

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    def tick(self) -> bool:
        """Start a cycle unless one is still running. Returns True if started."""
        if self._cycle_task is not None and not self._cycle_task.done():
            self.ticks_skipped += 1
            logger.warning("[DRIVER] Previous cycle still running, skipping this tick")
            return False
        self._cycle_task = asyncio.create_task(self.run_cycle())
        self._cycle_task.add_done_callback(self._on_cycle_done)
        return True

    @staticmethod
    def _on_cycle_done(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[DRIVER] Cycle crashed: {exc!r}", exc_info=exc)

    async def run(self, max_cycles: Optional[int] = None):
        """Tick every interval until stop() is called or max_cycles have started."""
        started = 0
        while not self._stop_event.is_set():
            if self.tick():
                started += 1
            if max_cycles and started >= max_cycles:
                break
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        # Let the in-progress cycle finish
        if self._cycle_task is not None and not self._cycle_task.done():
            logger.info("[DRIVER] Waiting for the running cycle to finish...")
            await asyncio.wait([self._cycle_task])

    def stop(self):
        logger.info("[DRIVER] Stop requested")
        self._stop_event.set()


def build_context(settings: config.RelayerSettings, session: aiohttp.ClientSession) -> RelayerContext:
    chain = ChainClient.from_settings(settings)
    oracle = PriceFeedClient(session, api_key=settings.coingecko_api_key)
    submitter = create_submitter(
        chain,
        gas_limit=settings.gas_limit,
        receipt_timeout=config.RECEIPT_TIMEOUT_SECONDS,
        inflight_ttl=config.INFLIGHT_TTL_SECONDS,
    )
    return RelayerContext(
        chain=chain,
        oracle=oracle,
        submitter=submitter,
        spender=chain.registry_address,
    )


async def main(once: bool = False, interval: Optional[int] = None, max_cycles: Optional[int] = None) -> int:
    try:
        settings = config.load_settings()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    async with aiohttp.ClientSession(connector=aiohttp.TCPConnector(ssl=get_ssl_context())) as session:
        ctx = build_context(settings, session)
        driver = PollDriver(ctx, interval=interval or settings.poll_interval)

        logger.info("=" * 60)
        logger.info("Relayer started")
        logger.info(f"  Signer: {ctx.chain.signer_address}")
        logger.info(f"  MindfulProxy: {settings.registry_address}")
        logger.info(f"  Poll interval: {driver.interval}s")
        logger.info(f"  Gas limit: {settings.gas_limit}")
        logger.info("=" * 60)

        if once:
            await driver.run_cycle()
            return 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, driver.stop)
            except NotImplementedError:
                pass

        await driver.run(max_cycles=max_cycles)
        logger.info(f"Relayer stopped after {driver.cycle_count} cycles ({driver.ticks_skipped} ticks skipped)")
    return 0


def cli():
    parser = argparse.ArgumentParser(description="Chakra strategy relayer")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single evaluation cycle and exit"
    )
    parser.add_argument(
        "-i", "--interval",
        type=int,
        default=None,
        help=f"Seconds between cycles (default: {config.POLL_INTERVAL_SECONDS})"
    )
    parser.add_argument(
        "-n", "--cycles",
        type=int,
        default=None,
        help="Stop after this many cycles (default: unlimited)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging"
    )
    args = parser.parse_args()

    load_dotenv()
    log_file = setup_logging(args.verbose)
    logger.info(f"Logging to {log_file}")

    try:
        code = asyncio.run(main(once=args.once, interval=args.interval, max_cycles=args.cycles))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    cli()
