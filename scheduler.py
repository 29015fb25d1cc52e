"""
Spam Scheduler
==============
Fixed-period loop that fires a randomly sized batch of send attempts.

Each tick draws a count in [min_txs, max_txs], addresses accounts 0..count-1
in order and runs the attempts as one task group on a thread pool, waiting
for the whole group before the next tick. A tick that overruns its period
delays the schedule instead of queueing catch-up ticks.
"""

import time
import random
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass, field

from dispatcher import SendResult, TransactionDispatcher
from utils import logger, ConfigError


class Ticker:
    """
    Periodic timer with delay-on-miss behaviour.

    The first tick fires immediately. A tick requested before its deadline
    sleeps until the deadline; a tick requested after its deadline fires at
    once and the next deadline becomes now + period.
    """

    def __init__(
        self,
        period: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        if period <= 0:
            raise ConfigError("Ticker period must be positive")
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._deadline: Optional[float] = None

    def tick(self) -> float:
        """Wait for the next tick and return the time it fired."""
        now = self._clock()

        if self._deadline is None:
            fired = now
        elif now < self._deadline:
            self._sleep(self._deadline - now)
            fired = self._deadline
        else:
            # missed: coalesce into this one tick
            fired = now

        self._deadline = fired + self.period
        return fired


@dataclass
class BatchResult:
    """Outcome of one tick."""
    tick: int
    count: int
    results: List[SendResult] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent


@dataclass
class SpamStats:
    """Running totals across ticks."""
    ticks: int = 0
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    failures_by_stage: Dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.attempted == 0:
            return 0.0
        return (self.sent / self.attempted) * 100

    def record(self, batch: BatchResult):
        self.ticks += 1
        self.attempted += len(batch.results)
        self.sent += batch.sent
        self.failed += batch.failed
        for result in batch.results:
            if not result.success:
                stage = result.stage or "unknown"
                self.failures_by_stage[stage] = self.failures_by_stage.get(stage, 0) + 1

    def to_dict(self) -> Dict[str, object]:
        return {
            'ticks': self.ticks,
            'attempted': self.attempted,
            'sent': self.sent,
            'failed': self.failed,
            'success_rate': self.success_rate,
            'failures_by_stage': dict(self.failures_by_stage),
        }


class SpamScheduler:
    """Drives the dispatcher forever once funding is complete."""

    def __init__(
        self,
        dispatcher: TransactionDispatcher,
        min_txs: int,
        max_txs: int,
        rng: Optional[random.Random] = None,
        ticker: Optional[Ticker] = None,
        workers: Optional[int] = None
    ):
        if max_txs < min_txs or max_txs == 0 or min_txs < 0:
            raise ConfigError(f"inconsistent min & max (min={min_txs}, max={max_txs})")
        if max_txs > len(dispatcher.accounts):
            raise ConfigError(
                f"max_txs={max_txs} exceeds the {len(dispatcher.accounts)} available accounts"
            )

        self.dispatcher = dispatcher
        self.min_txs = min_txs
        self.max_txs = max_txs
        self.rng = rng or random.Random()
        self.ticker = ticker or Ticker(12.0)
        self.workers = workers or max_txs
        self.stats = SpamStats()

    def draw_count(self) -> int:
        """Uniform batch size in [min_txs, max_txs]."""
        return self.rng.randint(self.min_txs, self.max_txs)

    def run_tick(self, executor: Optional[Executor] = None) -> BatchResult:
        """
        Run one batch and wait for all of its attempts.

        Without an executor the attempts run inline, in index order.
        """
        count = self.draw_count()
        batch = BatchResult(tick=self.stats.ticks + 1, count=count)
        logger.info(f"sending {count} tx")

        attempts = [self.dispatcher.plan(idx) for idx in range(count)]
        if executor is None:
            batch.results = [self.dispatcher.send(attempt) for attempt in attempts]
        else:
            futures = [executor.submit(self.dispatcher.send, attempt) for attempt in attempts]
            batch.results = [future.result() for future in futures]

        self.stats.record(batch)
        if batch.failed:
            logger.warning(f"tick {batch.tick}: {batch.sent}/{count} sent, {batch.failed} failed")
        else:
            logger.info(f"tick {batch.tick}: {batch.sent}/{count} sent")
        return batch

    def run(self, max_ticks: Optional[int] = None):
        """
        Tick until the process is stopped.

        max_ticks bounds the loop; it is None in normal operation.
        """
        logger.info(
            f"Spamming {self.min_txs}-{self.max_txs} tx every {self.ticker.period:g}s "
            f"across {len(self.dispatcher.endpoints)} endpoint(s)"
        )
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="spam")
        try:
            while max_ticks is None or self.stats.ticks < max_ticks:
                self.ticker.tick()
                self.run_tick(executor)
        except BaseException:
            # Interrupted: in-flight sends are abandoned, not drained
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
