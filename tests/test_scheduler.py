#!/usr/bin/env python3
"""
Spam Scheduler Tests
====================
Tick timing, batch sizing, account addressing and fault isolation.

Run with: python -m pytest tests/test_scheduler.py -v
"""

import sys
import random
import unittest
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from accounts import AccountPool
from dispatcher import TransactionDispatcher, STAGE_NONCE, STAGE_SUBMIT
from endpoints import EndpointPool
from scheduler import SpamScheduler, SpamStats, Ticker, BatchResult
from transactions import FeeParams
from utils import ConfigError
from fakes import FakeClock, FakeEndpoint


class TestTicker(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock(start=100.0)
        self.ticker = Ticker(12.0, clock=self.clock, sleep=self.clock.sleep)

    def test_first_tick_is_immediate(self):
        self.assertEqual(self.ticker.tick(), 100.0)
        self.assertEqual(self.clock.sleeps, [])

    def test_fixed_period(self):
        fired = [self.ticker.tick() for _ in range(4)]

        self.assertEqual(fired, [100.0, 112.0, 124.0, 136.0])
        self.assertEqual(self.clock.sleeps, [12.0, 12.0, 12.0])

    def test_short_work_keeps_cadence(self):
        self.ticker.tick()
        self.clock.advance(5)
        self.assertEqual(self.ticker.tick(), 112.0)
        self.assertEqual(self.clock.sleeps, [7.0])

    def test_overrun_fires_once_then_resumes(self):
        self.ticker.tick()
        # work overruns more than two periods
        self.clock.advance(30)

        fired = [self.ticker.tick()]
        fired.append(self.ticker.tick())

        self.assertEqual(fired, [130.0, 142.0])
        self.assertEqual(self.clock.sleeps, [12.0])

    def test_overrun_of_exactly_one_period(self):
        self.ticker.tick()
        self.clock.advance(12)
        self.assertEqual(self.ticker.tick(), 112.0)
        self.assertEqual(self.ticker.tick(), 124.0)
        self.assertEqual(self.clock.sleeps, [12.0])

    def test_invalid_period(self):
        with self.assertRaises(ConfigError):
            Ticker(0)


class SchedulerTestCase(unittest.TestCase):
    """Dispatcher over fake endpoints with signing stubbed out."""

    def setUp(self):
        self.accounts = AccountPool.generate(5)
        self.endpoint = FakeEndpoint()
        patcher = patch("dispatcher.sign", return_value=Mock(raw_transaction=b"\x03"))
        patcher.start()
        self.addCleanup(patcher.stop)

    def make_scheduler(self, min_txs, max_txs, seed=11, endpoint=None, ticker=None):
        rng = random.Random(seed)
        dispatcher = TransactionDispatcher(
            EndpointPool([endpoint or self.endpoint]), self.accounts,
            chain_id=1337, fees=FeeParams(), rng=rng
        )
        return SpamScheduler(dispatcher, min_txs, max_txs, rng=rng, ticker=ticker)


class TestBatchSize(SchedulerTestCase):

    def test_counts_cover_range(self):
        scheduler = self.make_scheduler(1, 5)
        counts = [scheduler.draw_count() for _ in range(500)]

        self.assertEqual(set(counts), {1, 2, 3, 4, 5})

    def test_zero_minimum(self):
        scheduler = self.make_scheduler(0, 2)
        counts = {scheduler.draw_count() for _ in range(300)}
        self.assertEqual(counts, {0, 1, 2})

    def test_fixed_count(self):
        scheduler = self.make_scheduler(3, 3)
        self.assertEqual({scheduler.draw_count() for _ in range(50)}, {3})

    def test_inconsistent_bounds_rejected(self):
        with self.assertRaises(ConfigError):
            self.make_scheduler(4, 3)
        with self.assertRaises(ConfigError):
            self.make_scheduler(0, 0)

    def test_more_than_pool_rejected(self):
        with self.assertRaises(ConfigError):
            self.make_scheduler(1, 6)


class TestAddressing(SchedulerTestCase):

    def test_prefix_in_order(self):
        scheduler = self.make_scheduler(1, 5)

        for _ in range(20):
            batch = scheduler.run_tick()
            self.assertEqual([r.index for r in batch.results], list(range(batch.count)))
            self.assertEqual(
                [r.address for r in batch.results],
                self.accounts.addresses[:batch.count]
            )
            self.assertTrue(1 <= batch.count <= 5)

    def test_nonce_lookups_follow_index_order(self):
        scheduler = self.make_scheduler(4, 4)
        scheduler.run_tick()

        looked_up = [call[1] for call in self.endpoint.calls if call[0] == "nonce"]
        self.assertEqual(looked_up, self.accounts.addresses[:4])

    def test_executor_keeps_result_order(self):
        scheduler = self.make_scheduler(5, 5)

        with ThreadPoolExecutor(max_workers=5) as executor:
            batch = scheduler.run_tick(executor)

        self.assertEqual([r.index for r in batch.results], [0, 1, 2, 3, 4])
        self.assertEqual(batch.sent, 5)


class TestFaultIsolation(SchedulerTestCase):

    def test_nonce_failure_does_not_stop_siblings(self):
        endpoint = FakeEndpoint(nonce_errors={self.accounts[1].address})
        scheduler = self.make_scheduler(3, 3, endpoint=endpoint)

        batch = scheduler.run_tick()

        self.assertEqual([r.success for r in batch.results], [True, False, True])
        self.assertEqual(batch.results[1].stage, STAGE_NONCE)
        self.assertEqual(len(endpoint.submitted), 2)

    def test_submit_failure_does_not_stop_siblings(self):
        endpoint = FakeEndpoint(submit_errors={0})
        scheduler = self.make_scheduler(3, 3, endpoint=endpoint)

        batch = scheduler.run_tick()

        self.assertEqual([r.success for r in batch.results], [False, True, True])
        self.assertEqual(batch.results[0].stage, STAGE_SUBMIT)

    def test_later_ticks_still_fire(self):
        clock = FakeClock()
        endpoint = FakeEndpoint(nonce_errors=set(self.accounts.addresses))
        scheduler = self.make_scheduler(
            2, 2, endpoint=endpoint,
            ticker=Ticker(12.0, clock=clock, sleep=clock.sleep)
        )

        scheduler.run(max_ticks=4)

        self.assertEqual(scheduler.stats.ticks, 4)
        self.assertEqual(scheduler.stats.failed, 8)
        self.assertEqual(scheduler.stats.failures_by_stage, {STAGE_NONCE: 8})
        self.assertEqual(clock.sleeps, [12.0, 12.0, 12.0])


class TestRun(SchedulerTestCase):

    def test_bounded_run(self):
        clock = FakeClock()
        scheduler = self.make_scheduler(
            1, 5, ticker=Ticker(12.0, clock=clock, sleep=clock.sleep)
        )

        scheduler.run(max_ticks=6)

        self.assertEqual(scheduler.stats.ticks, 6)
        self.assertEqual(scheduler.stats.sent, len(self.endpoint.submitted))
        self.assertEqual(scheduler.stats.failed, 0)
        self.assertEqual(clock.now, 60.0)

    def test_interrupt_abandons_in_flight_sends(self):
        ticker = Mock(period=12.0)
        ticker.tick.side_effect = [0.0, KeyboardInterrupt()]
        scheduler = self.make_scheduler(2, 2, ticker=ticker)

        with patch("scheduler.ThreadPoolExecutor") as pool:
            with self.assertRaises(KeyboardInterrupt):
                scheduler.run()

        executor = pool.return_value
        self.assertEqual(executor.submit.call_count, 2)
        executor.shutdown.assert_called_once_with(wait=False, cancel_futures=True)

    def test_bounded_run_drains_executor(self):
        clock = FakeClock()
        scheduler = self.make_scheduler(
            1, 1, ticker=Ticker(12.0, clock=clock, sleep=clock.sleep)
        )

        with patch("scheduler.ThreadPoolExecutor") as pool:
            pool.return_value.submit.side_effect = lambda fn, attempt: Mock(result=Mock(return_value=fn(attempt)))
            scheduler.run(max_ticks=2)

        pool.return_value.shutdown.assert_called_once_with(wait=True)
        self.assertEqual(scheduler.stats.sent, 2)

    def test_default_workers_match_max(self):
        scheduler = self.make_scheduler(1, 4)
        self.assertEqual(scheduler.workers, 4)


class TestSpamStats(unittest.TestCase):

    def test_success_rate(self):
        stats = SpamStats()
        self.assertEqual(stats.success_rate, 0.0)

        ok = Mock(success=True, stage=None)
        bad = Mock(success=False, stage=STAGE_SUBMIT)
        stats.record(BatchResult(tick=1, count=4, results=[ok, ok, ok, bad]))

        self.assertEqual(stats.attempted, 4)
        self.assertEqual(stats.sent, 3)
        self.assertEqual(stats.success_rate, 75.0)
        self.assertEqual(stats.to_dict()['failures_by_stage'], {STAGE_SUBMIT: 1})


if __name__ == '__main__':
    unittest.main()
