"""
Unit tests for history buffers
"""
import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from history import HistoryStore, RingBuffer, metrics_point
from registry import MinerInfo, MinerRegistry
from tests.mock_responses import make_reading


class TestRingBuffer(unittest.TestCase):
    """Test bounded FIFO behaviour"""

    def test_eviction_keeps_newest(self):
        capacity = 5
        for total in (1, 5, 6, 17):
            buffer = RingBuffer(capacity)
            for i in range(1, total + 1):
                buffer.append(i)

            self.assertEqual(len(buffer), min(total, capacity))
            self.assertEqual(buffer.oldest(), max(1, total - capacity + 1))
            self.assertEqual(buffer.latest(), total)

    def test_empty(self):
        buffer = RingBuffer(3)
        self.assertIsNone(buffer.oldest())
        self.assertEqual(buffer.to_list(), [])

    def test_invalid_capacity(self):
        with self.assertRaises(ValueError):
            RingBuffer(0)


class TestHistoryStore(unittest.TestCase):
    """Test coarse, fine and fleet histories"""

    def setUp(self):
        self.history = HistoryStore(history_points=3, metrics_points=4, fleet_points=2)

    def test_coarse_history_per_device(self):
        for i in range(5):
            self.history.record_hashrate('10.0.0.1', float(i), timestamp=i)
        self.history.record_hashrate('10.0.0.2', 42.0, timestamp=9)

        points = self.history.hashrate_history('10.0.0.1')
        self.assertEqual([p.hashrate for p in points], [2.0, 3.0, 4.0])
        self.assertEqual(len(self.history.hashrate_history('10.0.0.2')), 1)
        self.assertEqual(self.history.hashrate_history('10.0.0.3'), [])

    def test_metrics_history_and_clear(self):
        reading = make_reading('10.0.0.1', boards=3)
        for i in range(6):
            self.history.record_metrics('10.0.0.1', reading, timestamp=i)

        points = self.history.metrics_history('10.0.0.1')
        self.assertEqual(len(points), 4)
        self.assertEqual(points[0].timestamp, 2)
        self.assertEqual(len(points[0].board_hashrates), 3)

        self.history.clear_metrics('10.0.0.1')
        self.assertEqual(self.history.metrics_history('10.0.0.1'), [])

    def test_retain_drops_history_of_vanished_miners(self):
        self.history.record_hashrate('10.0.0.1', 10.0, timestamp=1)
        self.history.record_hashrate('10.0.0.2', 20.0, timestamp=1)

        for _ in range(2):
            self.assertEqual(self.history.retain_hashrate(['10.0.0.1'], max_missed_passes=2), 0)
        self.assertEqual(len(self.history.hashrate_history('10.0.0.2')), 1)

        self.assertEqual(self.history.retain_hashrate(['10.0.0.1'], max_missed_passes=2), 1)
        self.assertEqual(self.history.hashrate_history('10.0.0.2'), [])
        self.assertEqual(len(self.history.hashrate_history('10.0.0.1')), 1)

    def test_retain_resets_when_miner_returns(self):
        self.history.record_hashrate('10.0.0.1', 10.0, timestamp=1)

        self.history.retain_hashrate([], max_missed_passes=1)
        self.history.retain_hashrate(['10.0.0.1'], max_missed_passes=1)
        self.history.retain_hashrate([], max_missed_passes=1)

        self.assertEqual(len(self.history.hashrate_history('10.0.0.1')), 1)

    def test_metrics_point(self):
        point = metrics_point(make_reading('10.0.0.1', hashrate=90.0, boards=3,
                                           temperature=60.0), 1.0)
        self.assertEqual(point.total_hashrate, 90.0)
        self.assertEqual(point.board_temps, [60.0, 61.0, 62.0])
        self.assertAlmostEqual(point.avg_temp, 61.0)

    def test_fleet_sampling_skips_empty_registry(self):
        registry = MinerRegistry()
        self.assertFalse(self.history.sample_fleet(registry))
        self.assertEqual(self.history.fleet_history(), [])

    def test_fleet_sampling_sums_hashrate(self):
        registry = MinerRegistry()
        registry.replace_all({
            ip: MinerInfo.from_reading(make_reading(ip, hashrate=rate))
            for ip, rate in [('10.0.0.1', 10.0), ('10.0.0.2', 15.5)]
        })
        for ts in range(3):
            self.assertTrue(self.history.sample_fleet(registry, timestamp=ts))

        points = self.history.fleet_history()
        self.assertEqual(len(points), 2)
        self.assertEqual(points[0].timestamp, 1)
        self.assertAlmostEqual(points[-1].total_hashrate, 25.5)


if __name__ == '__main__':
    unittest.main()
