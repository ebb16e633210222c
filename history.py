"""
Bounded history buffers for graphs

Three independent families:
    - coarse per-device hashrate, appended once per scan discovery
    - fine per-device metrics, sampled at the graph cadence
    - fleet-wide total hashrate, sampled at the graph cadence
"""
import time
from collections import deque
from threading import Lock
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional

import config
from miners.models import DeviceReading


class HashratePoint(NamedTuple):
    timestamp: float
    hashrate: float


class MetricsPoint(NamedTuple):
    timestamp: float
    total_hashrate: float
    power: float
    board_hashrates: List[float]
    avg_temp: float
    board_temps: List[float]


class FleetPoint(NamedTuple):
    timestamp: float
    total_hashrate: float


class RingBuffer:
    """FIFO of bounded capacity; the oldest point is evicted on overflow"""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._items = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def append(self, item):
        self._items.append(item)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator:
        return iter(self._items)

    def oldest(self):
        return self._items[0] if self._items else None

    def latest(self):
        return self._items[-1] if self._items else None

    def to_list(self) -> List:
        return list(self._items)


def metrics_point(reading: DeviceReading, timestamp: float) -> MetricsPoint:
    """Flatten a reading into a fine history point"""
    board_hashrates = [b.hashrate for b in reading.hashboards if b.hashrate is not None]
    board_temps = reading.board_temperatures
    if board_temps:
        avg_temp = sum(board_temps) / len(board_temps)
    else:
        avg_temp = reading.average_temperature or 0.0

    return MetricsPoint(
        timestamp=timestamp,
        total_hashrate=reading.hashrate or 0.0,
        power=reading.wattage or 0.0,
        board_hashrates=board_hashrates,
        avg_temp=avg_temp,
        board_temps=board_temps
    )


class HistoryStore:
    """Lock-guarded coarse, fine and fleet history buffers"""

    def __init__(self, history_points: int = config.MAX_HISTORY_POINTS,
                 metrics_points: int = config.MAX_METRICS_POINTS,
                 fleet_points: int = config.MAX_FLEET_POINTS):
        self.history_points = history_points
        self.metrics_points = metrics_points
        self._hashrate: Dict[str, RingBuffer] = {}
        self._metrics: Dict[str, RingBuffer] = {}
        self._missed_passes: Dict[str, int] = {}
        self._fleet = RingBuffer(fleet_points)
        self._lock = Lock()

    # Coarse per-device hashrate

    def record_hashrate(self, ip: str, hashrate: float, timestamp: Optional[float] = None):
        point = HashratePoint(timestamp if timestamp is not None else time.time(), hashrate)
        with self._lock:
            buffer = self._hashrate.get(ip)
            if buffer is None:
                buffer = self._hashrate[ip] = RingBuffer(self.history_points)
            buffer.append(point)

    def hashrate_history(self, ip: str) -> List[HashratePoint]:
        with self._lock:
            buffer = self._hashrate.get(ip)
            return buffer.to_list() if buffer else []

    def retain_hashrate(self, present: Iterable[str],
                        max_missed_passes: int = config.HISTORY_RETAIN_PASSES) -> int:
        """
        Age out coarse history of miners absent from consecutive scan passes

        Called once per completed pass with the addresses it found. A buffer
        is dropped once its miner has been missing for more than
        max_missed_passes passes in a row.

        Returns:
            Number of buffers dropped
        """
        present = set(present)
        dropped = 0
        with self._lock:
            for ip in list(self._hashrate):
                if ip in present:
                    self._missed_passes.pop(ip, None)
                    continue
                missed = self._missed_passes.get(ip, 0) + 1
                if missed > max_missed_passes:
                    del self._hashrate[ip]
                    self._missed_passes.pop(ip, None)
                    dropped += 1
                else:
                    self._missed_passes[ip] = missed
        return dropped

    # Fine per-device metrics

    def record_metrics(self, ip: str, reading: DeviceReading,
                       timestamp: Optional[float] = None):
        point = metrics_point(reading, timestamp if timestamp is not None else time.time())
        with self._lock:
            buffer = self._metrics.get(ip)
            if buffer is None:
                buffer = self._metrics[ip] = RingBuffer(self.metrics_points)
            buffer.append(point)

    def metrics_history(self, ip: str) -> List[MetricsPoint]:
        with self._lock:
            buffer = self._metrics.get(ip)
            return buffer.to_list() if buffer else []

    def clear_metrics(self, ip: str):
        with self._lock:
            self._metrics.pop(ip, None)

    # Fleet-wide hashrate

    def record_fleet(self, total_hashrate: float, timestamp: Optional[float] = None):
        point = FleetPoint(timestamp if timestamp is not None else time.time(), total_hashrate)
        with self._lock:
            self._fleet.append(point)

    def sample_fleet(self, registry, timestamp: Optional[float] = None) -> bool:
        """Append the registry's total hashrate; skipped while the registry is empty"""
        if len(registry) == 0:
            return False
        self.record_fleet(registry.total_hashrate(), timestamp)
        return True

    def fleet_history(self) -> List[FleetPoint]:
        with self._lock:
            return self._fleet.to_list()
