"""
Scan passes over operator-defined ranges

A pass stages every discovered miner into a pass-local map and swaps the
whole map into the registry once all ranges are done, so readers only ever
see complete passes.
"""
import logging
import time
from dataclasses import dataclass, asdict, replace
from threading import Lock, Thread
from typing import Dict, Iterable, List, Optional, Union

from history import HistoryStore
from miners.base import DeviceClient
from ranges import IPRange
from registry import MinerInfo, MinerRegistry

logger = logging.getLogger(__name__)


@dataclass
class ScanProgress:
    """State of the current or most recent pass"""
    scanning: bool = False
    current_ip: str = ""
    total_ips: int = 0
    scanned_ips: int = 0
    found_miners: int = 0
    scan_start_time: Optional[float] = None
    total_ranges: int = 0
    scanned_ranges: int = 0
    scan_duration_secs: float = 0.0

    @property
    def elapsed_secs(self) -> float:
        """Live elapsed time while scanning, pass duration afterwards"""
        if self.scanning and self.scan_start_time is not None:
            return time.time() - self.scan_start_time
        return self.scan_duration_secs

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['elapsed_secs'] = self.elapsed_secs
        return data


class ProgressTracker:
    """Shared, lock-guarded scan progress"""

    def __init__(self):
        self._state = ScanProgress()
        self._lock = Lock()

    @property
    def is_scanning(self) -> bool:
        with self._lock:
            return self._state.scanning

    def begin(self, total_ips: int, total_ranges: int) -> bool:
        """
        Register the scope of a new pass

        Returns:
            False if a pass is already running (nothing changed)
        """
        with self._lock:
            if self._state.scanning:
                return False
            self._state = ScanProgress(
                scanning=True,
                total_ips=total_ips,
                scan_start_time=time.time(),
                total_ranges=total_ranges
            )
            return True

    def mark_address(self, ip: str):
        with self._lock:
            self._state.current_ip = ip
            self._state.scanned_ips = min(self._state.scanned_ips + 1, self._state.total_ips)

    def set_found(self, count: int):
        with self._lock:
            self._state.found_miners = count

    def range_done(self):
        with self._lock:
            self._state.scanned_ranges += 1

    def finish(self):
        with self._lock:
            self._state.scanning = False
            self._state.current_ip = ""
            if self._state.scan_start_time is not None:
                self._state.scan_duration_secs = time.time() - self._state.scan_start_time

    def snapshot(self) -> ScanProgress:
        with self._lock:
            return replace(self._state)


class ScanOrchestrator:
    """Runs scan passes on a background thread"""

    def __init__(self, client: DeviceClient, registry: MinerRegistry,
                 progress: ProgressTracker, history: HistoryStore):
        self.client = client
        self.registry = registry
        self.progress = progress
        self.history = history
        self._thread: Optional[Thread] = None

    def run_scan(self, ranges: Iterable[Union[IPRange, str]]):
        """
        Start a pass and return immediately

        The caller must already have called ``progress.begin()`` with the
        total address count of ``ranges``.
        """
        thread = Thread(target=self.scan_ranges, args=(list(ranges),),
                        name="scan-pass", daemon=True)
        self._thread = thread
        thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the last started pass ends; True if it has"""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def scan_ranges(self, ranges: List[Union[IPRange, str]]):
        """Body of one pass"""
        new_miners: Dict[str, MinerInfo] = {}
        logger.info(f"Starting scan of {len(ranges)} range(s)")

        try:
            for ip_range in ranges:
                try:
                    if not isinstance(ip_range, IPRange):
                        ip_range = IPRange.from_string(ip_range)
                    discovered = self.client.enumerate(ip_range)
                except Exception as e:
                    logger.error(f"Scan error for range {ip_range}: {e}")
                    self.progress.range_done()
                    continue

                for miner in discovered:
                    self._stage(miner, new_miners)

                self.progress.range_done()

            self.registry.replace_all(new_miners)
            self.history.retain_hashrate(new_miners)
            logger.info(f"Scan complete. Found {len(new_miners)} miners")
        except Exception as e:
            logger.error(f"Scan pass aborted: {e}")
        finally:
            self.progress.finish()

    def _stage(self, miner, new_miners: Dict[str, MinerInfo]):
        """Read one discovered miner and stage it into the pass-local map"""
        ip = miner.ip
        self.progress.mark_address(ip)

        try:
            reading = miner.get_data()
        except Exception as e:
            logger.error(f"Error reading miner at {ip}: {e}")
            return

        miner_info = MinerInfo.from_reading(reading)
        # Use IP as key to deduplicate, last discovery wins
        new_miners[ip] = miner_info

        if reading.hashrate is not None:
            self.history.record_hashrate(ip, reading.hashrate)

        self.progress.set_found(len(new_miners))
