"""
Detail observation of individual miners

Observed miners are re-read on the acquisition cadence (seconds) and
sampled into the fine history on the graph cadence (tens of milliseconds).
All device calls run on one bounded worker pool.
"""
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

import config
from history import HistoryStore
from miners.base import DeviceClient
from recording import Recorder, RecordingState
from registry import MinerRegistry

logger = logging.getLogger(__name__)


class DetailMonitor:
    """Refresh, sampling, recording and control for observed miners"""

    def __init__(self, client: DeviceClient, registry: MinerRegistry,
                 history: HistoryStore, recorder: Recorder,
                 max_workers: int = config.DEVICE_WORKERS):
        self.client = client
        self.registry = registry
        self.history = history
        self.recorder = recorder
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="device")
        self._lock = Lock()
        self._watched: List[str] = []
        self._refresh_times: Dict[str, float] = {}
        self._in_flight: Dict[str, Future] = {}
        self._recordings: Dict[str, RecordingState] = {}

    # Detail view lifecycle

    def open(self, ip: str) -> bool:
        """Start observing a registry miner; False if unknown"""
        if ip not in self.registry:
            return False
        with self._lock:
            if ip not in self._watched:
                self._watched.append(ip)
        return True

    def close(self, ip: str):
        """Stop observing; drops fine history and ends any recording"""
        with self._lock:
            if ip in self._watched:
                self._watched.remove(ip)
            self._refresh_times.pop(ip, None)
            state = self._recordings.pop(ip, None)
        self.history.clear_metrics(ip)

        if state is None:
            return
        self.recorder.stop(state)
        if state.exported:
            logger.info(f"Keeping exported recording {state.file_path}")
            return
        try:
            self.recorder.delete(state)
        except OSError as e:
            logger.error(f"Failed to delete recording {state.file_path}: {e}")

    def watched(self) -> List[str]:
        with self._lock:
            return list(self._watched)

    def last_refresh(self, ip: str) -> Optional[float]:
        """Monotonic time of the last refresh trigger"""
        with self._lock:
            return self._refresh_times.get(ip)

    # Acquisition cadence

    def maybe_refresh(self, ip: str, interval_secs: float,
                      now: Optional[float] = None) -> bool:
        """
        Trigger a refresh when interval_secs have passed since the last one

        The first call for a miner always triggers.

        Returns:
            True if a refresh was triggered
        """
        now = time.monotonic() if now is None else now
        with self._lock:
            last = self._refresh_times.get(ip)
            if last is not None and now - last < interval_secs:
                return False
            self._refresh_times[ip] = now
        self._submit_refresh(ip)
        return True

    def refresh_now(self, ip: str) -> Optional[Future]:
        """Manual refresh; resets the miner's refresh timer"""
        with self._lock:
            self._refresh_times[ip] = time.monotonic()
        return self._submit_refresh(ip)

    def _submit_refresh(self, ip: str) -> Optional[Future]:
        with self._lock:
            pending = self._in_flight.get(ip)
            if pending is not None and not pending.done():
                logger.debug(f"Refresh for {ip} already in flight")
                return pending
            try:
                future = self._executor.submit(self._refresh, ip)
            except RuntimeError as e:
                logger.warning(f"Refresh for {ip} not scheduled: {e}")
                return None
            self._in_flight[ip] = future
        return future

    def _refresh(self, ip: str):
        try:
            reading = self.client.fetch(ip)
        except Exception as e:
            logger.error(f"Error refreshing miner {ip}: {e}")
            return

        if not self.registry.update_one(ip, reading):
            logger.debug(f"Miner {ip} left the registry, refresh dropped")
            return

        with self._lock:
            state = self._recordings.get(ip)
        if state is None or not state.is_recording:
            return
        miner = self.registry.get(ip)
        try:
            self.recorder.append(state, miner)
        except OSError as e:
            logger.error(f"Failed to append recording for {ip}: {e}")

    # Graph cadence

    def sample_metrics(self, timestamp: Optional[float] = None) -> int:
        """Copy each observed miner's cached reading into its fine history"""
        sampled = 0
        for ip in self.watched():
            miner = self.registry.get(ip)
            if miner is None or miner.full_data is None:
                continue
            self.history.record_metrics(ip, miner.full_data, timestamp)
            sampled += 1
        return sampled

    # Recording

    def start_recording(self, ip: str) -> Optional[RecordingState]:
        miner = self.registry.get(ip)
        if miner is None:
            return None
        with self._lock:
            existing = self._recordings.get(ip)
        if existing is not None and existing.is_recording:
            return existing
        try:
            state = self.recorder.start(miner)
        except OSError as e:
            logger.error(f"Failed to start recording for {ip}: {e}")
            return None
        with self._lock:
            self._recordings[ip] = state
        return state

    def stop_recording(self, ip: str) -> bool:
        with self._lock:
            state = self._recordings.get(ip)
        if state is None:
            return False
        self.recorder.stop(state)
        logger.info(f"Stopped recording {ip} after {state.row_count} rows")
        return True

    def export_recording(self, ip: str, destination: str) -> bool:
        with self._lock:
            state = self._recordings.get(ip)
        if state is None:
            return False
        try:
            self.recorder.export(state, destination)
        except OSError as e:
            logger.error(f"Failed to export recording for {ip}: {e}")
            return False
        logger.info(f"Exported recording for {ip} to {destination}")
        return True

    def recording_state(self, ip: str) -> Optional[RecordingState]:
        with self._lock:
            return self._recordings.get(ip)

    # Control

    def _control(self, ips: Iterable[str], name: str, action: Callable[[str], None],
                 refresh: bool = False) -> List[Future]:
        def run(ip: str):
            try:
                action(ip)
                logger.info(f"{name} sent to {ip}")
            except Exception as e:
                logger.error(f"{name} failed on {ip}: {e}")
                return
            if refresh:
                self._refresh(ip)

        futures = []
        for ip in ips:
            try:
                futures.append(self._executor.submit(run, ip))
            except RuntimeError as e:
                logger.warning(f"{name} for {ip} not scheduled: {e}")
        return futures

    def resume(self, ips: Iterable[str]) -> List[Future]:
        return self._control(ips, "Start", self.client.resume)

    def pause(self, ips: Iterable[str]) -> List[Future]:
        return self._control(ips, "Stop", self.client.pause)

    def toggle_light(self, ips: Iterable[str]) -> List[Future]:
        """Invert each miner's identify light from its registry state, then refresh it"""
        futures = []
        for ip in ips:
            miner = self.registry.get(ip)
            new_state = not (miner.light_flashing if miner else False)
            futures += self._control(
                [ip], f"Fault light {'ON' if new_state else 'OFF'}",
                lambda target, on=new_state: self.client.set_identify_light(target, on),
                refresh=True
            )
        return futures

    def shutdown(self, wait: bool = False):
        """Stop the worker pool, dropping queued calls"""
        self._executor.shutdown(wait=wait, cancel_futures=True)
