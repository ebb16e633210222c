"""
Miner detection and the network device client
"""
import logging
import socket
from concurrent.futures import ThreadPoolExecutor, as_completed
from threading import Lock
from typing import Dict, List, Optional, Tuple
from .base import DeviceClient, DeviceError, MinerAPIHandler
from .bitaxe import BitaxeAPIHandler
from .cgminer import CGMinerAPIHandler
from .models import DeviceReading
import config

logger = logging.getLogger(__name__)


class Miner:
    """Represents a single miner with its API handler"""

    def __init__(self, ip: str, miner_type: str, api_handler: MinerAPIHandler):
        self.ip = ip
        self.type = miner_type
        self.api_handler = api_handler
        # Last identify-light state commanded through this handle
        self.light_flashing: Optional[bool] = None

    def get_data(self) -> DeviceReading:
        """Read current telemetry"""
        reading = self.api_handler.get_reading(self.ip)
        if reading.light_flashing is None:
            reading.light_flashing = self.light_flashing
        return reading

    def resume(self):
        self.api_handler.resume(self.ip)

    def pause(self):
        self.api_handler.pause(self.ip)

    def set_identify_light(self, on: bool):
        """Raises DeviceError; the tracked state only changes on success"""
        self.api_handler.set_identify_light(self.ip, on)
        self.light_flashing = on

    def __repr__(self):
        return f"Miner({self.ip!r}, {self.type!r})"


class MinerDetector:
    """Factory for detecting and creating Miner instances"""

    def __init__(self, identification_timeout: float = config.IDENTIFICATION_TIMEOUT,
                 connectivity_timeout: float = config.CONNECTIVITY_TIMEOUT,
                 connectivity_retries: int = config.CONNECTIVITY_RETRIES):
        self.connectivity_timeout = connectivity_timeout
        self.connectivity_retries = connectivity_retries
        # Order matters - try Bitaxe first (fastest API)
        self.handlers: List[Tuple[str, MinerAPIHandler]] = [
            (config.MINER_TYPES['BITAXE'], BitaxeAPIHandler(identification_timeout)),
            (config.MINER_TYPES['ANTMINER'], CGMinerAPIHandler(identification_timeout)),
        ]

    def _check_port(self, ip: str, port: int) -> bool:
        """Check if port is open, retrying on failure"""
        for _ in range(self.connectivity_retries + 1):
            try:
                with socket.create_connection((ip, port), timeout=self.connectivity_timeout):
                    return True
            except OSError:
                continue
        return False

    def detect(self, ip: str) -> Optional[Miner]:
        """
        Detect miner type at given IP and return Miner instance

        Args:
            ip: IP address to probe

        Returns:
            Miner instance if detected, None otherwise
        """
        logger.debug(f"Detecting miner at {ip}")

        for miner_type, handler in self.handlers:
            try:
                if not self._check_port(ip, handler.port):
                    continue
                if handler.detect(ip):
                    logger.info(f"Detected {miner_type} at {ip}")
                    return Miner(ip, miner_type, handler)
            except Exception as e:
                logger.debug(f"Detection error for {miner_type} at {ip}: {e}")
                continue

        logger.debug(f"No miner detected at {ip}")
        return None


class MinerClient(DeviceClient):
    """DeviceClient that probes ranges in parallel and remembers what it found"""

    def __init__(self, identification_timeout: float = config.IDENTIFICATION_TIMEOUT,
                 connectivity_timeout: float = config.CONNECTIVITY_TIMEOUT,
                 connectivity_retries: int = config.CONNECTIVITY_RETRIES,
                 max_workers: int = config.DISCOVERY_THREADS):
        self.max_workers = max_workers
        self.detector = MinerDetector(identification_timeout, connectivity_timeout,
                                      connectivity_retries)
        self._known: Dict[str, Miner] = {}
        self._lock = Lock()

    def apply_settings(self, identification_timeout: float, connectivity_timeout: float,
                       connectivity_retries: int):
        """Rebuild the detector with new timeouts; known miners are re-detected"""
        detector = MinerDetector(identification_timeout, connectivity_timeout,
                                 connectivity_retries)
        with self._lock:
            self.detector = detector
            self._known.clear()

    def enumerate(self, ip_range) -> List[Miner]:
        """Probe every address of the range and return detected miners in address order"""
        addresses = list(ip_range.addresses())
        detector = self.detector
        found: Dict[str, Miner] = {}

        with ThreadPoolExecutor(max_workers=max(1, min(self.max_workers, len(addresses)))) as executor:
            futures = {
                executor.submit(detector.detect, ip): ip
                for ip in addresses
            }
            for future in as_completed(futures):
                try:
                    miner = future.result()
                except Exception as e:
                    logger.error(f"Error probing {futures[future]}: {e}")
                    continue
                if miner:
                    found[miner.ip] = miner

        with self._lock:
            for ip, miner in found.items():
                # Keep the existing handle so its tracked light state survives rescans
                known = self._known.get(ip)
                if known is not None and known.type == miner.type:
                    found[ip] = known
                else:
                    self._known[ip] = miner

        return [found[ip] for ip in addresses if ip in found]

    def _resolve(self, ip: str) -> Miner:
        with self._lock:
            miner = self._known.get(ip)
        if miner:
            return miner
        miner = self.detector.detect(ip)
        if miner is None:
            raise DeviceError(f"No miner found at {ip}")
        with self._lock:
            self._known[ip] = miner
        return miner

    def fetch(self, ip: str) -> DeviceReading:
        return self._resolve(ip).get_data()

    def resume(self, ip: str):
        miner = self._resolve(ip)
        miner.resume()

    def pause(self, ip: str):
        miner = self._resolve(ip)
        miner.pause()

    def set_identify_light(self, ip: str, on: bool):
        miner = self._resolve(ip)
        miner.set_identify_light(on)
