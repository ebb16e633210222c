"""
Base abstract classes for miner API handlers and device clients
"""
from abc import ABC, abstractmethod
from typing import List

from .models import DeviceReading


class DeviceError(Exception):
    """Device could not be reached, identified or commanded"""
    pass


class MinerAPIHandler(ABC):
    """Abstract base class for all miner API implementations"""

    #: TCP port the handler's API listens on
    port: int = 0

    @abstractmethod
    def detect(self, ip: str) -> bool:
        """
        Check if this handler can communicate with the miner at this IP

        Args:
            ip: IP address to check

        Returns:
            True if this miner type is detected
        """
        pass

    @abstractmethod
    def get_reading(self, ip: str) -> DeviceReading:
        """
        Read full telemetry from the miner

        Args:
            ip: Miner IP address

        Returns:
            DeviceReading with hashrate in TH/s, power in W,
            temperatures in °C and fan speeds in RPM

        Raises:
            DeviceError: the miner did not answer
        """
        pass

    @abstractmethod
    def resume(self, ip: str):
        """Start hashing. Raises DeviceError on failure."""
        pass

    @abstractmethod
    def pause(self, ip: str):
        """Stop hashing. Raises DeviceError on failure."""
        pass

    @abstractmethod
    def set_identify_light(self, ip: str, on: bool):
        """Turn the identify (fault) light on or off. Raises DeviceError on failure."""
        pass


class DeviceClient(ABC):
    """Discovery and control capability consumed by the scanner"""

    @abstractmethod
    def enumerate(self, ip_range) -> List:
        """
        Discover devices in a range

        Returns:
            Discovered devices, each with an ``ip`` attribute and a
            ``get_data()`` method returning a DeviceReading

        Raises:
            Exception: the whole range could not be enumerated
        """
        pass

    @abstractmethod
    def fetch(self, ip: str) -> DeviceReading:
        """Read one device. Raises DeviceError on failure."""
        pass

    @abstractmethod
    def resume(self, ip: str):
        pass

    @abstractmethod
    def pause(self, ip: str):
        pass

    @abstractmethod
    def set_identify_light(self, ip: str, on: bool):
        pass
