"""
Device reading model shared by the client, registry, history and recorder
"""
import copy
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class HashboardReading:
    """Per-board telemetry"""
    index: int
    hashrate: Optional[float] = None  # TH/s
    temperature: Optional[float] = None  # °C


@dataclass
class PoolInfo:
    """Pool assignment as reported by the device"""
    url: Optional[str] = None
    user: Optional[str] = None

    @property
    def worker(self) -> Optional[str]:
        """Worker name: the part of the pool user after the account"""
        if not self.user:
            return None
        return self.user.split('.', 1)[1] if '.' in self.user else self.user


@dataclass
class DeviceReading:
    """Snapshot of one device at one instant"""
    ip: str
    mac: Optional[str] = None
    hostname: Optional[str] = None
    model: str = "Unknown"
    firmware_version: Optional[str] = None
    control_board: Optional[str] = None

    hashrate: Optional[float] = None  # TH/s
    wattage: Optional[float] = None  # W
    average_temperature: Optional[float] = None  # °C
    hashboards: List[HashboardReading] = field(default_factory=list)
    fans: List[Optional[float]] = field(default_factory=list)  # RPM

    is_mining: Optional[bool] = None
    light_flashing: Optional[bool] = None
    pools: List[PoolInfo] = field(default_factory=list)
    uptime: Optional[int] = None  # seconds

    raw: Dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def efficiency(self) -> Optional[float]:
        """Power per hashrate in W/TH"""
        if self.wattage is None or not self.hashrate:
            return None
        return self.wattage / self.hashrate

    @property
    def board_temperatures(self) -> List[float]:
        return [b.temperature for b in self.hashboards if b.temperature is not None]

    def copy(self) -> 'DeviceReading':
        """Independent copy for a new owner"""
        return copy.deepcopy(self)
