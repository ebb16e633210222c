"""
Authoritative fleet registry

One entry per device address. Entries are only replaced wholesale: all of
them at the end of a scan pass, or one at a time by a targeted refresh.
"""
import logging
import math
from dataclasses import dataclass, asdict
from enum import Enum
from threading import Lock
from typing import Dict, List, Optional

from miners.models import DeviceReading

logger = logging.getLogger(__name__)

NA = "N/A"


def _number(text: str, suffix: str = "") -> Optional[float]:
    """Parse the numeric part of a display string, None for N/A"""
    value = text[:-len(suffix)] if suffix and text.endswith(suffix) else text
    try:
        parsed = float(value.split()[0])
    except (ValueError, IndexError):
        return None
    return parsed if math.isfinite(parsed) else None


@dataclass
class MinerInfo:
    """Registry entry: latest reading plus display strings"""
    ip: str
    hostname: str = NA
    model: str = NA
    firmware_version: str = NA
    control_board: str = NA
    hashrate: str = NA  # "12.34" TH/s
    wattage: str = NA  # "3250 W"
    efficiency: str = NA  # "25.1" W/TH
    temperature: str = NA  # "65.0°C"
    fan_speed: str = NA  # "5400 RPM"
    pool: str = NA
    worker: str = NA
    light_flashing: bool = False
    full_data: Optional[DeviceReading] = None

    @classmethod
    def from_reading(cls, reading: DeviceReading) -> 'MinerInfo':
        """Build an entry, deriving display strings from a private copy of the reading"""
        data = reading.copy()
        efficiency = data.efficiency
        first_fan = data.fans[0] if data.fans else None
        first_pool = data.pools[0] if data.pools else None

        return cls(
            ip=data.ip,
            hostname=data.hostname or NA,
            model=data.model or NA,
            firmware_version=data.firmware_version or NA,
            control_board=data.control_board or NA,
            hashrate=f"{data.hashrate:.2f}" if data.hashrate is not None else NA,
            wattage=f"{data.wattage:.0f} W" if data.wattage is not None else NA,
            efficiency=f"{efficiency:.1f}" if efficiency is not None else NA,
            temperature=(f"{data.average_temperature:.1f}°C"
                         if data.average_temperature is not None else NA),
            fan_speed=f"{first_fan:.0f} RPM" if first_fan is not None else NA,
            pool=(first_pool.url if first_pool and first_pool.url else NA),
            worker=(first_pool.worker if first_pool and first_pool.worker else NA),
            light_flashing=bool(data.light_flashing),
            full_data=data
        )

    @property
    def hashrate_value(self) -> Optional[float]:
        return _number(self.hashrate)

    @property
    def wattage_value(self) -> Optional[float]:
        return _number(self.wattage, " W")

    @property
    def efficiency_value(self) -> Optional[float]:
        return _number(self.efficiency)

    @property
    def temperature_value(self) -> Optional[float]:
        return _number(self.temperature, "°C")

    @property
    def fan_speed_value(self) -> Optional[float]:
        return _number(self.fan_speed, " RPM")

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data.pop('full_data')
        reading = self.full_data
        data['details'] = None if reading is None else {
            'mac': reading.mac,
            'hashboards': [asdict(b) for b in reading.hashboards],
            'fans': list(reading.fans),
            'pools': [asdict(p) for p in reading.pools],
            'is_mining': reading.is_mining,
            'uptime': reading.uptime,
            'timestamp': reading.timestamp
        }
        return data


class SortColumn(Enum):
    """Table columns; value is the MinerInfo attribute sorted on"""
    IP = "ip"
    HOSTNAME = "hostname"
    MODEL = "model"
    FIRMWARE = "firmware_version"
    CONTROL_BOARD = "control_board"
    HASHRATE = "hashrate_value"
    WATTAGE = "wattage_value"
    EFFICIENCY = "efficiency_value"
    TEMPERATURE = "temperature_value"
    FAN_SPEED = "fan_speed_value"
    POOL = "pool"
    WORKER = "worker"


def _ip_key(ip: str):
    try:
        return tuple(int(octet) for octet in ip.split('.'))
    except ValueError:
        return (ip,)


class MinerRegistry:
    """Lock-guarded address -> MinerInfo map"""

    def __init__(self):
        self._miners: Dict[str, MinerInfo] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._miners)

    def __contains__(self, ip: str) -> bool:
        with self._lock:
            return ip in self._miners

    def replace_all(self, miners: Dict[str, MinerInfo]):
        """Swap in the result of a completed scan pass"""
        with self._lock:
            self._miners = dict(miners)
        logger.debug(f"Registry replaced with {len(miners)} miners")

    def update_one(self, ip: str, reading: DeviceReading) -> bool:
        """
        Replace a single known entry with a fresh reading

        Returns:
            False if the address is not in the registry (nothing inserted)
        """
        entry = MinerInfo.from_reading(reading)
        with self._lock:
            if ip not in self._miners:
                return False
            self._miners[ip] = entry
        return True

    def get(self, ip: str) -> Optional[MinerInfo]:
        with self._lock:
            return self._miners.get(ip)

    def snapshot(self) -> List[MinerInfo]:
        """Point-in-time copy in address order"""
        with self._lock:
            miners = list(self._miners.values())
        return sorted(miners, key=lambda m: _ip_key(m.ip))

    def search(self, query: str) -> List[MinerInfo]:
        """Case-insensitive match on address, hostname, model, firmware and pool"""
        miners = self.snapshot()
        if not query:
            return miners
        query = query.lower()
        return [
            m for m in miners
            if query in m.ip.lower()
            or query in m.hostname.lower()
            or query in m.model.lower()
            or query in m.firmware_version.lower()
            or query in m.pool.lower()
        ]

    @staticmethod
    def sort(miners: List[MinerInfo], column: SortColumn,
             descending: bool = False) -> List[MinerInfo]:
        """Sort entries by a column, missing numeric values always last"""
        attr = column.value
        if column is SortColumn.IP:
            return sorted(miners, key=lambda m: _ip_key(m.ip), reverse=descending)

        present = [m for m in miners if getattr(m, attr) is not None]
        missing = [m for m in miners if getattr(m, attr) is None]
        if attr.endswith('_value'):
            present.sort(key=lambda m: getattr(m, attr), reverse=descending)
        else:
            present.sort(key=lambda m: getattr(m, attr).lower(), reverse=descending)
        return present + missing

    def sorted_by(self, column: SortColumn, descending: bool = False) -> List[MinerInfo]:
        return self.sort(self.snapshot(), column, descending)

    def total_hashrate(self) -> float:
        """Sum of parsed hashrates, N/A entries skipped"""
        return sum(
            m.hashrate_value for m in self.snapshot()
            if m.hashrate_value is not None
        )

    def fleet_stats(self) -> Dict:
        """Get aggregated fleet statistics"""
        miners = self.snapshot()
        hashrates = [m.hashrate_value for m in miners if m.hashrate_value is not None]
        temps = [m.temperature_value for m in miners if m.temperature_value is not None]
        efficiencies = [m.efficiency_value for m in miners if m.efficiency_value is not None]
        total_hashrate = sum(hashrates)

        return {
            'miner_count': len(miners),
            'total_hashrate': total_hashrate,
            'avg_hashrate': total_hashrate / len(hashrates) if hashrates else 0.0,
            'avg_efficiency': sum(efficiencies) / len(efficiencies) if efficiencies else 0.0,
            'avg_temperature': sum(temps) / len(temps) if temps else 0.0
        }
