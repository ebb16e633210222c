"""
CSV recording of per-device telemetry and CSV export of the registry

A recording's column layout is fixed when it starts, from the device's
board and fan count at that moment. Later rows are padded or truncated
to that layout.
"""
import csv
import logging
import os
import re
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

import config
from registry import MinerInfo

logger = logging.getLogger(__name__)

BASE_COLUMNS = [
    "DeviceAddress",
    "HardwareId",
    "Model",
    "Firmware",
    "Timestamp",
    "TotalHashrate(TH/s)",
    "Power(W)",
    "Efficiency(W/TH)",
    "AvgTemperature(°C)",
]

EXPORT_COLUMNS = [
    "Address",
    "Hostname",
    "Model",
    "Firmware",
    "ControlBoard",
    "Hashrate(TH/s)",
    "Wattage(W)",
    "Efficiency(W/TH)",
    "Temperature(°C)",
    "FanSpeed(RPM)",
    "Pool",
    "Worker",
]


@dataclass(frozen=True)
class RecordingSchema:
    """Column layout of one recording"""
    num_boards: int
    num_fans: int

    @classmethod
    def for_miner(cls, miner: MinerInfo) -> 'RecordingSchema':
        data = miner.full_data
        if data is None:
            return cls(0, 0)
        return cls(len(data.hashboards), len(data.fans))

    @property
    def header(self) -> List[str]:
        columns = list(BASE_COLUMNS)
        columns += [f"Board{i}Hashrate" for i in range(self.num_boards)]
        columns += [f"Board{i}Temp" for i in range(self.num_boards)]
        columns += [f"Fan{i}RPM" for i in range(1, self.num_fans + 1)]
        return columns

    @property
    def dynamic_width(self) -> int:
        return 2 * self.num_boards + self.num_fans


@dataclass
class RecordingState:
    """One device's active or finished recording"""
    file_path: str
    schema: RecordingSchema
    start_time: float = field(default_factory=time.monotonic)
    row_count: int = 0
    is_recording: bool = True
    exported: bool = False

    @property
    def elapsed_secs(self) -> float:
        return time.monotonic() - self.start_time


def _fit(values: List[Optional[float]], width: int) -> List[float]:
    """Pad with zeros or truncate to exactly width values"""
    fitted = [v if v is not None else 0.0 for v in values[:width]]
    return fitted + [0.0] * (width - len(fitted))


def _clean(text: str) -> str:
    return re.sub(r'[^A-Za-z0-9._-]', '', text.replace(':', '-'))


class Recorder:
    """Writes recording files under one directory"""

    def __init__(self, recordings_dir: str = config.RECORDINGS_DIR):
        self.recordings_dir = recordings_dir

    def _file_path(self, miner: MinerInfo) -> str:
        data = miner.full_data
        mac = data.mac if data is not None and data.mac else "unknown"
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        filename = f"recording_{miner.ip}_{_clean(miner.model)}_{_clean(mac)}_{timestamp}.csv"
        return os.path.join(self.recordings_dir, filename)

    def start(self, miner: MinerInfo) -> RecordingState:
        """
        Create a recording file with a header sized to the miner's topology

        Raises:
            OSError: the file could not be created
        """
        os.makedirs(self.recordings_dir, exist_ok=True)
        schema = RecordingSchema.for_miner(miner)
        file_path = self._file_path(miner)

        with open(file_path, 'w', newline='', encoding='utf-8') as f:
            csv.writer(f).writerow(schema.header)

        logger.info(f"Started recording {miner.ip} to {file_path}")
        return RecordingState(file_path=file_path, schema=schema)

    def append(self, state: RecordingState, miner: MinerInfo) -> bool:
        """
        Append one row for the miner's current reading

        Returns:
            False if not recording or the miner has no reading yet

        Raises:
            OSError: the row could not be written
        """
        if not state.is_recording:
            return False
        data = miner.full_data
        if data is None:
            return False

        schema = state.schema
        board_hashrates = _fit([b.hashrate for b in data.hashboards], schema.num_boards)
        board_temps = _fit([b.temperature for b in data.hashboards], schema.num_boards)
        fan_rpms = _fit(list(data.fans), schema.num_fans)

        row = [
            miner.ip,
            data.mac or "N/A",
            miner.model,
            miner.firmware_version,
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            f"{data.hashrate or 0.0:.2f}",
            f"{data.wattage or 0.0:.0f}",
            f"{data.efficiency or 0.0:.1f}",
            f"{data.average_temperature or 0.0:.1f}",
        ]
        row += [f"{v:.2f}" for v in board_hashrates]
        row += [f"{v:.1f}" for v in board_temps]
        row += [f"{v:.0f}" for v in fan_rpms]

        with open(state.file_path, 'a', newline='', encoding='utf-8') as f:
            csv.writer(f).writerow(row)

        state.row_count += 1
        return True

    @staticmethod
    def stop(state: RecordingState):
        """Stop accepting rows; the file is kept"""
        state.is_recording = False

    @staticmethod
    def export(state: RecordingState, destination: str):
        """Copy the recording verbatim. Raises OSError on failure."""
        shutil.copyfile(state.file_path, destination)
        state.exported = True

    @staticmethod
    def delete(state: RecordingState):
        """Remove the recording file. Raises OSError on failure."""
        os.remove(state.file_path)


def _strip(value: str, suffix: str) -> str:
    return value[:-len(suffix)] if value.endswith(suffix) else value


def export_miners_csv(miners: Iterable[MinerInfo], path: str) -> int:
    """
    Write a registry snapshot to CSV

    Returns:
        Number of miners written; nothing is written for an empty snapshot

    Raises:
        OSError: the file could not be written
    """
    miners = list(miners)
    if not miners:
        return 0

    with open(path, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(EXPORT_COLUMNS)
        for miner in miners:
            writer.writerow([
                miner.ip,
                miner.hostname,
                miner.model,
                miner.firmware_version,
                miner.control_board,
                _strip(miner.hashrate, " TH/s"),
                _strip(miner.wattage, " W"),
                _strip(miner.efficiency, " W/TH"),
                _strip(miner.temperature, "°C"),
                _strip(miner.fan_speed, " RPM"),
                miner.pool,
                miner.worker,
            ])

    logger.info(f"Exported {len(miners)} miners to {path}")
    return len(miners)
