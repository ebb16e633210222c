"""
Persisted scanner configuration (saved ranges, intervals, timeouts)
"""
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, List

import config
from ranges import SavedRange

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Operator settings stored between runs"""
    saved_ranges: List[SavedRange] = field(default_factory=list)
    detail_refresh_interval_secs: int = config.DETAIL_REFRESH_INTERVAL
    auto_scan_interval_secs: int = config.AUTO_SCAN_INTERVAL
    identification_timeout_secs: int = config.IDENTIFICATION_TIMEOUT
    connectivity_timeout_secs: int = config.CONNECTIVITY_TIMEOUT
    connectivity_retries: int = config.CONNECTIVITY_RETRIES

    #: Settings that may be changed through update_settings
    TUNABLES = (
        'detail_refresh_interval_secs',
        'auto_scan_interval_secs',
        'identification_timeout_secs',
        'connectivity_timeout_secs',
        'connectivity_retries',
    )

    def to_dict(self) -> Dict:
        data = {name: getattr(self, name) for name in self.TUNABLES}
        data['saved_ranges'] = [r.to_dict() for r in self.saved_ranges]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'AppConfig':
        """Build from stored JSON; missing keys fall back to defaults"""
        app_config = cls(
            saved_ranges=[SavedRange.from_dict(r) for r in data.get('saved_ranges', [])]
        )
        for name in cls.TUNABLES:
            if name in data:
                setattr(app_config, name, int(data[name]))
        return app_config


class ConfigStore:
    """JSON file holding an AppConfig"""

    def __init__(self, path: str = config.CONFIG_PATH):
        self.path = path

    def load(self) -> AppConfig:
        """Load settings; never raises, defaults are used for unreadable files"""
        if not os.path.exists(self.path):
            return AppConfig()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            # Older files are a bare list of saved ranges
            if isinstance(data, list):
                return AppConfig(saved_ranges=[SavedRange.from_dict(r) for r in data])
            return AppConfig.from_dict(data or {})
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not load config from {self.path}: {e}")
            return AppConfig()

    def save(self, app_config: AppConfig) -> bool:
        """Write settings atomically; failures are logged and reported as False"""
        try:
            d = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(d, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".scanner_config.", dir=d)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(app_config.to_dict(), f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)  # atomic on POSIX
            finally:
                if os.path.exists(tmp):
                    os.remove(tmp)
            return True
        except OSError as e:
            logger.error(f"Failed to save config to {self.path}: {e}")
            return False
