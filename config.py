"""
Configuration for ASIC Fleet Scanner
"""
import os

# Default range offered to operators
DEFAULT_RANGE_START = "10.0.81.0"
DEFAULT_RANGE_END = "10.0.81.255"

# Discovery settings
DISCOVERY_THREADS = 64  # parallel probe threads per range
IDENTIFICATION_TIMEOUT = 5  # seconds to identify a device once reachable
CONNECTIVITY_TIMEOUT = 2  # seconds per TCP connectivity check
CONNECTIVITY_RETRIES = 2  # extra connectivity attempts per address

# Monitoring settings
DETAIL_REFRESH_INTERVAL = 10  # seconds between detail refreshes
AUTO_SCAN_INTERVAL = 120  # seconds between automatic scans
SAMPLE_INTERVAL = 0.033  # seconds between graph samples (~30fps)
DEVICE_WORKERS = 8  # concurrent refresh/control calls

# History capacities
MAX_HISTORY_POINTS = 288  # 24 hours at 5-min intervals
MAX_METRICS_POINTS = 9000  # ~5 minutes at 30fps
MAX_FLEET_POINTS = 9000
HISTORY_RETAIN_PASSES = 3  # passes a vanished miner keeps its coarse history

# Storage
DATA_DIR = os.environ.get(
    "ASIC_SCANNER_HOME",
    os.path.join(os.path.expanduser("~"), "asic-miner-scanner")
)
CONFIG_PATH = os.path.join(DATA_DIR, "scanner_config.json")
RECORDINGS_DIR = os.path.join(DATA_DIR, "recordings")

# Flask settings
FLASK_HOST = "0.0.0.0"
FLASK_PORT = 5000
DEBUG = False

# Miner API settings
BITAXE_PORT = 80
CGMINER_PORT = 4028

# Supported miner types
MINER_TYPES = {
    "BITAXE": "Bitaxe",
    "ANTMINER": "Antminer",
    "WHATSMINER": "Whatsminer",
    "AVALON": "Avalon",
    "UNKNOWN": "Unknown"
}
