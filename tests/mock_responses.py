"""
Mock API responses and fake devices for testing without hardware
"""
import threading

from miners.base import DeviceClient, DeviceError
from miners.models import DeviceReading, HashboardReading, PoolInfo

# Bitaxe ESP32 API mock responses
BITAXE_SYSTEM_INFO = {
    "hashRate": 1100.0,  # GH/s
    "temp": 65.2,
    "power": 15.5,
    "fanrpm": 4200,
    "ASICModel": "BM1368",
    "boardVersion": "204",
    "hostname": "bitaxe-01",
    "macAddr": "AA:BB:CC:DD:EE:01",
    "version": "v2.4.2",
    "stratumURL": "public-pool.io",
    "stratumPort": 21496,
    "stratumUser": "bc1qexample.bitaxe01",
    "uptimeSeconds": 86400
}

NERDQAXE_SYSTEM_INFO = {
    "hashRate": 4800.0,
    "temp": 58.0,
    "power": 76.0,
    "ASICModel": "BM1370",
    "boardVersion": "NerdQAxe++",
    "deviceModel": "NerdQAxe++"
}

# CGMiner API mock responses
CGMINER_VERSION = {
    "STATUS": [{"STATUS": "S", "When": 1234567890}],
    "VERSION": [{
        "Description": "Antminer S19",
        "CGMiner": "4.10.0",
        "API": "3.7"
    }]
}

CGMINER_SUMMARY = {
    "STATUS": [{"STATUS": "S", "When": 1234567890}],
    "SUMMARY": [{
        "GHS 5s": 95000.0,  # 95 TH/s
        "Accepted": 1234,
        "Rejected": 5,
        "Power": 3250,
        "Elapsed": 86400
    }]
}

CGMINER_DEVS = {
    "STATUS": [{"STATUS": "S", "When": 1234567890}],
    "DEVS": [
        {"Temperature": 64.0, "Fan Speed In": 5400, "Fan Speed Out": 5280,
         "GHS 5s": 31000.0, "Status": "Alive"},
        {"Temperature": 66.0, "GHS 5s": 32000.0, "Status": "Alive"},
        {"Temperature": 68.0, "GHS 5s": 32000.0, "Status": "Alive"}
    ]
}

CGMINER_POOLS = {
    "STATUS": [{"STATUS": "S", "When": 1234567890}],
    "POOLS": [{
        "URL": "stratum+tcp://pool.example.com:3333",
        "User": "account.s19rack1"
    }]
}

CGMINER_ERROR_STATUS = {
    "STATUS": [{"STATUS": "E", "Msg": "Invalid command"}]
}

WHATSMINER_VERSION = {
    "STATUS": [{"STATUS": "S", "When": 1234567890}],
    "VERSION": [{
        "Description": "Whatsminer M30S",
        "CGMiner": "4.11.1",
        "API": "3.7"
    }]
}

# Error responses
TIMEOUT_ERROR = {
    "error": "timeout"
}

CONNECTION_ERROR = {
    "error": "Connection refused"
}


def make_reading(ip, hashrate=100.0, wattage=3000.0, boards=3, fans=2,
                 temperature=65.0, hostname=None, model="Antminer S19",
                 light_flashing=False):
    """Build a DeviceReading with the given topology"""
    return DeviceReading(
        ip=ip,
        mac="AA:BB:CC:00:00:01",
        hostname=hostname or f"miner-{ip.rsplit('.', 1)[-1]}",
        model=model,
        firmware_version="2024.01",
        control_board="CVCtrl",
        hashrate=hashrate,
        wattage=wattage,
        average_temperature=temperature,
        hashboards=[
            HashboardReading(index=i, hashrate=hashrate / boards if boards else None,
                             temperature=temperature + i)
            for i in range(boards)
        ],
        fans=[5000.0 + 100 * i for i in range(fans)],
        is_mining=True,
        light_flashing=light_flashing,
        pools=[PoolInfo(url="stratum+tcp://pool.example.com:3333",
                        user="account.worker1")]
    )


class FakeDevice:
    """Enumerated device handle, as returned by MinerClient.enumerate"""

    def __init__(self, client, ip):
        self.client = client
        self.ip = ip

    def get_data(self):
        return self.client.fetch(self.ip)


class FakeDeviceClient(DeviceClient):
    """
    In-memory DeviceClient

    ``devices`` maps address -> DeviceReading. Ranges listed in
    ``failing_ranges`` raise on enumerate, addresses in ``failing_ips``
    raise on fetch.
    """

    def __init__(self, devices=None):
        self.devices = dict(devices or {})
        self.failing_ranges = set()
        self.failing_ips = set()
        self.calls = []
        self.enumerate_gate = None
        self._lock = threading.Lock()

    def _log(self, *call):
        with self._lock:
            self.calls.append(call)

    def enumerate(self, ip_range):
        self._log('enumerate', str(ip_range))
        if self.enumerate_gate is not None:
            self.enumerate_gate.wait(5)
        if str(ip_range) in self.failing_ranges:
            raise DeviceError(f"Enumeration failed for {ip_range}")
        return [FakeDevice(self, ip) for ip in ip_range.addresses() if ip in self.devices]

    def fetch(self, ip):
        self._log('fetch', ip)
        if ip in self.failing_ips or ip not in self.devices:
            raise DeviceError(f"No response from {ip}")
        return self.devices[ip].copy()

    def resume(self, ip):
        self._log('resume', ip)
        if ip in self.failing_ips:
            raise DeviceError(f"Resume failed on {ip}")

    def pause(self, ip):
        self._log('pause', ip)
        if ip in self.failing_ips:
            raise DeviceError(f"Pause failed on {ip}")

    def set_identify_light(self, ip, on):
        self._log('light', ip, on)
        if ip in self.failing_ips:
            raise DeviceError(f"Identify failed on {ip}")
        if ip in self.devices:
            self.devices[ip].light_flashing = on
