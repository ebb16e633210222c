"""
Bitaxe ESP32 (AxeOS) API Handler
"""
import requests
import logging
from typing import Dict, List
from .base import DeviceError, MinerAPIHandler
from .models import DeviceReading, HashboardReading, PoolInfo
import config

logger = logging.getLogger(__name__)


class BitaxeAPIHandler(MinerAPIHandler):
    """Handler for Bitaxe miners using ESP32 API"""

    port = config.BITAXE_PORT

    def __init__(self, timeout: float = config.IDENTIFICATION_TIMEOUT):
        self.timeout = timeout

    def _get_info(self, ip: str) -> Dict:
        response = requests.get(
            f"http://{ip}/api/system/info",
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def detect(self, ip: str) -> bool:
        """Check if this is a Bitaxe miner"""
        try:
            data = self._get_info(ip)
            # Bitaxe has specific fields like ASICModel
            if 'ASICModel' in data or 'power' in data:
                return True
        except Exception as e:
            logger.debug(f"Bitaxe detection failed for {ip}: {e}")
        return False

    def get_reading(self, ip: str) -> DeviceReading:
        """Get full reading from Bitaxe API"""
        try:
            data = self._get_info(ip)
        except requests.exceptions.Timeout:
            raise DeviceError(f"Timeout reading Bitaxe at {ip}")
        except (requests.exceptions.RequestException, ValueError) as e:
            raise DeviceError(f"Error reading Bitaxe at {ip}: {e}")
        return self.parse_info(ip, data)

    @staticmethod
    def parse_info(ip: str, data: Dict) -> DeviceReading:
        """Convert an /api/system/info payload into a DeviceReading"""
        # Bitaxe API returns hashRate in GH/s
        hashrate_ths = float(data.get('hashRate', 0) or 0) / 1000.0

        # Detect model - check for NerdQAxe, NerdQAxePlus, NerdQAxePlusPlus, etc.
        asic_model = data.get('ASICModel', '')
        board_version = data.get('boardVersion', '')
        if 'nerd' in asic_model.lower() or 'nerd' in str(board_version).lower():
            model = asic_model or board_version or 'NerdQAxe'
        else:
            model = data.get('deviceModel') or asic_model or 'Bitaxe'

        temp = data.get('temp')
        temperature = float(temp) if temp is not None else None
        fan_rpm = data.get('fanrpm')

        return DeviceReading(
            ip=ip,
            mac=data.get('macAddr'),
            hostname=data.get('hostname'),
            model=model,
            firmware_version=data.get('version'),
            control_board=str(board_version) if board_version else None,
            hashrate=hashrate_ths,
            wattage=float(data['power']) if data.get('power') is not None else None,
            average_temperature=temperature,
            # Single hashboard device
            hashboards=[HashboardReading(index=0, hashrate=hashrate_ths, temperature=temperature)],
            fans=[float(fan_rpm)] if fan_rpm is not None else [],
            is_mining=hashrate_ths > 0,
            pools=BitaxeAPIHandler._parse_pools(data),
            uptime=data.get('uptimeSeconds'),
            raw=data
        )

    @staticmethod
    def _parse_pools(data: Dict) -> List[PoolInfo]:
        pools = []
        for prefix in ('stratum', 'fallbackStratum'):
            url = data.get(f'{prefix}URL')
            if not url:
                continue
            port = data.get(f'{prefix}Port')
            pools.append(PoolInfo(
                url=f"{url}:{port}" if port else url,
                user=data.get(f'{prefix}User')
            ))
        return pools

    def resume(self, ip: str):
        """AxeOS has no pause state, a restart brings hashing back"""
        try:
            response = requests.post(
                f"http://{ip}/api/system/restart",
                timeout=self.timeout
            )
            response.raise_for_status()
            logger.info(f"Restart command sent to Bitaxe at {ip}")
        except requests.exceptions.RequestException as e:
            raise DeviceError(f"Failed to restart Bitaxe at {ip}: {e}")

    def pause(self, ip: str):
        raise DeviceError(f"Bitaxe at {ip} does not support pausing")

    def set_identify_light(self, ip: str, on: bool):
        """AxeOS identify blinks the display for a short while; it can't be switched off"""
        if not on:
            raise DeviceError(f"Bitaxe at {ip} does not support turning the identify light off")
        try:
            response = requests.post(
                f"http://{ip}/api/system/identify",
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DeviceError(f"Failed to identify Bitaxe at {ip}: {e}")
