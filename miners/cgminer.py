"""
CGMiner API Handler (Antminer, Whatsminer, Avalon, etc.)
"""
import socket
import json
import logging
from typing import Dict, List, Optional
from .base import DeviceError, MinerAPIHandler
from .models import DeviceReading, HashboardReading, PoolInfo
import config

logger = logging.getLogger(__name__)


def _to_ths(item: Dict) -> Optional[float]:
    """Pick the hashrate field a CGMiner fork reports and convert to TH/s"""
    for key, divisor in (('THS 5s', 1.0), ('GHS 5s', 1e3), ('MHS 5s', 1e6),
                         ('THS av', 1.0), ('GHS av', 1e3), ('MHS av', 1e6)):
        if key in item:
            return float(item[key]) / divisor
    return None


class CGMinerAPIHandler(MinerAPIHandler):
    """Handler for CGMiner-based miners (Antminer, Whatsminer, Avalon)"""

    port = config.CGMINER_PORT

    def __init__(self, timeout: float = config.IDENTIFICATION_TIMEOUT):
        self.timeout = timeout

    def _send_command(self, ip: str, command: str, parameter: str = None) -> Dict:
        """Send command to CGMiner API"""
        try:
            with socket.create_connection((ip, self.port), timeout=self.timeout) as sock:
                # CGMiner expects JSON command
                payload = {"command": command}
                if parameter is not None:
                    payload["parameter"] = parameter
                sock.sendall(json.dumps(payload).encode())

                # Receive response
                response = b''
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    response += chunk

            # Responses are NUL-terminated
            return json.loads(response.decode(errors='replace').rstrip('\x00'))

        except socket.timeout:
            logger.warning(f"Timeout sending command '{command}' to {ip}")
            return {'error': 'timeout'}
        except Exception as e:
            logger.debug(f"Error sending command '{command}' to {ip}: {e}")
            return {'error': str(e)}

    def detect(self, ip: str) -> bool:
        """Check if this is a CGMiner-based miner"""
        result = self._send_command(ip, 'version')
        # CGMiner response has STATUS and version info
        return 'STATUS' in result or 'VERSION' in result

    def get_reading(self, ip: str) -> DeviceReading:
        """Get full reading from CGMiner API"""
        summary = self._send_command(ip, 'summary')
        if 'error' in summary:
            raise DeviceError(f"Error reading CGMiner at {ip}: {summary['error']}")

        devs = self._send_command(ip, 'devs')
        version = self._send_command(ip, 'version')
        pools = self._send_command(ip, 'pools')
        return self.parse_responses(ip, summary, devs, version, pools)

    @staticmethod
    def parse_responses(ip: str, summary: Dict, devs: Dict,
                        version: Dict, pools: Dict) -> DeviceReading:
        """Merge summary/devs/version/pools responses into a DeviceReading"""
        data = summary['SUMMARY'][0] if summary.get('SUMMARY') else {}
        hashrate = _to_ths(data)

        # Each DEVS entry is one hashboard
        boards: List[HashboardReading] = []
        fans: List[Optional[float]] = []
        for index, dev in enumerate(devs.get('DEVS') or []):
            temp = dev.get('Temperature')
            boards.append(HashboardReading(
                index=index,
                hashrate=_to_ths(dev),
                temperature=float(temp) if temp is not None else None
            ))
            if index == 0:
                for key in ('Fan Speed In', 'Fan Speed Out'):
                    if key in dev:
                        fans.append(float(dev[key]))

        board_temps = [b.temperature for b in boards if b.temperature is not None]
        avg_temp = sum(board_temps) / len(board_temps) if board_temps else None

        # Detect miner model from version
        model = 'CGMiner'
        firmware = None
        if version.get('VERSION'):
            info = version['VERSION'][0]
            desc = info.get('Description') or info.get('Type') or ''
            for name in ('Antminer', 'Whatsminer', 'Avalon'):
                if name in desc:
                    model = desc
                    break
            firmware = info.get('Firmware') or info.get('CGMiner') or info.get('BMMiner')

        pool_list = [
            PoolInfo(url=p.get('URL'), user=p.get('User'))
            for p in (pools.get('POOLS') or [])
        ]

        power = data.get('Power')
        return DeviceReading(
            ip=ip,
            mac=data.get('MAC'),
            model=model,
            firmware_version=firmware,
            hashrate=hashrate,
            wattage=float(power) if power is not None else None,
            average_temperature=avg_temp,
            hashboards=boards,
            fans=fans,
            is_mining=bool(hashrate),
            pools=pool_list,
            uptime=data.get('Elapsed'),
            raw={
                'summary': summary,
                'devs': devs,
                'version': version,
                'pools': pools
            }
        )

    def _command(self, ip: str, command: str, parameter: str = None):
        result = self._send_command(ip, command, parameter)
        if 'error' in result:
            raise DeviceError(f"'{command}' failed on {ip}: {result['error']}")
        status = (result.get('STATUS') or [{}])[0]
        if status.get('STATUS') == 'E':
            raise DeviceError(f"'{command}' rejected by {ip}: {status.get('Msg')}")
        logger.info(f"Command '{command}' sent to CGMiner at {ip}")

    def resume(self, ip: str):
        self._command(ip, 'ascenable', '0')

    def pause(self, ip: str):
        self._command(ip, 'ascdisable', '0')

    def set_identify_light(self, ip: str, on: bool):
        if not on:
            raise DeviceError(f"CGMiner at {ip} does not support turning the identify light off")
        self._command(ip, 'ascidentify', '0')
