from .base import DeviceClient, DeviceError, MinerAPIHandler
from .bitaxe import BitaxeAPIHandler
from .cgminer import CGMinerAPIHandler
from .detector import MinerClient, MinerDetector, Miner
from .models import DeviceReading, HashboardReading, PoolInfo

__all__ = [
    'DeviceClient',
    'DeviceError',
    'MinerAPIHandler',
    'BitaxeAPIHandler',
    'CGMinerAPIHandler',
    'MinerClient',
    'MinerDetector',
    'Miner',
    'DeviceReading',
    'HashboardReading',
    'PoolInfo'
]
