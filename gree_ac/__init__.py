"""Local network control of Gree protocol air conditioners."""
from .config import DeviceConfig, validate_config
from .device import GreeDevice
from .discovery import DeviceDescriptor, DeviceRegistry, GreeDiscovery
from .exceptions import DecodeError, GreeError, TransportError
from .platform import GreePlatform
from .switch import GreeOptionSwitch

__all__ = [
    'DecodeError',
    'DeviceConfig',
    'DeviceDescriptor',
    'DeviceRegistry',
    'GreeDevice',
    'GreeDiscovery',
    'GreeError',
    'GreeOptionSwitch',
    'GreePlatform',
    'TransportError',
    'validate_config',
]
