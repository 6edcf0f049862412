"""Ties discovery to device controllers."""
import asyncio
import logging
from typing import Dict, List, Optional

from .config import DeviceConfig, validate_config
from .const import CONF_DEVICES, CONF_MAC, CONF_PORT, CONF_SCAN_ADDRESSES, CONF_SCAN_INTERVAL
from .device import GreeDevice
from .discovery import DeviceRegistry, GreeDiscovery
from .exceptions import TransportError
from .switch import create_switches

_LOGGER = logging.getLogger(__name__)


class GreePlatform:
    """Owns discovery and one GreeDevice per discovered unit.

    Units are created the first time a scan reply (or a bridge subdevice
    list) names them. Options of a configured mac apply to it, every other
    unit gets the defaults. Configured units marked disabled are skipped.
    """

    def __init__(self, config=None, transport=None):
        self.config = validate_config(config)
        self.registry = DeviceRegistry()
        self.device_configs: Dict[str, DeviceConfig] = {
            device[CONF_MAC]: DeviceConfig.from_config(device) for device in self.config[CONF_DEVICES]
        }
        self.devices: Dict[str, GreeDevice] = {}
        self._listeners = []
        self._tasks = []
        self._started = False
        unicast = [device.ip for device in self.device_configs.values() if device.ip]
        self.discovery = GreeDiscovery(
            self.registry,
            self.on_device,
            port=self.config[CONF_PORT],
            interval=self.config[CONF_SCAN_INTERVAL],
            unicast=unicast,
            extra_addresses=self.config[CONF_SCAN_ADDRESSES],
            transport=transport,
        )

    def get_device(self, mac) -> Optional[GreeDevice]:
        return self.devices.get(mac)

    def add_device_listener(self, callback):
        """callback(device) is called for every newly created device."""
        self._listeners.append(callback)

    def on_device(self, descriptor, is_new):
        device = self.devices.get(descriptor.mac)
        if device is not None:
            device.update_descriptor(descriptor)
            return
        config = self.device_configs.get(descriptor.mac)
        if config is not None and config.disabled:
            _LOGGER.debug('Device %s is disabled - skipping', descriptor.mac)
            return
        if config is None:
            config = DeviceConfig.default(descriptor.mac)
        device = GreeDevice(descriptor, config, ports=self.registry.ports)
        self.devices[descriptor.mac] = device
        _LOGGER.info('[%s] New device found -> %s (%s)', device.label, descriptor.mac, descriptor.model or 'unknown')
        for listener in list(self._listeners):
            listener(device)
        if self._started:
            self._tasks.append(asyncio.create_task(self._async_start_device(device)))

    async def _async_start_device(self, device):
        try:
            await device.async_start()
        except TransportError as err:
            _LOGGER.error('[%s] Device could not be started: %s', device.label, err)

    def switches(self, mac) -> List:
        device = self.devices.get(mac)
        return create_switches(device) if device is not None else []

    async def async_start(self):
        self._started = True
        await self.discovery.async_start()

    async def async_stop(self):
        self._started = False
        await self.discovery.async_stop()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks.clear()
        for device in list(self.devices.values()):
            await device.async_stop()
