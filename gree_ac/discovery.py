"""Broadcast discovery of units and bridges.

Every scan interval {"t": "scan"} goes to UDP 7000 on each local broadcast
address. Units answer with a "dev" pack. A reply carrying subCnt comes from
a bridge: the bridge is bound and asked for its subdevice list, and every
listed unit becomes a descriptor of its own named "<index>@<bridge mac>".
"""
import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

import ifaddr

from .binding import BindingStateMachine
from .const import BINDING_TIMEOUT, DEFAULT_PORT, DEFAULT_SCAN_INTERVAL, ENCRYPTION_V1, ENCRYPTION_V2, UDP_SCAN_PORT
from .exceptions import DecodeError, TransportError
from .transport import SCAN_MESSAGE, GreeTransport, PortRegistry, build_packet, open_packet

_LOGGER = logging.getLogger(__name__)


def detect_encryption_version(pack):
    """Version hint from a scan reply.

    Firmware strings not starting with "V1." are taken for version 2. This
    only looks at the string format and can misclassify; binding falls back
    to the other version when the guess is wrong.
    """
    ver = pack.get('ver')
    if ver is not None and not str(ver).startswith('V1.'):
        return ENCRYPTION_V2
    return ENCRYPTION_V1


@dataclass
class DeviceDescriptor:
    mac: str
    address: str
    port: int = UDP_SCAN_PORT
    name: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    ver: Optional[str] = None
    hid: Optional[str] = None
    sub_count: Optional[int] = None
    encryption_version: int = ENCRYPTION_V1
    uid: int = 0
    bridge_key: Optional[str] = None
    sub_mac: Optional[str] = None

    @classmethod
    def from_scan_reply(cls, pack, address, port):
        return cls(
            mac=str(pack.get('mac') or pack.get('cid') or ''),
            address=address,
            port=port,
            name=pack.get('name') or None,
            brand=pack.get('brand'),
            model=pack.get('model'),
            ver=pack.get('ver'),
            hid=pack.get('hid'),
            sub_count=pack.get('subCnt'),
            encryption_version=detect_encryption_version(pack),
        )

    @property
    def is_subdevice(self):
        return '@' in self.mac

    @property
    def bind_mac(self):
        """Mac used as tcid and in bind requests: the bridge mac for subdevices."""
        return self.mac[self.mac.index('@') + 1:] if self.is_subdevice else self.mac

    @property
    def bridge_mac(self):
        return self.bind_mac if self.is_subdevice else None

    @property
    def firmware_version(self):
        hid = self.hid or ''
        if 0 <= hid.rfind('V') < hid.rfind('.'):
            return hid[hid.rfind('V') + 1:hid.rfind('.')]
        return '1.0.0'

    @property
    def hardware_version(self):
        if self.ver and 'V' in self.ver:
            return self.ver[self.ver.rindex('V') + 1:]
        return '1.0.0'


@dataclass
class BridgeRecord:
    mac: str
    address: str
    port: int
    sub_count: int = 0
    resolved: bool = False
    binding: Optional[BindingStateMachine] = field(default=None, repr=False)

    @property
    def key(self):
        return self.binding.key if self.binding is not None else None

    @property
    def bound(self):
        return self.binding is not None and self.binding.is_bound

    @property
    def encryption_version(self):
        return self.binding.version if self.binding is not None else ENCRYPTION_V1


class DeviceRegistry:
    """Descriptors, bridges and local ports known to one platform."""

    def __init__(self):
        self.devices: Dict[str, DeviceDescriptor] = {}
        self.bridges: Dict[str, BridgeRecord] = {}
        self.ports = PortRegistry()

    def __len__(self):
        return len(self.devices)

    def __iter__(self):
        return iter(list(self.devices.values()))

    def __contains__(self, mac):
        return mac in self.devices

    def get(self, mac):
        return self.devices.get(mac)

    def upsert(self, descriptor):
        """Add a descriptor, or refresh the known one with the same mac.

        Returns (descriptor, is_new). The returned descriptor is the one held
        by the registry, so holders of it see address changes.
        """
        known = self.devices.get(descriptor.mac)
        if known is None:
            self.devices[descriptor.mac] = descriptor
            return descriptor, True
        if (known.address, known.port) != (descriptor.address, descriptor.port):
            _LOGGER.info('Device %s moved from %s:%s to %s:%s', known.mac, known.address, known.port,
                         descriptor.address, descriptor.port)
            known.address = descriptor.address
            known.port = descriptor.port
        for attr in ('name', 'brand', 'model', 'ver', 'hid'):
            value = getattr(descriptor, attr)
            if value is not None:
                setattr(known, attr, value)
        if descriptor.bridge_key is not None:
            known.bridge_key = descriptor.bridge_key
        return known, False

    def bridge(self, address):
        return self.bridges.get(address)

    def add_bridge(self, record):
        self.bridges[record.address] = record


def get_broadcast_addresses(unicast: Iterable[str] = (), extra: Iterable[str] = ()) -> List[str]:
    """Broadcast address of every local IPv4 network.

    unicast addresses are appended when no local network covers them,
    extra addresses are always appended.
    """
    networks = []
    for adapter in ifaddr.get_adapters():
        for ip in adapter.ips:
            if not ip.is_IPv4 or ip.ip.startswith('127.'):
                continue
            network = ipaddress.IPv4Network(f'{ip.ip}/{ip.network_prefix}', strict=False)
            if network not in networks:
                networks.append(network)

    addresses = []
    for network in networks:
        broadcast = str(network.broadcast_address)
        if broadcast not in addresses:
            addresses.append(broadcast)
    for address in unicast:
        try:
            ip = ipaddress.IPv4Address(address)
        except ValueError:
            _LOGGER.warning('Ignoring invalid device address %s', address)
            continue
        if not any(ip in network for network in networks) and address not in addresses:
            addresses.append(address)
    for address in extra:
        if address not in addresses:
            addresses.append(address)
    return addresses


DeviceCallback = Callable[[DeviceDescriptor, bool], None]


def _schedule(delay, callback):
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    return loop.call_later(delay, callback)


class GreeDiscovery:
    """Periodic scanner plus bridge subdevice resolution."""

    def __init__(self, registry: DeviceRegistry, on_device: DeviceCallback, port=DEFAULT_PORT,
                 interval=DEFAULT_SCAN_INTERVAL, unicast=(), extra_addresses=(), transport=None, schedule=None):
        self.registry = registry
        self._on_device = on_device
        self._port = port
        self._interval = interval
        self._unicast = list(unicast)
        self._extra = list(extra_addresses)
        self._transport = transport
        self._schedule = schedule or _schedule
        self._task: Optional[asyncio.Task] = None
        self.addresses: List[str] = []

    async def async_start(self):
        self.addresses = get_broadcast_addresses(self._unicast, self._extra)
        _LOGGER.debug('Scan addresses: %s', self.addresses)
        if self._transport is None:
            self._transport = GreeTransport(self.handle_message, label='discovery', ports=self.registry.ports)
            try:
                await self._transport.async_open(self._port, allow_broadcast=True)
            except TransportError:
                self._transport = None
                raise
        self._task = asyncio.create_task(self._async_scan_loop())

    async def async_stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for bridge in list(self.registry.bridges.values()):
            bridge.binding.reset()
        self.registry.bridges.clear()
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        _LOGGER.info('Scan finished.')

    async def _async_scan_loop(self):
        while True:
            self.scan()
            await asyncio.sleep(self._interval)

    def scan(self):
        for address in self.addresses:
            _LOGGER.debug("Broadcast '%s' %s:%s", SCAN_MESSAGE, address, UDP_SCAN_PORT)
            self._transport.send(SCAN_MESSAGE, address, UDP_SCAN_PORT)

    def handle_message(self, message, addr):
        address, port = addr[0], addr[1]
        if not isinstance(message, dict) or message.get('t') != 'pack':
            _LOGGER.debug('Ignoring message from %s: %s', address, message)
            return
        bridge = self.registry.bridge(address)
        version = ENCRYPTION_V2 if message.get('tag') is not None else ENCRYPTION_V1
        key = bridge.key if bridge is not None else None
        try:
            pack = open_packet(message, version, key)
        except DecodeError as err:
            _LOGGER.warning('Dropping undecodable reply from %s: %s', address, err)
            return

        packet_type = pack['t'].lower()
        if packet_type == 'dev':
            self.handle_scan_reply(pack, address, port)
        elif packet_type == 'bindok' and bridge is not None:
            self.handle_bridge_bind(bridge, pack)
        elif packet_type in ('sublist', 'subdev') and bridge is not None:
            self.handle_sublist(bridge, pack)
        else:
            _LOGGER.debug('Ignoring %s pack from %s: %s', pack['t'], address, pack)

    def handle_scan_reply(self, pack, address, port):
        descriptor = DeviceDescriptor.from_scan_reply(pack, address, port)
        if not descriptor.mac:
            _LOGGER.warning('Scan reply from %s without mac: %s', address, pack)
            return
        if 'subCnt' in pack:
            self._handle_bridge(descriptor)
            return
        _LOGGER.debug('Device found: %s (%s) encryption version %d', descriptor.mac, address,
                      descriptor.encryption_version)
        known, is_new = self.registry.upsert(descriptor)
        self._on_device(known, is_new)

    def _handle_bridge(self, descriptor):
        if not descriptor.sub_count:
            _LOGGER.warning('Bridge %s (%s) reports no subdevices - skipping', descriptor.mac, descriptor.address)
            return
        if self.registry.bridge(descriptor.address) is not None:
            _LOGGER.debug('Bridge %s (%s) already known', descriptor.mac, descriptor.address)
            return
        record = BridgeRecord(
            mac=descriptor.mac,
            address=descriptor.address,
            port=descriptor.port,
            sub_count=descriptor.sub_count,
        )
        record.binding = BindingStateMachine(
            lambda version: self._send_bridge_bind(record, version), descriptor.encryption_version,
            self._schedule, BINDING_TIMEOUT, f'bridge {record.mac} -- {record.address}')
        self.registry.add_bridge(record)
        _LOGGER.info('Bridge found: %s (%s) with %d subdevices', record.mac, record.address, record.sub_count)
        record.binding.start()

    def _send_bridge_bind(self, bridge, version):
        payload = {'mac': bridge.mac, 't': 'bind', 'uid': 0}
        self._transport.send(build_packet(payload, version, None, bridge.mac, 0), bridge.address, bridge.port)

    def handle_bridge_bind(self, bridge, pack):
        if not bridge.binding.bind_ok(pack.get('key')):
            return
        _LOGGER.info('Bridge is bound -> %s', bridge.mac)
        payload = {'mac': bridge.mac, 't': 'subDev', 'i': 0}
        self._transport.send(build_packet(payload, bridge.encryption_version, bridge.key, bridge.mac, 0),
                             bridge.address, bridge.port)

    def handle_sublist(self, bridge, pack):
        if bridge.resolved:
            _LOGGER.debug('Subdevice list of bridge %s already processed', bridge.mac)
            return
        sub_list = pack.get('list')
        if not isinstance(sub_list, list):
            _LOGGER.warning('Bridge %s sent a subdevice list without entries: %s', bridge.mac, pack)
            return
        bridge.resolved = True
        _LOGGER.info('Bridge %s lists %s subdevices', bridge.mac, pack.get('c', len(sub_list)))
        for index, entry in enumerate(sub_list):
            entry = entry if isinstance(entry, dict) else {}
            descriptor = DeviceDescriptor(
                mac=f'{index}@{bridge.mac}',
                address=bridge.address,
                port=bridge.port,
                name=entry.get('name') or None,
                model=entry.get('mid'),
                encryption_version=bridge.encryption_version,
                uid=index,
                bridge_key=bridge.key,
                sub_mac=entry.get('mac'),
            )
            known, is_new = self.registry.upsert(descriptor)
            self._on_device(known, is_new)
