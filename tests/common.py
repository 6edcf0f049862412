"""Helpers shared by the gree_ac tests.

Everything runs without a network: endpoints are replaced by FakeTransport,
which records what would have been sent.
"""
from __future__ import annotations

from gree_ac import crypto
from gree_ac.config import DEVICE_SCHEMA, DeviceConfig
from gree_ac.const import CONF_MAC, ENCRYPTION_V1
from gree_ac.device import GreeDevice
from gree_ac.discovery import DeviceDescriptor

DEVICE_MAC = 'f4911e7aca59'
DEVICE_ADDRESS = '192.168.1.50'
DEVICE_KEY = 'St8Vw1Yz4Bc7Ef0H'


class FakeTransport:
    """Stand-in for GreeTransport."""

    def __init__(self):
        self.sent = []
        self.closed = False

    def send(self, payload, address, port):
        self.sent.append((payload, address, port))
        return True

    def close(self):
        self.closed = True

    def packs(self, key=None, version=ENCRYPTION_V1):
        """Decrypted inner payloads of everything sent."""
        result = []
        for payload, _address, _port in self.sent:
            if not isinstance(payload, dict) or 'pack' not in payload:
                result.append(payload)
                continue
            pack_key = None if payload.get('i') == 1 else key
            result.append(crypto.decrypt(payload['pack'], version, pack_key, payload.get('tag')))
        return result

    def last_pack(self, key=DEVICE_KEY, version=ENCRYPTION_V1):
        return self.packs(key, version)[-1]


def make_config(**options):
    options.setdefault(CONF_MAC, DEVICE_MAC)
    return DeviceConfig.from_config(DEVICE_SCHEMA(options))


def make_device(transport=None, status=None, now=None, **options):
    """A bound device with the given raw status values applied."""
    descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000, name='Living room')
    device = GreeDevice(descriptor, make_config(**options), transport=transport, now=now)
    device.binding.bind_ok(DEVICE_KEY)
    if status:
        device.apply_status({'t': 'dat', 'cols': list(status.keys()), 'dat': list(status.values())})
    return device


def device_reply(pack, key=DEVICE_KEY, version=ENCRYPTION_V1):
    """Envelope a unit would send back."""
    encrypted, tag = crypto.encrypt(pack, version, key)
    message = {'t': 'pack', 'i': 0 if key is not None else 1, 'uid': 0, 'cid': DEVICE_MAC, 'tcid': '',
               'pack': encrypted}
    if tag is not None:
        message['tag'] = tag
    return message



def apply(device, **values):
    """Feed a status report with the given raw values."""
    device.apply_status({'t': 'dat', 'cols': list(values.keys()), 'dat': list(values.values())})
