"""UDP endpoints and the JSON envelope every Gree packet travels in."""
import asyncio
import json as simplejson
import logging
from typing import Any, Callable, Optional, Tuple

from . import crypto
from .const import ENCRYPTION_V2
from .exceptions import DecodeError, TransportError

_LOGGER = logging.getLogger(__name__)

SCAN_MESSAGE = {'t': 'scan'}

MessageCallback = Callable[[Any, Tuple[str, int]], None]
ErrorCallback = Callable[[Exception], None]


def build_packet(payload, version, key=None, tcid='', uid=0):
    """Wrap an inner payload into the envelope sent to a unit.

    Without a session key the generic key of the version is used and the
    envelope is flagged with i = 1.
    """
    pack, tag = crypto.encrypt(payload, version, key)
    packet = {
        'tcid': tcid,
        'uid': uid,
        't': 'pack',
        'pack': pack,
        'i': 1 if key is None else 0,
    }
    if tag is not None:
        packet['tag'] = tag
    packet['cid'] = 'app'
    return packet


def open_packet(message, version, key=None):
    """Decrypt the pack of a received envelope.

    Envelopes flagged with i = 1 are always encrypted with the generic key.
    """
    if not isinstance(message, dict) or 'pack' not in message:
        raise DecodeError(f'Unknown message: {message}')
    if message.get('i') == 1:
        key = None
    if version == ENCRYPTION_V2 and message.get('tag') is None:
        raise DecodeError('Version 2 message without tag')
    pack = crypto.decrypt(message['pack'], version, key, message.get('tag'))
    if not isinstance(pack, dict) or not isinstance(pack.get('t'), str):
        raise DecodeError(f'Pack without type: {pack}')
    return pack


class PortRegistry:
    """Local UDP ports in use by the endpoints of one platform."""

    def __init__(self):
        self._ports = set()

    def __contains__(self, port):
        return port in self._ports

    def resolve(self, port, label=''):
        """Return the port to bind: the requested one, or 0 (auto) when it is taken."""
        if port and port in self._ports:
            _LOGGER.warning('[%s] Configured port (%s) is already used - replacing with auto assigned port', label, port)
            return 0
        return port or 0

    def register(self, port):
        self._ports.add(port)

    def release(self, port):
        self._ports.discard(port)


class GreeTransport(asyncio.DatagramProtocol):
    """One UDP socket. Received datagrams are JSON decoded and handed to on_message."""

    def __init__(self, on_message: MessageCallback, on_error: Optional[ErrorCallback] = None,
                 label: str = '', ports: Optional[PortRegistry] = None) -> None:
        self._on_message = on_message
        self._on_error = on_error
        self._label = label
        self._ports = ports
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._port: Optional[int] = None
        self._registered = False

    @property
    def port(self):
        return self._port

    @property
    def is_open(self):
        return self._transport is not None

    async def async_open(self, port=0, allow_broadcast=False, host='0.0.0.0'):
        loop = asyncio.get_running_loop()
        if self._ports is not None:
            port = self._ports.resolve(port, self._label)
        try:
            await loop.create_datagram_endpoint(
                lambda: self,
                local_addr=(host, port),
                allow_broadcast=allow_broadcast,
            )
        except OSError as err:
            _LOGGER.error('[%s] Network - Error: cannot bind UDP port %s: %s', self._label, port, err)
            raise TransportError(err.errno, f'Cannot bind UDP port {port}: {err.strerror}') from err
        _LOGGER.info('[%s] Listening on UDP port %d', self._label, self._port)
        return self._port

    def connection_made(self, transport):
        self._transport = transport
        self._port = transport.get_extra_info('sockname')[1]
        if self._ports is not None:
            self._ports.register(self._port)
            self._registered = True

    def datagram_received(self, data, addr):
        _LOGGER.debug('[%s] Received from %s: %s', self._label, addr, data)
        try:
            message = simplejson.loads(data)
        except ValueError as err:
            _LOGGER.warning('[%s] Dropping datagram from %s that is not JSON: %s', self._label, addr, err)
            return
        self._on_message(message, addr)

    def error_received(self, exc):
        _LOGGER.error('[%s] Network - Error: %s', self._label, exc)
        if self._on_error is not None:
            self._on_error(exc)

    def connection_lost(self, exc):
        if exc is not None:
            _LOGGER.error('[%s] Network - Connection closed: %s', self._label, exc)
            if self._on_error is not None:
                self._on_error(exc)
        else:
            _LOGGER.debug('[%s] Network - Connection closed', self._label)
        self._release()

    def send(self, payload, address, port):
        """Send a JSON payload, fire and forget. Returns False if the datagram was not handed to the OS."""
        if self._transport is None:
            _LOGGER.error('[%s] Network - Error: socket is not open, dropping %s', self._label, payload)
            return False
        data = simplejson.dumps(payload).encode('utf-8')
        _LOGGER.debug('[%s] Sending to %s:%s: %s', self._label, address, port, data)
        try:
            self._transport.sendto(data, (address, port))
        except OSError as err:
            _LOGGER.error('[%s] Network - Error: send failed: %s', self._label, err)
            if self._on_error is not None:
                self._on_error(err)
            return False
        return True

    def close(self):
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._release()

    def _release(self):
        if self._registered:
            self._ports.release(self._port)
            self._registered = False
        self._transport = None
