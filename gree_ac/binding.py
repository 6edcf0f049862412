"""Bind handshake of a single unit.

A unit answers a bind request with its session key. If it stays silent the
request is repeated once with the other encryption version; a second
silence is reported once and the unit is left alone.
"""
import asyncio
import logging

from .const import (
    BINDING_BOUND,
    BINDING_REQUESTED,
    BINDING_TIMEOUT,
    BINDING_UNBOUND,
    ENCRYPTION_V1,
    ENCRYPTION_V2,
)

_LOGGER = logging.getLogger(__name__)

MAX_BIND_ATTEMPTS = 2
# AES-128 session key
KEY_LENGTH = 16


def other_version(version):
    return ENCRYPTION_V2 if version == ENCRYPTION_V1 else ENCRYPTION_V1


def _call_later(delay, callback):
    return asyncio.get_running_loop().call_later(delay, callback)


class BindingStateMachine:
    """unbound -> bind-requested -> bound.

    send_bind(version) puts a bind request on the wire. schedule(delay, callback)
    arms a one shot timer and returns something with cancel(); it defaults to
    loop.call_later but a device routes it through its own queue.
    """

    def __init__(self, send_bind, version=ENCRYPTION_V1, schedule=None,
                 timeout=BINDING_TIMEOUT, label=''):
        self._send_bind = send_bind
        self._schedule = schedule or _call_later
        self._timeout = timeout
        self._label = label
        self._timer = None
        self.version = version
        self.state = BINDING_UNBOUND
        self.key = None
        self.attempt = 0
        self.failed = False

    @property
    def is_bound(self):
        return self.state == BINDING_BOUND

    def start(self):
        if self.state != BINDING_UNBOUND:
            _LOGGER.debug('[%s] Binding already %s', self._label, self.state)
            return
        self.state = BINDING_REQUESTED
        self.attempt = 1
        self.failed = False
        self._request()

    def _request(self):
        _LOGGER.debug('[%s] Bind request (attempt %d, encryption version %d)', self._label, self.attempt, self.version)
        self._send_bind(self.version)
        attempt = self.attempt
        self._timer = self._schedule(self._timeout, lambda: self.timeout(attempt))

    def timeout(self, attempt=None):
        """Binding deadline expired for the given attempt."""
        if self.state != BINDING_REQUESTED:
            return
        if attempt is not None and attempt != self.attempt:
            return
        self._timer = None
        _LOGGER.debug('[%s] Device binding timeout', self._label)
        if self.attempt < MAX_BIND_ATTEMPTS:
            self.attempt += 1
            self.version = other_version(self.version)
            self._request()
            return
        self.failed = True
        self.state = BINDING_UNBOUND
        _LOGGER.error('[%s] Error: Device is not bound (unknown device type or device is malfunctioning '
                      '[turning the power supply off and on may help]) - Restart when issue has fixed!', self._label)

    def bind_ok(self, key):
        """Store the session key from a bindok. Returns True when this bound the device."""
        if self.state == BINDING_BOUND:
            _LOGGER.debug('[%s] Binding response received from already bound device', self._label)
            return False
        if not isinstance(key, str) or len(key.encode('utf8')) != KEY_LENGTH:
            _LOGGER.warning('[%s] Warning: Binding response with invalid key ignored (%r)', self._label, key)
            return False
        if self.failed:
            _LOGGER.info('[%s] Late binding response accepted', self._label)
        self._cancel_timer()
        self.key = key
        self.state = BINDING_BOUND
        self.failed = False
        return True

    def bind_with(self, key, version):
        """Bound without a handshake, used for bridge subdevices sharing the bridge key."""
        self._cancel_timer()
        self.key = key
        self.version = version
        self.state = BINDING_BOUND
        self.failed = False

    def reset(self):
        self._cancel_timer()
        self.key = None
        self.state = BINDING_UNBOUND
        self.attempt = 0
        self.failed = False

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
