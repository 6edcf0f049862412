class GreeError(Exception):
    """Base class for errors raised by the Gree protocol engine."""


class DecodeError(GreeError, ValueError):
    """A received pack could not be decrypted or parsed."""


class TransportError(GreeError, OSError):
    """The UDP socket of an endpoint could not be opened or used."""
