import logging
import math

from . import commands
from .const import TEMPERATURE_COLLISIONS, TEMPERATURE_LIMITS, TEMPERATURE_TABLE

_LOGGER = logging.getLogger(__name__)

CELSIUS = commands.UNITS.value('celsius')
FAHRENHEIT = commands.UNITS.value('fahrenheit')


def celsius_to_fahrenheit(temp):
    return temp * 9 / 5 + 32


def _fahrenheit_fraction(temp):
    fahrenheit = celsius_to_fahrenheit(temp)
    return fahrenheit - math.floor(fahrenheit)


def _round_half_up(value):
    return math.floor(value + 0.5)


def encode_target_temperature(temp, units=CELSIUS):
    """Return the (SetTem, TemRec) pair that makes the unit show temp.

    In Celsius the unit only takes whole degrees. In Fahrenheit the pair is
    chosen so that the whole Fahrenheit degree the unit displays matches temp,
    which is what the lookup in decode_target_temperature inverts.
    """
    if units == CELSIUS:
        return math.floor(temp), 0

    if 15.25 <= temp < 15.75:
        # both 59 and 60 F map onto 15 on the unit
        return 15, 0

    fraction = _fahrenheit_fraction(temp)
    correction = 1 if (0.05 <= fraction < 0.15) or (0.25 <= fraction < 0.35) else 0
    set_tem = _round_half_up(temp) - correction

    if temp == 16:
        return set_tem, 0
    offset = 1 if ((0.05 <= fraction < 0.15) or (0.25 <= fraction < 0.35) or
                   (0.55 <= fraction < 0.65) or (0.75 <= fraction < 0.85)) else 0
    if 15.75 <= temp < 16.25:
        offset = 1 - offset
    return set_tem, offset


def decode_target_temperature(set_tem, tem_rec, units=CELSIUS, previous=None):
    """Turn a reported (SetTem, TemRec) pair back into a Celsius target.

    previous is the last target sent to the unit. When the report cannot be
    told apart from it, previous wins.
    """
    if units == CELSIUS:
        if previous is not None and math.floor(previous) == set_tem and previous != set_tem:
            _LOGGER.debug('TargetTemperature FIX: %s -> %s', set_tem, previous)
            return previous
        return set_tem

    key = f'{set_tem},{tem_rec}'
    value = TEMPERATURE_TABLE.get(key)
    if value is None:
        _LOGGER.debug('TargetTemperature FIX: invalid (%s) -> %s', key, set_tem)
        return set_tem
    if previous is not None and (value, previous) in TEMPERATURE_COLLISIONS:
        _LOGGER.debug('TargetTemperature FIX: %s -> %s', value, previous)
        return previous
    return value


def target_temperature_range(mode, minimum, maximum):
    """Allowed target range for a mode, intersected with the configured range."""
    if mode == commands.MODE.value('cool'):
        low, high = TEMPERATURE_LIMITS['cooling_minimum'], TEMPERATURE_LIMITS['cooling_maximum']
    elif mode == commands.MODE.value('heat'):
        low, high = TEMPERATURE_LIMITS['heating_minimum'], TEMPERATURE_LIMITS['heating_maximum']
    else:
        low = min(TEMPERATURE_LIMITS['cooling_minimum'], TEMPERATURE_LIMITS['heating_minimum'])
        high = max(TEMPERATURE_LIMITS['cooling_maximum'], TEMPERATURE_LIMITS['heating_maximum'])
    return max(minimum, low), min(maximum, high)


def clamp(value, minimum, maximum):
    return max(min(value, maximum), minimum)
