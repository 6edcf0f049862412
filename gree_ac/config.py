"""Platform and per device options.

Values that are present but unusable are replaced by their default with a
single warning instead of failing the whole configuration.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import voluptuous as vol

from . import commands
from .const import (
    CONF_DEFAULT_FAN_VERTICAL_SWING,
    CONF_DEFAULT_VERTICAL_SWING,
    CONF_DEVICES,
    CONF_DISABLED,
    CONF_ENCRYPTION_VERSION,
    CONF_FAN_CONTROL,
    CONF_IP,
    CONF_MAC,
    CONF_MAX_TARGET_TEMP,
    CONF_MIN_TARGET_TEMP,
    CONF_MODEL,
    CONF_MODIFY_VERTICAL_SWING,
    CONF_NAME,
    CONF_PORT,
    CONF_SCAN_ADDRESSES,
    CONF_SCAN_INTERVAL,
    CONF_SENSOR_OFFSET,
    CONF_SILENT_TIME_RANGE,
    CONF_SPEED_STEPS,
    CONF_STATUS_UPDATE_INTERVAL,
    CONF_TARGET_TEMP_STEP,
    CONF_TEMP_SENSOR,
    CONF_XFAN_ENABLED,
    DEFAULT_MAX_TARGET_TEMP,
    DEFAULT_MIN_TARGET_TEMP,
    DEFAULT_PORT,
    DEFAULT_SCAN_INTERVAL,
    DEFAULT_SENSOR_OFFSET,
    DEFAULT_SPEED_STEPS,
    DEFAULT_STATUS_UPDATE_INTERVAL,
    DEFAULT_TARGET_TEMP_STEP,
    ENCRYPTION_AUTO,
    ENCRYPTION_VERSIONS,
    MODIFY_SWING_NEVER,
    MODIFY_SWING_POSITIONS,
    TEMPERATURE_LIMITS,
    TS_TYPE_DISABLED,
    TS_TYPES,
)

_LOGGER = logging.getLogger(__name__)

SWING_DEFAULT = commands.SWING_VERTICAL.value('default')
# positions usable while oscillation is off
FIXED_VERTICAL_SWING_POSITIONS = [
    commands.SWING_VERTICAL.value(name)
    for name in ('default', 'fixedHighest', 'fixedHigher', 'fixedMiddle', 'fixedLower', 'fixedLowest')
]

SILENT_TIME_RANGE_RE = re.compile(r'^([01]\d|2[0-4]):([0-5]\d)-([01]\d|2[0-4]):([0-5]\d)$')


def corrected(validator, default, option):
    """Wrap a validator so invalid values fall back to default with a warning."""
    def validate(value):
        try:
            return validator(value)
        except vol.Invalid:
            _LOGGER.warning('Invalid value for %s (%s) - using default (%s)', option, value, default)
            return default
    return validate


def mac_address(value):
    if not isinstance(value, str) or not value:
        raise vol.Invalid('mac must be a non empty string')
    return value.replace(':', '').replace('-', '').lower()


def silent_time_range(value):
    if value is None:
        return None
    value = str(value).replace(' ', '')
    if not SILENT_TIME_RANGE_RE.match(value):
        raise vol.Invalid(f'silent time range must look like HH:MM-HH:MM ({value})')
    return value


def target_temperature(value):
    return vol.All(
        vol.Coerce(float),
        vol.Range(min=TEMPERATURE_LIMITS['heating_minimum'], max=TEMPERATURE_LIMITS['cooling_maximum']),
    )(value)


def _check_target_range(config):
    if config[CONF_MIN_TARGET_TEMP] >= config[CONF_MAX_TARGET_TEMP]:
        _LOGGER.warning('Invalid target temperature range (%s - %s) for %s - using default (%s - %s)',
                        config[CONF_MIN_TARGET_TEMP], config[CONF_MAX_TARGET_TEMP], config[CONF_MAC],
                        DEFAULT_MIN_TARGET_TEMP, DEFAULT_MAX_TARGET_TEMP)
        config[CONF_MIN_TARGET_TEMP] = DEFAULT_MIN_TARGET_TEMP
        config[CONF_MAX_TARGET_TEMP] = DEFAULT_MAX_TARGET_TEMP
    return config


DEVICE_SCHEMA = vol.All(vol.Schema({
    vol.Required(CONF_MAC): mac_address,
    vol.Optional(CONF_NAME): vol.Coerce(str),
    vol.Optional(CONF_MODEL): vol.Coerce(str),
    vol.Optional(CONF_IP): vol.Coerce(str),
    vol.Optional(CONF_PORT): corrected(vol.All(vol.Coerce(int), vol.Range(min=0, max=65535)), None, CONF_PORT),
    vol.Optional(CONF_DISABLED, default=False): vol.Boolean(),
    vol.Optional(CONF_SPEED_STEPS, default=DEFAULT_SPEED_STEPS):
        corrected(vol.All(vol.Coerce(int), vol.In([3, 5])), DEFAULT_SPEED_STEPS, CONF_SPEED_STEPS),
    vol.Optional(CONF_STATUS_UPDATE_INTERVAL, default=DEFAULT_STATUS_UPDATE_INTERVAL):
        corrected(vol.All(vol.Coerce(int), vol.Range(min=1, max=300)), DEFAULT_STATUS_UPDATE_INTERVAL,
                  CONF_STATUS_UPDATE_INTERVAL),
    vol.Optional(CONF_SENSOR_OFFSET, default=DEFAULT_SENSOR_OFFSET):
        corrected(vol.All(vol.Coerce(int), vol.Range(min=-100, max=100)), DEFAULT_SENSOR_OFFSET, CONF_SENSOR_OFFSET),
    vol.Optional(CONF_MIN_TARGET_TEMP, default=DEFAULT_MIN_TARGET_TEMP):
        corrected(target_temperature, DEFAULT_MIN_TARGET_TEMP, CONF_MIN_TARGET_TEMP),
    vol.Optional(CONF_MAX_TARGET_TEMP, default=DEFAULT_MAX_TARGET_TEMP):
        corrected(target_temperature, DEFAULT_MAX_TARGET_TEMP, CONF_MAX_TARGET_TEMP),
    vol.Optional(CONF_TARGET_TEMP_STEP, default=DEFAULT_TARGET_TEMP_STEP):
        corrected(vol.All(vol.Coerce(float), vol.In([0.5, 1.0])), DEFAULT_TARGET_TEMP_STEP, CONF_TARGET_TEMP_STEP),
    vol.Optional(CONF_XFAN_ENABLED, default=True): vol.Boolean(),
    vol.Optional(CONF_TEMP_SENSOR, default=TS_TYPE_DISABLED):
        corrected(vol.In(TS_TYPES), TS_TYPE_DISABLED, CONF_TEMP_SENSOR),
    vol.Optional(CONF_FAN_CONTROL, default=False): vol.Boolean(),
    vol.Optional(CONF_MODIFY_VERTICAL_SWING, default=MODIFY_SWING_NEVER):
        corrected(vol.All(vol.Coerce(int), vol.In(MODIFY_SWING_POSITIONS)), MODIFY_SWING_NEVER,
                  CONF_MODIFY_VERTICAL_SWING),
    vol.Optional(CONF_DEFAULT_VERTICAL_SWING, default=SWING_DEFAULT):
        corrected(vol.All(vol.Coerce(int), vol.In(FIXED_VERTICAL_SWING_POSITIONS)), SWING_DEFAULT,
                  CONF_DEFAULT_VERTICAL_SWING),
    vol.Optional(CONF_DEFAULT_FAN_VERTICAL_SWING, default=SWING_DEFAULT):
        corrected(vol.All(vol.Coerce(int), vol.In(FIXED_VERTICAL_SWING_POSITIONS)), SWING_DEFAULT,
                  CONF_DEFAULT_FAN_VERTICAL_SWING),
    vol.Optional(CONF_ENCRYPTION_VERSION, default=ENCRYPTION_AUTO):
        corrected(vol.All(vol.Coerce(int), vol.In(ENCRYPTION_VERSIONS)), ENCRYPTION_AUTO, CONF_ENCRYPTION_VERSION),
    vol.Optional(CONF_SILENT_TIME_RANGE, default=None): corrected(silent_time_range, None, CONF_SILENT_TIME_RANGE),
}, extra=vol.REMOVE_EXTRA), _check_target_range)

PLATFORM_SCHEMA = vol.Schema({
    vol.Optional(CONF_PORT, default=DEFAULT_PORT):
        corrected(vol.All(vol.Coerce(int), vol.Range(min=0, max=65535)), DEFAULT_PORT, CONF_PORT),
    vol.Optional(CONF_SCAN_INTERVAL, default=DEFAULT_SCAN_INTERVAL):
        corrected(vol.All(vol.Coerce(int), vol.Range(min=1)), DEFAULT_SCAN_INTERVAL, CONF_SCAN_INTERVAL),
    vol.Optional(CONF_SCAN_ADDRESSES, default=[]): [vol.Coerce(str)],
    vol.Optional(CONF_DEVICES, default=[]): [DEVICE_SCHEMA],
}, extra=vol.REMOVE_EXTRA)


def parse_silent_time_range(value):
    """Turn "HH:MM-HH:MM" into [(start, end)] HHMM ranges, end exclusive.

    A range that wraps past midnight is split in two. An empty range gives None.
    """
    if not value:
        return None
    start = int(value[0:5].replace(':', ''))
    end = int(value[6:].replace(':', ''))
    # the end minute itself is silent too
    end_exclusive = end + 1 if end < 2400 else end
    if start < end:
        return [(start, end_exclusive)]
    if start > end:
        return [(start, 2400), (0, end_exclusive)]
    return None


@dataclass
class DeviceConfig:
    mac: str = ''
    name: Optional[str] = None
    model: Optional[str] = None
    ip: Optional[str] = None
    port: Optional[int] = None
    disabled: bool = False
    speed_steps: int = DEFAULT_SPEED_STEPS
    status_update_interval: int = DEFAULT_STATUS_UPDATE_INTERVAL
    sensor_offset: int = DEFAULT_SENSOR_OFFSET
    min_target_temperature: float = DEFAULT_MIN_TARGET_TEMP
    max_target_temperature: float = DEFAULT_MAX_TARGET_TEMP
    temperature_step_size: float = DEFAULT_TARGET_TEMP_STEP
    x_fan_enabled: bool = True
    temperature_sensor: str = TS_TYPE_DISABLED
    fan_control_enabled: bool = False
    modify_vertical_swing_position: int = MODIFY_SWING_NEVER
    default_vertical_swing: int = SWING_DEFAULT
    default_fan_vertical_swing: int = SWING_DEFAULT
    encryption_version: int = ENCRYPTION_AUTO
    silent_time_range: Optional[str] = None
    silent_time_ranges: Optional[List[Tuple[int, int]]] = field(default=None, repr=False)

    def __post_init__(self):
        if self.silent_time_ranges is None:
            self.silent_time_ranges = parse_silent_time_range(self.silent_time_range)

    @classmethod
    def from_config(cls, config):
        """Build from an already validated DEVICE_SCHEMA dict."""
        return cls(
            mac=config[CONF_MAC],
            name=config.get(CONF_NAME),
            model=config.get(CONF_MODEL),
            ip=config.get(CONF_IP),
            port=config.get(CONF_PORT),
            disabled=config[CONF_DISABLED],
            speed_steps=config[CONF_SPEED_STEPS],
            status_update_interval=config[CONF_STATUS_UPDATE_INTERVAL],
            sensor_offset=config[CONF_SENSOR_OFFSET],
            min_target_temperature=config[CONF_MIN_TARGET_TEMP],
            max_target_temperature=config[CONF_MAX_TARGET_TEMP],
            temperature_step_size=config[CONF_TARGET_TEMP_STEP],
            x_fan_enabled=config[CONF_XFAN_ENABLED],
            temperature_sensor=config[CONF_TEMP_SENSOR],
            fan_control_enabled=config[CONF_FAN_CONTROL],
            modify_vertical_swing_position=config[CONF_MODIFY_VERTICAL_SWING],
            default_vertical_swing=config[CONF_DEFAULT_VERTICAL_SWING],
            default_fan_vertical_swing=config[CONF_DEFAULT_FAN_VERTICAL_SWING],
            encryption_version=config[CONF_ENCRYPTION_VERSION],
            silent_time_range=config[CONF_SILENT_TIME_RANGE],
        )

    @classmethod
    def default(cls, mac):
        return cls.from_config(DEVICE_SCHEMA({CONF_MAC: mac}))

    @property
    def max_rotation_speed(self):
        """Rotation speed index of powerful mode: speed steps plus inactive, quiet and auto."""
        return self.speed_steps + 3


def validate_config(config):
    """Validate a platform configuration dict, returning it with defaults filled in."""
    return PLATFORM_SCHEMA(config or {})
