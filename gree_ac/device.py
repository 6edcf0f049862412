"""State reconciliation for one bound unit.

The unit only knows raw wire fields, and several of them have to change
together. Quiet mode, powerful mode and an explicit fan speed exclude each
other. X-fan only exists in cool and dry mode. Every build_* method turns one
semantic change into the complete batch of wire fields (or None when nothing
has to be sent) without touching the network; the matching set_* method
builds and sends it.
"""
import asyncio
import datetime
import logging
from typing import Callable, Dict, Optional

from . import commands
from .binding import BindingStateMachine
from .config import DeviceConfig
from .const import (
    BINDING_TIMEOUT,
    DEFAULT_CURRENT_TEMPERATURE,
    DEFAULT_TARGET_TEMPERATURE,
    ENCRYPTION_AUTO,
    MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON,
    MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE,
    MODIFY_SWING_SET_POWER_ON,
    MODIFY_SWING_SET_POWER_ON_OSC_DISABLE,
    PENDING_TIMEOUT,
    SENSOR_VALID_MAX,
    SENSOR_VALID_MIN,
    TS_TYPE_DISABLED,
)
from .exceptions import DecodeError, TransportError
from .status import DeviceStatus
from .switch import SWITCHES
from .temperature import (
    CELSIUS,
    clamp,
    decode_target_temperature,
    encode_target_temperature,
    target_temperature_range,
)
from .transport import GreeTransport, build_packet, open_packet

_LOGGER = logging.getLogger(__name__)

POWER_ON = commands.POWER.value('on')
POWER_OFF = commands.POWER.value('off')
MODE_AUTO = commands.MODE.value('auto')
MODE_COOL = commands.MODE.value('cool')
MODE_DRY = commands.MODE.value('dry')
MODE_FAN = commands.MODE.value('fan')
MODE_HEAT = commands.MODE.value('heat')
# modes driven by the heater-cooler controls
HEATER_COOLER_MODES = (MODE_COOL, MODE_HEAT, MODE_AUTO)
TARGET_MODES = ('auto', 'cool', 'heat')

SPEED_AUTO = commands.SPEED.value('auto')
SPEED_LOW = commands.SPEED.value('low')
SPEED_MEDIUM_LOW = commands.SPEED.value('mediumLow')
SPEED_MEDIUM = commands.SPEED.value('medium')
SPEED_MEDIUM_HIGH = commands.SPEED.value('mediumHigh')
SPEED_HIGH = commands.SPEED.value('high')
QUIET_ON = commands.QUIET_MODE.value('on')
QUIET_OFF = commands.QUIET_MODE.value('off')
POWERFUL_ON = commands.POWERFUL_MODE.value('on')
POWERFUL_OFF = commands.POWERFUL_MODE.value('off')
XFAN_ON = commands.XFAN.value('on')
XFAN_OFF = commands.XFAN.value('off')
SWING_DEFAULT = commands.SWING_VERTICAL.value('default')
SWING_FULL = commands.SWING_VERTICAL.value('full')
# vertical positions that mean "not oscillating"
SWING_DISABLED_POSITIONS = tuple(
    commands.SWING_VERTICAL.value(name)
    for name in ('default', 'fixedHighest', 'fixedHigher', 'fixedMiddle', 'fixedLower', 'fixedLowest')
)
BUZZER_MUTED = commands.BUZZER.value('off')

# rotation speed index: 0 inactive, 1 quiet, 2 auto, 3 low, ..., max powerful
ROTATION_INACTIVE = 0
ROTATION_QUIET = 1
ROTATION_AUTO = 2

BINDING_STATUS = 'binding_status'
TEMPERATURE_SENSOR = 'temperature_sensor'

Listener = Callable[['GreeDevice', frozenset], None]


def describe_batch(batch):
    """'power -> on, mode -> cool' for log lines."""
    parts = []
    for code, value in batch.items():
        name = commands.value_name(code, value)
        parts.append(f'{commands.command_name(code)} -> {name if name is not None else value}')
    return ', '.join(parts)


class GreeDevice:
    """Controller for a single unit, or a single unit behind a bridge."""

    def __init__(self, descriptor, config: Optional[DeviceConfig] = None, transport=None,
                 ports=None, now: Optional[Callable[[], datetime.datetime]] = None) -> None:
        self.descriptor = descriptor
        self.config = config or DeviceConfig.default(descriptor.mac)
        self.status = DeviceStatus()
        self.power_pending: Optional[int] = None
        self.mode_pending: Optional[int] = None
        self.available = True
        self.temperature_sensor_available = self.config.temperature_sensor != TS_TYPE_DISABLED
        self._transport = transport
        self._ports = ports
        self._now = now or datetime.datetime.now
        self._silent_time_ranges = self.config.silent_time_ranges
        self._remembered_target_mode: Optional[str] = None
        self._remembered_rotation_speed: Optional[int] = None
        self._target_hint = DEFAULT_TARGET_TEMPERATURE
        self._listeners = []
        self._published: Dict[str, object] = {}
        self._warned = set()
        self._pending_timer = None
        self._queue: Optional[asyncio.Queue] = None
        self._tasks = []
        self._poll_task: Optional[asyncio.Task] = None

        version = descriptor.encryption_version
        if self.config.encryption_version != ENCRYPTION_AUTO:
            version = self.config.encryption_version
        self.binding = BindingStateMachine(self.send_bind_request, version, self._schedule,
                                           BINDING_TIMEOUT, self.label)
        self._published = self._semantic_state()

    # identity

    @property
    def mac(self):
        return self.descriptor.mac

    @property
    def name(self):
        return self.config.name or self.descriptor.name or self.descriptor.mac

    @property
    def label(self):
        return f'{self.name} -- {self.descriptor.address}'

    @property
    def binding_status(self):
        return self.binding.state

    @property
    def is_bound(self):
        return self.binding.is_bound

    @property
    def encryption_version(self):
        return self.binding.version

    def __repr__(self):
        return f'<GreeDevice {self.label} ({self.binding.state})>'

    # getters

    @property
    def power(self):
        return self.status.power == POWER_ON

    @property
    def mode(self):
        return self.status.mode if self.status.mode is not None else MODE_AUTO

    @property
    def mode_name(self):
        return commands.MODE.value_name(self.mode)

    @property
    def active(self):
        """Powered on in a heater-cooler mode."""
        return self.power and self.mode in HEATER_COOLER_MODES

    @property
    def fan_active(self):
        return self.power and self.mode == MODE_FAN

    @property
    def fan_control_enabled(self):
        return self.config.fan_control_enabled

    @property
    def temperature_sensor(self):
        """child or separate while the unit reports a temperature, None otherwise.

        child sensors belong with the unit's own controls, separate ones are
        shown as a device of their own.
        """
        if not self.temperature_sensor_available:
            return None
        return self.config.temperature_sensor

    @property
    def target_mode(self):
        """auto, cool or heat. Outside those modes the last one seen or requested."""
        if self.mode in HEATER_COOLER_MODES:
            return commands.MODE.value_name(self.mode)
        return self._remembered_target_mode or 'auto'

    @property
    def current_state(self):
        if not self.power:
            return 'inactive'
        if self.mode == MODE_COOL:
            return 'cooling'
        if self.mode == MODE_HEAT:
            return 'heating'
        if self.mode == MODE_AUTO:
            if self.current_temperature > self.target_temperature + 1.5:
                return 'cooling'
            if self.current_temperature < self.target_temperature - 1.5:
                return 'heating'
            return 'idle'
        return 'inactive'

    @property
    def current_temperature(self):
        raw = self.status.substitute_temperature
        if raw is None:
            raw = self.status.temperature
        if raw is None:
            return DEFAULT_CURRENT_TEMPERATURE
        return raw - self.config.sensor_offset

    @property
    def units_value(self):
        return self.status.units if self.status.units is not None else CELSIUS

    @property
    def units(self):
        return commands.UNITS.value_name(self.units_value)

    @property
    def target_temperature_step(self):
        return self.config.temperature_step_size

    def target_temperature_range(self, mode=None):
        return target_temperature_range(self.mode if mode is None else mode,
                                        self.config.min_target_temperature, self.config.max_target_temperature)

    def _decode_target(self, units=None):
        set_tem = self.status.target_temperature
        offset = self.status.temperature_offset
        return decode_target_temperature(
            set_tem if set_tem is not None else DEFAULT_TARGET_TEMPERATURE,
            offset if offset is not None else 0,
            self.units_value if units is None else units,
            self._target_hint,
        )

    @property
    def target_temperature(self):
        low, high = self.target_temperature_range()
        return clamp(self._decode_target(), low, high)

    @property
    def swing_vertical_value(self):
        value = self.status.swing_vertical
        return value if value is not None else SWING_DEFAULT

    @property
    def swing_vertical(self):
        return commands.SWING_VERTICAL.value_name(self.swing_vertical_value)

    @property
    def swing_mode(self):
        """True while the vertical vanes oscillate."""
        return self.swing_vertical_value not in SWING_DISABLED_POSITIONS

    @property
    def swing_horizontal(self):
        value = self.status.swing_horizontal
        return commands.SWING_HORIZONTAL.value_name(value if value is not None else 0)

    @property
    def speed_value(self):
        return self.status.speed if self.status.speed is not None else SPEED_AUTO

    @property
    def speed(self):
        return commands.SPEED.value_name(self.speed_value)

    @property
    def quiet_mode(self):
        return self.status.quiet_mode == QUIET_ON

    @property
    def powerful_mode(self):
        return self.status.powerful_mode == POWERFUL_ON

    @property
    def max_rotation_speed(self):
        return self.config.max_rotation_speed

    def _speed_to_rotation(self, speed):
        five_steps = self.max_rotation_speed == 8
        if speed == SPEED_LOW:
            return 3
        if speed == SPEED_MEDIUM_LOW:
            return 4
        if speed == SPEED_MEDIUM:
            return 5 if five_steps else 4
        if speed == SPEED_MEDIUM_HIGH:
            return 6 if five_steps else 4
        if speed == SPEED_HIGH:
            return 7 if five_steps else 5
        return ROTATION_AUTO

    @property
    def rotation_speed(self):
        """Heater-cooler rotation speed index (1 quiet, 2 auto, 3 low, ..., max powerful)."""
        if self.quiet_mode:
            return ROTATION_QUIET
        if self.powerful_mode:
            return self.max_rotation_speed
        return self._speed_to_rotation(self.speed_value)

    @property
    def fan_rotation_speed(self):
        """Fan mode speed in percent, 100 for auto."""
        min_step = 100 / (self.config.speed_steps + 1)
        three_steps = min_step == 25
        speed = self.speed_value
        if speed == SPEED_LOW:
            value = min_step
        elif speed == SPEED_MEDIUM_LOW:
            value = 2 * min_step
        elif speed == SPEED_MEDIUM:
            value = (2 if three_steps else 3) * min_step
        elif speed == SPEED_MEDIUM_HIGH:
            value = (2 if three_steps else 4) * min_step
        elif speed == SPEED_HIGH:
            value = (3 if three_steps else 5) * min_step
        else:
            value = 100
        return round(value)

    def switch_state(self, name):
        return self.status.get(SWITCHES[name][0].code) == commands.OFF_ON['on']

    def is_silent_time(self):
        if not self._silent_time_ranges:
            return False
        now = self._now()
        current = now.hour * 100 + now.minute
        return any(start <= current < end for start, end in self._silent_time_ranges)

    # batch compilation

    def _pending(self):
        return self.power_pending is not None or self.mode_pending is not None

    def _warn_once(self, key, msg, *args):
        if key in self._warned:
            return
        self._warned.add(key)
        _LOGGER.warning('[%s] ' + msg, self.label, *args)

    def _fan_control_allowed(self):
        if not self.config.fan_control_enabled:
            self._warn_once('fan_control', 'Fan control is not enabled for this device')
            return False
        return True

    def _enum_value(self, command, value):
        if not isinstance(value, str):
            return value
        try:
            return command.value(value)
        except KeyError:
            self._warn_once(f'{command.code}:{value}', 'Unknown %s value: %s', command.name, value)
            return None

    def _restore_rotation_speed(self, batch, quiet_powerful_allowed):
        """Re-derive speed, quiet and powerful from the remembered rotation speed index."""
        index = self._remembered_rotation_speed
        if not index or index > self.max_rotation_speed:
            return
        five_steps = self.max_rotation_speed == 8
        if index == ROTATION_QUIET:
            batch[commands.QUIET_MODE.code] = QUIET_ON if quiet_powerful_allowed else QUIET_OFF
            batch[commands.POWERFUL_MODE.code] = POWERFUL_OFF
            batch[commands.SPEED.code] = SPEED_LOW
        elif index == self.max_rotation_speed:
            batch[commands.QUIET_MODE.code] = QUIET_OFF
            batch[commands.POWERFUL_MODE.code] = POWERFUL_ON if quiet_powerful_allowed else POWERFUL_OFF
            batch[commands.SPEED.code] = SPEED_HIGH
        else:
            speed = {
                2: SPEED_AUTO,
                3: SPEED_LOW,
                4: SPEED_MEDIUM_LOW if five_steps else SPEED_MEDIUM,
                5: SPEED_MEDIUM if five_steps else SPEED_HIGH,
                6: SPEED_MEDIUM_HIGH,
                7: SPEED_HIGH,
            }[index]
            if self.status.quiet_mode not in (None, QUIET_OFF) or self.status.powerful_mode not in (None, POWERFUL_OFF):
                batch[commands.QUIET_MODE.code] = QUIET_OFF
                batch[commands.POWERFUL_MODE.code] = POWERFUL_OFF
                batch[commands.SPEED.code] = speed
            elif self.status.speed != speed:
                batch[commands.SPEED.code] = speed

    def _power_on_swing(self, batch, fan=False):
        policy = self.config.modify_vertical_swing_position
        if (policy in (MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE, MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON)
                and self.swing_vertical_value == SWING_DEFAULT):
            batch[commands.SWING_VERTICAL.code] = self.config.default_vertical_swing
        elif policy in (MODIFY_SWING_SET_POWER_ON_OSC_DISABLE, MODIFY_SWING_SET_POWER_ON):
            batch[commands.SWING_VERTICAL.code] = (self.config.default_fan_vertical_swing if fan
                                                   else self.config.default_vertical_swing)

    def _x_fan_for_mode(self, batch, mode):
        if not self.config.x_fan_enabled:
            return
        if mode in (MODE_COOL, MODE_DRY):
            if self.status.x_fan != XFAN_ON:
                batch[commands.XFAN.code] = XFAN_ON
        elif self.status.x_fan != XFAN_OFF:
            batch[commands.XFAN.code] = XFAN_OFF

    def build_active(self, value):
        """Heater-cooler on/off. Powering on also restores the target mode and rotation speed."""
        value = bool(value)
        mode = self.mode
        if (value == self.power and mode in HEATER_COOLER_MODES) or self._pending():
            _LOGGER.debug('[%s] power -> no change (%s, %s, %s, %s)', self.label, self.power,
                          self.power_pending, mode, self.mode_pending)
            return None
        if not value and mode not in HEATER_COOLER_MODES:
            _LOGGER.debug('[%s] power -> set inactive but no power off (%s)', self.label, mode)
            return None
        batch = {}
        if value != self.power:
            batch[commands.POWER.code] = POWER_ON if value else POWER_OFF
        target_mode = self.target_mode
        if value:
            target = commands.MODE.value(target_mode)
            if mode != target:
                batch[commands.MODE.code] = target
        if batch and value:
            self._x_fan_for_mode(batch, commands.MODE.value(target_mode))
            self._restore_rotation_speed(batch, target_mode in ('cool', 'heat'))
            self._power_on_swing(batch)
        return batch or None

    def build_fan_active(self, value):
        """Fan mode on/off."""
        value = bool(value)
        if not self._fan_control_allowed():
            return None
        if self._pending():
            _LOGGER.debug('[%s] fanpower -> no change (%s, %s)', self.label, self.power_pending, self.mode_pending)
            return None
        if not value and self.mode != MODE_FAN:
            _LOGGER.debug('[%s] fanpower -> set inactive but no power off (%s)', self.label, self.mode)
            return None
        batch = {}
        if value != self.power:
            batch[commands.POWER.code] = POWER_ON if value else POWER_OFF
        if value and self.mode != MODE_FAN:
            batch[commands.MODE.code] = MODE_FAN
        if batch and value:
            batch[commands.QUIET_MODE.code] = QUIET_OFF
            batch[commands.POWERFUL_MODE.code] = POWERFUL_OFF
            self._power_on_swing(batch, fan=True)
        return batch or None

    def build_mode(self, value):
        value = self._enum_value(commands.MODE, value)
        if value is None:
            return None
        if value == self.mode or self.mode_pending is not None:
            _LOGGER.debug('[%s] mode -> no change (%s, %s)', self.label, value, self.mode_pending)
            return None
        batch = {commands.MODE.code: value}
        self._x_fan_for_mode(batch, value)
        if value in HEATER_COOLER_MODES:
            self._restore_rotation_speed(batch, value in (MODE_COOL, MODE_HEAT))
        return batch

    def build_target_mode(self, value):
        """auto, cool or heat. The choice is remembered for the next power on."""
        if value not in TARGET_MODES:
            raise ValueError(f'Unsupported target mode: {value}')
        self._remembered_target_mode = value
        return self.build_mode(value)

    def build_target_temperature(self, value):
        step = self.target_temperature_step
        value = round(value / step) * step
        if value == self.target_temperature:
            _LOGGER.debug('[%s] targetTemperature -> no change (%s)', self.label, value)
            return None
        low, high = self.target_temperature_range()
        if not low <= value <= high:
            self._warn_once('target_temperature', 'Target temperature %s is outside %s - %s, using the closest limit',
                            value, low, high)
            value = clamp(value, low, high)
            if value == self.target_temperature:
                return None
        set_tem, offset = encode_target_temperature(value, self.units_value)
        self._target_hint = value
        return {
            commands.TARGET_TEMPERATURE.code: set_tem,
            commands.TEMPERATURE_OFFSET.code: offset,
        }

    def build_units(self, value):
        """Switch the unit display, keeping the physical target temperature."""
        value = self._enum_value(commands.UNITS, value)
        if value is None:
            return None
        if value == self.units_value:
            _LOGGER.debug('[%s] units -> no change (%s)', self.label, value)
            return None
        batch = {commands.UNITS.code: value}
        target = self._decode_target()
        set_tem, offset = encode_target_temperature(target, value)
        if set_tem != self.status.target_temperature:
            batch[commands.TARGET_TEMPERATURE.code] = set_tem
        if offset != self.status.temperature_offset:
            batch[commands.TEMPERATURE_OFFSET.code] = offset
        return batch

    def build_swing_vertical(self, value):
        value = self._enum_value(commands.SWING_VERTICAL, value)
        if value is None:
            return None
        if value == self.swing_vertical_value:
            _LOGGER.debug('[%s] swingMode -> no change (%s)', self.label, value)
            return None
        return {commands.SWING_VERTICAL.code: value}

    def build_swing_mode(self, enabled, fan=False):
        """Vertical oscillation on/off. Off parks the vanes at the configured position."""
        if enabled:
            return self.build_swing_vertical(SWING_FULL)
        policy = self.config.modify_vertical_swing_position
        position = SWING_DEFAULT
        if fan:
            if policy == MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE:
                position = self.config.default_vertical_swing
            elif policy == MODIFY_SWING_SET_POWER_ON_OSC_DISABLE:
                position = self.config.default_fan_vertical_swing
        elif policy in (MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE, MODIFY_SWING_SET_POWER_ON_OSC_DISABLE):
            position = self.config.default_vertical_swing
        return self.build_swing_vertical(position)

    def build_swing_horizontal(self, value):
        value = self._enum_value(commands.SWING_HORIZONTAL, value)
        if value is None:
            return None
        current = self.status.swing_horizontal if self.status.swing_horizontal is not None else 0
        if value == current:
            _LOGGER.debug('[%s] swingHorizontal -> no change (%s)', self.label, value)
            return None
        return {commands.SWING_HORIZONTAL.code: value}

    def build_speed(self, value):
        """Explicit fan speed, which always ends quiet and powerful mode."""
        value = self._enum_value(commands.SPEED, value)
        if value is None:
            return None
        if value == self.speed_value and not self.quiet_mode and not self.powerful_mode:
            _LOGGER.debug('[%s] speed -> no change (%s, %s, %s)', self.label, value,
                          self.status.quiet_mode, self.status.powerful_mode)
            return None
        return {
            commands.SPEED.code: value,
            commands.QUIET_MODE.code: QUIET_OFF,
            commands.POWERFUL_MODE.code: POWERFUL_OFF,
        }

    def build_quiet_mode(self, value):
        """Only turning quiet mode on is supported; choosing a speed turns it off."""
        if not value or self.quiet_mode:
            _LOGGER.debug('[%s] quietMode -> not turning on (%s)', self.label, value)
            return None
        # quiet mode exists only in heating and cooling mode
        allowed = self.target_mode in ('cool', 'heat')
        return {
            commands.QUIET_MODE.code: QUIET_ON if allowed else QUIET_OFF,
            commands.POWERFUL_MODE.code: POWERFUL_OFF,
            commands.SPEED.code: SPEED_LOW,
        }

    def build_powerful_mode(self, value):
        """Only turning powerful mode on is supported; choosing a speed turns it off."""
        if not value or self.powerful_mode:
            _LOGGER.debug('[%s] powerfulMode -> not turning on (%s)', self.label, value)
            return None
        allowed = self.target_mode in ('cool', 'heat')
        return {
            commands.POWERFUL_MODE.code: POWERFUL_ON if allowed else POWERFUL_OFF,
            commands.QUIET_MODE.code: QUIET_OFF,
            commands.SPEED.code: SPEED_HIGH,
        }

    def build_rotation_speed(self, index):
        index = int(index)
        if index == ROTATION_INACTIVE:
            return None
        five_steps = self.max_rotation_speed == 8
        self._remembered_rotation_speed = index
        if index == ROTATION_QUIET:
            return self.build_quiet_mode(True)
        if index == 8 or (index == 6 and not five_steps):
            return self.build_powerful_mode(True)
        speed = {
            3: SPEED_LOW,
            4: SPEED_MEDIUM_LOW if five_steps else SPEED_MEDIUM,
            5: SPEED_MEDIUM if five_steps else SPEED_HIGH,
            6: SPEED_MEDIUM_HIGH,
            7: SPEED_HIGH,
        }.get(index, SPEED_AUTO)
        return self.build_speed(speed)

    def build_fan_rotation_speed(self, percent):
        percent = round(percent)
        if percent == 0 or not self._fan_control_allowed():
            return None
        if percent in (17, 25):
            speed = SPEED_LOW
        elif percent == 33:
            speed = SPEED_MEDIUM_LOW
        elif percent == 50:
            speed = SPEED_MEDIUM
        elif percent == 67:
            speed = SPEED_MEDIUM_HIGH
        elif percent in (75, 83):
            speed = SPEED_HIGH
        else:
            speed = SPEED_AUTO
        return self.build_speed(speed)

    def build_switch(self, name, on):
        if name not in SWITCHES:
            raise ValueError(f'Unknown switch: {name}')
        if name == 'nofrost' and on and self.mode != MODE_HEAT:
            # 8 degree heating can only be enabled in heat mode
            _LOGGER.warning('[%s] nofrost can only be enabled in heat mode', self.label)
            return None
        value = commands.OFF_ON['on' if on else 'off']
        batch = {command.code: value for command in SWITCHES[name] if self.status.get(command.code) != value}
        return batch or None

    # sending

    def _send(self, payload):
        if self._transport is None:
            _LOGGER.error('[%s] sendMessage - Error: no socket', self.label)
            return False
        packet = build_packet(payload, self.binding.version, self.binding.key,
                              self.descriptor.bind_mac, self.descriptor.uid)
        _LOGGER.debug('[%s] sendMessage - Package -> %s', self.label, payload)
        return self._transport.send(packet, self.descriptor.address, self.descriptor.port)

    def send_bind_request(self, version=None):
        uid = self.descriptor.uid if self.descriptor.is_subdevice else 0
        _LOGGER.debug('[%s] Bind to device -> %s', self.label, self.mac)
        packet = build_packet({'mac': self.descriptor.bind_mac, 't': 'bind', 'uid': uid},
                              self.binding.version if version is None else version, None,
                              self.descriptor.bind_mac, self.descriptor.uid)
        if self._transport is None:
            _LOGGER.error('[%s] sendMessage - Error: no socket', self.label)
            return False
        return self._transport.send(packet, self.descriptor.address, self.descriptor.port)

    def request_status(self):
        return self._send({'mac': self.mac, 't': 'status', 'cols': list(commands.STATUS_COLUMNS)})

    def send_command(self, batch):
        """Send a compiled batch as a single cmd pack."""
        if not batch:
            return False
        batch = dict(batch)
        _LOGGER.info('[%s] %s', self.label, describe_batch(batch))
        if self.is_silent_time():
            batch[commands.BUZZER.code] = BUZZER_MUTED
        _LOGGER.debug('[%s] Send commands -> %s', self.label, batch)
        if commands.POWER.code in batch:
            self.power_pending = batch[commands.POWER.code]
        if commands.MODE.code in batch:
            self.mode_pending = batch[commands.MODE.code]
        if self.power_pending is not None or self.mode_pending is not None:
            self._arm_pending_timer()
        return self._send({'t': 'cmd', 'opt': list(batch.keys()), 'p': list(batch.values())})

    def _arm_pending_timer(self):
        if self._pending_timer is not None:
            self._pending_timer.cancel()
        self._pending_timer = self._schedule(PENDING_TIMEOUT, self.pending_timeout)

    def pending_timeout(self):
        """The unit never confirmed a power or mode change."""
        self._pending_timer = None
        if not self._pending():
            return
        _LOGGER.warning('[%s] No confirmation of power/mode change from device (%s, %s)', self.label,
                        self.power_pending, self.mode_pending)
        self.power_pending = None
        self.mode_pending = None

    def _clear_pending(self, code):
        if code == commands.POWER.code:
            self.power_pending = None
        elif code == commands.MODE.code:
            self.mode_pending = None
        if not self._pending() and self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None

    def _build_and_send(self, batch):
        if batch:
            self.send_command(batch)
        return batch

    def set_active(self, value):
        return self._build_and_send(self.build_active(value))

    def set_fan_active(self, value):
        return self._build_and_send(self.build_fan_active(value))

    def set_mode(self, value):
        return self._build_and_send(self.build_mode(value))

    def set_target_mode(self, value):
        return self._build_and_send(self.build_target_mode(value))

    def set_target_temperature(self, value):
        return self._build_and_send(self.build_target_temperature(value))

    def set_units(self, value):
        return self._build_and_send(self.build_units(value))

    def set_swing_vertical(self, value):
        return self._build_and_send(self.build_swing_vertical(value))

    def set_swing_mode(self, enabled, fan=False):
        return self._build_and_send(self.build_swing_mode(enabled, fan))

    def set_swing_horizontal(self, value):
        return self._build_and_send(self.build_swing_horizontal(value))

    def set_speed(self, value):
        return self._build_and_send(self.build_speed(value))

    def set_quiet_mode(self, value):
        return self._build_and_send(self.build_quiet_mode(value))

    def set_powerful_mode(self, value):
        return self._build_and_send(self.build_powerful_mode(value))

    def set_rotation_speed(self, index):
        return self._build_and_send(self.build_rotation_speed(index))

    def set_fan_rotation_speed(self, percent):
        """Fan mode speed in percent; switches to fan mode first if needed."""
        if round(percent) != 0 and not self.fan_active:
            self.set_fan_active(True)
        return self._build_and_send(self.build_fan_rotation_speed(percent))

    def set_switch(self, name, on):
        return self._build_and_send(self.build_switch(name, on))

    # receiving

    def handle_message(self, message, addr):
        if addr[0] != self.descriptor.address:
            return
        try:
            pack = open_packet(message, self.binding.version, self.binding.key)
        except DecodeError as err:
            _LOGGER.debug('[%s] handleMessage - Unknown message: %s (%s)', self.label, message, err)
            _LOGGER.warning('[%s] Warning: handleMessage - Unknown response from device', self.label)
            return
        _LOGGER.debug('[%s] handleMessage - Package -> %s', self.label, pack)
        packet_type = pack['t'].lower()
        if packet_type == 'bindok':
            self.handle_bind_ok(pack)
        elif packet_type == 'dat':
            if self.is_bound:
                self.apply_status(pack)
        elif packet_type == 'res':
            if self.is_bound:
                self.apply_response(pack)
        else:
            _LOGGER.debug('[%s] handleMessage - Unknown message: %s', self.label, pack)
            _LOGGER.warning('[%s] Warning: handleMessage - Unknown response from device', self.label)

    def handle_bind_ok(self, pack):
        if not self.binding.bind_ok(pack.get('key')):
            return
        _LOGGER.info('[%s] Device is bound -> %s (%s)', self.label, pack.get('mac', self.mac), self.descriptor.uid)
        self._on_bound()

    def _on_bound(self):
        self._start_polling()
        self.request_status()
        self._publish({BINDING_STATUS})

    def apply_status(self, pack):
        """Apply a full status report (dat)."""
        cols = pack.get('cols') or []
        values = pack.get('dat') or []
        invalid_temperature = False
        for col, value in zip(cols, values):
            if not isinstance(col, str):
                _LOGGER.debug('[%s] Ignoring status column %r', self.label, col)
                continue
            if col == commands.TEMPERATURE.code and (not isinstance(value, (int, float))
                                                     or value <= SENSOR_VALID_MIN or value >= SENSOR_VALID_MAX):
                # 1-99 is -39 to +59 degrees, anything else means no sensor
                invalid_temperature = True
            else:
                self.status.set(col, value)
            if col in (commands.POWER.code, commands.MODE.code):
                self._clear_pending(col)
            if (col == commands.BUZZER.code and value not in commands.BUZZER.values.values()
                    and self._silent_time_ranges is not None):
                _LOGGER.warning('[%s] Warning: Device does not support command muting', self.label)
                self._silent_time_ranges = None
        if self._silent_time_ranges is not None and commands.BUZZER.code not in cols:
            _LOGGER.warning('[%s] Warning: Device does not support command muting', self.label)
            self._silent_time_ranges = None

        extra_changes = set()
        reported = commands.TEMPERATURE.code in cols and not invalid_temperature
        if reported:
            self.status.substitute_temperature = None
        elif (invalid_temperature or self.status.temperature is None
              or self.status.substitute_temperature is not None):
            target = self.status.target_temperature
            self.status.substitute_temperature = ((target if target is not None else DEFAULT_TARGET_TEMPERATURE)
                                                  + self.config.sensor_offset)
            _LOGGER.debug('[%s] Current temperature not available - Threshold temperature is used as current',
                          self.label)
            if self.temperature_sensor_available:
                self.temperature_sensor_available = False
                _LOGGER.debug('[%s] temperature is not accessible -> Temperature Sensor removed', self.label)
                extra_changes.add(TEMPERATURE_SENSOR)
        _LOGGER.debug('[%s] Device status -> %s', self.label, self.status)
        self._update_status(cols, extra_changes)

    def apply_response(self, pack):
        """Apply a command acknowledgement (res)."""
        opt = pack.get('opt') or []
        values = pack.get('p') if pack.get('p') is not None else (pack.get('val') or [])
        _LOGGER.debug('[%s] Device response %s %s', self.label, opt, values)
        updated = []
        for code, value in zip(opt, values):
            old = self.status.get(code)
            if old != value:
                old_name = commands.value_name(code, old)
                new_name = commands.value_name(code, value)
                updated.append(f'{commands.command_name(code)}: '
                               f'{old_name if old_name is not None else old} -> '
                               f'{new_name if new_name is not None else value}')
            self.status.set(code, value)
            if code in (commands.POWER.code, commands.MODE.code):
                self._clear_pending(code)
        if updated:
            _LOGGER.info('[%s] Device updated (%s)', self.label, ', '.join(updated))
        self._update_status(opt)

    def _update_status(self, codes, extra_changes=()):
        codes = set(codes)
        if commands.MODE.code in codes and self.active:
            self._remembered_target_mode = self.mode_name
        if self.active:
            if commands.QUIET_MODE.code in codes and self.quiet_mode:
                self._remembered_rotation_speed = ROTATION_QUIET
            elif commands.POWERFUL_MODE.code in codes and self.powerful_mode:
                self._remembered_rotation_speed = self.max_rotation_speed
            elif commands.SPEED.code in codes:
                self._remembered_rotation_speed = self._speed_to_rotation(self.speed_value)
        self._target_hint = self.target_temperature
        self._publish(set(extra_changes))

    # notifications

    def _semantic_state(self):
        state = {
            'power': self.power,
            'active': self.active,
            'fan_active': self.fan_active,
            'mode': self.mode_name,
            'target_mode': self.target_mode,
            'current_state': self.current_state,
            'current_temperature': self.current_temperature,
            'target_temperature': self.target_temperature,
            'units': self.units,
            'swing_mode': self.swing_mode,
            'swing_vertical': self.swing_vertical,
            'swing_horizontal': self.swing_horizontal,
            'speed': self.speed,
            'quiet_mode': self.quiet_mode,
            'powerful_mode': self.powerful_mode,
            'rotation_speed': self.rotation_speed,
            'fan_rotation_speed': self.fan_rotation_speed,
            TEMPERATURE_SENSOR: self.temperature_sensor,
            BINDING_STATUS: self.binding_status,
        }
        for name in SWITCHES:
            state[name] = self.switch_state(name)
        return state

    def subscribe(self, callback: Listener):
        """Call callback(device, changed_names) whenever published properties change."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)
        return unsubscribe

    def _publish(self, forced=()):
        state = self._semantic_state()
        changed = {name for name, value in state.items() if self._published.get(name) != value}
        changed.update(forced)
        self._published = state
        if not changed:
            return
        changed = frozenset(changed)
        _LOGGER.debug('[%s] updateStatus -> %s', self.label, sorted(changed))
        for listener in list(self._listeners):
            try:
                listener(self, changed)
            except Exception:  # listeners belong to the caller
                _LOGGER.exception('[%s] Error in status listener', self.label)

    # lifecycle

    def _schedule(self, delay, callback):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        return loop.call_later(delay, self._post, callback)

    def _post(self, callback, *args):
        if self._queue is None:
            callback(*args)
        else:
            self._queue.put_nowait((callback, args))

    def _on_datagram(self, message, addr):
        self._post(self.handle_message, message, addr)

    def _on_transport_error(self, err):
        if not self.available:
            return
        _LOGGER.error('[%s] Network - Error: %s', self.label, err)
        self.available = False
        if self._transport is not None:
            self._transport.close()
        self._stop_polling()
        self._publish({'available'})

    async def async_start(self):
        """Open the socket, start the device task and bind."""
        self._queue = asyncio.Queue()
        self._tasks.append(asyncio.create_task(self._async_run()))
        if self._transport is None:
            self._transport = GreeTransport(self._on_datagram, self._on_transport_error, self.label, self._ports)
            try:
                await self._transport.async_open(self.config.port or 0)
            except TransportError:
                self.available = False
                self._transport = None
                raise
        if self.descriptor.bridge_key is not None:
            self.binding.bind_with(self.descriptor.bridge_key, self.descriptor.encryption_version)
            _LOGGER.info('[%s] Device is bound -> %s (%s)', self.label, self.mac, self.descriptor.uid)
            self._on_bound()
        else:
            self.binding.start()

    async def async_stop(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        self._poll_task = None
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None
        self.binding.reset()
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._queue = None

    async def _async_run(self):
        while True:
            callback, args = await self._queue.get()
            try:
                callback(*args)
            except Exception:  # one bad packet must not stop the device
                _LOGGER.exception('[%s] Error while handling %s', self.label,
                                  getattr(callback, '__name__', callback))

    def _start_polling(self):
        if self._queue is None or self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._async_poll())
        self._tasks.append(self._poll_task)

    def _stop_polling(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def _async_poll(self):
        while True:
            await asyncio.sleep(self.config.status_update_interval)
            self._post(self.request_status)

    def update_descriptor(self, descriptor):
        """Scan reply for a known mac; the registry already refreshed address and port."""
        if descriptor is not self.descriptor:
            self.descriptor.address = descriptor.address
            self.descriptor.port = descriptor.port
        _LOGGER.debug('[%s] Device seen again at %s:%s', self.label, descriptor.address, descriptor.port)
