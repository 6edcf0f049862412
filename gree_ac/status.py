"""Last known raw values reported by a unit."""
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from . import commands

# snapshot attribute for every wire code
FIELD_BY_CODE = {
    commands.POWER.code: 'power',
    commands.MODE.code: 'mode',
    commands.TARGET_TEMPERATURE.code: 'target_temperature',
    commands.TEMPERATURE.code: 'temperature',
    commands.UNITS.code: 'units',
    commands.TEMPERATURE_OFFSET.code: 'temperature_offset',
    commands.SPEED.code: 'speed',
    commands.SWING_HORIZONTAL.code: 'swing_horizontal',
    commands.SWING_VERTICAL.code: 'swing_vertical',
    commands.XFAN.code: 'x_fan',
    commands.LIGHT.code: 'light',
    commands.QUIET_MODE.code: 'quiet_mode',
    commands.POWERFUL_MODE.code: 'powerful_mode',
    commands.HEAT_COOL_TYPE.code: 'heat_cool_type',
    commands.ENERGY_SAVING.code: 'energy_saving',
    commands.SLEEP_MODE.code: 'sleep_mode',
    commands.SLEEP.code: 'sleep',
    commands.TIME.code: 'time',
    commands.AIR.code: 'air',
    commands.HEALTH.code: 'health',
    commands.NOFROST.code: 'nofrost',
    commands.BUZZER.code: 'buzzer',
}


@dataclass
class DeviceStatus:
    """One attribute per wire code. None means the unit has not reported it yet.

    substitute_temperature holds the measured temperature code derived from the
    target while the unit reports no usable sensor value; temperature keeps
    the last real reading.
    """

    power: Optional[int] = None
    mode: Optional[int] = None
    target_temperature: Optional[int] = None
    temperature: Optional[int] = None
    units: Optional[int] = None
    temperature_offset: Optional[int] = None
    speed: Optional[int] = None
    swing_horizontal: Optional[int] = None
    swing_vertical: Optional[int] = None
    x_fan: Optional[int] = None
    light: Optional[int] = None
    quiet_mode: Optional[int] = None
    powerful_mode: Optional[int] = None
    heat_cool_type: Optional[int] = None
    energy_saving: Optional[int] = None
    sleep_mode: Optional[int] = None
    sleep: Optional[int] = None
    time: Optional[Any] = None
    air: Optional[int] = None
    health: Optional[int] = None
    nofrost: Optional[int] = None
    buzzer: Optional[int] = None
    substitute_temperature: Optional[int] = None
    # codes outside the registry, kept as reported
    extra: Dict[str, Any] = field(default_factory=dict)

    def get(self, code):
        attr = FIELD_BY_CODE.get(code)
        if attr is None:
            return self.extra.get(code)
        return getattr(self, attr)

    def set(self, code, value):
        attr = FIELD_BY_CODE.get(code)
        if attr is None:
            self.extra[code] = value
        else:
            setattr(self, attr, value)

    def as_dict(self):
        """Known values keyed by wire code."""
        result = {code: getattr(self, attr) for code, attr in FIELD_BY_CODE.items() if getattr(self, attr) is not None}
        result.update(self.extra)
        return result

    def __repr__(self):
        known = ', '.join(f'{f.name}={getattr(self, f.name)!r}' for f in fields(self)
                          if f.name != 'extra' and getattr(self, f.name) is not None)
        return f'DeviceStatus({known})'
