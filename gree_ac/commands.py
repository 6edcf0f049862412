"""Wire codes and enumerated values understood by Gree units."""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class CommandDescriptor:
    name: str
    code: str
    values: Optional[Mapping[str, int]] = field(default=None)

    def value(self, value_name):
        return self.values[value_name]

    def value_name(self, value):
        """Return the semantic name of a wire value, or None when it has none."""
        if self.values is None:
            return None
        for name, val in self.values.items():
            if val == value:
                return name
        return None


def _command(name, code, values=None):
    return CommandDescriptor(name, code, MappingProxyType(values) if values is not None else None)


OFF_ON = {'off': 0, 'on': 1}

POWER = _command('power', 'Pow', OFF_ON)
MODE = _command('mode', 'Mod', {'auto': 0, 'cool': 1, 'dry': 2, 'fan': 3, 'heat': 4})
TARGET_TEMPERATURE = _command('targetTemperature', 'SetTem')
TEMPERATURE = _command('temperature', 'TemSen')
UNITS = _command('units', 'TemUn', {'celsius': 0, 'fahrenheit': 1})
TEMPERATURE_OFFSET = _command('temperatureOffset', 'TemRec')
SPEED = _command('speed', 'WdSpd', {
    'auto': 0, 'low': 1, 'mediumLow': 2, 'medium': 3, 'mediumHigh': 4, 'high': 5,
})
SWING_HORIZONTAL = _command('swingHorizontal', 'SwingLfRig', {
    'default': 0, 'full': 1, 'left': 2, 'centerLeft': 3, 'center': 4, 'centerRight': 5, 'right': 6,
})
SWING_VERTICAL = _command('swingVertical', 'SwUpDn', {
    'default': 0,
    'full': 1,
    'fixedHighest': 2,
    'fixedHigher': 3,
    'fixedMiddle': 4,
    'fixedLower': 5,
    'fixedLowest': 6,
    'swingLowest': 7,
    'swingLower': 8,
    'swingMiddle': 9,
    'swingHigher': 10,
    'swingHighest': 11,
})
XFAN = _command('xFan', 'Blo', OFF_ON)
LIGHT = _command('light', 'Lig', OFF_ON)
QUIET_MODE = _command('quietMode', 'Quiet', {'off': 0, 'on': 2})
POWERFUL_MODE = _command('powerfulMode', 'Tur', OFF_ON)
HEAT_COOL_TYPE = _command('HeatCoolType', 'HeatCoolType')
ENERGY_SAVING = _command('energySaving', 'SvSt', OFF_ON)
SLEEP_MODE = _command('sleepMode', 'SwhSlp', OFF_ON)
SLEEP = _command('sleep', 'SlpMod', OFF_ON)
TIME = _command('time', 'time')
AIR = _command('air', 'Air', OFF_ON)
HEALTH = _command('health', 'Health', OFF_ON)
NOFROST = _command('nofrost', 'StHt', OFF_ON)
# inverted on the wire: 1 mutes the beep
BUZZER = _command('buzzer', 'Buzzer_ON_OFF', {'off': 1, 'on': 0})

COMMANDS = (
    POWER,
    MODE,
    TARGET_TEMPERATURE,
    TEMPERATURE,
    UNITS,
    TEMPERATURE_OFFSET,
    SPEED,
    SWING_HORIZONTAL,
    SWING_VERTICAL,
    XFAN,
    LIGHT,
    QUIET_MODE,
    POWERFUL_MODE,
    HEAT_COOL_TYPE,
    ENERGY_SAVING,
    SLEEP_MODE,
    SLEEP,
    TIME,
    AIR,
    HEALTH,
    NOFROST,
    BUZZER,
)

COMMANDS_BY_CODE = MappingProxyType({command.code: command for command in COMMANDS})

# every code, in registry order, as requested by a status poll
STATUS_COLUMNS = tuple(command.code for command in COMMANDS)


def command_name(code):
    command = COMMANDS_BY_CODE.get(code)
    return command.name if command is not None else code


def value_name(code, value):
    command = COMMANDS_BY_CODE.get(code)
    if command is None:
        return None
    return command.value_name(value)
