"""On/off options of a unit."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import commands

if TYPE_CHECKING:
    from .device import GreeDevice

_LOGGER = logging.getLogger(__name__)

# key -> wire codes switched together
SWITCHES = {
    'light': (commands.LIGHT,),
    'x_fan': (commands.XFAN,),
    'health': (commands.HEALTH,),
    'energy_saving': (commands.ENERGY_SAVING,),
    'sleep': (commands.SLEEP_MODE, commands.SLEEP),
    'air': (commands.AIR,),
    'nofrost': (commands.NOFROST,),
}

SWITCH_NAMES = {
    'light': 'Light',
    'x_fan': 'XFan',
    'health': 'Health',
    'energy_saving': 'Energy saving',
    'sleep': 'Sleep',
    'air': 'Air',
    'nofrost': '8°C Heat',
}


class GreeOptionSwitch:
    """Generic switch for one Gree option."""

    def __init__(self, device: GreeDevice, key: str) -> None:
        if key not in SWITCHES:
            raise ValueError(f'Unknown switch: {key}')
        self._device = device
        self._key = key
        self.unique_id = f'switch.gree_{device.mac}_{key}'
        self.name = f'{device.name} {SWITCH_NAMES[key]}'

    @property
    def key(self):
        return self._key

    @property
    def is_on(self):
        return self._device.switch_state(self._key)

    def turn_on(self):
        return self._device.set_switch(self._key, True)

    def turn_off(self):
        return self._device.set_switch(self._key, False)

    def __repr__(self):
        return f'<GreeOptionSwitch {self.unique_id} on={self.is_on}>'


def create_switches(device: GreeDevice):
    return [GreeOptionSwitch(device, key) for key in SWITCHES]
