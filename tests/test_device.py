"""Tests for GreeDevice.

Most tests compile batches with the build_* methods and never touch the
network; the remaining ones go through FakeTransport.
"""
from __future__ import annotations

import asyncio
import datetime
import logging

import pytest

from common import DEVICE_ADDRESS, DEVICE_KEY, DEVICE_MAC, FakeTransport, apply, device_reply, make_device
from gree_ac import commands
from gree_ac.const import BINDING_BOUND, BINDING_REQUESTED, ENCRYPTION_V1
from gree_ac.device import GreeDevice
from gree_ac.discovery import DeviceDescriptor
from gree_ac.switch import GreeOptionSwitch, create_switches

COOLING = {'Pow': 1, 'Mod': 1, 'SetTem': 22, 'TemUn': 0, 'TemRec': 0, 'TemSen': 64, 'WdSpd': 0,
           'Quiet': 0, 'Tur': 0, 'SwUpDn': 0, 'Blo': 1, 'Buzzer_ON_OFF': 0}


def cooling(**changes):
    status = dict(COOLING)
    status.update(changes)
    return status


class TestGetters:
    def test_cooling_status(self):
        device = make_device(status=cooling())
        assert device.power
        assert device.active
        assert not device.fan_active
        assert device.mode_name == 'cool'
        assert device.target_mode == 'cool'
        assert device.current_temperature == 24
        assert device.target_temperature == 22
        assert device.units == 'celsius'
        assert device.speed == 'auto'
        assert device.rotation_speed == 2
        assert not device.swing_mode

    def test_defaults_before_first_status(self):
        device = make_device()
        assert not device.power
        assert device.mode_name == 'auto'
        assert device.current_temperature == 25
        assert device.target_temperature == 25
        assert device.current_state == 'inactive'

    def test_target_mode_is_remembered_in_fan_mode(self):
        device = make_device(status=cooling(Mod=4))
        apply(device, Mod=3)
        assert device.fan_active
        assert device.target_mode == 'heat'

    def test_target_mode_defaults_to_auto(self):
        device = make_device(status=cooling(Mod=2))
        assert device.target_mode == 'auto'

    @pytest.mark.parametrize('status, expected', [
        (cooling(), 'cooling'),
        (cooling(Mod=4), 'heating'),
        (cooling(Mod=0, TemSen=70, SetTem=25), 'cooling'),
        (cooling(Mod=0, TemSen=60, SetTem=25), 'heating'),
        (cooling(Mod=0, TemSen=66, SetTem=25), 'idle'),
        (cooling(Mod=2), 'inactive'),
        (cooling(Pow=0), 'inactive'),
    ])
    def test_current_state(self, status, expected):
        assert make_device(status=status).current_state == expected

    @pytest.mark.parametrize('status, expected', [
        (cooling(Quiet=2), 1),
        (cooling(Tur=1), 8),
        (cooling(WdSpd=1), 3),
        (cooling(WdSpd=3), 5),
        (cooling(WdSpd=5), 7),
    ])
    def test_rotation_speed(self, status, expected):
        assert make_device(status=status).rotation_speed == expected

    @pytest.mark.parametrize('speed, expected', [(0, 100), (1, 17), (3, 50), (5, 83)])
    def test_fan_rotation_speed(self, speed, expected):
        assert make_device(status=cooling(Mod=3, WdSpd=speed)).fan_rotation_speed == expected

    @pytest.mark.parametrize('speed, expected', [(1, 25), (3, 50), (5, 75)])
    def test_fan_rotation_speed_three_steps(self, speed, expected):
        device = make_device(status=cooling(Mod=3, WdSpd=speed), speed_steps=3)
        assert device.fan_rotation_speed == expected

    def test_swing_mode(self):
        assert make_device(status=cooling(SwUpDn=1)).swing_mode
        assert make_device(status=cooling(SwUpDn=9)).swing_mode
        assert not make_device(status=cooling(SwUpDn=4)).swing_mode

    def test_target_clamped_to_mode_range(self):
        device = make_device(status=cooling(SetTem=10))
        assert device.target_temperature == 16

    def test_fahrenheit_target(self):
        device = make_device(status=cooling(TemUn=1, SetTem=26, TemRec=0))
        assert device.units == 'fahrenheit'
        assert device.target_temperature == 25.5


class TestSensor:
    def test_invalid_reading_uses_target(self):
        device = make_device(status=cooling())
        apply(device, TemSen=0, SetTem=21)
        assert device.status.temperature == 64
        assert device.current_temperature == 21

    def test_reading_at_upper_bound_is_invalid(self):
        device = make_device(status=cooling(TemSen=100, SetTem=23))
        assert device.current_temperature == 23

    def test_missing_reading_uses_target(self):
        device = make_device(status={'Pow': 1, 'Mod': 1, 'SetTem': 20})
        assert device.current_temperature == 20

    def test_valid_reading_replaces_substitute(self):
        device = make_device(status=cooling(TemSen=0))
        apply(device, TemSen=65)
        assert device.status.substitute_temperature is None
        assert device.current_temperature == 25

    def test_sensor_offset(self):
        device = make_device(status=cooling(TemSen=30), sensor_offset=0)
        assert device.current_temperature == 30

    def test_sensor_removed_once(self):
        device = make_device(status=cooling(), temperature_sensor='child')
        changes = []
        device.subscribe(lambda _device, changed: changes.append(changed))
        apply(device, TemSen=0)
        apply(device, TemSen=0)
        assert not device.temperature_sensor_available
        assert 'temperature_sensor' in changes[0]
        assert all('temperature_sensor' not in changed for changed in changes[1:])

    @pytest.mark.parametrize('sensor', ['child', 'separate'])
    def test_sensor_type(self, sensor):
        device = make_device(status=cooling(), temperature_sensor=sensor)
        assert device.temperature_sensor == sensor
        apply(device, TemSen=0)
        assert device.temperature_sensor is None

    def test_sensor_disabled(self):
        assert make_device(status=cooling()).temperature_sensor is None


class TestFanSpeed:
    def test_quiet_mode(self):
        device = make_device(status=cooling(WdSpd=3))
        assert device.build_rotation_speed(1) == {'Quiet': 2, 'Tur': 0, 'WdSpd': 1}

    def test_quiet_mode_outside_cool_and_heat(self):
        device = make_device(status=cooling(Mod=0))
        assert device.build_quiet_mode(True) == {'Quiet': 0, 'Tur': 0, 'WdSpd': 1}

    def test_quiet_mode_cannot_be_turned_off_directly(self):
        device = make_device(status=cooling(Quiet=2))
        assert device.build_quiet_mode(False) is None
        assert device.build_quiet_mode(True) is None

    def test_powerful_mode(self):
        device = make_device(status=cooling(Quiet=2))
        assert device.build_rotation_speed(8) == {'Tur': 1, 'Quiet': 0, 'WdSpd': 5}

    def test_powerful_mode_three_steps(self):
        device = make_device(status=cooling(), speed_steps=3)
        assert device.build_rotation_speed(6) == {'Tur': 1, 'Quiet': 0, 'WdSpd': 5}

    def test_powerful_mode_outside_cool_and_heat(self):
        device = make_device(status=cooling(Mod=0))
        assert device.build_powerful_mode(True) == {'Tur': 0, 'Quiet': 0, 'WdSpd': 5}

    def test_speed_ends_quiet_and_powerful(self):
        device = make_device(status=cooling(Quiet=2, WdSpd=1))
        assert device.build_speed('medium') == {'WdSpd': 3, 'Quiet': 0, 'Tur': 0}

    def test_same_speed_is_no_op(self):
        device = make_device(status=cooling(WdSpd=3))
        assert device.build_speed(3) is None

    @pytest.mark.parametrize('index, speed', [(2, 0), (3, 1), (4, 2), (5, 3), (6, 4), (7, 5)])
    def test_rotation_speed_five_steps(self, index, speed):
        device = make_device(status=cooling(WdSpd=5 if speed != 5 else 1))
        assert device.build_rotation_speed(index)['WdSpd'] == speed

    @pytest.mark.parametrize('index, speed', [(3, 1), (4, 3), (5, 5)])
    def test_rotation_speed_three_steps(self, index, speed):
        device = make_device(status=cooling(WdSpd=0), speed_steps=3)
        assert device.build_rotation_speed(index)['WdSpd'] == speed

    def test_rotation_speed_zero(self):
        assert make_device(status=cooling()).build_rotation_speed(0) is None

    @pytest.mark.parametrize('percent, speed', [(17, 1), (33, 2), (50, 3), (67, 4), (83, 5), (100, 0)])
    def test_fan_rotation_speed(self, percent, speed):
        device = make_device(status=cooling(Mod=3, WdSpd=5 if speed != 5 else 1), fan_control_enabled=True)
        assert device.build_fan_rotation_speed(percent)['WdSpd'] == speed


class TestPower:
    def test_power_on_keeps_mode(self):
        device = make_device(status=cooling(Pow=0, Mod=4))
        assert device.build_active(True) == {'Pow': 1, 'Blo': 0}

    def test_power_off(self):
        device = make_device(status=cooling())
        assert device.build_active(False) == {'Pow': 0}

    def test_same_state_is_no_op(self):
        device = make_device(status=cooling())
        assert device.build_active(True) is None

    def test_inactive_outside_heater_cooler_modes_is_no_op(self):
        device = make_device(status=cooling(Mod=3))
        assert device.build_active(False) is None

    def test_power_on_restores_target_mode(self):
        device = make_device(status=cooling(Blo=0))
        apply(device, Pow=0, Mod=3)
        assert device.build_active(True) == {'Pow': 1, 'Mod': 1, 'Blo': 1}

    def test_power_on_from_fan_mode_defaults_to_auto(self):
        device = make_device(status=cooling(Mod=3, Blo=1))
        assert device.build_active(True) == {'Mod': 0, 'Blo': 0}

    def test_power_on_restores_rotation_speed(self):
        device = make_device(status=cooling())
        apply(device, Quiet=2, WdSpd=1)
        apply(device, Pow=0, Mod=3, Quiet=0, WdSpd=0)
        batch = device.build_active(True)
        assert batch['Quiet'] == 2
        assert batch['Tur'] == 0
        assert batch['WdSpd'] == 1

    def test_pending_power_blocks_changes(self):
        device = make_device(FakeTransport(), status=cooling(Pow=0))
        device.set_active(True)
        assert device.power_pending == 1
        assert device.build_active(False) is None
        device.apply_response({'t': 'res', 'opt': ['Pow'], 'p': [1]})
        assert device.power_pending is None
        assert device.build_active(False) == {'Pow': 0}

    def test_pending_timeout(self, caplog):
        device = make_device(FakeTransport(), status=cooling(Pow=0))
        device.set_active(True)
        with caplog.at_level(logging.WARNING):
            device.pending_timeout()
        assert device.power_pending is None
        assert 'No confirmation' in caplog.text

    def test_fan_on(self):
        device = make_device(status=cooling(Pow=0), fan_control_enabled=True)
        assert device.build_fan_active(True) == {'Pow': 1, 'Mod': 3, 'Quiet': 0, 'Tur': 0}

    def test_fan_off_outside_fan_mode_is_no_op(self):
        device = make_device(status=cooling(), fan_control_enabled=True)
        assert device.build_fan_active(False) is None

    def test_fan_off(self):
        device = make_device(status=cooling(Mod=3), fan_control_enabled=True)
        assert device.build_fan_active(False) == {'Pow': 0}

    def test_fan_control_disabled(self, caplog):
        device = make_device(status=cooling(Pow=0))
        assert not device.fan_control_enabled
        with caplog.at_level(logging.WARNING):
            assert device.build_fan_active(True) is None
            assert device.build_fan_rotation_speed(50) is None
        assert caplog.text.count('Fan control is not enabled') == 1


class TestMode:
    def test_x_fan_follows_mode(self):
        device = make_device(status=cooling(Mod=4, Blo=0))
        assert device.build_mode('cool') == {'Mod': 1, 'Blo': 1}
        device = make_device(status=cooling(Mod=1, Blo=1))
        assert device.build_mode('heat') == {'Mod': 4, 'Blo': 0}

    def test_x_fan_disabled(self):
        device = make_device(status=cooling(Mod=4, Blo=0), x_fan_enabled=False)
        assert device.build_mode('dry') == {'Mod': 2}

    def test_same_mode_is_no_op(self):
        assert make_device(status=cooling()).build_mode('cool') is None

    def test_mode_restores_rotation_speed(self):
        device = make_device(status=cooling(Mod=4))
        apply(device, Tur=1, WdSpd=5)
        assert device.build_mode('cool') == {'Mod': 1, 'Quiet': 0, 'Tur': 1, 'WdSpd': 5}

    def test_target_mode_is_remembered(self):
        device = make_device(status=cooling(Mod=3, Pow=0))
        device.build_target_mode('heat')
        assert device.target_mode == 'heat'

    def test_unknown_target_mode(self):
        with pytest.raises(ValueError):
            make_device(status=cooling()).build_target_mode('dry')


class TestSwing:
    def test_enable(self):
        assert make_device(status=cooling()).build_swing_mode(True) == {'SwUpDn': 1}

    def test_disable(self):
        assert make_device(status=cooling(SwUpDn=1)).build_swing_mode(False) == {'SwUpDn': 0}

    def test_disable_parks_at_default_position(self):
        device = make_device(status=cooling(SwUpDn=1), modify_vertical_swing_position=2, default_vertical_swing=3)
        assert device.build_swing_mode(False) == {'SwUpDn': 3}

    def test_fan_disable_parks_at_fan_position(self):
        device = make_device(status=cooling(Mod=3, SwUpDn=1), modify_vertical_swing_position=4,
                             default_vertical_swing=3, default_fan_vertical_swing=5)
        assert device.build_swing_mode(False, fan=True) == {'SwUpDn': 5}

    def test_power_on_sets_position(self):
        device = make_device(status=cooling(Pow=0, SwUpDn=1), modify_vertical_swing_position=3,
                             default_vertical_swing=2)
        assert device.build_active(True) == {'Pow': 1, 'SwUpDn': 2}

    def test_power_on_overrides_default_only(self):
        device = make_device(status=cooling(Pow=0, SwUpDn=1), modify_vertical_swing_position=1,
                             default_vertical_swing=2)
        assert device.build_active(True) == {'Pow': 1}

    def test_horizontal(self):
        device = make_device(status=cooling(SwingLfRig=0))
        assert device.build_swing_horizontal('center') == {'SwingLfRig': 4}
        assert device.build_swing_horizontal(0) is None

    def test_vertical_by_name(self):
        device = make_device(status=cooling())
        assert device.build_swing_vertical('fixedLowest') == {'SwUpDn': 6}

    def test_unknown_name_warns_once(self, caplog):
        device = make_device(status=cooling())
        with caplog.at_level(logging.WARNING):
            assert device.build_swing_vertical('sideways') is None
            assert device.build_swing_vertical('sideways') is None
        assert caplog.text.count('Unknown swingVertical value') == 1


class TestTemperature:
    def test_target_temperature(self):
        device = make_device(status=cooling())
        assert device.build_target_temperature(24) == {'SetTem': 24, 'TemRec': 0}

    @pytest.mark.parametrize('step, value, expected', [(0.5, 23.3, 23.5), (1.0, 23.3, 23), (1.0, 24.6, 25)])
    def test_target_rounded_to_step(self, step, value, expected):
        device = make_device(status=cooling(), temperature_step_size=step)
        assert device.target_temperature_step == step
        assert device.build_target_temperature(value) == {'SetTem': int(expected), 'TemRec': 0}

    def test_target_within_step_is_no_op(self):
        device = make_device(status=cooling(), temperature_step_size=1.0)
        assert device.build_target_temperature(22.2) is None

    def test_same_target_is_no_op(self):
        assert make_device(status=cooling()).build_target_temperature(22) is None

    def test_half_degree_in_fahrenheit(self):
        device = make_device(status=cooling(TemUn=1, SetTem=22, TemRec=1))
        assert device.build_target_temperature(25.5) == {'SetTem': 26, 'TemRec': 0}

    def test_out_of_range_target_is_clamped_with_one_warning(self, caplog):
        device = make_device(status=cooling())
        with caplog.at_level(logging.WARNING):
            assert device.build_target_temperature(10) == {'SetTem': 16, 'TemRec': 0}
            device.build_target_temperature(12)
        assert caplog.text.count('outside') == 1

    def test_units_keep_target(self):
        device = make_device(status=cooling())
        assert device.build_units('fahrenheit') == {'TemUn': 1, 'TemRec': 1}

    def test_same_units_is_no_op(self):
        assert make_device(status=cooling()).build_units('celsius') is None


class TestSwitches:
    def test_sleep_switches_both_codes(self):
        device = make_device(status=cooling(SwhSlp=0, SlpMod=0))
        assert device.build_switch('sleep', True) == {'SwhSlp': 1, 'SlpMod': 1}

    def test_light(self):
        device = make_device(status=cooling(Lig=1))
        assert device.switch_state('light')
        assert device.build_switch('light', False) == {'Lig': 0}
        assert device.build_switch('light', True) is None

    def test_nofrost_only_in_heat_mode(self, caplog):
        device = make_device(status=cooling(StHt=0))
        with caplog.at_level(logging.WARNING):
            assert device.build_switch('nofrost', True) is None
        assert 'heat mode' in caplog.text
        device = make_device(status=cooling(Mod=4, StHt=0))
        assert device.build_switch('nofrost', True) == {'StHt': 1}

    def test_unknown_switch(self):
        with pytest.raises(ValueError):
            make_device(status=cooling()).build_switch('turbo', True)

    def test_option_switch(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling(Health=0))
        switch = GreeOptionSwitch(device, 'health')
        assert not switch.is_on
        switch.turn_on()
        assert transport.last_pack() == {'t': 'cmd', 'opt': ['Health'], 'p': [1]}
        assert switch.unique_id == f'switch.gree_{DEVICE_MAC}_health'

    def test_create_switches(self):
        keys = [switch.key for switch in create_switches(make_device())]
        assert keys == ['light', 'x_fan', 'health', 'energy_saving', 'sleep', 'air', 'nofrost']


class TestSending:
    def test_command_pack(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling())
        device.set_speed('high')
        payload, address, port = transport.sent[-1]
        assert (address, port) == (DEVICE_ADDRESS, 7000)
        assert payload['tcid'] == DEVICE_MAC
        assert payload['i'] == 0
        assert transport.last_pack() == {'t': 'cmd', 'opt': ['WdSpd', 'Quiet', 'Tur'], 'p': [5, 0, 0]}

    def test_no_op_sends_nothing(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling())
        assert device.set_mode('cool') is None
        assert transport.sent == []

    def test_status_request(self):
        transport = FakeTransport()
        device = make_device(transport)
        device.request_status()
        assert transport.last_pack() == {'mac': DEVICE_MAC, 't': 'status', 'cols': list(commands.STATUS_COLUMNS)}

    def test_silent_time_mutes_buzzer(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling(), now=lambda: datetime.datetime(2026, 1, 1, 23, 30),
                             silent_time_range='22:00-07:00')
        device.set_speed('low')
        assert transport.last_pack()['opt'] == ['WdSpd', 'Quiet', 'Tur', 'Buzzer_ON_OFF']
        assert transport.last_pack()['p'][-1] == 1

    def test_outside_silent_time(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling(), now=lambda: datetime.datetime(2026, 1, 1, 12, 0),
                             silent_time_range='22:00-07:00')
        device.set_speed('low')
        assert 'Buzzer_ON_OFF' not in transport.last_pack()['opt']

    def test_unit_without_buzzer_is_never_muted(self, caplog):
        transport = FakeTransport()
        status = cooling()
        del status['Buzzer_ON_OFF']
        with caplog.at_level(logging.WARNING):
            device = make_device(transport, status=status, now=lambda: datetime.datetime(2026, 1, 1, 23, 30),
                                 silent_time_range='22:00-07:00')
            apply(device, Pow=1)
        assert caplog.text.count('does not support command muting') == 1
        device.set_speed('low')
        assert 'Buzzer_ON_OFF' not in transport.last_pack()['opt']

    def test_fan_rotation_speed_switches_to_fan_mode(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling(), fan_control_enabled=True)
        device.set_fan_rotation_speed(50)
        packs = transport.packs(DEVICE_KEY)
        assert packs[0] == {'t': 'cmd', 'opt': ['Mod', 'Quiet', 'Tur'], 'p': [3, 0, 0]}
        assert packs[1] == {'t': 'cmd', 'opt': ['WdSpd', 'Quiet', 'Tur'], 'p': [3, 0, 0]}


class TestReceiving:
    def test_status_report(self):
        device = make_device(FakeTransport())
        device.handle_message(device_reply({'t': 'dat', 'cols': ['Pow', 'Mod'], 'dat': [1, 4]}),
                              (DEVICE_ADDRESS, 7000))
        assert device.power
        assert device.mode_name == 'heat'

    def test_other_address_is_ignored(self):
        device = make_device(FakeTransport())
        device.handle_message(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}), ('192.168.1.99', 7000))
        assert not device.power

    def test_undecodable_message(self, caplog):
        device = make_device(FakeTransport())
        with caplog.at_level(logging.WARNING):
            device.handle_message(device_reply({'t': 'dat'}, key='wrongwrongwrong!'), (DEVICE_ADDRESS, 7000))
        assert 'Unknown response from device' in caplog.text

    def test_response_logs_changes(self, caplog):
        device = make_device(FakeTransport(), status=cooling(Pow=0))
        with caplog.at_level(logging.INFO):
            device.handle_message(device_reply({'t': 'res', 'opt': ['Pow', 'Mod'], 'p': [1, 1], 'val': [1, 1]}),
                                  (DEVICE_ADDRESS, 7000))
        assert 'Device updated (power: off -> on)' in caplog.text

    def test_response_with_val_only(self):
        device = make_device(FakeTransport(), status=cooling())
        device.apply_response({'t': 'res', 'opt': ['WdSpd'], 'val': [3]})
        assert device.speed == 'medium'

    def test_unbound_device_ignores_status(self):
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=FakeTransport())
        device.handle_message(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}, key=None),
                              (DEVICE_ADDRESS, 7000))
        assert not device.power

    def test_bind_ok(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=transport)
        device.handle_message(device_reply({'t': 'bindok', 'mac': DEVICE_MAC, 'key': DEVICE_KEY}, key=None),
                              (DEVICE_ADDRESS, 7000))
        assert device.binding_status == BINDING_BOUND
        assert device.binding.key == DEVICE_KEY
        assert transport.last_pack()['t'] == 'status'


class TestNotifications:
    def test_changed_properties(self):
        device = make_device(status=cooling(Pow=0))
        changes = []
        device.subscribe(lambda _device, changed: changes.append(changed))
        apply(device, Pow=1)
        assert 'power' in changes[0]
        assert 'active' in changes[0]
        assert 'mode' not in changes[0]

    def test_no_change_no_notification(self):
        device = make_device(status=cooling())
        changes = []
        device.subscribe(lambda _device, changed: changes.append(changed))
        apply(device, Pow=1)
        assert changes == []

    def test_unsubscribe(self):
        device = make_device(status=cooling())
        changes = []
        unsubscribe = device.subscribe(lambda _device, changed: changes.append(changed))
        unsubscribe()
        apply(device, Pow=0)
        assert changes == []

    def test_failing_listener_is_logged(self, caplog):
        device = make_device(status=cooling())
        changes = []

        def broken(_device, _changed):
            raise RuntimeError('boom')

        device.subscribe(broken)
        device.subscribe(lambda _device, changed: changes.append(changed))
        with caplog.at_level(logging.ERROR):
            apply(device, Pow=0)
        assert 'Error in status listener' in caplog.text
        assert len(changes) == 1

    def test_transport_error(self):
        transport = FakeTransport()
        device = make_device(transport, status=cooling())
        changes = []
        device.subscribe(lambda _device, changed: changes.append(changed))
        device._on_transport_error(OSError('network unreachable'))
        assert not device.available
        assert transport.closed
        assert 'available' in changes[0]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_sends_bind_request(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=transport)
        await device.async_start()
        assert device.binding_status == BINDING_REQUESTED
        assert transport.packs() == [{'mac': DEVICE_MAC, 't': 'bind', 'uid': 0}]
        await device.async_stop()
        assert transport.closed

    @pytest.mark.asyncio
    async def test_datagrams_are_handled_in_order(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=transport)
        await device.async_start()
        device._on_datagram(device_reply({'t': 'bindok', 'key': DEVICE_KEY}, key=None), (DEVICE_ADDRESS, 7000))
        device._on_datagram(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}), (DEVICE_ADDRESS, 7000))
        for _ in range(5):
            await asyncio.sleep(0)
        assert device.is_bound
        assert device.power
        await device.async_stop()

    @pytest.mark.asyncio
    async def test_subdevice_uses_bridge_key(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac='1@c8f742a1b2c3', address='192.168.1.60', port=7000, uid=1,
                                      bridge_key=DEVICE_KEY, encryption_version=ENCRYPTION_V1)
        device = GreeDevice(descriptor, transport=transport)
        await device.async_start()
        assert device.is_bound
        payload = transport.sent[-1][0]
        assert payload['tcid'] == 'c8f742a1b2c3'
        assert payload['uid'] == 1
        assert transport.last_pack()['mac'] == '1@c8f742a1b2c3'
        await device.async_stop()

    def test_subdevice_bind_request(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac='1@c8f742a1b2c3', address='192.168.1.60', port=7000, uid=1)
        device = GreeDevice(descriptor, transport=transport)
        device.send_bind_request()
        assert transport.packs() == [{'mac': 'c8f742a1b2c3', 't': 'bind', 'uid': 1}]

    @pytest.mark.asyncio
    async def test_bad_packets_do_not_stop_the_device(self, caplog):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=transport)
        await device.async_start()
        with caplog.at_level(logging.WARNING):
            device._on_datagram(device_reply({'t': 'bindok', 'key': 'short'}, key=None), (DEVICE_ADDRESS, 7000))
            device._on_datagram(device_reply({'t': 'bindok', 'key': DEVICE_KEY}, key=None), (DEVICE_ADDRESS, 7000))
            device._on_datagram(device_reply({'t': 'dat', 'cols': [['Pow']], 'dat': [1]}), (DEVICE_ADDRESS, 7000))
            device._on_datagram(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}), (DEVICE_ADDRESS, 7000))
            for _ in range(5):
                await asyncio.sleep(0)
        assert 'invalid key' in caplog.text
        assert device.binding.key == DEVICE_KEY
        assert device.power
        await device.async_stop()

    @pytest.mark.asyncio
    async def test_failing_handler_is_logged(self, caplog, monkeypatch):
        transport = FakeTransport()
        device = make_device(transport, status=cooling(Pow=0))
        await device.async_start()
        apply_status = device.apply_status
        calls = []

        def apply_once_broken(pack):
            calls.append(pack)
            if len(calls) == 1:
                raise RuntimeError('boom')
            apply_status(pack)

        monkeypatch.setattr(device, 'apply_status', apply_once_broken)
        with caplog.at_level(logging.ERROR):
            device._on_datagram(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}), (DEVICE_ADDRESS, 7000))
            device._on_datagram(device_reply({'t': 'dat', 'cols': ['Pow'], 'dat': [1]}), (DEVICE_ADDRESS, 7000))
            for _ in range(5):
                await asyncio.sleep(0)
        assert 'Error while handling handle_message' in caplog.text
        assert len(calls) == 2
        assert device.power
        await device.async_stop()

    @pytest.mark.asyncio
    async def test_transport_error_stops_polling(self):
        transport = FakeTransport()
        descriptor = DeviceDescriptor(mac=DEVICE_MAC, address=DEVICE_ADDRESS, port=7000)
        device = GreeDevice(descriptor, transport=transport)
        await device.async_start()
        device.handle_message(device_reply({'t': 'bindok', 'key': DEVICE_KEY}, key=None), (DEVICE_ADDRESS, 7000))
        poll_task = device._poll_task
        assert poll_task is not None
        device._on_transport_error(OSError('network unreachable'))
        for _ in range(3):
            await asyncio.sleep(0)
        assert device._poll_task is None
        assert poll_task.cancelled()
        await device.async_stop()
