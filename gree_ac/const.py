# Network
UDP_SCAN_PORT = 7000
DEFAULT_PORT = 7002
DEFAULT_SCAN_INTERVAL = 60
DEFAULT_STATUS_UPDATE_INTERVAL = 10

# seconds without bindok before the bind request is repeated with the other encryption version
BINDING_TIMEOUT = 60
# seconds a power/mode change may stay unconfirmed
PENDING_TIMEOUT = 10

# Encryption
GENERIC_KEY_V1 = 'a3K8Bx%2r8Y7#xDh'
GENERIC_KEY_V2 = '{yxAHAY_Lm6pbC/<'
GCM_IV = b'\x54\x40\x78\x44\x49\x67\x5a\x51\x6c\x5e\x63\x13'
GCM_ADD = b'qualcomm-test'

ENCRYPTION_AUTO = 0
ENCRYPTION_V1 = 1
ENCRYPTION_V2 = 2
ENCRYPTION_VERSIONS = [ENCRYPTION_AUTO, ENCRYPTION_V1, ENCRYPTION_V2]

# Binding states
BINDING_UNBOUND = 'unbound'
BINDING_REQUESTED = 'bind-requested'
BINDING_BOUND = 'bound'

# Platform options
CONF_PORT = 'port'
CONF_SCAN_INTERVAL = 'scan_interval'
CONF_SCAN_ADDRESSES = 'scan_addresses'
CONF_DEVICES = 'devices'

# Device options
CONF_MAC = 'mac'
CONF_NAME = 'name'
CONF_MODEL = 'model'
CONF_IP = 'ip'
CONF_DISABLED = 'disabled'
CONF_SPEED_STEPS = 'speed_steps'
CONF_STATUS_UPDATE_INTERVAL = 'status_update_interval'
CONF_SENSOR_OFFSET = 'sensor_offset'
CONF_MIN_TARGET_TEMP = 'min_target_temperature'
CONF_MAX_TARGET_TEMP = 'max_target_temperature'
CONF_TARGET_TEMP_STEP = 'temperature_step_size'
CONF_XFAN_ENABLED = 'x_fan_enabled'
CONF_TEMP_SENSOR = 'temperature_sensor'
CONF_FAN_CONTROL = 'fan_control_enabled'
CONF_MODIFY_VERTICAL_SWING = 'modify_vertical_swing_position'
CONF_DEFAULT_VERTICAL_SWING = 'default_vertical_swing'
CONF_DEFAULT_FAN_VERTICAL_SWING = 'default_fan_vertical_swing'
CONF_ENCRYPTION_VERSION = 'encryption_version'
CONF_SILENT_TIME_RANGE = 'silent_time_range'

# What to do with the vertical swing position on power on / when oscillation is disabled
MODIFY_SWING_NEVER = 0
MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON = 1
MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE = 2
MODIFY_SWING_SET_POWER_ON = 3
MODIFY_SWING_SET_POWER_ON_OSC_DISABLE = 4
MODIFY_SWING_POSITIONS = [
    MODIFY_SWING_NEVER,
    MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON,
    MODIFY_SWING_OVERRIDE_DEFAULT_POWER_ON_OSC_DISABLE,
    MODIFY_SWING_SET_POWER_ON,
    MODIFY_SWING_SET_POWER_ON_OSC_DISABLE,
]

TS_TYPE_DISABLED = 'disabled'
TS_TYPE_CHILD = 'child'
TS_TYPE_SEPARATE = 'separate'
TS_TYPES = [TS_TYPE_DISABLED, TS_TYPE_CHILD, TS_TYPE_SEPARATE]

DEFAULT_SPEED_STEPS = 5
DEFAULT_SENSOR_OFFSET = 40
DEFAULT_MIN_TARGET_TEMP = 16
DEFAULT_MAX_TARGET_TEMP = 30
DEFAULT_TARGET_TEMP_STEP = 0.5
DEFAULT_TARGET_TEMPERATURE = 25
DEFAULT_CURRENT_TEMPERATURE = 25

TEMPERATURE_LIMITS = {
    'cooling_minimum': 16,
    'cooling_maximum': 30,
    'heating_minimum': 8,
    'heating_maximum': 30,
}

# Measured temperature codes outside this open interval mean "no sensor"
SENSOR_VALID_MIN = 0
SENSOR_VALID_MAX = 100

# "<SetTem>,<TemRec>" reported while the unit displays Fahrenheit -> target in Celsius
TEMPERATURE_TABLE = {
    '8,0': 8, '8,1': 8.5,
    '9,0': 9, '9,1': 9.5,
    '10,0': 10,
    '11,0': 10.5, '11,1': 11,
    '12,0': 11.5, '12,1': 12,
    '13,0': 13, '13,1': 13.5,
    '14,0': 14, '14,1': 14.5,
    '15,0': 15, '15,1': 15.5,
    '16,0': 16,
    '17,0': 16.5, '17,1': 17,
    '18,0': 18, '18,1': 18.5,
    '19,0': 19, '19,1': 19.5,
    '20,0': 20,
    '21,0': 20.5, '21,1': 21,
    '22,0': 21.5, '22,1': 22,
    '23,0': 23, '23,1': 23.5,
    '24,0': 24, '24,1': 24.5,
    '25,0': 25,
    '26,0': 25.5, '26,1': 26,
    '27,0': 26.5, '27,1': 27,
    '28,0': 28, '28,1': 28.5,
    '29,0': 29, '29,1': 29.5,
    '30,0': 30,
}

# Targets the unit cannot tell apart in Fahrenheit mode: decoded value -> possible commanded value
TEMPERATURE_COLLISIONS = [
    (13, 12.5),
    (15, 15.5),
    (18, 17.5),
    (23, 22.5),
    (28, 27.5),
]
