import json

from weighstation.state import (
    AppState,
    ArduinoLink,
    Command,
    DeviceStatus,
    LogMessage,
    ScaleLink,
)


class FakePort:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_command_wire_bytes():
    assert bytes([Command.GET_DIMENSIONS, Command.PING]) == b"\x89\x77"
    assert Command(0x95) is Command.START


def test_device_status_defaults_to_dict():
    data = DeviceStatus().to_dict()
    assert data == {
        "arduino_connected": False,
        "arduino_port": "",
        "scale_connected": False,
        "scale_port": "",
        "last_weight": 0.0,
        "last_dimensions": "",
    }


def test_device_status_json_round_trip():
    status = DeviceStatus(
        arduino_connected=True,
        arduino_port="/dev/ttyACM0",
        scale_connected=True,
        scale_port="/dev/ttyUSB0",
        last_weight=125.0,
        last_dimensions="125:10:20:30",
    )
    restored = DeviceStatus(**json.loads(json.dumps(status.to_dict())))
    assert restored == status


def test_log_message_to_dict_uses_type_key():
    msg = LogMessage(time="12:00:00", message="hello", log_type="arduino")
    assert msg.to_dict() == {"time": "12:00:00", "message": "hello", "type": "arduino"}


def test_app_state_close_closes_links():
    arduino_port = FakePort()
    scale_port = FakePort()
    state = AppState(
        arduino=ArduinoLink(port=arduino_port, port_name="/dev/ttyACM0"),
        scale=ScaleLink(connection=scale_port, port_name="/dev/ttyUSB0"),
    )
    state.close()
    assert arduino_port.closed and scale_port.closed
    assert state.arduino is None and state.scale is None


def test_app_state_close_without_links_keeps_status():
    state = AppState()
    state.status.last_weight = 7.0
    state.close()
    assert state.arduino is None
    assert state.status.last_weight == 7.0