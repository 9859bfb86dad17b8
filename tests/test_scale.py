import sys
import threading
from types import SimpleNamespace

import pytest
from serial.tools import list_ports

from weighstation.scale import (
    ScaleNotFoundError,
    ScaleReadError,
    common_ports,
    connect_to_scale,
    decode_weight,
    is_scale_response,
    probe_port,
    probe_response,
    read_weight,
    serial_port_names,
)
from weighstation.state import ScaleLink


class FakePort:
    def __init__(self, reply=b"", pending=b"", fail_write=False):
        self.timeout = None
        self.written = bytearray()
        self._buffer = bytearray(pending)
        self._reply = bytes(reply)
        self._fail_write = fail_write
        self.closed = False

    def read(self, size=1):
        chunk = bytes(self._buffer[:size])
        del self._buffer[:size]
        return chunk

    def write(self, data):
        if self._fail_write:
            raise OSError("write failed")
        self.written += data
        self._buffer += self._reply
        return len(data)

    def close(self):
        self.closed = True


def test_common_ports_windows():
    ports = common_ports("win32")
    assert len(ports) == 20
    assert ports[0] == "COM1"
    assert ports[-1] == "COM20"


def test_common_ports_linux_and_darwin():
    assert "/dev/ttyUSB0" in common_ports("linux")
    assert "/dev/ttyACM3" in common_ports("linux")
    assert "/dev/cu.usbserial" in common_ports("darwin")


def test_common_ports_unknown_platform():
    assert common_ports("plan9") == []


def test_serial_port_names_uses_listed_devices(monkeypatch):
    infos = [SimpleNamespace(device="/dev/fake-a"), SimpleNamespace(device="/dev/fake-b")]
    monkeypatch.setattr(list_ports, "comports", lambda: infos)
    assert serial_port_names() == ["/dev/fake-a", "/dev/fake-b"]


def test_serial_port_names_falls_back_to_common(monkeypatch):
    monkeypatch.setattr(list_ports, "comports", lambda: [])
    assert serial_port_names() == common_ports(sys.platform)


@pytest.mark.parametrize(
    "data, expected",
    [
        (bytes([128, 0]), True),
        (bytes([240, 7]), True),
        (bytes([0, 192]), True),
        (bytes([0, 0]), False),
        (bytes([128]), False),
        (b"", False),
    ],
)
def test_is_scale_response(data, expected):
    assert is_scale_response(data) is expected


def test_decode_weight_grams():
    assert decode_weight(bytes([128, 0, 5, 0, 0])) == 5.0


def test_decode_weight_tens_is_ten_times_grams():
    grams = decode_weight(bytes([128, 0, 0x34, 0x12, 0]))
    tens = decode_weight(bytes([128, 4, 0x34, 0x12, 0]))
    assert tens == grams * 10
    assert grams > 255


def test_decode_weight_unstable_or_unknown_unit_is_zero():
    assert decode_weight(bytes([0, 0, 5, 1, 0])) == 0.0
    assert decode_weight(bytes([128, 2, 5, 1, 0])) == 0.0


def test_decode_weight_wrong_length():
    with pytest.raises(ScaleReadError):
        decode_weight(bytes([128, 0, 5]))


def test_read_weight_sends_command_and_decodes():
    port = FakePort(reply=bytes([128, 0, 7, 0, 0]))
    weight = read_weight(ScaleLink(connection=port, port_name="/dev/fake"))
    assert bytes(port.written) == b"\x4a"
    assert weight == 7.0


def test_read_weight_short_frame():
    port = FakePort(reply=bytes([128, 0]))
    with pytest.raises(ScaleReadError):
        read_weight(ScaleLink(connection=port, port_name="/dev/fake"))


def test_read_weight_write_failure():
    port = FakePort(fail_write=True)
    with pytest.raises(ScaleReadError, match="ошибка записи команды"):
        read_weight(ScaleLink(connection=port, port_name="/dev/fake"))


def test_probe_response_accepts_scale_reply_after_flush():
    port = FakePort(reply=bytes([128, 0]), pending=bytes([1, 2, 3]))
    link = probe_response(port, "/dev/fake", "4800-8-E-1", threading.Event())
    assert link.connection is port
    assert link.port_name == "/dev/fake"
    assert bytes(port.written) == b"\x48"
    assert port.timeout == 0.5


def test_probe_response_accepts_second_byte_marker():
    port = FakePort(reply=bytes([1, 192]))
    link = probe_response(port, "/dev/fake", "9600-8-N-1", threading.Event())
    assert link.port_name == "/dev/fake"


def test_probe_response_rejects_unknown_reply():
    port = FakePort(reply=bytes([1, 2]))
    with pytest.raises(ScaleNotFoundError, match="нет валидного ответа"):
        probe_response(port, "/dev/fake", "9600-8-N-1", threading.Event())


def test_probe_response_rejects_silence():
    port = FakePort()
    with pytest.raises(ScaleNotFoundError, match="нет валидного ответа"):
        probe_response(port, "/dev/fake", "9600-8-N-1", threading.Event())


def test_probe_response_stopped_before_start():
    stop = threading.Event()
    stop.set()
    port = FakePort(reply=bytes([128, 0]))
    with pytest.raises(ScaleNotFoundError):
        probe_response(port, "/dev/fake", "9600-8-N-1", stop)
    assert bytes(port.written) == b""


def test_probe_response_write_failure():
    port = FakePort(fail_write=True)
    with pytest.raises(ScaleNotFoundError, match="ошибка записи"):
        probe_response(port, "/dev/fake", "9600-8-N-1", threading.Event())


def test_probe_port_missing_device():
    name = "/nonexistent/weighstation-port"
    with pytest.raises(ScaleNotFoundError, match="все конфигурации не подошли"):
        probe_port(name, threading.Event(), 1)


def test_probe_port_stopped():
    stop = threading.Event()
    stop.set()
    with pytest.raises(ScaleNotFoundError):
        probe_port("/nonexistent/weighstation-port", stop, 2)


def test_connect_to_scale_skips_com_names_off_windows(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.setattr(
        list_ports, "comports", lambda: [SimpleNamespace(device="COM3")]
    )
    with pytest.raises(ScaleNotFoundError, match="не найдено подходящих портов"):
        connect_to_scale()


def test_connect_to_scale_reports_last_error(monkeypatch):
    monkeypatch.setattr(
        list_ports,
        "comports",
        lambda: [SimpleNamespace(device="/nonexistent/weighstation-port")],
    )
    with pytest.raises(ScaleNotFoundError, match="Последняя ошибка"):
        connect_to_scale()