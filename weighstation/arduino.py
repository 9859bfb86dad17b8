"""Serial protocol of the dimension controller."""

from __future__ import annotations

import re
import time
from typing import Any, Callable, Optional

import serial
from serial.tools import list_ports

from weighstation.formatting import format_data_for_log
from weighstation.logbus import broadcast_log
from weighstation.state import ArduinoLink, Command

BAUD_RATE = 115200
FRAME_SIZE = 41
BLOCK_COUNT = 10
MIN_VALID_BLOCKS = 8
BLOCK_START = 0x2D
BLOCK_END = 0x7B

WIDTH_SENSOR = 0x0B
HEIGHT_SENSOR = 0x16
LENGTH_SENSOR = 0x21

_COMMAND_DELAY = 0.2
_POLL_DELAY = 0.01
_BOOT_DELAY = 2.0

_INTEGER = re.compile(r"[+-]?[0-9]+")

_SIMPLE_COMMANDS = {
    "start": (Command.START, "Команда START отправлена"),
    "reset_sensors": (Command.RESET_SENSORS, "Сенсоры сброшены"),
    "led_on": (Command.LED_ON, "Светодиоды включены"),
    "led_off": (Command.LED_OFF, "Светодиоды выключены"),
}

_LIMIT_COMMANDS = {
    "set_top_max": (Command.SET_TOP_MAX, "Максимальная высота установлена"),
    "set_width_max": (Command.SET_WIDTH_MAX, "Максимальная ширина установлена"),
    "set_length_max": (Command.SET_LENGTH_MAX, "Максимальная длина установлена"),
}


class ArduinoNotFoundError(Exception):
    """No port answered the PING probe."""


def _collect(
    port: Any,
    *,
    read_timeout: float,
    window: float,
    chunk_size: int,
    on_chunk: Optional[Callable[[bytes], None]] = None,
) -> bytes:
    """Read whatever arrives on ``port`` during ``window`` seconds."""
    port.timeout = read_timeout
    received = bytearray()
    deadline = time.monotonic() + window
    while time.monotonic() < deadline:
        try:
            chunk = port.read(chunk_size)
        except serial.SerialException:
            chunk = b""
        if chunk:
            received += chunk
            if on_chunk is not None:
                on_chunk(bytes(chunk))
        time.sleep(_POLL_DELAY)
    return bytes(received)


def flush(port: Any) -> None:
    """Drain pending input, then leave the port non-blocking."""
    port.timeout = 0.1
    while True:
        try:
            chunk = port.read(256)
        except serial.SerialException:
            break
        if not chunk:
            break
    port.timeout = 0


def connect_to_arduino() -> ArduinoLink:
    """Find the controller among USB serial ports by its PING reply."""
    print("🔍 Searching for Arduino via PING...")

    for info in list_ports.comports():
        if info.vid is None:
            continue
        vid = f"{info.vid:04x}"
        pid = f"{info.pid:04x}" if info.pid is not None else ""
        print(
            f"🔌 Trying port: {info.device} "
            f"(VID: {vid}, PID: {pid}, Product: {info.product or ''})"
        )

        try:
            port = serial.Serial(info.device, BAUD_RATE)
        except (serial.SerialException, OSError) as exc:
            print(f"  ❌ Failed to open {info.device}: {exc}")
            continue

        time.sleep(_BOOT_DELAY)
        flush(port)
        try:
            port.write(bytes([Command.PING]))
        except serial.SerialException:
            pass

        received = _collect(port, read_timeout=0.2, window=2.0, chunk_size=64)
        text = received.decode("utf-8", errors="replace")
        print(f"  📥 Full response from {info.device} ({len(received)} bytes):\n{text}")

        if "OK" in text:
            print(f"  ✅ Arduino detected on port {info.device}")
            return ArduinoLink(port=port, port_name=info.device)

        port.close()
        print(f"  ⚠️  No OK response found on {info.device}")

    raise ArduinoNotFoundError("Arduino not found via PING")


def send_command(link: ArduinoLink, command: int) -> None:
    """Write a single command byte and give the controller time to act."""
    link.port.write(bytes([command]))
    time.sleep(_COMMAND_DELAY)


def find_valid_data_pattern(data: bytes) -> bytes:
    """Return the first 41-byte frame made of at least 8 sensor blocks, else ``data``."""
    data = bytes(data)
    for start in range(len(data) - FRAME_SIZE + 1):
        if data[start] != BLOCK_START:
            continue
        valid_blocks = 0
        for offset in range(start, start + BLOCK_COUNT * 4, 4):
            if offset + 3 >= len(data):
                break
            if data[offset] == BLOCK_START and data[offset + 3] == BLOCK_END:
                valid_blocks += 1
            else:
                break
        if valid_blocks >= MIN_VALID_BLOCKS and start + FRAME_SIZE <= len(data):
            return data[start:start + FRAME_SIZE]
    return data


def parse_dimensions_data(buf: bytes) -> tuple[int, int, int]:
    """Extract ``(length, width, height)`` from blocks 9, 7 and 8 of a frame."""
    buf = bytes(buf)
    width = height = length = 0
    for index in range(BLOCK_COUNT):
        offset = index * 4
        if offset + 3 >= len(buf):
            break
        block = buf[offset:offset + 4]
        if block[0] != BLOCK_START or block[3] != BLOCK_END:
            continue
        sensor_id, value = block[1], block[2]
        if sensor_id == WIDTH_SENSOR and index == 7:
            width = value
        elif sensor_id == HEIGHT_SENSOR and index == 8:
            height = value
        elif sensor_id == LENGTH_SENSOR and index == 9:
            length = value
    return length, width, height


def get_dimensions(link: ArduinoLink) -> tuple[int, int, int]:
    """Ask for dimensions and return ``(length, width, height)``; zeros if unreadable."""
    flush(link.port)
    link.port.write(bytes([Command.GET_DIMENSIONS]))
    broadcast_log("Отправлена команда GET_DIMENSIONS (0x89)", "arduino")

    def log_chunk(chunk: bytes) -> None:
        broadcast_log(f"Получены данные: {format_data_for_log(chunk)}", "arduino")

    received = _collect(
        link.port, read_timeout=0.05, window=0.6, chunk_size=50, on_chunk=log_chunk
    )
    broadcast_log(f"Всего получено: {format_data_for_log(received)}", "arduino")

    if len(received) < FRAME_SIZE:
        broadcast_log("Недостаточно данных для парсинга размеров", "arduino")
        return 0, 0, 0

    frame = find_valid_data_pattern(received)
    if len(frame) < FRAME_SIZE:
        broadcast_log("Не найден валидный паттерн данных", "arduino")
        return 0, 0, 0

    length, width, height = parse_dimensions_data(frame)
    broadcast_log(
        f"Распознаны размеры: Длина={length}, Ширина={width}, Высота={height}", "arduino"
    )
    return length, width, height


def _ping(link: ArduinoLink) -> str:
    flush(link.port)
    send_command(link, Command.PING)
    broadcast_log("Отправлена команда PING (0x77)", "arduino")

    def log_chunk(chunk: bytes) -> None:
        hex_part = ",".join(f"0x{b:02X}" for b in chunk)
        dec_part = ",".join(str(b) for b in chunk)
        ascii_part = chunk.decode("utf-8", errors="replace")
        broadcast_log(
            f"PING ответ: {len(chunk)} байт HEX:[{hex_part}] DEC:[{dec_part}] ASCII:{ascii_part}",
            "arduino",
        )

    received = _collect(
        link.port, read_timeout=0.05, window=0.7, chunk_size=20, on_chunk=log_chunk
    )
    if not received:
        broadcast_log("Нет ответа от Arduino на PING", "arduino")
        return "Нет ответа от Arduino"

    response = received.decode("utf-8", errors="replace")
    if "OK" in response:
        broadcast_log("Arduino ответил корректно: OK", "arduino")
        return "Arduino ответил: OK"

    trimmed = response.strip()
    broadcast_log(f"Arduino ответил нестандартно: {trimmed}", "arduino")
    return f"Arduino ответил: {trimmed} ({len(received)} байт, 'OK' не найдено)"


def execute_command(link: ArduinoLink, command: str) -> str:
    """Run a textual command such as ``led_on`` or ``set_top_max:120``; return a reply."""
    name, *args = command.split(":")

    if name in _SIMPLE_COMMANDS:
        code, reply = _SIMPLE_COMMANDS[name]
        send_command(link, code)
        return reply

    if name == "ping":
        return _ping(link)

    if name == "get_dimensions":
        send_command(link, Command.GET_DIMENSIONS)
        length, width, height = get_dimensions(link)
        return f"Размеры: Д={length}, Ш={width}, В={height}"

    if name in _LIMIT_COMMANDS:
        code, reply = _LIMIT_COMMANDS[name]
        if not args:
            return "Не указано значение"
        raw = args[0]
        if not _INTEGER.fullmatch(raw) or not 1 <= int(raw) <= 255:
            return "Неверное значение (1-255)"
        value = int(raw)
        link.port.write(bytes([code, value]))
        return f"{reply}: {value}"

    return "Неизвестная команда"