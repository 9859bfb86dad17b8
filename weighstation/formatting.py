"""Human-readable rendering of device data for logs."""

from __future__ import annotations

BLOCK_START = 0x2D
BLOCK_END = 0x7B

_SENSOR_NAMES = {
    0x0B: "WIDTH",
    0x16: "HEIGHT",
    0x21: "LENGTH",
    0xBB: "Right Sensor",
}

_ESCAPES = {10: "\\n", 13: "\\r", 9: "\\t"}

_CONNECTION_LABELS = {True: "Подключен", False: "Отключен"}


def bool_to_string(value: bool) -> str:
    """Describe a connection flag."""
    return _CONNECTION_LABELS[bool(value)]


def decode_sensor_id(sensor_id: int) -> str:
    """Name a sensor by its id byte."""
    return _SENSOR_NAMES.get(sensor_id, f"SENSOR_0x{sensor_id:02X}")


def _hex_list(data: bytes) -> str:
    return "[" + " ".join(f"0x{b:02X}" for b in data) + "]"


def _block_offsets(data: bytes) -> list[int]:
    return [
        i
        for i, (first, last) in enumerate(zip(data, data[3:]))
        if first == BLOCK_START and last == BLOCK_END
    ]


def decode_arduino_sensor_data(data: bytes) -> str:
    """Decode consecutive 4-byte sensor blocks into ``NAME=value`` pairs."""
    data = bytes(data)
    if len(data) < 4:
        return f"Данные слишком короткие: {len(data)} байт"

    parts = []
    for offset in range(0, len(data) - 3, 4):
        block = data[offset:offset + 4]
        if block[0] == BLOCK_START and block[3] == BLOCK_END:
            parts.append(f"{decode_sensor_id(block[1])}={block[2]}")
        else:
            parts.append(_hex_list(block))
    return "Данные сенсоров: {" + ", ".join(parts) + "}"


def format_data_for_log(data: bytes) -> str:
    """Render raw serial bytes as text, decoded sensor blocks or hex."""
    data = bytes(data)
    if not data:
        return "нет данных"

    offsets = _block_offsets(data)
    has_blocks = bool(offsets)

    pieces = []
    has_text = False
    binary_count = 0
    previous = [None, *data[:-1]]
    following = [*data[1:], None]
    for byte, prev, nxt in zip(data, previous, following):
        if 32 <= byte <= 126:
            pieces.append(chr(byte))
            has_text = True
        elif byte in _ESCAPES:
            pieces.append(_ESCAPES[byte])
            has_text = True
        else:
            if has_blocks and (
                byte in (BLOCK_START, BLOCK_END) or prev == BLOCK_START or nxt == BLOCK_END
            ):
                binary_count += 1
            pieces.append(f"\\x{byte:02X}")

    result = f'"{"".join(pieces)}"' if has_text else ""

    if has_blocks and binary_count >= 4:
        blocks = b"".join(data[i:i + 4] for i in offsets)
        decoded = decode_arduino_sensor_data(blocks)
        result = f"{result} + {decoded}" if result else decoded

    if not result:
        result = _hex_list(data)

    return f"{result} ({len(data)} байт)"