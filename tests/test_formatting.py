import pytest

from weighstation.formatting import (
    bool_to_string,
    decode_arduino_sensor_data,
    decode_sensor_id,
    format_data_for_log,
)


def test_bool_to_string():
    assert bool_to_string(True) == "Подключен"
    assert bool_to_string(False) == "Отключен"


@pytest.mark.parametrize(
    "sensor_id, name",
    [(0x0B, "WIDTH"), (0x16, "HEIGHT"), (0x21, "LENGTH"), (0xBB, "Right Sensor")],
)
def test_decode_known_sensor_ids(sensor_id, name):
    assert decode_sensor_id(sensor_id) == name


def test_decode_unknown_sensor_id():
    assert decode_sensor_id(0x05) == "SENSOR_0x05"


def test_decode_too_short():
    result = decode_arduino_sensor_data(b"\x2d\x0b\x05")
    assert result.startswith("Данные слишком короткие")
    assert str(3) in result


def test_decode_single_block():
    assert decode_arduino_sensor_data(bytes([0x2D, 0x0B, 42, 0x7B])) == "Данные сенсоров: {WIDTH=42}"


def test_decode_malformed_block_shown_as_hex():
    result = decode_arduino_sensor_data(bytes([1, 2, 3, 4, 0x2D, 0x21, 9, 0x7B]))
    assert "[0x01 0x02 0x03 0x04]" in result
    assert "LENGTH=9" in result


def test_decode_ignores_trailing_partial_block():
    full = bytes([0x2D, 0x16, 7, 0x7B])
    assert decode_arduino_sensor_data(full + b"\x2d\x0b") == decode_arduino_sensor_data(full)


def test_format_empty():
    assert format_data_for_log(b"") == "нет данных"


def test_format_binary_only_as_hex():
    assert format_data_for_log(bytes([0, 1, 2])) == "[0x00 0x01 0x02] (3 байт)"


def test_format_text_with_escapes():
    data = b"OK\r\n"
    result = format_data_for_log(data)
    assert result.startswith('"OK')
    assert "\\r\\n" in result
    assert result.endswith(f"({len(data)} байт)")


def test_format_mixed_text_and_binary():
    result = format_data_for_log(b"\x00A")
    assert result.startswith('"\\x00A"')
    assert "Данные сенсоров" not in result


def test_format_decodes_sensor_blocks():
    data = bytes([0x2D, 0x0B, 0x05, 0x7B, 0x2D, 0x16, 0x06, 0x7B])
    result = format_data_for_log(data)
    assert " + Данные сенсоров: {" in result
    assert "WIDTH=5" in result
    assert "HEIGHT=6" in result
    assert result.endswith(f"({len(data)} байт)")


def test_format_single_block_not_decoded():
    data = bytes([0x2D, 0x0B, 0x05, 0x7B])
    result = format_data_for_log(data)
    assert "Данные сенсоров" not in result
    assert result.startswith('"-')


def test_format_printable_block_values_not_decoded():
    data = bytes([0x2D, 0x41, 0x42, 0x7B, 0x2D, 0x43, 0x44, 0x7B])
    result = format_data_for_log(data)
    assert "Данные сенсоров" not in result
    assert '"-AB{-CD{"' in result