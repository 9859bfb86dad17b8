"""Discovery of the scale on serial ports and the weight-reading protocol."""

from __future__ import annotations

import queue
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import serial
from serial.tools import list_ports

from weighstation.state import ScaleLink

PROBE_COMMAND = 0x48
WEIGHT_COMMAND = 0x4A
WEIGHT_FRAME_SIZE = 5
STABLE_MARKER = 128
UNIT_GRAMS = 0
UNIT_TENS = 4

SEARCH_TIMEOUT = 30.0
DEFAULT_RETRIES = 2

_VALID_FIRST_BYTES = frozenset({128, 192, 160, 224, 144, 176, 208, 240})
_VALID_SECOND_BYTE = 192

_RETRY_DELAY = 1.0
_RESPONSE_DELAY = 0.3
_EMPTY_READ_DELAY = 0.1
_READ_ATTEMPTS = 10
_RESPONSE_BUFFER = 10
_WEIGHT_DELAY = 0.2


class ScaleNotFoundError(Exception):
    """No serial port answered like a scale."""


class ScaleReadError(Exception):
    """The scale did not deliver a weight reading."""


class _ProbeCancelled(ScaleNotFoundError):
    """The search was stopped before this probe finished."""

    def __init__(self) -> None:
        super().__init__("проверка прервана")


@dataclass(frozen=True)
class SerialConfig:
    """One line setting tried while looking for the scale."""

    baud_rate: int
    data_bits: int
    parity: str
    stop_bits: float
    name: str


SCALE_CONFIGS: tuple[SerialConfig, ...] = (
    SerialConfig(4800, serial.EIGHTBITS, serial.PARITY_EVEN, serial.STOPBITS_ONE, "4800-8-E-1"),
    SerialConfig(9600, serial.EIGHTBITS, serial.PARITY_NONE, serial.STOPBITS_ONE, "9600-8-N-1"),
    SerialConfig(2400, serial.EIGHTBITS, serial.PARITY_EVEN, serial.STOPBITS_ONE, "2400-8-E-1"),
    SerialConfig(9600, serial.EIGHTBITS, serial.PARITY_EVEN, serial.STOPBITS_ONE, "9600-8-E-1"),
)


def common_ports(platform: Optional[str] = None) -> list[str]:
    """Usual serial device names for ``platform`` (defaults to the running one)."""
    platform = sys.platform if platform is None else platform
    if platform in ("win32", "windows"):
        return [f"COM{i}" for i in range(1, 21)]
    if platform.startswith("linux"):
        return [
            "/dev/ttyUSB0", "/dev/ttyUSB1", "/dev/ttyUSB2", "/dev/ttyUSB3",
            "/dev/ttyACM0", "/dev/ttyACM1", "/dev/ttyACM2", "/dev/ttyACM3",
            "/dev/ttyS0", "/dev/ttyS1", "/dev/ttyS2", "/dev/ttyS3",
        ]
    if platform == "darwin":
        return [
            "/dev/cu.usbserial", "/dev/cu.usbmodem",
            "/dev/tty.usbserial", "/dev/tty.usbmodem",
            "/dev/cu.SLAB_USBtoUART", "/dev/tty.SLAB_USBtoUART",
        ]
    return []


def serial_port_names() -> list[str]:
    """Names of the serial ports present, or the usual ones if none are listed."""
    names = [info.device for info in list_ports.comports()]
    return names or common_ports()


def is_scale_response(data: bytes) -> bool:
    """Tell whether a reply to the probe command looks like it came from a scale."""
    data = bytes(data)
    if len(data) < 2:
        return False
    return data[0] in _VALID_FIRST_BYTES or data[1] == _VALID_SECOND_BYTE


def decode_weight(frame: bytes) -> float:
    """Turn a 5-byte weight frame into grams; unstable or unknown frames read as 0."""
    frame = bytes(frame)
    if len(frame) != WEIGHT_FRAME_SIZE:
        raise ScaleReadError("не удалось прочитать вес")
    if frame[0] != STABLE_MARKER:
        return 0.0
    raw = float(frame[3] * 256 + frame[2])
    if frame[1] == UNIT_GRAMS:
        return raw
    if frame[1] == UNIT_TENS:
        return raw * 10
    return 0.0


def read_weight(link: ScaleLink) -> float:
    """Request and decode one weight reading from the scale."""
    try:
        link.connection.write(bytes([WEIGHT_COMMAND]))
    except (serial.SerialException, OSError) as exc:
        raise ScaleReadError(f"ошибка записи команды: {exc}") from exc

    time.sleep(_WEIGHT_DELAY)
    try:
        frame = link.connection.read(WEIGHT_FRAME_SIZE)
    except (serial.SerialException, OSError) as exc:
        raise ScaleReadError("не удалось прочитать вес") from exc
    if len(frame) != WEIGHT_FRAME_SIZE:
        raise ScaleReadError("не удалось прочитать вес")
    return decode_weight(frame)


def _set_timeout(port: Any, seconds: float) -> None:
    try:
        port.timeout = seconds
    except (ValueError, serial.SerialException) as exc:
        raise ScaleNotFoundError(f"не удалось установить таймаут: {exc}") from exc


def _wait(stop: threading.Event, seconds: float) -> None:
    if stop.wait(seconds):
        raise _ProbeCancelled()


def probe_response(port: Any, port_name: str, config_name: str, stop: threading.Event) -> ScaleLink:
    """Send the probe command on an open port and accept it if a scale answers."""
    if stop.is_set():
        raise _ProbeCancelled()

    _set_timeout(port, 0.5)

    _set_timeout(port, 0.05)
    while True:
        if stop.is_set():
            raise _ProbeCancelled()
        try:
            pending = port.read(256)
        except (serial.SerialException, OSError):
            break
        if not pending:
            break
    _set_timeout(port, 0.5)

    print(f"    📤 Отправляем команду 0x48 с конфигурацией {config_name}...")
    try:
        port.write(bytes([PROBE_COMMAND]))
    except (serial.SerialException, OSError) as exc:
        raise ScaleNotFoundError(f"ошибка записи: {exc}") from exc

    _wait(stop, _RESPONSE_DELAY)

    received = bytearray()
    for attempt in range(1, _READ_ATTEMPTS + 1):
        if stop.is_set():
            raise _ProbeCancelled()
        try:
            chunk = port.read(_RESPONSE_BUFFER - len(received))
        except (serial.SerialException, OSError) as exc:
            if "timeout" in str(exc):
                if attempt <= 5:
                    print(f"    ⏰ Таймаут чтения (попытка {attempt})")
                continue
            raise ScaleNotFoundError(f"ошибка чтения: {exc}") from exc
        if chunk:
            received += chunk
            print(f"    📥 Получено {len(chunk)} байт (попытка {attempt})")
            if len(received) >= 2:
                break
        else:
            _wait(stop, _EMPTY_READ_DELAY)

    if not received:
        print(f"    📭 Нет данных от {port_name} с {config_name}")
        raise ScaleNotFoundError("нет валидного ответа")

    listing = ", ".join(f"0x{b:02X}" for b in received)
    print(f"    📥 Всего получено с {port_name} ({config_name}): {len(received)} байт - [{listing}]")

    if len(received) >= 2:
        first, second = received[0], received[1]
        print(
            f"    🔍 Анализ ответа: первый байт = {first} (0x{first:02X}), "
            f"второй байт = {second} (0x{second:02X})"
        )
        if first in _VALID_FIRST_BYTES:
            print(f"    ✅ Найден валидный ответ от весов! Первый байт = {first} (0x{first:02X})")
            return ScaleLink(connection=port, port_name=port_name)
        if second == _VALID_SECOND_BYTE:
            print("    ✅ Найден валидный ответ от весов! Второй байт = 192 (0xC0)")
            return ScaleLink(connection=port, port_name=port_name)

    raise ScaleNotFoundError("нет валидного ответа")


def _probe_configs(name: str, stop: threading.Event) -> ScaleLink:
    print(f"  📡 Открываем порт {name}...")
    for config in SCALE_CONFIGS:
        if stop.is_set():
            raise _ProbeCancelled()
        print(f"  🔧 Пробуем конфигурацию {config.name}...")
        try:
            port = serial.Serial(
                port=name,
                baudrate=config.baud_rate,
                bytesize=config.data_bits,
                parity=config.parity,
                stopbits=config.stop_bits,
                timeout=0.5,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            print(f"  ❌ Не удалось открыть с {config.name}: {exc}")
            continue

        try:
            return probe_response(port, name, config.name, stop)
        except _ProbeCancelled:
            port.close()
            raise
        except ScaleNotFoundError as exc:
            port.close()
            print(f"  ❌ Тест с {config.name} не прошел: {exc}")

    raise ScaleNotFoundError(f"все конфигурации не подошли для {name}")


def probe_port(name: str, stop: threading.Event, max_retries: int = DEFAULT_RETRIES) -> ScaleLink:
    """Try every line setting on ``name``, retrying; stop early once ``stop`` is set."""
    last_error: Optional[ScaleNotFoundError] = None
    for attempt in range(1, max_retries + 1):
        if stop.is_set():
            raise _ProbeCancelled()
        print(f"  📡 Попытка {attempt}/{max_retries} открыть порт {name}...")
        try:
            return _probe_configs(name, stop)
        except _ProbeCancelled:
            raise
        except ScaleNotFoundError as exc:
            last_error = exc
            print(f"  ⚠️ Попытка {attempt} неудачна: {exc}")
        if attempt < max_retries:
            _wait(stop, _RETRY_DELAY)
    if last_error is None:
        raise ScaleNotFoundError(f"все конфигурации не подошли для {name}")
    raise last_error


def _drain_and_close(results: "queue.Queue[tuple[str, Optional[ScaleLink], Optional[Exception]]]", remaining: int) -> None:
    for _ in range(remaining):
        _, link, _ = results.get()
        if link is not None and link.connection is not None:
            link.connection.close()


def _connect_parallel(port_names: Sequence[str]) -> ScaleLink:
    print(f"🚀 Начинаем параллельную проверку {len(port_names)} портов...")

    stop = threading.Event()
    deadline = threading.Timer(SEARCH_TIMEOUT, stop.set)
    deadline.daemon = True
    deadline.start()
    results: queue.Queue = queue.Queue()

    def worker(name: str) -> None:
        print(f"🔌 Начинаем проверку порта {name} в отдельном потоке...")
        try:
            results.put((name, probe_port(name, stop, DEFAULT_RETRIES), None))
        except Exception as exc:  # every failure is reported back to the collector
            results.put((name, None, exc))

    for name in port_names:
        threading.Thread(target=worker, args=(name,), daemon=True).start()

    last_error: Optional[Exception] = None
    success_count = 0
    error_count = 0
    try:
        for received in range(1, len(port_names) + 1):
            name, link, error = results.get()
            if error is not None:
                error_count += 1
                last_error = error
                print(f"  ❌ Ошибка на {name}: {error}")
            elif link is not None:
                success_count += 1
                print(f"  ✅ Найдены весы на порту {name}!")
                stop.set()
                threading.Thread(
                    target=_drain_and_close,
                    args=(results, len(port_names) - received),
                    daemon=True,
                ).start()
                return link
    finally:
        deadline.cancel()

    print(f"📊 Итоги проверки: успешных - {success_count}, с ошибками - {error_count}")
    if last_error is not None:
        raise ScaleNotFoundError(
            f"весы не найдены ни на одном порту. Последняя ошибка: {last_error}"
        ) from last_error
    raise ScaleNotFoundError("весы не найдены ни на одном последовательном порту")


def connect_to_scale() -> ScaleLink:
    """Probe all candidate serial ports in parallel and return the first scale found."""
    print("🔍 Поиск весов на последовательных портах...")
    try:
        names = serial_port_names()
    except (OSError, serial.SerialException) as exc:
        print(f"⚠️ Ошибка получения списка портов: {exc}")
        names = common_ports()

    print("📋 Доступные порты:")
    for name in names:
        print(f"  - {name}")

    on_windows = sys.platform == "win32"
    candidates = [name for name in names if on_windows or not name.startswith("COM")]
    if not candidates:
        raise ScaleNotFoundError("не найдено подходящих портов для проверки")

    return _connect_parallel(candidates)