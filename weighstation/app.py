"""Measurement station entry point: device discovery and the automatic weighing loop."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import serial

from weighstation.arduino import (
    ArduinoNotFoundError,
    connect_to_arduino,
    get_dimensions,
    send_command,
)
from weighstation.clipboard import ClipboardError, copy_to_clipboard
from weighstation.formatting import bool_to_string
from weighstation.logbus import init as init_log_bus
from weighstation.scale import ScaleNotFoundError, ScaleReadError, connect_to_scale, read_weight
from weighstation.state import NOT_FOUND, SERVER_PORT, WEIGHT_THRESHOLD, AppState, Command
from weighstation.web import start_server

logger = logging.getLogger(__name__)

_IDLE_DELAY = 1.0
_START_DELAY = 2.0
_SETTLE_DELAY = 3.0
_NEXT_OBJECT_DELAY = 2.0


@dataclass
class WeightTracker:
    """Decides when a new object is on the scale, by how much the weight changed."""

    threshold: float = WEIGHT_THRESHOLD
    last_weight: float = -1.0

    def should_measure(self, weight: float) -> bool:
        """Accept ``weight`` as a new measurement and remember it, or reject it."""
        if weight <= 0:
            return False
        if self.last_weight > 0 and abs(weight - self.last_weight) < self.threshold:
            return False
        self.last_weight = weight
        return True


def format_result(weight: float, dimensions: Optional[tuple[int, int, int]] = None) -> str:
    """Render ``weight`` (and ``(length, width, height)`` if given) as the output line."""
    if dimensions is None:
        return f"{weight:.0f}"
    length, width, height = dimensions
    return f"{weight:.0f}:{length}:{width}:{height}"


def print_status(state: AppState) -> None:
    """Print which devices are connected and on which ports."""
    status = state.status
    print("📡 Статус подключения устройств:")
    print(f"🔌 Arduino: {bool_to_string(status.arduino_connected)} ({status.arduino_port})")
    print(f"⚖️ Весы: {bool_to_string(status.scale_connected)} ({status.scale_port})")


def connect_devices(state: AppState) -> None:
    """Look for the dimension controller and the scale and record what was found."""
    print("🔌 Поиск Arduino...")
    try:
        arduino = connect_to_arduino()
    except (ArduinoNotFoundError, serial.SerialException, OSError) as exc:
        logger.error("Arduino error: %s", exc)
        arduino = None
    else:
        print(f"✅ Arduino подключен: {arduino.port_name}")
    with state.lock:
        state.arduino = arduino
        state.status.arduino_connected = arduino is not None
        state.status.arduino_port = arduino.port_name if arduino is not None else NOT_FOUND

    print("⚖️ Поиск весов...")
    try:
        scale = connect_to_scale()
    except (ScaleNotFoundError, serial.SerialException, OSError) as exc:
        logger.error("Scale error: %s", exc)
        scale = None
    else:
        print(f"✅ Весы подключены: {scale.port_name}")
    with state.lock:
        state.scale = scale
        state.status.scale_connected = scale is not None
        state.status.scale_port = scale.port_name if scale is not None else NOT_FOUND


def _measure_object(
    state: AppState, tracker: WeightTracker, deliver: Callable[[str], None]
) -> str:
    """Wait for a new weight, measure the object and deliver the result."""
    while True:
        try:
            weight = read_weight(state.scale)
        except ScaleReadError as exc:
            print("Ошибка чтения веса:", exc)
            time.sleep(_IDLE_DELAY)
            continue

        previous = tracker.last_weight
        if not tracker.should_measure(weight):
            time.sleep(_IDLE_DELAY)
            continue

        with state.lock:
            state.status.last_weight = weight
        print(f"🔄 Обнаружено изменение веса: {weight:.1f} г (предыдущий: {previous:.1f} г)")

        if state.status.arduino_connected:
            send_command(state.arduino, Command.GET_DIMENSIONS)
            result = format_result(weight, get_dimensions(state.arduino))
            label = "📋 Результат (полные измерения):"
        else:
            result = format_result(weight)
            label = "📋 Результат (только вес):"
        with state.lock:
            state.status.last_dimensions = result
        print(label, result)

        try:
            deliver(result)
        except ClipboardError as exc:
            logger.error("Ошибка симуляции ввода: %s", exc)
            continue

        print("✅ Измерение завершено. Ожидание следующего объекта...")
        time.sleep(_SETTLE_DELAY)
        return result


def measurement_loop(state: AppState, output: Optional[Callable[[str], None]] = None) -> None:
    """Measure every new object put on the scale and hand each result to ``output``."""
    deliver = copy_to_clipboard if output is None else output
    tracker = WeightTracker()

    print(f"🖥️ Система запущена на {sys.platform}")
    if state.status.arduino_connected and state.status.scale_connected:
        print("🔄 Режим работы: Полные измерения (весы + Arduino)")
    elif state.status.scale_connected:
        print("⚖️ Режим работы: Только весы")

    while True:
        if not state.status.scale_connected:
            time.sleep(_IDLE_DELAY)
            continue

        if state.status.arduino_connected:
            send_command(state.arduino, Command.START)
            time.sleep(_START_DELAY)

        _measure_object(state, tracker, deliver)

        print("Ожидание следующего объекта...")
        time.sleep(_NEXT_OBJECT_DELAY)


def main(argv: Optional[list[str]] = None) -> int:
    """Start the web panel and, if a scale is present, the measurement loop."""
    parser = argparse.ArgumentParser(
        prog="weighstation", description="Weight and dimension measurement station."
    )
    parser.add_argument("--host", default="", help="address to serve the web panel on")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="web panel port")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    init_log_bus()

    state = AppState()
    try:
        connect_devices(state)
        server = threading.Thread(
            target=start_server, args=(state, args.host, args.port), daemon=True
        )
        server.start()

        if state.status.scale_connected:
            measurement_loop(state)
        else:
            logger.warning("Весы не подключены. Используйте веб-интерфейс для управления.")
            threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        state.close()
    return 0