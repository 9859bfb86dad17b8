"""Shared application state, device links and protocol constants."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any, Optional

SERVER_PORT = 8080
WEIGHT_THRESHOLD = 1.0
NOT_FOUND = "Не найден"


class Command(IntEnum):
    """Single-byte commands understood by the dimension controller."""

    START = 0x95
    GET_DIMENSIONS = 0x89
    SET_TOP_MAX = 0x90
    SET_WIDTH_MAX = 0x91
    SET_LENGTH_MAX = 0x92
    RESET_SENSORS = 0x93
    LED_ON = 0x66
    LED_OFF = 0x55
    PING = 0x77


@dataclass
class ArduinoLink:
    """An open serial connection to the dimension controller."""

    port: Any
    port_name: str


@dataclass
class ScaleLink:
    """An open serial connection to the scale."""

    connection: Any
    port_name: str


@dataclass
class DeviceStatus:
    """Connection state and last measurement, as reported to the web UI."""

    arduino_connected: bool = False
    arduino_port: str = ""
    scale_connected: bool = False
    scale_port: str = ""
    last_weight: float = 0.0
    last_dimensions: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the status as a JSON-ready mapping."""
        return asdict(self)


@dataclass(frozen=True)
class LogMessage:
    """A log line delivered to live log subscribers."""

    time: str
    message: str
    log_type: str

    def to_dict(self) -> dict[str, str]:
        """Return the message as a JSON-ready mapping."""
        return {"time": self.time, "message": self.message, "type": self.log_type}


@dataclass
class AppState:
    """Everything the measurement loop and the web server share."""

    arduino: Optional[ArduinoLink] = None
    scale: Optional[ScaleLink] = None
    status: DeviceStatus = field(default_factory=DeviceStatus)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def close(self) -> None:
        """Close any open device connections and forget them."""
        with self.lock:
            if self.arduino is not None and self.arduino.port is not None:
                self.arduino.port.close()
            if self.scale is not None and self.scale.connection is not None:
                self.scale.connection.close()
            self.arduino = None
            self.scale = None