# weighstation

A measuring station that finds a serial scale and an Arduino-based dimension
sensor controller, watches the scale for new objects, and puts each result on
the system clipboard. A small web console shows device status, sends sensor
commands, reads the scale by hand and follows a live log.

## Installing

```
pip install .
```

Clipboard output uses `tkinter`, so the Python in use needs Tk support and a
display to attach to. Without it, writing the clipboard fails with
`weighstation.clipboard.ClipboardError`.

For running the tests:

```
pip install ".[test]"
pytest
```

## Running

```
weighstation [--host HOST] [--port PORT]
```

`--host` is the address the web console listens on (all interfaces when left
empty, the default); `--port` is its port (8080 by default).

When it starts, the station:

1. Probes USB serial ports (those that report a vendor id) for the sensor
   controller at 115200 baud. A port is accepted when it answers a PING
   (`0x77`) with text containing `OK`.
2. Probes serial ports for the scale. Ports are probed in parallel threads,
   each with the line settings 4800-8-E-1, 9600-8-N-1, 2400-8-E-1 and
   9600-8-E-1, two attempts per port, for at most 30 seconds overall. On
   systems other than Windows, names starting with `COM` are skipped. If no
   ports are listed, the usual device names for the platform are tried.
3. Starts the web console in a background thread.
4. If a scale was found, runs the measuring loop. A reading becomes a new
   measurement when it is above zero and differs from the previous accepted
   one by at least 1 g. The result is `weight` when only the scale is present,
   or `weight:length:width:height` when the sensor controller is present too.
   It is copied to the clipboard; if that fails, the error is logged and the
   loop goes on reading the scale.

If no scale is found, only the web console runs. Ctrl+C stops the program and
closes the open ports.

## Web console

| Path | Method | Purpose |
|---|---|---|
| `/` | any | Control page (also served for any unknown path) |
| `/status` | any | Device status as JSON |
| `/reconnect` | POST | Close the ports and probe the devices again |
| `/arduino/command` | POST | Send a sensor command, body `{"command": "..."}` |
| `/scale/read` | POST | Read the scale once |
| `/measure/combined` | POST | Weight and dimensions, copied to the clipboard as `weight:height:width:length` |
| `/logs/stream` | any | Server-sent event stream of log messages |

The POST endpoints answer 405 to other methods, and 503 when the device they
need is not connected. `/arduino/command` answers 400 to a body that is not a
JSON object with a string `command`. The log stream sends a keep-alive comment
every 15 seconds when there is nothing to report.

Sensor commands: `start`, `ping`, `reset_sensors`, `led_on`, `led_off`,
`get_dimensions`, and `set_top_max:N`, `set_width_max:N`, `set_length_max:N`
with `N` from 1 to 255.

## Using it from Python

```python
from weighstation.state import AppState
from weighstation.app import connect_devices, print_status
from weighstation.web import start_server

state = AppState()
connect_devices(state)
print_status(state)
start_server(state, "0.0.0.0", 8080)
```

`weighstation.web.create_app(state)` returns the Flask application without
starting a server. `weighstation.app.measurement_loop(state, output)` runs the
measuring loop and hands each result to `output` instead of the clipboard.
`weighstation.app.WeightTracker` and `weighstation.app.format_result` hold the
change-detection rule and the result format.

Some helpers work on plain bytes and need no device:

- `weighstation.formatting`: `format_data_for_log`, `decode_arduino_sensor_data`,
  `decode_sensor_id`, `bool_to_string`
- `weighstation.arduino`: `find_valid_data_pattern`, `parse_dimensions_data`
- `weighstation.scale`: `is_scale_response`, `decode_weight`, `common_ports`

Live log messages can be followed with `weighstation.logbus.add_log_client()`,
which returns a queue of `LogMessage` objects; `remove_log_client` ends the
subscription.

## What it does not do

The station does not type results into other applications: it does not press
keys or paste, it only places the result on the clipboard. The web console has
no authentication and keeps no history beyond the last weight and result.