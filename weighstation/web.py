"""HTTP control panel: device status, commands, measurements and live logs."""

from __future__ import annotations

import json
import queue
import time

import serial
from flask import Flask, Response, request

from weighstation.arduino import (
    ArduinoNotFoundError,
    connect_to_arduino,
    execute_command,
    get_dimensions,
    send_command,
)
from weighstation.clipboard import ClipboardError, copy_to_clipboard
from weighstation.formatting import bool_to_string
from weighstation.logbus import add_log_client, remove_log_client
from weighstation.scale import ScaleNotFoundError, ScaleReadError, connect_to_scale, read_weight
from weighstation.state import NOT_FOUND, SERVER_PORT, AppState, Command

_ANY_METHOD = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
_KEEPALIVE_INTERVAL = 15.0
_DIMENSIONS_DELAY = 0.1

INDEX_HTML = r"""<!doctype html>
<html lang="ru">
<head>
<meta charset="utf-8">
<title>Весы и габариты: панель управления</title>
<style>
  :root { --accent: #2196F3; --ok: #4CAF50; --bad: #f44336; }
  * { box-sizing: border-box; }
  body { margin: 0; padding: 24px; font: 15px/1.4 Arial, Helvetica, sans-serif; background: #f3f4f6; color: #222; }
  main { max-width: 1180px; margin: auto; }
  header { text-align: center; font-size: 1.6em; margin-bottom: 12px; }
  section { background: #fff; border-radius: 10px; padding: 18px 22px; margin-bottom: 14px; box-shadow: 0 1px 5px rgba(0, 0, 0, .12); }
  section > h2 { margin-top: 0; font-size: 1.2em; border-bottom: 2px solid var(--accent); padding-bottom: 4px; }
  .grid { display: grid; gap: 12px; grid-template-columns: repeat(auto-fit, minmax(260px, 1fr)); }
  .panel { border: 1px solid #e0e0e0; border-radius: 6px; padding: 12px; }
  .on { color: var(--ok); font-weight: bold; }
  .off { color: var(--bad); font-weight: bold; }
  button { border: 0; border-radius: 5px; padding: 9px 16px; margin: 4px; background: var(--accent); color: #fff; cursor: pointer; }
  button:hover { filter: brightness(.9); }
  button[disabled] { background: #bbb; cursor: wait; }
  button.primary { background: var(--ok); font-weight: bold; }
  input { width: 90px; padding: 6px; margin: 4px; border: 1px solid #ccc; border-radius: 4px; }
  .out { min-height: 48px; background: #eef0f2; border-radius: 5px; padding: 10px; white-space: pre-wrap; }
  #log { height: 220px; overflow-y: auto; background: #111; color: #0f0; padding: 8px; font: 12px monospace; }
  .toast { position: fixed; top: 18px; right: 18px; background: var(--ok); color: #fff; padding: 14px 18px; border-radius: 6px; font-weight: bold; box-shadow: 0 2px 10px rgba(0, 0, 0, .3); }
</style>
</head>
<body>
<main>
  <header>🔧 Измерение веса и габаритов</header>

  <section>
    <h2>📊 Устройства</h2>
    <div class="grid">
      <div class="panel">
        <strong>Arduino</strong>
        <div>Состояние: <span id="arduino-state" class="off">…</span></div>
        <div>Порт: <span id="arduino-port">…</span></div>
      </div>
      <div class="panel">
        <strong>Весы</strong>
        <div>Состояние: <span id="scale-state" class="off">…</span></div>
        <div>Порт: <span id="scale-port">…</span></div>
      </div>
      <div class="panel">
        <strong>Последнее измерение</strong>
        <div>Вес, г: <span id="weight">-</span></div>
        <div>Результат: <span id="dims">-</span></div>
      </div>
    </div>
    <button id="reconnect">🔄 Переподключить</button>
  </section>

  <section>
    <h2>🎛️ Arduino</h2>
    <div class="grid">
      <div class="panel">
        <strong>Команды</strong><br>
        <button data-cmd="start">▶️ Старт</button>
        <button data-cmd="ping">🏓 Пинг</button>
        <button data-cmd="reset_sensors">🔄 Сброс сенсоров</button>
        <button data-cmd="get_dimensions">📏 Размеры</button>
      </div>
      <div class="panel">
        <strong>Подсветка</strong><br>
        <button data-cmd="led_on">💡 Вкл.</button>
        <button data-cmd="led_off">⚫ Выкл.</button>
      </div>
      <div class="panel">
        <strong>Пределы (1–255)</strong>
        <div>Высота <input type="number" min="1" max="255" value="100" data-limit="set_top_max"></div>
        <div>Ширина <input type="number" min="1" max="255" value="100" data-limit="set_width_max"></div>
        <div>Длина <input type="number" min="1" max="255" value="100" data-limit="set_length_max"></div>
        <button id="apply-limits">Применить</button>
      </div>
    </div>
    <p>Ответ:</p>
    <div id="arduino-out" class="out">—</div>
  </section>

  <section>
    <h2>⚖️ Весы</h2>
    <button id="read-weight">📊 Только вес</button>
    <button id="measure" class="primary">🎯 Полное измерение + буфер обмена</button>
    <p>Ответ:</p>
    <div id="scale-out" class="out">—</div>
  </section>

  <section>
    <h2>📝 Журнал</h2>
    <div id="log"></div>
  </section>
</main>

<script>
const $ = (id) => document.getElementById(id);
const palette = { arduino: '#00ff00', scale: '#ffff00', system: '#ffffff' };

function appendLine(el) {
  const box = $('log');
  box.appendChild(el);
  while (box.childElementCount > 1000) box.firstElementChild.remove();
  box.scrollTop = box.scrollHeight;
}

function note(text) {
  const line = document.createElement('div');
  line.textContent = `[${new Date().toLocaleTimeString()}] ${text}`;
  appendLine(line);
}

function streamed(entry) {
  const line = document.createElement('div');
  line.style.color = palette[entry.type] || '#ffffff';
  line.textContent = `[${entry.time}] [${String(entry.type).toUpperCase()}] ${entry.message}`;
  appendLine(line);
}

async function post(url, payload) {
  const opts = { method: 'POST' };
  if (payload !== undefined) {
    opts.headers = { 'Content-Type': 'application/json' };
    opts.body = JSON.stringify(payload);
  }
  const reply = await fetch(url, opts);
  return reply.text();
}

function showDevice(prefix, connected, port) {
  const badge = $(prefix + '-state');
  badge.textContent = connected ? 'Подключен' : 'Отключен';
  badge.className = connected ? 'on' : 'off';
  $(prefix + '-port').textContent = port;
}

async function refresh() {
  try {
    const info = await (await fetch('/status')).json();
    showDevice('arduino', info.arduino_connected, info.arduino_port);
    showDevice('scale', info.scale_connected, info.scale_port);
    $('weight').textContent = info.last_weight || '-';
    $('dims').textContent = info.last_dimensions || '-';
  } catch (e) {
    note('Ошибка получения статуса: ' + e);
  }
}

function listen() {
  const source = new EventSource('/logs/stream');
  source.onmessage = (ev) => streamed(JSON.parse(ev.data));
  source.onerror = () => {
    source.close();
    streamed({ time: new Date().toLocaleTimeString(), type: 'system', message: 'Поток журнала прерван, повтор через 5 с' });
    setTimeout(listen, 5000);
  };
}

async function arduino(cmd) {
  note('Команда Arduino: ' + cmd);
  try {
    const text = await post('/arduino/command', { command: cmd });
    $('arduino-out').textContent = text;
    note('Arduino: ' + text);
  } catch (e) {
    $('arduino-out').textContent = 'Ошибка: ' + e;
    note('Ошибка команды Arduino: ' + e);
  }
}

async function scaleAction(url, label, onDone) {
  note(label);
  try {
    const text = await post(url);
    $('scale-out').textContent = text;
    note(text);
    if (onDone) onDone();
  } catch (e) {
    $('scale-out').textContent = 'Ошибка: ' + e;
    note('Ошибка: ' + e);
  }
}

function toast(text) {
  const box = document.createElement('div');
  box.className = 'toast';
  box.textContent = text;
  document.body.appendChild(box);
  setTimeout(() => box.remove(), 3000);
}

document.querySelectorAll('[data-cmd]').forEach((btn) =>
  btn.addEventListener('click', () => arduino(btn.dataset.cmd)));

$('apply-limits').addEventListener('click', async () => {
  for (const field of document.querySelectorAll('[data-limit]')) {
    await arduino(field.dataset.limit + ':' + field.value);
  }
});

$('reconnect').addEventListener('click', async () => {
  note('Переподключение…');
  try {
    note('Итог: ' + await post('/reconnect'));
    refresh();
  } catch (e) {
    note('Ошибка переподключения: ' + e);
  }
});

$('read-weight').addEventListener('click', () => scaleAction('/scale/read', 'Чтение веса…'));

$('measure').addEventListener('click', async (ev) => {
  const btn = ev.currentTarget;
  const caption = btn.textContent;
  btn.disabled = true;
  btn.textContent = '⏳ Идёт измерение…';
  await scaleAction('/measure/combined', 'Полное измерение…', () => toast('✅ Результат в буфере обмена'));
  btn.disabled = false;
  btn.textContent = caption;
});

refresh();
setInterval(refresh, 2000);
listen();
</script>
</body>
</html>
"""


def _text(body: str, status: int = 200) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def _error(message: str, status: int) -> Response:
    response = _text(message + "\n", status)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def _method_not_allowed() -> Response:
    return _error("Method not allowed", 405)


def _parse_command(body: bytes) -> str:
    """Extract the ``command`` field of a JSON request body."""
    payload = json.loads(body.decode("utf-8"))
    if payload is None:
        return ""
    if not isinstance(payload, dict):
        raise ValueError("JSON object expected")
    command = payload.get("command")
    if command is None:
        return ""
    if not isinstance(command, str):
        raise ValueError("command must be a string")
    return command


def create_app(state: AppState) -> Flask:
    """Build the web application that controls the devices held in ``state``."""
    app = Flask(__name__)

    @app.route("/", defaults={"path": ""}, methods=_ANY_METHOD)
    @app.route("/<path:path>", methods=_ANY_METHOD)
    def index(path: str) -> Response:
        return Response(INDEX_HTML, mimetype="text/html")

    @app.route("/status", methods=_ANY_METHOD)
    def status() -> Response:
        with state.lock:
            payload = state.status.to_dict()
        return Response(json.dumps(payload, ensure_ascii=False) + "\n", mimetype="application/json")

    @app.route("/reconnect", methods=_ANY_METHOD)
    def reconnect() -> Response:
        if request.method != "POST":
            return _method_not_allowed()

        state.close()

        try:
            arduino = connect_to_arduino()
        except (ArduinoNotFoundError, serial.SerialException, OSError):
            arduino = None
        with state.lock:
            state.arduino = arduino
            state.status.arduino_connected = arduino is not None
            state.status.arduino_port = arduino.port_name if arduino is not None else NOT_FOUND

        try:
            scale = connect_to_scale()
        except (ScaleNotFoundError, serial.SerialException, OSError):
            scale = None
        with state.lock:
            state.scale = scale
            state.status.scale_connected = scale is not None
            state.status.scale_port = scale.port_name if scale is not None else NOT_FOUND
            summary = (
                f"Arduino: {bool_to_string(state.status.arduino_connected)} "
                f"({state.status.arduino_port}), "
                f"Весы: {bool_to_string(state.status.scale_connected)} "
                f"({state.status.scale_port})"
            )
        return _text(summary)

    @app.route("/arduino/command", methods=_ANY_METHOD)
    def arduino_command() -> Response:
        if request.method != "POST":
            return _method_not_allowed()
        if not state.status.arduino_connected:
            return _error("Arduino не подключен", 503)
        try:
            command = _parse_command(request.get_data())
        except ValueError:
            return _error("Invalid JSON", 400)
        return _text(execute_command(state.arduino, command))

    @app.route("/scale/read", methods=_ANY_METHOD)
    def scale_read() -> Response:
        if request.method != "POST":
            return _method_not_allowed()
        if not state.status.scale_connected:
            return _error("Весы не подключены", 503)
        try:
            weight = read_weight(state.scale)
        except ScaleReadError as exc:
            return _error(f"Ошибка чтения веса: {exc}", 500)
        with state.lock:
            state.status.last_weight = weight
        return _text(f"{weight:.1f} г")

    @app.route("/measure/combined", methods=_ANY_METHOD)
    def combined_measure() -> Response:
        if request.method != "POST":
            return _method_not_allowed()
        if not state.status.arduino_connected:
            return _error("Arduino не подключен", 503)
        if not state.status.scale_connected:
            return _error("Весы не подключены", 503)

        try:
            weight = read_weight(state.scale)
        except ScaleReadError as exc:
            return _error(f"Ошибка чтения веса: {exc}", 500)

        send_command(state.arduino, Command.GET_DIMENSIONS)
        time.sleep(_DIMENSIONS_DELAY)
        length, width, height = get_dimensions(state.arduino)

        result = f"{weight:.0f}:{height}:{width}:{length}"
        with state.lock:
            state.status.last_weight = weight
            state.status.last_dimensions = result

        try:
            copy_to_clipboard(result)
        except ClipboardError as exc:
            return _error(f"Ошибка копирования в буфер: {exc}", 500)

        return _text(f"Измерение завершено: {result} (скопировано в буфер)")

    @app.route("/logs/stream", methods=_ANY_METHOD)
    def logs_stream() -> Response:
        client = add_log_client()

        def events():
            try:
                while True:
                    try:
                        message = client.get(timeout=_KEEPALIVE_INTERVAL)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    data = json.dumps(message.to_dict(), ensure_ascii=False, separators=(",", ":"))
                    yield f"data: {data}\n\n"
            finally:
                remove_log_client(client)

        response = Response(events(), mimetype="text/event-stream")
        response.headers["Cache-Control"] = "no-cache"
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.call_on_close(lambda: remove_log_client(client))
        return response

    return app


def start_server(state: AppState, host: str = "", port: int = SERVER_PORT) -> None:
    """Serve the control panel on all interfaces until the process ends."""
    app = create_app(state)
    print(f"Веб-сервер запущен на http://localhost:{port}")
    app.run(host=host or "0.0.0.0", port=port, threaded=True, use_reloader=False)