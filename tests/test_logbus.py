import re

from weighstation import logbus
from weighstation.logbus import LogBus


def test_subscriber_receives_message():
    bus = LogBus()
    client = bus.subscribe(10)
    bus.broadcast("hello", "arduino")
    msg = client.get_nowait()
    assert msg.message == "hello"
    assert msg.log_type == "arduino"
    assert re.fullmatch(r"\d\d:\d\d:\d\d", msg.time)


def test_broadcast_returns_delivered_message():
    bus = LogBus()
    client = bus.subscribe(10)
    sent = bus.broadcast("x", "scale")
    assert client.get_nowait() == sent


def test_full_queue_drops_new_messages():
    bus = LogBus()
    client = bus.subscribe(1)
    bus.broadcast("first", "system")
    bus.broadcast("second", "system")
    assert client.qsize() == 1
    assert client.get_nowait().message == "first"


def test_unsubscribed_client_gets_nothing():
    bus = LogBus()
    client = bus.subscribe(10)
    bus.unsubscribe(client)
    bus.broadcast("ignored", "system")
    assert client.empty()


def test_every_subscriber_gets_a_copy():
    bus = LogBus()
    clients = [bus.subscribe(5) for _ in range(3)]
    bus.broadcast("fan", "system")
    assert [c.get_nowait().message for c in clients] == ["fan"] * 3


def test_unsubscribe_unknown_client_leaves_others():
    bus = LogBus()
    kept = bus.subscribe(5)
    other = LogBus().subscribe(5)
    bus.unsubscribe(other)
    bus.broadcast("still", "system")
    assert kept.get_nowait().message == "still"


def test_module_init_announces_on_default_bus():
    client = logbus.add_log_client()
    try:
        logbus.init()
        msg = client.get_nowait()
        assert msg.message == "Система логирования инициализирована"
        assert msg.log_type == "system"
    finally:
        logbus.remove_log_client(client)


def test_module_remove_log_client():
    client = logbus.add_log_client(5)
    logbus.remove_log_client(client)
    logbus.broadcast_log("after", "system")
    assert client.empty()