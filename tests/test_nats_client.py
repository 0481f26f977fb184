import json
import socket
import threading

import pytest

from vibespace.models import (
    ContextLevel,
    SensorData,
    SharingSettings,
    Vibe,
    WorldMoment,
)
from vibespace.streaming.nats_client import (
    ConnectionStatus,
    NATSClient,
    NatsError,
    RateLimiter,
    SocketNatsConnection,
)


class FakeConnection:
    def __init__(self, url, **handlers):
        self.url = url
        self.handlers = handlers
        self.connected = True
        self.closed = False
        self.published = []

    def publish(self, subject, data):
        self.published.append((subject, data))

    def is_connected(self):
        return self.connected

    def close(self):
        self.closed = True
        self.connected = False

    def connected_server_id(self):
        return "test-server"

    def connected_url(self):
        return "nats://test:4222"

    def rtt(self):
        return 0.001


class FakeFactory:
    def __init__(self):
        self.connections = []

    def __call__(self, url, **handlers):
        conn = FakeConnection(url, **handlers)
        self.connections.append(conn)
        return conn


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_client(stream_id="ies", rate_limiter=None):
    factory = FakeFactory()
    client = NATSClient(
        "nats://localhost:4222",
        stream_id,
        connection_factory=factory,
        rate_limiter=rate_limiter,
    )
    return client, factory


def public_moment(world_id="test-world"):
    return WorldMoment(
        world_id=world_id,
        timestamp=1234567890,
        sharing=SharingSettings(is_public=True),
    )


def test_client_basics():
    client = NATSClient("nats://localhost:4222")
    assert client.is_connected() is False
    assert client.url == "nats://localhost:4222"
    assert client.stream_id == "ies"
    assert NATSClient("nats://other:5222").url == "nats://other:5222"


def test_close_with_connection():
    client, factory = make_client()
    client.connect()
    assert client.is_connected() is True
    client.close()
    assert factory.connections[0].closed is True
    assert client.is_connected() is False


def test_close_without_connection():
    client, _ = make_client()
    client.close()
    assert client.is_connected() is False
    assert client.connection_status().is_connected is False


def test_publish_world_moment_success():
    client, factory = make_client()
    client.connect()
    moment = public_moment()
    client.publish_world_moment(moment, "user123")
    subjects = {s for s, _ in factory.connections[0].published}
    assert subjects == {
        "ies.world.moment.test-world",
        "ies.world.moment.test-world.user.user123",
    }
    assert moment.creator_id == "user123"


def test_publish_when_not_connected():
    client, _ = make_client()
    with pytest.raises(NatsError, match="not connected"):
        client.publish_world_moment(public_moment(), "user123")


def test_publish_empty_world_id():
    client, _ = make_client()
    client.connect()
    with pytest.raises(NatsError, match="world ID is required"):
        client.publish_world_moment(public_moment(world_id=""), "user123")


def test_is_connected_follows_connection_and_flag():
    client, factory = make_client()
    assert client.is_connected() is False
    client.connect()
    assert client.is_connected() is True
    factory.connections[0].connected = False
    assert client.is_connected() is False


def test_connect_is_idempotent_while_live():
    client, factory = make_client()
    client.connect()
    client.connect()
    assert len(factory.connections) == 1


def test_concurrent_publishes():
    client, factory = make_client()
    client.connect()
    errors = []

    def worker():
        try:
            client.publish_world_moment(public_moment(), "user123")
        except NatsError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert len(factory.connections[0].published) == 20


def test_rate_limit_rejects_after_burst():
    clock = FakeClock()
    client, _ = make_client(rate_limiter=RateLimiter(2, 1, 1000, clock=clock))
    client.connect()
    client.publish_world_moment(public_moment(), "u")
    client.publish_world_moment(public_moment(), "u")
    with pytest.raises(NatsError, match="rate limit exceeded"):
        client.publish_world_moment(public_moment(), "u")


def test_rate_limiter_refills_per_interval():
    clock = FakeClock()
    limiter = RateLimiter(3, 1, 1000, clock=clock)
    assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]
    clock.now = 0.5
    assert limiter.try_acquire() is False
    clock.now = 2.5
    assert limiter.try_acquire() is True
    assert limiter.try_acquire() is True
    assert limiter.try_acquire() is False


def test_rate_limiter_caps_at_max_tokens():
    clock = FakeClock()
    limiter = RateLimiter(2, 10, 1000, clock=clock)
    limiter.try_acquire()
    clock.now = 100.0
    results = [limiter.try_acquire() for _ in range(3)]
    assert results == [True, True, False]


def test_create_moment_subjects_filters_per_user():
    client, _ = make_client()
    moment = WorldMoment(
        world_id="w1",
        creator_id="creator",
        custom_data='{"secret": 1}',
        sensor_data=SensorData(temperature=21.0),
        sharing=SharingSettings(
            is_public=False,
            allowed_users=["creator", "friend"],
            context_level=ContextLevel.PARTIAL,
        ),
    )
    subjects = client.create_moment_subjects(moment)
    assert set(subjects) == {
        "ies.world.moment.w1.user.creator",
        "ies.world.moment.w1.user.friend",
    }
    creator_payload = json.loads(subjects["ies.world.moment.w1.user.creator"])
    friend_payload = json.loads(subjects["ies.world.moment.w1.user.friend"])
    assert creator_payload["customData"] == '{"secret": 1}'
    assert "customData" not in friend_payload
    assert friend_payload["sensorData"] == {"temperature": 21.0}


def test_create_moment_subjects_requires_world_id():
    client, _ = make_client()
    with pytest.raises(NatsError, match="world ID is required"):
        client.create_moment_subjects(WorldMoment())


def test_custom_stream_id_used_in_subjects():
    client, _ = make_client(stream_id="preworm")
    moment = public_moment("w2")
    moment.creator_id = "me"
    assert set(client.create_moment_subjects(moment)) == {
        "preworm.world.moment.w2",
        "preworm.world.moment.w2.user.me",
    }


def test_prepare_world_moment_keeps_existing_creator():
    client, _ = make_client()
    moment = public_moment()
    moment.creator_id = "owner"
    assert client.prepare_world_moment(moment, "other").creator_id == "owner"


def test_prepare_vibe_update():
    client, _ = make_client()
    subject, data = client.prepare_vibe_update("w1", Vibe(id="vibe1", name="Test"))
    assert subject == "ies.world.vibe.w1"
    assert json.loads(data)["id"] == "vibe1"
    with pytest.raises(NatsError, match="vibe is required"):
        client.prepare_vibe_update("w1", None)
    with pytest.raises(NatsError, match="world ID is required"):
        client.prepare_vibe_update("", Vibe(id="v"))


def test_publish_vibe_update():
    client, factory = make_client()
    client.connect()
    client.publish_vibe_update("test-world", Vibe(id="vibe1", energy=0.8))
    [(subject, data)] = factory.connections[0].published
    assert subject == "ies.world.vibe.test-world"
    assert json.loads(data)["energy"] == 0.8


def test_publish_vibe_update_not_connected():
    client, _ = make_client()
    with pytest.raises(NatsError, match="not connected"):
        client.publish_vibe_update("w", Vibe(id="v"))


def test_connection_status_when_connected():
    client, _ = make_client()
    client.connect()
    status = client.connection_status()
    assert status.is_connected is True
    assert status.server_id == "test-server"
    assert status.connected_url == "nats://test:4222"
    assert status.rtt == "1ms"
    data = status.to_dict()
    assert data["url"] == "nats://localhost:4222"
    assert data["serverId"] == "test-server"
    assert "lastErrorMessage" not in data


def test_connection_status_zero_time_format():
    assert ConnectionStatus().to_dict()["lastConnectTime"] == "0001-01-01T00:00:00Z"


def test_connect_failure_recorded():
    def failing(url, **handlers):
        raise OSError("refused")

    client = NATSClient("nats://localhost:4222", connection_factory=failing)
    with pytest.raises(NatsError, match="failed to connect to NATS"):
        client.connect()
    assert "refused" in client.connection_status().last_error_message


def test_disconnect_handler_updates_counters():
    client, factory = make_client()
    client.connect()
    conn = factory.connections[0]
    conn.handlers["on_disconnect"](conn, OSError("gone"))
    status = client.connection_status()
    assert status.is_connected is False
    assert status.disconnect_count == 1
    assert status.last_error_message == "gone"


def test_reconnect_counts():
    client, factory = make_client()
    client.connect()
    factory.connections[0].connected = False
    client.connect()
    assert len(factory.connections) == 2
    assert factory.connections[0].closed is True
    assert client.connection_status().reconnect_count == 1


@pytest.fixture
def fake_server():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    srv.settimeout(5)
    received = []
    got_pub = threading.Event()

    def serve():
        conn, _ = srv.accept()
        conn.settimeout(5)
        reader = conn.makefile("rb")
        conn.sendall(b'INFO {"server_id":"srv-1","max_payload":1048576}\r\n')
        try:
            while True:
                line = reader.readline()
                if not line:
                    break
                if line.startswith(b"PING"):
                    conn.sendall(b"PONG\r\n")
                elif line.startswith(b"PUB"):
                    size = int(line.split()[-1])
                    received.append((line, reader.read(size + 2)))
                    got_pub.set()
        except OSError:
            pass
        finally:
            conn.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield srv.getsockname()[1], received, got_pub
    srv.close()


def test_socket_connection_publishes(fake_server):
    port, received, got_pub = fake_server
    conn = SocketNatsConnection(f"nats://127.0.0.1:{port}")
    assert conn.is_connected() is True
    assert conn.connected_server_id() == "srv-1"
    assert conn.connected_url() == f"nats://127.0.0.1:{port}"
    assert conn.rtt() >= 0.0
    conn.publish("a.b", b"hi")
    assert got_pub.wait(5)
    assert received == [(b"PUB a.b 2\r\n", b"hi\r\n")]
    conn.close()
    assert conn.is_connected() is False
    with pytest.raises(NatsError):
        conn.publish("a.b", b"x")


def test_socket_connection_refused():
    probe = socket.socket()
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()
    with pytest.raises(NatsError):
        SocketNatsConnection(f"nats://127.0.0.1:{port}", timeout=1.0)


def test_socket_connection_rejects_scheme():
    with pytest.raises(NatsError, match="unsupported URL scheme"):
        SocketNatsConnection("http://127.0.0.1:4222")