import threading

import pytest
from pydantic import ValidationError

from bloomd.client import Client
from bloomd.config import settings
from bloomd.exceptions import FilterNotFoundError, InvalidArgument, MalformedLineError, RemoteError
from bloomd.filter import Filter
from bloomd.models import FilterSpec


@pytest.fixture
def client(bloomd_server):
    with Client(bloomd_server.address, timeout_sec=2) as client:
        yield client


def _scripted_client(conn) -> Client:
    client = Client("bloomd.test:8673")
    client._conn = conn
    return client


class TestCreateFilter:
    def test_create_renders_parameters(self, client, bloomd_server):
        flt = client.create_filter("foo", capacity=100, prob=0.01)

        assert bloomd_server.received[-1] == "create foo capacity=100 prob=0.01"
        assert isinstance(flt, Filter)
        assert (flt.name, flt.capacity, flt.prob, flt.in_memory) == ("foo", 100, 0.01, False)
        assert flt.conn is client.conn

    def test_create_in_memory(self, client, bloomd_server):
        client.create_filter(FilterSpec(name="mem", in_memory=True))
        assert bloomd_server.received[-1] == "create mem in_memory=1"
        assert bloomd_server.filters["mem"].in_memory is True

    def test_create_with_defaults(self, client, bloomd_server):
        client.create_filter("plain")
        assert bloomd_server.received[-1] == "create plain"

    def test_create_is_idempotent(self, client):
        client.create_filter("foo", capacity=100)
        again = client.create_filter("foo", capacity=100)
        assert again.name == "foo"

    def test_small_probability_has_no_exponent(self, client, bloomd_server):
        client.create_filter("tiny", capacity=10, prob=1e-05)
        assert bloomd_server.received[-1] == "create tiny capacity=10 prob=0.00001"

    def test_probability_without_capacity(self):
        client = Client("localhost:1")
        with pytest.raises(InvalidArgument):
            client.create_filter("foo", prob=0.01)
        assert client._conn is None

    def test_non_positive_capacity(self):
        client = Client("localhost:1")
        with pytest.raises(InvalidArgument):
            client.create_filter("foo", capacity=0)
        assert client._conn is None

    @pytest.mark.parametrize("prob", [-0.1, 1.0, 1.5])
    def test_probability_out_of_range(self, prob):
        client = Client("localhost:1")
        with pytest.raises(InvalidArgument) as exc_info:
            client.create_filter("foo", capacity=100, prob=prob)
        assert isinstance(exc_info.value.__cause__, ValidationError)
        assert client._conn is None

    def test_spec_model_validates_ranges(self):
        with pytest.raises(ValidationError):
            FilterSpec(name="foo", capacity=-5)

    def test_zero_probability_is_left_to_server(self, client, bloomd_server):
        flt = client.create_filter("zero", capacity=100, prob=0.0)
        assert bloomd_server.received[-1] == "create zero capacity=100"
        assert flt.name == "zero"

    def test_zero_probability_without_capacity(self, client, bloomd_server):
        client.create_filter("zero", prob=0.0)
        assert bloomd_server.received[-1] == "create zero"

    def test_rejected_create(self, wire):
        conn, server = wire
        server.sendall(b"Client Error: Bad arguments\n")
        with pytest.raises(RemoteError) as exc_info:
            _scripted_client(conn).create_filter("foo")
        assert exc_info.value.response == "Client Error: Bad arguments"

    def test_hash_keys_is_passed_to_filters(self, bloomd_server):
        with Client(bloomd_server.address, hash_keys=True) as client:
            assert client.create_filter("h").hash_keys is True
            assert client.filter("h").hash_keys is True


class TestGetFilter:
    def test_populates_from_info(self, client):
        client.create_filter("foo", capacity=5000, prob=0.001, in_memory=True)

        flt = client.get_filter("foo")

        assert flt.name == "foo"
        assert flt.capacity == 5000
        assert flt.prob == pytest.approx(0.001)
        assert flt.in_memory is True
        assert flt.hash_keys is client.hash_keys

    def test_missing_filter(self, client):
        with pytest.raises(FilterNotFoundError):
            client.get_filter("ghost")

    def test_malformed_info(self, wire):
        conn, server = wire
        server.sendall(b"START\nchecks 0\nEND\n")
        with pytest.raises(MalformedLineError):
            _scripted_client(conn).get_filter("foo")

    def test_filter_without_round_trip(self, client, bloomd_server):
        before = len(bloomd_server.received)
        flt = client["anything"]
        assert flt.name == "anything"
        assert len(bloomd_server.received) == before


class TestListFilters:
    def test_keeps_rest_of_line_as_value(self, wire):
        conn, server = wire
        server.sendall(b"START\nfoo 100 0 0 00 0 0 0.0100 0\nEND\n")

        filters = _scripted_client(conn).list_filters()

        assert filters == {"foo": "100 0 0 00 0 0 0.0100 0"}
        assert server.recv(64) == b"list\n"

    def test_lists_created_filters(self, client):
        client.create_filter("a", capacity=10)
        client.create_filter("b", capacity=20)

        filters = client.list_filters()

        assert list(filters) == ["a", "b"]
        assert filters["b"].split(" ")[2] == "20"

    def test_empty(self, client):
        assert client.list_filters() == {}


class TestFlushAndLifecycle:
    def test_flush(self, client, bloomd_server):
        client.flush()
        assert bloomd_server.received[-1] == "flush"

    def test_flush_requires_done(self, wire):
        conn, server = wire
        server.sendall(b"DONE\n")
        with pytest.raises(RemoteError):
            _scripted_client(conn).flush()

    def test_connects_lazily(self, bloomd_server):
        client = Client(bloomd_server.address)
        assert client._conn is None
        client.flush()
        assert client._conn.connected is True
        client.close()

    def test_reconnects_after_close(self, client):
        client.flush()
        client.close()
        assert client._conn.connected is False
        client.flush()
        assert client._conn.connected is True

    def test_default_server(self):
        assert Client().server == f"{settings.host}:{settings.port}"

    def test_concurrent_first_use_opens_one_connection(self, bloomd_server):
        client = Client(bloomd_server.address, timeout_sec=2)
        workers = 8
        barrier = threading.Barrier(workers)
        seen = []

        def first_call():
            barrier.wait()
            seen.append(client.conn)

        threads = [threading.Thread(target=first_call) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        try:
            assert len(seen) == workers
            assert all(conn is seen[0] for conn in seen)
        finally:
            client.close()
