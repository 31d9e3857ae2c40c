import socket
from unittest.mock import patch

import pytest

from bloomd.engine.connection import Connection
from fake_server import FakeBloomdServer


@pytest.fixture
def bloomd_server():
    server = FakeBloomdServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def wire():
    """A connected Connection whose peer is a local socket the test scripts"""
    client_sock, server_sock = socket.socketpair()
    conn = Connection("bloomd.test", 8673, timeout_sec=2)
    with patch("bloomd.engine.connection.socket.create_connection", return_value=client_sock):
        conn.connect()
    client_sock.settimeout(2)
    server_sock.settimeout(2)

    yield conn, server_sock

    conn.close()
    server_sock.close()
