import os
import socket
import sys
import threading
import time

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from directory import Directory, DirectoryServer, DirectoryClient, DirectoryError


def test_name_has_one_holder():
    d = Directory()
    a, b = object(), object()
    assert d.register('rdv', a, ('h', 1))
    assert not d.register('rdv', b, ('h', 2))
    assert d.register('rdv', a, ('h', 3))
    assert d.lookup('rdv') == ('h', 3)
    assert d.holder('rdv') is a
    assert not d.release('rdv', b)
    assert d.release('rdv', a)
    assert d.lookup('rdv') is None
    assert d.register('rdv', b)


def test_release_all():
    d = Directory()
    a, b = object(), object()
    d.register('a', a)
    d.register('rdv', a)
    d.register('b', b)
    assert sorted(d.release_all(a)) == ['a', 'rdv']
    assert d.holder('rdv') is None
    assert d.holder('b') is b


@pytest.fixture
def server():
    srv = DirectoryServer('localhost', 0)
    stop = threading.Event()

    def loop():
        while not stop.is_set():
            srv.serve_once(timeout=0.05)

    thread = threading.Thread(target=loop, daemon=True)
    thread.start()
    yield srv
    stop.set()
    thread.join(timeout=5)
    srv.close()


def test_register_and_lookup_over_sockets(server):
    ip, port = server.address
    a = DirectoryClient(ip, port)
    b = DirectoryClient(ip, port)
    try:
        assert a.register('peer-a', ('localhost', 5000))
        assert a.register('rdv', ('localhost', 5000))
        assert not b.register('rdv', ('localhost', 6000))
        assert b.lookup('rdv') == ('localhost', 5000)
        assert b.lookup('nobody') is None
        assert not b.release('rdv')
        assert a.release('rdv')
        assert b.register('rdv', ('localhost', 6000))
    finally:
        a.close()
        b.close()


def test_names_freed_when_client_goes_away(server):
    ip, port = server.address
    a = DirectoryClient(ip, port)
    b = DirectoryClient(ip, port)
    try:
        assert a.register('rdv', ('localhost', 5000))
        a.close()
        deadline = time.time() + 5
        claimed = False
        while time.time() < deadline and not claimed:
            claimed = b.register('rdv', ('localhost', 6000))
            if not claimed:
                time.sleep(0.05)
        assert claimed
    finally:
        b.close()


def test_unreachable_directory_raises():
    s = socket.socket()
    s.bind(('localhost', 0))
    port = s.getsockname()[1]
    s.close()
    with pytest.raises(DirectoryError):
        DirectoryClient('localhost', port)
