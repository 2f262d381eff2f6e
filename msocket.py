'''
msocket.py -- authenticated message connections

Thin wrappers over multiprocessing.connection: objects are pickled across the wire and
both ends must share config.AUTHKEY. Connections and listeners expose fileno() so they
can sit in a select() loop.
'''
import socket
import multiprocessing
import multiprocessing.connection

import config

# anything a connection can raise once the other end is gone or misbehaves
CONNECTION_ERRORS = (OSError, EOFError, multiprocessing.AuthenticationError)


def get_network_ip():
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    s.connect(('<broadcast>', 0))
    return s.getsockname()[0]


class Listener(multiprocessing.connection.Listener):
    '''listening socket; port 0 binds a free port, see .address for the one picked'''
    def __init__(self, ip, port, authkey=None):
        multiprocessing.connection.Listener.__init__(self, address=(ip, port),
            authkey=authkey if authkey is not None else config.AUTHKEY)

    def fileno(self):
        return self._listener._socket.fileno()


def Client(ip, port, authkey=None):
    return multiprocessing.connection.Client(address=(ip, port),
        authkey=authkey if authkey is not None else config.AUTHKEY)
