'''
peer_connection.py -- runs the lobby in a background process

The simulation thread never touches sockets: it talks to the PeerConnectionHandler through
a multiprocessing Pipe. Messages in both directions are (msg, data) tuples.

simulation -> peer process
    ('broadcast', [kind, payload])   relay an application state packet
    ('quit', [])
peer process -> simulation
    ('status', text) ('state', name) ('roster', [ids]) ('heartbeat', {'timestamp': t})
    ('network_data', wire dict) ('gave_up', reason)
'''
import multiprocessing
import time

import logging
logging.basicConfig(level = logging.INFO)
def pconn_log(*args):
    logging.log(logging.INFO, *args)

import config
from lobby import Session
from node import PeerNode
from transport import SocketTransport


class PeerConnectionHandler(object):
    '''
    Owns the socket transport and the PeerNode inside the background process and shuttles
    notifications out to the simulation over the pipe.
    '''
    def __init__(self, client_pipe, directory_ip, directory_port, peer_id=None):
        self._pipe = client_pipe
        self.transport = SocketTransport(directory_ip, directory_port)
        self.node = PeerNode(Session.from_config(peer_id), self.transport, notify=self.send_client)
        self.fn_dict = {}
        self.register_function('broadcast', self.node.broadcast)

    def register_function(self, name, fn):
        self.fn_dict[name] = fn

    def call_function(self, name, *args):
        return self.fn_dict[name](*args)

    def send_client(self, message, data):
        try:
            self._pipe.send((message, data))
        except (OSError, EOFError):
            pconn_log('simulation pipe closed, dropping %s', message)

    def communicate_loop(self):
        self.node.start()
        alive = True
        while alive:
            deadline = self.node.next_deadline()
            timeout = 0.5 if deadline is None else max(0.0, min(0.5, deadline - time.monotonic()))
            readable = self.transport.poll(timeout, extra=[self._pipe])
            if self._pipe in readable:
                try:
                    msg, data = self._pipe.recv()
                except (OSError, EOFError):
                    pconn_log('simulation pipe closed, exiting')
                    break
                if msg == 'quit':
                    pconn_log('terminated by simulation')
                    alive = False
                else:
                    try:
                        self.call_function(msg, *data)
                    except KeyError:
                        pconn_log('unknown request %s from simulation', msg)
            self.node.run_timers()
        self.transport.shutdown()
        self._pipe.close()


def _start_peer_connection(client_pipe, directory_ip, directory_port, peer_id):
    conn = PeerConnectionHandler(client_pipe, directory_ip, directory_port, peer_id)
    conn.communicate_loop()


class PeerConnectionProxy(object):
    def __init__(self, directory_ip=None, directory_port=None, peer_id=None):
        directory_ip = directory_ip if directory_ip is not None else config.DIRECTORY_IP
        directory_port = directory_port if directory_port is not None else config.DIRECTORY_PORT
        self.pipe, _pipe = multiprocessing.Pipe()
        self.proc = multiprocessing.Process(target=_start_peer_connection,
            args=(_pipe, directory_ip, directory_port, peer_id), name='PeerConnection')
        self.proc.start()

    def poll(self):
        return self.pipe.poll()

    def send(self, list_object):
        self.pipe.send(list_object)

    def recv(self):
        return self.pipe.recv()

    def messages(self):
        '''every notification waiting in the pipe, without blocking'''
        while self.pipe.poll():
            yield self.pipe.recv()

    def broadcast(self, kind, payload):
        self.send(('broadcast', [kind, payload]))

    def quit(self):
        try:
            self.send(('quit', []))
        except (OSError, EOFError):
            pconn_log('peer process already gone')
        self.proc.join(2.0)


def start_peer_connection(directory_ip=None, directory_port=None, peer_id=None):
    return PeerConnectionProxy(directory_ip, directory_port, peer_id)
