'''
transport.py -- socket transport for a PeerNode

Each peer listens on its own msocket endpoint and publishes that address in the directory
under its peer id. Claiming the rendezvous name registers the same address under that
name, so a discovery connection to the rendezvous holder lands on the leader's endpoint.
'''
import select

import config
import logutil
import msocket
import lobby
from node import Transport
from directory import DirectoryClient, DirectoryError


def transport_log(msg, level='INFO'):
    logutil.log('TRANSPORT', msg, level)


class SocketLink(lobby.Link):
    def __init__(self, conn, remote=None):
        lobby.Link.__init__(self, remote)
        self.conn = conn

    def fileno(self):
        return self.conn.fileno()


class SocketTransport(Transport):
    def __init__(self, directory_ip=None, directory_port=None, ip=None):
        self.directory_ip = directory_ip if directory_ip is not None else config.DIRECTORY_IP
        self.directory_port = directory_port if directory_port is not None else config.DIRECTORY_PORT
        self.ip = ip if ip is not None else config.PEER_IP
        self.listener = None
        self.directory = None
        self.links = []

    @property
    def address(self):
        return self.listener.address if self.listener is not None else None

    def open_endpoint(self, peer_id):
        try:
            self.listener = msocket.Listener(self.ip, 0)
            self.directory = DirectoryClient(self.directory_ip, self.directory_port)
            ok = self.directory.register(peer_id, self.address)
        except (DirectoryError, OSError) as ex:
            transport_log(f'endpoint failed: {ex}', level='ERROR')
            self.node.dispatch(lobby.EndpointFailed(str(ex)))
            return
        if not ok:
            self.node.dispatch(lobby.EndpointFailed(f'peer id {peer_id} is taken'))
            return
        transport_log(f'{peer_id} listening on {self.address[0]}:{self.address[1]}')
        self.node.dispatch(lobby.EndpointOpened())

    def claim(self, name):
        try:
            ok = self.directory.register(name, self.address)
        except DirectoryError as ex:
            transport_log(str(ex), level='ERROR')
            ok = False
        self.node.dispatch(lobby.ClaimResult(ok))

    def connect(self, target, purpose):
        try:
            address = self.directory.lookup(target)
            if address is None:
                raise DirectoryError(f'{target} is not registered')
            conn = msocket.Client(*address)
        except (DirectoryError,) + msocket.CONNECTION_ERRORS as ex:
            transport_log(f'connect to {target} failed: {ex}', level='WARN')
            self.node.dispatch(lobby.ConnectFailed(purpose, str(ex)))
            return
        link = SocketLink(conn, target)
        self.links.append(link)
        self.node.dispatch(lobby.Connected(link, purpose))

    def send(self, link, data):
        if not link.is_open:
            return
        try:
            link.conn.send(data)
        except msocket.CONNECTION_ERRORS as ex:
            transport_log(f'send to {link.remote} failed: {ex}', level='WARN')
            self._lost(link, errored=True)

    def close(self, link):
        if link in self.links:
            self.links.remove(link)
        if link.is_open:
            link.mark_closed()
            link.conn.close()

    def _lost(self, link, errored=False):
        if link in self.links:
            self.links.remove(link)
        if errored:
            link.mark_errored()
        else:
            link.mark_closed()
        link.conn.close()
        transport_log(f'connection to {link.remote} {link.state.value}')
        self.node.dispatch(lobby.Closed(link))

    def fds(self):
        '''everything poll() selects on'''
        return ([self.listener] if self.listener is not None else []) + list(self.links)

    def poll(self, timeout=0.0, extra=()):
        '''
        Accept incoming connections and read every link with data waiting. Returns the
        members of `extra` that are readable so the caller can share one select() call.
        '''
        r, _, _ = select.select(self.fds() + list(extra), [], [], timeout)
        for link in list(self.links):
            if link not in r:
                continue
            try:
                data = link.conn.recv()
            except EOFError:
                self._lost(link)
                continue
            except msocket.CONNECTION_ERRORS as ex:
                transport_log(f'recv from {link.remote} failed: {ex}', level='WARN')
                self._lost(link, errored=True)
                continue
            self.node.on_data(link, data)
        if self.listener is not None and self.listener in r:
            try:
                conn = self.listener.accept()
            except msocket.CONNECTION_ERRORS as ex:
                transport_log(f'rejected incoming connection: {ex}', level='WARN')
            else:
                self.links.append(SocketLink(conn, 'incoming'))
        return [fd for fd in extra if fd in r]

    def shutdown(self):
        for link in list(self.links):
            self.close(link)
        if self.directory is not None:
            self.directory.close()
            self.directory = None
        if self.listener is not None:
            self.listener.close()
            self.listener = None
