'''
loopback.py -- in-memory network for running several PeerNodes in one process

Every transport call is turned into a queued delivery so events reach nodes in the order
a real network would deliver them on one connection. Time only moves when advance() is
called, which makes retry delays and heartbeats testable without sleeping.
'''
import copy
from collections import deque

import logutil
import lobby
from node import PeerNode, Transport
from directory import Directory


class LoopbackLink(lobby.Link):
    def __init__(self, transport, remote):
        lobby.Link.__init__(self, remote)
        self.transport = transport
        self.peer = None


class LoopbackTransport(Transport):
    def __init__(self, network):
        self.network = network
        self.links = []
        self.online = True

    def _post(self, fn, *args, to=None):
        self.network.pending.append((to or self, fn, args))

    def open_endpoint(self, peer_id):
        if self.network.directory.register(peer_id, self, self):
            self._post(self.node.dispatch, lobby.EndpointOpened())
        else:
            self._post(self.node.dispatch, lobby.EndpointFailed(f'peer id {peer_id} is taken'))

    def claim(self, name):
        ok = self.network.directory.register(name, self, self)
        self._post(self.node.dispatch, lobby.ClaimResult(ok))

    def connect(self, target, purpose):
        remote = self.network.directory.lookup(target)
        if remote is None or not remote.online or target in self.network.unreachable:
            self._post(self.node.dispatch, lobby.ConnectFailed(purpose, f'{target} unreachable'))
            return
        local = LoopbackLink(self, target)
        far = LoopbackLink(remote, self.node.peer_id)
        local.peer = far
        far.peer = local
        self.links.append(local)
        remote.links.append(far)
        self._post(self.node.dispatch, lobby.Connected(local, purpose))

    def send(self, link, data):
        if not link.is_open:
            return
        far = link.peer
        self._post(far.transport.node.on_data, far, copy.deepcopy(data), to=far.transport)

    def close(self, link):
        if not link.is_open:
            return
        link.mark_closed()
        far = link.peer
        far.mark_closed()
        self._drop(link)
        far.transport._drop(far)
        self._post(far.transport.node.dispatch, lobby.Closed(far), to=far.transport)

    def _drop(self, link):
        if link in self.links:
            self.links.remove(link)

    def disconnect(self):
        '''the process went away: every link closes and its directory names are freed'''
        self.online = False
        for link in list(self.links):
            self.close(link)
        self.network.directory.release_all(self)


class LoopbackNetwork(object):
    def __init__(self):
        self.now = 0.0
        self.directory = Directory()
        self.pending = deque()
        self.nodes = []
        self.unreachable = set()
        self.notifications = {}

    def clock(self):
        return self.now

    def add_peer(self, session, heartbeat_interval=0):
        transport = LoopbackTransport(self)
        log = []
        node = PeerNode(session, transport, clock=self.clock,
                        notify=lambda kind, data: log.append((kind, data)),
                        heartbeat_interval=heartbeat_interval)
        self.notifications[session.peer_id] = log
        self.nodes.append(node)
        return node

    def node(self, peer_id):
        for node in self.nodes:
            if node.peer_id == peer_id:
                return node
        raise KeyError(peer_id)

    def run_until_idle(self, limit=100000):
        '''deliver queued events and due timers until nothing is left to do at this instant'''
        steps = 0
        while True:
            while self.pending:
                target, fn, args = self.pending.popleft()
                if target.online:
                    fn(*args)
                steps += 1
                if steps > limit:
                    raise RuntimeError('loopback network did not settle')
            ran = sum(node.run_timers() for node in self.nodes if node.transport.online)
            if not ran and not self.pending:
                return steps

    def advance(self, dt):
        '''move the clock forward by dt, running timers at the moment they fall due'''
        end = self.now + dt
        self.run_until_idle()
        while True:
            deadlines = [d for d in (n.next_deadline() for n in self.nodes if n.transport.online) if d is not None]
            due = min(deadlines) if deadlines else None
            if due is None or due > end:
                break
            self.now = max(self.now, due)
            self.run_until_idle()
        self.now = end
        self.run_until_idle()
        logutil.log('LOOPBACK', f't={self.now:.2f}', level='DEBUG')
