'''
node.py -- runs the lobby state machine against a transport

PeerNode owns the current Session, feeds events through lobby.transition() and carries out
the returned effects: transport calls, timers and notifications for the simulation thread.
Timers live in a heap driven by an injected clock so the loopback network can run whole
lobbies on a manual clock.
'''
import heapq
import itertools
import time

import config
import logutil
import lobby
import protocol
from protocol import ProtocolError


def node_log(msg, level='INFO'):
    logutil.log('LOBBY', msg, level)


class Transport(object):
    '''
    What a PeerNode needs from the network. Results come back asynchronously as lobby
    events passed to node.dispatch(); received wire dicts go to node.on_data().
    '''
    node = None

    def bind(self, node):
        self.node = node

    def open_endpoint(self, peer_id):
        raise NotImplementedError

    def claim(self, name):
        raise NotImplementedError

    def connect(self, target, purpose):
        raise NotImplementedError

    def send(self, link, data):
        raise NotImplementedError

    def close(self, link):
        raise NotImplementedError


class PeerNode(object):
    def __init__(self, session, transport, clock=time.monotonic, notify=None, heartbeat_interval=None):
        self.session = session
        self.transport = transport
        self.clock = clock
        self.notify = notify if notify is not None else (lambda kind, data: None)
        self.heartbeat_interval = heartbeat_interval if heartbeat_interval is not None else config.HEARTBEAT_INTERVAL
        self.timers = []
        self._seq = itertools.count()
        self._queue = []
        self._dispatching = False
        transport.bind(self)

    @property
    def peer_id(self):
        return self.session.peer_id

    @property
    def state(self):
        return self.session.state

    def start(self):
        node_log(f'starting peer {self.peer_id}, lobby size {self.session.capacity}')
        if self.heartbeat_interval:
            self.call_later(self.heartbeat_interval, self._heartbeat)
        self.dispatch(lobby.Start())

    # -------- timers --------

    def call_later(self, delay, fn, *args):
        heapq.heappush(self.timers, (self.clock() + delay, next(self._seq), fn, args))

    def next_deadline(self):
        return self.timers[0][0] if self.timers else None

    def run_timers(self):
        '''run every timer that is due; returns how many ran'''
        count = 0
        now = self.clock()
        while self.timers and self.timers[0][0] <= now:
            _, _, fn, args = heapq.heappop(self.timers)
            fn(*args)
            count += 1
        return count

    def _heartbeat(self):
        self.notify('heartbeat', {'timestamp': time.time()})
        self.call_later(self.heartbeat_interval, self._heartbeat)

    # -------- events --------

    def on_data(self, link, data):
        try:
            msg = protocol.decode(data)
        except ProtocolError as ex:
            node_log(f'dropping malformed message from {link}: {ex}', level='WARN')
            return
        node_log(f'received {data.get("type")} from {link.remote}', level='DEBUG')
        self.dispatch(lobby.Received(link, msg))

    def broadcast(self, kind, payload):
        self.dispatch(lobby.LocalBroadcast(kind, payload))

    def dispatch(self, event):
        '''
        Feed an event to the state machine. Events raised while effects are running are
        queued and handled in order once the current event is done.
        '''
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                event = self._queue.pop(0)
                old_state = self.session.state
                self.session, effects = lobby.transition(self.session, event)
                if self.session.state != old_state:
                    node_log(f'{self.peer_id} {old_state.value} -> {self.session.state.value} on {type(event).__name__}')
                    self.notify('state', self.session.state.value)
                for effect in effects:
                    self._run(effect)
        finally:
            self._dispatching = False

    def _run(self, effect):
        t = self.transport
        if isinstance(effect, lobby.Send):
            node_log(f'sending {type(effect.msg).__name__} to {effect.link.remote}', level='DEBUG')
            t.send(effect.link, protocol.encode(effect.msg))
        elif isinstance(effect, lobby.Close):
            t.close(effect.link)
        elif isinstance(effect, lobby.Connect):
            node_log(f'connecting to {effect.target} ({effect.purpose})')
            t.connect(effect.target, effect.purpose)
        elif isinstance(effect, lobby.ClaimSlot):
            node_log(f'trying to claim {effect.name}')
            t.claim(effect.name)
        elif isinstance(effect, lobby.OpenEndpoint):
            t.open_endpoint(effect.peer_id)
        elif isinstance(effect, lobby.Schedule):
            node_log(f'retrying in {effect.delay}s', level='DEBUG')
            self.call_later(effect.delay, self.dispatch, effect.event)
        elif isinstance(effect, lobby.Deliver):
            self.notify('network_data', protocol.encode(effect.relay))
        elif isinstance(effect, lobby.Status):
            node_log(effect.text)
            self.notify('status', effect.text)
        elif isinstance(effect, lobby.RosterChanged):
            node_log(f'lobby now [{", ".join(effect.roster)}]')
            self.notify('roster', list(effect.roster))
        elif isinstance(effect, lobby.GaveUp):
            node_log(f'giving up: {effect.reason}', level='WARN')
            self.notify('gave_up', effect.reason)
        else:
            raise TypeError(f'unknown lobby effect {effect!r}')
