'''
lobby.py -- session formation as a pure state machine

A peer contests the well known rendezvous name. The holder is the leader of the current
lobby epoch: it keeps the roster (leader first, join order after), answers discovery
`join` requests with a redirect to itself and accepts `join_host` requests until the roster
reaches capacity. Everyone else discovers the holder, is redirected and joins it.

transition(session, event) -> (session, effects) never performs I/O. It returns Effect
records that a PeerNode (node.py) executes against a transport, and the transport feeds
what happens back in as Event records.
'''
import enum
import random
import string
import dataclasses
from dataclasses import dataclass, field

import config
from retry import RetryPolicy
from protocol import Join, RedirectToHost, LobbyFull, JoinHost, Waiting, HostReady, Relay


class PeerState(enum.Enum):
    INIT = 'init'
    CLAIM_RENDEZVOUS = 'claim_rendezvous'
    DISCOVER = 'discover'
    JOIN_HOST = 'join_host'
    LEADER = 'leader'
    IN_LOBBY = 'in_lobby'
    GAVE_UP = 'gave_up'


class ConnectionState(enum.Enum):
    OPEN = 'open'
    CLOSED = 'closed'
    ERRORED = 'errored'


class Link(object):
    '''
    One end of a connection between two peers. Transports subclass this; the state
    machine only ever asks whether a link is still open.
    '''
    def __init__(self, remote=None):
        self.remote = remote
        self.state = ConnectionState.OPEN

    @property
    def is_open(self):
        return self.state == ConnectionState.OPEN

    def mark_closed(self):
        if self.state == ConnectionState.OPEN:
            self.state = ConnectionState.CLOSED

    def mark_errored(self):
        self.state = ConnectionState.ERRORED

    def __repr__(self):
        return f'<{type(self).__name__} {self.remote} {self.state.value}>'


PEER_ID_CHARS = string.digits + string.ascii_lowercase


def new_peer_id(prefix=None, rng=random):
    if prefix is None:
        prefix = config.PEER_ID_PREFIX
    return prefix + ''.join(rng.choice(PEER_ID_CHARS) for _ in range(8))


@dataclass(frozen=True)
class RetryDelays:
    claim_fail: float = 1.0
    lobby_full: float = 2.0
    discovery_error: float = 3.0
    host_full: float = 1.0
    host_error: float = 3.0

    @classmethod
    def from_config(cls):
        return cls(config.CLAIM_FAIL_DELAY, config.LOBBY_FULL_DELAY, config.DISCOVERY_ERROR_DELAY,
                   config.HOST_FULL_DELAY, config.HOST_ERROR_DELAY)


@dataclass(frozen=True)
class Session:
    '''
    Everything one peer knows about its lobby. Replaced, never mutated: transition() returns
    a new Session built with dataclasses.replace(). `members` maps a roster peer id to the
    link currently tracked for it (leader only).
    '''
    peer_id: str
    capacity: int
    rendezvous_id: str
    state: PeerState = PeerState.INIT
    roster: tuple = ()
    members: dict = field(default_factory=dict)
    host_id: str = None
    host_link: Link = None
    discovery_link: Link = None
    attempts: int = 0
    wake_token: int = 0
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    delays: RetryDelays = field(default_factory=RetryDelays)

    @classmethod
    def from_config(cls, peer_id=None):
        return cls(peer_id or new_peer_id(), config.LOBBY_SIZE, config.RENDEZVOUS_ID,
                   policy=RetryPolicy.from_config(), delays=RetryDelays.from_config())

    @property
    def full(self):
        return len(self.roster) == self.capacity

    @property
    def is_leader(self):
        return self.state == PeerState.LEADER

    @property
    def connected(self):
        return self.state in (PeerState.LEADER, PeerState.IN_LOBBY)

    def member_for_link(self, link):
        for peer_id, tracked in self.members.items():
            if tracked is link:
                return peer_id
        return None


# -------- events fed into the state machine --------

@dataclass(frozen=True)
class Start:
    pass

@dataclass(frozen=True)
class EndpointOpened:
    pass

@dataclass(frozen=True)
class EndpointFailed:
    reason: str = ''

@dataclass(frozen=True)
class ClaimResult:
    ok: bool

@dataclass(frozen=True)
class Connected:
    link: Link
    purpose: str # 'discover' or 'host'

@dataclass(frozen=True)
class ConnectFailed:
    purpose: str
    reason: str = ''

@dataclass(frozen=True)
class Received:
    link: Link
    msg: object

@dataclass(frozen=True)
class Closed:
    link: Link

@dataclass(frozen=True)
class Wakeup:
    token: int

@dataclass(frozen=True)
class LocalBroadcast:
    kind: str
    payload: dict


# -------- effects returned by the state machine --------

@dataclass(frozen=True)
class OpenEndpoint:
    peer_id: str

@dataclass(frozen=True)
class ClaimSlot:
    name: str

@dataclass(frozen=True)
class Connect:
    target: str
    purpose: str

@dataclass(frozen=True)
class Send:
    link: Link
    msg: object

@dataclass(frozen=True)
class Close:
    link: Link

@dataclass(frozen=True)
class Schedule:
    delay: float
    event: object

@dataclass(frozen=True)
class Deliver:
    relay: Relay

@dataclass(frozen=True)
class Status:
    text: str

@dataclass(frozen=True)
class RosterChanged:
    roster: tuple

@dataclass(frozen=True)
class GaveUp:
    reason: str


# -------- transitions --------

def _schedule(session, delay, **changes):
    token = session.wake_token + 1
    session = dataclasses.replace(session, wake_token=token, **changes)
    return session, Schedule(delay, Wakeup(token))


def _retry_claim(session, delay, reason):
    '''
    Abandon the current round and go back to claiming the rendezvous name after `delay`.
    Gives up once the retry policy is exhausted.
    '''
    effects = []
    for link in (session.discovery_link, session.host_link):
        if link is not None and link.is_open:
            effects.append(Close(link))
    if session.roster:
        effects.append(RosterChanged(()))
    attempts = session.attempts + 1
    base = dict(roster=(), members={}, host_id=None, host_link=None, discovery_link=None, attempts=attempts)
    if not session.policy.should_retry(attempts):
        session = dataclasses.replace(session, state=PeerState.GAVE_UP, **base)
        effects.append(Status(f'Gave up after {attempts - 1} attempts: {reason}'))
        effects.append(GaveUp(reason))
        return session, effects
    delay = session.policy.get_delay(attempts, delay)
    session, wake = _schedule(session, delay, state=PeerState.CLAIM_RENDEZVOUS, **base)
    effects.append(wake)
    return session, effects


def _waiting_status(session):
    return Status(f'Waiting for {session.capacity} players... ({len(session.roster)}/{session.capacity})')


def _leader_join_host(session, link, msg):
    peer_id = msg.peer_id
    roster = session.roster
    members = session.members
    tracked = members.get(peer_id)
    if peer_id == session.peer_id:
        return session, [Close(link)]
    owner = session.member_for_link(link)
    if owner is not None and owner != peer_id:
        # a link speaks for one member only
        return session, [Send(link, Waiting(len(roster), session.capacity))]
    if peer_id in roster:
        if tracked is not None and tracked is not link and tracked.is_open:
            # first open connection wins
            return session, [Send(link, Waiting(len(roster), session.capacity))]
    elif len(roster) >= session.capacity:
        return session, [Send(link, LobbyFull()), Close(link)]
    else:
        roster = roster + (peer_id,)
    members = dict(members)
    members[peer_id] = link
    session = dataclasses.replace(session, roster=roster, members=members)
    effects = [_waiting_status(session), RosterChanged(roster)]
    if session.full:
        ready = HostReady(session.peer_id, roster)
        for member in roster[1:]:
            member_link = members.get(member)
            if member_link is not None and member_link.is_open:
                effects.append(Send(member_link, ready))
    else:
        effects.append(Send(link, Waiting(len(roster), session.capacity)))
    return session, effects


def _leader_relay(session, link, msg):
    sender = session.member_for_link(link)
    if sender is None:
        return session, []
    relay = Relay(msg.kind, sender, msg.payload)
    effects = []
    for peer_id, member_link in session.members.items():
        if peer_id != sender and member_link.is_open:
            effects.append(Send(member_link, relay))
    effects.append(Deliver(relay))
    return session, effects


def _leader_received(session, link, msg):
    if isinstance(msg, Join):
        if session.full:
            return session, [Send(link, LobbyFull()), Close(link)]
        redirect = RedirectToHost(session.peer_id, len(session.roster), session.capacity)
        return session, [Send(link, redirect), Close(link)]
    if isinstance(msg, JoinHost):
        return _leader_join_host(session, link, msg)
    if isinstance(msg, Relay):
        return _leader_relay(session, link, msg)
    return session, []


def _leader_closed(session, link):
    peer_id = session.member_for_link(link)
    if peer_id is None:
        # discovery connection, or a link that was already replaced
        return session, []
    members = dict(session.members)
    del members[peer_id]
    roster = tuple(p for p in session.roster if p != peer_id)
    session = dataclasses.replace(session, roster=roster, members=members)
    return session, [_waiting_status(session), RosterChanged(roster)]


def _member_received(session, link, msg):
    if session.state == PeerState.DISCOVER and link is session.discovery_link:
        if isinstance(msg, RedirectToHost):
            session = dataclasses.replace(session, state=PeerState.JOIN_HOST, host_id=msg.host_id,
                                          discovery_link=None)
            return session, [Close(link), Status('Connecting to host...'), Connect(msg.host_id, 'host')]
        if isinstance(msg, LobbyFull):
            session, effects = _retry_claim(session, session.delays.lobby_full, 'lobby full')
            return session, [Status('Lobby full, starting new lobby...')] + effects
        return session, []
    if link is not session.host_link:
        return session, []
    if isinstance(msg, HostReady):
        session = dataclasses.replace(session, state=PeerState.IN_LOBBY, roster=tuple(msg.all_players),
                                      host_id=msg.host_id, attempts=0)
        return session, [Status(f'Connected to host in {len(session.roster)}-player lobby!'),
                         RosterChanged(session.roster)]
    if isinstance(msg, Waiting):
        return session, [Status(f'Waiting in queue... ({msg.current}/{msg.total})')]
    if isinstance(msg, LobbyFull):
        session, effects = _retry_claim(session, session.delays.host_full, 'host lobby full')
        return session, [Status('Lobby full, starting new lobby...')] + effects
    if isinstance(msg, Relay):
        return session, [Deliver(msg)]
    return session, []


def _broadcast(session, event):
    relay = Relay(event.kind, session.peer_id, event.payload)
    if session.state == PeerState.LEADER:
        return session, [Send(link, relay) for link in session.members.values() if link.is_open]
    if session.state == PeerState.IN_LOBBY and session.host_link is not None and session.host_link.is_open:
        return session, [Send(session.host_link, relay)]
    return session, []


def transition(session, event):
    '''apply one event to a session, returning the new session and the effects to run'''
    state = session.state
    if state == PeerState.GAVE_UP:
        if isinstance(event, (Connected, Received)):
            return session, [Close(event.link)]
        return session, []

    if isinstance(event, Start):
        if state != PeerState.INIT:
            return session, []
        return session, [Status('Connecting...'), OpenEndpoint(session.peer_id)]

    if isinstance(event, EndpointOpened):
        if state != PeerState.INIT:
            return session, []
        session = dataclasses.replace(session, state=PeerState.CLAIM_RENDEZVOUS)
        return session, [Status(f'Connected as {session.peer_id}'), ClaimSlot(session.rendezvous_id)]

    if isinstance(event, EndpointFailed):
        if state != PeerState.INIT:
            return session, []
        attempts = session.attempts + 1
        if not session.policy.should_retry(attempts):
            session = dataclasses.replace(session, state=PeerState.GAVE_UP, attempts=attempts)
            return session, [Status(f'Peer error: {event.reason}'), GaveUp(event.reason)]
        session = dataclasses.replace(session, attempts=attempts)
        delay = session.policy.get_delay(attempts, session.delays.discovery_error)
        return session, [Status(f'Peer error: {event.reason}'), Schedule(delay, Start())]

    if isinstance(event, Wakeup):
        if event.token != session.wake_token:
            return session, []
        if state == PeerState.CLAIM_RENDEZVOUS:
            return session, [ClaimSlot(session.rendezvous_id)]
        if state == PeerState.DISCOVER:
            return session, [Status('Discovering lobby...'), Connect(session.rendezvous_id, 'discover')]
        return session, []

    if isinstance(event, ClaimResult):
        if state != PeerState.CLAIM_RENDEZVOUS:
            return session, []
        if event.ok:
            session = dataclasses.replace(session, state=PeerState.LEADER, roster=(session.peer_id,),
                                          members={}, host_id=session.peer_id, attempts=0)
            return session, [_waiting_status(session), RosterChanged(session.roster)]
        session, wake = _schedule(session, session.delays.claim_fail, state=PeerState.DISCOVER)
        return session, [wake]

    if isinstance(event, Connected):
        if event.purpose == 'discover' and state == PeerState.DISCOVER and session.discovery_link is None:
            session = dataclasses.replace(session, discovery_link=event.link)
            return session, [Send(event.link, Join(session.peer_id))]
        if event.purpose == 'host' and state == PeerState.JOIN_HOST and session.host_link is None:
            session = dataclasses.replace(session, host_link=event.link)
            return session, [Send(event.link, JoinHost(session.peer_id))]
        return session, [Close(event.link)]

    if isinstance(event, ConnectFailed):
        if event.purpose == 'discover' and state == PeerState.DISCOVER:
            session, effects = _retry_claim(session, session.delays.discovery_error, 'discovery failed')
            return session, [Status('Failed to discover lobby')] + effects
        if event.purpose == 'host' and state == PeerState.JOIN_HOST:
            session, effects = _retry_claim(session, session.delays.host_error, 'host unreachable')
            return session, [Status('Failed to connect to host')] + effects
        return session, []

    if isinstance(event, Received):
        if state == PeerState.LEADER:
            return _leader_received(session, event.link, event.msg)
        return _member_received(session, event.link, event.msg)

    if isinstance(event, Closed):
        if state == PeerState.LEADER:
            return _leader_closed(session, event.link)
        if event.link is session.discovery_link and state == PeerState.DISCOVER:
            session, effects = _retry_claim(session, session.delays.discovery_error, 'discovery closed')
            return session, [Status('Failed to discover lobby')] + effects
        if event.link is session.host_link and state in (PeerState.JOIN_HOST, PeerState.IN_LOBBY):
            session, effects = _retry_claim(session, session.delays.host_error, 'host connection lost')
            return session, [Status('Host connection lost')] + effects
        return session, []

    if isinstance(event, LocalBroadcast):
        return _broadcast(session, event)

    raise TypeError(f'unknown lobby event {event!r}')
