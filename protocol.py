'''
protocol.py -- lobby wire messages

Messages travel as plain dicts with a 'type' key so any transport that can move a dict
(multiprocessing.connection pickles them, the loopback network passes them as is) can
carry them. encode()/decode() convert between the dicts and the message classes.
'''
from dataclasses import dataclass, field


class ProtocolError(ValueError):
    '''a wire dict that is not a well formed lobby message'''


@dataclass(frozen=True)
class Join:
    '''discovery request sent to the rendezvous holder'''
    peer_id: str
    TYPE = 'join'


@dataclass(frozen=True)
class RedirectToHost:
    host_id: str
    current_players: int
    total_players: int
    TYPE = 'redirect_to_host'


@dataclass(frozen=True)
class LobbyFull:
    message: str = 'Lobby is full, try again later'
    TYPE = 'lobby_full'


@dataclass(frozen=True)
class JoinHost:
    '''direct roster join request sent to the leader'''
    peer_id: str
    TYPE = 'join_host'


@dataclass(frozen=True)
class Waiting:
    current: int
    total: int
    TYPE = 'waiting'


@dataclass(frozen=True)
class HostReady:
    host_id: str
    all_players: tuple
    TYPE = 'host_ready'


@dataclass(frozen=True)
class Relay:
    '''
    Opaque application state. kind is 'message' (free form) or 'player_state'; the payload
    is never interpreted by the lobby.
    '''
    kind: str
    peer_id: str
    payload: dict = field(default_factory=dict)


RELAY_KINDS = ('message', 'player_state')

# wire field name -> attribute name
_FIELDS = {
    Join: (('peerId', 'peer_id'),),
    RedirectToHost: (('hostId', 'host_id'), ('currentPlayers', 'current_players'), ('totalPlayers', 'total_players')),
    LobbyFull: (('message', 'message'),),
    JoinHost: (('peerId', 'peer_id'),),
    Waiting: (('current', 'current'), ('total', 'total')),
    HostReady: (('hostId', 'host_id'), ('allPlayers', 'all_players')),
}
_TYPES = dict((cls.TYPE, cls) for cls in _FIELDS)


def encode(msg):
    if isinstance(msg, Relay):
        return {'type': msg.kind, 'peerId': msg.peer_id, 'payload': dict(msg.payload)}
    try:
        fields = _FIELDS[type(msg)]
    except KeyError:
        raise ProtocolError(f'cannot encode {msg!r}')
    data = {'type': msg.TYPE}
    for wire, attr in fields:
        value = getattr(msg, attr)
        data[wire] = list(value) if isinstance(value, tuple) else value
    return data


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _is_id_list(value):
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


# wire field name -> (check, expected)
_CHECKS = {
    'peerId': (lambda v: isinstance(v, str), 'a string'),
    'hostId': (lambda v: isinstance(v, str), 'a string'),
    'message': (lambda v: isinstance(v, str), 'a string'),
    'current': (_is_int, 'an int'),
    'total': (_is_int, 'an int'),
    'currentPlayers': (_is_int, 'an int'),
    'totalPlayers': (_is_int, 'an int'),
    'allPlayers': (_is_id_list, 'a list of ids'),
}


def _check(kind, wire, value):
    check, expected = _CHECKS[wire]
    if not check(value):
        raise ProtocolError(f'{kind} {wire} must be {expected}, got {type(value).__name__}')
    return value


def decode(data):
    if not isinstance(data, dict):
        raise ProtocolError(f'expected a dict, got {type(data).__name__}')
    kind = data.get('type')
    if not isinstance(kind, str):
        raise ProtocolError(f'message type must be a string, got {type(kind).__name__}')
    if kind in RELAY_KINDS:
        payload = data.get('payload', {})
        if not isinstance(payload, dict):
            raise ProtocolError(f'{kind} payload must be a dict')
        return Relay(kind, _check(kind, 'peerId', data.get('peerId')), payload)
    cls = _TYPES.get(kind)
    if cls is None:
        raise ProtocolError(f'unknown message type {kind!r}')
    kwargs = {}
    for wire, attr in _FIELDS[cls]:
        if wire not in data:
            if cls is LobbyFull:
                continue
            raise ProtocolError(f'{kind} is missing {wire}')
        value = _check(kind, wire, data[wire])
        kwargs[attr] = tuple(value) if isinstance(value, list) else value
    return cls(**kwargs)
