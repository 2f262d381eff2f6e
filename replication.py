'''
replication.py -- what the simulation thread sends and does with what it receives

The lobby relays opaque packets; this module gives them meaning. Every peer periodically
broadcasts its position and rotation, the leader also attaches its terrain seed, and a
member that sees a leader seed different from the one its world is heading to hands it to
TerrainWorld.on_host_seed_received().
'''
import config
import logutil


def repl_log(msg, level='INFO'):
    logutil.log('REPLICATION', msg, level)


class BroadcastThrottle(object):
    '''
    Rate limit for outgoing state packets, independent of the frame rate. While the
    application is in the background the coarser interval applies.
    '''
    def __init__(self, interval=None, background_interval=None):
        self.foreground_interval = interval if interval is not None else config.BROADCAST_INTERVAL
        self.background_interval = (background_interval if background_interval is not None
                                    else config.BACKGROUND_BROADCAST_INTERVAL)
        self.background = False
        self.last = None

    @property
    def interval(self):
        return self.background_interval if self.background else self.foreground_interval

    def set_background(self, background):
        self.background = background

    def ready(self, now):
        if self.last is None or now - self.last >= self.interval:
            self.last = now
            return True
        return False


class Replicator(object):
    '''
    send: callable(kind, payload) that hands a packet to the lobby, normally
    PeerConnectionProxy.broadcast or PeerNode.broadcast
    '''
    def __init__(self, world, send, throttle=None, transition_duration=None):
        self.world = world
        self.send = send
        self.throttle = throttle if throttle is not None else BroadcastThrottle()
        self.transition_duration = (transition_duration if transition_duration is not None
                                    else config.REGEN_DURATION)
        self.state = 'init'
        self.status = ''
        self.roster = ()
        self.remote_states = {}
        self.chat = []
        self.last_heartbeat = None
        self.gave_up = None
        self.fn_dict = {}
        self.register_function('status', self.on_status)
        self.register_function('state', self.on_state)
        self.register_function('roster', self.on_roster)
        self.register_function('heartbeat', self.on_heartbeat)
        self.register_function('network_data', self.on_network_data)
        self.register_function('gave_up', self.on_gave_up)

    def register_function(self, name, fn):
        self.fn_dict[name] = fn

    @property
    def is_leader(self):
        return self.state == 'leader'

    @property
    def host_id(self):
        return self.roster[0] if self.roster else None

    def handle(self, msg, data):
        fn = self.fn_dict.get(msg)
        if fn is None:
            repl_log(f'ignoring {msg}', level='WARN')
            return
        fn(data)

    def on_status(self, text):
        self.status = text

    def on_state(self, state):
        self.state = state

    def on_roster(self, roster):
        self.roster = tuple(roster)
        for peer_id in list(self.remote_states):
            if peer_id not in self.roster:
                del self.remote_states[peer_id]

    def on_heartbeat(self, data):
        self.last_heartbeat = data['timestamp']

    def on_gave_up(self, reason):
        self.gave_up = reason
        repl_log(f'lobby gave up ({reason}), continuing offline with seed {self.world.target_seed}', level='WARN')

    def on_network_data(self, data):
        kind = data.get('type')
        sender = data.get('peerId')
        payload = data.get('payload') or {}
        if kind == 'message':
            self.chat.append((sender, payload))
            return
        if kind != 'player_state':
            return
        self.remote_states[sender] = payload
        seed = payload.get('seed')
        if seed is None or self.is_leader:
            return
        if self.host_id is not None and sender != self.host_id:
            return
        if seed != self.world.target_seed:
            repl_log(f'host {sender} seed {seed} differs from {self.world.target_seed}')
            self.world.on_host_seed_received(seed, self.transition_duration)

    def set_background(self, background):
        self.throttle.set_background(background)

    def publish(self, now, position, rotation):
        '''broadcast local state if the throttle allows it; returns the payload sent or None'''
        if self.state not in ('leader', 'in_lobby'):
            return None
        if not self.throttle.ready(now):
            return None
        payload = {'position': list(position), 'rotation': rotation}
        if self.is_leader:
            payload['seed'] = self.world.target_seed
        self.send('player_state', payload)
        return payload

    def say(self, text):
        self.send('message', {'text': text})
