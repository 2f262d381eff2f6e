import os
import sys

import numpy as np

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from lobby import Session, RetryDelays, PeerState
from loopback import LoopbackNetwork
from replication import BroadcastThrottle, Replicator
from retry import RetryPolicy
from world import TerrainWorld


def _world(seed=111, streamed=False):
    world = TerrainWorld(seed, chunk_size=100, resolution=2, render_distance=150)
    if streamed:
        world.update(0.0, (0, 0))
    return world


def _replicator(world, state='in_lobby', roster=('A', 'B', 'C')):
    sent = []
    r = Replicator(world, lambda kind, payload: sent.append((kind, payload)),
                   throttle=BroadcastThrottle(0.1, 2.0), transition_duration=1.0)
    r.handle('state', state)
    r.handle('roster', list(roster))
    return r, sent


def _state_packet(sender, seed=None):
    payload = {'position': [0.0, 0.0], 'rotation': 0.0}
    if seed is not None:
        payload['seed'] = seed
    return {'type': 'player_state', 'peerId': sender, 'payload': payload}


def test_throttle():
    t = BroadcastThrottle(0.1, 2.0)
    assert t.ready(0.0)
    assert not t.ready(0.05)
    assert t.ready(0.15)
    t.set_background(True)
    assert not t.ready(1.0)
    assert t.ready(2.5)
    t.set_background(False)
    assert t.ready(2.7)


def test_publish_waits_for_a_lobby():
    r, sent = _replicator(_world(), state='claim_rendezvous', roster=())
    assert r.publish(0.0, (1.0, 2.0), 0.5) is None
    assert sent == []


def test_leader_attaches_seed():
    world = _world(seed=4242)
    r, sent = _replicator(world, state='leader', roster=('A',))
    payload = r.publish(0.0, (1.0, 2.0), 0.5)
    assert payload == {'position': [1.0, 2.0], 'rotation': 0.5, 'seed': 4242}
    assert sent == [('player_state', payload)]
    # throttled
    assert r.publish(0.01, (1.0, 2.0), 0.5) is None
    assert len(sent) == 1


def test_member_does_not_attach_seed():
    r, sent = _replicator(_world())
    payload = r.publish(0.0, (3.0, 4.0), 1.0)
    assert 'seed' not in payload


def test_member_adopts_host_seed():
    world = _world(seed=111)
    r, _ = _replicator(world)
    r.handle('network_data', _state_packet('A', seed=222))
    assert world.seed == 222
    assert r.remote_states['A']['seed'] == 222


def test_member_regenerates_streamed_terrain():
    world = _world(seed=111, streamed=True)
    r, _ = _replicator(world)
    r.handle('network_data', _state_packet('A', seed=222))
    transition = world.transition
    assert transition is not None
    assert transition.duration == 1.0
    assert world.target_seed == 222
    world.update(0.4, (0, 0))
    r.handle('network_data', _state_packet('A', seed=222))
    assert world.transition is transition
    world.update(1.0, (0, 0))
    assert world.seed == 222
    for key, chunk in world.cache.items():
        assert np.array_equal(chunk.heights, chunk.sample(222))


def test_seed_from_non_host_is_ignored():
    world = _world(seed=111)
    r, _ = _replicator(world)
    r.handle('network_data', _state_packet('B', seed=999))
    assert world.seed == 111
    assert 'B' in r.remote_states


def test_leader_ignores_seeds():
    world = _world(seed=111)
    r, _ = _replicator(world, state='leader', roster=('A', 'B'))
    r.handle('network_data', _state_packet('B', seed=999))
    assert world.seed == 111


def test_chat_and_roster_pruning():
    r, sent = _replicator(_world())
    r.handle('network_data', {'type': 'message', 'peerId': 'A', 'payload': {'text': 'hello'}})
    assert r.chat == [('A', {'text': 'hello'})]
    r.handle('network_data', _state_packet('C'))
    assert 'C' in r.remote_states
    r.handle('roster', ['A', 'B'])
    assert 'C' not in r.remote_states
    r.say('hi')
    assert sent[-1] == ('message', {'text': 'hi'})


def test_status_heartbeat_and_give_up():
    r, _ = _replicator(_world())
    r.handle('status', 'Waiting in queue... (2/3)')
    r.handle('heartbeat', {'timestamp': 12.5})
    r.handle('gave_up', 'discovery failed')
    r.handle('nonsense', None)
    assert r.status == 'Waiting in queue... (2/3)'
    assert r.last_heartbeat == 12.5
    assert r.gave_up == 'discovery failed'


def _session(peer_id):
    return Session(peer_id, 2, 'TestRendezvous', policy=RetryPolicy(), delays=RetryDelays())


def _pump(net, replicators):
    for peer_id, r in replicators.items():
        log = net.notifications[peer_id]
        for kind, data in log:
            r.handle(kind, data)
        del log[:]


def test_members_follow_leader_seed_over_the_lobby():
    net = LoopbackNetwork()
    a = net.add_peer(_session('A'))
    b = net.add_peer(_session('B'))
    worlds = {'A': _world(seed=111), 'B': _world(seed=222)}
    reps = {
        'A': Replicator(worlds['A'], a.broadcast, throttle=BroadcastThrottle(0.1, 2.0)),
        'B': Replicator(worlds['B'], b.broadcast, throttle=BroadcastThrottle(0.1, 2.0)),
    }
    a.start()
    net.run_until_idle()
    b.start()
    net.advance(1.0)
    _pump(net, reps)
    assert a.state == PeerState.LEADER and b.state == PeerState.IN_LOBBY
    assert reps['A'].is_leader
    assert reps['B'].host_id == 'A'

    reps['B'].publish(net.now, (5.0, 6.0), 0.0)
    reps['A'].publish(net.now, (0.0, 0.0), 0.0)
    net.run_until_idle()
    _pump(net, reps)
    assert worlds['B'].seed == 111
    assert worlds['A'].seed == 111
    assert reps['A'].remote_states['B']['position'] == [5.0, 6.0]
    assert reps['B'].remote_states['A']['seed'] == 111


def test_new_host_seed_accepted_after_roster_cleared():
    world = _world(seed=111)
    r, _ = _replicator(world, roster=('A', 'B'))
    r.handle('network_data', _state_packet('A'))
    # host lost: the lobby reports an empty roster before joining someone else
    r.handle('roster', [])
    assert r.host_id is None
    assert r.remote_states == {}
    r.handle('network_data', _state_packet('C', seed=333))
    assert world.seed == 333
