'''
main.py -- headless peer

Joins (or leads) a lobby through the directory service, streams terrain around a ship
that follows a scripted course, and keeps its world in step with the leader's seed.

Terrain only streams out to config.HEADLESS_RENDER_DISTANCE. Every vertex is sampled on the
simulation thread, and at RENDER_DISTANCE the first update and every seed change take tens
of seconds.

    python main.py [directory_host[:port]]
'''
import math
import sys
import time

import pyglet.clock

import config
import logutil
from world import TerrainWorld
from replication import Replicator
from peer_connection import start_peer_connection


class Simulation(object):
    '''
    The simulation thread: drains lobby notifications, moves the reference point, streams
    and regenerates terrain and publishes local state, all from one scheduled update().
    '''
    def __init__(self, world, connection, clock=None, speed=20.0):
        self.world = world
        self.connection = connection
        self.replicator = Replicator(world, connection.broadcast)
        self.clock = clock if clock is not None else pyglet.clock.Clock()
        self.position = [0.0, 0.0]
        self.heading = 0.0
        self.speed = speed
        self.elapsed = 0.0
        self.frame_id = 0
        self.background = False
        self.running = True
        self.clock.schedule_interval(self.update, config.SIM_STEP_INTERVAL)

    def set_background(self, background):
        '''step and broadcast at the coarse intervals while not in the foreground'''
        if background == self.background:
            return
        self.background = background
        self.clock.unschedule(self.update)
        interval = config.BACKGROUND_STEP_INTERVAL if background else config.SIM_STEP_INTERVAL
        self.clock.schedule_interval(self.update, interval)
        self.replicator.set_background(background)
        logutil.log('MAIN', f'{"background" if background else "foreground"} step every {interval:.3f}s')

    def steer(self, dt):
        self.heading = (self.heading + 0.05 * dt) % (2 * math.pi)
        self.position[0] += math.cos(self.heading) * self.speed * dt
        self.position[1] += math.sin(self.heading) * self.speed * dt

    def update(self, dt):
        self.frame_id += 1
        logutil.set_frame(self.frame_id)
        self.elapsed += dt
        for msg, data in self.connection.messages():
            self.replicator.handle(msg, data)
        self.steer(dt)
        self.world.update(dt, self.position)
        self.replicator.publish(self.elapsed, self.position, self.heading)

    def run(self):
        while self.running:
            self.clock.tick()
            sleep = self.clock.get_sleep_time(True)
            if sleep:
                time.sleep(sleep)


def main():
    if len(sys.argv)>1:
        arg = sys.argv[1]
        if ':' in arg:
            host, port = arg.split(':', 1)
            config.DIRECTORY_IP = host
            try:
                config.DIRECTORY_PORT = int(port)
            except ValueError:
                pass
        else:
            config.DIRECTORY_IP = arg
        logutil.log("MAIN", f"Using directory at {config.DIRECTORY_IP}:{config.DIRECTORY_PORT}")
    world = TerrainWorld.from_config(config.HEADLESS_RENDER_DISTANCE)
    logutil.log("MAIN", f"terrain seed {world.seed}")
    connection = start_peer_connection()
    sim = Simulation(world, connection)
    try:
        sim.run()
    except KeyboardInterrupt:
        logutil.log("MAIN", "received keyboard interrupt", level="WARN")
    finally:
        logutil.log("MAIN", "terminating peer process")
        connection.quit()


if __name__ == '__main__':
    main()
