
# Session / lobby
LOBBY_SIZE = 3 # roster capacity, leader included
RENDEZVOUS_ID = 'NeonGameBootstrap-2025-001'
PEER_ID_PREFIX = 'ChainNode-'

# Retry delays in seconds.
CLAIM_FAIL_DELAY = 1.0 # slot already held -> discover
LOBBY_FULL_DELAY = 2.0 # discovery said lobby_full -> claim again
DISCOVERY_ERROR_DELAY = 3.0
HOST_FULL_DELAY = 1.0 # host said lobby_full -> claim again
HOST_ERROR_DELAY = 3.0 # host unreachable or gone -> claim again
# Number of failed rounds before a peer gives up (None retries forever).
RETRY_MAX_ATTEMPTS = 30

# Liveness tick posted by the background peer process.
HEARTBEAT_INTERVAL = 3.0

# Simulation pacing. Broadcasts are rate limited independently of the frame rate.
SIM_STEP_INTERVAL = 1.0/60
BROADCAST_INTERVAL = 0.1
# Coarser pacing used while the application is not in the foreground.
BACKGROUND_STEP_INTERVAL = 0.1
BACKGROUND_BROADCAST_INTERVAL = 2.0

# Terrain
CHUNK_SIZE = 200 # world units per chunk side
CHUNK_RESOLUTION = 32 # grid cells per chunk side, (CHUNK_RESOLUTION+1)**2 vertices
RENDER_DISTANCE = 3200
# The headless peer samples every vertex on the simulation thread; 3200 means ~800 chunks.
HEADLESS_RENDER_DISTANCE = 600
REGEN_DURATION = 2.0 # seconds to blend old terrain into a newly received seed
TERRAIN_SEED = None # None picks a random seed at startup

# Transport
DIRECTORY_IP = 'localhost'
DIRECTORY_PORT = 20226
PEER_IP = 'localhost'
AUTHKEY = b'password'

# Logging
LOG_LEVEL = 'INFO'
# Enable ANSI colors in logs.
LOG_COLOR = True
