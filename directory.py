'''
directory.py -- rendezvous directory: who holds which name

Peers register their own id (so others can reach them) and contest the rendezvous name.
A name has at most one holder; a registration lasts until the holder releases it or its
directory connection goes away, which is how a new lobby epoch can start after a leader
quits.

Run standalone with:
    python directory.py [host[:port]|LAN]
'''
# standard library imports
import select
import sys

# local imports
import config
import logutil
import msocket


def dir_log(msg, level='INFO'):
    logutil.log('DIRECTORY', msg, level)


class DirectoryError(RuntimeError):
    '''the directory service could not be reached or answered nonsense'''


class Directory(object):
    '''In memory registry: name -> (owner, address).'''
    def __init__(self):
        self.names = {}

    def register(self, name, owner, address=None):
        '''True if `owner` now holds `name`. Re-registering a name you already hold succeeds.'''
        held = self.names.get(name)
        if held is not None and held[0] is not owner:
            return False
        self.names[name] = (owner, address)
        return True

    def lookup(self, name):
        held = self.names.get(name)
        return held[1] if held is not None else None

    def holder(self, name):
        held = self.names.get(name)
        return held[0] if held is not None else None

    def release(self, name, owner):
        held = self.names.get(name)
        if held is None or held[0] is not owner:
            return False
        del self.names[name]
        return True

    def release_all(self, owner):
        '''drop every registration held by `owner`, returning the names freed'''
        names = [name for name, (o, _) in self.names.items() if o is owner]
        for name in names:
            del self.names[name]
        return names


class DirectoryServer(object):
    '''
    Serves a Directory over msocket connections. Requests are (msg, data) tuples:
        ('register', [name, address]) -> ('registered', [ok])
        ('lookup', [name])            -> ('address', [address or None])
        ('release', [name])           -> ('released', [ok])
    '''
    def __init__(self, ip=None, port=None):
        self.ip = ip if ip is not None else config.DIRECTORY_IP
        self.port = port if port is not None else config.DIRECTORY_PORT
        self.listener = msocket.Listener(self.ip, self.port)
        self.address = self.listener.address
        self.directory = Directory()
        self.connections = []
        self.fn_dict = {}
        self.register_function('register', self.register)
        self.register_function('lookup', self.lookup)
        self.register_function('release', self.release)
        dir_log(f'listening on {self.address[0]}:{self.address[1]}')

    def register_function(self, name, fn):
        self.fn_dict[name] = fn

    def call_function(self, name, conn, *args):
        return self.fn_dict[name](conn, *args)

    def register(self, conn, name, address):
        ok = self.directory.register(name, conn, tuple(address) if address is not None else None)
        dir_log(f'register {name} -> {address}: {"ok" if ok else "taken"}')
        return 'registered', [ok]

    def lookup(self, conn, name):
        return 'address', [self.directory.lookup(name)]

    def release(self, conn, name):
        ok = self.directory.release(name, conn)
        dir_log(f'release {name}: {ok}')
        return 'released', [ok]

    def drop(self, conn):
        names = self.directory.release_all(conn)
        if names:
            dir_log(f'client gone, released {", ".join(names)}')
        conn.close()
        if conn in self.connections:
            self.connections.remove(conn)

    def serve_once(self, timeout=0.5):
        r, _, _ = select.select([self.listener] + self.connections, [], [], timeout)
        for conn in list(self.connections):
            if conn not in r:
                continue
            try:
                msg, data = conn.recv()
            except msocket.CONNECTION_ERRORS:
                self.drop(conn)
                continue
            try:
                reply = self.call_function(msg, conn, *data)
            except (KeyError, TypeError) as ex:
                dir_log(f'bad request {msg!r}: {ex}', level='WARN')
                self.drop(conn)
                continue
            try:
                conn.send(reply)
            except msocket.CONNECTION_ERRORS:
                self.drop(conn)
        if self.listener in r:
            try:
                conn = self.listener.accept()
            except msocket.CONNECTION_ERRORS as ex:
                dir_log(f'rejected connection: {ex}', level='WARN')
            else:
                self.connections.append(conn)
                dir_log(f'client connected ({len(self.connections)} total)', level='DEBUG')

    def serve(self):
        try:
            while True:
                self.serve_once()
        except KeyboardInterrupt:
            dir_log('received keyboard interrupt', level='WARN')
        finally:
            self.close()

    def close(self):
        for conn in list(self.connections):
            self.drop(conn)
        self.listener.close()


class DirectoryClient(object):
    '''
    Blocking client. Registrations belong to this client's connection and are released
    by the server when it closes.
    '''
    def __init__(self, ip=None, port=None):
        ip = ip if ip is not None else config.DIRECTORY_IP
        port = port if port is not None else config.DIRECTORY_PORT
        try:
            self.conn = msocket.Client(ip, port)
        except msocket.CONNECTION_ERRORS as ex:
            raise DirectoryError(f'cannot reach directory at {ip}:{port}: {ex}')

    def _request(self, msg, *data):
        try:
            self.conn.send((msg, list(data)))
            reply, result = self.conn.recv()
        except msocket.CONNECTION_ERRORS as ex:
            raise DirectoryError(f'directory request {msg} failed: {ex}')
        return result[0]

    def register(self, name, address):
        return self._request('register', name, address)

    def lookup(self, name):
        address = self._request('lookup', name)
        return tuple(address) if address is not None else None

    def release(self, name):
        return self._request('release', name)

    def close(self):
        self.conn.close()


if __name__ == '__main__':
    ip = config.DIRECTORY_IP
    port = config.DIRECTORY_PORT
    if len(sys.argv) > 1:
        if sys.argv[1] == 'LAN':
            ip = msocket.get_network_ip()
        elif ':' in sys.argv[1]:
            ip, port = sys.argv[1].split(':', 1)
            try:
                port = int(port)
            except ValueError:
                port = config.DIRECTORY_PORT
        else:
            ip = sys.argv[1]
    DirectoryServer(ip, port).serve()
