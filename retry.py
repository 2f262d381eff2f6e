'''
retry.py -- bounded retry policy for the lobby's claim/discover/join rounds
'''
import config


class RetryPolicy(object):
    '''
    max_attempts: failed rounds allowed before giving up (None retries forever)
    backoff: 'fixed' uses each path's own delay, 'exponential' doubles it per attempt
    max_delay: ceiling for exponential delays
    '''
    def __init__(self, max_attempts=None, backoff='fixed', max_delay=30.0):
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.max_delay = max_delay

    @classmethod
    def from_config(cls):
        return cls(getattr(config, 'RETRY_MAX_ATTEMPTS', None))

    def should_retry(self, attempt):
        '''True if a round numbered `attempt` (1 based) may still be started'''
        return self.max_attempts is None or attempt <= self.max_attempts

    def get_delay(self, attempt, base_delay):
        if self.backoff == 'fixed':
            return base_delay
        if self.backoff == 'exponential':
            return min(self.max_delay, base_delay * 2 ** max(0, attempt - 1))
        raise ValueError(f'unknown backoff {self.backoff!r}')
