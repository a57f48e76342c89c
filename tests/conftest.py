import random

import pytest

from honeylog.config import Config
from honeylog.exceptions import SendError
from honeylog.sampler import EMASampler


class FakeClock():

    def __init__(self, now=0.0):
        self.now = now


    def __call__(self):
        return self.now


    def advance(self, seconds):
        self.now += seconds


class RecordingSink():
    '''
    Stands in for libhoney, remembering every record it was handed. Records
    whose sampling key is in `failing_keys` are rejected.
    '''

    def __init__(self):
        self.sent = []
        self.failing_keys = set()


    def __call__(self, record, sample_rate, sample_key):
        if sample_key in self.failing_keys:
            raise SendError('rejected %s' % sample_key)
        self.sent.append((record, sample_rate, sample_key))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sampler(clock):
    return EMASampler(10, clock=clock)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def rng():
    return random.Random(1337)


@pytest.fixture
def config():
    return Config(
        writekey='test-key',
        dataset='test-dataset',
        api_host='https://api.honeycomb.io',
        sampling_fields=['user'],
        url_fields=['path'],
        path_patterns=[],
        query_params_filter=None,
        goal_sample_rate=10,
        max_line_length=128,
        adjustment_interval=15,
        server_port=8080,
    )
