import logging
import os

import pytest

from frpsetup.discovery import ProcessDiscovery
from frpsetup.pid_store import MemoryPidRepository
from frpsetup.settings import Settings
from frpsetup.supervisor import ProcessSupervisor


class FakeProbe:
    def __init__(self, alive=()):
        self.alive = set(alive)
        self.calls = []

    def is_alive(self, pid):
        self.calls.append(pid)
        return pid in self.alive


class FakeSignals:
    def __init__(self, probe=None, errors=None):
        self.sent = []
        self.probe = probe
        self.errors = errors or {}

    def __call__(self, pid, sig):
        if pid in self.errors:
            raise self.errors[pid]
        self.sent.append((pid, sig))
        if self.probe is not None:
            self.probe.alive.discard(pid)


class FakeSpawner:
    def __init__(self, pid=4242, error=None):
        self.pid = pid
        self.error = error
        self.calls = []

    def __call__(self, args, log_path, cwd=None):
        self.calls.append((list(args), log_path, cwd))
        if self.error is not None:
            raise self.error
        return self.pid


class FakeStrategy:
    def __init__(self, name, result=None, available=True, error=None):
        self.name = name
        self.result = set(result or ())
        self.available = available
        self.error = error
        self.calls = []

    def is_available(self):
        return self.available

    def find(self, names):
        self.calls.append(list(names))
        if self.error is not None:
            raise self.error
        return set(self.result)


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def signals(probe):
    return FakeSignals(probe)


@pytest.fixture
def spawner():
    return FakeSpawner()


@pytest.fixture
def store(tmp_path):
    return MemoryPidRepository(str(tmp_path))


@pytest.fixture
def strategy():
    return FakeStrategy('fake')


@pytest.fixture
def supervisor(store, probe, signals, spawner, strategy):
    discovery = ProcessDiscovery([strategy], own_pid=os.getpid())
    return ProcessSupervisor(store, probe=probe, discovery=discovery, send_signal=signals, spawn=spawner)


@pytest.fixture
def settings(tmp_path):
    return Settings(workdir=str(tmp_path), download_base='https://example.invalid/frp')


@pytest.fixture(autouse=True)
def reset_frpsetup_logger():
    yield
    logger = logging.getLogger('frpsetup')
    logger.handlers = []
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def orchestrator(settings, store, supervisor, tmp_path):
    from frpsetup.orchestrator import Orchestrator

    (tmp_path / 'frps').write_text('')
    (tmp_path / 'frpc').write_text('')
    return Orchestrator(settings, store=store, supervisor=supervisor)
