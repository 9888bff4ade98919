"""
PID-file backed supervision of the frps (server) and frpc (client) processes.

Each role is independently Untracked, TrackedRunning or TrackedStale. Stale
state is never stored: every read re-probes the recorded PID and deletes the
record when the process is gone, so callers never clean up PID files.
"""
import logging
import os
import re
import signal
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .discovery import ProcessDiscovery
from .errors import SpawnError
from .pid_store import PidRepository, Role

logger = logging.getLogger(__name__)

_PID_RE = re.compile(r'[0-9]+')

SIGNAL_SENT = 'sent'
SIGNAL_GONE = 'gone'
SIGNAL_DENIED = 'denied'


class SignalProbe:
    """Liveness via signal 0, reaping our own exited children first."""

    def is_alive(self, pid: int) -> bool:
        if not isinstance(pid, int) or pid <= 1:
            return False
        try:
            reaped, _ = os.waitpid(pid, os.WNOHANG)
            if reaped == pid:
                return False
        except ChildProcessError:
            pass
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # exists but belongs to another user
            return True
        return True


def spawn_detached(args: Sequence[str], log_path: str, cwd: Optional[str] = None) -> int:
    with open(log_path, 'ab') as log:
        proc = subprocess.Popen(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=log,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            start_new_session=True,
            close_fds=True,
        )
    return proc.pid


def parse_pid(raw: Optional[str]) -> Optional[int]:
    text = (raw or '').strip()
    if not _PID_RE.fullmatch(text):
        return None
    return int(text)


@dataclass
class RoleStatus:
    role: Role
    running: bool
    pid: Optional[int] = None
    stale: bool = False

    def to_dict(self) -> dict:
        return {
            'role': self.role.value,
            'running': self.running,
            'pid': self.pid,
            'stale': self.stale,
        }


@dataclass
class StoppedProcess:
    pid: int
    role: Optional[Role] = None


@dataclass
class StopReport:
    stopped: List[StoppedProcess] = field(default_factory=list)

    @property
    def any_stopped(self) -> bool:
        return bool(self.stopped)

    def to_dict(self) -> dict:
        return {
            'anyStopped': self.any_stopped,
            'stopped': [
                {'pid': p.pid, 'role': p.role.value if p.role else None}
                for p in self.stopped
            ],
        }


class ProcessSupervisor:
    def __init__(self, store: PidRepository, probe=None, discovery: Optional[ProcessDiscovery] = None,
                 send_signal: Callable[[int, int], None] = os.kill,
                 spawn: Callable[..., int] = spawn_detached):
        self.store = store
        self.probe = probe or SignalProbe()
        self.discovery = discovery or ProcessDiscovery()
        self.send_signal = send_signal
        self.spawn = spawn

    def _reconcile(self, role: Role) -> RoleStatus:
        raw = self.store.read(role)
        if raw is None:
            return RoleStatus(role, running=False)
        pid = parse_pid(raw)
        if pid is not None and self.probe.is_alive(pid):
            return RoleStatus(role, running=True, pid=pid)
        self.store.remove(role)
        return RoleStatus(role, running=False, stale=True)

    def start(self, role, executable_path: str, config_path: str) -> int:
        role = Role.parse(role)
        current = self._reconcile(role)
        if current.running:
            logger.warning('%s is already running (PID: %s); stop it first to apply a new config',
                           role.label, current.pid)
            return current.pid

        args = [executable_path, '-c', config_path]
        try:
            pid = self.spawn(args, self.store.log_path(role), self.store.workdir)
        except OSError as e:
            raise SpawnError(f'Could not start {role.label}: {e}') from e
        self.store.write(role, pid)
        logger.info('%s started with PID: %s', role.label, pid)
        return pid

    def status(self, role) -> RoleStatus:
        role = Role.parse(role)
        result = self._reconcile(role)
        self._report(result)
        if not result.running and not result.stale:
            logger.info('%s is not running', role.label)
        return result

    def status_all(self) -> List[RoleStatus]:
        results = [self._reconcile(role) for role in Role]
        for result in results:
            self._report(result)
        if not any(r.running for r in results):
            logger.info('No FRP processes are currently running')
        return results

    def _report(self, result: RoleStatus):
        if result.running:
            logger.info('%s is running (PID: %s)', result.role.label, result.pid)
        elif result.stale:
            logger.warning('%s PID file exists but process is not running', result.role.label)

    def stop(self, role=None) -> StopReport:
        """Stop the tracked process(es), falling back to process discovery.

        With ``role`` None both roles are handled. Discovery runs for the
        roles that had no live tracked PID, looking only for their binary
        names. A record whose process could not be signalled is kept.
        """
        roles = [Role.parse(role)] if role is not None else list(Role)
        report = StopReport()
        untracked = []

        for r in roles:
            current = self._reconcile(r)
            if not current.running:
                untracked.append(r)
                continue
            outcome = self._terminate(current.pid)
            if outcome == SIGNAL_SENT:
                logger.info('Stopped %s (PID: %s)', r.label, current.pid)
                report.stopped.append(StoppedProcess(current.pid, r))
            if outcome != SIGNAL_DENIED:
                self.store.remove(r)

        if untracked:
            for pid in self._discover_candidates([r.binary_name for r in untracked]):
                if self._terminate(pid) == SIGNAL_SENT:
                    logger.info('Stopped FRP process (PID: %s)', pid)
                    report.stopped.append(StoppedProcess(pid))

        if not report.any_stopped:
            logger.warning('No running FRP processes found')
        return report

    def _discover_candidates(self, names: List[str]) -> List[int]:
        pids = set()
        for token in self.discovery.discover(names):
            pid = parse_pid(token)
            if pid is None or pid == self.discovery.own_pid:
                continue
            if self.probe.is_alive(pid):
                pids.add(pid)
        return sorted(pids)

    def _terminate(self, pid: int) -> str:
        try:
            self.send_signal(pid, signal.SIGTERM)
        except ProcessLookupError:
            return SIGNAL_GONE
        except PermissionError:
            logger.warning('Permission denied stopping PID %s', pid)
            return SIGNAL_DENIED
        return SIGNAL_SENT
