"""
Best-effort discovery of untracked frps/frpc processes.

No single mechanism exists on every host, so strategies are tried in order
and the first one that yields candidates wins. Strategies return raw PID
tokens; callers validate them before signalling anything.
"""
import logging
import os
import re
import shutil
import subprocess
from typing import Callable, Iterable, List, Optional, Sequence, Set

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def name_pattern(names: Iterable[str]) -> str:
    return '|'.join(re.escape(n) for n in names)


def command_pattern(names: Iterable[str]) -> str:
    """Match a command line whose program (argv[0], any directory) is one of ``names``."""
    return f'^([^ ]*/)?({name_pattern(names)})( |$)'


def exact_name_pattern(names: Iterable[str]) -> str:
    return f'^({name_pattern(names)})$'


def _run_lines(run: Runner, args: List[str]) -> List[str]:
    proc = run(args, capture_output=True, text=True, check=False)
    # pgrep exits 1 when nothing matched; that is an empty result, not an error
    if proc.returncode not in (0, 1):
        raise OSError(f'{args[0]} exited with status {proc.returncode}')
    return [line for line in (proc.stdout or '').splitlines() if line.strip()]


class DiscoveryStrategy:
    name = 'strategy'
    tool: Optional[str] = None

    def __init__(self, run: Optional[Runner] = None, which: Callable[[str], Optional[str]] = shutil.which):
        self.run = run or subprocess.run
        self.which = which

    def is_available(self) -> bool:
        return self.tool is None or self.which(self.tool) is not None

    def find(self, names: Sequence[str]) -> Set[str]:
        raise NotImplementedError


class PgrepPatternStrategy(DiscoveryStrategy):
    """Match against full command lines (pgrep -f)."""
    name = 'pgrep -f'
    tool = 'pgrep'

    def find(self, names):
        lines = _run_lines(self.run, ['pgrep', '-f', command_pattern(names)])
        return {line.strip() for line in lines}


class ProcessListingStrategy(DiscoveryStrategy):
    """List every process and filter command lines, via ps or /proc."""
    name = 'process listing'
    tool = 'ps'

    def __init__(self, run=None, which=shutil.which, proc_root: str = '/proc'):
        super().__init__(run, which)
        self.proc_root = proc_root

    def is_available(self) -> bool:
        return super().is_available() or os.path.isdir(self.proc_root)

    def find(self, names):
        pattern = re.compile(command_pattern(names))
        found = set()
        for pid, args in self._listing():
            if pattern.match(args):
                found.add(pid)
        return found

    def _listing(self):
        if super().is_available():
            for line in _run_lines(self.run, ['ps', '-eo', 'pid=,args=']):
                parts = line.strip().split(None, 1)
                if len(parts) == 2:
                    yield parts[0], parts[1]
            return
        for entry in os.listdir(self.proc_root):
            if not entry.isdigit():
                continue
            cmd = self._read_proc_cmdline(entry)
            if cmd:
                yield entry, ' '.join(cmd)

    def _read_proc_cmdline(self, pid: str) -> List[str]:
        try:
            with open(os.path.join(self.proc_root, pid, 'cmdline'), 'rb') as f:
                raw = f.read()
        except OSError:
            return []
        return [p.decode(errors='ignore') for p in raw.split(b'\x00') if p]


class PgrepNameStrategy(DiscoveryStrategy):
    """Match against process names only (plain pgrep)."""
    name = 'pgrep'
    tool = 'pgrep'

    def find(self, names):
        lines = _run_lines(self.run, ['pgrep', exact_name_pattern(names)])
        return {line.strip() for line in lines}


def default_strategies(run: Optional[Runner] = None) -> List[DiscoveryStrategy]:
    return [PgrepPatternStrategy(run), ProcessListingStrategy(run), PgrepNameStrategy(run)]


class ProcessDiscovery:
    def __init__(self, strategies: Optional[Sequence[DiscoveryStrategy]] = None, own_pid: Optional[int] = None):
        self.strategies = list(default_strategies() if strategies is None else strategies)
        self.own_pid = os.getpid() if own_pid is None else own_pid

    def discover(self, names: Sequence[str]) -> Set[str]:
        for strategy in self.strategies:
            if not strategy.is_available():
                logger.debug('Discovery via %s unavailable, skipping', strategy.name)
                continue
            try:
                found = strategy.find(names)
            except OSError as e:
                logger.debug('Discovery via %s failed: %s', strategy.name, e)
                continue
            found.discard(str(self.own_pid))
            if found:
                logger.debug('Discovery via %s found %s', strategy.name, sorted(found))
                return found
        return set()
