"""
One-time Ubuntu tuning for hosts running frp.

Mirrors what operators usually do by hand: raise file-descriptor limits,
apply TCP sysctls, register systemd units, install a few network tools,
rotate the frp logs and enable NTP. Only the session limit is attempted
without root. External command failures are logged, never raised.
"""
import logging
import os
import resource
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .service_generator import write_units
from .settings import Settings

logger = logging.getLogger(__name__)

NOFILE_LIMIT = 65535

LIMITS_MARKER = '* soft nofile'
LIMITS_LINES = f'* soft nofile {NOFILE_LIMIT}\n* hard nofile {NOFILE_LIMIT}\n'

SYSCTL_FILENAME = '99-frp-optimization.conf'
SYSCTL_CONF = """# FRP TCP optimizations
net.core.rmem_default = 262144
net.core.rmem_max = 16777216
net.core.wmem_default = 262144
net.core.wmem_max = 16777216
net.core.netdev_max_backlog = 5000
net.core.somaxconn = 65535
net.ipv4.tcp_rmem = 4096 65536 16777216
net.ipv4.tcp_wmem = 4096 65536 16777216
net.ipv4.tcp_congestion_control = bbr
net.ipv4.tcp_fastopen = 3
net.ipv4.tcp_max_syn_backlog = 8192
net.ipv4.tcp_max_tw_buckets = 2000000
net.ipv4.tcp_fin_timeout = 10
net.ipv4.tcp_slow_start_after_idle = 0
net.ipv4.tcp_keepalive_time = 60
net.ipv4.tcp_keepalive_intvl = 10
net.ipv4.tcp_keepalive_probes = 6
net.ipv4.tcp_mtu_probing = 1
net.ipv4.tcp_timestamps = 0
"""

NETWORK_TOOLS = ['htop', 'iftop', 'nethogs', 'curl', 'wget']

FIREWALL_HINTS = [
    'Server: ufw allow 7000,7500,8080/tcp',
    'Client: No firewall changes needed',
]


def logrotate_conf(workdir: str) -> str:
    return f"""{os.path.join(os.path.abspath(workdir), '*.log')} {{
    daily
    missingok
    rotate 7
    compress
    delaycompress
    notifempty
    copytruncate
    maxsize 100M
}}
"""


@dataclass
class TuningReport:
    applied: int = 0
    steps: List[str] = field(default_factory=list)

    def add(self, step: str):
        self.applied += 1
        self.steps.append(step)


def _run_quiet(args) -> bool:
    try:
        proc = subprocess.run(args, check=False, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        logger.warning('Could not run %s: %s', args[0], e)
        return False
    if proc.returncode != 0:
        logger.warning('%s exited with status %s', ' '.join(args), proc.returncode)
    return proc.returncode == 0


def raise_session_nofile(limit: int = NOFILE_LIMIT) -> bool:
    try:
        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        target = limit if hard == resource.RLIM_INFINITY else min(limit, hard)
        resource.setrlimit(resource.RLIMIT_NOFILE, (max(soft, target), hard))
    except (ValueError, OSError) as e:
        logger.warning('Could not raise session file descriptor limit: %s', e)
        return False
    return True


class HostTuner:
    def __init__(self, settings: Settings, etc_root: str = '/', is_root: Optional[bool] = None,
                 run: Callable[[List[str]], bool] = _run_quiet,
                 which: Callable[[str], Optional[str]] = shutil.which,
                 raise_nofile: Callable[[], bool] = raise_session_nofile):
        self.settings = settings
        self.etc_root = etc_root
        self.is_root = (os.geteuid() == 0) if is_root is None else is_root
        self.run = run
        self.which = which
        self.raise_nofile = raise_nofile

    def _etc(self, *parts: str) -> str:
        return os.path.join(self.etc_root, 'etc', *parts)

    def optimize(self) -> TuningReport:
        logger.info('Applying Ubuntu optimizations for FRP...')
        report = TuningReport()
        if not self.is_root:
            logger.warning('Some optimizations require root privileges. Run as root for full optimization.')

        logger.info('Setting file descriptor limits...')
        if self.is_root:
            self._limits(report)
        if self.raise_nofile():
            logger.info('Session file descriptor limit set')

        if self.is_root:
            self._sysctl(report)
            self._systemd(report)
            self._tools(report)
            self._logrotate(report)
            self._ntp(report)

        logger.info('Firewall recommendations:')
        for hint in FIREWALL_HINTS:
            logger.info('  %s', hint)

        logger.info('Applied %s optimizations', report.applied)
        logger.warning('Reboot recommended for all optimizations to take effect')
        if report.applied == 0:
            logger.warning('Run as root (sudo) to apply system-level optimizations')
        return report

    def _limits(self, report: TuningReport):
        path = self._etc('security', 'limits.conf')
        existing = ''
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                existing = f.read()
        if LIMITS_MARKER in existing:
            logger.info('File descriptor limits already configured')
            return
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'a', encoding='utf-8') as f:
            if existing and not existing.endswith('\n'):
                f.write('\n')
            f.write(LIMITS_LINES)
        report.add('limits')
        logger.info('File descriptor limits set to %s', NOFILE_LIMIT)

    def _sysctl(self, report: TuningReport):
        logger.info('Applying TCP optimizations...')
        path = self._etc('sysctl.d', SYSCTL_FILENAME)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(SYSCTL_CONF)
        self.run(['sysctl', '-p', path])
        report.add('sysctl')
        logger.info('TCP optimizations applied')

    def _systemd(self, report: TuningReport):
        logger.info('Creating systemd services...')
        write_units(self.settings.workdir, self._etc('systemd', 'system'))
        self.run(['systemctl', 'daemon-reload'])
        report.add('systemd')
        logger.info('Systemd services created (frps.service, frpc.service)')
        logger.info('  Use: systemctl enable frps && systemctl start frps')
        logger.info('  Use: systemctl enable frpc && systemctl start frpc')

    def _tools(self, report: TuningReport):
        if not self.which('apt-get'):
            return
        logger.info('Installing network monitoring tools...')
        self.run(['apt-get', 'update'])
        self.run(['apt-get', 'install', '-y'] + NETWORK_TOOLS)
        report.add('tools')
        logger.info('Network tools installed (%s)', ', '.join(NETWORK_TOOLS))

    def _logrotate(self, report: TuningReport):
        logger.info('Setting up log rotation...')
        path = self._etc('logrotate.d', 'frp')
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(logrotate_conf(self.settings.workdir))
        report.add('logrotate')
        logger.info('Log rotation configured')

    def _ntp(self, report: TuningReport):
        logger.info('Configuring time synchronization...')
        self.run(['timedatectl', 'set-ntp', 'true'])
        report.add('ntp')
        logger.info('NTP synchronization enabled')


def optimize_host(settings: Settings, etc_root: str = '/', is_root: Optional[bool] = None, run=None) -> TuningReport:
    tuner = HostTuner(settings, etc_root=etc_root, is_root=is_root, run=run or _run_quiet)
    return tuner.optimize()
