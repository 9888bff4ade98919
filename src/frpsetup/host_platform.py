import os
import platform as _platform
import sys
from dataclasses import dataclass
from typing import Optional

from .errors import UnsupportedPlatformError

# exact uname -m values only
ARCH_MAP = {
    'x86_64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'armv7l': 'arm',
}

OS_PREFIXES = (
    ('linux-gnu', 'linux'),
    ('darwin', 'darwin'),
)


@dataclass(frozen=True)
class Platform:
    os: str
    arch: str

    @property
    def tag(self) -> str:
        return f'{self.os}_{self.arch}'


def host_os_identifier() -> str:
    ostype = os.environ.get('OSTYPE', '').strip()
    if ostype:
        return ostype
    if sys.platform.startswith('linux'):
        libc, _ = _platform.libc_ver()
        if libc == 'glibc':
            return 'linux-gnu'
        return f'linux-{libc or "unknown"}'
    if sys.platform == 'darwin':
        return f'darwin{_platform.release()}'
    return sys.platform


def resolve_os(identifier: str) -> str:
    for prefix, name in OS_PREFIXES:
        if identifier.startswith(prefix):
            return name
    raise UnsupportedPlatformError(f'Unsupported OS: {identifier}')


def resolve_arch(machine: str) -> str:
    try:
        return ARCH_MAP[machine]
    except KeyError:
        raise UnsupportedPlatformError(f'Unsupported architecture: {machine}') from None


def resolve(os_identifier: Optional[str] = None, machine: Optional[str] = None) -> Platform:
    """Map the host (or the given identifiers) to a supported frp build."""
    if os_identifier is None:
        os_identifier = host_os_identifier()
    if machine is None:
        machine = _platform.machine()
    return Platform(os=resolve_os(os_identifier), arch=resolve_arch(machine))
