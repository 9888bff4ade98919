import os
from dataclasses import dataclass, field

DEFAULT_VERSION = '0.61.0'
DEFAULT_DOWNLOAD_BASE = 'https://github.com/fatedier/frp/releases/download'
DEFAULT_WEB_HOST = '127.0.0.1'
DEFAULT_WEB_PORT = 2027


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, '') or '').strip()
    if raw == '':
        return int(default)
    try:
        value = int(raw)
    except ValueError:
        return int(default)
    if value < 1 or value > 65535:
        return int(default)
    return value


def _env_str(name: str, default: str) -> str:
    raw = str(os.environ.get(name, '') or '').strip()
    return raw or default


@dataclass
class Settings:
    workdir: str = field(default_factory=os.getcwd)
    version: str = DEFAULT_VERSION
    download_base: str = DEFAULT_DOWNLOAD_BASE
    log_level: str = 'INFO'
    web_host: str = DEFAULT_WEB_HOST
    web_port: int = DEFAULT_WEB_PORT

    @classmethod
    def from_env(cls) -> 'Settings':
        workdir = _env_str('FRPSETUP_WORKDIR', os.getcwd())
        return cls(
            workdir=os.path.abspath(os.path.expanduser(workdir)),
            version=_env_str('FRPSETUP_VERSION', DEFAULT_VERSION).lstrip('v'),
            download_base=_env_str('FRPSETUP_DOWNLOAD_BASE', DEFAULT_DOWNLOAD_BASE).rstrip('/'),
            log_level=_env_str('FRPSETUP_LOG_LEVEL', 'INFO').upper(),
            web_host=_env_str('FRPSETUP_WEB_HOST', DEFAULT_WEB_HOST),
            web_port=_env_int('FRPSETUP_WEB_PORT', DEFAULT_WEB_PORT),
        )
