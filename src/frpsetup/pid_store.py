import os
from enum import Enum
from typing import Dict, Optional


class Role(Enum):
    SERVER = 'server'
    CLIENT = 'client'

    @property
    def binary_name(self) -> str:
        return 'frps' if self is Role.SERVER else 'frpc'

    @property
    def label(self) -> str:
        return 'FRP Server' if self is Role.SERVER else 'FRP Client'

    @property
    def pid_filename(self) -> str:
        return f'{self.binary_name}.pid'

    @property
    def log_filename(self) -> str:
        return f'{self.binary_name}.log'

    @property
    def config_filename(self) -> str:
        return f'{self.binary_name}.toml'

    @classmethod
    def parse(cls, value) -> 'Role':
        if isinstance(value, Role):
            return value
        key = str(value or '').strip().lower()
        for role in cls:
            if key in (role.value, role.binary_name):
                return role
        raise ValueError(f'unknown role: {value!r}')


class PidRepository:
    """Role-keyed storage for PID records plus the per-role file layout.

    ``read`` returns the raw stored text (or None); interpreting and
    validating it is the supervisor's job.
    """

    def __init__(self, workdir: str):
        self.workdir = workdir

    def read(self, role: Role) -> Optional[str]:
        raise NotImplementedError

    def write(self, role: Role, pid: int) -> None:
        raise NotImplementedError

    def remove(self, role: Role) -> None:
        raise NotImplementedError

    def log_path(self, role: Role) -> str:
        return os.path.join(self.workdir, role.log_filename)

    def config_path(self, role: Role) -> str:
        return os.path.join(self.workdir, role.config_filename)

    def binary_path(self, role: Role) -> str:
        return os.path.join(self.workdir, role.binary_name)


class FilePidRepository(PidRepository):
    def pid_path(self, role: Role) -> str:
        return os.path.join(self.workdir, role.pid_filename)

    def read(self, role: Role) -> Optional[str]:
        path = self.pid_path(role)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None

    def write(self, role: Role, pid: int) -> None:
        os.makedirs(self.workdir, exist_ok=True)
        with open(self.pid_path(role), 'w', encoding='utf-8') as f:
            f.write(f'{int(pid)}\n')

    def remove(self, role: Role) -> None:
        try:
            os.remove(self.pid_path(role))
        except FileNotFoundError:
            pass


class MemoryPidRepository(PidRepository):
    def __init__(self, workdir: str = '.', initial: Optional[Dict[Role, str]] = None):
        super().__init__(workdir)
        self.records: Dict[Role, str] = dict(initial or {})

    def read(self, role: Role) -> Optional[str]:
        return self.records.get(role)

    def write(self, role: Role, pid: int) -> None:
        self.records[role] = f'{int(pid)}\n'

    def remove(self, role: Role) -> None:
        self.records.pop(role, None)
