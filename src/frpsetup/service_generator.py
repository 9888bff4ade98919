import os
from typing import List

from .pid_store import Role

DEFAULT_UNITS_DIR = '/etc/systemd/system'


def _write_file(path: str, content: str):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(content)


def unit_name(role: Role) -> str:
    return f'{role.binary_name}.service'


def render_unit(role: Role, workdir: str) -> str:
    abs_root = os.path.abspath(workdir)
    binary = os.path.join(abs_root, role.binary_name)
    config = os.path.join(abs_root, role.config_filename)
    return f"""[Unit]
Description={role.label}
After=network.target
Wants=network.target

[Service]
Type=simple
User=root
Restart=always
RestartSec=5
ExecStart={binary} -c {config}
ExecReload=/bin/kill -HUP $MAINPID
KillMode=process
Delegate=yes
LimitNOFILE=65535
LimitNPROC=65535

[Install]
WantedBy=multi-user.target
"""


def write_units(workdir: str, units_dir: str = DEFAULT_UNITS_DIR) -> List[str]:
    paths = []
    for role in Role:
        path = os.path.join(units_dir, unit_name(role))
        _write_file(path, render_unit(role, workdir))
        paths.append(path)
    return paths
