import os

from frpsetup.pid_store import Role
from frpsetup.service_generator import render_unit, unit_name, write_units


def test_render_server_unit(tmp_path):
    unit = render_unit(Role.SERVER, str(tmp_path))
    assert 'Description=FRP Server' in unit
    assert f'ExecStart={tmp_path}/frps -c {tmp_path}/frps.toml' in unit
    assert 'ExecReload=/bin/kill -HUP $MAINPID' in unit
    assert 'LimitNOFILE=65535' in unit
    assert unit.rstrip().endswith('WantedBy=multi-user.target')


def test_write_units(tmp_path):
    units_dir = tmp_path / 'systemd'
    paths = write_units(str(tmp_path / 'frp'), str(units_dir))
    assert paths == [str(units_dir / 'frps.service'), str(units_dir / 'frpc.service')]
    assert 'frpc -c' in (units_dir / unit_name(Role.CLIENT)).read_text()
    for path in paths:
        assert not os.access(path, os.X_OK)
