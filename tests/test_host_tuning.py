import pytest

from frpsetup.host_tuning import HostTuner, SYSCTL_FILENAME, logrotate_conf


class RecordingRunner:
    def __init__(self):
        self.calls = []

    def __call__(self, args):
        self.calls.append(list(args))
        return True


@pytest.fixture
def runner():
    return RecordingRunner()


def make_tuner(settings, tmp_path, runner, is_root, apt=True):
    return HostTuner(
        settings,
        etc_root=str(tmp_path / 'root'),
        is_root=is_root,
        run=runner,
        which=lambda tool: '/usr/bin/apt-get' if apt and tool == 'apt-get' else None,
        raise_nofile=lambda: True,
    )


def test_non_root_applies_nothing_system_wide(settings, tmp_path, runner, caplog):
    caplog.set_level('INFO', logger='frpsetup')
    report = make_tuner(settings, tmp_path, runner, is_root=False).optimize()
    assert report.applied == 0
    assert runner.calls == []
    assert not (tmp_path / 'root').exists()
    assert 'Run as root (sudo) to apply system-level optimizations' in caplog.text
    assert 'ufw allow 7000,7500,8080/tcp' in caplog.text


def test_root_applies_every_step(settings, tmp_path, runner):
    report = make_tuner(settings, tmp_path, runner, is_root=True).optimize()
    etc = tmp_path / 'root' / 'etc'
    assert report.steps == ['limits', 'sysctl', 'systemd', 'tools', 'logrotate', 'ntp']
    assert report.applied == 6
    assert '* soft nofile 65535' in (etc / 'security' / 'limits.conf').read_text()
    assert 'tcp_congestion_control = bbr' in (etc / 'sysctl.d' / SYSCTL_FILENAME).read_text()
    assert (etc / 'systemd' / 'system' / 'frps.service').exists()
    assert (etc / 'logrotate.d' / 'frp').read_text() == logrotate_conf(settings.workdir)
    assert ['systemctl', 'daemon-reload'] in runner.calls
    assert ['timedatectl', 'set-ntp', 'true'] in runner.calls
    assert runner.calls[0] == ['sysctl', '-p', str(etc / 'sysctl.d' / SYSCTL_FILENAME)]


def test_limits_not_duplicated(settings, tmp_path, runner):
    limits = tmp_path / 'root' / 'etc' / 'security' / 'limits.conf'
    limits.parent.mkdir(parents=True)
    limits.write_text('* soft nofile 4096\n')
    report = make_tuner(settings, tmp_path, runner, is_root=True, apt=False).optimize()
    assert 'limits' not in report.steps
    assert 'tools' not in report.steps
    assert limits.read_text() == '* soft nofile 4096\n'


def test_logrotate_targets_workdir(tmp_path):
    conf = logrotate_conf(str(tmp_path))
    assert conf.startswith(f'{tmp_path}/*.log {{')
    assert 'rotate 7' in conf
