import io
import os
import shutil
import tarfile

import pytest

from frpsetup.binary_manager import (
    ArtifactInstaller,
    CommandFetcher,
    UrllibFetcher,
    binaries_present,
    download_url,
    ensure_binaries,
    pick_fetcher,
)
from frpsetup.errors import MissingBinaryError, NoTransferMechanismError, TransferError
from frpsetup.host_platform import Platform

PLATFORM = Platform('linux', 'amd64')
VERSION = '0.61.0'
BASE = 'https://github.com/fatedier/frp/releases/download'


def make_archive(path, members):
    with tarfile.open(path, 'w:gz') as t:
        for name, content in members.items():
            data = content.encode()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            t.addfile(info, io.BytesIO(data))
    return path


class CopyFetcher:
    name = 'copy'

    def __init__(self, source, available=True, error=None):
        self.source = source
        self.available = available
        self.error = error
        self.urls = []

    def is_available(self):
        return self.available

    def fetch(self, url, outpath):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        shutil.copyfile(self.source, outpath)


@pytest.fixture
def good_archive(tmp_path):
    src = tmp_path / 'src'
    src.mkdir()
    prefix = 'frp_0.61.0_linux_amd64'
    return str(make_archive(src / 'archive.tar.gz', {
        f'{prefix}/frps': '#!/bin/sh\necho frps\n',
        f'{prefix}/frpc': '#!/bin/sh\necho frpc\n',
        f'{prefix}/LICENSE': 'license',
    }))


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / 'work'
    path.mkdir()
    return path


def test_download_url_shape():
    assert download_url(PLATFORM, VERSION, BASE) == (
        'https://github.com/fatedier/frp/releases/download/v0.61.0/frp_0.61.0_linux_amd64.tar.gz'
    )
    assert download_url(Platform('darwin', 'arm64'), '0.60.0', BASE + '/').endswith(
        '/v0.60.0/frp_0.60.0_darwin_arm64.tar.gz'
    )


def test_install_places_executables_and_cleans_up(workdir, good_archive):
    fetcher = CopyFetcher(good_archive)
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[fetcher])
    result = installer.install(PLATFORM, VERSION)

    assert result.server_binary == str(workdir / 'frps')
    assert result.client_binary == str(workdir / 'frpc')
    for name in ('frps', 'frpc'):
        assert os.access(workdir / name, os.X_OK)
    assert sorted(os.listdir(workdir)) == ['frpc', 'frps']
    assert fetcher.urls == [download_url(PLATFORM, VERSION, BASE)]


def test_missing_binary_fails_and_cleans_up(workdir, tmp_path):
    archive = make_archive(tmp_path / 'partial.tar.gz', {'frp_0.61.0_linux_amd64/frps': 'x'})
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[CopyFetcher(archive)])
    with pytest.raises(MissingBinaryError, match='frpc'):
        installer.install(PLATFORM, VERSION)
    assert os.listdir(workdir) == []


def test_corrupt_archive_fails_and_cleans_up(workdir, tmp_path):
    broken = tmp_path / 'broken.tar.gz'
    broken.write_bytes(b'this is not a tarball')
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[CopyFetcher(str(broken))])
    with pytest.raises(TransferError):
        installer.install(PLATFORM, VERSION)
    assert os.listdir(workdir) == []


def test_member_outside_archive_root_is_rejected(workdir, tmp_path):
    archive = make_archive(tmp_path / 'escape.tar.gz', {
        'frp_0.61.0_linux_amd64/frps': 'x',
        '../escaped': 'x',
    })
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[CopyFetcher(archive)])
    with pytest.raises(TransferError, match='Could not extract'):
        installer.install(PLATFORM, VERSION)
    assert os.listdir(workdir) == []


def test_download_failure_propagates(workdir, good_archive):
    fetcher = CopyFetcher(good_archive, error=TransferError('Download failed: 404'))
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[fetcher])
    with pytest.raises(TransferError, match='404'):
        installer.install(PLATFORM, VERSION)
    assert os.listdir(workdir) == []


def test_no_transfer_mechanism(workdir, good_archive):
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[CopyFetcher(good_archive, available=False)])
    with pytest.raises(NoTransferMechanismError):
        installer.install(PLATFORM, VERSION)
    with pytest.raises(NoTransferMechanismError):
        pick_fetcher([])


def test_pick_fetcher_prefers_first_available(good_archive):
    unavailable = CopyFetcher(good_archive, available=False)
    available = CopyFetcher(good_archive)
    assert pick_fetcher([unavailable, available]) is available


def test_default_fetcher_order():
    installer = ArtifactInstaller('.', BASE)
    assert [f.name for f in installer.fetchers] == ['urllib', 'curl', 'wget']
    assert UrllibFetcher().is_available()


def test_command_fetcher_availability(monkeypatch):
    monkeypatch.setattr(shutil, 'which', lambda tool: None)
    assert not CommandFetcher('curl').is_available()
    with pytest.raises(ValueError):
        CommandFetcher('aria2c')


def test_urllib_fetcher_reads_file_urls(tmp_path, good_archive):
    out = tmp_path / 'copy.tar.gz'
    UrllibFetcher().fetch('file://' + good_archive, str(out))
    assert out.read_bytes() == open(good_archive, 'rb').read()


def test_urllib_fetcher_wraps_errors(tmp_path):
    with pytest.raises(TransferError):
        UrllibFetcher().fetch('file://' + str(tmp_path / 'missing.tar.gz'), str(tmp_path / 'out'))


def test_ensure_binaries_skips_install_when_present(workdir):
    (workdir / 'frps').write_text('')
    (workdir / 'frpc').write_text('')
    assert binaries_present(str(workdir))
    workdir_path = str(workdir)

    class ExplodingInstaller:
        workdir = workdir_path

        def install(self, platform, version):
            raise AssertionError('installer must not run')

    def resolver():
        raise AssertionError('platform must not be resolved')

    result = ensure_binaries(ExplodingInstaller(), resolver, VERSION)
    assert result.server_binary == str(workdir / 'frps')


def test_ensure_binaries_installs_when_one_is_missing(workdir, good_archive):
    (workdir / 'frps').write_text('old')
    installer = ArtifactInstaller(str(workdir), BASE, fetchers=[CopyFetcher(good_archive)])
    ensure_binaries(installer, lambda: PLATFORM, VERSION)
    assert binaries_present(str(workdir))
    assert 'echo frps' in (workdir / 'frps').read_text()
