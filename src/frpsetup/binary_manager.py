import logging
import os
import shutil
import stat
import subprocess
import tarfile
import urllib.request
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import MissingBinaryError, NoTransferMechanismError, TransferError
from .host_platform import Platform
from .pid_store import Role

logger = logging.getLogger(__name__)

USER_AGENT = 'frpsetup'
BINARY_NAMES = (Role.SERVER.binary_name, Role.CLIENT.binary_name)


@dataclass
class InstalledBinaries:
    server_binary: str
    client_binary: str


def archive_basename(platform: Platform, version: str) -> str:
    return f'frp_{version}_{platform.os}_{platform.arch}'


def download_url(platform: Platform, version: str, base: str) -> str:
    return f'{base.rstrip("/")}/v{version}/{archive_basename(platform, version)}.tar.gz'


def binaries_present(workdir: str) -> bool:
    return all(os.path.isfile(os.path.join(workdir, name)) for name in BINARY_NAMES)


class UrllibFetcher:
    name = 'urllib'

    def is_available(self) -> bool:
        return True

    def fetch(self, url: str, outpath: str):
        req = urllib.request.Request(url, headers={'User-Agent': USER_AGENT})
        try:
            with urllib.request.urlopen(req) as r, open(outpath, 'wb') as f:
                shutil.copyfileobj(r, f)
        except (OSError, ValueError) as e:
            raise TransferError(f'Download failed for {url}: {e}') from e


class CommandFetcher:
    """Downloads through an external tool (curl or wget) found on PATH."""

    ARGS = {
        'curl': lambda url, out: ['curl', '-fL', '-s', url, '-o', out],
        'wget': lambda url, out: ['wget', '-q', url, '-O', out],
    }

    def __init__(self, tool: str):
        if tool not in self.ARGS:
            raise ValueError(f'unsupported download tool: {tool}')
        self.name = tool

    def is_available(self) -> bool:
        return shutil.which(self.name) is not None

    def fetch(self, url: str, outpath: str):
        args = self.ARGS[self.name](url, outpath)
        proc = subprocess.run(args, capture_output=True, text=True)
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or '').strip() or f'exit status {proc.returncode}'
            raise TransferError(f'Download failed for {url}: {detail}')


def default_fetchers() -> List:
    return [UrllibFetcher(), CommandFetcher('curl'), CommandFetcher('wget')]


def pick_fetcher(fetchers: Sequence):
    for fetcher in fetchers:
        if fetcher.is_available():
            return fetcher
    raise NoTransferMechanismError('No download mechanism is available. Please install curl or wget.')


def _remove_path(path: str):
    if os.path.isdir(path):
        shutil.rmtree(path, ignore_errors=True)
    elif os.path.lexists(path):
        os.remove(path)


def _make_executable(path: str):
    current = os.stat(path).st_mode
    os.chmod(path, current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


class ArtifactInstaller:
    def __init__(self, workdir: str, base_url: str, fetchers: Optional[Sequence] = None):
        self.workdir = workdir
        self.base_url = base_url
        self.fetchers = list(default_fetchers() if fetchers is None else fetchers)

    def install(self, platform: Platform, version: str) -> InstalledBinaries:
        fetcher = pick_fetcher(self.fetchers)
        os.makedirs(self.workdir, exist_ok=True)
        basename = archive_basename(platform, version)
        url = download_url(platform, version, self.base_url)
        archive_path = os.path.join(self.workdir, f'{basename}.tar.gz')
        extract_dir = os.path.join(self.workdir, basename)
        placed = []

        logger.info('Downloading FRP v%s for %s...', version, platform.tag)
        try:
            fetcher.fetch(url, archive_path)

            logger.info('Extracting FRP...')
            try:
                with tarfile.open(archive_path, 'r:gz') as t:
                    t.extractall(extract_dir, filter='data')
            except (tarfile.TarError, OSError) as e:
                raise TransferError(f'Could not extract {os.path.basename(archive_path)}: {e}') from e

            sources = self._locate_binaries(extract_dir)
            for name in BINARY_NAMES:
                dst = os.path.join(self.workdir, name)
                shutil.move(sources[name], dst)
                placed.append(dst)
                _make_executable(dst)
        except BaseException:
            for dst in placed:
                _remove_path(dst)
            raise
        finally:
            _remove_path(archive_path)
            _remove_path(extract_dir)

        logger.info('FRP installation completed!')
        return InstalledBinaries(
            server_binary=os.path.join(self.workdir, Role.SERVER.binary_name),
            client_binary=os.path.join(self.workdir, Role.CLIENT.binary_name),
        )

    def _locate_binaries(self, extract_dir: str) -> dict:
        found = {}
        for root, dirs, files in os.walk(extract_dir):
            for f in files:
                if f in BINARY_NAMES and f not in found:
                    found[f] = os.path.join(root, f)
        missing = [name for name in BINARY_NAMES if name not in found]
        if missing:
            raise MissingBinaryError(f'Archive does not contain: {", ".join(missing)}')
        return found


def ensure_binaries(installer: ArtifactInstaller, platform_resolver, version: str) -> InstalledBinaries:
    """Install the binaries unless both already sit in the working directory."""
    workdir = installer.workdir
    if binaries_present(workdir):
        return InstalledBinaries(
            server_binary=os.path.join(workdir, Role.SERVER.binary_name),
            client_binary=os.path.join(workdir, Role.CLIENT.binary_name),
        )
    logger.info('FRP binaries not found. Installing...')
    return installer.install(platform_resolver(), version)
