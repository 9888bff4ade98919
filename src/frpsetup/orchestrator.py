import logging
from typing import Optional

from . import host_platform
from .binary_manager import ArtifactInstaller, InstalledBinaries, ensure_binaries
from .config_renderer import (
    DEFAULT_BIND_PORT,
    DEFAULT_DASHBOARD_PORT,
    DEFAULT_PROXY_NAME,
    DEFAULT_SERVER_PORT,
    DEFAULT_VHOST_PORT,
    ConfigRenderer,
    ProxySpec,
)
from .pid_store import FilePidRepository, PidRepository, Role
from .settings import Settings
from .supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class Orchestrator:
    """Wires resolver, installer, renderer and supervisor for one workdir."""

    def __init__(self, settings: Settings, store: Optional[PidRepository] = None,
                 supervisor: Optional[ProcessSupervisor] = None,
                 installer: Optional[ArtifactInstaller] = None,
                 resolve_platform=host_platform.resolve):
        self.settings = settings
        self.store = store or FilePidRepository(settings.workdir)
        self.supervisor = supervisor or ProcessSupervisor(self.store)
        self.installer = installer or ArtifactInstaller(settings.workdir, settings.download_base)
        self.renderer = ConfigRenderer(settings.workdir)
        self.resolve_platform = resolve_platform

    def ensure_binaries(self) -> InstalledBinaries:
        return ensure_binaries(self.installer, self.resolve_platform, self.settings.version)

    def setup_server(self, bind_port=DEFAULT_BIND_PORT, dashboard_port=DEFAULT_DASHBOARD_PORT,
                     vhost_port=DEFAULT_VHOST_PORT) -> int:
        binaries = self.ensure_binaries()
        config_path = self.renderer.render_server(bind_port, dashboard_port, vhost_port)
        logger.info('Dashboard credentials - user: admin, password: admin')
        logger.info('Starting FRP Server in background...')
        return self.supervisor.start(Role.SERVER, binaries.server_binary, config_path)

    def setup_client(self, server_addr: str, server_port=DEFAULT_SERVER_PORT,
                     proxy_name: str = DEFAULT_PROXY_NAME, proxy: Optional[ProxySpec] = None) -> int:
        # render first so a missing server address fails before any download
        config_path = self.renderer.render_client(server_addr, server_port, proxy_name, proxy)
        binaries = self.ensure_binaries()
        logger.info('Starting FRP Client in background...')
        return self.supervisor.start(Role.CLIENT, binaries.client_binary, config_path)
