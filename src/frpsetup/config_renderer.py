"""
Rendering of frps.toml / frpc.toml.

The client proxy is a closed set of dataclasses (``TcpProxy``, ``HttpProxy``);
``proxy_record`` dispatches on the concrete class so a tcp record always
carries ``remotePort`` and an http record always carries ``customDomains``.
"""
import logging
import os
from dataclasses import dataclass, field, replace
from typing import List, Optional, Union

import toml

from .errors import MissingRequiredFieldError, ValidationError
from .pid_store import Role

logger = logging.getLogger(__name__)

DEFAULT_BIND_PORT = 7000
DEFAULT_DASHBOARD_PORT = 7500
DEFAULT_VHOST_PORT = 8080
DEFAULT_SERVER_PORT = 7000
DEFAULT_PROXY_NAME = 'ssh'
DEFAULT_TCP_PORT = 22
DEFAULT_HTTP_PORT = 80

# Insecure on purpose: the simple flow expects the operator to change them.
DEFAULT_DASHBOARD_USER = 'admin'
DEFAULT_DASHBOARD_PASSWORD = 'admin'


def _port(name: str, value) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{name} must be a port number, got {value!r}')
    try:
        port = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be a port number, got {value!r}') from None
    if port < 1 or port > 65535:
        raise ValidationError(f'{name} must be between 1 and 65535, got {port}')
    return port


@dataclass
class Dashboard:
    port: int = DEFAULT_DASHBOARD_PORT
    addr: str = '0.0.0.0'
    user: str = DEFAULT_DASHBOARD_USER
    password: str = DEFAULT_DASHBOARD_PASSWORD


@dataclass
class ServerConfig:
    bind_port: int = DEFAULT_BIND_PORT
    vhost_http_port: int = DEFAULT_VHOST_PORT
    dashboard: Dashboard = field(default_factory=Dashboard)

    def to_document(self) -> dict:
        return {
            'bindPort': _port('bindPort', self.bind_port),
            'vhostHTTPPort': _port('vhostHTTPPort', self.vhost_http_port),
            'webServer': {
                'addr': self.dashboard.addr,
                'port': _port('webServer.port', self.dashboard.port),
                'user': self.dashboard.user,
                'password': self.dashboard.password,
            },
        }


@dataclass
class TcpProxy:
    local_port: int = DEFAULT_TCP_PORT
    remote_port: Optional[int] = None
    name: str = DEFAULT_PROXY_NAME

    def __post_init__(self):
        if self.remote_port is None:
            self.remote_port = self.local_port


@dataclass
class HttpProxy:
    local_port: int = DEFAULT_HTTP_PORT
    custom_domains: List[str] = field(default_factory=lambda: ['localhost'])
    name: str = DEFAULT_PROXY_NAME


ProxySpec = Union[TcpProxy, HttpProxy]


def proxy_record(proxy: ProxySpec) -> dict:
    if isinstance(proxy, TcpProxy):
        return {
            'name': proxy.name,
            'type': 'tcp',
            'localPort': _port('localPort', proxy.local_port),
            'remotePort': _port('remotePort', proxy.remote_port),
        }
    if isinstance(proxy, HttpProxy):
        domains = [str(d).strip() for d in proxy.custom_domains if str(d).strip()]
        if not domains:
            raise MissingRequiredFieldError('customDomains')
        return {
            'name': proxy.name,
            'type': 'http',
            'localPort': _port('localPort', proxy.local_port),
            'customDomains': domains,
        }
    raise TypeError(f'unsupported proxy type: {type(proxy).__name__}')


@dataclass
class ClientConfig:
    server_addr: str
    server_port: int = DEFAULT_SERVER_PORT
    proxy: ProxySpec = field(default_factory=TcpProxy)

    def to_document(self) -> dict:
        server_addr = str(self.server_addr or '').strip()
        if not server_addr:
            raise MissingRequiredFieldError('serverAddr', 'Server address is required!')
        return {
            'serverAddr': server_addr,
            'serverPort': _port('serverPort', self.server_port),
            'proxies': [proxy_record(self.proxy)],
        }


def _write_document(path: str, document: dict) -> str:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(toml.dumps(document))
    return path


class ConfigRenderer:
    def __init__(self, workdir: str):
        self.workdir = workdir

    def path_for(self, role: Role) -> str:
        return os.path.join(self.workdir, role.config_filename)

    def render_server(self, bind_port=DEFAULT_BIND_PORT, dashboard_port=DEFAULT_DASHBOARD_PORT,
                      vhost_port=DEFAULT_VHOST_PORT) -> str:
        config = ServerConfig(
            bind_port=bind_port,
            vhost_http_port=vhost_port,
            dashboard=Dashboard(port=dashboard_port),
        )
        document = config.to_document()
        path = _write_document(self.path_for(Role.SERVER), document)
        logger.info('Server config created: %s', os.path.basename(path))
        return path

    def render_client(self, server_addr: str, server_port=DEFAULT_SERVER_PORT,
                      proxy_name: str = DEFAULT_PROXY_NAME, proxy: Optional[ProxySpec] = None) -> str:
        """Write frpc.toml; ``proxy_name`` overrides the name carried by ``proxy``."""
        proxy = proxy if proxy is not None else TcpProxy()
        if proxy_name:
            proxy = replace(proxy, name=proxy_name)
        # Validation happens while building the document, before the file is touched.
        document = ClientConfig(server_addr=server_addr, server_port=server_port, proxy=proxy).to_document()
        path = _write_document(self.path_for(Role.CLIENT), document)
        logger.info('Client config created: %s', os.path.basename(path))
        return path
