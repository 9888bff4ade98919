import argparse
import logging
import os
import socket
import sys
from typing import Callable, List, Optional

from .config_renderer import (
    DEFAULT_BIND_PORT,
    DEFAULT_DASHBOARD_PORT,
    DEFAULT_HTTP_PORT,
    DEFAULT_PROXY_NAME,
    DEFAULT_SERVER_PORT,
    DEFAULT_TCP_PORT,
    DEFAULT_VHOST_PORT,
    HttpProxy,
    TcpProxy,
)
from .errors import FrpSetupError, MissingRequiredFieldError, ValidationError
from .host_tuning import optimize_host
from .log import setup_logging
from .orchestrator import Orchestrator
from .pid_store import Role
from .settings import Settings

logger = logging.getLogger(__name__)

Prompt = Callable[[str], str]

MENU = """Select mode:
1) Server mode
2) Client mode
3) Stop running FRP processes
4) Check FRP status
5) Optimize Ubuntu for FRP"""

PROXY_MENU = """Select proxy type:
1) TCP (for SSH, databases, etc.)
2) HTTP (for web services)"""


def _ask(prompt: Prompt, text: str, default=None) -> str:
    try:
        answer = (prompt(text) or '').strip()
    except EOFError:
        answer = ''
    if answer == '' and default is not None:
        return str(default)
    return answer


def _primary_ip() -> str:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            # no packet is sent for a UDP connect
            s.connect(('192.0.2.1', 80))
            return s.getsockname()[0]
    except OSError:
        return 'YOUR_SERVER_IP'


def _server_hints(bind_port, dashboard_port, pid: int):
    logger.info('Server will listen on port: %s', bind_port)
    logger.info('Dashboard available at: http://%s:%s', _primary_ip(), dashboard_port)
    logger.info('Logs: tail -f %s', Role.SERVER.log_filename)
    logger.info('Stop server: kill %s', pid)


def _client_hints(server_addr: str, proxy, pid: int):
    if isinstance(proxy, TcpProxy):
        logger.info('Local service (port %s) will be accessible via: %s:%s',
                    proxy.local_port, server_addr, proxy.remote_port)
    else:
        logger.info("Local web service (port %s) will be accessible via server's vhost HTTP port",
                    proxy.local_port)
    logger.info('Logs: tail -f %s', Role.CLIENT.log_filename)
    logger.info('Stop client: kill %s', pid)


def interactive_server(orchestrator: Orchestrator, prompt: Prompt) -> int:
    logger.info('Setting up FRP Server...')
    bind_port = _ask(prompt, f'Enter bind port (default: {DEFAULT_BIND_PORT}): ', DEFAULT_BIND_PORT)
    dashboard_port = _ask(prompt, f'Enter dashboard port (default: {DEFAULT_DASHBOARD_PORT}): ',
                          DEFAULT_DASHBOARD_PORT)
    vhost_port = _ask(prompt, f'Enter HTTP vhost port (default: {DEFAULT_VHOST_PORT}): ', DEFAULT_VHOST_PORT)
    pid = orchestrator.setup_server(bind_port, dashboard_port, vhost_port)
    _server_hints(bind_port, dashboard_port, pid)
    return 0


def interactive_client(orchestrator: Orchestrator, prompt: Prompt) -> int:
    logger.info('Setting up FRP Client...')
    server_addr = _ask(prompt, 'Enter server address (IP): ')
    if not server_addr:
        raise MissingRequiredFieldError('serverAddr', 'Server address is required!')
    server_port = _ask(prompt, f'Enter server port (default: {DEFAULT_SERVER_PORT}): ', DEFAULT_SERVER_PORT)
    proxy_name = _ask(prompt, f'Enter proxy name (default: {DEFAULT_PROXY_NAME}): ', DEFAULT_PROXY_NAME)

    print(PROXY_MENU)
    choice = _ask(prompt, 'Enter choice (1 or 2, default: 1): ', '1')
    if choice == '1':
        local_port = _ask(prompt, f'Enter port to forward (default: {DEFAULT_TCP_PORT} for SSH): ',
                          DEFAULT_TCP_PORT)
        proxy = TcpProxy(local_port=local_port, name=proxy_name)
    elif choice == '2':
        local_port = _ask(prompt, f'Enter local port (default: {DEFAULT_HTTP_PORT}): ', DEFAULT_HTTP_PORT)
        proxy = HttpProxy(local_port=local_port, name=proxy_name)
    else:
        raise ValidationError('Invalid choice!')

    pid = orchestrator.setup_client(server_addr, server_port, proxy_name, proxy)
    _client_hints(server_addr, proxy, pid)
    return 0


def interactive_menu(orchestrator: Orchestrator, prompt: Prompt) -> int:
    logger.info('=== FRP Simple Setup Script ===')
    print()
    orchestrator.ensure_binaries()
    print(MENU)
    choice = _ask(prompt, 'Enter choice (1-5): ')

    if choice == '1':
        return interactive_server(orchestrator, prompt)
    if choice == '2':
        return interactive_client(orchestrator, prompt)
    if choice == '3':
        logger.info('Stopping FRP processes...')
        orchestrator.supervisor.stop()
        return 0
    if choice == '4':
        logger.info('Checking FRP status...')
        orchestrator.supervisor.status_all()
        return 0
    if choice == '5':
        optimize_host(orchestrator.settings)
        return 0
    raise ValidationError('Invalid choice!')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='frpsetup', description='Install, configure and supervise frp.')
    parser.add_argument('--workdir', help='directory holding binaries, configs, PID and log files')
    parser.add_argument('--log-level', help='DEBUG, INFO, WARNING or ERROR')
    sub = parser.add_subparsers(dest='command')

    server = sub.add_parser('server', help='render frps.toml and start the server')
    server.add_argument('--bind-port', type=int, default=DEFAULT_BIND_PORT)
    server.add_argument('--dashboard-port', type=int, default=DEFAULT_DASHBOARD_PORT)
    server.add_argument('--vhost-port', type=int, default=DEFAULT_VHOST_PORT)

    client = sub.add_parser('client', help='render frpc.toml and start the client')
    client.add_argument('--server-addr', default='')
    client.add_argument('--server-port', type=int, default=DEFAULT_SERVER_PORT)
    client.add_argument('--proxy-name', default=DEFAULT_PROXY_NAME)
    client.add_argument('--type', dest='proxy_type', choices=['tcp', 'http'], default='tcp')
    client.add_argument('--local-port', type=int)
    client.add_argument('--remote-port', type=int)
    client.add_argument('--custom-domain', dest='custom_domains', action='append')

    stop = sub.add_parser('stop', help='stop running frp processes')
    stop.add_argument('--role', choices=[r.value for r in Role])

    status = sub.add_parser('status', help='show frp process status')
    status.add_argument('--role', choices=[r.value for r in Role])

    sub.add_parser('install', help='download the frps/frpc binaries if missing')
    sub.add_parser('optimize', help='apply one-time Ubuntu tuning for frp')

    serve = sub.add_parser('serve', help='run the HTTP control panel')
    serve.add_argument('--host')
    serve.add_argument('--port', type=int)
    return parser


def _client_proxy(args):
    if args.proxy_type == 'http':
        if args.remote_port is not None:
            logger.warning('--remote-port is ignored for http proxies')
        return HttpProxy(
            local_port=args.local_port if args.local_port is not None else DEFAULT_HTTP_PORT,
            custom_domains=args.custom_domains or ['localhost'],
            name=args.proxy_name,
        )
    return TcpProxy(
        local_port=args.local_port if args.local_port is not None else DEFAULT_TCP_PORT,
        remote_port=args.remote_port,
        name=args.proxy_name,
    )


def dispatch(args, orchestrator: Orchestrator, prompt: Prompt) -> int:
    command = args.command
    if command is None:
        return interactive_menu(orchestrator, prompt)
    if command == 'server':
        pid = orchestrator.setup_server(args.bind_port, args.dashboard_port, args.vhost_port)
        _server_hints(args.bind_port, args.dashboard_port, pid)
        return 0
    if command == 'client':
        proxy = _client_proxy(args)
        pid = orchestrator.setup_client(args.server_addr, args.server_port, args.proxy_name, proxy)
        _client_hints(args.server_addr, proxy, pid)
        return 0
    if command == 'stop':
        orchestrator.supervisor.stop(args.role)
        return 0
    if command == 'status':
        if args.role:
            orchestrator.supervisor.status(args.role)
        else:
            orchestrator.supervisor.status_all()
        return 0
    if command == 'install':
        binaries = orchestrator.ensure_binaries()
        logger.info('Binaries ready: %s, %s', binaries.server_binary, binaries.client_binary)
        return 0
    if command == 'optimize':
        optimize_host(orchestrator.settings)
        return 0
    if command == 'serve':
        from .web import serve
        serve(orchestrator, host=args.host, port=args.port)
        return 0
    raise ValidationError(f'Unknown command: {command}')


def run(argv: Optional[List[str]] = None, prompt: Prompt = input,
        orchestrator: Optional[Orchestrator] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = orchestrator.settings if orchestrator else Settings.from_env()
    if args.workdir:
        settings.workdir = os.path.abspath(args.workdir)
    if args.log_level:
        settings.log_level = args.log_level.upper()
    setup_logging(settings.log_level)
    try:
        orchestrator = orchestrator or Orchestrator(settings)
        return dispatch(args, orchestrator, prompt)
    except FrpSetupError as e:
        logger.error('%s', e)
        return 1


def main():
    sys.exit(run())


if __name__ == '__main__':
    main()
