import logging
import os
from collections import deque
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

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
from .errors import FrpSetupError, ValidationError
from .orchestrator import Orchestrator
from .pid_store import Role

logger = logging.getLogger(__name__)

MAX_LOG_LINES = 1000


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({'ok': False, 'error': message}, status_code=status_code)


def _error_for(exc: FrpSetupError) -> JSONResponse:
    status_code = 400 if isinstance(exc, ValidationError) else 500
    return _error(status_code, str(exc))


async def _json_body(req: Request) -> dict:
    try:
        data = await req.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _role_or_none(value):
    try:
        return Role.parse(value)
    except ValueError:
        return None


def tail_file(path: str, lines: int = 200):
    if not os.path.exists(path):
        return []
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        return [line.rstrip('\n') for line in deque(f, maxlen=lines)]


def build_app(orchestrator: Orchestrator) -> FastAPI:
    app = FastAPI(title='frpsetup')
    supervisor = orchestrator.supervisor

    @app.get('/_status')
    def status():
        return {'ok': True, 'workdir': orchestrator.settings.workdir}

    @app.get('/api/status')
    async def api_status():
        results = supervisor.status_all()
        return {
            'ok': True,
            'anyRunning': any(r.running for r in results),
            'roles': [r.to_dict() for r in results],
        }

    @app.post('/api/server')
    async def api_server(req: Request):
        data = await _json_body(req)
        try:
            pid = orchestrator.setup_server(
                data.get('bindPort', DEFAULT_BIND_PORT),
                data.get('dashboardPort', DEFAULT_DASHBOARD_PORT),
                data.get('vhostPort', DEFAULT_VHOST_PORT),
            )
        except FrpSetupError as e:
            return _error_for(e)
        return {'ok': True, 'role': Role.SERVER.value, 'pid': pid}

    @app.post('/api/client')
    async def api_client(req: Request):
        data = await _json_body(req)
        proxy_type = str(data.get('proxyType') or 'tcp').lower()
        proxy_name = data.get('proxyName') or DEFAULT_PROXY_NAME
        if proxy_type == 'tcp':
            proxy = TcpProxy(
                local_port=data.get('localPort', DEFAULT_TCP_PORT),
                remote_port=data.get('remotePort'),
                name=proxy_name,
            )
        elif proxy_type == 'http':
            proxy = HttpProxy(
                local_port=data.get('localPort', DEFAULT_HTTP_PORT),
                custom_domains=data.get('customDomains') or ['localhost'],
                name=proxy_name,
            )
        else:
            return _error(400, f'unsupported proxy type: {proxy_type}')
        try:
            pid = orchestrator.setup_client(
                data.get('serverAddr', ''),
                data.get('serverPort', DEFAULT_SERVER_PORT),
                proxy_name,
                proxy,
            )
        except FrpSetupError as e:
            return _error_for(e)
        return {'ok': True, 'role': Role.CLIENT.value, 'pid': pid}

    @app.post('/api/stop')
    async def api_stop(role: Optional[str] = None):
        target = None
        if role:
            target = _role_or_none(role)
            if target is None:
                return _error(404, f'unknown role: {role}')
        report = supervisor.stop(target)
        return {'ok': True, **report.to_dict()}

    @app.get('/api/{role}/logs')
    async def api_logs(role: str, lines: int = 200):
        target = _role_or_none(role)
        if target is None:
            return _error(404, f'unknown role: {role}')
        lines = max(1, min(int(lines), MAX_LOG_LINES))
        path = orchestrator.store.log_path(target)
        return {'ok': True, 'role': target.value, 'lines': tail_file(path, lines)}

    return app


def serve(orchestrator: Orchestrator, host: Optional[str] = None, port: Optional[int] = None):
    import uvicorn

    app = build_app(orchestrator)
    host = host or orchestrator.settings.web_host
    port = port or orchestrator.settings.web_port
    logger.info('Control panel on http://%s:%s', host, port)
    uvicorn.run(app, host=host, port=port, log_level=orchestrator.settings.log_level.lower())
