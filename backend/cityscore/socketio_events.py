from flask_socketio import emit
from flask import current_app, request
from cityscore import socketio
from cityscore.services.scoring.compiler import compile_formula, limits_from_config
from cityscore.services.scoring.debounce import CompileRequestTracker
from typing import Any, Dict


# One tracker per process; keys are (socket id, editor id), the editor id defaulting to the socket id
_compile_requests = CompileRequestTracker()


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    _compile_requests.forget_scope(_get_sid())


def handle_ping(data):
    emit('pong', data or {})


def handle_compile_formula(data):
    """Debounced live compile; only the newest request per editor gets a reply."""
    data = data or {}
    source = data.get('source')
    if not isinstance(source, str):
        emit('error', {'message': 'source is required'})
        return
    sid = _get_sid()
    client_key = str(data.get('key') or sid)
    key = (sid, client_key)
    token = _compile_requests.begin(key)
    namespace = request.namespace

    app = current_app._get_current_object()
    job = {
        'key': key,
        'client_key': client_key,
        'token': token,
        'source': source,
        'sid': sid,
        'namespace': namespace,
        'delay_ms': int(app.config.get('COMPILE_DEBOUNCE_MS', 300)),
    }
    if app.config.get('TESTING'):
        # Inline for determinism; the debounce delay is skipped.
        _run_compile_job(app, dict(job, delay_ms=0))
        return
    socketio.start_background_task(_run_compile_job, app, job)


def _run_compile_job(app, job: Dict[str, Any]) -> None:
    key, token = job['key'], job['token']
    if job['delay_ms']:
        socketio.sleep(job['delay_ms'] / 1000.0)
    if not _compile_requests.is_current(key, token):
        app.logger.info(f"[compile-stale] key={key} token={token} superseded before compiling")
        return
    with app.app_context():
        result = compile_formula(job['source'], **limits_from_config(app.config))
    if not _compile_requests.is_current(key, token):
        app.logger.info(f"[compile-stale] key={key} token={token} result dropped")
        return
    payload = result.to_dict()
    payload['key'] = job['client_key']
    payload['token'] = token
    socketio.emit('compile_result', payload, to=job['sid'], namespace=job['namespace'])


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')
    socketio.on_event('compile_formula', handle_compile_formula, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
        socketio.on_event('compile_formula', handle_compile_formula, namespace='/')
