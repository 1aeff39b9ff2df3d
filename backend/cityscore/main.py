from flask import Blueprint, jsonify, current_app

main = Blueprint('main', __name__)

@main.route('/health', methods=['GET'])
def health():
    cfg = current_app.config
    return jsonify({
        'status': 'ok',
        'sandboxTimeoutMs': int(cfg.get('SANDBOX_TIMEOUT_MS', 1000)),
        'compileDebounceMs': int(cfg.get('COMPILE_DEBOUNCE_MS', 300)),
    })
