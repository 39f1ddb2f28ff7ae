"""
API routes for service status
"""
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from app.utils.network_utils import get_network_addresses

system_api_bp = Blueprint('system_api', __name__, url_prefix='/api')


@system_api_bp.route('/health', methods=['GET'])
def api_health():
    """Liveness probe used by clients before switching to remote mode"""
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@system_api_bp.route('/info', methods=['GET'])
def api_info():
    """Where other devices on the network can reach this service"""
    port = current_app.config.get('SERVER_PORT')
    addresses = get_network_addresses()
    host = addresses[0] if addresses else (request.host.split(':')[0] or 'localhost')
    return jsonify({
        'port': port,
        'networkAddresses': addresses,
        'accessUrl': f"http://{host}:{port}",
    })
