"""
Thin HTTP front end for the scanner: JSON in, JSON out.
"""

import logging
import time
from datetime import datetime, timezone

# Load environment variables from .env file before config is read
from dotenv import load_dotenv
load_dotenv()

from flask import Flask, jsonify, request
from flask_cors import CORS

from .core.errors import ForbiddenTarget, ScanInternalError, ValidationError
from .core.scan_config import reload_scan_config
from .core.scan_manager import get_scan_manager

logger = logging.getLogger(__name__)

reload_scan_config()

app = Flask(__name__)
CORS(app, methods=['GET', 'POST'])

STARTED_AT = time.time()


def status_for(error: ValidationError) -> int:
    if isinstance(error, ForbiddenTarget):
        return 403
    return 400


@app.route('/api/scan', methods=['POST'])
def scan():
    """Run a scan synchronously and return the report"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': {'kind': 'BadRequest', 'message': 'No JSON object provided'}}), 400

    try:
        response = get_scan_manager().handle_request(data)
    except ValidationError as e:
        return jsonify({'error': e.to_dict()}), status_for(e)
    except ScanInternalError as e:
        logger.error(f"Scan failed: {e}")
        return jsonify({'error': e.to_dict()}), 500
    except Exception as e:
        logger.error(f"Unexpected error during scan: {e}")
        return jsonify({'error': {'kind': 'InternalError', 'message': 'Internal server error'}}), 500

    return jsonify(response)


@app.route('/api/health')
def health():
    """Liveness check, independent of the scan path"""
    return jsonify({
        'status': 'ok',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptime_seconds': round(time.time() - STARTED_AT, 1),
    })


@app.route('/api/system/info')
def system_info():
    """Get scan capabilities"""
    try:
        return jsonify({'scan_capabilities': get_scan_manager().get_scan_stats()})
    except Exception as e:
        logger.error(f"Error getting system info: {e}")
        return jsonify({'error': {'kind': 'InternalError', 'message': 'Internal server error'}}), 500
