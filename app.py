import logging
import os
import socket
import sys
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv
from flask import Flask, jsonify, request, send_from_directory

from data_paths import ensure_data_root, uploads_dir
from services.actions import (
    CODE_ERROR,
    CODE_INVALID,
    CODE_NO_CREDENTIALS,
    CODE_NOT_FOUND,
    authenticate_user,
    delete_visit_action,
    get_customer_stats_action,
    get_overdue_action,
    get_pharmacy_detail,
    get_recent_visits,
    get_visit_by_id_action,
    get_visit_history,
    get_visits_from_cloud,
    submit_visit,
    update_area_code_action,
    update_visit_action,
    upload_photo_action,
)
from services.context import SessionContext
from services.directory import Identity, UserDirectory
from services.settings import AppSettings

# Load environment variables from .env file
load_dotenv()
logging.basicConfig(level=logging.INFO)

# --- App Initialization ---
app = Flask(__name__)
app.json.sort_keys = False

ensure_data_root()

_STATUS_BY_CODE = {
    CODE_INVALID: 400,
    CODE_NOT_FOUND: 404,
    CODE_NO_CREDENTIALS: 503,
    CODE_ERROR: 502,
}


def get_settings() -> AppSettings:
    return app.config.get('FIELDLOG_SETTINGS') or AppSettings.from_env()


def _request_identity() -> Optional[Identity]:
    """Identity travels with every request; the server keeps no login state."""
    area_code = request.headers.get('X-Area-Code', request.args.get('areaCode'))
    if area_code is None:
        return None
    name = request.headers.get('X-User-Name', request.args.get('userName', ''))
    return Identity(name=name, area_code=area_code)


def build_session() -> SessionContext:
    factory = app.config.get('SESSION_FACTORY')
    session = factory() if factory else SessionContext.from_settings(get_settings())
    return session.with_identity(_request_identity())


def build_directory() -> UserDirectory:
    factory = app.config.get('DIRECTORY_FACTORY')
    return factory() if factory else UserDirectory.from_settings(get_settings())


def _write_response(result: Dict[str, Any], success_status: int = 200) -> Tuple[Any, int]:
    if result.get('success'):
        return jsonify(result), success_status
    return jsonify(result), _STATUS_BY_CODE.get(result.get('code'), 400)


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(force=True, silent=True)
    return payload if isinstance(payload, dict) else {}


# --- Identity ---

@app.route('/api/auth/login', methods=['POST'])
def api_login():
    pin = str(_json_body().get('pin') or '')
    result = authenticate_user(build_directory(), pin)
    if not result['success']:
        app.logger.info("Rejected login attempt")
        return jsonify(result), 401
    return jsonify(result), 200


# --- Customers ---

@app.route('/api/customers/stats', methods=['GET'])
def api_customer_stats():
    result = get_customer_stats_action(
        build_session(),
        request.args.get('scope'),
        request.args.get('user') or None,
        search=request.args.get('search', ''),
        area=request.args.get('area', ''),
        rating=request.args.get('rating', 'All'),
        order=request.args.get('order', 'newest'),
    )
    return jsonify(result), 200


@app.route('/api/customers/overdue', methods=['GET'])
def api_customer_overdue():
    return jsonify(get_overdue_action(build_session(), request.args.get('scope'))), 200


@app.route('/api/pharmacies/<path:pharmacy_name>', methods=['GET'])
def api_pharmacy_detail(pharmacy_name):
    result = get_pharmacy_detail(build_session(), pharmacy_name)
    return jsonify(result), 200 if result['success'] else 404


# --- Visits ---

@app.route('/api/visits/cloud', methods=['GET'])
def api_visits_from_cloud():
    return jsonify(get_visits_from_cloud(build_session())), 200


@app.route('/api/visits/recent', methods=['GET'])
def api_recent_visits():
    try:
        limit = int(request.args.get('limit', 5))
    except ValueError:
        return jsonify({'success': False, 'error': 'limit must be an integer'}), 400
    return jsonify(get_recent_visits(build_session(), limit)), 200


@app.route('/api/visits', methods=['GET'])
def api_visit_history():
    return jsonify(get_visit_history(build_session())), 200


@app.route('/api/visits', methods=['POST'])
def api_submit_visit():
    result = submit_visit(build_session(), _json_body())
    if result.get('code') == CODE_NO_CREDENTIALS:
        # Saved locally; cloud sync is simply unavailable.
        return jsonify(result), 202
    return _write_response(result, success_status=201)


@app.route('/api/visits/<string:visit_id>', methods=['GET'])
def api_get_visit(visit_id):
    result = get_visit_by_id_action(build_session(), visit_id)
    return _write_response(result)


@app.route('/api/visits/<string:visit_id>', methods=['PUT'])
def api_update_visit(visit_id):
    payload = _json_body()
    payload['id'] = visit_id
    return _write_response(update_visit_action(build_session(), payload))


@app.route('/api/visits/<string:visit_id>', methods=['DELETE'])
def api_delete_visit(visit_id):
    return _write_response(delete_visit_action(build_session(), visit_id))


@app.route('/api/visits/<string:visit_id>/area-code', methods=['PATCH'])
def api_update_area_code(visit_id):
    area_code = str(_json_body().get('areaCode') or '')
    return _write_response(update_area_code_action(build_session(), visit_id, area_code))


# --- Photos ---

@app.route('/api/photos', methods=['POST'])
def api_upload_photo():
    payload = _json_body()
    data = payload.get('data')
    if not isinstance(data, str) or not data:
        return jsonify({'success': False, 'error': 'Image data is required'}), 400
    filename = str(payload.get('filename') or 'photo.jpg')
    result = upload_photo_action(build_session(), data, filename)
    if not result['success']:
        app.logger.error("Upload action error for %s", filename)
        return jsonify(result), 502
    return jsonify(result), 201


@app.route('/uploads/<path:filename>')
def serve_uploads(filename):
    return send_from_directory(uploads_dir(), filename)


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(('127.0.0.1', port)) == 0


def main():
    port = int(os.environ.get('PORT', 5002))
    if is_port_in_use(port):
        print(f"Port {port} is already in use.")
        sys.exit(1)
    settings = get_settings()
    if not settings.store_configured:
        app.logger.warning("Google Sheet not configured; running in local-only mode")
    app.run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
