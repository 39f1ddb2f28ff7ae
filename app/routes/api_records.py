"""
API routes for record operations
Each endpoint takes {"table": ..., "filters"?: ...} as JSON, plus "data" for insert
and "updates" for update
"""
from flask import Blueprint, current_app, jsonify

from app.utils.data_utils import get_request_data, require_data, require_table, require_updates
from core.storage.errors import (
    InvalidFilterError,
    InvalidRecordError,
    RecordConflictError,
    StoreError,
    UnknownTableError,
)
from core.storage.filters import QueryFilter
from logging_config import api_logger

records_api_bp = Blueprint('records_api', __name__, url_prefix='/api')


def _db():
    return current_app.extensions['record_db']


def _filters(payload):
    return QueryFilter.from_payload(payload.get('filters'))


@records_api_bp.route('/select', methods=['POST'])
def api_select():
    payload = get_request_data()
    return jsonify(_db().select(require_table(payload), _filters(payload)))


@records_api_bp.route('/selectSingle', methods=['POST'])
def api_select_single():
    payload = get_request_data()
    return jsonify(_db().select_single(require_table(payload), _filters(payload)))


@records_api_bp.route('/insert', methods=['POST'])
def api_insert():
    payload = get_request_data()
    table = require_table(payload)
    count = _db().insert(table, require_data(payload))
    return jsonify({'success': True, 'count': count})


@records_api_bp.route('/update', methods=['POST'])
def api_update():
    payload = get_request_data()
    table = require_table(payload)
    changes = _db().update(table, _filters(payload), require_updates(payload))
    return jsonify({'success': True, 'changes': changes})


@records_api_bp.route('/delete', methods=['POST'])
def api_delete():
    payload = get_request_data()
    changes = _db().delete(require_table(payload), _filters(payload))
    return jsonify({'success': True, 'changes': changes})


@records_api_bp.route('/count', methods=['POST'])
def api_count():
    payload = get_request_data()
    return jsonify(_db().count(require_table(payload), _filters(payload)))


@records_api_bp.errorhandler(UnknownTableError)
@records_api_bp.errorhandler(InvalidFilterError)
@records_api_bp.errorhandler(InvalidRecordError)
def _bad_request(error):
    api_logger.log_error('records', str(error), 400)
    return jsonify({'error': str(error)}), 400


@records_api_bp.errorhandler(RecordConflictError)
def _conflict(error):
    api_logger.log_error('records', str(error), 409)
    return jsonify({'error': str(error)}), 409


@records_api_bp.errorhandler(StoreError)
def _store_error(error):
    api_logger.log_error('records', str(error), 500)
    return jsonify({'error': str(error)}), 500
