"""Settings blueprint: business defaults used by quotes and quote documents."""
from flask import Blueprint, request, jsonify

from jewelquote.database import get_session
from jewelquote.exceptions import ValidationError
from jewelquote.services.settings_service import get_all_settings, get_setting, upsert_setting

settings_bp = Blueprint('settings', __name__, url_prefix='/api/settings')


@settings_bp.route('', methods=['GET'])
def list_settings():
    return jsonify(get_all_settings(get_session()))


@settings_bp.route('/<key>', methods=['GET'])
def view_setting(key):
    return jsonify(get_setting(get_session(), key))


@settings_bp.route('/<key>', methods=['PUT'])
def update_setting(key):
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    setting = upsert_setting(get_session(), key, data.get('value'), description=data.get('description'))
    return jsonify({'key': setting.key, 'value': setting.value, 'description': setting.description})
