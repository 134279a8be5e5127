from flask import Blueprint, current_app, jsonify
import logging

from activity_publisher.auth.token_manager import ConfigurationError, RenewalError
from activity_publisher.utils.auth_utils import api_token_required

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')
logger = logging.getLogger(__name__)


def get_token_manager():
    """Token manager wired up in main.py"""
    return current_app.extensions['activity_publisher']['token_manager']


@auth_bp.route('/status', methods=['GET'])
@api_token_required
def token_status():
    """Report the cached WordPress JWT state"""
    manager = get_token_manager()
    status = manager.get_status()
    status['can_renew'] = manager.credentials.can_renew
    status['has_static_token'] = bool(manager.credentials.static_token)
    return jsonify(status)


@auth_bp.route('/renew', methods=['POST'])
@api_token_required
def renew():
    """Force a JWT renewal"""
    manager = get_token_manager()
    try:
        manager.renew_token()
    except ConfigurationError as e:
        logger.error(f"Manual renewal not possible: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500
    except RenewalError as e:
        logger.error(f"Manual renewal failed: {e}")
        return jsonify({
            'success': False,
            'error': 'JWT renewal failed',
            'status': e.status,
            'message': e.message,
        }), 502

    return jsonify({'success': True, 'status': manager.get_status()})


@auth_bp.route('/clear-cache', methods=['POST'])
@api_token_required
def clear_cache():
    """Drop the cached JWT; the next WordPress call renews it"""
    manager = get_token_manager()
    manager.clear_cache()
    return jsonify({'success': True, 'status': manager.get_status()})
