"""
Activity and image endpoints.
"""
import json
import logging
import time
import traceback

from flask import Blueprint, current_app, jsonify, request

from activity_publisher.services.activity_mapper import determine_activity_type
from activity_publisher.services.airtable_client import AirtableError
from activity_publisher.services.image_generator import ImageGenerationError
from activity_publisher.services.wp_client import WordPressError
from activity_publisher.utils.auth_utils import api_token_required

activity_bp = Blueprint('activities', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def _services() -> dict:
    return current_app.extensions['activity_publisher']


def _record_response(record: dict) -> dict:
    """Shape an Airtable record as the API's {data: {id, attributes}} document"""
    fields = record.get('fields', {})
    run_id = fields.get('Run ID', '')
    activity = determine_activity_type(run_id)

    output = fields
    if fields.get('Output JSON'):
        try:
            output = json.loads(fields['Output JSON'])
        except ValueError:
            logger.warning(f"Record {record.get('id')} has unparseable Output JSON")

    return {
        'data': {
            'id': record.get('id'),
            'attributes': {
                'run_id': run_id,
                'created_at': fields.get('Created At') or record.get('createdTime'),
                'wp_post_id': fields.get('WP Post ID'),
                'activity_type': activity['type'],
                'wp_endpoint': activity['endpoint'],
                'default_fields': activity['default_fields'],
                'output': output,
            },
        },
    }


def _publish(activity_type=None):
    data = request.get_json(silent=True)
    orchestrator = _services()['orchestrator']

    try:
        result = orchestrator.publish_activity(data, activity_type=activity_type)
    except ValueError as e:
        return jsonify({'error': 'Invalid request body', 'message': str(e)}), 400
    except Exception as e:
        logger.error(f"Unhandled error publishing activity: {e}")
        _services()['airtable'].append_event_log(
            'unhandled_exception', level='error',
            run_id=data.get('run_id', '') if isinstance(data, dict) else '',
            message=str(e), stack=traceback.format_exc(),
        )
        return jsonify({'error': 'Internal Server Error', 'message': str(e)}), 500

    return jsonify({'ok': True, 'message': 'Process completed', **result}), 201


@activity_bp.route('/pedagogical-outputs', methods=['POST'])
@api_token_required
def create_pedagogical_output():
    """Store an activity in Airtable and publish it to WordPress"""
    return _publish()


@activity_bp.route('/pedagogical-outputs-logic', methods=['POST'])
@api_token_required
def create_logic_output():
    """Same as /pedagogical-outputs, always published as a logic activity"""
    return _publish(activity_type='logic')


@activity_bp.route('/images/created-img', methods=['POST'])
@api_token_required
def created_img():
    """Generate images with OpenAI and upload them to the WordPress post"""
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400
    orchestrator = _services()['orchestrator']

    try:
        result = orchestrator.attach_generated_images(body)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except ImageGenerationError as e:
        return jsonify({'error': 'OpenAI image generation failed', 'status': e.status, 'details': str(e)}), 502
    except WordPressError as e:
        return jsonify({'error': 'WP media upload failed', 'status': e.status, 'details': e.message}), 502
    except Exception as e:
        logger.error(f"created_img failed: {type(e).__name__} - {e}")
        return jsonify({'error': 'FUNCTION_CRASH', 'details': str(e)}), 500

    return jsonify(result), 200


@activity_bp.route('/images/latest', methods=['GET'])
@api_token_required
def latest_output():
    """Most recent activity of any type"""
    start_time = time.time()
    airtable = _services()['airtable']

    try:
        record = airtable.latest_record()
    except AirtableError as e:
        airtable.append_event_log('latest_output_error', level='error', message=str(e))
        return jsonify({'error': 'Internal server error', 'message': str(e)}), 500

    if not record:
        airtable.append_event_log('latest_output_not_found', level='warn', message='No records in Airtable')
        return jsonify({'error': 'No records found'}), 404

    response = _record_response(record)
    attributes = response['data']['attributes']
    airtable.append_event_log(
        'latest_output_retrieved', run_id=attributes['run_id'], agent=attributes['activity_type'],
        duration_ms=int((time.time() - start_time) * 1000),
        details={'airtable_record_id': record.get('id'), 'wp_post_id': attributes['wp_post_id']},
    )
    return jsonify(response), 200


@activity_bp.route('/images/<run_id>', methods=['GET'])
@api_token_required
def output_by_run_id(run_id):
    """Activity by its run id"""
    start_time = time.time()
    airtable = _services()['airtable']

    try:
        record = airtable.find_by_run_id(run_id)
    except AirtableError as e:
        airtable.append_event_log('output_by_id_error', level='error', run_id=run_id, message=str(e))
        return jsonify({'error': 'Internal server error', 'message': str(e)}), 500

    if not record:
        airtable.append_event_log('output_by_id_not_found', level='warn', run_id=run_id)
        return jsonify({'error': 'Not found', 'run_id': run_id}), 404

    response = _record_response(record)
    airtable.append_event_log(
        'output_by_id_retrieved', run_id=run_id, agent=response['data']['attributes']['activity_type'],
        duration_ms=int((time.time() - start_time) * 1000),
        details={'airtable_record_id': record.get('id')},
    )
    return jsonify(response), 200
