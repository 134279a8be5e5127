"""
Publish orchestrator - coordinates the activity workflow.
Stores the activity in Airtable, publishes it to WordPress, attaches
generated images and notifies the template team when needed.
"""
import json
import logging
import time
import traceback
from typing import Any, Callable, Dict, List, Optional

import requests

from activity_publisher.auth.token_manager import AuthError, AuthTokenManager
from activity_publisher.services.activity_mapper import (
    activity_type_by_name,
    build_wp_payload,
    determine_activity_type,
    image_fields,
)
from activity_publisher.services.airtable_client import AirtableClient, AirtableError
from activity_publisher.services.email_service import EmailError, send_template_required_email
from activity_publisher.services.image_generator import generate_images, to_jpeg
from activity_publisher.services.wp_client import WordPressClient, WordPressError

logger = logging.getLogger(__name__)


def validate_activity(data: Any) -> Optional[str]:
    """Return an error message for an invalid publish request, or None."""
    if not isinstance(data, dict):
        return "Request body must be a JSON object"
    if not isinstance(data.get('run_id'), str) or not data['run_id'].strip():
        return "run_id is required"
    if not isinstance(data.get('output_json'), dict):
        return "output_json must be an object"
    return None


class PublishOrchestrator:
    """
    Runs the publish and image flows against the injected clients.

    Args:
        airtable: Records and event log client
        wordpress: WordPress REST client (uses the JWT manager)
        token_manager: Manager shared with the WordPress client
        send_email: Callable used for the template-required notification
        generate: Callable returning raw image bytes for (prompt, n, size)
        convert: Callable converting raw image bytes to JPEG
    """

    def __init__(
        self,
        airtable: AirtableClient,
        wordpress: WordPressClient,
        token_manager: AuthTokenManager,
        send_email: Callable[..., dict] = send_template_required_email,
        generate: Callable[..., List[bytes]] = generate_images,
        convert: Callable[[bytes], bytes] = to_jpeg,
    ):
        self.airtable = airtable
        self.wordpress = wordpress
        self.token_manager = token_manager
        self.send_email = send_email
        self.generate = generate
        self.convert = convert

    # ---------- Activity publishing ----------
    def _save_to_airtable(self, data: dict) -> dict:
        try:
            record = self.airtable.create_record({
                'Run ID': data['run_id'],
                'Output JSON': json.dumps(data['output_json'], ensure_ascii=False),
                'Needs Clarification': data['needs_clarification'],
            })
            return {'success': True, 'record_id': record['id']}
        except AirtableError as e:
            logger.error(f"[{data['run_id']}] Airtable save failed: {e}")
            return {'success': False, 'error': str(e)}

    def _save_to_wordpress(self, data: dict, activity: dict) -> dict:
        run_id = data['run_id']
        payload = build_wp_payload(data['output_json'], run_id)
        acf = payload.pop('acf')

        try:
            # Renew up front so the token cannot expire between create and ACF update
            self.token_manager.get_valid_token()

            created = self.wordpress.create_post(activity['endpoint'], payload)
            post_id = created['id']
            updated = self.wordpress.update_acf(activity['endpoint'], post_id, acf)
            return {'success': True, 'wp_post_id': post_id, 'post': updated}
        except (WordPressError, AuthError, requests.RequestException) as e:
            logger.error(f"[{run_id}] WordPress publish failed: {e}")
            return {'success': False, 'error': str(e)}

    def _notify_template_required(self, data: dict, record_id: str, wp_post_id: int) -> None:
        run_id = data['run_id']
        output = data['output_json']
        title = output.get('tema') or output.get('titulo') or f"Activity {run_id}"
        try:
            result = self.send_email(
                run_id=run_id,
                wp_post_id=wp_post_id,
                title=title,
                airtable_record_id=record_id,
            )
            self.airtable.append_event_log(
                'template_required_email_sent', run_id=run_id,
                details={'message_id': result.get('message_id')},
            )
        except (EmailError, requests.RequestException) as e:
            # The post already exists; a failed notification does not fail the request
            logger.error(f"[{run_id}] Template-required email failed: {e}")
            self.airtable.append_event_log(
                'template_required_email_failed', level='error', run_id=run_id,
                message=str(e), stack=traceback.format_exc(),
            )

    def publish_activity(self, data: dict, activity_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Store an activity in Airtable and publish it as a WordPress draft.

        Args:
            data: Request body with run_id, output_json and needs_clarification
            activity_type: Force 'curriculum' or 'logic' instead of detecting it
                from the run_id prefix

        Returns:
            Dictionary with run_id, airtable_record_id, wp_post_id, activity
            type info and per-backend success flags

        Raises:
            ValueError: If the request body is invalid
        """
        start_time = time.time()

        error = validate_activity(data)
        if error:
            run_id = data.get('run_id') if isinstance(data, dict) else ''
            self.airtable.append_event_log(
                'invalid_request_body', level='error', run_id=str(run_id or ''), message=error,
            )
            raise ValueError(error)

        if not isinstance(data.get('needs_clarification'), bool):
            data['needs_clarification'] = False

        run_id = data['run_id']
        output = data['output_json']
        self.airtable.append_event_log(
            'request_received', run_id=run_id,
            agent=output.get('tipo_de_actividad') or output.get('agent'),
        )

        if activity_type:
            activity = activity_type_by_name(activity_type)
        else:
            activity = determine_activity_type(run_id)

        airtable_result = self._save_to_airtable(data)
        wp_result = self._save_to_wordpress(data, activity)

        record_id = airtable_result.get('record_id')
        wp_post_id = wp_result.get('wp_post_id')
        both_ok = airtable_result['success'] and wp_result['success']

        if both_ok:
            try:
                self.airtable.update_record(record_id, {'WP Post ID': int(wp_post_id)})
            except AirtableError as e:
                logger.error(f"[{run_id}] Could not link WP post {wp_post_id} to Airtable: {e}")

        if output.get('requiere_plantilla') is True:
            if both_ok:
                self._notify_template_required(data, record_id, wp_post_id)
            else:
                logger.warning(f"[{run_id}] Template required but not notified: publish incomplete")

        duration_ms = int((time.time() - start_time) * 1000)
        self.airtable.append_event_log(
            'process_completed', run_id=run_id, duration_ms=duration_ms,
            details={
                'airtable_success': airtable_result['success'],
                'wordpress_success': wp_result['success'],
                'airtable_error': airtable_result.get('error'),
                'wordpress_error': wp_result.get('error'),
            },
        )

        logger.info(f"[{run_id}] Publish finished in {duration_ms}ms (post {wp_post_id})")
        return {
            'run_id': run_id,
            'airtable_record_id': record_id,
            'wp_post_id': wp_post_id,
            'activity_type': activity['type'],
            'wp_endpoint': activity['endpoint'],
            'default_fields': activity['default_fields'],
            'airtable_success': airtable_result['success'],
            'wordpress_success': wp_result['success'],
        }

    # ---------- Generated images ----------
    def _sync_media(self, run_id: str, media: dict) -> Optional[str]:
        try:
            sync = self.wordpress.sync_media(media['id'])
        except (WordPressError, requests.RequestException) as e:
            logger.warning(f"[{run_id}] Media sync failed (non-critical): {e}")
            return None

        if sync.get('is_gcs'):
            logger.info(f"[{run_id}] Media {media['id']} synced to cloud storage ({sync.get('method')})")
        return sync.get('url')

    def attach_generated_images(self, body: dict) -> Dict[str, Any]:
        """
        Generate images, upload them to the media library and set them on the post.

        Args:
            body: Request with prompt, n, size, run_id, wp_post_id, update_fields

        Returns:
            Dictionary with run_id, wp_post_id and previews [{media_id, url}]

        Raises:
            ValueError: If prompt is missing
            ImageGenerationError: If OpenAI fails
            WordPressError: If a media upload fails
        """
        prompt = body.get('prompt')
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValueError("Missing prompt")

        run_id = body.get('run_id') or ''
        wp_post_id = body.get('wp_post_id')
        images = self.generate(prompt, body.get('n', 3), body.get('size', '1024x1024'))

        fields = image_fields(run_id, body.get('update_fields'))
        endpoint = determine_activity_type(run_id)['endpoint']
        previews = []

        for index, raw in enumerate(images, start=1):
            filename = f"{run_id or 'activity'}-preview-{index}-{int(time.time() * 1000)}.jpg"
            media = self.wordpress.upload_media(
                self.convert(raw),
                filename=filename,
                title=f"Preview {index} - {run_id or 'Activity'}",
                post_id=wp_post_id,
            )
            preview = {'media_id': media['id'], 'url': media.get('source_url')}
            preview['url'] = self._sync_media(run_id, media) or preview['url']
            previews.append(preview)

            if wp_post_id:
                try:
                    self.wordpress.update_acf(endpoint, wp_post_id, {f: media['id'] for f in fields})
                except (WordPressError, requests.RequestException) as e:
                    # Image is uploaded; only the field assignment failed
                    logger.warning(
                        f"[{run_id}] ACF update failed for {endpoint} post {wp_post_id} "
                        f"(media {media['id']} at {preview['url']}): {e}"
                    )

        logger.info(f"[{run_id}] {len(previews)} image(s) uploaded")
        return {'run_id': run_id or None, 'wp_post_id': wp_post_id or None, 'previews': previews}
