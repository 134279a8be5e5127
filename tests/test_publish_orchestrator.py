"""
Unit tests for the publish orchestrator.
Airtable, WordPress, email and image generation are mocked.
"""
from unittest.mock import MagicMock, Mock

import pytest
import requests

from activity_publisher.auth import RenewalError
from activity_publisher.services.airtable_client import AirtableError
from activity_publisher.services.email_service import EmailError
from activity_publisher.services.image_generator import ImageGenerationError
from activity_publisher.services.publish_orchestrator import PublishOrchestrator, validate_activity
from activity_publisher.services.wp_client import WordPressError


@pytest.fixture
def airtable():
    mock = MagicMock()
    mock.create_record.return_value = {'id': 'rec1', 'fields': {}}
    mock.append_event_log.return_value = True
    return mock


@pytest.fixture
def wordpress():
    mock = MagicMock()
    mock.create_post.return_value = {'id': 42}
    mock.update_acf.return_value = {'id': 42, 'acf': {}}
    mock.upload_media.side_effect = [
        {'id': 100 + i, 'source_url': f'https://wp.example.com/p{i}.jpg'} for i in range(1, 5)
    ]
    mock.sync_media.return_value = {'url': 'https://storage.example.com/p.jpg', 'is_gcs': True}
    return mock


@pytest.fixture
def orchestrator(airtable, wordpress):
    return PublishOrchestrator(
        airtable,
        wordpress,
        token_manager=Mock(),
        send_email=Mock(return_value={'success': True, 'message_id': 'msg1'}),
        generate=Mock(return_value=[b'png1', b'png2']),
        convert=Mock(side_effect=lambda raw: b'jpg-' + raw),
    )


def activity(**output):
    return {'run_id': 'deep-lingual-1', 'output_json': {'tema': 'Colores', **output}}


def logged_events(airtable):
    return [c.args[0] for c in airtable.append_event_log.call_args_list]


class TestValidateActivity:
    """Tests for request body validation."""

    def test_valid(self):
        assert validate_activity(activity()) is None

    @pytest.mark.parametrize('body', [
        None,
        [],
        {'output_json': {}},
        {'run_id': '  ', 'output_json': {}},
        {'run_id': 'r1', 'output_json': 'text'},
    ])
    def test_invalid(self, body):
        assert validate_activity(body) is not None


class TestPublishActivity:
    """Tests for publish_activity."""

    def test_happy_path(self, orchestrator, airtable, wordpress):
        result = orchestrator.publish_activity(activity(edad=4))

        assert result['airtable_record_id'] == 'rec1'
        assert result['wp_post_id'] == 42
        assert result['activity_type'] == 'curriculum'
        assert result['wp_endpoint'] == 'planessemanales'
        assert result['airtable_success'] is True
        assert result['wordpress_success'] is True

        orchestrator.token_manager.get_valid_token.assert_called_once()
        payload = wordpress.create_post.call_args.args[1]
        assert 'acf' not in payload
        assert payload['status'] == 'draft'
        wordpress.update_acf.assert_called_once_with('planessemanales', 42, {'edad': 4})
        airtable.update_record.assert_called_once_with('rec1', {'WP Post ID': 42})
        assert logged_events(airtable) == ['request_received', 'process_completed']

    def test_forced_activity_type(self, orchestrator, wordpress):
        result = orchestrator.publish_activity(activity(), activity_type='logic')

        assert result['activity_type'] == 'logic'
        assert wordpress.create_post.call_args.args[0] == 'actividadlogicomatematica'

    def test_needs_clarification_defaults_false(self, orchestrator, airtable):
        orchestrator.publish_activity(activity())

        fields = airtable.create_record.call_args.args[0]
        assert fields['Needs Clarification'] is False
        assert fields['Run ID'] == 'deep-lingual-1'

    def test_invalid_body_raises(self, orchestrator, airtable):
        with pytest.raises(ValueError):
            orchestrator.publish_activity({'run_id': 'r1'})

        assert logged_events(airtable) == ['invalid_request_body']

    def test_wordpress_failure_keeps_airtable_record(self, orchestrator, airtable, wordpress):
        wordpress.create_post.side_effect = WordPressError(500, 'boom')

        result = orchestrator.publish_activity(activity())

        assert result['airtable_success'] is True
        assert result['wordpress_success'] is False
        assert result['wp_post_id'] is None
        airtable.update_record.assert_not_called()

    def test_renewal_failure_is_a_wordpress_failure(self, orchestrator):
        orchestrator.token_manager.get_valid_token.side_effect = RenewalError(500, 'down')

        result = orchestrator.publish_activity(activity())

        assert result['wordpress_success'] is False

    def test_airtable_failure(self, orchestrator, airtable, wordpress):
        airtable.create_record.side_effect = AirtableError(422, 'INVALID_VALUE')

        result = orchestrator.publish_activity(activity())

        assert result['airtable_success'] is False
        assert result['wordpress_success'] is True
        airtable.update_record.assert_not_called()

    def test_template_required_sends_email(self, orchestrator, airtable):
        orchestrator.publish_activity(activity(requiere_plantilla=True))

        orchestrator.send_email.assert_called_once_with(
            run_id='deep-lingual-1', wp_post_id=42, title='Colores', airtable_record_id='rec1'
        )
        assert 'template_required_email_sent' in logged_events(airtable)

    def test_template_flag_must_be_true(self, orchestrator):
        orchestrator.publish_activity(activity(requiere_plantilla='yes'))

        orchestrator.send_email.assert_not_called()

    def test_email_failure_does_not_fail_publish(self, orchestrator, airtable):
        orchestrator.send_email.side_effect = EmailError('Mandrill error 500')

        result = orchestrator.publish_activity(activity(requiere_plantilla=True))

        assert result['wordpress_success'] is True
        assert 'template_required_email_failed' in logged_events(airtable)

    def test_no_email_when_publish_incomplete(self, orchestrator, wordpress):
        wordpress.create_post.side_effect = requests.ConnectionError('down')

        orchestrator.publish_activity(activity(requiere_plantilla=True))

        orchestrator.send_email.assert_not_called()


class TestAttachGeneratedImages:
    """Tests for attach_generated_images."""

    def test_missing_prompt(self, orchestrator):
        with pytest.raises(ValueError, match='Missing prompt'):
            orchestrator.attach_generated_images({'run_id': 'deepgraphic-1'})

    def test_uploads_and_assigns_default_fields(self, orchestrator, wordpress):
        result = orchestrator.attach_generated_images({
            'prompt': 'shapes', 'n': 2, 'run_id': 'deepgraphic-7', 'wp_post_id': 42,
        })

        orchestrator.generate.assert_called_once_with('shapes', 2, '1024x1024')
        assert wordpress.upload_media.call_args_list[0].args[0] == b'jpg-png1'
        assert wordpress.upload_media.call_args_list[0].kwargs['post_id'] == 42
        assert result['previews'] == [
            {'media_id': 101, 'url': 'https://storage.example.com/p.jpg'},
            {'media_id': 102, 'url': 'https://storage.example.com/p.jpg'},
        ]
        wordpress.update_acf.assert_any_call(
            'actividadlogicomatematica', 42, {'multimedia_es': 101, 'multimedia_en': 101, 'foto': 101}
        )

    def test_explicit_update_fields(self, orchestrator, wordpress):
        orchestrator.attach_generated_images({
            'prompt': 'p', 'run_id': 'deep-lingual-1', 'wp_post_id': 42, 'update_fields': ['portada'],
        })

        wordpress.update_acf.assert_any_call('planessemanales', 42, {'portada': 101})

    def test_update_fields_as_string(self, orchestrator, wordpress):
        orchestrator.attach_generated_images({
            'prompt': 'p', 'run_id': 'deep-lingual-1', 'wp_post_id': 42, 'update_fields': 'portada',
        })

        wordpress.update_acf.assert_any_call('planessemanales', 42, {'portada': 101})

    def test_without_post_only_uploads(self, orchestrator, wordpress):
        result = orchestrator.attach_generated_images({'prompt': 'p'})

        assert result['run_id'] is None
        assert result['wp_post_id'] is None
        assert len(result['previews']) == 2
        wordpress.update_acf.assert_not_called()

    def test_sync_failure_keeps_source_url(self, orchestrator, wordpress):
        wordpress.sync_media.side_effect = WordPressError(404, 'rest_no_route')

        result = orchestrator.attach_generated_images({'prompt': 'p'})

        assert result['previews'][0]['url'] == 'https://wp.example.com/p1.jpg'

    def test_acf_failure_is_not_fatal(self, orchestrator, wordpress):
        wordpress.update_acf.side_effect = WordPressError(400, 'bad field')

        result = orchestrator.attach_generated_images({'prompt': 'p', 'wp_post_id': 42})

        assert len(result['previews']) == 2

    def test_generation_error_propagates(self, orchestrator):
        orchestrator.generate.side_effect = ImageGenerationError('rate limited', 429)

        with pytest.raises(ImageGenerationError):
            orchestrator.attach_generated_images({'prompt': 'p'})

    def test_upload_error_propagates(self, orchestrator, wordpress):
        wordpress.upload_media.side_effect = WordPressError(413, 'too large')

        with pytest.raises(WordPressError):
            orchestrator.attach_generated_images({'prompt': 'p'})
