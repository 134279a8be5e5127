"""
Unit tests for activity type detection and WordPress payload mapping.
"""
from activity_publisher.services.activity_mapper import (
    activity_type_by_name,
    build_wp_payload,
    determine_activity_type,
    image_fields,
    normalize_key,
    slugify,
)


class TestActivityType:
    """Tests for determine_activity_type."""

    def test_curriculum_prefixes(self):
        assert determine_activity_type('deep-lingual-123')['endpoint'] == 'planessemanales'
        assert determine_activity_type('deeplingual-123')['type'] == 'curriculum'

    def test_logic_prefixes(self):
        for run_id in ('deepgraphic-1', 'deep-graphic-1'):
            info = determine_activity_type(run_id)
            assert info['type'] == 'logic'
            assert info['endpoint'] == 'actividadlogicomatematica'
            assert info['default_fields'] == ['multimedia_es', 'multimedia_en', 'foto']

    def test_unknown_prefix_defaults_to_curriculum(self):
        assert determine_activity_type('something-else')['type'] == 'curriculum'
        assert determine_activity_type('')['type'] == 'curriculum'

    def test_lookup_by_name(self):
        assert activity_type_by_name('logic')['endpoint'] == 'actividadlogicomatematica'
        assert activity_type_by_name('curriculum')['default_fields'] == ['foto']

    def test_returned_fields_are_a_copy(self):
        determine_activity_type('deepgraphic-1')['default_fields'].append('oops')

        assert 'oops' not in determine_activity_type('deepgraphic-1')['default_fields']


class TestPayload:
    """Tests for build_wp_payload."""

    def test_title_content_and_draft_status(self):
        payload = build_wp_payload(
            {'tema': 'Los Colores', 'contenido': '<p>Hola</p>', 'edad': 4, 'objetivos': ['a', 'b']},
            'deep-lingual-1',
        )

        assert payload['title'] == 'Los Colores'
        assert payload['content'] == '<p>Hola</p>'
        assert payload['status'] == 'draft'
        assert payload['slug'] == 'los-colores'
        assert payload['acf'] == {'edad': 4, 'objetivos': ['a', 'b']}

    def test_nested_values_not_sent_as_acf(self):
        payload = build_wp_payload({'titulo': 'x', 'meta': {'a': 1}, 'rows': [{'a': 1}]}, 'r1')

        assert payload['acf'] == {}

    def test_fallback_title_and_slug(self):
        payload = build_wp_payload({}, 'deep-lingual-9')

        assert payload['title'] == 'Activity deep-lingual-9'
        assert payload['slug'] == 'actividad-deep-lingual-9'
        assert payload['content'] == ''


class TestHelpers:
    """Tests for key normalization and image field selection."""

    def test_normalize_key(self):
        assert normalize_key('  Canción   Infantil ') == 'cancion infantil'
        assert normalize_key(None) == ''

    def test_slugify(self):
        assert slugify('¡Números y Formas!') == 'numeros-y-formas'

    def test_image_fields_explicit(self):
        assert image_fields('deepgraphic-1', ['foto', '', 3]) == ['foto']

    def test_image_fields_defaults(self):
        assert image_fields('deepgraphic-1') == ['multimedia_es', 'multimedia_en', 'foto']
        assert image_fields('deep-lingual-1', []) == ['foto']

    def test_image_fields_single_string(self):
        """A bare field name is one field, not a list of characters."""
        assert image_fields('deep-lingual-1', 'foto') == ['foto']
        assert image_fields('deepgraphic-1', '  ') == ['multimedia_es', 'multimedia_en', 'foto']

    def test_image_fields_ignores_other_types(self):
        assert image_fields('deep-lingual-1', {'foto': 1}) == ['foto']
        assert image_fields('deep-lingual-1', 7) == ['foto']
