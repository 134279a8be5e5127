"""
Maps an agent's activity output onto a WordPress post payload.
"""
import re
import unicodedata
from typing import Any, Dict, List

CURRICULUM = {
    'type': 'curriculum',
    'endpoint': 'planessemanales',
    'default_fields': ['foto'],
}

LOGIC = {
    'type': 'logic',
    'endpoint': 'actividadlogicomatematica',
    'default_fields': ['multimedia_es', 'multimedia_en', 'foto'],
}

ACTIVITY_TYPES = {info['type']: info for info in (CURRICULUM, LOGIC)}

RUN_ID_PREFIXES = (
    ('deep-lingual-', CURRICULUM),
    ('deeplingual-', CURRICULUM),
    ('deepgraphic-', LOGIC),
    ('deep-graphic-', LOGIC),
)

TITLE_KEYS = ('titulo', 'title', 'tema')
CONTENT_KEYS = ('contenido', 'content', 'descripcion')
# Keys consumed by the post itself rather than stored as ACF
POST_KEYS = set(TITLE_KEYS) | set(CONTENT_KEYS) | {'slug'}


def normalize_key(value: Any = '') -> str:
    """Lowercase, trim, strip accents and collapse whitespace."""
    text = unicodedata.normalize('NFD', str(value or '').lower().strip())
    text = ''.join(ch for ch in text if unicodedata.category(ch) != 'Mn')
    return re.sub(r'\s+', ' ', text)


def slugify(value: Any) -> str:
    slug = normalize_key(value).replace(' ', '-')
    slug = re.sub(r'[^a-z0-9-]', '', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip('-')


def _copy(info: Dict[str, Any]) -> Dict[str, Any]:
    return {**info, 'default_fields': list(info['default_fields'])}


def activity_type_by_name(name: str) -> Dict[str, Any]:
    """Look up an activity type ('curriculum' or 'logic'). Raises KeyError if unknown."""
    return _copy(ACTIVITY_TYPES[name])


def determine_activity_type(run_id: str) -> Dict[str, Any]:
    """
    Pick the WordPress post type for a run from its prefix.
    Unknown prefixes are treated as curriculum activities.
    """
    for prefix, info in RUN_ID_PREFIXES:
        if (run_id or '').startswith(prefix):
            return _copy(info)
    return _copy(CURRICULUM)


def _first_value(data: Dict[str, Any], keys) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ''


def _acf_value(value: Any):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, list) and all(isinstance(v, (str, int, float, bool)) for v in value):
        return value
    return None


def build_wp_payload(output_json: Dict[str, Any], run_id: str) -> Dict[str, Any]:
    """
    Build the WordPress payload for an activity.

    Args:
        output_json: Agent output for the activity
        run_id: Run identifier, used for the fallback title and slug

    Returns:
        Dictionary with title, content, status (draft), slug and acf
    """
    title = _first_value(output_json, TITLE_KEYS) or f"Activity {run_id}"
    content = _first_value(output_json, CONTENT_KEYS)
    slug = slugify(output_json.get('slug') or output_json.get('tema') or f"actividad-{run_id}")

    acf = {}
    for key, value in output_json.items():
        if key in POST_KEYS:
            continue
        converted = _acf_value(value)
        if converted is not None:
            acf[key] = converted

    return {
        'title': title,
        'content': content,
        'status': 'draft',
        'slug': slug,
        'acf': acf,
    }


def image_fields(run_id: str, update_fields: List[str] = None) -> List[str]:
    """Fields that receive an uploaded image: explicit list, else the type defaults."""
    if isinstance(update_fields, str):
        update_fields = [update_fields]
    elif not isinstance(update_fields, (list, tuple)):
        update_fields = []
    fields = [f for f in update_fields if isinstance(f, str) and f.strip()]
    return fields or determine_activity_type(run_id)['default_fields']
