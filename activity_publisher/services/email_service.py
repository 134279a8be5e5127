"""
Notification email via the Mandrill transactional API.
"""
import logging
import os
from html import escape
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)

MANDRILL_SEND_URL = 'https://mandrillapp.com/api/1.0/messages/send.json'


class EmailError(Exception):
    """Raised when the email cannot be configured or sent."""
    pass


def parse_recipients(value: Optional[str]) -> List[str]:
    return [part.strip() for part in str(value or '').split(',') if part.strip()]


def _template_required_html(run_id, wp_post_id, title, airtable_record_id) -> str:
    rows = [
        ('Run ID', run_id),
        ('WP Post ID', wp_post_id),
        ('Airtable Record ID', airtable_record_id),
        ('Title', title),
    ]
    items = ''.join(f"<li><strong>{label}:</strong> {escape(str(value or ''))}</li>" for label, value in rows)
    return (
        "<h2>Activity requires a template or visual support</h2>"
        f"<ul>{items}</ul>"
        "<p>Action: assign or design a template and attach it to the activity.</p>"
    )


def send_template_required_email(
    run_id: str,
    wp_post_id: Optional[int],
    title: str,
    airtable_record_id: Optional[str],
    session: Optional[requests.Session] = None,
) -> dict:
    """
    Notify the template team that an activity needs a template.

    Reads MANDRILL_API_KEY, EMAIL_FROM and EMAIL_TO_TEMPLATES (comma separated).

    Returns:
        Dictionary with success flag, message_id and the raw Mandrill result

    Raises:
        EmailError: If configuration is missing or Mandrill rejects the message
    """
    api_key = (os.getenv('MANDRILL_API_KEY') or '').strip()
    if not api_key:
        raise EmailError("MANDRILL_API_KEY is not configured")

    to = parse_recipients(os.getenv('EMAIL_TO_TEMPLATES'))
    if not to:
        raise EmailError("EMAIL_TO_TEMPLATES is empty or not configured")

    sender = (os.getenv('EMAIL_FROM') or '').strip()
    if not sender:
        raise EmailError("EMAIL_FROM is empty or not configured")

    subject = f"Template required: {title or run_id or 'Activity'}"
    message = {
        'html': _template_required_html(run_id, wp_post_id, title, airtable_record_id),
        'subject': subject,
        'from_email': sender,
        'from_name': sender.split('@')[0] or 'Activity Publisher',
        'to': [{'email': email, 'type': 'to'} for email in to],
        'track_opens': True,
        'track_clicks': True,
        'auto_text': True,
        'inline_css': True,
        'preserve_recipients': False,
    }

    logger.info(f"Sending template-required email for {run_id} to {', '.join(to)}")
    http = session or requests
    try:
        response = http.post(MANDRILL_SEND_URL, json={'key': api_key, 'message': message}, timeout=10)
    except requests.RequestException as e:
        raise EmailError(f"Mandrill request failed: {e}") from e

    try:
        result = response.json()
    except ValueError:
        result = None

    if response.status_code != 200 or not isinstance(result, list) or not result:
        logger.error(f"Mandrill rejected message: {response.status_code} - {response.text[:300]}")
        if isinstance(result, dict) and result.get('name') == 'Invalid_Key':
            logger.error("MANDRILL_API_KEY is invalid")
        raise EmailError(f"Mandrill error {response.status_code}: {response.text[:300]}")

    first = result[0]
    logger.info(f"Email queued: id={first.get('_id')} status={first.get('status')}")
    return {'success': True, 'message_id': first.get('_id'), 'mandrill_response': result}
