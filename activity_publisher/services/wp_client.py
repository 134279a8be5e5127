"""
WordPress REST client. Every call goes through the JWT manager so an expired
token is renewed and the call retried once.
"""
import logging
from typing import Any, Dict, Optional

import requests

from activity_publisher.auth.token_manager import AuthTokenManager

logger = logging.getLogger(__name__)


class WordPressError(Exception):
    """Raised when WordPress rejects a call or answers with something other than JSON."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"WordPress error {status}: {message}")


class WordPressClient:
    """
    Thin wrapper over the WordPress REST API (posts, ACF fields, media).

    Args:
        token_manager: Manager that owns the JWT for this site
        base_url: Site URL, e.g. https://example.com (no trailing slash needed)
    """

    def __init__(self, token_manager: AuthTokenManager, base_url: str):
        self.token_manager = token_manager
        self.base_url = (base_url or '').rstrip('/')
        self.api_base = f"{self.base_url}/wp-json/wp/v2"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        response = self.token_manager.request_with_auth(method, url, **kwargs)
        if not 200 <= response.status_code < 300:
            snippet = response.text[:300] if response.text else ''
            logger.error(f"WP {method} {url} failed: {response.status_code} - {snippet}")
            raise WordPressError(response.status_code, snippet)
        return response

    def _json(self, response: requests.Response) -> Any:
        ctype = (response.headers.get('Content-Type') or '').lower()
        if 'application/json' not in ctype:
            raise WordPressError(
                response.status_code,
                f"Expected JSON, got {ctype or 'no content type'}: {response.text[:300]}"
            )
        return response.json()

    def get_current_user(self) -> Dict[str, Any]:
        """Return the user the JWT authenticates as (GET users/me)."""
        response = self._request('GET', f"{self.api_base}/users/me", headers={'Accept': 'application/json'})
        return self._json(response)

    def create_post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a post of the given type.

        Args:
            endpoint: REST base of the post type (e.g. 'planessemanales')
            payload: Post fields (title, content, status, slug, ...)

        Returns:
            Created post as returned by WordPress

        Raises:
            WordPressError: On non-2xx, non-JSON, or a response without an id
        """
        url = f"{self.api_base}/{endpoint}"
        response = self._request(
            'POST', url,
            json=payload,
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
        )
        post = self._json(response)
        if not post.get('id'):
            raise WordPressError(response.status_code, f"Created post has no id: {response.text[:300]}")

        logger.info(f"WP created {endpoint} post {post['id']}")
        return post

    def update_post(self, endpoint: str, post_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Update a post (WordPress accepts POST on the item route)."""
        url = f"{self.api_base}/{endpoint}/{post_id}"
        response = self._request(
            'POST', url,
            json=payload,
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
        )
        logger.info(f"WP updated {endpoint} post {post_id}: {', '.join(payload.keys())}")
        return self._json(response)

    def update_acf(self, endpoint: str, post_id: int, acf: Dict[str, Any]) -> Dict[str, Any]:
        return self.update_post(endpoint, post_id, {'acf': acf})

    def upload_media(
        self,
        content: bytes,
        filename: str,
        title: str,
        post_id: Optional[int] = None,
        content_type: str = 'image/jpeg',
    ) -> Dict[str, Any]:
        """
        Upload a file to the media library, optionally attached to a post.

        Args:
            content: File bytes
            filename: Name stored in WordPress
            title: Attachment title
            post_id: Post the attachment is uploaded to
            content_type: MIME type of the file

        Returns:
            Media object (id, source_url, ...)
        """
        data = {'title': title}
        if post_id:
            data['post'] = str(post_id)

        response = self._request(
            'POST', f"{self.api_base}/media",
            files={'file': (filename, content, content_type)},
            data=data,
        )
        media = self._json(response)
        logger.info(f"WP media {media.get('id')} uploaded: {media.get('source_url')}")
        return media

    def sync_media(self, media_id: int) -> Dict[str, Any]:
        """
        Ask the site plugin to regenerate metadata and sync the file to cloud storage.

        Returns:
            Plugin response with url, is_gcs, stateless_active and method
        """
        url = f"{self.base_url}/wp-json/deeplingual/v1/sync-media/{media_id}"
        response = self._request('POST', url, json={}, headers={'Content-Type': 'application/json'})
        return self._json(response)
