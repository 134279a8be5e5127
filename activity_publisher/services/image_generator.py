"""
Image generation with the OpenAI Images API.
"""
import base64
import io
import logging
import os
from typing import List, Optional

import openai
from openai import OpenAI
from PIL import Image
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

# Initialize OpenAI client lazily
client: Optional[OpenAI] = None

MAX_IMAGES = 4
DEFAULT_IMAGE_COUNT = 3
DEFAULT_SIZE = '1024x1024'
JPEG_QUALITY = 90


class ImageGenerationError(Exception):
    """Raised when OpenAI does not return usable images."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


def _get_client() -> OpenAI:
    """Get or initialize OpenAI client."""
    global client
    if client is None:
        api_key = os.getenv('OPENAI_API_KEY')
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable not set")
        client = OpenAI(api_key=api_key)
        logger.info("OpenAI client initialized successfully")
    return client


def clamp_image_count(n) -> int:
    """Coerce the requested count into 1..MAX_IMAGES (default 3 on bad input)."""
    try:
        count = int(n)
    except (TypeError, ValueError):
        count = DEFAULT_IMAGE_COUNT
    if count == 0:
        count = DEFAULT_IMAGE_COUNT
    return min(max(count, 1), MAX_IMAGES)


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((openai.RateLimitError, openai.APIConnectionError)),
    reraise=True
)
def _call_openai_images(prompt: str, n: int, size: str, model: str):
    return _get_client().images.generate(model=model, prompt=prompt, n=n, size=size)


def generate_images(prompt: str, n=DEFAULT_IMAGE_COUNT, size: str = DEFAULT_SIZE) -> List[bytes]:
    """
    Generate images for a prompt.

    Args:
        prompt: Image prompt
        n: Requested number of images (clamped to 1..4)
        size: Image size accepted by the model

    Returns:
        Raw image bytes (PNG) for each generated image

    Raises:
        ImageGenerationError: On API failure or an empty result
    """
    model = os.getenv('OPENAI_IMAGE_MODEL', 'gpt-image-1')
    count = clamp_image_count(n)
    logger.info(f"Generating {count} image(s) with {model}: {prompt[:50]!r}")

    try:
        response = _call_openai_images(prompt, count, size, model)
    except openai.APIStatusError as e:
        logger.error(f"OpenAI image generation failed: {e.status_code} - {e.message}")
        raise ImageGenerationError(f"OpenAI image generation failed: {e.message}", e.status_code) from e
    except openai.OpenAIError as e:
        logger.error(f"OpenAI image generation failed: {type(e).__name__} - {e}")
        raise ImageGenerationError(f"OpenAI image generation failed: {e}") from e

    images = [base64.b64decode(item.b64_json) for item in (response.data or []) if item.b64_json]
    if not images:
        raise ImageGenerationError("OpenAI returned no image data")

    logger.info(f"OpenAI generated {len(images)} image(s)")
    return images


def to_jpeg(image_bytes: bytes, quality: int = JPEG_QUALITY) -> bytes:
    """Convert image bytes to JPEG, flattening transparency onto white."""
    with Image.open(io.BytesIO(image_bytes)) as img:
        if img.mode in ('RGBA', 'LA', 'P'):
            rgba = img.convert('RGBA')
            background = Image.new('RGB', rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            img = background
        elif img.mode != 'RGB':
            img = img.convert('RGB')

        out = io.BytesIO()
        img.save(out, format='JPEG', quality=quality)
        return out.getvalue()
