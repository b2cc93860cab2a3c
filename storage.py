import logging
import time
import uuid
from typing import List, Optional, Tuple

from fastapi import Request
from supabase import Client, create_client

from config import Settings

logger = logging.getLogger(__name__)

MAX_IMAGES = 5
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class ImageStorage:
    """Public bucket on Supabase storage holding product images."""

    def __init__(self, client: Client, bucket: str):
        self.client = client
        self.bucket = bucket

    def upload(self, filename: str, data: bytes, content_type: str) -> str:
        bucket = self.client.storage.from_(self.bucket)
        bucket.upload(filename, data, {"content-type": content_type})
        return bucket.get_public_url(filename)


def build_storage(settings: Settings) -> Optional[ImageStorage]:
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("SUPABASE_URL/SUPABASE_ANON_KEY not set, product image uploads are disabled")
        return None
    return ImageStorage(create_client(settings.supabase_url, settings.supabase_key), settings.supabase_bucket)


def get_storage(request: Request) -> Optional[ImageStorage]:
    return request.app.state.storage


def object_name(original_name: Optional[str]) -> str:
    ext = (original_name or "").rsplit(".", 1)[-1] if "." in (original_name or "") else "bin"
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}.{ext}"


def upload_images(storage: Optional[ImageStorage], files: List[Tuple[str, bytes, str]]) -> List[str]:
    """Upload (filename, data, content_type) triples and return their public URLs.

    A file that fails to upload is logged and skipped; the remaining ones still go up.
    """
    if not files:
        return []
    if storage is None:
        logger.warning("Skipping %d image upload(s): storage not configured", len(files))
        return []
    urls = []
    for original_name, data, content_type in files:
        name = object_name(original_name)
        try:
            urls.append(storage.upload(name, data, content_type))
        except Exception:
            logger.exception("Supabase upload error for %s", original_name)
            continue
    return urls
