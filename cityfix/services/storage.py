#cityfix\services\storage.py
import base64
import logging
import secrets
import time
from urllib.parse import urlparse

import requests

from cityfix.core.config import settings
from cityfix.core.errors import UploadRejected, RemoteStoreError

logger = logging.getLogger(__name__)

def _configured() -> bool:
    return bool(settings.supabase_url and settings.supabase_service_role)

def _auth_headers() -> dict:
    return {"Authorization": f"Bearer {settings.supabase_service_role}"}

def validate_image(data: bytes, content_type: str) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise UploadRejected("Invalid file type. Please upload an image file.")
    if not data:
        raise UploadRejected("Empty file.")
    if len(data) > settings.max_image_bytes:
        limit_mb = settings.max_image_bytes / (1024 * 1024)
        raise UploadRejected(f"File size exceeds {limit_mb:g}MB limit.")

def make_object_key(filename: str, folder: str = "issues") -> str:
    ext = (filename.rsplit(".", 1)[-1] if "." in filename else "jpg").lower() or "jpg"
    return f"{folder}/{secrets.token_hex(6)}-{int(time.time() * 1000)}.{ext}"

def public_url(path: str) -> str:
    return f"{settings.supabase_url}/storage/v1/object/public/{settings.supabase_bucket}/{path}"

def upload_image(data: bytes, content_type: str, filename: str, folder: str = "issues") -> str:
    """Uploads to Supabase Storage via REST; returns public URL (bucket must be public)."""
    validate_image(data, content_type)
    if not _configured():
        # no storage configured: inline the image
        b64 = base64.b64encode(data).decode("utf-8")
        return f"data:{content_type};base64,{b64}"
    path = make_object_key(filename, folder)
    url = f"{settings.supabase_url}/storage/v1/object/{settings.supabase_bucket}/{path}"
    try:
        r = requests.post(url, headers={
            **_auth_headers(),
            "Content-Type": content_type,
            "cache-control": "3600",
            "x-upsert": "false",
        }, data=data, timeout=30)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.error("Error uploading file %s: %s", path, e)
        raise RemoteStoreError(f"Failed to upload image: {e}") from e
    return public_url(path)

def object_path(file_url: str) -> str:
    """Bucket-relative object path of a public storage URL."""
    marker = f"/storage/v1/object/public/{settings.supabase_bucket}/"
    path = urlparse(file_url).path
    if marker not in path:
        raise UploadRejected("Invalid file URL")
    rel = path.split(marker, 1)[1]
    if not rel:
        raise UploadRejected("Invalid file URL")
    return rel

def delete_image(file_url: str) -> None:
    if file_url.startswith("data:"):
        return
    rel = object_path(file_url)
    if not _configured():
        return
    url = f"{settings.supabase_url}/storage/v1/object/{settings.supabase_bucket}"
    try:
        r = requests.delete(url, headers=_auth_headers(), json={"prefixes": [rel]}, timeout=30)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.error("Error deleting file %s: %s", rel, e)
        raise RemoteStoreError("Failed to delete image") from e
