# storage.py
"""
Object storage for proof files, permission letters and face samples.

Uploads arrive as base64 data URLs. Two backends share the same contract:
``put`` returns a URL, ``delete`` is best-effort and returns a bool, and
``parse_url`` turns a URL this backend produced back into (bucket, name).
"""
import base64
import binascii
import io
import json
import logging
import os
import re
import secrets
import time
from datetime import timedelta
from typing import Optional, Tuple
from urllib.parse import urlparse, unquote

from minio import Minio
from minio.error import S3Error

from config import settings
from errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

PAYMENTS = "payments"
PERMISSIONS = "permissions"
FACES = "faces"
ATTENDANCE = "attendance"
BUCKETS = (PAYMENTS, PERMISSIONS, FACES, ATTENDANCE)

DATA_URL_RE = re.compile(r"^data:([A-Za-z0-9.+/-]+);base64,(.+)$", re.DOTALL)

MIME_BY_EXT = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def parse_data_url(data_url: str) -> Optional[Tuple[str, str]]:
    """(mime type, base64 payload) or None if this is not a data URL."""
    match = DATA_URL_RE.match(data_url or "")
    if not match:
        return None
    return match.group(1), match.group(2)


def decode_data_url(data_url: str, max_bytes: int = None) -> Tuple[str, bytes]:
    parsed = parse_data_url(data_url)
    if parsed is None:
        raise ValidationError("Invalid base64 file format.")
    mime, payload = parsed
    try:
        content = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid base64 file content.")
    limit = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_MB * 1024 * 1024
    if len(content) > limit:
        raise ValidationError(f"File exceeds the {limit // (1024 * 1024)} MB limit.")
    return mime, content


def object_name(prefix: str, mime: str) -> str:
    ext = (mime.split("/")[-1] or "bin").split("+")[0]
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(8)}.{ext}"


class ObjectStorage:
    def put(self, data: bytes, bucket: str, name: str, content_type: str) -> str:
        raise NotImplementedError

    def delete(self, bucket: str, name: str) -> bool:
        raise NotImplementedError

    def parse_url(self, url: str) -> Optional[Tuple[str, str]]:
        raise NotImplementedError

    def upload_data_url(self, data_url: str, bucket: str, prefix: str = "") -> str:
        mime, content = decode_data_url(data_url)
        return self.put(content, bucket, object_name(prefix, mime), mime)

    def delete_url(self, url: Optional[str]) -> bool:
        """Best-effort removal of an object by its URL; never raises."""
        if not url:
            return False
        parsed = self.parse_url(url)
        if parsed is None:
            logger.warning("Can not delete %s: not a storage URL", url)
            return False
        ok = self.delete(*parsed)
        if not ok:
            logger.warning("Failed to delete %s/%s", *parsed)
        return ok


class LocalStorage(ObjectStorage):
    """Files under ``root/<bucket>/``, served by the app at ``/uploads``."""

    def __init__(self, root: str, base_url: str):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def put(self, data, bucket, name, content_type):
        folder = os.path.join(self.root, bucket)
        try:
            os.makedirs(folder, exist_ok=True)
            with open(os.path.join(folder, name), "wb") as buffer:
                buffer.write(data)
        except OSError as e:
            logger.error("Local upload to %s/%s failed: %s", bucket, name, e)
            raise StorageError("Failed to upload file to storage.")
        return f"{self.base_url}/uploads/{bucket}/{name}"

    def delete(self, bucket, name):
        try:
            os.remove(os.path.join(self.root, bucket, name))
            return True
        except OSError as e:
            logger.warning("Local delete of %s/%s failed: %s", bucket, name, e)
            return False

    def parse_url(self, url):
        path = unquote(urlparse(url).path)
        if not path.startswith("/uploads/"):
            return None
        parts = path[len("/uploads/"):].split("/", 1)
        if len(parts) != 2 or not parts[1]:
            return None
        return parts[0], parts[1]

    def exists(self, bucket, name) -> bool:
        return os.path.isfile(os.path.join(self.root, bucket, name))


class MinioStorage(ObjectStorage):
    def __init__(self, client: Minio, public: bool = False, secure: bool = False, endpoint: str = ""):
        self.client = client
        self.public = public
        self.secure = secure
        self.endpoint = endpoint

    @classmethod
    def from_settings(cls):
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE,
        )
        return cls(client, settings.MINIO_PUBLIC_ACCESS, settings.MINIO_SECURE, settings.MINIO_ENDPOINT)

    def ensure_buckets(self):
        for bucket in BUCKETS:
            if self.client.bucket_exists(bucket):
                continue
            self.client.make_bucket(bucket)
            logger.info("Created MinIO bucket: %s", bucket)
            if self.public:
                policy = {
                    "Version": "2012-10-17",
                    "Statement": [{
                        "Effect": "Allow",
                        "Principal": {"AWS": ["*"]},
                        "Action": ["s3:GetObject"],
                        "Resource": [f"arn:aws:s3:::{bucket}/*"],
                    }],
                }
                self.client.set_bucket_policy(bucket, json.dumps(policy))

    def url_for(self, bucket, name):
        if self.public:
            scheme = "https" if self.secure else "http"
            return f"{scheme}://{self.endpoint}/{bucket}/{name}"
        return self.client.presigned_get_object(bucket, name, expires=timedelta(days=7))

    def put(self, data, bucket, name, content_type):
        try:
            self.client.put_object(bucket, name, io.BytesIO(data), len(data), content_type=content_type)
            return self.url_for(bucket, name)
        except S3Error as e:
            logger.error("MinIO upload to %s/%s failed: %s", bucket, name, e)
            raise StorageError("Failed to upload file to storage.")

    def delete(self, bucket, name):
        try:
            self.client.remove_object(bucket, name)
            return True
        except S3Error as e:
            logger.warning("MinIO delete of %s/%s failed: %s", bucket, name, e)
            return False

    def parse_url(self, url):
        parts = [p for p in unquote(urlparse(url).path).split("/") if p]
        if len(parts) < 2:
            return None
        return parts[0], "/".join(parts[1:])


_storage: Optional[ObjectStorage] = None


def build_storage() -> ObjectStorage:
    if settings.STORAGE_BACKEND == "minio":
        return MinioStorage.from_settings()
    return LocalStorage(settings.UPLOAD_DIR, settings.PUBLIC_BASE_URL)


# FastAPI dependency; tests override it with a LocalStorage in tmp_path
def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = build_storage()
    return _storage


def describe_url(url: str) -> dict:
    """Mime type and approximate size of a stored URL or a data URL."""
    if not url:
        raise ValidationError("File URL is required.")
    info = {
        "url": url,
        "is_base64": url.startswith("data:"),
        "is_remote": url.startswith("http://") or url.startswith("https://"),
        "mime_type": None,
        "size": None,
    }
    if info["is_base64"]:
        parsed = parse_data_url(url)
        if parsed:
            info["mime_type"] = parsed[0]
            info["size"] = (len(parsed[1]) * 3 + 3) // 4
    elif info["is_remote"]:
        ext = urlparse(url).path.rsplit(".", 1)[-1].lower()
        info["mime_type"] = MIME_BY_EXT.get(ext, "application/octet-stream")
    else:
        raise ValidationError("Invalid file URL format.")
    return info
