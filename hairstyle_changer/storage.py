# Durable asset storage: user uploads and relocated provider results

from abc import ABC, abstractmethod
import logging
import mimetypes
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin
from uuid import uuid4

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

# namespace for relocated generation results
RESULT_NAMESPACE = "result/hairstyle"
UPLOAD_NAMESPACE = "upload"


class AssetStorage(ABC):
    """Writes bytes under a key and returns the public URL of the object.

    Subclasses implement ``put``; uploading and relocation are shared.
    """

    def __init__(self, public_base_url: str, timeout: float = 120, transport: Optional[httpx.BaseTransport] = None):
        # urljoin drops the last path segment of a base without trailing slash
        self.public_base_url = public_base_url.rstrip("/") + "/"
        self.timeout = timeout
        self._transport = transport

    def public_url(self, key: str) -> str:
        return urljoin(self.public_base_url, key)

    @abstractmethod
    def put(self, key: str, content: bytes, content_type: str) -> str:
        raise NotImplementedError

    def upload(self, content: bytes, filename: str, namespace: str = UPLOAD_NAMESPACE) -> str:
        """Store a user file under a random name, keeping its extension."""
        suffix = Path(filename).suffix or ".png"
        key = f"{namespace}/{uuid4().hex}{suffix}"
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        return self.put(key, content, content_type)

    def relocate(self, source_url: str, namespace: str, file_base_name: str, ext: str = "png") -> str:
        """Download ``source_url`` and rehost it as ``<namespace>/<file_base_name>.<ext>``."""
        with httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
            rr = client.get(source_url)
            rr.raise_for_status()
            content = rr.content

        key = f"{namespace}/{file_base_name}.{ext}"
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        return self.put(key, content, content_type)


class LocalAssetStorage(AssetStorage):
    """Writes under a local directory that is served as static files."""

    def __init__(self, root_dir: Path, public_base_url: str, **kwargs):
        super().__init__(public_base_url, **kwargs)
        self.root_dir = Path(root_dir)

    def put(self, key, content, content_type):
        out_path = self.root_dir / key
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with out_path.open("wb") as f:
            f.write(content)
        return self.public_url(key)


class S3AssetStorage(AssetStorage):
    """AWS S3 / R2 / S3-compatible bucket."""

    def __init__(self, settings: Settings, **kwargs):
        super().__init__(settings.CDN_URL, **kwargs)
        # Lazy import to avoid hard dependency in local dev
        try:
            import boto3  # type: ignore
        except ImportError as e:
            raise RuntimeError("boto3 is required for S3 storage; install and set STORAGE_BACKEND=s3") from e

        if not settings.S3_BUCKET:
            raise RuntimeError("S3_BUCKET is required when STORAGE_BACKEND=s3")
        self.bucket = settings.S3_BUCKET

        session_kwargs = {}
        if settings.S3_REGION:
            session_kwargs["region_name"] = settings.S3_REGION
        s3_session = boto3.session.Session(**session_kwargs)
        client_kwargs = {}
        if settings.S3_ENDPOINT:
            client_kwargs["endpoint_url"] = settings.S3_ENDPOINT
        if settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY:
            client_kwargs["aws_access_key_id"] = settings.S3_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = settings.S3_SECRET_ACCESS_KEY
        self.s3 = s3_session.client("s3", **client_kwargs)

    def put(self, key, content, content_type):
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=content, ContentType=content_type)
        return self.public_url(key)


def build_storage(settings: Settings, static_dir: Path) -> AssetStorage:
    backend = (settings.STORAGE_BACKEND or "local").lower()
    if backend == "s3":
        return S3AssetStorage(settings, timeout=settings.STORAGE_TIMEOUT)
    if backend != "local":
        raise RuntimeError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
    logger.info("storage backend=local root=%s", static_dir)
    return LocalAssetStorage(static_dir, settings.CDN_URL, timeout=settings.STORAGE_TIMEOUT)
