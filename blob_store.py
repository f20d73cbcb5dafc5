"""
Blob storage for template base images and generated posters.

One BlobStore interface, two implementations:
- R2BlobStore: Cloudflare R2 (or any S3 compatible service) through boto3
- LocalBlobStore: files under a local directory, served by the HTTP surface

create_blob_store() picks one from configuration; request handlers never
branch on the deployment environment themselves.
"""

import os
import random
import string
import time
from abc import ABC, abstractmethod
from io import BytesIO
from typing import Optional

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from PIL import Image, UnidentifiedImageError

import config
from errors import BlobFetchError, BlobStoreFailure

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "psd": "image/vnd.adobe.photoshop",
    "pdf": "application/pdf",
}


def generate_unique_filename(original_name: str, prefix: str = "") -> str:
    """
    Generate a unique, timestamped key for an uploaded file.

    Args:
        original_name: Original file name, e.g. "diwali.png"
        prefix: Optional key prefix such as "templates/"

    Returns:
        "<prefix><stem>_<epoch ms>_<6 random chars>.<ext>"
    """
    base_name = os.path.basename(original_name or "") or "file"
    stem, ext = os.path.splitext(base_name)
    stem = stem or "file"
    ext = ext.lstrip(".") or "bin"
    timestamp = int(time.time() * 1000)
    random_part = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"{prefix}{stem}_{timestamp}_{random_part}.{ext}"


def get_mime_type(filename: str) -> str:
    """Get the MIME type based on file extension."""
    extension = os.path.splitext(filename or "")[1].lstrip(".").lower()
    return _MIME_TYPES.get(extension, "application/octet-stream")


def _open_image(data: bytes, source: str) -> Image.Image:
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise BlobFetchError(f"Not a readable image: {source}: {e}") from e


class BlobStore(ABC):
    """Upload, delete and fetch binary image assets."""

    @abstractmethod
    def store(self, data: bytes, key: str, mime_type: str) -> str:
        """Persist bytes under key and return a durable, fetchable URL."""

    @abstractmethod
    def delete(self, url_or_key: str) -> None:
        """Delete a previously stored blob."""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Public URL of a key."""

    def key_for(self, url_or_key: str) -> Optional[str]:
        """Recover the storage key from one of this store's URLs, or None when it is foreign."""
        prefix = self.url_for("")
        if url_or_key.startswith(prefix):
            return url_or_key[len(prefix):]
        return None

    def fetch_image(self, path_or_url: str) -> Image.Image:
        """
        Fetch and decode an image from a URL or local path.

        Returns:
            Fully loaded RGB image; the caller owns it and must close it

        Raises:
            BlobFetchError: if the image cannot be fetched or decoded
        """
        if not path_or_url:
            raise BlobFetchError("Empty image path")
        return _open_image(self.fetch_bytes(path_or_url), path_or_url)

    def fetch_bytes(self, path_or_url: str) -> bytes:
        if path_or_url.startswith(("http://", "https://")):
            try:
                headers = {"User-Agent": "Mozilla/5.0"}
                r = requests.get(path_or_url, timeout=config.API_TIMEOUT, headers=headers)
            except requests.RequestException as e:
                raise BlobFetchError(f"Failed to download image from {path_or_url}: {e}") from e
            if r.status_code != 200:
                raise BlobFetchError(f"Failed to download image from {path_or_url}: HTTP {r.status_code}")
            return r.content

        try:
            with open(path_or_url, "rb") as f:
                return f.read()
        except OSError as e:
            raise BlobFetchError(f"Failed to read image {path_or_url}: {e}") from e


class LocalBlobStore(BlobStore):
    """Blobs as files under root_dir, exposed at url_prefix."""

    def __init__(self, root_dir: str, url_prefix: str = config.LOCAL_STORAGE_URL_PREFIX):
        self.root_dir = os.path.abspath(root_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root_dir, key))
        if os.path.commonpath([path, self.root_dir]) != self.root_dir:
            raise BlobStoreFailure(f"Key escapes storage root: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"

    def store(self, data: bytes, key: str, mime_type: str) -> str:
        path = self._path_for(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise BlobStoreFailure(f"Could not write {key}: {e}") from e
        logger.debug(f"Stored {key} ({len(data)} bytes, {mime_type}) locally")
        return self.url_for(key)

    def delete(self, url_or_key: str) -> None:
        key = self.key_for(url_or_key) or url_or_key
        path = self._path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug(f"Nothing to delete at {key}")
        except OSError as e:
            raise BlobStoreFailure(f"Could not delete {key}: {e}") from e

    def fetch_bytes(self, path_or_url: str) -> bytes:
        key = self.key_for(path_or_url)
        if key is not None:
            path_or_url = self._path_for(key)
        return super().fetch_bytes(path_or_url)


class R2BlobStore(BlobStore):
    """Cloudflare R2 through the S3 API."""

    def __init__(self, client, bucket: str, public_url: str):
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")

    @classmethod
    def from_config(cls) -> "R2BlobStore":
        settings = config.get_r2_settings()
        client = boto3.client(
            "s3",
            endpoint_url=settings["endpoint"],
            aws_access_key_id=settings["access_key_id"],
            aws_secret_access_key=settings["secret_access_key"],
            region_name="auto",
        )
        return cls(client, settings["bucket"], settings["public_url"])

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{key}"

    def store(self, data: bytes, key: str, mime_type: str) -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=mime_type)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error uploading {key} to R2: {e}")
            raise BlobStoreFailure(f"Could not upload {key}: {e}") from e
        return self.url_for(key)

    def delete(self, url_or_key: str) -> None:
        key = self.key_for(url_or_key) or url_or_key
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error deleting {key} from R2: {e}")
            raise BlobStoreFailure(f"Could not delete {key}: {e}") from e
        logger.info(f"File deleted from R2: {key}")

    def presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Generate a presigned URL for temporary access to a private object."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreFailure(f"Could not presign {key}: {e}") from e


def create_blob_store() -> BlobStore:
    """Build the blob store selected by STORAGE_BACKEND ('auto', 'r2' or 'local')."""
    backend = config.get_storage_backend()
    if backend == "r2" or (backend == "auto" and config.r2_configured()):
        if not config.r2_configured():
            raise BlobStoreFailure("STORAGE_BACKEND=r2 but R2 settings are incomplete")
        logger.info("Using R2 blob store")
        return R2BlobStore.from_config()
    if backend not in ("auto", "local"):
        raise BlobStoreFailure(f"Unknown STORAGE_BACKEND: {backend}")
    logger.info(f"Using local blob store at {config.get_local_storage_dir()}")
    return LocalBlobStore(config.get_local_storage_dir(), config.LOCAL_STORAGE_URL_PREFIX)
