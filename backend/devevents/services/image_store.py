"""External image storage.

``ImageStore`` is the port the event coordinator talks to;
``CloudinaryImageStore`` implements it over Cloudinary's signed REST API.
Uploads raise ``UploadError``. Deletes are used only as best-effort cleanup,
so callers log their failures and move on.
"""
import hashlib
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

import httpx

from devevents.config import settings
from devevents.schemas.event import ImageUpload

logger = logging.getLogger(__name__)

_VERSION_SEGMENT = re.compile(r"^v\d+$")


class UploadError(Exception):
    """The image store did not accept an upload."""


class ImageDeleteError(Exception):
    """The image store did not delete an asset."""


@dataclass(frozen=True)
class UploadedImage:
    url: str
    public_id: str


class ImageStore(ABC):
    """Interface for externally hosted event images."""

    @abstractmethod
    def upload(self, image: ImageUpload) -> UploadedImage:
        """Store the image and return its public URL."""
        ...

    @abstractmethod
    def delete(self, public_id: str) -> None:
        """Remove a stored image."""
        ...

    def close(self) -> None:
        """Release any client resources."""


def public_id_from_url(url: Optional[str]) -> Optional[str]:
    """Derive a Cloudinary public id (``folder/name``) from a delivery URL.

    >>> public_id_from_url("https://res.cloudinary.com/demo/image/upload/v17/events/abc.png")
    'events/abc'
    """
    if not url:
        return None
    path = urlparse(url).path
    _, marker, tail = path.partition("/upload/")
    if not marker or not tail:
        return None
    segments = [s for s in tail.split("/") if s]
    if segments and _VERSION_SEGMENT.match(segments[0]):
        segments = segments[1:]
    if not segments:
        return None
    segments[-1] = segments[-1].rsplit(".", 1)[0]
    return "/".join(segments) or None


class CloudinaryImageStore(ImageStore):
    """Signed uploads and deletions against the Cloudinary upload API."""

    BASE_URL = "https://api.cloudinary.com/v1_1"

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        folder: str = "events",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self._client = client or httpx.Client(timeout=timeout)

    def _sign(self, params: dict[str, str]) -> str:
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode()).hexdigest()

    def _signed(self, params: dict[str, str]) -> dict[str, str]:
        params = {**params, "timestamp": str(int(time.time()))}
        return {**params, "api_key": self.api_key, "signature": self._sign(params)}

    def upload(self, image: ImageUpload) -> UploadedImage:
        url = f"{self.BASE_URL}/{self.cloud_name}/image/upload"
        form = self._signed({"folder": self.folder})
        files = {"file": (image.filename or "upload", image.data, image.content_type)}
        try:
            response = self._client.post(url, data=form, files=files)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Image upload to Cloudinary failed: %s", e)
            raise UploadError(str(e)) from e

        secure_url = body.get("secure_url")
        if not secure_url:
            raise UploadError("Upload response did not include a URL")
        logger.info("Uploaded image %s (%d bytes)", body.get("public_id"), image.size)
        return UploadedImage(url=secure_url, public_id=body.get("public_id") or public_id_from_url(secure_url))

    def delete(self, public_id: str) -> None:
        url = f"{self.BASE_URL}/{self.cloud_name}/image/destroy"
        try:
            response = self._client.post(url, data=self._signed({"public_id": public_id}))
            response.raise_for_status()
            result = response.json().get("result")
        except (httpx.HTTPError, ValueError) as e:
            raise ImageDeleteError(str(e)) from e
        if result not in ("ok", "not found"):
            raise ImageDeleteError(f"Unexpected destroy result: {result}")
        logger.info("Deleted image %s (%s)", public_id, result)

    def close(self) -> None:
        self._client.close()


@lru_cache
def get_image_store() -> ImageStore:
    """FastAPI dependency for the configured image store."""
    return CloudinaryImageStore(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        folder=settings.IMAGE_FOLDER,
        timeout=settings.IMAGE_UPLOAD_TIMEOUT_SECONDS,
    )
