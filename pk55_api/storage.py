"""
Media host abstraction for the image gallery: an S3-compatible bucket and
an in-memory test double.
"""

from __future__ import annotations

import mimetypes
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config


@dataclass
class UploadedAsset:
    public_id: str
    url: str


class MediaStorageClient(Protocol):
    """Defines the operations the gallery needs from the media host."""

    def upload_image(
        self, data: bytes, content_type: str, filename: str
    ) -> UploadedAsset:
        ...

    def delete_image(self, public_id: str) -> None:
        ...


def build_public_id(folder: str, content_type: str, filename: str) -> str:
    """Generate a unique object key under ``folder`` keeping a sensible extension."""
    extension = ""
    if "." in filename:
        extension = "." + filename.rsplit(".", 1)[1].lower()
    else:
        extension = mimetypes.guess_extension(content_type) or ""
    key = f"{uuid.uuid4().hex}{extension}"
    return f"{folder.strip('/')}/{key}" if folder else key


@dataclass
class InMemoryMediaStorageClient:
    """Test double for media host interactions."""

    base_url: str = "https://media.example.test"
    folder: str = "pk55"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_image(
        self, data: bytes, content_type: str, filename: str
    ) -> UploadedAsset:
        public_id = build_public_id(self.folder, content_type, filename)
        self.stored_objects[public_id] = (data, content_type)
        return UploadedAsset(public_id=public_id, url=f"{self.base_url}/{public_id}")

    def delete_image(self, public_id: str) -> None:
        self.stored_objects.pop(public_id, None)


@dataclass
class S3MediaStorageClient:
    """
    S3-compatible media host. Objects are uploaded publicly readable and
    served from ``public_base_url`` (a CDN or the bucket's own endpoint).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    folder: str = "pk55"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _public_url(self, public_id: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{public_id}"
        if self.endpoint:
            # Virtual-hosted style: https://<bucket>.<endpoint host>/<key>
            scheme, sep, host = self.endpoint.partition("://")
            if not sep:
                scheme, host = "https", self.endpoint
            return f"{scheme}://{self.bucket}.{host.rstrip('/')}/{public_id}"
        return f"https://{self.bucket}.s3.amazonaws.com/{public_id}"

    def upload_image(
        self, data: bytes, content_type: str, filename: str
    ) -> UploadedAsset:
        public_id = build_public_id(self.folder, content_type, filename)
        self._client.put_object(
            Bucket=self.bucket,
            Key=public_id,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
        )
        return UploadedAsset(public_id=public_id, url=self._public_url(public_id))

    def delete_image(self, public_id: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=public_id)
