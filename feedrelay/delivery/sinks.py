"""
Output Sinks
============

Where a rendered feed document goes once assembled:

- ``FileSink`` writes it under a local directory.
- ``S3Sink`` uploads it with ``put_object`` under ``<folder>/<name>``.
- ``CloudFrontInvalidator`` clears the CDN copy of that object afterwards.

AWS credentials come from boto3's default provider chain. Any boto3 failure
is raised as ``DeliveryError``.
"""

import os
import time
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config.settings import StorageBackend, StorageSettings
from ..database.models import utc_now
from ..utils.exceptions import DeliveryError, ErrorCode
from ..utils.logging import get_logger_for_component


PROCESSED_BY = "feedrelay"


class ObjectSink(Protocol):
    """Stores a named document and reports where it went."""

    backend: str

    def store(self, name: str, document: str, content_type: str = "application/json") -> str:
        ...


class CacheInvalidator(Protocol):
    def invalidate(self, path: str) -> Optional[str]:
        ...


class FileSink:
    """Writes feed documents to the local filesystem."""

    backend = StorageBackend.FILE.value

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.logger = get_logger_for_component("file_sink")

    def store(self, name: str, document: str, content_type: str = "application/json") -> str:
        path = self.output_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a partial document
            tmp_path = path.with_name(f".{path.name}.tmp")
            tmp_path.write_text(document, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise DeliveryError(f"Failed to write feed file: {e}", location=str(path)) from e

        self.logger.info(f"Feed saved to {path}")
        return str(path)


class S3Sink:
    """Uploads feed documents to an S3 bucket."""

    backend = StorageBackend.S3.value

    def __init__(
        self,
        bucket: str,
        folder: str = "feeds",
        region: str = "us-east-1",
        cache_control: str = "max-age=3600",
        client=None,
    ):
        """Initialize S3 sink.

        Args:
            bucket: Target bucket name
            folder: Key prefix for feed documents
            region: AWS region of the bucket
            cache_control: Cache-Control header stored with each object
            client: Preconfigured boto3 S3 client
        """
        self.bucket = bucket
        self.folder = (folder or "").strip("/")
        self.region = region
        self.cache_control = cache_control
        self.client = client or boto3.client("s3", region_name=region)
        self.logger = get_logger_for_component("s3_sink")

    def object_key(self, name: str) -> str:
        if not self.folder:
            return name
        return f"{self.folder}/{name}"

    def store(self, name: str, document: str, content_type: str = "application/json") -> str:
        key = self.object_key(name)
        self.logger.info(f"Uploading to S3: s3://{self.bucket}/{key}")

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=document.encode("utf-8"),
                ContentType=content_type,
                CacheControl=self.cache_control,
                Metadata={
                    "processed-by": PROCESSED_BY,
                    "processed-at": utc_now().isoformat(),
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise DeliveryError(
                f"S3 upload failed: {e}",
                location=f"s3://{self.bucket}/{key}",
            ) from e

        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"


class CloudFrontInvalidator:
    """Invalidates cached copies of uploaded feed documents."""

    def __init__(self, distribution_id: str, region: str = "us-east-1", client=None):
        self.distribution_id = distribution_id
        self.client = client or boto3.client("cloudfront", region_name=region)
        self.logger = get_logger_for_component("cloudfront")

    def invalidate(self, path: str) -> Optional[str]:
        """Request invalidation of one path.

        Returns:
            The invalidation id reported by CloudFront
        """
        if not path.startswith("/"):
            path = f"/{path}"
        self.logger.info(f"Invalidating CloudFront: {self.distribution_id} - {path}")

        try:
            response = self.client.create_invalidation(
                DistributionId=self.distribution_id,
                InvalidationBatch={
                    "CallerReference": f"feedrelay-{int(time.time() * 1000)}",
                    "Paths": {"Quantity": 1, "Items": [path]},
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise DeliveryError(
                f"CloudFront invalidation failed: {e}",
                location=path,
                error_code=ErrorCode.CACHE_INVALIDATION_FAILED,
            ) from e

        return (response.get("Invalidation") or {}).get("Id")


def build_sink(settings: StorageSettings) -> ObjectSink:
    """Sink for the configured storage backend."""
    if StorageBackend(settings.backend) is StorageBackend.S3:
        return S3Sink(
            bucket=settings.s3_bucket,
            folder=settings.s3_folder,
            region=settings.aws_region,
            cache_control=settings.cache_control,
        )
    return FileSink(settings.output_dir)


def build_invalidator(settings: StorageSettings) -> Optional[CacheInvalidator]:
    """CloudFront invalidator, only for S3 storage with a distribution configured."""
    if StorageBackend(settings.backend) is not StorageBackend.S3:
        return None
    if not settings.cloudfront_distribution_id:
        return None
    return CloudFrontInvalidator(settings.cloudfront_distribution_id, region=settings.aws_region)
