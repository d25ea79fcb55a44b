import logging
from functools import lru_cache

import boto3

from imghost.core.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_s3_client():
    settings = get_settings()
    endpoint = settings.minio_endpoint
    if not endpoint.startswith("http"):
        endpoint = f"http://{endpoint}"
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        region_name=settings.minio_region,
    )


def public_url(path: str) -> str:
    """Browser-reachable URL of a stored object; empty for an empty path."""
    if not path:
        return ""
    settings = get_settings()
    return f"{settings.minio_public_endpoint.rstrip('/')}/{settings.minio_bucket}/{path}"


class BlobStore:
    """Object storage for image bytes, keyed by generated path."""

    def __init__(self, client=None, bucket: str | None = None):
        self._client = client or get_s3_client()
        self.bucket = bucket or get_settings().minio_bucket

    def ensure_bucket(self) -> None:
        buckets = self._client.list_buckets().get("Buckets", [])
        names = {bucket.get("Name") for bucket in buckets}
        if self.bucket not in names:
            self._client.create_bucket(Bucket=self.bucket)

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def delete(self, *paths: str) -> None:
        keys = [{"Key": path} for path in paths if path]
        if not keys:
            return
        self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": keys, "Quiet": True})
        logger.debug("Deleted %d object(s) from %s", len(keys), self.bucket)
