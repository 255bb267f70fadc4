"""S3 backend for texture binaries. Paths are stored as ``s3://<bucket>/<key>``."""

import logging
from typing import Iterable, List, Optional

import boto3
from botocore.exceptions import ClientError

from app.config import settings

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per call
_DELETE_BATCH = 1000


def s3_configured() -> bool:
    return all([settings.aws_access_key_id, settings.aws_secret_access_key, settings.s3_bucket_name])


class S3TextureStore:
    def __init__(self, client=None, bucket_name: Optional[str] = None, region: Optional[str] = None):
        self.bucket_name = bucket_name or settings.s3_bucket_name
        self.region = region or settings.aws_region
        if not self.bucket_name:
            raise ValueError("S3 bucket name must be configured")
        self.client = client or boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=self.region,
        )

    def storage_path(self, key: str) -> str:
        return f"s3://{self.bucket_name}/{key}"

    def owns(self, storage_path: str) -> bool:
        return storage_path.startswith(f"s3://{self.bucket_name}/")

    def key_of(self, storage_path: str) -> str:
        return storage_path[len(f"s3://{self.bucket_name}/"):]

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"

    def put(self, key: str, content: bytes, content_type: str) -> str:
        """Upload one binary with a long cache lifetime; returns its storage path."""
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=content,
                ContentType=content_type,
                CacheControl="max-age=31536000",
            )
        except ClientError as e:
            logger.error(f"S3 upload of {key} failed: {e}")
            raise
        return self.storage_path(key)

    def delete_many(self, keys: Iterable[str]) -> List[str]:
        """Delete keys in batches. Returns the keys S3 reported as failed."""
        keys = [k for k in keys if k]
        failed: List[str] = []
        for start in range(0, len(keys), _DELETE_BATCH):
            batch = keys[start:start + _DELETE_BATCH]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except ClientError as e:
                logger.error(f"S3 delete of {len(batch)} objects failed: {e}")
                failed.extend(batch)
                continue
            failed.extend(error["Key"] for error in response.get("Errors") or [])
        if failed:
            logger.warning(f"Could not delete {len(failed)} texture objects from S3")
        return failed
