"""
AWS S3 adapter for the blob store.

Holds dialogue audio and generated avatar videos.
"""

import boto3
import logging
from typing import Optional
from botocore.exceptions import ClientError

from .base import BlobStore

logger = logging.getLogger("dialogue_worker")


class S3BlobStore(BlobStore):
    """AWS S3 implementation of the blob store"""

    def __init__(self, bucket: str, region: str = "us-east-1", prefix: str = "",
                 endpoint_url: Optional[str] = None, signed_url_ttl: int = 3600):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix
        self.endpoint_url = endpoint_url
        self.signed_url_ttl = signed_url_ttl
        self.s3 = None

    def connect(self):
        """Initialize S3 client"""
        try:
            self.s3 = boto3.client('s3', region_name=self.region, endpoint_url=self.endpoint_url)
            logger.info(f"S3 blob store connected to bucket: {self.bucket}")
        except Exception as e:
            logger.error(f"Failed to connect to S3: {e}")
            raise

    def _key(self, path: str) -> str:
        return f"{self.prefix}{path.lstrip('/')}"

    def _object_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def ping(self) -> bool:
        self.s3.head_bucket(Bucket=self.bucket)
        return True

    def put(self, path: str, data: bytes, content_type: str) -> str:
        key = self._key(path)
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption='AES256'
            )
            logger.info(f"Stored {len(data)} bytes at s3://{self.bucket}/{key}")
            return self._object_url(key)
        except ClientError as e:
            logger.error(f"Error storing object {key}: {e}")
            raise

    def get(self, path: str) -> bytes:
        key = self._key(path)
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()
        except ClientError as e:
            logger.error(f"Error reading object {key}: {e}")
            raise

    def delete(self, path: str) -> bool:
        key = self._key(path)
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            logger.error(f"Error deleting object {key}: {e}")
            return False

    def signed_url(self, path: str, ttl: Optional[int] = None) -> str:
        key = self._key(path)
        try:
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': key},
                ExpiresIn=ttl or self.signed_url_ttl
            )
        except ClientError as e:
            logger.error(f"Error signing URL for {key}: {e}")
            raise

    def close(self):
        self.s3 = None
        logger.info("S3 blob store connection closed")
