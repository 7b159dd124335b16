import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ...config import settings
from ...exceptions import NotFoundError, StorageFault
from ...application.ports.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def make_s3(endpoint_url: Optional[str] = None):
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url or None,
        region_name=settings.AWS_REGION,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


class S3StorageGateway(StorageGateway):
    def __init__(self, bucket: str = None, client=None) -> None:
        self.bucket = bucket or settings.AWS_BUCKET_NAME
        if not self.bucket:
            raise RuntimeError("AWS_BUCKET_NAME is required for the s3 storage backend")
        self.client = client or make_s3(settings.S3_ENDPOINT_URL)

    def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ContentDisposition="inline",
                CacheControl="max-age=31536000",
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageFault(f"Could not upload {key}: {e}") from e
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")

    def sign_url(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageFault(f"Could not sign URL for {key}: {e}") from e

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise NotFoundError(f"Object not found: {key}") from e
            raise StorageFault(f"Could not download {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageFault(f"Could not download {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageFault(f"Could not delete {key}: {e}") from e
        logger.info(f"Deleted s3://{self.bucket}/{key}")
