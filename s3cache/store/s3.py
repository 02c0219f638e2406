from io import BytesIO
import logging
from typing import IO, Any, Iterator, Optional

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import BucketNotFoundError, NotFoundError, StoreError
from .abstract import AbstractBlobStore, BlobInfo

logger = logging.getLogger("s3cache")

"""
Transient faults (throttling, 5xx, dropped connections) are retried by botocore itself
using the "standard" retry mode: exponential backoff with jitter, up to ``max_attempts``.
Anything that still fails after that is surfaced here as a StoreError.
"""

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3Tape:
    """Read-only view of a GetObject body.

    A connection that drops or times out half way through the body raises StoreError, like any other store failure."""

    def __init__(self, body, store_error, key: str):
        self.body = body
        self.store_error = store_error
        self.key = key

    def read(self, size: int = -1) -> bytes:
        try:
            return self.body.read(None if size is None or size < 0 else size)
        except (BotoCoreError, ClientError, OSError) as err:
            raise self.store_error("read", self.key, err) from err

    def close(self):
        self.body.close()

    def __enter__(self):
        return self

    def __exit__(self, ex_type, ex_value, ex_trace):
        self.close()


def error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def make_client(
    *,
    endpoint: Optional[str] = None,
    region: Optional[str] = None,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
    max_attempts: int = 5,
    max_pool_connections: int = 16,
):
    """Create a boto3 S3 client.

    Credentials that are not given are looked up by boto3 in the usual places
    (``AWS_ACCESS_KEY_ID`` etc environment variables, ``~/.aws/credentials``).
    """
    config = Config(
        retries={"total_max_attempts": max_attempts, "mode": "standard"},
        max_pool_connections=max_pool_connections,
        # S3-compatible servers like minio generally want path-style addressing.
        s3={"addressing_style": "path" if endpoint else "auto"},
    )
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        config=config,
    )


def connect_bucket(client, bucket_name: str, create: bool = False) -> "S3BlobStore":
    """Check that the bucket exists (creating it if allowed) and return a store for it."""
    try:
        client.head_bucket(Bucket=bucket_name)
    except ClientError as err:
        if error_code(err) not in NOT_FOUND_CODES | {"NoSuchBucket"}:
            raise StoreError(f"failed to access bucket {bucket_name}: {err}") from err
        if not create:
            raise BucketNotFoundError(
                f"bucket {bucket_name!r} not found, and create not allowed"
            ) from err
        logger.info(f"Creating bucket {bucket_name}")
        kwargs: dict[str, Any] = {}
        region = client.meta.region_name
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            client.create_bucket(Bucket=bucket_name, **kwargs)
        except (ClientError, BotoCoreError) as err:
            raise StoreError(f"failed creating bucket {bucket_name}: {err}") from err
    except BotoCoreError as err:
        raise StoreError(f"failed to access bucket {bucket_name}: {err}") from err
    return S3BlobStore(bucket_name, client)


class S3BlobStore(AbstractBlobStore):
    client: Any

    def __init__(self, bucket_name: str, client):
        self.client = client
        self.bucket_name = bucket_name

    @property
    def id(self):
        return f"s3://{self.bucket_name}"

    def _store_error(self, op: str, key: str, err: Exception) -> StoreError:
        return StoreError(f"{op} {self.id}/{key} failed: {err}")

    def get_info(self, key: str) -> Optional[BlobInfo]:
        try:
            head = self.client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as err:
            if error_code(err) in NOT_FOUND_CODES:
                return None
            raise self._store_error("head", key, err) from err
        except BotoCoreError as err:
            raise self._store_error("head", key, err) from err
        return BlobInfo(key=key, content_length=int(head["ContentLength"]))

    def put(self, key: str, tape: IO[bytes] | bytes) -> None:
        if isinstance(tape, bytes):
            tape = BytesIO(tape)
        try:
            # upload_fileobj switches to a multipart upload for big files.
            self.client.upload_fileobj(tape, self.bucket_name, key)
        except (ClientError, BotoCoreError, S3UploadFailedError) as err:
            raise self._store_error("put", key, err) from err

    def get(self, key: str) -> IO[bytes]:
        try:
            obj = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as err:
            if error_code(err) in NOT_FOUND_CODES:
                raise NotFoundError(f"no object {key} in {self.id}") from err
            raise self._store_error("get", key, err) from err
        except BotoCoreError as err:
            raise self._store_error("get", key, err) from err
        return S3Tape(obj["Body"], self._store_error, key)

    def delete(self, key: str) -> None:
        # S3 deletes are silent on missing keys, so check first.
        if not self.exists(key):
            raise NotFoundError(f"no object {key} in {self.id}")
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as err:
            raise self._store_error("delete", key, err) from err

    def list(self, prefix: str = "") -> Iterator[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"]
        except (ClientError, BotoCoreError) as err:
            raise self._store_error("list", prefix, err) from err
