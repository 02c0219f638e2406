from io import BytesIO
import os
from pathlib import Path
from types import SimpleNamespace

from botocore.exceptions import ClientError
import pytest

from s3cache.store import InMemBlobStore, LocalFileBlobStore

HELLO = b"#!/bin/sh\necho hello\n"
TEXT = b"some text\n"


def client_error(code: str, op: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class FakePaginator:
    def __init__(self, client, page_size):
        self.client = client
        self.page_size = page_size

    def paginate(self, Bucket, Prefix=""):
        keys = sorted(k for k in self.client.buckets[Bucket] if k.startswith(Prefix))
        if not keys:
            yield {"KeyCount": 0}
        for i in range(0, len(keys), self.page_size):
            self.client.pages_served += 1
            yield {"Contents": [{"Key": k} for k in keys[i : i + self.page_size]]}


class FakeS3Client:
    """Just enough of a boto3 S3 client to run the store against."""

    def __init__(self, buckets=("test-bucket",), page_size=2):
        self.buckets: dict[str, dict[str, bytes]] = {b: {} for b in buckets}
        self.meta = SimpleNamespace(region_name="eu-west-2")
        self.page_size = page_size
        self.pages_served = 0
        self.created = []

    def head_bucket(self, Bucket):
        if Bucket not in self.buckets:
            raise client_error("404", "HeadBucket")
        return {}

    def create_bucket(self, Bucket, **kwargs):
        self.created.append((Bucket, kwargs))
        self.buckets[Bucket] = {}

    def head_object(self, Bucket, Key):
        data = self.buckets[Bucket].get(Key)
        if data is None:
            raise client_error("404", "HeadObject")
        return {"ContentLength": len(data)}

    def upload_fileobj(self, Fileobj, Bucket, Key):
        self.buckets[Bucket][Key] = Fileobj.read()

    def get_object(self, Bucket, Key):
        data = self.buckets[Bucket].get(Key)
        if data is None:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": BytesIO(data), "ContentLength": len(data)}

    def delete_object(self, Bucket, Key):
        self.buckets[Bucket].pop(Key, None)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self, self.page_size)


@pytest.fixture()
def s3_client():
    return FakeS3Client()


@pytest.fixture(params=["mem", "localfile", "s3"])
def store(request, tmp_path: Path):
    if request.param == "mem":
        return InMemBlobStore()
    if request.param == "localfile":
        return LocalFileBlobStore(tmp_path / "store")
    from s3cache.store import S3BlobStore

    return S3BlobStore("test-bucket", FakeS3Client())


@pytest.fixture()
def tree(tmp_path: Path, monkeypatch) -> Path:
    """A little source tree, which is also made the working directory.

    src/
      hello.sh      (755)
      text.txt
      dir/text.txt  (same content as text.txt)
    """
    src = tmp_path / "src"
    (src / "dir").mkdir(parents=True)
    (src / "hello.sh").write_bytes(HELLO)
    os.chmod(src / "hello.sh", 0o755)
    (src / "text.txt").write_bytes(TEXT)
    os.chmod(src / "text.txt", 0o644)
    (src / "dir" / "text.txt").write_bytes(TEXT)
    os.chmod(src / "dir" / "text.txt", 0o644)
    monkeypatch.chdir(src)
    return src


class FailingBody:
    def __init__(self, err: Exception):
        self.err = err
        self.closed = False

    def read(self, amt=None):
        raise self.err

    def close(self):
        self.closed = True


class BrokenStreamClient(FakeS3Client):
    """Blobs can be put and found, but their bodies fail when read. Manifests read normally."""

    def __init__(self, err: Exception):
        super().__init__()
        self.err = err
        self.bodies = []

    def get_object(self, Bucket, Key):
        obj = super().get_object(Bucket, Key)
        if not Key.startswith("objects/"):
            return obj
        body = FailingBody(self.err)
        self.bodies.append(body)
        return {"Body": body}
