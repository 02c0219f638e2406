from .abstract import AbstractBlobStore, BlobInfo
from .localfile import LocalFileBlobStore
from .mem import InMemBlobStore
from .s3 import S3BlobStore, connect_bucket, make_client
