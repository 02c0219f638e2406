from dataclasses import dataclass
from typing import IO, Iterator, Optional


@dataclass
class BlobInfo:
    key: str
    content_length: int


class AbstractBlobStore:
    """Minimal key-value contract over an object store.

    Implementations must be safe to share between worker threads: the orchestrators call
    into the same store from many threads at once.

    Failures after retries are raised as ``StoreError``; missing keys as ``NotFoundError``.
    """

    @property
    def id(self) -> str:
        """Unique resource identifier for the blob store."""
        raise NotImplementedError()

    def exists(self, key: str) -> bool:
        """Cheap existence check, should not download the content."""
        return self.get_info(key) is not None

    def get_info(self, key: str) -> Optional[BlobInfo]:
        raise NotImplementedError()

    def put(self, key: str, tape: IO[bytes] | bytes) -> None:
        """Save the tape under the given key.

        Calling this on a key that already exists replaces the content."""
        raise NotImplementedError()

    def get(self, key: str) -> IO[bytes]:
        """Returns a file-like object for the given key.

        Consumer is responsible for closing the file-like object.
        Raises NotFoundError if the key is absent.
        """
        raise NotImplementedError()

    def delete(self, key: str) -> None:
        """Remove the key. Raises NotFoundError if the key is absent."""
        raise NotImplementedError()

    def list(self, prefix: str = "") -> Iterator[str]:
        """Lazily iterate over all keys that start with ``prefix``."""
        raise NotImplementedError()
