import io
from threading import Lock
from typing import IO, Iterator, Optional

from ..errors import NotFoundError
from .abstract import AbstractBlobStore, BlobInfo


class InMemBlobStore(AbstractBlobStore):
    blobs: dict[str, bytes]

    def __init__(self):
        self.blobs = {}
        self._lock = Lock()

    @property
    def id(self):
        return f"mem://{id(self):x}"

    def get_info(self, key: str) -> Optional[BlobInfo]:
        data = self.blobs.get(key)
        if data is None:
            return None
        return BlobInfo(key=key, content_length=len(data))

    def put(self, key: str, tape: IO[bytes] | bytes) -> None:
        data = tape if isinstance(tape, bytes) else tape.read()
        with self._lock:
            self.blobs[key] = data

    def get(self, key: str) -> IO[bytes]:
        data = self.blobs.get(key)
        if data is None:
            raise NotFoundError(f"no object {key}")
        return io.BytesIO(data)

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self.blobs:
                raise NotFoundError(f"no object {key}")
            del self.blobs[key]

    def list(self, prefix: str = "") -> Iterator[str]:
        with self._lock:
            keys = sorted(k for k in self.blobs if k.startswith(prefix))
        yield from keys
