import logging
import os
from pathlib import Path, PurePosixPath
import tempfile
from typing import IO, Iterator, Optional

from ..errors import NotFoundError, StoreError
from ..util import chunked_read, human_size
from .abstract import AbstractBlobStore, BlobInfo

logger = logging.getLogger("s3cache")

TMP_PREFIX = ".tmp-"


class LocalFileBlobStore(AbstractBlobStore):
    """Stores objects as files in a local directory, one file per key.

    Keys containing ``/`` become nested directories. Writes go to a temporary file which is
    then renamed into place, so readers never see a half-written object.
    Useful for running the cache against a shared filesystem, or for testing without S3.
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def id(self):
        return self.root.resolve().as_uri()

    def local_path(self, key: str) -> Path:
        """Gets the place where the object would be stored. Note that this doesn't guarantee existence."""
        parts = PurePosixPath(key).parts
        if (
            len(parts) == 0
            or key.startswith("/")
            or any(p in (".", "..") or p.startswith(TMP_PREFIX) for p in parts)
        ):
            raise ValueError(f"invalid key {key!r}")
        return self.root.joinpath(*parts)

    def get_info(self, key: str) -> Optional[BlobInfo]:
        p = self.local_path(key)
        if not p.is_file():
            return None
        return BlobInfo(key=key, content_length=p.stat().st_size)

    def put(self, key: str, tape: IO[bytes] | bytes) -> None:
        p = self.local_path(key)
        content_length = 0
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=TMP_PREFIX, dir=p.parent)
            try:
                with os.fdopen(fd, "wb") as f:
                    if isinstance(tape, bytes):
                        f.write(tape)
                        content_length = len(tape)
                    else:
                        for data in chunked_read(tape):
                            f.write(data)
                            content_length += len(data)
                os.replace(tmp, p)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as err:
            raise StoreError(f"failed to write {key} to {self.root}: {err}") from err
        logger.debug(f"Wrote {human_size(content_length)} to {key} in {self.root}")

    def get(self, key: str) -> IO[bytes]:
        p = self.local_path(key)
        try:
            return open(p, "rb")
        except FileNotFoundError as err:
            raise NotFoundError(f"no object {key}") from err
        except OSError as err:
            raise StoreError(f"failed to read {key} from {self.root}: {err}") from err

    def delete(self, key: str) -> None:
        p = self.local_path(key)
        try:
            p.unlink()
        except FileNotFoundError as err:
            raise NotFoundError(f"no object {key}") from err
        except OSError as err:
            raise StoreError(f"failed to delete {key} from {self.root}: {err}") from err
        logger.debug(f"Deleted {key} from {self.root}")

    def list(self, prefix: str = "") -> Iterator[str]:
        # start walking from the deepest directory the prefix pins down.
        head, _, _ = prefix.rpartition("/")
        start = self.root.joinpath(*PurePosixPath(head).parts) if head else self.root
        if not start.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames.sort()
            rel = Path(dirpath).relative_to(self.root).as_posix()
            for name in sorted(filenames):
                if name.startswith(TMP_PREFIX):
                    continue
                key = name if rel == "." else f"{rel}/{name}"
                if key.startswith(prefix):
                    yield key
