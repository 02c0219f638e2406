from pathlib import Path
from typing import IO, NewType

from blake3 import blake3

from .errors import LocalIoError
from .util import chunked_read

Digest = NewType("Digest", str)
""" Lowercase hex BLAKE3 digest of some content. """

DIGEST_LENGTH = 64


def get_digest_and_length(tape: IO[bytes]) -> tuple[Digest, int]:
    """Digest the tape from its current position to the end, a chunk at a time.

    Read errors from the tape are propagated."""
    content_length = 0
    h = blake3()  # type: ignore
    for data in chunked_read(tape):
        content_length += len(data)
        h.update(data)
    return Digest(h.hexdigest()), content_length


def digest_bytes(data: bytes) -> Digest:
    h = blake3()  # type: ignore
    h.update(data)
    return Digest(h.hexdigest())


def digest_file(path: Path) -> tuple[Digest, int]:
    try:
        with open(path, "rb") as f:
            return get_digest_and_length(f)
    except OSError as err:
        raise LocalIoError(f"could not read {path}: {err}") from err


def is_digest(s: str) -> bool:
    if len(s) != DIGEST_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in s)
