""" Where things live in the bucket.

Manifests and blobs are kept under separate prefixes, so a snapshot name can never collide with a content digest.

- ``snapshots/<name>`` holds the manifest for the snapshot called ``name``.
- ``objects/ab/cd/<rest>`` holds the blob with digest ``abcd<rest>``.
"""

from .digest import Digest, is_digest
from .errors import InvalidNameError
from .store.localfile import TMP_PREFIX

MANIFEST_PREFIX = "snapshots/"
OBJECT_PREFIX = "objects/"


def validate_name(name: str) -> str:
    """Check that ``name`` is usable as a snapshot name, returning it."""
    if not name:
        raise InvalidNameError("snapshot name must not be empty")
    if "\\" in name:
        raise InvalidNameError(f"snapshot name {name!r} must not contain '\\'")
    if any(seg in ("", ".", "..") for seg in name.split("/")):
        raise InvalidNameError(
            f"snapshot name {name!r} must not have empty, '.' or '..' segments"
        )
    if any(seg.startswith(TMP_PREFIX) for seg in name.split("/")):
        raise InvalidNameError(
            f"snapshot name {name!r} must not have segments starting with {TMP_PREFIX!r}"
        )
    return name


def manifest_key(name: str) -> str:
    return MANIFEST_PREFIX + validate_name(name)


def name_of_manifest_key(key: str) -> str:
    assert key.startswith(MANIFEST_PREFIX), key
    return key[len(MANIFEST_PREFIX) :]


def blob_key(digest: Digest) -> str:
    if not is_digest(digest):
        raise ValueError(f"not a digest: {digest!r}")
    return f"{OBJECT_PREFIX}{digest[0:2]}/{digest[2:4]}/{digest[4:]}"
