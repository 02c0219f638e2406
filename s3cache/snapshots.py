import logging
from typing import Iterator

from .errors import NotFoundError
from .keys import MANIFEST_PREFIX, manifest_key, name_of_manifest_key
from .manifest import Manifest
from .store import AbstractBlobStore

logger = logging.getLogger("s3cache")


def list_snapshots(store: AbstractBlobStore) -> Iterator[str]:
    """Lazily iterate the names of all snapshots in the store.

    Each call starts a fresh listing."""
    for key in store.list(MANIFEST_PREFIX):
        yield name_of_manifest_key(key)


def read_manifest(store: AbstractBlobStore, name: str) -> Manifest:
    key = manifest_key(name)
    try:
        tape = store.get(key)
    except NotFoundError as err:
        raise NotFoundError(f"snapshot {name!r} not found") from err
    with tape:
        data = tape.read()
    return Manifest.loads(data, name=name)


def publish_manifest(store: AbstractBlobStore, manifest: Manifest) -> None:
    """Write the manifest under its name, replacing whatever was there."""
    store.put(manifest_key(manifest.name), manifest.dumps())
    logger.info(f"Published snapshot {manifest.name} with {len(manifest)} files.")


def delete_snapshot(store: AbstractBlobStore, name: str, missing_ok: bool = False) -> bool:
    """Remove the snapshot called ``name``. The blobs it references are left alone.

    Returns False if there was no such snapshot and ``missing_ok`` is set,
    otherwise a missing snapshot raises NotFoundError.
    """
    try:
        store.delete(manifest_key(name))
    except NotFoundError as err:
        if missing_ok:
            logger.warning(f"Snapshot {name} not found, nothing to delete.")
            return False
        raise NotFoundError(f"snapshot {name!r} not found") from err
    logger.info(f"Deleted snapshot {name}.")
    return True
