""" Uploading a snapshot.

Every file is digested, and its blob is uploaded only if no object exists at that digest yet; this existence
check is all the deduplication there is. The manifest is published only after every blob operation has
succeeded, so a published manifest never references a blob that is not in the store.

Two uploads racing on the same content may both see the blob as missing and both put it. That's fine:
the key is the digest of the content so the second put writes the same bytes again.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from threading import Lock
from typing import Iterable, Iterator, Optional

from .digest import get_digest_and_length
from .errors import DuplicatePathError, LocalIoError
from .keys import blob_key, validate_name
from .manifest import Manifest, ManifestEntry
from .snapshots import publish_manifest
from .store import AbstractBlobStore
from .tasks import DEFAULT_CONCURRENCY, bounded_map, wrap_iterator
from .util import human_size
from .walk import WalkEntry

logger = logging.getLogger("s3cache")


@dataclass
class UploadStats:
    uploaded: int = 0
    """ Number of blobs that were put. """
    present: int = 0
    """ Number of files whose blob was already in the store. """
    bytes_uploaded: int = 0

    def __post_init__(self):
        self._lock = Lock()

    def record(self, size: int, uploaded: bool):
        with self._lock:
            if uploaded:
                self.uploaded += 1
                self.bytes_uploaded += size
            else:
                self.present += 1


def upload_entry(store: AbstractBlobStore, entry: WalkEntry) -> tuple[ManifestEntry, bool]:
    """Digest the file and put its blob if the store doesn't have it yet.

    Returns the manifest entry and whether the blob was uploaded."""
    try:
        f = open(entry.abspath, "rb")
    except OSError as err:
        raise LocalIoError(f"could not open {entry.abspath}: {err}") from err
    with f:
        try:
            digest, size = get_digest_and_length(f)
            f.seek(0)
        except OSError as err:
            raise LocalIoError(f"could not read {entry.abspath}: {err}") from err
        m = ManifestEntry(path=entry.relpath, digest=digest, mode=entry.mode, size=size)
        key = blob_key(digest)
        if store.exists(key):
            logger.debug(f"Already stored {entry.relpath} ({digest[:10]}).")
            return m, False
        logger.debug(f"Uploading {entry.relpath} ({human_size(size)}) to {key}.")
        store.put(key, f)
    return m, True


def unique_paths(entries: Iterable[WalkEntry]) -> Iterator[WalkEntry]:
    seen = set()
    for entry in entries:
        if entry.relpath in seen:
            raise DuplicatePathError(
                f"{entry.abspath} would be stored at {entry.relpath}, which is already taken"
            )
        seen.add(entry.relpath)
        yield entry


async def upload(
    store: AbstractBlobStore,
    name: str,
    entries: Iterable[WalkEntry],
    concurrency: int = DEFAULT_CONCURRENCY,
    stats: Optional[UploadStats] = None,
) -> Manifest:
    """Upload the given files as the snapshot ``name``, replacing any existing snapshot of that name.

    If anything fails, no manifest is published and the previous snapshot under ``name`` (if any) is untouched.
    Blobs uploaded before the failure are left in the store.
    """
    validate_name(name)
    stats = stats if stats is not None else UploadStats()
    loop = asyncio.get_running_loop()
    # one extra worker for advancing the tree walk.
    with ThreadPoolExecutor(max_workers=concurrency + 1) as executor:

        async def work(entry: WalkEntry) -> ManifestEntry:
            m, uploaded = await loop.run_in_executor(executor, upload_entry, store, entry)
            stats.record(m.size, uploaded)
            return m

        walker = wrap_iterator(unique_paths(entries), executor)
        results = await bounded_map(work, walker, concurrency)
        manifest = Manifest.of_entries(name, results)
        await loop.run_in_executor(executor, publish_manifest, store, manifest)
    logger.debug(
        f"Upload of {name}: {stats.uploaded} blobs uploaded ({human_size(stats.bytes_uploaded)}), {stats.present} already present."
    )
    return manifest
