import asyncio
from concurrent.futures import ThreadPoolExecutor
import logging
import os
from pathlib import Path
from typing import IO, Union

from blake3 import blake3

from .errors import CorruptionError, LocalIoError, NotFoundError, StoreError
from .keys import blob_key
from .manifest import Manifest, ManifestEntry
from .snapshots import read_manifest
from .store import AbstractBlobStore
from .tasks import DEFAULT_CONCURRENCY, bounded_map

logger = logging.getLogger("s3cache")

BLOCK_SIZE = 2**20


def read_block(tape: IO[bytes], key: str) -> bytes:
    try:
        return tape.read(BLOCK_SIZE)
    except OSError as err:
        raise StoreError(f"failed reading {key}: {err}") from err


def download_entry(store: AbstractBlobStore, entry: ManifestEntry, outpath: Path) -> None:
    """Fetch the entry's blob, write it under outpath and restore its permission bits.

    The written bytes are digested on the way through and checked against the manifest."""
    target = outpath.joinpath(*entry.path.split("/"))
    assert target.is_relative_to(outpath), f"{entry.path} escapes {outpath}"
    key = blob_key(entry.digest)
    try:
        tape = store.get(key)
    except NotFoundError as err:
        raise CorruptionError(
            f"{entry.path} references blob {entry.digest} which is missing from the store"
        ) from err
    h = blake3()  # type: ignore
    size = 0
    with tape:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # never write through an existing symlink, and allow replacing read-only files.
            if target.is_symlink() or target.exists():
                target.unlink()
            g = open(target, "wb")
        except OSError as err:
            raise LocalIoError(f"could not create {target}: {err}") from err
        # failures reading the tape surface as StoreError, so any OSError here is from writing.
        try:
            with g:
                while data := read_block(tape, key):
                    h.update(data)
                    size += len(data)
                    g.write(data)
        except OSError as err:
            raise LocalIoError(f"could not write {target}: {err}") from err
    try:
        os.chmod(target, entry.mode)
    except OSError as err:
        raise LocalIoError(f"could not set permissions of {target}: {err}") from err
    if h.hexdigest() != entry.digest or size != entry.size:
        raise CorruptionError(
            f"blob {entry.digest} for {entry.path} does not match its digest ({size} bytes read)"
        )
    logger.debug(f"Downloaded {entry.path}.")


async def download(
    store: AbstractBlobStore,
    name: str,
    outpath: Union[Path, str],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> Manifest:
    """Reconstruct the snapshot ``name`` under ``outpath``.

    Raises NotFoundError if there is no such snapshot, and CorruptionError if the manifest references a
    blob that is not in the store. After a failure, outpath may contain some of the files.
    """
    outpath = Path(os.path.abspath(outpath))
    loop = asyncio.get_running_loop()
    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        manifest = await loop.run_in_executor(executor, read_manifest, store, name)
        try:
            outpath.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise LocalIoError(f"could not create {outpath}: {err}") from err

        async def work(entry: ManifestEntry):
            await loop.run_in_executor(executor, download_entry, store, entry, outpath)

        await bounded_map(work, manifest.entries, concurrency)
    logger.info(f"Restored {len(manifest)} files from {name} to {outpath}.")
    return manifest
