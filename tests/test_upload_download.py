import asyncio
import os
from pathlib import Path
import stat

from botocore.exceptions import ReadTimeoutError, ResponseStreamingError
import pytest

from s3cache.digest import digest_bytes
from s3cache.download import download
from s3cache.errors import (
    CorruptionError,
    DuplicatePathError,
    EntryKindError,
    InvalidNameError,
    LocalIoError,
    ManifestFormatError,
    NotFoundError,
    StoreError,
)
from s3cache.keys import OBJECT_PREFIX, blob_key, manifest_key
from s3cache.snapshots import delete_snapshot, list_snapshots, read_manifest
from s3cache.store import AbstractBlobStore, InMemBlobStore, S3BlobStore
from s3cache.upload import UploadStats, upload
from s3cache.walk import WalkEntry, walk

from .conftest import HELLO, TEXT, BrokenStreamClient

FILES = ["hello.sh", "text.txt", "dir/text.txt"]


def do_upload(store, name, paths=FILES, recurse=False, **kwargs):
    return asyncio.run(upload(store, name, walk(paths, recurse=recurse), **kwargs))


def do_download(store, name, outpath, **kwargs):
    return asyncio.run(download(store, name, outpath, **kwargs))


def is_executable(p: Path) -> bool:
    return bool(p.stat().st_mode & stat.S_IXUSR)


def blob_keys(store: AbstractBlobStore):
    return list(store.list(OBJECT_PREFIX))


def test_roundtrip(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    m = do_upload(store, "test-1")
    assert [e.path for e in m] == ["dir/text.txt", "hello.sh", "text.txt"]
    out = tmp_path / "out"
    do_download(store, "test-1", out)
    for p in FILES:
        assert (out / p).read_bytes() == (tree / p).read_bytes()
        assert stat.S_IMODE((out / p).stat().st_mode) == stat.S_IMODE(
            (tree / p).stat().st_mode
        )
    assert is_executable(out / "hello.sh")
    assert not is_executable(out / "text.txt")


def test_roundtrip_big_and_empty_files(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    big = os.urandom(3 * 2**20 + 5)
    (tree / "big.bin").write_bytes(big)
    (tree / "empty").write_bytes(b"")
    do_upload(store, "big", ["big.bin", "empty"], concurrency=1)
    do_download(store, "big", tmp_path / "out")
    assert (tmp_path / "out" / "big.bin").read_bytes() == big
    assert (tmp_path / "out" / "empty").read_bytes() == b""


def test_dedup(store: AbstractBlobStore, tree: Path):
    stats = UploadStats()
    do_upload(store, "test-1", stats=stats)
    # text.txt and dir/text.txt share content.
    assert sorted(blob_keys(store)) == sorted(
        {blob_key(digest_bytes(HELLO)), blob_key(digest_bytes(TEXT))}
    )
    assert stats.uploaded + stats.present == 3
    assert stats.uploaded >= 2

    (tree / "other").mkdir()
    (tree / "other" / "copy.txt").write_bytes(TEXT)
    stats = UploadStats()
    do_upload(store, "test-2", ["other/copy.txt"], stats=stats)
    assert stats.uploaded == 0 and stats.present == 1
    assert len(blob_keys(store)) == 2


def test_idempotent_reupload(store: AbstractBlobStore, tree: Path):
    do_upload(store, "test-1")
    with store.get(manifest_key("test-1")) as f:
        first = f.read()
    stats = UploadStats()
    do_upload(store, "test-1", stats=stats)
    with store.get(manifest_key("test-1")) as f:
        assert f.read() == first
    assert stats.uploaded == 0
    assert list(list_snapshots(store)) == ["test-1"]


def test_reupload_replaces(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1")
    do_upload(store, "test-1", ["hello.sh"])
    assert [e.path for e in read_manifest(store, "test-1")] == ["hello.sh"]
    do_download(store, "test-1", tmp_path / "out")
    assert not (tmp_path / "out" / "text.txt").exists()


def test_failed_upload_publishes_nothing(store: AbstractBlobStore, tree: Path):
    entries = list(walk(FILES))
    entries.append(WalkEntry("gone.txt", tree / "gone.txt", 0o644))
    with pytest.raises(LocalIoError):
        asyncio.run(upload(store, "test-1", entries))
    assert list(list_snapshots(store)) == []


def test_failed_upload_keeps_previous_manifest(store: AbstractBlobStore, tree: Path):
    do_upload(store, "test-1")
    with store.get(manifest_key("test-1")) as f:
        before = f.read()
    (tree / "new.txt").write_bytes(b"new content")
    with pytest.raises(LocalIoError):
        do_upload(store, "test-1", ["new.txt", "missing.txt"])
    with store.get(manifest_key("test-1")) as f:
        assert f.read() == before


class FlakyStore(InMemBlobStore):
    """Fails to put the blob for one particular content."""

    def __init__(self, bad: bytes):
        super().__init__()
        self.bad_key = blob_key(digest_bytes(bad))

    def put(self, key, tape):
        if key == self.bad_key:
            raise StoreError("simulated outage")
        return super().put(key, tape)


def test_store_failure_publishes_nothing(tree: Path):
    store = FlakyStore(HELLO)
    with pytest.raises(StoreError):
        do_upload(store, "test-1")
    assert list(list_snapshots(store)) == []
    assert not store.exists(manifest_key("test-1"))


def test_walk_failure_publishes_nothing(store: AbstractBlobStore, tree: Path):
    with pytest.raises(EntryKindError):
        do_upload(store, "test-1", ["hello.sh", "dir"])
    assert list(list_snapshots(store)) == []


def test_duplicate_paths(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    (tmp_path / "elsewhere").mkdir()
    (tmp_path / "elsewhere" / "text.txt").write_bytes(b"different")
    with pytest.raises(DuplicatePathError):
        do_upload(store, "test-1", ["text.txt", tmp_path / "elsewhere" / "text.txt"])
    assert list(list_snapshots(store)) == []


def test_invalid_name_uploads_nothing(store: AbstractBlobStore, tree: Path):
    with pytest.raises(InvalidNameError):
        do_upload(store, "../oops")
    assert list(store.list()) == []


def test_delete_isolation(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "n", ["text.txt", "hello.sh"])
    do_upload(store, "m", ["dir/text.txt"])
    assert sorted(list_snapshots(store)) == ["m", "n"]
    assert delete_snapshot(store, "n")
    assert list(list_snapshots(store)) == ["m"]
    do_download(store, "m", tmp_path / "out")
    assert (tmp_path / "out" / "dir" / "text.txt").read_bytes() == TEXT
    with pytest.raises(NotFoundError):
        do_download(store, "n", tmp_path / "out2")


def test_delete_missing(store: AbstractBlobStore):
    with pytest.raises(NotFoundError):
        delete_snapshot(store, "nope")
    assert delete_snapshot(store, "nope", missing_ok=True) is False


def test_recursive_equivalence(store: AbstractBlobStore, tree: Path):
    (tree / "dir" / "a").write_bytes(b"a")
    (tree / "dir" / "b").write_bytes(b"b")
    (tree / "dir" / "text.txt").unlink()
    m1 = do_upload(store, "recursive", ["dir"], recurse=True)
    m2 = do_upload(store, "explicit", ["dir/a", "dir/b"])
    assert m1.entries == m2.entries
    assert read_manifest(store, "recursive").entries == read_manifest(store, "explicit").entries


def test_download_missing_name(store: AbstractBlobStore, tmp_path: Path):
    with pytest.raises(NotFoundError):
        do_download(store, "nope", tmp_path / "out")


def test_missing_blob_is_corruption(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1")
    store.delete(blob_key(digest_bytes(HELLO)))
    with pytest.raises(CorruptionError):
        do_download(store, "test-1", tmp_path / "out")


def test_tampered_blob_is_corruption(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1", ["hello.sh"])
    store.put(blob_key(digest_bytes(HELLO)), b"rm -rf /\n")
    with pytest.raises(CorruptionError):
        do_download(store, "test-1", tmp_path / "out")


def test_bad_manifest(store: AbstractBlobStore, tmp_path: Path):
    store.put(manifest_key("broken"), b'{"version": 99, "entries": []}')
    with pytest.raises(ManifestFormatError):
        do_download(store, "broken", tmp_path / "out")


def test_download_overwrites(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1")
    out = tmp_path / "out"
    (out / "dir").mkdir(parents=True)
    (out / "text.txt").write_bytes(b"stale")
    os.chmod(out / "text.txt", 0o444)
    decoy = tmp_path / "decoy"
    decoy.write_bytes(b"decoy")
    os.symlink(decoy, out / "dir" / "text.txt")
    do_download(store, "test-1", out)
    assert (out / "text.txt").read_bytes() == TEXT
    assert not (out / "dir" / "text.txt").is_symlink()
    assert decoy.read_bytes() == b"decoy"


def test_scenario(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1", concurrency=2)
    assert "test-1" in list(list_snapshots(store))
    out = tmp_path / "out"
    do_download(store, "test-1", out, concurrency=2)
    assert (out / "hello.sh").read_bytes() == HELLO
    assert is_executable(out / "hello.sh")
    assert (out / "text.txt").read_bytes() == TEXT
    assert (out / "dir" / "text.txt").read_bytes() == TEXT
    delete_snapshot(store, "test-1")
    assert "test-1" not in list(list_snapshots(store))


@pytest.mark.parametrize(
    "err",
    [
        ReadTimeoutError(endpoint_url="http://localhost:9000"),
        ResponseStreamingError(error="connection reset by peer"),
    ],
)
def test_dropped_connection_is_store_error(tree: Path, tmp_path: Path, err):
    client = BrokenStreamClient(err)
    store = S3BlobStore("test-bucket", client)
    do_upload(store, "test-1", ["hello.sh"])
    with pytest.raises(StoreError):
        do_download(store, "test-1", tmp_path / "out")


def test_unwritable_outpath_is_local_io_error(store: AbstractBlobStore, tree: Path, tmp_path: Path):
    do_upload(store, "test-1")
    out = tmp_path / "out"
    out.mkdir()
    (out / "dir").write_bytes(b"a file where a directory should be")
    with pytest.raises(LocalIoError):
        do_download(store, "test-1", out)
