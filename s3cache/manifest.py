"""The manifest is the document stored under a snapshot name.

Wire format (JSON, field names are stable)::

    {
      "version": 1,
      "name": "test-1",
      "entries": [
        {"path": "dir/text.txt", "digest": "af13...", "mode": 420, "size": 12},
        ...
      ]
    }

Unknown fields are ignored when reading, so that older clients can read manifests written by newer ones
as long as the version marker is unchanged.
"""

from dataclasses import asdict, dataclass, field
import json
from typing import Any, Iterable, Iterator

from .digest import Digest, is_digest
from .errors import DuplicatePathError, ManifestFormatError
from .util import is_safe_relpath

MANIFEST_VERSION = 1


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    """ Path relative to the snapshot root, always with ``/`` separators. """

    digest: Digest
    """ Content digest, the blob is stored under this. """

    mode: int
    """ Permission bits of the file, eg 0o755. """

    size: int
    """ Number of bytes in the file. """

    @property
    def is_executable(self) -> bool:
        return bool(self.mode & 0o111)


@dataclass
class Manifest:
    name: str
    entries: list[ManifestEntry] = field(default_factory=list)

    @classmethod
    def of_entries(cls, name: str, entries: Iterable[ManifestEntry]) -> "Manifest":
        """Build a manifest, sorting entries by path and rejecting duplicate paths."""
        es = sorted(entries, key=lambda e: e.path)
        for a, b in zip(es, es[1:]):
            if a.path == b.path:
                raise DuplicatePathError(f"{a.path} occurs more than once in {name}")
        return cls(name=name, entries=es)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    @property
    def digests(self) -> set[Digest]:
        return {e.digest for e in self.entries}

    @property
    def total_size(self) -> int:
        return sum(e.size for e in self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "name": self.name,
            "entries": [asdict(e) for e in self.entries],
        }

    def dumps(self) -> bytes:
        return json.dumps(self.to_dict(), indent=1).encode("utf-8")

    @classmethod
    def loads(cls, data: bytes | str, name: str | None = None) -> "Manifest":
        """Parse a stored manifest. Raises ManifestFormatError if it is malformed or of an unsupported version."""
        try:
            j = json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as err:
            raise ManifestFormatError(f"manifest {name} is not valid JSON: {err}") from err
        if not isinstance(j, dict):
            raise ManifestFormatError(f"manifest {name} must be a JSON object")
        version = j.get("version")
        if version != MANIFEST_VERSION:
            raise ManifestFormatError(
                f"manifest {name} has unsupported version {version!r} (expected {MANIFEST_VERSION})"
            )
        stored_name = j.get("name", name)
        if not isinstance(stored_name, str):
            raise ManifestFormatError(f"manifest {name} has a malformed name")
        entries = j.get("entries")
        if not isinstance(entries, list):
            raise ManifestFormatError(f"manifest {name} has no entries list")
        try:
            return cls.of_entries(name or stored_name, map(entry_of_dict, entries))
        except DuplicatePathError as err:
            raise ManifestFormatError(str(err)) from err


def entry_of_dict(d: Any) -> ManifestEntry:
    if not isinstance(d, dict):
        raise ManifestFormatError(f"manifest entry must be an object, got {d!r}")
    path, digest, mode, size = (d.get(k) for k in ("path", "digest", "mode", "size"))
    if not isinstance(path, str) or not is_safe_relpath(path):
        raise ManifestFormatError(f"manifest entry has an unsafe path {path!r}")
    if not isinstance(digest, str) or not is_digest(digest):
        raise ManifestFormatError(f"manifest entry {path} has a bad digest {digest!r}")
    if not isinstance(mode, int) or isinstance(mode, bool) or not 0 <= mode <= 0o7777:
        raise ManifestFormatError(f"manifest entry {path} has a bad mode {mode!r}")
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        raise ManifestFormatError(f"manifest entry {path} has a bad size {size!r}")
    return ManifestEntry(path=path, digest=Digest(digest), mode=mode, size=size)
