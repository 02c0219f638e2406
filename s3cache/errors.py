""" Error taxonomy for s3cache.

Each error carries a ``kind`` which is shown to the user and an ``exit_code`` that the CLI exits with,
so that CI scripts can tell a missing snapshot apart from a broken network.
"""


class CacheError(Exception):
    kind: str = "error"
    exit_code: int = 1


class LocalIoError(CacheError):
    """A local path could not be read or written."""

    kind = "local-io"
    exit_code = 3


class EntryKindError(CacheError):
    """A filesystem entry is not something we can snapshot.

    Eg a directory given without ``--recurse``, or a symlink."""

    kind = "entry-kind"
    exit_code = 4


class DuplicatePathError(EntryKindError):
    """Two inputs map to the same relative path in the manifest."""


class StoreError(CacheError):
    """The object store failed, after retries were exhausted."""

    kind = "store"
    exit_code = 5


class NotFoundError(CacheError):
    kind = "not-found"
    exit_code = 6


class BucketNotFoundError(NotFoundError):
    pass


class CorruptionError(CacheError):
    """A manifest references a blob that is not in the store."""

    kind = "corruption"
    exit_code = 7


class ManifestFormatError(CacheError):
    kind = "manifest-format"
    exit_code = 8


class InvalidNameError(CacheError):
    kind = "invalid-name"
    exit_code = 9


class ConfigError(CacheError):
    """The settings from the environment or .env file are invalid."""

    kind = "config"
    exit_code = 2
