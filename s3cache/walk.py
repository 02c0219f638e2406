import logging
import os
from pathlib import Path, PurePath
import stat
from typing import Iterable, Iterator, NamedTuple, Union

from .errors import EntryKindError, LocalIoError

logger = logging.getLogger("s3cache")


class WalkEntry(NamedTuple):
    relpath: str
    """ Path within the snapshot, ``/`` separated. """
    abspath: Path
    mode: int
    """ Permission bits, ``st_mode & 0o7777``. """


def walk(paths: Iterable[Union[Path, str]], recurse: bool = False) -> Iterator[WalkEntry]:
    """Lazily enumerate the regular files to snapshot.

    Files are placed at their given relative path (or at their base name when the given path is absolute or
    climbs out of the working directory). When ``recurse`` is set, a directory is walked and its files are
    placed under the directory's own name, so ``walk(["dir"], True)`` and ``walk(["dir/a", "dir/b"])`` agree.

    Symlinks are never followed: meeting one raises EntryKindError.
    """
    for path in paths:
        path = Path(path)
        st = lstat(path)
        if stat.S_ISLNK(st.st_mode):
            raise EntryKindError(f"{path} is a symlink, symlinks are not supported")
        if stat.S_ISDIR(st.st_mode):
            if not recurse:
                raise EntryKindError(f"{path} is a directory, pass --recurse to include it")
            root = Path(os.path.abspath(path))
            yield from walk_dir(root, root.name)
        elif stat.S_ISREG(st.st_mode):
            yield WalkEntry(
                relpath=file_relpath(path),
                abspath=Path(os.path.abspath(path)),
                mode=stat.S_IMODE(st.st_mode),
            )
        else:
            raise EntryKindError(f"{path} is not a regular file")


def walk_dir(directory: Path, relpath: str) -> Iterator[WalkEntry]:
    try:
        with os.scandir(directory) as it:
            children = sorted(it, key=lambda e: e.name)
    except OSError as err:
        raise LocalIoError(f"could not list {directory}: {err}") from err
    for child in children:
        child_rel = f"{relpath}/{child.name}" if relpath else child.name
        try:
            if child.is_symlink():
                raise EntryKindError(
                    f"{child.path} is a symlink, symlinks are not supported"
                )
            if child.is_dir(follow_symlinks=False):
                yield from walk_dir(Path(child.path), child_rel)
            elif child.is_file(follow_symlinks=False):
                mode = child.stat(follow_symlinks=False).st_mode
                yield WalkEntry(child_rel, Path(child.path), stat.S_IMODE(mode))
            else:
                logger.warning(f"Skipping {child.path}: not a regular file or directory.")
        except OSError as err:
            raise LocalIoError(f"could not stat {child.path}: {err}") from err


def file_relpath(path: PurePath) -> str:
    parts = [p for p in path.parts if p != "."]
    if path.is_absolute() or ".." in parts or len(parts) == 0:
        return path.name
    return PurePath(*parts).as_posix()


def lstat(path: Path) -> os.stat_result:
    try:
        return path.lstat()
    except FileNotFoundError as err:
        raise LocalIoError(f"{path} does not exist") from err
    except OSError as err:
        raise LocalIoError(f"could not stat {path}: {err}") from err
