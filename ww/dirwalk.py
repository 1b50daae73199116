import fnmatch
import logging
import os
import pathlib
from collections.abc import Iterable
from dataclasses import dataclass, field

from result import Err, Ok, Result

from .errors import RootUnreadable

_LOGGER = logging.getLogger(__name__)


@dataclass
class SkippedPath:
    path: pathlib.Path
    exception: OSError


@dataclass
class WalkResult:
    root: pathlib.Path
    directories: list[pathlib.Path] = field(default_factory=list)
    files: list[pathlib.Path] = field(default_factory=list)
    skipped: list[SkippedPath] = field(default_factory=list)
    # st_mode of every listed directory, as seen during the walk
    directory_modes: dict[pathlib.Path, int] = field(default_factory=dict)
    # directories reached through a symlink; a recursive watch does not descend into them
    symlinked_directories: list[pathlib.Path] = field(default_factory=list)

    @property
    def paths(self) -> list[pathlib.Path]:
        return self.directories + self.files


def is_excluded(name: str, name_excludes: Iterable[str]) -> bool:
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in name_excludes)


def walk_directory(
    root: pathlib.Path,
    name_excludes: list[str],
    follow_symlinks: bool = True,
) -> Result[WalkResult, RootUnreadable]:
    """
    Lists root and everything under it, skipping entries whose basename
    matches one of the shell-style globs in name_excludes (an excluded
    directory is skipped along with its contents). Failure to read root
    is an error; failure to read anything below it is recorded in
    WalkResult.skipped.
    """

    try:
        root_entries = list(os.scandir(root))
        root_stat = root.stat()
    except OSError as scan_exception:
        return Err(RootUnreadable(root, scan_exception))

    result = WalkResult(root=root, directories=[root], directory_modes={root: root_stat.st_mode})
    visited = {(root_stat.st_dev, root_stat.st_ino)}
    pending: list[list[os.DirEntry[str]]] = [root_entries]

    while pending:
        for entry in pending.pop():
            path = pathlib.Path(entry.path)
            if is_excluded(entry.name, name_excludes):
                _LOGGER.debug(f"Skipping excluded {path}")
                continue

            try:
                is_dir = entry.is_dir(follow_symlinks=follow_symlinks)
                if not is_dir:
                    result.files.append(path)
                    continue

                entry_stat = entry.stat(follow_symlinks=follow_symlinks)
                if (entry_stat.st_dev, entry_stat.st_ino) in visited:
                    # symlink cycle
                    continue
                visited.add((entry_stat.st_dev, entry_stat.st_ino))

                pending.append(list(os.scandir(path)))
                result.directories.append(path)
                result.directory_modes[path] = entry_stat.st_mode
                if entry.is_symlink():
                    result.symlinked_directories.append(path)
            except OSError as scan_exception:
                _LOGGER.info(f"Skipping {path}: {scan_exception}")
                result.skipped.append(SkippedPath(path, scan_exception))

    return Ok(result)
