import asyncio
import logging
import os
import pathlib
from functools import partial

from result import Err, Ok, Result
from typing_extensions import override
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .dirwalk import is_excluded, walk_directory
from .errors import RootUnreadable
from .trigger import InterruptSignal, Trigger, TriggerOutcome, TriggerWait

_LOGGER = logging.getLogger(__name__)

# File attribute changes (chmod) arrive as modified events
_FIRING_EVENT_TYPES = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)

_ROOT_RETRY_SECONDS = 1.0

WAITING_MESSAGE = "waiting for changes..."


class _ChangeHandler(FileSystemEventHandler):
    """
    Runs on watchdog's dispatch thread; hands the first relevant change
    back to the event loop.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        changed: asyncio.Event,
        root: pathlib.Path,
        name_excludes: list[str],
        directory_modes: dict[pathlib.Path, int],
    ) -> None:
        super().__init__()
        self._loop = loop
        self._changed = changed
        self._root = root
        self._name_excludes = name_excludes
        self._directory_modes = directory_modes
        self.changed_path: str | None = None

    def _is_excluded(self, raw_path: str | bytes) -> bool:
        path = pathlib.Path(os.fsdecode(raw_path))
        try:
            parts = path.relative_to(self._root).parts
        except ValueError:
            parts = (path.name,)
        return any(is_excluded(part, self._name_excludes) for part in parts)

    def _mode_changed(self, raw_path: str | bytes) -> bool:
        path = pathlib.Path(os.fsdecode(raw_path))
        recorded = self._directory_modes.get(path)
        if recorded is None:
            return False
        try:
            current = path.stat().st_mode
        except OSError:
            return False
        self._directory_modes[path] = current
        return current != recorded

    @override
    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _FIRING_EVENT_TYPES:
            return

        paths = [event.src_path]
        if event.event_type == EVENT_TYPE_MOVED:
            paths.append(event.dest_path)
        relevant = [path for path in paths if not self._is_excluded(path)]
        if not relevant:
            return

        if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
            # Also emitted for the parent of every created or removed entry,
            # which is reported on its own; only a mode change counts here
            if not self._mode_changed(event.src_path):
                return

        if self.changed_path is None:
            self.changed_path = os.fsdecode(relevant[0])
        self._loop.call_soon_threadsafe(self._changed.set)


class FilesystemChangeTrigger(Trigger):
    """
    Fires on the first create, write, remove, rename or permission change
    under root. Each wait walks the tree fresh, then watches root
    recursively (plus every directory reached through a symlink) until it
    resolves.
    """

    def __init__(self, root: pathlib.Path, name_excludes: list[str]) -> None:
        self.root = root
        self.name_excludes = name_excludes

    @override
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        loop = asyncio.get_running_loop()

        match await loop.run_in_executor(None, walk_directory, self.root, self.name_excludes):
            case Ok(walk):
                pass
            case Err(unreadable):
                _LOGGER.warning(unreadable.describe())
                wait.report(unreadable.describe())
                return await self._wait_for_root(interrupted)

        for skipped in walk.skipped:
            wait.report(f"skipping {skipped.path}: {skipped.exception.strerror or skipped.exception}")

        changed = asyncio.Event()
        handler = _ChangeHandler(
            loop, changed, self.root, self.name_excludes, dict(walk.directory_modes)
        )
        observer = Observer()
        observer.start()
        try:
            # One watch per tree: a single inotify instance covers all of root
            for watched in [self.root, *walk.symlinked_directories]:
                try:
                    await loop.run_in_executor(
                        None, partial(observer.schedule, handler, str(watched), recursive=True)
                    )
                except OSError as watch_exception:
                    _LOGGER.info(f"Could not watch {watched}: {watch_exception}")
                    wait.report(
                        f"watch error ({watched}: {watch_exception.strerror or watch_exception})"
                    )

            _LOGGER.debug(f"Watching {len(walk.directories)} directories under {self.root}")
            wait.report(WAITING_MESSAGE)

            changed_task = asyncio.create_task(changed.wait())
            try:
                await asyncio.wait([changed_task, interrupted], return_when=asyncio.FIRST_COMPLETED)
            finally:
                changed_task.cancel()
        finally:
            observer.stop()
            await loop.run_in_executor(None, observer.join)

        if interrupted.done():
            return TriggerOutcome.INTERRUPTED

        _LOGGER.info(f"Change detected in {handler.changed_path}")
        return TriggerOutcome.FIRED

    async def _wait_for_root(self, interrupted: "asyncio.Task[InterruptSignal]") -> TriggerOutcome:
        loop = asyncio.get_running_loop()
        while True:
            done, _ = await asyncio.wait([interrupted], timeout=_ROOT_RETRY_SECONDS)
            if done:
                return TriggerOutcome.INTERRUPTED
            if await loop.run_in_executor(None, os.access, self.root, os.R_OK | os.X_OK):
                _LOGGER.info(f"{self.root} is readable again")
                return TriggerOutcome.FIRED


def make_fs_trigger(
    root: pathlib.Path, name_excludes: list[str]
) -> Result[FilesystemChangeTrigger, RootUnreadable]:
    root = root.absolute()
    match walk_directory(root, name_excludes):
        case Ok():
            return Ok(FilesystemChangeTrigger(root, name_excludes))
        case Err() as err:
            return err
