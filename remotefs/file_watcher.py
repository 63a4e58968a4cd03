"""Watch a directory tree and turn its changes into wire messages."""

from __future__ import annotations

import fnmatch
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from remotefs.messages import (
    CreateEvent,
    DeleteEvent,
    Message,
    ModifyEvent,
    MoveEvent,
    Sync,
    compose_data_message,
)

log = logging.getLogger(__name__)

_FNV_OFFSET = 0xCBF29CE484222325
_FNV_PRIME = 0x00000100000001B3
_MASK64 = 0xFFFFFFFFFFFFFFFF

IGNORE_WINDOW_MS = 500


def fnv1a64(data: bytes) -> int:
    """Hash bytes into a 64-bit value used to detect content changes."""
    state = _FNV_OFFSET
    for byte in data:
        state = (state * _FNV_PRIME) & _MASK64
        state ^= byte
    return state


def _now_ms() -> int:
    return int(time.time() * 1000)


class EventKind(Enum):
    """Kinds of filesystem events the watcher distinguishes."""

    CREATE = "create"
    MODIFY_DATA = "modify_data"
    MODIFY_NAME = "modify_name"
    MODIFY_OTHER = "modify_other"
    REMOVE = "remove"
    ACCESS = "access"
    OTHER = "other"

    @property
    def is_modify(self) -> bool:
        return self in (EventKind.MODIFY_DATA, EventKind.MODIFY_NAME, EventKind.MODIFY_OTHER)


@dataclass(frozen=True)
class FsEvent:
    """A filesystem event on one or more absolute paths."""

    kind: EventKind
    paths: tuple[str, ...]

    @property
    def path(self) -> Optional[str]:
        return self.paths[0] if self.paths else None


def _from_watchdog(event: FileSystemEvent) -> FsEvent:
    src = os.fsdecode(event.src_path)
    if event.is_directory:
        return FsEvent(EventKind.OTHER, (src,))
    event_type = event.event_type
    if event_type == "created":
        return FsEvent(EventKind.CREATE, (src,))
    if event_type == "modified":
        return FsEvent(EventKind.MODIFY_DATA, (src,))
    if event_type == "deleted":
        return FsEvent(EventKind.REMOVE, (src,))
    if event_type == "moved":
        return FsEvent(EventKind.MODIFY_NAME, (os.fsdecode(event.dest_path),))
    if event_type in ("opened", "closed", "closed_no_write"):
        return FsEvent(EventKind.ACCESS, (src,))
    return FsEvent(EventKind.OTHER, (src,))


class _QueueHandler(FileSystemEventHandler):
    def __init__(self, events: "queue.Queue[FsEvent]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(_from_watchdog(event))


@dataclass(frozen=True)
class _Rule:
    base: str
    pattern: str
    negate: bool
    dir_only: bool
    anchored: bool

    def matches(self, path: str, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        rel = os.path.relpath(path, self.base).replace(os.sep, "/")
        if rel == ".." or rel.startswith("../"):
            return False
        if self.anchored:
            return fnmatch.fnmatchcase(rel, self.pattern)
        return fnmatch.fnmatchcase(os.path.basename(path), self.pattern)


def _parse_rule(base: str, line: str) -> Optional[_Rule]:
    line = line.rstrip("\r\n")
    if not line.strip() or line.startswith("#"):
        return None
    line = line.rstrip(" ")
    negate = line.startswith("!")
    if negate:
        line = line[1:]
    if line.startswith("\\"):
        line = line[1:]
    dir_only = line.endswith("/")
    line = line.rstrip("/")
    if line.startswith("**/") and "/" not in line[3:]:
        line = line[3:]
    anchored = "/" in line
    line = line.lstrip("/")
    if not line:
        return None
    return _Rule(base, line, negate, dir_only, anchored)


def _load_rules(directory: str, use_gitignore: bool) -> list[_Rule]:
    names = [".gitignore", ".ignore"] if use_gitignore else [".ignore"]
    rules: list[_Rule] = []
    for name in names:
        try:
            with open(os.path.join(directory, name), encoding="utf-8", errors="replace") as handle:
                lines = handle.readlines()
        except OSError:
            continue
        rules.extend(rule for rule in (_parse_rule(directory, line) for line in lines) if rule)
    return rules


def _ancestors(path: str) -> list[str]:
    chain = []
    current = os.path.dirname(path)
    while current and current != path:
        chain.append(current)
        path, current = current, os.path.dirname(current)
    return list(reversed(chain))


def _inside_git(root: str) -> bool:
    return any(os.path.exists(os.path.join(d, ".git")) for d in [*_ancestors(root), root])


def _is_ignored(path: str, is_dir: bool, rules: list[_Rule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(path, is_dir):
            ignored = not rule.negate
    return ignored


def _walk_files(root: str) -> list[str]:
    """Regular files under root, skipping hidden entries and ignore-file matches."""
    use_gitignore = _inside_git(root)
    inherited: list[_Rule] = []
    for ancestor in _ancestors(root):
        inherited.extend(_load_rules(ancestor, use_gitignore))

    found: list[str] = []

    def visit(directory: str, rules: list[_Rule]) -> None:
        rules = rules + _load_rules(directory, use_gitignore)
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            log.error("Cannot list %s: %s", directory, exc)
            return
        for entry in entries:
            if entry.name.startswith("."):
                continue
            is_dir = entry.is_dir(follow_symlinks=False)
            if _is_ignored(entry.path, is_dir, rules):
                continue
            if is_dir:
                visit(entry.path, rules)
            elif entry.is_file(follow_symlinks=False):
                found.append(entry.path)

    visit(root, inherited)
    return found


class FileWatcher:
    """Tracks the files under a root and filters the changes made to them."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)
        if not os.path.isdir(self.root):
            raise FileNotFoundError(f"No such directory: {self.root}")
        self._lock = threading.RLock()
        self._events: "queue.Queue[FsEvent]" = queue.Queue()
        self._files: list[str] = []
        self._file_hashes: dict[str, int] = {}
        self._ignore_until: dict[str, int] = {}
        self._observer = Observer()
        self._observer.schedule(_QueueHandler(self._events), self.root, recursive=True)
        self._observer.start()
        self._index_files()

    def close(self) -> None:
        """Stop watching the directory."""
        self._observer.stop()
        self._observer.join()

    def __enter__(self) -> "FileWatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _absolute(self, path: str) -> str:
        return os.path.join(self.root, path)

    def _local(self, path: str) -> str:
        if path.startswith(self.root):
            path = path[len(self.root):]
        return path[1:] if path.startswith(os.sep) or path.startswith("/") else path

    def handle_message(self, message: Message, is_authoritative: bool = False) -> None:
        """Apply a message received from the other side to the local tree."""
        with self._lock:
            match message:
                case Sync(files=files):
                    log.info("Received sync message")
                    if is_authoritative:
                        log.error("Unexpected sync message from non-authoritative source")
                        return
                    for rel_path, contents in files.items():
                        path = self._absolute(rel_path)
                        parent = os.path.dirname(path)
                        try:
                            os.makedirs(parent, exist_ok=True)
                        except OSError:
                            log.error("Failed to create directory: %s", parent)
                        try:
                            with open(path, "wb") as handle:
                                handle.write(contents)
                        except OSError as exc:
                            log.error("Failed to write file %s: %s", path, exc)
                        self._mark_as_modified(path)
                    log.info("Sync message processed, files written to '%s'", self.root)
                case CreateEvent(path=rel_path, contents=contents) | ModifyEvent(
                    path=rel_path, contents=contents
                ):
                    path = self._absolute(rel_path)
                    try:
                        with open(path, "wb") as handle:
                            handle.write(contents)
                    except OSError as exc:
                        log.error("Failed to write file %s: %s", rel_path, exc)
                    self._mark_as_modified(path)
                case DeleteEvent(path=rel_path):
                    path = self._absolute(rel_path)
                    try:
                        os.remove(path)
                    except OSError as exc:
                        log.error("Failed to delete file %s: %s", rel_path, exc)
                    self._mark_as_modified(path)
                case MoveEvent(old_path=old_path, new_path=new_path):
                    old_abs, new_abs = self._absolute(old_path), self._absolute(new_path)
                    try:
                        os.rename(old_abs, new_abs)
                    except OSError as exc:
                        log.error("Failed to move file from %s to %s: %s", old_path, new_path, exc)
                    self._mark_as_modified(old_abs)
                    self._mark_as_modified(new_abs)

    def make_message(self, event: FsEvent) -> Optional[Message]:
        """Build the message announcing an event, or None if it has none."""
        kind = event.kind
        if kind is not EventKind.CREATE and kind is not EventKind.REMOVE and not kind.is_modify:
            return None
        if len(event.paths) != 1:
            raise ValueError("More than one path in event")
        path = event.paths[0]
        if kind is EventKind.REMOVE:
            return DeleteEvent(path=self._local(path))
        try:
            with open(path, "rb") as handle:
                contents = handle.read()
        except OSError as exc:
            log.error("Cannot read %s: %s", path, exc)
            return None
        if kind is EventKind.CREATE:
            return CreateEvent(path=self._local(path), contents=contents)
        return ModifyEvent(path=self._local(path), contents=contents)

    def make_msg_data(self, event: FsEvent) -> Optional[bytes]:
        """Build the wire frame announcing an event, or None if it has none."""
        message = self.make_message(event)
        if message is None:
            return None
        return compose_data_message(message)

    def accept_event(self, event: FsEvent) -> bool:
        """Decide whether an event is a change worth passing on."""
        with self._lock:
            kind = event.kind
            if kind is EventKind.CREATE:
                self._index_files()
                allow = self._has_file(event)
            elif kind in (EventKind.MODIFY_DATA, EventKind.MODIFY_NAME):
                if not event.paths:
                    return False
                try:
                    changed = self._has_changes_read(event.paths[0])
                except OSError:
                    return False
                allow = changed and self._has_file(event)
            elif kind is EventKind.REMOVE:
                allow = self._has_file(event)
            else:
                allow = False

            if allow:
                path = event.paths[0]
                ignored_until = self._ignore_until.get(path)
                if ignored_until is not None:
                    now = _now_ms()
                    if ignored_until > now:
                        log.info("%s is ignored for another %dms", path, ignored_until - now)
                        allow = False
                    else:
                        log.info("%s has not been ignored for %dms now.", path, now - ignored_until)
                        del self._ignore_until[path]
            return allow

    def try_get_event(self) -> Optional[FsEvent]:
        """Return the next accepted event, or None once the queue runs dry."""
        attempts = 3
        while True:
            timeout_ms = min(max(attempts * 10, 1), 30)
            try:
                event = self._events.get(timeout=timeout_ms / 1000)
            except queue.Empty:
                return None
            start = time.monotonic()
            if self.accept_event(event):
                elapsed = (time.monotonic() - start) * 1000
                log.info(
                    "Filesystem %s file '%s', took %dms",
                    event.kind.value,
                    event.path,
                    elapsed,
                )
                return event
            attempts -= 1

    def get_relative_files(self) -> dict[str, bytes]:
        """Contents of every indexed file, keyed by path relative to the root."""
        with self._lock:
            files = list(self._files)
        result: dict[str, bytes] = {}
        for path in files:
            with open(path, "rb") as handle:
                result[self._local(path).replace(os.sep, "/")] = handle.read()
        return result

    def _has_file(self, event: FsEvent) -> bool:
        path = event.path
        if path is None:
            log.error("Error: No path in event")
            return False
        return path in self._files

    def _index_files(self) -> None:
        self._files = _walk_files(self.root)
        hashes: dict[str, int] = {}
        for path in self._files:
            try:
                with open(path, "rb") as handle:
                    hashes[path] = fnv1a64(handle.read())
            except OSError:
                log.error("File does not exist: %s", path)
        self._file_hashes = hashes

    def _mark_as_modified(self, path: str) -> None:
        self._ignore_until[path] = _now_ms() + IGNORE_WINDOW_MS
        log.info("Ignoring file for half a second: %s", path)

    def _has_changes(self, path: str, contents: bytes) -> bool:
        return self._file_hashes.get(path, 0) != fnv1a64(contents)

    def _has_changes_read(self, path: str) -> bool:
        with open(path, "rb") as handle:
            return self._has_changes(path, handle.read())