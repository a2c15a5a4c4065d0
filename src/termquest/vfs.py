"""In-memory hierarchical filesystem.

The tree is made of plain owned nodes: a directory owns its children by name
and nothing else holds a node reference, so copy and move can never create
cycles or shared subtrees. Paths are derived from the position in the tree and
never stored on nodes.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from . import paths
from .errors import (
    AlreadyExists,
    DirectoryNotEmpty,
    InvalidOperation,
    IsADirectory,
    NoSuchEntry,
    NotADirectory,
)

Clock = Callable[[], datetime]

DIRECTORY_MODE = 0o755
FILE_MODE = 0o644
DIRECTORY_SIZE = 4096


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class File:
    """Regular file holding text content."""

    content: str
    mtime: datetime
    owner: str
    mode: int = FILE_MODE

    @property
    def size(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass
class Directory:
    """Directory mapping child names to owned nodes in insertion order."""

    mtime: datetime
    owner: str
    mode: int = DIRECTORY_MODE
    children: dict[str, File | Directory] = field(default_factory=dict)


Node = File | Directory


@dataclass(frozen=True)
class NodeInfo:
    """Metadata snapshot used by long listings."""

    name: str
    is_dir: bool
    size: int
    mtime: datetime
    owner: str
    mode: int


def _info(name: str, node: Node) -> NodeInfo:
    if isinstance(node, Directory):
        return NodeInfo(name, True, DIRECTORY_SIZE, node.mtime, node.owner, node.mode)
    return NodeInfo(name, False, node.size, node.mtime, node.owner, node.mode)


class VirtualFileSystem:
    """Owns one directory tree and exposes CRUD and traversal over it.

    Every path argument is normalized as an absolute path; resolving relative
    input against a working directory is the caller's job.
    """

    def __init__(self, *, owner: str = "student", clock: Clock | None = None) -> None:
        self.owner = owner
        self._clock = clock or _utc_now
        self.root = Directory(mtime=self._clock(), owner="root")

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Mapping[str, object],
        *,
        owner: str = "student",
        clock: Clock | None = None,
    ) -> VirtualFileSystem:
        """Build a filesystem from a nested mapping (mapping = dir, str = file)."""
        vfs = cls(owner=owner, clock=clock)
        vfs._load(vfs.root, snapshot, "/")
        return vfs

    def _load(self, directory: Directory, snapshot: Mapping[str, object], where: str) -> None:
        for name, value in snapshot.items():
            if not name or "/" in name or name in (".", ".."):
                raise ValueError(f"Invalid entry name {name!r} in {where}")
            if isinstance(value, str):
                directory.children[name] = File(content=value, mtime=self._clock(), owner=self.owner)
            elif isinstance(value, Mapping):
                child = Directory(mtime=self._clock(), owner=self.owner)
                directory.children[name] = child
                self._load(child, value, paths.join(where, name))
            else:
                raise ValueError(f"Entry {paths.join(where, name)} must be a string or an object.")

    def to_snapshot(self, path: str = "/") -> dict[str, object]:
        """Return the subtree at `path` as a nested mapping."""
        node = self._require_dir(path)

        def dump(directory: Directory) -> dict[str, object]:
            result: dict[str, object] = {}
            for name, child in directory.children.items():
                result[name] = dump(child) if isinstance(child, Directory) else child.content
            return result

        return dump(node)

    # Lookup

    def lookup(self, path: str) -> Node:
        """Return the node at `path` or raise `NoSuchEntry`/`NotADirectory`."""
        node: Directory = self.root
        walked = "/"
        for segment in paths.split(path):
            if not isinstance(node, Directory):
                raise NotADirectory(walked)
            child = node.children.get(segment)
            if child is None:
                raise NoSuchEntry(paths.normalize(path))
            node = child
            walked = paths.join(walked, segment)
        return node

    def exists(self, path: str) -> bool:
        try:
            self.lookup(path)
        except (NoSuchEntry, NotADirectory):
            return False
        return True

    def is_dir(self, path: str) -> bool:
        try:
            return isinstance(self.lookup(path), Directory)
        except (NoSuchEntry, NotADirectory):
            return False

    def is_file(self, path: str) -> bool:
        try:
            return isinstance(self.lookup(path), File)
        except (NoSuchEntry, NotADirectory):
            return False

    def stat(self, path: str) -> NodeInfo:
        return _info(paths.basename(path), self.lookup(path))

    def _require_dir(self, path: str) -> Directory:
        node = self.lookup(path)
        if not isinstance(node, Directory):
            raise NotADirectory(paths.normalize(path))
        return node

    def _parent_of(self, path: str) -> tuple[Directory, str]:
        """Return the existing parent directory of `path` and the final name."""
        normalized = paths.normalize(path)
        if normalized == paths.ROOT:
            raise InvalidOperation(normalized)
        parent = self.lookup(paths.dirname(normalized))
        if not isinstance(parent, Directory):
            raise NotADirectory(paths.dirname(normalized))
        return parent, paths.basename(normalized)

    # Creation and writes

    def create_directory(self, path: str, *, parents: bool = False) -> Directory:
        """Create a directory.

        With `parents`, missing ancestors are created and an existing directory
        is returned unchanged; without it, a missing parent is `NoSuchEntry` and
        an existing target is `AlreadyExists`.
        """
        normalized = paths.normalize(path)
        if not parents:
            if normalized == paths.ROOT:
                raise AlreadyExists(normalized)
            parent, name = self._parent_of(normalized)
            if name in parent.children:
                raise AlreadyExists(normalized)
            created = Directory(mtime=self._clock(), owner=self.owner)
            parent.children[name] = created
            parent.mtime = self._clock()
            return created

        # Validate the whole chain before mutating anything.
        node: Directory = self.root
        walked = "/"
        missing: list[str] = []
        for segment in paths.split(normalized):
            walked = paths.join(walked, segment)
            if missing:
                missing.append(segment)
                continue
            child = node.children.get(segment)
            if child is None:
                missing.append(segment)
            elif isinstance(child, File):
                if walked == normalized:
                    raise AlreadyExists(normalized)
                raise NotADirectory(walked)
            else:
                node = child
        for segment in missing:
            created = Directory(mtime=self._clock(), owner=self.owner)
            node.children[segment] = created
            node.mtime = self._clock()
            node = created
        return node

    def create_file(self, path: str, content: str = "") -> File:
        """Create a new file; an existing entry is `AlreadyExists`."""
        parent, name = self._parent_of(path)
        if name in parent.children:
            raise AlreadyExists(paths.normalize(path))
        created = File(content=content, mtime=self._clock(), owner=self.owner)
        parent.children[name] = created
        parent.mtime = self._clock()
        return created

    def read_file(self, path: str) -> str:
        node = self.lookup(path)
        if isinstance(node, Directory):
            raise IsADirectory(paths.normalize(path))
        return node.content

    def write_file(self, path: str, content: str, *, append: bool = False) -> File:
        """Create or overwrite (or append to) a file."""
        parent, name = self._parent_of(path)
        existing = parent.children.get(name)
        if isinstance(existing, Directory):
            raise IsADirectory(paths.normalize(path))
        if existing is None:
            existing = File(content=content, mtime=self._clock(), owner=self.owner)
            parent.children[name] = existing
            parent.mtime = self._clock()
            return existing
        existing.content = existing.content + content if append else content
        existing.mtime = self._clock()
        return existing

    def touch(self, path: str) -> Node:
        """Create an empty file or refresh the timestamp of an existing entry."""
        parent, name = self._parent_of(path)
        existing = parent.children.get(name)
        if existing is None:
            return self.create_file(path)
        existing.mtime = self._clock()
        return existing

    # Removal, copy and move

    def remove(self, path: str, *, recursive: bool = False, force: bool = False) -> None:
        """Remove a file or directory.

        A non-empty directory needs `recursive`. `force` turns a missing entry,
        and a refused non-empty directory, into a silent no-op.
        """
        normalized = paths.normalize(path)
        if normalized == paths.ROOT:
            raise InvalidOperation(normalized, "refusing to remove the root directory")
        try:
            node = self.lookup(normalized)
        except NoSuchEntry:
            if force:
                return
            raise
        if isinstance(node, Directory) and node.children and not recursive:
            if force:
                return
            raise DirectoryNotEmpty(normalized)
        parent, name = self._parent_of(normalized)
        del parent.children[name]
        parent.mtime = self._clock()

    def _destination(self, source: str, destination: str) -> str:
        """Existing directory destinations receive the source by its own name."""
        target = paths.normalize(destination)
        if self.is_dir(target):
            return paths.join(target, paths.basename(source))
        return target

    def copy(self, source: str, destination: str, *, recursive: bool = False) -> str:
        """Copy `source` to `destination` and return the final target path."""
        source = paths.normalize(source)
        node = self.lookup(source)
        if isinstance(node, Directory) and not recursive:
            raise IsADirectory(source)
        target = self._destination(source, destination)
        if target == source:
            raise InvalidOperation(target, "source and destination are the same file")
        if isinstance(node, Directory) and paths.is_within(target, source):
            raise InvalidOperation(target, "cannot copy a directory into itself")
        parent, name = self._parent_of(target)
        existing = parent.children.get(name)
        if isinstance(node, File) and isinstance(existing, Directory):
            raise IsADirectory(target)
        if isinstance(node, Directory) and isinstance(existing, File):
            raise NotADirectory(target)
        self._paste(parent, name, copy.deepcopy(node))
        parent.mtime = self._clock()
        return target

    def _paste(self, parent: Directory, name: str, node: Node) -> None:
        node.mtime = self._clock()
        existing = parent.children.get(name)
        if isinstance(node, Directory) and isinstance(existing, Directory):
            for child_name, child in node.children.items():
                self._paste(existing, child_name, child)
            return
        parent.children[name] = node

    def move(self, source: str, destination: str) -> str:
        """Move or rename `source` and return the final target path."""
        source = paths.normalize(source)
        if source == paths.ROOT:
            raise InvalidOperation(source)
        node = self.lookup(source)
        target = self._destination(source, destination)
        if target == source:
            return target
        if isinstance(node, Directory) and paths.is_within(target, source):
            raise InvalidOperation(target, "cannot move a directory to a subdirectory of itself")
        parent, name = self._parent_of(target)
        existing = parent.children.get(name)
        if isinstance(existing, Directory):
            if isinstance(node, File):
                raise IsADirectory(target)
            if existing.children:
                raise DirectoryNotEmpty(target)
        elif isinstance(existing, File) and isinstance(node, Directory):
            raise NotADirectory(target)
        source_parent, source_name = self._parent_of(source)
        del source_parent.children[source_name]
        parent.children[name] = node
        source_parent.mtime = parent.mtime = self._clock()
        return target

    # Listing and traversal

    def list_dir(self, path: str, *, include_hidden: bool = False) -> list[str]:
        """Return child names in insertion order."""
        directory = self._require_dir(path)
        return [name for name in directory.children if include_hidden or not name.startswith(".")]

    def entries(self, path: str, *, include_hidden: bool = False) -> list[NodeInfo]:
        """Return child metadata in insertion order."""
        directory = self._require_dir(path)
        return [
            _info(name, child)
            for name, child in directory.children.items()
            if include_hidden or not name.startswith(".")
        ]

    def walk(self, path: str = "/", *, max_depth: int | None = None) -> Iterator[tuple[str, Node, int]]:
        """Yield `(path, node, depth)` in pre-order starting at `path` itself."""
        start = paths.normalize(path)
        stack: list[tuple[str, Node, int]] = [(start, self.lookup(start), 0)]
        while stack:
            current, node, depth = stack.pop()
            yield current, node, depth
            if isinstance(node, Directory) and (max_depth is None or depth < max_depth):
                children = [(paths.join(current, name), child, depth + 1) for name, child in node.children.items()]
                stack.extend(reversed(children))
