"""Pure path algebra for the virtual filesystem.

Nothing in this module touches a filesystem. Paths are plain strings using
``/`` as separator; every function returns normalized absolute paths.
"""

from __future__ import annotations

ROOT = "/"


def split(path: str) -> list[str]:
    """Return the normalized segments of a path (empty list for the root)."""
    segments: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)
    return segments


def normalize(path: str) -> str:
    """Collapse repeated slashes, `.` and `..` into one absolute path."""
    return ROOT + "/".join(split(path))


def expand_home(target: str, home: str | None) -> str:
    """Replace a leading `~` with the home directory when one is known."""
    if home is None:
        return target
    if target == "~":
        return home
    if target.startswith("~/"):
        return home.rstrip("/") + target[1:]
    return target


def resolve(cwd: str, target: str, home: str | None = None) -> str:
    """Resolve `target` against `cwd`.

    Absolute targets ignore `cwd` entirely. `..` at the root stays at the root.
    """
    target = expand_home(target, home)
    if target.startswith("/"):
        return normalize(target)
    return normalize(f"{cwd}/{target}")


def join(base: str, name: str) -> str:
    """Join one child name onto a normalized directory path."""
    if base == ROOT:
        return ROOT + name
    return f"{base}/{name}"


def basename(path: str) -> str:
    """Return the last segment, or `/` for the root."""
    segments = split(path)
    return segments[-1] if segments else ROOT


def dirname(path: str) -> str:
    """Return the normalized parent path (the root is its own parent)."""
    segments = split(path)
    return ROOT + "/".join(segments[:-1])


def is_within(path: str, ancestor: str) -> bool:
    """Return whether `path` equals `ancestor` or lies below it."""
    path = normalize(path)
    ancestor = normalize(ancestor)
    if ancestor == ROOT:
        return True
    return path == ancestor or path.startswith(ancestor + "/")


def display(path: str, home: str) -> str:
    """Abbreviate the home directory to `~` for prompts."""
    if is_within(path, home) and home != ROOT:
        return "~" + path[len(home) :]
    return path
