"""Task predicates: the criteria a command event must satisfy to complete a task.

Checks are registered by name in three families (output, filesystem and
context) so adventure content can refer to them declaratively.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from . import paths
from .errors import FilesystemError
from .log import get_logger
from .models import CommandResult, Task
from .vfs import File, VirtualFileSystem

logger = get_logger(__name__)

IP_PATTERN = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")
FLAG_PATTERN = re.compile(r"FLAG\{[A-Z0-9_]+\}")
PATH_PATTERN = re.compile(r"^/[\w\-/.]*$")


@dataclass(frozen=True)
class TaskEvent:
    """Everything a predicate may observe about one executed command."""

    command: str
    stdout: tuple[str, ...]
    stderr: tuple[str, ...]
    exit_code: int
    vfs: VirtualFileSystem
    cwd: str
    home: str

    @classmethod
    def from_result(
        cls,
        command: str,
        result: CommandResult,
        vfs: VirtualFileSystem,
        cwd: str,
        home: str,
    ) -> TaskEvent:
        return cls(command, result.stdout, result.stderr, result.exit_code, vfs, cwd, home)

    @property
    def output(self) -> str:
        return "\n".join(self.stdout)

    @property
    def combined_output(self) -> str:
        return "\n".join((*self.stdout, *self.stderr))

    def resolve(self, target: str) -> str:
        """Resolve a content-supplied path; relative paths are taken from home."""
        return paths.resolve(self.home, target, self.home)


Check = Callable[[TaskEvent, Any], bool]


def _as_list(params: Any) -> list[str]:
    if isinstance(params, str):
        return [params]
    if isinstance(params, Iterable):
        return [str(item) for item in params]
    raise TypeError(f"Expected a string or list of strings, got {type(params).__name__}.")


def _within_bounds(count: int, params: Any) -> bool:
    bounds = params or {}
    if bounds.get("exact") is not None:
        return count == int(bounds["exact"])
    if bounds.get("min") is not None and count < int(bounds["min"]):
        return False
    if bounds.get("max") is not None and count > int(bounds["max"]):
        return False
    return True


# Output checks


def contains(event: TaskEvent, params: Any) -> bool:
    text = event.combined_output.lower()
    return all(needle.lower() in text for needle in _as_list(params))


def not_empty(event: TaskEvent, params: Any) -> bool:
    return bool(event.output.strip())


def is_empty(event: TaskEvent, params: Any) -> bool:
    return not event.output.strip()


def grep_found(event: TaskEvent, params: Any) -> bool:
    return bool(event.output.strip()) and "No such file" not in event.combined_output


def valid_path(event: TaskEvent, params: Any) -> bool:
    text = event.output.strip()
    return len(text) > 1 and PATH_PATTERN.match(text) is not None


def valid_flag(event: TaskEvent, params: Any) -> bool:
    return FLAG_PATTERN.search(event.output) is not None


def line_count(event: TaskEvent, params: Any) -> bool:
    return _within_bounds(len([line for line in event.stdout if line.strip()]), params)


def word_count(event: TaskEvent, params: Any) -> bool:
    return _within_bounds(len(event.output.split()), params)


def ping_success(event: TaskEvent, params: Any) -> bool:
    text = event.combined_output
    reached = "bytes from" in text or "packets transmitted" in text
    return reached and "100% packet loss" not in text and "Network unreachable" not in text


def ping_failed(event: TaskEvent, params: Any) -> bool:
    text = event.combined_output
    markers = ("100% packet loss", "Network unreachable", "Destination Host Unreachable", "Name or service not known")
    return any(marker in text for marker in markers)


def http_success(event: TaskEvent, params: Any) -> bool:
    text = event.combined_output
    return event.exit_code == 0 and bool(text.strip()) and "error" not in text.lower()


def netstat_listening(event: TaskEvent, params: Any) -> bool:
    return "LISTEN" in event.output


def dig_resolved(event: TaskEvent, params: Any) -> bool:
    if IP_PATTERN.search(event.output) is None or event.exit_code != 0:
        return False
    return params is None or str(params) in event.output


def network_interfaces(event: TaskEvent, params: Any) -> bool:
    text = event.output
    return any(marker in text for marker in ("eth0", "wlan0", "inet ", "inet6")) and "not found" not in text


def ssh_connected(event: TaskEvent, params: Any) -> bool:
    return "connection established" in event.output.lower() and event.exit_code == 0


def scp_success(event: TaskEvent, params: Any) -> bool:
    return "100%" in event.output and event.exit_code == 0


def matches_pattern(event: TaskEvent, params: Any) -> bool:
    return re.search(str(params), event.combined_output) is not None


def matches_any_pattern(event: TaskEvent, params: Any) -> bool:
    return any(re.search(pattern, event.combined_output) for pattern in _as_list(params))


def contains_ip(event: TaskEvent, params: Any) -> bool:
    return IP_PATTERN.search(event.output) is not None


def listing_contains_file(event: TaskEvent, params: Any) -> bool:
    return all(any(name in line for line in event.stdout) for name in _as_list(params))


# Filesystem checks


def _path_param(params: Any) -> str:
    if isinstance(params, str):
        return params
    return str(params["path"])


def file_exists(event: TaskEvent, params: Any) -> bool:
    return event.vfs.exists(event.resolve(_path_param(params)))


def dir_exists(event: TaskEvent, params: Any) -> bool:
    return event.vfs.is_dir(event.resolve(_path_param(params)))


def path_not_exists(event: TaskEvent, params: Any) -> bool:
    return not event.vfs.exists(event.resolve(_path_param(params)))


def file_contains(event: TaskEvent, params: Any) -> bool:
    target = event.resolve(params["path"])
    if not event.vfs.is_file(target):
        return False
    content = event.vfs.read_file(target)
    return all(needle in content for needle in _as_list(params["text"]))


def file_not_empty(event: TaskEvent, params: Any) -> bool:
    target = event.resolve(_path_param(params))
    return event.vfs.is_file(target) and bool(event.vfs.read_file(target).strip())


def dir_is_empty(event: TaskEvent, params: Any) -> bool:
    target = event.resolve(_path_param(params))
    return event.vfs.is_dir(target) and not event.vfs.list_dir(target, include_hidden=True)


def dir_has_files(event: TaskEvent, params: Any) -> bool:
    target = event.resolve(_path_param(params))
    if not event.vfs.is_dir(target):
        return False
    names = event.vfs.list_dir(target, include_hidden=True)
    if isinstance(params, dict):
        if params.get("count") is not None and len(names) != int(params["count"]):
            return False
        if params.get("files"):
            return all(name in names for name in _as_list(params["files"]))
    return bool(names)


def file_copied(event: TaskEvent, params: Any) -> bool:
    source = event.vfs.lookup(event.resolve(params["source"]))
    destination = event.vfs.lookup(event.resolve(params["dest"]))
    if isinstance(source, File) and isinstance(destination, File):
        return source.content == destination.content
    return False


# Context checks


def has_error(event: TaskEvent, params: Any) -> bool:
    return event.exit_code != 0 or bool(event.stderr)


def no_error(event: TaskEvent, params: Any) -> bool:
    return not has_error(event, params)


def command_succeeded(event: TaskEvent, params: Any) -> bool:
    return event.exit_code == 0 and not event.stderr


def cwd_is(event: TaskEvent, params: Any) -> bool:
    return event.cwd == event.resolve(_path_param(params))


OUTPUT_CHECKS: dict[str, Check] = {
    "contains": contains,
    "not_empty": not_empty,
    "is_empty": is_empty,
    "grep_found": grep_found,
    "valid_path": valid_path,
    "valid_flag": valid_flag,
    "line_count": line_count,
    "word_count": word_count,
    "ping_success": ping_success,
    "ping_failed": ping_failed,
    "http_success": http_success,
    "netstat_listening": netstat_listening,
    "dig_resolved": dig_resolved,
    "network_interfaces": network_interfaces,
    "ssh_connected": ssh_connected,
    "scp_success": scp_success,
    "matches_pattern": matches_pattern,
    "matches_any_pattern": matches_any_pattern,
    "contains_ip": contains_ip,
    "listing_contains_file": listing_contains_file,
}

FILESYSTEM_CHECKS: dict[str, Check] = {
    "file_exists": file_exists,
    "dir_exists": dir_exists,
    "path_not_exists": path_not_exists,
    "file_contains": file_contains,
    "file_not_empty": file_not_empty,
    "dir_is_empty": dir_is_empty,
    "dir_has_files": dir_has_files,
    "file_copied": file_copied,
}

CONTEXT_CHECKS: dict[str, Check] = {
    "has_error": has_error,
    "no_error": no_error,
    "command_succeeded": command_succeeded,
    "cwd_is": cwd_is,
}

CHECKS: dict[str, Check] = {**OUTPUT_CHECKS, **FILESYSTEM_CHECKS, **CONTEXT_CHECKS}


def _criteria(task: Task, event: TaskEvent) -> Iterable[bool]:
    """Yield each declared criterion lazily so evaluation stops at the first miss."""
    if task.command_pattern is not None:
        yield re.search(task.command_pattern, event.command) is not None
    if task.exit_code is not None:
        yield event.exit_code == task.exit_code
    if task.require_output:
        yield bool(event.output.strip())
    if task.output_pattern is not None:
        yield re.search(task.output_pattern, event.output, re.IGNORECASE | re.DOTALL) is not None
    if task.output_check is not None:
        yield CHECKS[task.output_check](event, task.output_check_params)
    if task.check is not None:
        yield _custom_check(task.id, task.check, event)


def _custom_check(task_id: str, check: Callable[[TaskEvent], Any], event: TaskEvent) -> bool:
    """Run a Python-defined check; any exception it raises is a miss."""
    try:
        return bool(check(event))
    except Exception as exc:
        logger.warning("validator_failed", task=task_id, check="check", error=repr(exc))
        return False


def evaluate_task(task: Task, event: TaskEvent) -> bool:
    """Return whether every declared criterion of `task` holds for `event`.

    A task without criteria never passes. A predicate that raises counts as a
    non-match.
    """
    if not task.has_criteria():
        return False
    try:
        return all(_criteria(task, event))
    except (KeyError, TypeError, ValueError, AttributeError, re.error, FilesystemError) as exc:
        logger.warning("validator_failed", task=task.id, check=task.output_check, error=str(exc))
        return False
