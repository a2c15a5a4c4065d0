"""Load declarative adventure content from bundled JSON resources."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from . import paths
from .missions import HINT_LEVELS
from .models import Adventure, Hint, Mission, Task
from .validators import CHECKS
from .vfs import VirtualFileSystem

CONTENT_PACKAGE = "termquest.content.adventures"


def _hint_from_dict(task_id: str, raw: dict[str, Any]) -> Hint:
    level = int(raw["level"])
    if level not in HINT_LEVELS:
        raise ValueError(f"Task '{task_id}' has hint level {level}; expected one of {HINT_LEVELS}.")
    return Hint(level=level, text=str(raw["text"]))


def _compile_check(task_id: str, field_name: str, pattern: str | None) -> str | None:
    if pattern is None:
        return None
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"Task '{task_id}' has an invalid {field_name}: {exc}") from exc
    return pattern


def _task_from_dict(raw: dict[str, Any]) -> Task:
    """Build a task from raw JSON content."""
    task_id = str(raw["id"])
    hints = sorted((_hint_from_dict(task_id, item) for item in raw.get("hints", [])), key=lambda hint: hint.level)
    if len({hint.level for hint in hints}) != len(hints):
        raise ValueError(f"Task '{task_id}' repeats a hint level.")

    output_check = raw.get("output_check")
    if output_check is not None and output_check not in CHECKS:
        raise ValueError(f"Task '{task_id}' uses unknown check '{output_check}'.")
    exit_code = raw.get("exit_code")

    task = Task(
        id=task_id,
        description=str(raw["description"]),
        hints=hints,
        command_pattern=_compile_check(task_id, "command_pattern", raw.get("command_pattern")),
        output_pattern=_compile_check(task_id, "output_pattern", raw.get("output_pattern")),
        output_check=output_check,
        output_check_params=raw.get("output_check_params"),
        require_output=bool(raw.get("require_output", False)),
        exit_code=int(exit_code) if exit_code is not None else None,
    )
    if not task.has_criteria():
        raise ValueError(f"Task '{task_id}' declares no completion criteria.")
    return task


def _mission_from_dict(raw: dict[str, Any]) -> Mission:
    """Build a mission from raw JSON content."""
    mission_id = str(raw["id"])
    tasks = [_task_from_dict(item) for item in raw.get("tasks", [])]
    if not tasks:
        raise ValueError(f"Mission '{mission_id}' has no tasks.")
    return Mission(
        id=mission_id,
        title=str(raw["title"]),
        story=str(raw.get("story", "")),
        tasks=tasks,
        on_complete=str(raw.get("on_complete", "")),
    )


def _adventure_from_dict(raw: dict[str, Any]) -> Adventure:
    """Build an adventure from raw JSON content."""
    adventure_id = str(raw["id"])
    missions = [_mission_from_dict(item) for item in raw.get("missions", [])]
    if not missions:
        raise ValueError(f"Adventure '{adventure_id}' has no missions.")

    initial_filesystem = raw.get("initial_filesystem", {})
    if not isinstance(initial_filesystem, Mapping):
        raise ValueError(f"Adventure '{adventure_id}' initial_filesystem must be an object.")
    adventure = Adventure(
        id=adventure_id,
        title=str(raw["title"]),
        description=str(raw.get("description", "")),
        prerequisites=[str(item) for item in raw.get("prerequisites", [])],
        missions=missions,
        initial_filesystem=initial_filesystem,
        username=str(raw.get("username", "student")),
        hostname=str(raw.get("hostname", "termquest")),
        home=paths.normalize(str(raw.get("home", "/home/student"))),
        start_dir=paths.normalize(str(raw["start_dir"])) if raw.get("start_dir") else None,
    )
    _validate_adventure(adventure)
    return adventure


def _validate_adventure(adventure: Adventure) -> None:
    """Validate unique ids and that the starting filesystem is usable."""
    mission_ids: set[str] = set()
    task_ids: set[str] = set()
    for mission in adventure.missions:
        if mission.id in mission_ids:
            raise ValueError(f"Duplicate mission id in '{adventure.id}': {mission.id}")
        mission_ids.add(mission.id)
        for task in mission.tasks:
            if task.id in task_ids:
                raise ValueError(f"Duplicate task id in '{adventure.id}': {task.id}")
            task_ids.add(task.id)

    try:
        vfs = VirtualFileSystem.from_snapshot(adventure.initial_filesystem, owner=adventure.username)
    except ValueError as exc:
        raise ValueError(f"Adventure '{adventure.id}' has a malformed filesystem: {exc}") from exc
    start = adventure.start_dir or adventure.home
    if not vfs.is_dir(start):
        raise ValueError(f"Adventure '{adventure.id}' starts in '{start}', which is not a directory.")


def load_adventures() -> dict[str, Adventure]:
    """Load bundled adventures."""
    adventures: dict[str, Adventure] = {}
    for entry in sorted(resources.files(CONTENT_PACKAGE).iterdir(), key=lambda item: item.name):
        if entry.name.endswith(".json"):
            raw = json.loads(entry.read_text(encoding="utf-8-sig"))
            adventure = _adventure_from_dict(raw)
            if adventure.id in adventures:
                raise ValueError(f"Duplicate adventure id: {adventure.id}")
            adventures[adventure.id] = adventure
    _validate_prerequisites(adventures)
    return adventures


def load_adventures_from_dir(path: Path) -> dict[str, Adventure]:
    """Load adventures from directory for tests/tools."""
    adventures: dict[str, Adventure] = {}
    for file_path in sorted(path.glob("*.json")):
        raw = json.loads(file_path.read_text(encoding="utf-8-sig"))
        adventure = _adventure_from_dict(raw)
        if adventure.id in adventures:
            raise ValueError(f"Duplicate adventure id: {adventure.id}")
        adventures[adventure.id] = adventure
    _validate_prerequisites(adventures)
    return adventures


def _validate_prerequisites(adventures: dict[str, Adventure]) -> None:
    """Validate prerequisites exist and the dependency graph has no cycles."""
    for adventure in adventures.values():
        for prerequisite in adventure.prerequisites:
            if prerequisite not in adventures:
                raise ValueError(f"Adventure '{adventure.id}' has unknown prerequisite '{prerequisite}'.")

    visiting: set[str] = set()
    visited: set[str] = set()

    def visit(adventure_id: str, path: list[str]) -> None:
        if adventure_id in visited:
            return
        if adventure_id in visiting:
            cycle_start = path.index(adventure_id)
            cycle_path = path[cycle_start:] + [adventure_id]
            raise ValueError(f"Circular adventure dependency detected: {' -> '.join(cycle_path)}")

        visiting.add(adventure_id)
        path.append(adventure_id)
        for prerequisite in adventures[adventure_id].prerequisites:
            visit(prerequisite, path)
        path.pop()
        visiting.remove(adventure_id)
        visited.add(adventure_id)

    for adventure_id in adventures:
        visit(adventure_id, [])
