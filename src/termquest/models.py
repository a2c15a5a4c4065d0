"""Core domain models for adventures and command results."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class SideEffectKind(StrEnum):
    """Structured markers a command leaves for the front-end."""

    CWD_CHANGED = "cwd_changed"
    OPEN_PAGER = "open_pager"
    OPEN_EDITOR = "open_editor"
    CLEAR_SCREEN = "clear_screen"


@dataclass(frozen=True)
class SideEffect:
    """Side-effect marker attached to a command result."""

    kind: SideEffectKind
    path: str | None = None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one executed command."""

    stdout: tuple[str, ...] = ()
    stderr: tuple[str, ...] = ()
    exit_code: int = 0
    side_effect: SideEffect | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return "\n".join(self.stdout)

    @property
    def error_output(self) -> str:
        return "\n".join(self.stderr)


def success(*lines: str, side_effect: SideEffect | None = None) -> CommandResult:
    """Build a zero-exit result from stdout lines."""
    return CommandResult(stdout=tuple(lines), side_effect=side_effect)


def failure(*lines: str, exit_code: int = 1, stdout: tuple[str, ...] = ()) -> CommandResult:
    """Build a nonzero result from stderr lines."""
    return CommandResult(stdout=stdout, stderr=tuple(lines), exit_code=exit_code)


@dataclass(frozen=True)
class Hint:
    """One leveled hint (1 = nudge, 3 = near solution)."""

    level: int
    text: str


@dataclass(frozen=True)
class Task:
    """Smallest unit of mission progress.

    Every declared criterion must hold for the task to complete.
    """

    id: str
    description: str
    hints: list[Hint] = field(default_factory=list)
    command_pattern: str | None = None
    output_pattern: str | None = None
    output_check: str | None = None
    output_check_params: Any = None
    require_output: bool = False
    exit_code: int | None = None
    check: Callable[[Any], bool] | None = field(default=None, compare=False)

    def has_criteria(self) -> bool:
        return any(
            (
                self.command_pattern is not None,
                self.output_pattern is not None,
                self.output_check is not None,
                self.require_output,
                self.exit_code is not None,
                self.check is not None,
            )
        )

    def hint(self, level: int) -> Hint | None:
        for hint in self.hints:
            if hint.level == level:
                return hint
        return None


@dataclass(frozen=True)
class Mission:
    """Ordered group of tasks with story text."""

    id: str
    title: str
    story: str
    tasks: list[Task]
    on_complete: str = ""


@dataclass(frozen=True)
class Adventure:
    """Top-level playable unit: starting filesystem plus ordered missions."""

    id: str
    title: str
    description: str
    prerequisites: list[str]
    missions: list[Mission]
    initial_filesystem: Mapping[str, Any]
    username: str = "student"
    hostname: str = "termquest"
    home: str = "/home/student"
    start_dir: str | None = None

    @property
    def task_count(self) -> int:
        return sum(len(mission.tasks) for mission in self.missions)
