"""Mission progress state machine.

The cursor `(mission_index, task_index)` points at the next task to satisfy.
It only moves forward, one task per satisfied event, and freezes at
`(len(missions), 0)` once everything is complete.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

from .log import get_logger
from .models import Hint, Mission, Task
from .validators import TaskEvent, evaluate_task

logger = get_logger(__name__)

HINT_LEVELS = (1, 2, 3)
BASE_SCORE = 1000
HINT_PENALTY = 10
COMPLETION_BONUS = 500


@dataclass(frozen=True, order=True)
class Cursor:
    """Position of the next task to satisfy."""

    mission_index: int = 0
    task_index: int = 0


class Transition(StrEnum):
    """Result of validating one event against the active task."""

    NO_CHANGE = "no_change"
    TASK_COMPLETED = "task_completed"
    MISSION_COMPLETED = "mission_completed"
    ALL_COMPLETED = "all_completed"


@dataclass(frozen=True)
class ValidationOutcome:
    """What one validation step did; `story` carries the mission's completion text."""

    transition: Transition
    cursor: Cursor
    task: Task | None = None
    mission: Mission | None = None
    story: str = ""

    @property
    def changed(self) -> bool:
        return self.transition is not Transition.NO_CHANGE


class MissionEngine:
    """Tracks progress through an ordered list of missions."""

    def __init__(self, missions: Sequence[Mission]) -> None:
        if any(not mission.tasks for mission in missions):
            raise ValueError("Every mission needs at least one task.")
        self.missions = list(missions)
        self._cursor = Cursor()
        self.hints_used: dict[str, int] = {}

    @property
    def cursor(self) -> Cursor:
        return self._cursor

    @property
    def terminal_cursor(self) -> Cursor:
        return Cursor(len(self.missions), 0)

    @property
    def is_complete(self) -> bool:
        return self._cursor == self.terminal_cursor

    @property
    def current_mission(self) -> Mission | None:
        if self.is_complete:
            return None
        return self.missions[self._cursor.mission_index]

    @property
    def current_task(self) -> Task | None:
        mission = self.current_mission
        if mission is None:
            return None
        return mission.tasks[self._cursor.task_index]

    def is_valid_cursor(self, cursor: Cursor) -> bool:
        """Return whether `cursor` addresses a real task or the terminal state."""
        if cursor == self.terminal_cursor:
            return True
        if not 0 <= cursor.mission_index < len(self.missions):
            return False
        return 0 <= cursor.task_index < len(self.missions[cursor.mission_index].tasks)

    def restore(self, cursor: Cursor, hints_used: Mapping[str, int] | None = None) -> None:
        """Adopt persisted progress; raise `ValueError` when it does not fit these missions."""
        if not self.is_valid_cursor(cursor):
            raise ValueError(f"Cursor {cursor} does not fit {len(self.missions)} missions.")
        known = {task.id for mission in self.missions for task in mission.tasks}
        self._cursor = cursor
        self.hints_used = {
            task_id: level
            for task_id, level in (hints_used or {}).items()
            if task_id in known and level in HINT_LEVELS
        }

    def reset(self) -> None:
        self._cursor = Cursor()
        self.hints_used = {}

    def evaluate(self, event: TaskEvent) -> ValidationOutcome:
        """Validate `event` against the active task and advance at most one step."""
        task = self.current_task
        if task is None or not evaluate_task(task, event):
            return ValidationOutcome(Transition.NO_CHANGE, self._cursor)

        mission = self.missions[self._cursor.mission_index]
        next_task = self._cursor.task_index + 1
        if next_task < len(mission.tasks):
            self._cursor = Cursor(self._cursor.mission_index, next_task)
            logger.info("task_completed", task=task.id, mission=mission.id)
            return ValidationOutcome(Transition.TASK_COMPLETED, self._cursor, task=task)

        self._cursor = Cursor(self._cursor.mission_index + 1, 0)
        if self.is_complete:
            logger.info("all_missions_completed", mission=mission.id)
            transition = Transition.ALL_COMPLETED
        else:
            logger.info("mission_completed", mission=mission.id)
            transition = Transition.MISSION_COMPLETED
        return ValidationOutcome(transition, self._cursor, task=task, mission=mission, story=mission.on_complete)

    def request_hint(self, level: int = 1) -> Hint | None:
        """Return the active task's hint at `level` and remember the highest level used."""
        if level not in HINT_LEVELS:
            raise ValueError(f"Hint level must be one of {HINT_LEVELS}.")
        task = self.current_task
        if task is None:
            return None
        hint = task.hint(level)
        if hint is not None:
            self.hints_used[task.id] = max(level, self.hints_used.get(task.id, 0))
        return hint

    def completed_task_count(self) -> int:
        if self.is_complete:
            return sum(len(mission.tasks) for mission in self.missions)
        finished = sum(len(mission.tasks) for mission in self.missions[: self._cursor.mission_index])
        return finished + self._cursor.task_index

    def completion_percentage(self) -> int:
        total = sum(len(mission.tasks) for mission in self.missions)
        if total == 0:
            return 100
        return round(100 * self.completed_task_count() / total)

    def score(self) -> int:
        penalty = sum(HINT_PENALTY * level for level in self.hints_used.values())
        bonus = COMPLETION_BONUS if self.is_complete else 0
        return max(0, BASE_SCORE - penalty + bonus)
