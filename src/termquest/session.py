"""Session controller: one adventure, one filesystem, one progress cursor.

The front-end talks only to `ShellSession`. Each call processes one turn to
completion (parse, dispatch, validate, persist) before returning.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from . import paths
from .cmdline import split_line
from .commands import run_command
from .errors import FilesystemError, ParseError
from .log import get_logger
from .missions import MissionEngine, ValidationOutcome
from .models import Adventure, CommandResult, Hint, Mission, SideEffect, Task, failure, success
from .network import NetworkSimulator
from .progress import MemoryStorage, ProgressRecord, ProgressStorage, decode_progress, encode_progress, progress_key
from .state import ShellState
from .validators import TaskEvent
from .vfs import Clock, VirtualFileSystem

logger = get_logger(__name__)

SYNTAX_ERROR_EXIT = 2


@dataclass(frozen=True)
class TurnResult:
    """Everything one input line produced, in execution order."""

    line: str
    results: tuple[CommandResult, ...] = ()
    outcomes: tuple[ValidationOutcome, ...] = ()

    @property
    def exit_code(self) -> int:
        return self.results[-1].exit_code if self.results else 0

    @property
    def side_effects(self) -> list[SideEffect]:
        return [result.side_effect for result in self.results if result.side_effect is not None]

    @property
    def transitions(self) -> list[ValidationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.changed]


@dataclass(frozen=True)
class AdventureState:
    """Adventure lock and progress state for menus."""

    adventure: Adventure
    unlocked: bool
    started: bool
    completed: bool
    percentage: int


class ShellSession:
    """Owns the shell state and mission engine for one adventure."""

    def __init__(
        self,
        adventure: Adventure,
        storage: ProgressStorage | None = None,
        *,
        network: NetworkSimulator | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.adventure = adventure
        self.storage: ProgressStorage = storage if storage is not None else MemoryStorage()
        vfs = VirtualFileSystem.from_snapshot(adventure.initial_filesystem, owner=adventure.username, clock=clock)
        start = adventure.start_dir or adventure.home
        self.state = ShellState(
            vfs=vfs,
            username=adventure.username,
            home=adventure.home,
            cwd=start,
            hostname=adventure.hostname,
            network=network or NetworkSimulator(),
        )
        self.engine = MissionEngine(adventure.missions)
        self._key = progress_key(adventure.id)
        self._log = logger.bind(adventure=adventure.id)
        self.restored = self._restore()

    # Persistence

    def _restore(self) -> bool:
        try:
            raw = self.storage.get(self._key)
        except sqlite3.Error as exc:
            self._log.warning("progress_read_failed", error=str(exc))
            return False
        if raw is None:
            self._log.info("session_started", cursor=self.engine.cursor)
            self._persist()
            return False
        try:
            record = decode_progress(raw, self.adventure.id)
            self.engine.restore(record.cursor, record.hints_used)
        except ValueError as exc:
            self.engine.reset()
            self._log.warning("progress_reset", reason=str(exc))
            self._persist()
            return False
        self._log.info("session_restored", cursor=self.engine.cursor)
        return True

    def _persist(self) -> None:
        record = ProgressRecord(
            adventure_id=self.adventure.id,
            cursor=self.engine.cursor,
            hints_used=dict(self.engine.hints_used),
            saved_at=datetime.now(UTC).isoformat(),
        )
        try:
            self.storage.set(self._key, encode_progress(record))
        except sqlite3.Error as exc:
            self._log.warning("progress_save_failed", error=str(exc))

    # Turns

    def run_line(self, line: str) -> TurnResult:
        """Execute one input line; commands joined by `&&` stop at the first failure."""
        if not line.strip():
            return TurnResult(line)
        self.state.history.append(line.strip())
        try:
            segments = split_line(line)
        except ParseError as exc:
            return TurnResult(line, (failure(f"bash: {exc}", exit_code=SYNTAX_ERROR_EXIT),))

        results: list[CommandResult] = []
        outcomes: list[ValidationOutcome] = []
        last_exit = 0
        for segment in segments:
            if segment.connector == "&&" and last_exit != 0:
                continue
            result = run_command(segment.tokens, self.state)
            last_exit = result.exit_code
            results.append(result)
            outcomes.append(self._validate(" ".join(segment.words), result))
        return TurnResult(line, tuple(results), tuple(outcomes))

    def save_file(self, path: str, content: str) -> TurnResult:
        """Write editor content and validate it as a synthetic `save <path>` command."""
        command = f"save {path}"
        try:
            self.state.vfs.write_file(self.state.resolve(path), content)
        except FilesystemError as exc:
            result = failure(f"save: {path}: {exc.strerror}")
        else:
            result = success()
        return TurnResult(command, (result,), (self._validate(command, result),))

    def read_file(self, path: str) -> str:
        """Return file content for an editor; raises `FilesystemError`."""
        return self.state.vfs.read_file(self.state.resolve(path))

    def _validate(self, command: str, result: CommandResult) -> ValidationOutcome:
        event = TaskEvent.from_result(command, result, self.state.vfs, self.state.cwd, self.state.home)
        outcome = self.engine.evaluate(event)
        if outcome.changed:
            self._persist()
        return outcome

    # Progress

    @property
    def current_mission(self) -> Mission | None:
        return self.engine.current_mission

    @property
    def current_task(self) -> Task | None:
        return self.engine.current_task

    @property
    def is_complete(self) -> bool:
        return self.engine.is_complete

    def request_hint(self, level: int = 1) -> Hint | None:
        """Return a hint for the active task; using one is persisted."""
        before = dict(self.engine.hints_used)
        hint = self.engine.request_hint(level)
        if self.engine.hints_used != before:
            self._persist()
        return hint

    def reset_progress(self) -> None:
        """Return to the first task and forget stored progress."""
        self.engine.reset()
        try:
            self.storage.delete(self._key)
        except sqlite3.Error as exc:
            self._log.warning("progress_delete_failed", error=str(exc))
        self._log.info("progress_cleared")

    def prompt(self) -> str:
        where = paths.display(self.state.cwd, self.state.home)
        return f"{self.state.username}@{self.state.hostname}:{where}$ "


def read_progress(adventure: Adventure, storage: ProgressStorage) -> MissionEngine | None:
    """Return an engine positioned at the stored progress, or None if nothing usable is stored."""
    try:
        raw = storage.get(progress_key(adventure.id))
        if raw is None:
            return None
        record = decode_progress(raw, adventure.id)
        engine = MissionEngine(adventure.missions)
        engine.restore(record.cursor, record.hints_used)
    except (ValueError, sqlite3.Error) as exc:
        logger.warning("progress_unreadable", adventure=adventure.id, error=str(exc))
        return None
    return engine


def adventure_states(adventures: Iterable[Adventure], storage: ProgressStorage) -> list[AdventureState]:
    """Return lock and progress state for each adventure.

    An adventure is unlocked once every prerequisite is complete, or once it
    has been started.
    """
    adventure_list = list(adventures)
    engines = {adventure.id: read_progress(adventure, storage) for adventure in adventure_list}
    completed = {
        adventure_id for adventure_id, engine in engines.items() if engine is not None and engine.is_complete
    }
    states: list[AdventureState] = []
    for adventure in adventure_list:
        engine = engines[adventure.id]
        started = engine is not None
        unlocked = started or all(prerequisite in completed for prerequisite in adventure.prerequisites)
        states.append(
            AdventureState(
                adventure=adventure,
                unlocked=unlocked,
                started=started,
                completed=adventure.id in completed,
                percentage=engine.completion_percentage() if engine is not None else 0,
            )
        )
    return states
