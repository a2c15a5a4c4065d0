"""CLI entrypoint for the termquest mission shell."""

from __future__ import annotations

import argparse
from collections.abc import Callable, Mapping
from pathlib import Path

from .content_loader import load_adventures
from .errors import FilesystemError
from .log import configure_logging, get_logger
from .missions import HINT_LEVELS, Transition, ValidationOutcome
from .models import Adventure, CommandResult, SideEffectKind
from .progress import KEY_PREFIX, ProgressStorage, ProgressStore, progress_key
from .session import AdventureState, ShellSession, TurnResult, adventure_states

logger = get_logger(__name__)

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
DEFAULT_DB_PATH = Path(".termquest") / "progress.db"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
BACK_COMMANDS = {":back", ":b"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_QUIT_COMMANDS = {"q"}
EDITOR_END = "."
CLEAR_SEQUENCE = "\033[2J\033[H"
META_HELP = "Meta commands: :task  :hint [1-3]  :progress  :reset  :b (back)  :q (quit)"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _store(db_path: Path) -> ProgressStore:
    """Open the progress database."""
    return ProgressStore(db_path=db_path)


def _adventures() -> dict[str, Adventure]:
    return load_adventures()


def _read(input_fn: InputFn, prompt: str) -> str:
    """Read one line; end of input or Ctrl-C leaves the app."""
    try:
        return input_fn(prompt)
    except (EOFError, KeyboardInterrupt):
        raise QuitApp() from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termquest", description="Mission-driven virtual shell")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "list", "reset"])
    parser.add_argument("--adventure", help="adventure id (play directly, or the one to reset)")
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="progress database path")
    parser.add_argument("--log-level", default="WARNING", type=str.upper, choices=LOG_LEVELS)
    parser.add_argument("--json-logs", action="store_true", help="emit logs as JSON lines on stderr")
    return parser


def run(argv: list[str] | None = None, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run the CLI application."""
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level, json_logs=args.json_logs)

    adventures = _adventures()
    if args.adventure is not None and args.adventure not in adventures:
        print_fn(f"Unknown adventure: {args.adventure}")
        return 2

    store = _store(args.db)
    try:
        if args.command == "list":
            _list_flow(adventures, store, print_fn)
            return 0
        if args.command == "reset":
            _reset_flow(adventures, store, args.adventure, print_fn)
            return 0
        return play_shell(adventures, store, input_fn, print_fn, adventure_id=args.adventure)
    finally:
        store.close()


def play_shell(
    adventures: Mapping[str, Adventure],
    storage: ProgressStorage,
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    adventure_id: str | None = None,
) -> int:
    """Run the adventure menu and the shell loop."""
    try:
        if adventure_id is not None:
            states = {state.adventure.id: state for state in adventure_states(adventures.values(), storage)}
            state = states[adventure_id]
            if not state.unlocked:
                print_fn(f"Adventure '{adventure_id}' is locked. Complete first: {', '.join(_missing(state, states))}")
                return 1
            _run_adventure(ShellSession(state.adventure, storage), input_fn, print_fn)
            return 0
        while True:
            selected = _select_adventure(adventures, storage, input_fn, print_fn)
            if selected is None:
                return 0
            _run_adventure(ShellSession(selected, storage), input_fn, print_fn)
    except QuitApp:
        return 0


def _missing(state: AdventureState, states: Mapping[str, AdventureState]) -> list[str]:
    return [dep for dep in state.adventure.prerequisites if not states[dep].completed]


def _stage(state: AdventureState) -> str:
    if state.completed:
        return "completed"
    if state.started:
        return "started"
    return "new" if state.unlocked else "locked"


def _print_table(rows: list[tuple[str, ...]], headers: tuple[str, ...], print_fn: PrintFn) -> None:
    widths = [max(len(header), *(len(row[idx]) for row in rows)) for idx, header in enumerate(headers)]
    header_line = " ".join(f"{header:<{widths[idx]}}" for idx, header in enumerate(headers)).rstrip()
    print_fn(header_line)
    print_fn("-" * len(header_line))
    for row in rows:
        print_fn(" ".join(f"{cell:<{widths[idx]}}" for idx, cell in enumerate(row)).rstrip())


def _list_flow(adventures: Mapping[str, Adventure], storage: ProgressStorage, print_fn: PrintFn) -> None:
    """Print every adventure with its lock state and progress."""
    states = adventure_states(adventures.values(), storage)
    if not states:
        print_fn("No adventures installed.")
        return
    print_fn("\n=== Adventures ===")
    rows = [
        (
            state.adventure.id,
            _stage(state),
            f"{state.percentage}%",
            ", ".join(state.adventure.prerequisites) or "none",
            state.adventure.title,
        )
        for state in states
    ]
    _print_table(rows, ("Adventure", "Stage", "Done", "Prerequisites", "Title"), print_fn)


def _reset_flow(
    adventures: Mapping[str, Adventure],
    storage: ProgressStore,
    adventure_id: str | None,
    print_fn: PrintFn,
) -> None:
    """Clear stored progress for one adventure, or for all of them."""
    if adventure_id is not None:
        storage.delete(progress_key(adventure_id))
        logger.info("progress_cleared", adventure=adventure_id)
        print_fn(f"Progress for '{adventure_id}' cleared.")
        return
    keys = storage.keys(KEY_PREFIX)
    for key in keys:
        storage.delete(key)
    logger.info("progress_cleared", count=len(keys))
    print_fn(f"Cleared progress for {len(keys)} adventure(s).")


def _select_adventure(
    adventures: Mapping[str, Adventure],
    storage: ProgressStorage,
    input_fn: InputFn,
    print_fn: PrintFn,
) -> Adventure | None:
    """Pick an unlocked adventure from the menu; None means quit."""
    while True:
        all_states = adventure_states(adventures.values(), storage)
        by_id = {state.adventure.id: state for state in all_states}
        states = [state for state in all_states if state.unlocked]

        print_fn("\n=== Adventures ===")
        if not states:
            print_fn("No adventures available.")
            return None
        rows = [
            (str(idx), state.adventure.id, _stage(state), f"{state.percentage}%", state.adventure.title)
            for idx, state in enumerate(states, start=1)
        ]
        _print_table(rows, ("#", "Adventure", "Stage", "Done", "Title"), print_fn)

        locked = [state for state in all_states if not state.unlocked]
        if locked:
            print_fn("\nLocked Adventures")
            for state in locked:
                print_fn(f"- {state.adventure.id}: requires {', '.join(_missing(state, by_id))}")
        print_fn("q) Quit")

        choice = _read(input_fn, "Choose adventure: ").strip().lower()
        if choice in MENU_QUIT_COMMANDS:
            return None
        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(states):
                return states[index].adventure
        print_fn("Invalid choice.")


def _run_adventure(session: ShellSession, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Run the shell loop for one adventure until the player backs out."""
    adventure = session.adventure
    print_fn(f"\n=== {adventure.title} ===")
    if adventure.description:
        print_fn(adventure.description)
    if session.restored:
        print_fn("Progress restored.")
    print_fn(META_HELP)
    _show_task(session, print_fn, with_story=True)

    while True:
        line = _read(input_fn, session.prompt())
        lowered = line.strip().lower()
        if lowered in BACK_COMMANDS:
            print_fn("Leaving adventure. Progress saved.")
            return
        if lowered in FLOW_EXIT_COMMANDS:
            raise QuitApp()
        if lowered == ":reset":
            if _confirm_reset(input_fn, print_fn):
                session.reset_progress()
                session = ShellSession(adventure, session.storage)
                print_fn("Progress reset. The filesystem is back to its starting state.")
                _show_task(session, print_fn, with_story=True)
            continue
        if lowered.startswith(":"):
            _meta_command(session, line.strip(), print_fn)
            continue
        _render_turn(session, session.run_line(line), input_fn, print_fn)


def _confirm_reset(input_fn: InputFn, print_fn: PrintFn) -> bool:
    print_fn("WARNING: This clears all progress and restores the starting filesystem.")
    confirm = _read(input_fn, "Type YES to confirm reset: ").strip()
    if confirm != "YES":
        print_fn("Reset cancelled.")
        return False
    return True


def _meta_command(session: ShellSession, line: str, print_fn: PrintFn) -> None:
    parts = line.split()
    command = parts[0].lower()
    if command == ":task":
        _show_task(session, print_fn, with_story=False)
    elif command == ":progress":
        engine = session.engine
        total = session.adventure.task_count
        print_fn(
            f"Progress: {engine.completion_percentage()}% "
            f"({engine.completed_task_count()}/{total} tasks)  Score: {engine.score()}"
        )
    elif command == ":hint":
        _hint(session, parts[1:], print_fn)
    else:
        print_fn(f"Unknown command: {parts[0]}")
        print_fn(META_HELP)


def _hint(session: ShellSession, args: list[str], print_fn: PrintFn) -> None:
    task = session.current_task
    if task is None:
        print_fn("All missions complete. No hints needed.")
        return
    if args:
        if not args[0].isdigit() or int(args[0]) not in HINT_LEVELS:
            print_fn(f"Usage: :hint [{HINT_LEVELS[0]}-{HINT_LEVELS[-1]}]")
            return
        level = int(args[0])
    else:
        level = min(session.engine.hints_used.get(task.id, 0) + 1, HINT_LEVELS[-1])
    hint = session.request_hint(level)
    if hint is None:
        print_fn(f"No level {level} hint for this task.")
        return
    print_fn(f"Hint {hint.level}: {hint.text}")


def _show_task(session: ShellSession, print_fn: PrintFn, *, with_story: bool) -> None:
    mission = session.current_mission
    task = session.current_task
    if mission is None or task is None:
        print_fn(f"All missions complete. Score: {session.engine.score()}")
        return
    if with_story:
        print_fn(f"\n--- Mission: {mission.title} ---")
        if mission.story:
            print_fn(mission.story)
    print_fn(f"Task: {task.description}")


def _render_turn(session: ShellSession, turn: TurnResult, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Print each command's output, act on its side effect, then announce progress."""
    for idx, result in enumerate(turn.results):
        _print_result(result, print_fn)
        effect = result.side_effect
        if effect is not None and effect.kind is SideEffectKind.CLEAR_SCREEN:
            print_fn(CLEAR_SEQUENCE)
        if idx < len(turn.outcomes):
            _announce(session, turn.outcomes[idx], print_fn)
        if effect is not None and effect.kind is SideEffectKind.OPEN_EDITOR and effect.path is not None:
            saved = _editor_flow(session, effect.path, input_fn, print_fn)
            if saved is not None:
                _render_turn(session, saved, input_fn, print_fn)


def _print_result(result: CommandResult, print_fn: PrintFn) -> None:
    for line in result.stdout:
        print_fn(line)
    for line in result.stderr:
        print_fn(line)


def _announce(session: ShellSession, outcome: ValidationOutcome, print_fn: PrintFn) -> None:
    if not outcome.changed or outcome.task is None:
        return
    print_fn(f"[+] Task complete: {outcome.task.description}")
    if outcome.transition is Transition.TASK_COMPLETED:
        _show_task(session, print_fn, with_story=False)
        return
    if outcome.mission is not None:
        print_fn(f"\n*** Mission complete: {outcome.mission.title} ***")
    if outcome.story:
        print_fn(outcome.story)
    if outcome.transition is Transition.ALL_COMPLETED:
        print_fn(f"\nAdventure complete! Final score: {session.engine.score()}")
        return
    _show_task(session, print_fn, with_story=True)


def _editor_flow(session: ShellSession, path: str, input_fn: InputFn, print_fn: PrintFn) -> TurnResult | None:
    """Minimal line editor: typed lines replace the file; a lone '.' saves."""
    try:
        existing = session.read_file(path)
    except FilesystemError:
        existing = ""
    print_fn(f"--- editing {path} ---")
    for line in existing.splitlines():
        print_fn(f"  {line}")
    print_fn(f"Type the new content. End with a line containing only '{EDITOR_END}'.")

    lines: list[str] = []
    while True:
        line = _read(input_fn, "> ")
        if line == EDITOR_END:
            break
        lines.append(line)
    if not lines:
        print_fn("No changes written.")
        return None
    turn = session.save_file(path, "\n".join(lines) + "\n")
    if turn.exit_code == 0:
        print_fn(f"Saved {path}.")
    return turn


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
