from termquest.missions import Cursor, MissionEngine, Transition
from termquest.models import Hint, Mission, Task
from termquest.validators import TaskEvent
from termquest.vfs import VirtualFileSystem


def _task(task_id: str, command: str) -> Task:
    return Task(
        id=task_id,
        description=f"run {command}",
        hints=[Hint(1, f"try {command}"), Hint(2, f"type {command} exactly")],
        command_pattern=rf"^{command}$",
    )


def _missions() -> list[Mission]:
    return [
        Mission("m1", "First", "story one", [_task("t1", "pwd"), _task("t2", "ls")], on_complete="m1 done"),
        Mission("m2", "Second", "story two", [_task("t3", "whoami")], on_complete="all done"),
    ]


def _event(command: str) -> TaskEvent:
    return TaskEvent(command, (), (), 0, VirtualFileSystem(), "/", "/home/student")


def test_engine_walks_forward_through_every_transition() -> None:
    engine = MissionEngine(_missions())
    assert engine.cursor == Cursor(0, 0)
    assert engine.current_task is not None and engine.current_task.id == "t1"

    first = engine.evaluate(_event("pwd"))
    assert first.transition is Transition.TASK_COMPLETED
    assert first.cursor == Cursor(0, 1)
    assert first.task is not None and first.task.id == "t1"

    second = engine.evaluate(_event("ls"))
    assert second.transition is Transition.MISSION_COMPLETED
    assert second.cursor == Cursor(1, 0)
    assert second.story == "m1 done"

    third = engine.evaluate(_event("whoami"))
    assert third.transition is Transition.ALL_COMPLETED
    assert third.cursor == Cursor(2, 0)
    assert third.story == "all done"
    assert engine.is_complete
    assert engine.current_task is None
    assert engine.current_mission is None


def test_unmatched_event_changes_nothing() -> None:
    engine = MissionEngine(_missions())
    outcome = engine.evaluate(_event("cat"))
    assert outcome.transition is Transition.NO_CHANGE
    assert outcome.changed is False
    assert engine.cursor == Cursor(0, 0)


def test_later_task_match_never_skips_ahead() -> None:
    engine = MissionEngine(_missions())
    assert engine.evaluate(_event("ls")).changed is False
    assert engine.evaluate(_event("whoami")).changed is False
    assert engine.cursor == Cursor(0, 0)


def test_one_event_advances_at_most_one_task() -> None:
    always = Task(id="a", description="anything", check=lambda event: True)
    also = Task(id="b", description="anything else", check=lambda event: True)
    engine = MissionEngine([Mission("m", "M", "", [always, also])])
    engine.evaluate(_event("x"))
    assert engine.cursor == Cursor(0, 1)


def test_terminal_state_is_frozen() -> None:
    engine = MissionEngine(_missions())
    for command in ("pwd", "ls", "whoami"):
        engine.evaluate(_event(command))
    outcome = engine.evaluate(_event("pwd"))
    assert outcome.transition is Transition.NO_CHANGE
    assert engine.cursor == engine.terminal_cursor


def test_empty_mission_is_rejected() -> None:
    try:
        MissionEngine([Mission("m", "M", "", [])])
        raise AssertionError("Expected ValueError for mission without tasks.")
    except ValueError as exc:
        assert "at least one task" in str(exc)


def test_restore_validates_cursor_and_filters_hints() -> None:
    engine = MissionEngine(_missions())
    engine.restore(Cursor(1, 0), {"t1": 2, "ghost": 1, "t2": 7})
    assert engine.cursor == Cursor(1, 0)
    assert engine.hints_used == {"t1": 2}
    engine.restore(Cursor(2, 0))
    assert engine.is_complete
    for bad in (Cursor(0, 2), Cursor(2, 1), Cursor(-1, 0), Cursor(5, 0)):
        try:
            engine.restore(bad)
            raise AssertionError(f"Expected ValueError for {bad}.")
        except ValueError:
            pass


def test_hints_record_highest_level() -> None:
    engine = MissionEngine(_missions())
    hint = engine.request_hint(2)
    assert hint is not None and hint.text == "type pwd exactly"
    engine.request_hint(1)
    assert engine.hints_used == {"t1": 2}
    assert engine.request_hint(3) is None
    assert engine.hints_used == {"t1": 2}
    try:
        engine.request_hint(4)
        raise AssertionError("Expected ValueError for hint level 4.")
    except ValueError:
        pass


def test_percentage_and_score() -> None:
    engine = MissionEngine(_missions())
    assert engine.completion_percentage() == 0
    assert engine.score() == 1000
    engine.request_hint(2)
    engine.evaluate(_event("pwd"))
    assert engine.completed_task_count() == 1
    assert engine.completion_percentage() == 33
    assert engine.score() == 980
    engine.evaluate(_event("ls"))
    engine.evaluate(_event("whoami"))
    assert engine.completion_percentage() == 100
    assert engine.score() == 1480


def test_reset_clears_cursor_and_hints() -> None:
    engine = MissionEngine(_missions())
    engine.request_hint(1)
    engine.evaluate(_event("pwd"))
    engine.reset()
    assert engine.cursor == Cursor(0, 0)
    assert engine.hints_used == {}
