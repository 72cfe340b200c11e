import pytest

from slackcoder.agent.plan import EPSILON_DURATION, Plan, Task, TaskStatus, format_plan_summary
from slackcoder.session.ids import generate_session_id


def snapshot(*items):
    return Plan(tasks=[Task(content=c, active_form=f"{c}ing", status=s) for c, s in items])


def test_session_id_format():
    sid = generate_session_id("C123")
    prefix, channel, ts, rand = sid.split("-")
    assert prefix == "session"
    assert channel == "C123"
    assert ts.isdigit()
    assert len(rand) == 6
    assert generate_session_id("C123") != sid


def test_pending_to_in_progress_to_completed_measures_duration():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.PENDING)), now=100.0)
    plan.update(snapshot(("A", TaskStatus.IN_PROGRESS)), now=101.0)

    assert plan.current_task.content == "A"
    assert plan.tasks[0].start_time == 101.0

    plan.update(snapshot(("A", TaskStatus.COMPLETED)), now=104.5)
    assert plan.tasks[0].completion_time == pytest.approx(3.5)
    assert plan.current_task is None
    assert plan.is_complete


def test_new_completed_task_gets_epsilon():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.COMPLETED)), now=10.0)
    assert plan.tasks[0].completion_time == EPSILON_DURATION


def test_pending_to_completed_gets_epsilon():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.PENDING)), now=10.0)
    plan.update(snapshot(("A", TaskStatus.COMPLETED)), now=50.0)
    assert plan.tasks[0].completion_time == EPSILON_DURATION


def test_new_in_progress_task_seeds_start_time():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.IN_PROGRESS)), now=7.0)
    assert plan.tasks[0].start_time == 7.0
    assert plan.tasks[0].completion_time is None


def test_resending_unchanged_snapshot_keeps_timing():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.IN_PROGRESS), ("B", TaskStatus.PENDING)), now=1.0)
    plan.update(snapshot(("A", TaskStatus.COMPLETED), ("B", TaskStatus.IN_PROGRESS)), now=3.0)
    plan.update(snapshot(("A", TaskStatus.COMPLETED), ("B", TaskStatus.IN_PROGRESS)), now=9.0)

    assert plan.tasks[0].completion_time == pytest.approx(2.0)
    assert plan.tasks[1].start_time == 3.0


def test_shrinking_snapshot_never_removes_tasks():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.PENDING), ("B", TaskStatus.PENDING)), now=1.0)
    plan.update(snapshot(("X", TaskStatus.IN_PROGRESS)), now=2.0)

    assert plan.total_count == 2
    assert [t.content for t in plan.tasks] == ["X", "B"]


def test_counts_and_completion():
    plan = Plan()
    assert not plan.is_complete
    plan.update(snapshot(("A", TaskStatus.COMPLETED), ("B", TaskStatus.PENDING)), now=1.0)
    assert plan.completed_count == 1
    assert plan.total_count == 2
    assert not plan.is_complete

    plan.reset()
    assert plan.total_count == 0


def test_current_task_is_first_in_progress():
    plan = Plan()
    plan.update(snapshot(("A", TaskStatus.IN_PROGRESS), ("B", TaskStatus.IN_PROGRESS)), now=1.0)
    assert plan.current_task.content == "A"


def test_from_tool_input():
    plan = Plan.from_tool_input({"todos": [
        {"content": "Run tests", "activeForm": "Running tests", "status": "in_progress"},
        {"content": "Write docs", "status": "pending"},
    ]})
    assert plan.tasks[0].active_form == "Running tests"
    assert plan.tasks[0].status is TaskStatus.IN_PROGRESS
    assert plan.tasks[1].active_form == "Write docs"


@pytest.mark.parametrize("bad", [
    None,
    {},
    {"todos": "nope"},
    {"todos": [{"content": "x"}]},
    {"todos": [{"content": "x", "status": "done"}]},
])
def test_from_tool_input_rejects_malformed(bad):
    with pytest.raises(ValueError):
        Plan.from_tool_input(bad)


def test_format_plan_summary():
    plan = Plan()
    plan.update(snapshot(("Read", TaskStatus.IN_PROGRESS), ("Test", TaskStatus.PENDING)), now=0.0)
    plan.update(snapshot(("Read", TaskStatus.COMPLETED), ("Test", TaskStatus.IN_PROGRESS)), now=2.5)

    text = format_plan_summary(plan)
    assert text.splitlines() == [
        "Progress: 1/2",
        "Current: Testing",
        "[x] Read (2.5s)",
        "[~] Test",
    ]
