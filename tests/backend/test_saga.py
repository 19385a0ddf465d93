import pytest

from src.clinic_api.services.workspaces.saga import CompensatingSteps


async def test_all_steps_run_in_order():
    calls = []

    async def first():
        calls.append("first")
        return 1

    async def second():
        calls.append("second")
        return 2

    results = await CompensatingSteps().add("first", first).add("second", second).run()
    assert results == [1, 2]
    assert calls == ["first", "second"]


async def test_failure_compensates_completed_steps_in_reverse_order():
    undone = []

    async def make(name):
        return name

    async def undo(result):
        undone.append(result)

    async def fail():
        raise RuntimeError("insert failed")

    steps = (
        CompensatingSteps()
        .add("a", lambda: make("a"), undo)
        .add("b", lambda: make("b"), undo)
        .add("c", fail, undo)
    )
    with pytest.raises(RuntimeError, match="insert failed"):
        await steps.run()
    assert undone == ["b", "a"]


async def test_failing_compensation_does_not_stop_the_others():
    undone = []

    async def make():
        return "row"

    async def broken_undo(result):
        raise RuntimeError("undo failed")

    async def undo(result):
        undone.append(result)

    async def fail():
        raise ValueError("boom")

    steps = CompensatingSteps().add("a", make, undo).add("b", make, broken_undo).add("c", fail)
    with pytest.raises(ValueError):
        await steps.run()
    assert undone == ["row"]
