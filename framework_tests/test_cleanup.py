import concurrent.futures
import pathlib as pl

from multi_sandbox.provisioning import cleanup


def test_unwind_lifo():
    undone: list[str] = []
    stack = cleanup.CleanupStack()
    for name in ("first", "second", "third"):
        stack.push(name, undone.append, name)

    failures = stack.unwind()

    assert not failures
    assert undone == ["third", "second", "first"]
    assert len(stack) == 0


def test_unwind_twice():
    undone: list[str] = []
    stack = cleanup.CleanupStack()
    stack.push("only", undone.append, "only")

    stack.unwind()
    stack.unwind()

    assert undone == ["only"]


def test_unwind_continues_after_failure():
    undone: list[str] = []

    def _fail(target: str) -> None:
        msg = f"can't undo {target}"
        raise OSError(msg)

    stack = cleanup.CleanupStack()
    stack.push("first", undone.append, "first")
    broken = stack.push("broken", _fail, "broken")
    stack.push("third", undone.append, "third")

    failures = stack.unwind()

    assert undone == ["third", "first"]
    assert len(failures) == 1
    assert failures[0].action == broken
    assert isinstance(failures[0].error, OSError)


def test_commit():
    undone: list[str] = []
    stack = cleanup.CleanupStack()
    stack.push("first", undone.append, "first")

    stack.commit()

    assert len(stack) == 0
    assert not stack.unwind()
    assert not undone


def test_concurrent_registration():
    stack = cleanup.CleanupStack()

    def _register(num: int) -> None:
        for i in range(100):
            stack.push(f"action {num}-{i}", lambda t: None, i)

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(_register, range(8)))

    assert len(stack) == 800
    assert len({a.name for a in stack.actions}) == 800


def test_remove_dir(tmp_path: pl.Path):
    target = tmp_path / "node1"
    (target / "data").mkdir(parents=True)

    cleanup.remove_dir(str(target))
    # Already removed, no error
    cleanup.remove_dir(str(target))

    assert not target.exists()


def test_run_script_missing(tmp_path: pl.Path):
    cleanup.run_script(str(tmp_path / "send_kill"))


def test_run_script(tmp_path: pl.Path):
    marker = tmp_path / "killed"
    script = tmp_path / "send_kill"
    script.write_text(f"#!/bin/sh\ntouch {marker}\n")
    script.chmod(0o755)

    cleanup.run_script(str(script))

    assert marker.exists()
