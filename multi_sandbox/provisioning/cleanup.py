"""Registry of undo actions for resources created during a deployment.

Every action that creates a resource (directory, file, running server, catalog entry) pushes
a `CleanupAction` right after it succeeds. On success the registry is committed (emptied without
running anything), on failure it is unwound: actions are run in reverse order of registration.
"""

import dataclasses
import logging
import pathlib as pl
import shutil
import threading
import typing as tp

from multi_sandbox.utils import helpers

LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CleanupAction:
    name: str
    undo: tp.Callable[[str], tp.Any]
    target: str

    def run(self) -> None:
        self.undo(self.target)


@dataclasses.dataclass(frozen=True)
class CleanupFailure:
    action: CleanupAction
    error: Exception


class CleanupStack:
    """LIFO stack of cleanup actions.

    Registration is thread-safe, so steps running in parallel can register their own actions.
    """

    def __init__(self) -> None:
        self._actions: list[CleanupAction] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    @property
    def actions(self) -> list[CleanupAction]:
        """Return copy of registered actions, in order of registration."""
        with self._lock:
            return list(self._actions)

    def register(self, action: CleanupAction) -> None:
        with self._lock:
            self._actions.append(action)
        LOGGER.debug(f"Registered cleanup action {action.name} '{action.target}'")

    def push(self, name: str, undo: tp.Callable[[str], tp.Any], target: tp.Any) -> CleanupAction:
        """Create and register a cleanup action."""
        action = CleanupAction(name=name, undo=undo, target=str(target))
        self.register(action)
        return action

    def commit(self) -> None:
        """Discard all registered actions without running them."""
        with self._lock:
            discarded = len(self._actions)
            self._actions.clear()
        LOGGER.debug(f"Committed, discarded {discarded} cleanup action(s)")

    def unwind(self) -> list[CleanupFailure]:
        """Run all registered actions in reverse order of registration.

        A failing action doesn't stop the unwinding, its failure is collected and returned.
        Every action is run at most once, so calling `unwind` again is a no-op.
        """
        failures: list[CleanupFailure] = []
        while True:
            with self._lock:
                if not self._actions:
                    break
                action = self._actions.pop()

            LOGGER.info(f"Cleanup: {action.name} '{action.target}'")
            try:
                action.run()
            except Exception as exc:
                LOGGER.error(  # noqa: TRY400
                    f"Cleanup action {action.name} '{action.target}' failed: {exc}"
                )
                failures.append(CleanupFailure(action=action, error=exc))

        return failures


def remove_dir(target: str) -> None:
    """Remove directory tree."""
    path = pl.Path(target)
    if path.exists():
        shutil.rmtree(path)


def run_script(target: str) -> None:
    """Run a script (e.g. `send_kill` of a started server) if it still exists."""
    if not helpers.is_executable(target):
        return
    helpers.run_command([target])
