"""Execution of node installation steps, tier by tier.

Steps are grouped into tiers (small non-negative integers, lower tier runs first). All steps of
a tier must finish before any step of the next tier starts. Steps within a tier are independent
of each other, so in the concurrent mode they run in parallel.

If a step fails, the steps of the current tier that were already dispatched are allowed to
finish, no step of the next tiers is started and all failures of the tier are reported together.
"""

import concurrent.futures
import dataclasses
import datetime
import enum
import itertools
import logging
import typing as tp

from multi_sandbox.provisioning import exceptions
from multi_sandbox.provisioning import nodes
from multi_sandbox.utils import configuration
from multi_sandbox.utils import helpers
from multi_sandbox.utils import types as ttypes

LOGGER = logging.getLogger(__name__)


class ConcurrencyMode(enum.StrEnum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


@dataclasses.dataclass(frozen=True)
class ExecutionStep:
    name: str
    tier: int
    node: nodes.NodeDescriptor
    action: tp.Callable[[], tp.Any]

    def __post_init__(self) -> None:
        if not isinstance(self.tier, int) or self.tier < 0:
            msg = f"Invalid tier '{self.tier}' of step '{self.name}': must be non-negative int"
            raise ValueError(msg)


@dataclasses.dataclass
class StepResult:
    step: ExecutionStep
    started_at: datetime.datetime
    finished_at: datetime.datetime
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclasses.dataclass
class ExecutionReport:
    results: list[StepResult] = dataclasses.field(default_factory=list)

    @property
    def failures(self) -> list[StepResult]:
        return [r for r in self.results if not r.ok]


class ExecutionBatch:
    """Execution steps of all nodes of a deployment."""

    def __init__(self, steps: tp.Iterable[ExecutionStep] = ()) -> None:
        self._steps: list[ExecutionStep] = []
        self.extend(steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> tp.Iterator[ExecutionStep]:
        return iter(self._steps)

    def add(self, step: ExecutionStep) -> None:
        self._steps.append(step)

    def extend(self, steps: tp.Iterable[ExecutionStep]) -> None:
        for step in steps:
            self.add(step)

    def tiers(self) -> list[tuple[int, list[ExecutionStep]]]:
        """Return steps grouped by tier, ordered by tier and node ordinal.

        Order of steps of the same node within a tier is the order of insertion.
        """
        ordered = sorted(self._steps, key=lambda s: (s.tier, s.node.ordinal))
        return [(t, list(g)) for t, g in itertools.groupby(ordered, key=lambda s: s.tier)]


def command_step(
    name: str, tier: int, node: nodes.NodeDescriptor, command: list[ttypes.FileType]
) -> ExecutionStep:
    """Return step that runs a command."""
    return ExecutionStep(
        name=name,
        tier=tier,
        node=node,
        action=lambda: helpers.run_command([str(c) for c in command]),
    )


def _now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


class ExecutionScheduler:
    """Run execution steps tier by tier.

    Args:
        mode: Run the steps one by one (`SEQUENTIAL`) or the steps of a tier in parallel
            (`CONCURRENT`).
        max_workers: A cap on number of parallel workers. Use the tier size if set to 0.
        log_func: A callable for progress messages (tier and step start and finish).
    """

    def __init__(
        self,
        mode: ConcurrencyMode = ConcurrencyMode.SEQUENTIAL,
        *,
        max_workers: int = 0,
        log_func: ttypes.LogFuncType | None = None,
    ) -> None:
        self.mode = ConcurrencyMode(mode)
        self.max_workers = max_workers or configuration.MAX_WORKERS
        self.log_func = log_func

    def _log(self, msg: str) -> None:
        LOGGER.debug(msg)
        if self.log_func:
            self.log_func(msg)

    def _run_step(self, step: ExecutionStep) -> StepResult:
        self._log(f"Starting step '{step.name}' of node {step.node.ordinal} (tier {step.tier})")
        started_at = _now()
        error = None
        try:
            step.action()
        except Exception as exc:
            error = exc
        result = StepResult(step=step, started_at=started_at, finished_at=_now(), error=error)

        status = "OK" if result.ok else f"FAILED: {error}"
        self._log(f"Finished step '{step.name}' of node {step.node.ordinal}: {status}")
        return result

    def _run_tier_sequential(self, steps: list[ExecutionStep]) -> list[StepResult]:
        results = []
        for step in steps:
            result = self._run_step(step)
            results.append(result)
            # Nothing else is in flight, stop at the first failure
            if not result.ok:
                break
        return results

    def _run_tier_concurrent(self, steps: list[ExecutionStep]) -> list[StepResult]:
        num_workers = min(len(steps), self.max_workers) if self.max_workers else len(steps)
        with concurrent.futures.ThreadPoolExecutor(max_workers=num_workers) as executor:
            futures = [executor.submit(self._run_step, s) for s in steps]
            concurrent.futures.wait(futures)
        return [f.result() for f in futures]

    def run(self, batch: ExecutionBatch) -> ExecutionReport:
        """Run all steps of the batch.

        Raises `ExecutionError` with all failures of the first tier where any step failed.
        """
        report = ExecutionReport()
        for tier, steps in batch.tiers():
            self._log(f"Starting tier {tier} ({len(steps)} step(s), {self.mode} mode)")
            if self.mode == ConcurrencyMode.CONCURRENT:
                results = self._run_tier_concurrent(steps)
            else:
                results = self._run_tier_sequential(steps)
            report.results.extend(results)

            failures = [r for r in results if not r.ok]
            num_ok = len(results) - len(failures)
            self._log(f"Finished tier {tier}: {num_ok} OK, {len(failures)} failed")
            if failures:
                raise exceptions.ExecutionError(
                    tier=tier, failures=failures, results=list(report.results)
                )

        return report
