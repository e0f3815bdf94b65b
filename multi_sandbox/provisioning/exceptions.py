"""Errors raised while provisioning a multiple sandbox deployment.

Only the orchestrator decides whether a failure triggers rollback:

* `InvalidRequestError` and `ResourceExhaustedError` happen before any side effect
* `ProvisioningError` and `ExecutionError` trigger rollback
* `SandboxBatchError` is the final report, raised after rollback
"""

import typing as tp

if tp.TYPE_CHECKING:
    from multi_sandbox.provisioning import cleanup
    from multi_sandbox.provisioning import scheduler


class SandboxError(Exception):
    """Base class for all deployment errors."""


class InvalidRequestError(SandboxError):
    """The deployment request is not valid (bad node count, missing base directory, ...)."""


class ResourceExhaustedError(SandboxError):
    """No free block of ports is available."""


class ProvisioningError(SandboxError):
    """Setting up a node (or writing the final scripts and metadata) failed."""


class ExecutionError(SandboxError):
    """One or more execution steps failed within a tier."""

    def __init__(
        self,
        tier: int,
        failures: list["scheduler.StepResult"],
        results: list["scheduler.StepResult"] | None = None,
    ) -> None:
        self.tier = tier
        self.failures = failures
        # Results of all steps run so far, including the finished steps of the failed tier
        self.results = results if results is not None else list(failures)
        failed_str = "; ".join(f"{f.step.name}: {f.error!r}" for f in failures)
        super().__init__(f"{len(failures)} step(s) failed in tier {tier}: {failed_str}")


class SandboxBatchError(SandboxError):
    """Deployment failed and was rolled back.

    Contains the error(s) that triggered the rollback and the cleanup actions that failed
    themselves, so the remaining state can be cleaned up manually.
    """

    def __init__(
        self,
        errors: list[BaseException],
        cleanup_failures: list["cleanup.CleanupFailure"],
        sandbox_dir: str = "",
    ) -> None:
        self.errors = errors
        self.cleanup_failures = cleanup_failures
        self.sandbox_dir = sandbox_dir
        super().__init__(self._format())

    def _format(self) -> str:
        lines = [f"Deployment of '{self.sandbox_dir}' failed:"]
        lines.extend(f"  {e.__class__.__name__}: {e}" for e in self.errors)
        if self.cleanup_failures:
            lines.append("Cleanup actions that failed (manual cleanup needed):")
            lines.extend(
                f"  {f.action.name} '{f.action.target}': {f.error!r}"
                for f in self.cleanup_failures
            )
        return "\n".join(lines)
