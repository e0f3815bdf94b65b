"""Provisioning of the individual nodes of a deployment."""

import logging
import typing as tp

from multi_sandbox.provisioning import cleanup
from multi_sandbox.provisioning import exceptions
from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import scheduler
from multi_sandbox.provisioning import single_node
from multi_sandbox.utils import types as ttypes

LOGGER = logging.getLogger(__name__)


class NodeProvisioner:
    """Create node directories and collect execution steps of all nodes.

    The removal of the node directory is registered for cleanup before the single-node
    installer is called, so the directory is removed even when the installer fails.
    """

    def __init__(
        self,
        *,
        installer: single_node.SingleNodeInstaller,
        cleanup_stack: cleanup.CleanupStack,
        log_func: ttypes.LogFuncType | None = None,
    ) -> None:
        self.installer = installer
        self.cleanup_stack = cleanup_stack
        self.log_func = log_func

    def _log(self, msg: str) -> None:
        LOGGER.debug(msg)
        if self.log_func:
            self.log_func(msg)

    def provision(self, node_config: nodes.NodeConfig) -> list[scheduler.ExecutionStep]:
        """Prepare a single node, return its execution steps."""
        node = node_config.node
        node_dir = node_config.node_dir

        try:
            node_dir.mkdir()
        except OSError as exc:
            msg = f"Failed to create directory of {node.dir_name} '{node_dir}': {exc}"
            raise exceptions.ProvisioningError(msg) from exc
        self.cleanup_stack.push("remove node directory", cleanup.remove_dir, node_dir)
        self._log(f"Created directory '{node_dir}'")

        self._log(f"Creating single sandbox for node {node.ordinal}")
        try:
            steps = self.installer.install(node_config, self.cleanup_stack)
        except Exception as exc:
            msg = f"Failed to install {node.dir_name}: {exc}"
            raise exceptions.ProvisioningError(msg) from exc

        foreign = [s.name for s in steps if s.node != node]
        if foreign:
            msg = f"Installer of {node.dir_name} returned steps of other nodes: {foreign}"
            raise exceptions.ProvisioningError(msg)

        return list(steps)

    def provision_all(
        self, node_configs: tp.Iterable[nodes.NodeConfig]
    ) -> scheduler.ExecutionBatch:
        """Prepare all nodes in the ordinal order, return execution steps of all of them."""
        batch = scheduler.ExecutionBatch()
        for node_config in sorted(node_configs, key=lambda c: c.node.ordinal):
            batch.extend(self.provision(node_config))
        return batch
