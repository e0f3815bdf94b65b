import pathlib as pl
import typing as tp

from multi_sandbox.provisioning import cleanup
from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import scheduler
from multi_sandbox.provisioning import single_node


def hypothesis_settings(max_examples: int = 100) -> tp.Any:
    import hypothesis

    return hypothesis.settings(
        max_examples=max_examples,
        deadline=None,
        suppress_health_check=(
            hypothesis.HealthCheck.too_slow,
            hypothesis.HealthCheck.function_scoped_fixture,
        ),
    )


def get_node(ordinal: int, port: int = 0) -> nodes.NodeDescriptor:
    return nodes.NodeDescriptor(
        ordinal=ordinal,
        port=port or 20000 + ordinal,
        server_id=nodes.server_id(ordinal),
        dir_name=nodes.node_dir_name("node", ordinal),
        label="node",
    )


class FakeInstaller(single_node.SingleNodeInstaller):
    """Installer that only writes marker files into the node directory.

    Args:
        fail_install_on: Ordinal of a node whose installation raises.
        fail_start_on: Ordinal of a node whose `start` step raises.
        broken_cleanup: Register a cleanup action that raises when unwound.
    """

    def __init__(
        self,
        fail_install_on: int | None = None,
        fail_start_on: int | None = None,
        broken_cleanup: bool = False,
    ) -> None:
        self.fail_install_on = fail_install_on
        self.fail_start_on = fail_start_on
        self.broken_cleanup = broken_cleanup
        self.installed: list[int] = []
        self.started: list[int] = []
        self.stopped: list[int] = []

    def _stop(self, target: str) -> None:
        self.stopped.append(int(pl.Path(target).read_text()))

    def install(
        self, node_config: nodes.NodeConfig, cleanup_stack: cleanup.CleanupStack
    ) -> list[scheduler.ExecutionStep]:
        node = node_config.node
        node_dir = node_config.node_dir

        if node.ordinal == self.fail_install_on:
            msg = f"installation of node {node.ordinal} failed"
            raise RuntimeError(msg)
        self.installed.append(node.ordinal)
        (node_dir / "installed").write_text(str(node.port))

        if self.broken_cleanup:

            def _broken(target: str) -> None:
                msg = f"can't undo {target}"
                raise OSError(msg)

            cleanup_stack.push("broken undo", _broken, node_dir)

        def _init() -> None:
            (node_dir / "data").mkdir()

        def _start() -> None:
            if node.ordinal == self.fail_start_on:
                msg = f"node {node.ordinal} didn't start"
                raise RuntimeError(msg)
            pid_file = node_dir / "pid"
            pid_file.write_text(str(node.ordinal))
            self.started.append(node.ordinal)
            cleanup_stack.push("stop", self._stop, pid_file)

        return [
            scheduler.ExecutionStep(name="init_db", tier=0, node=node, action=_init),
            scheduler.ExecutionStep(name="start", tier=1, node=node, action=_start),
        ]
