"""Nodes of a multiple sandbox deployment.

Identity, port and directory name of a node are pure functions of the node ordinal
(1-based position of the node in the deployment) and of the base values.
"""

import dataclasses
import pathlib as pl

from multi_sandbox.provisioning import ports


@dataclasses.dataclass(frozen=True, order=True)
class NodeDescriptor:
    ordinal: int
    port: int
    server_id: int
    dir_name: str
    label: str
    auxiliary_port: int | None = None
    auxiliary_enabled: bool = False

    @property
    def ports(self) -> list[int]:
        """Return ports the node reserves on the host."""
        if self.auxiliary_enabled and self.auxiliary_port:
            return [self.port, self.auxiliary_port]
        return [self.port]


@dataclasses.dataclass(frozen=True)
class NodeConfig:
    """Everything the single-node installer needs to know about a node."""

    node: NodeDescriptor
    version: str
    basedir: pl.Path
    sandbox_dir: pl.Path
    sb_type: str
    load_grants: bool = True

    @property
    def node_dir(self) -> pl.Path:
        return self.sandbox_dir / self.node.dir_name


def server_id(ordinal: int, base_server_id: int = 0) -> int:
    """Return server ID of a node.

    >>> server_id(3)
    300
    """
    return (base_server_id + ordinal) * 100


def node_dir_name(label: str, ordinal: int) -> str:
    return f"{label}{ordinal}"


def node_port(block: tuple[int, ...], ordinal: int) -> int:
    """Return port of a node from the allocated block of ports."""
    return block[ordinal - 1]


def build_node_descriptors(
    allocation: ports.PortAllocation,
    node_label: str,
    base_server_id: int = 0,
) -> list[NodeDescriptor]:
    """Return descriptors of all nodes, in the ordinal order."""
    nodes = []
    for ordinal in range(1, len(allocation.primary) + 1):
        aux_port = (
            node_port(allocation.auxiliary, ordinal) if allocation.auxiliary is not None else None
        )
        nodes.append(
            NodeDescriptor(
                ordinal=ordinal,
                port=node_port(allocation.primary, ordinal),
                server_id=server_id(ordinal, base_server_id=base_server_id),
                dir_name=node_dir_name(node_label, ordinal),
                label=node_label,
                auxiliary_port=aux_port,
                auxiliary_enabled=aux_port is not None and allocation.auxiliary_enabled,
            )
        )
    return nodes
