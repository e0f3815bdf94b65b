import pathlib as pl

import pytest

from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import ports


@pytest.mark.parametrize(
    ("ordinal", "base_server_id", "expected"),
    ((1, 0, 100), (3, 0, 300), (2, 10, 1200)),
)
def test_server_id(ordinal: int, base_server_id: int, expected: int):
    assert nodes.server_id(ordinal, base_server_id=base_server_id) == expected


def test_node_dir_name():
    assert nodes.node_dir_name("node", 2) == "node2"


def test_build_node_descriptors():
    allocation = ports.PortAllocation(
        primary=(20002, 20003, 20004), auxiliary=(30002, 30003, 30004), auxiliary_enabled=True
    )

    descs = nodes.build_node_descriptors(allocation=allocation, node_label="node")

    assert [n.ordinal for n in descs] == [1, 2, 3]
    assert [n.port for n in descs] == [20002, 20003, 20004]
    assert [n.server_id for n in descs] == [100, 200, 300]
    assert [n.dir_name for n in descs] == ["node1", "node2", "node3"]
    assert [n.auxiliary_port for n in descs] == [30002, 30003, 30004]
    assert descs[1].ports == [20003, 30003]
    assert len({n.dir_name for n in descs}) == len(descs)


def test_build_node_descriptors_no_auxiliary():
    allocation = ports.PortAllocation(primary=(20001, 20002))

    descs = nodes.build_node_descriptors(allocation=allocation, node_label="n")

    assert [n.dir_name for n in descs] == ["n1", "n2"]
    assert all(n.auxiliary_port is None for n in descs)
    assert all(not n.auxiliary_enabled for n in descs)
    assert descs[0].ports == [20001]


def test_auxiliary_disabled():
    allocation = ports.PortAllocation(
        primary=(20001, 20002), auxiliary=(30001, 30002), auxiliary_enabled=False
    )

    descs = nodes.build_node_descriptors(allocation=allocation, node_label="node")

    assert descs[0].auxiliary_port == 30001
    assert descs[0].ports == [20001]


def test_node_config_dir():
    node = nodes.build_node_descriptors(
        allocation=ports.PortAllocation(primary=(20001, 20002)), node_label="node"
    )[1]
    node_config = nodes.NodeConfig(
        node=node,
        version="8.0.11",
        basedir=pl.Path("/opt/mysql/8.0.11"),
        sandbox_dir=pl.Path("/sandboxes/multi_msb_8_0_11"),
        sb_type="multiple-node",
    )

    assert node_config.node_dir == pl.Path("/sandboxes/multi_msb_8_0_11/node2")
