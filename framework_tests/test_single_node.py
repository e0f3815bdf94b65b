import os
import pathlib as pl

import pytest

from multi_sandbox.provisioning import cleanup
from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import single_node


def _get_node_config(
    tmp_path: pl.Path, version: str, auxiliary_enabled: bool = False, load_grants: bool = True
) -> nodes.NodeConfig:
    node = nodes.NodeDescriptor(
        ordinal=2,
        port=20002,
        server_id=200,
        dir_name="node2",
        label="node",
        auxiliary_port=30002,
        auxiliary_enabled=auxiliary_enabled,
    )
    node_config = nodes.NodeConfig(
        node=node,
        version=version,
        basedir=tmp_path / "opt" / version,
        sandbox_dir=tmp_path,
        sb_type="multiple-node",
        load_grants=load_grants,
    )
    node_config.node_dir.mkdir()
    return node_config


def test_install(tmp_path: pl.Path):
    node_config = _get_node_config(tmp_path, version="8.0.11", auxiliary_enabled=True)
    stack = cleanup.CleanupStack()

    steps = single_node.MySQLNodeInstaller().install(node_config, stack)

    node_dir = node_config.node_dir
    for script_name, __ in single_node.NODE_SCRIPTS:
        assert os.access(node_dir / script_name, os.X_OK), script_name

    my_cnf = (node_dir / "my.sandbox.cnf").read_text()
    assert "port=20002" in my_cnf
    assert "server-id=200" in my_cnf
    assert "mysqlx-port=30002" in my_cnf
    assert f"datadir={node_dir / 'data'}" in my_cnf
    assert "%%" not in my_cnf
    assert (node_dir / "grants.mysql").exists()

    assert [(s.name, s.tier) for s in steps] == [
        ("init_db", single_node.TIER_INIT_DB),
        ("start", single_node.TIER_START),
        ("load_grants", single_node.TIER_LOAD_GRANTS),
    ]
    assert all(s.node == node_config.node for s in steps)
    # Nothing is started yet, so there's nothing to stop
    assert len(stack) == 0


@pytest.mark.parametrize(
    ("version", "expected"),
    (("8.0.11", "mysqlx=OFF"), ("5.7.22", "")),
)
def test_mysqlx_disabled(tmp_path: pl.Path, version: str, expected: str):
    node_config = _get_node_config(tmp_path, version=version)

    data = single_node.MySQLNodeInstaller().get_template_data(node_config)

    assert data["MYSQLX_OPTIONS"] == expected
    assert data["PORT"] == 20002
    assert data["SERVER_ID"] == 200


def test_no_load_grants(tmp_path: pl.Path):
    node_config = _get_node_config(tmp_path, version="5.7.22", load_grants=False)

    steps = single_node.MySQLNodeInstaller().install(node_config, cleanup.CleanupStack())

    assert [s.name for s in steps] == ["init_db", "start"]


def test_failed_start_registers_kill(tmp_path: pl.Path):
    """The kill script is registered for cleanup even when the start script fails."""
    node_config = _get_node_config(tmp_path, version="5.7.22")
    stack = cleanup.CleanupStack()
    steps = single_node.MySQLNodeInstaller().install(node_config, stack)

    # Replace the start script with one that fails
    start_script = node_config.node_dir / "start"
    start_script.write_text("#!/bin/sh\nexit 1\n")
    start_step = next(s for s in steps if s.name == "start")

    with pytest.raises(RuntimeError):
        start_step.action()

    assert [a.name for a in stack.actions] == ["send_kill"]
    assert stack.actions[0].target == str(node_config.node_dir / "send_kill")
