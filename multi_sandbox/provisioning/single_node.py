"""Installation of a single sandbox node.

An installer prepares the node directory and returns the execution steps that finish the
installation (initializing the database, starting the server, loading grants). It never runs
the steps itself, that is up to the scheduler.
"""

import datetime
import getpass
import logging

from multi_sandbox.provisioning import cleanup
from multi_sandbox.provisioning import nodes
from multi_sandbox.provisioning import scheduler
from multi_sandbox.provisioning import scripts
from multi_sandbox.provisioning import templates
from multi_sandbox.utils import helpers
from multi_sandbox.utils import versions

LOGGER = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

# Tiers of the installation steps
TIER_INIT_DB = 0
TIER_START = 1
TIER_LOAD_GRANTS = 2

NODE_SCRIPTS = (
    ("init_db", "init_db_template"),
    ("start", "start_template"),
    ("stop", "stop_template"),
    ("send_kill", "send_kill_template"),
    ("status", "status_template"),
    ("restart", "restart_template"),
    ("use", "use_template"),
    ("clear", "clear_template"),
    ("load_grants", "load_grants_template"),
    ("test_sb", "test_sb_template"),
)


class SingleNodeInstaller:
    """Generic single node installer."""

    def install(
        self, node_config: nodes.NodeConfig, cleanup_stack: cleanup.CleanupStack
    ) -> list[scheduler.ExecutionStep]:
        """Prepare the node and return its execution steps.

        The node directory already exists and its removal is already registered for cleanup.
        Any other resource the installer creates must be registered on the `cleanup_stack`.
        """
        raise NotImplementedError


class MySQLNodeInstaller(SingleNodeInstaller):
    """Installer of a MySQL server node."""

    def get_template_data(self, node_config: nodes.NodeConfig) -> dict:
        node = node_config.node
        node_dir = node_config.node_dir

        mysqlx_options = ""
        if node.auxiliary_enabled and node.auxiliary_port:
            mysqlx_options = (
                f"plugin-load-add=mysqlx=mysqlx.so\n"
                f"mysqlx-port={node.auxiliary_port}\n"
                f"mysqlx-socket=/tmp/mysqlx-{node.auxiliary_port}.sock"
            )
        elif versions.supports_mysqlx(node_config.version):
            mysqlx_options = "mysqlx=OFF"

        return {
            "APP_VERSION": APP_VERSION,
            "DATE_TIME": datetime.datetime.now(tz=datetime.UTC).strftime("%c %Z"),
            "SANDBOX_DIR": node_dir,
            "BASEDIR": node_config.basedir,
            "DATADIR": node_dir / "data",
            "TMPDIR": node_dir / "tmp",
            "PORT": node.port,
            "SERVER_ID": node.server_id,
            "PROMPT": node.dir_name,
            "OS_USER": getpass.getuser(),
            "MYSQLX_OPTIONS": mysqlx_options,
            "REPL_OPTIONS": templates.REPLICATION_OPTIONS,
        }

    def install(
        self, node_config: nodes.NodeConfig, cleanup_stack: cleanup.CleanupStack
    ) -> list[scheduler.ExecutionStep]:
        node = node_config.node
        node_dir = node_config.node_dir
        data = self.get_template_data(node_config)

        LOGGER.debug(f"Writing scripts of {node.dir_name} to '{node_dir}'")
        scripts.write_script(
            templates=templates.SINGLE_TEMPLATES,
            script_name="my.sandbox.cnf",
            template_name="my_cnf_template",
            destdir=node_dir,
            data=data,
        )
        scripts.write_script(
            templates=templates.SINGLE_TEMPLATES,
            script_name="grants.mysql",
            template_name="grants_template",
            destdir=node_dir,
            data=data,
        )
        for script_name, template_name in NODE_SCRIPTS:
            scripts.write_script(
                templates=templates.SINGLE_TEMPLATES,
                script_name=script_name,
                template_name=template_name,
                destdir=node_dir,
                data=data,
            )

        def _start() -> None:
            try:
                helpers.run_command([node_dir / "start"])
            finally:
                # The server can be running even if the start script timed out
                cleanup_stack.push("send_kill", cleanup.run_script, node_dir / "send_kill")

        steps = [
            scheduler.command_step("init_db", TIER_INIT_DB, node, [node_dir / "init_db"]),
            scheduler.ExecutionStep(name="start", tier=TIER_START, node=node, action=_start),
        ]
        if node_config.load_grants:
            steps.append(
                scheduler.command_step(
                    "load_grants", TIER_LOAD_GRANTS, node, [node_dir / "load_grants"]
                )
            )

        return steps
